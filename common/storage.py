"""
Misab Storefront - Durable Local Cache
========================================
Key-value storage owned by a single browser session.

Two implementations share one interface:
  - SqlKeyValueStore: rows in `cache_entries`, one scope per session cookie
  - MemoryKeyValueStore: process memory (tests, one-off scripts)

Values are strings; JSON helpers treat anything unparseable as absent.
"""

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy import Column, Integer, String, Text, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from config.database import Base, SessionLocal

logger = logging.getLogger("misab.storage")


class CacheEntry(Base):
    __tablename__ = "cache_entries"

    id = Column(Integer, primary_key=True)
    scope = Column(String(64), nullable=False, index=True)
    key = Column(String(100), nullable=False)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("scope", "key", name="uq_cache_scope_key"),
    )


class KeyValueStore:
    """Abstract local cache interface."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    # ------------------------------------------
    # JSON helpers
    # ------------------------------------------

    def get_json(self, key: str) -> Any:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (ValueError, TypeError):
            logger.warning(f"Ignoring unparseable cache value for '{key}'")
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False))


class MemoryKeyValueStore(KeyValueStore):

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class SqlKeyValueStore(KeyValueStore):
    """
    Cache rows for one session scope.
    Opens its own DB session per call, so an instance can outlive a request.
    """

    def __init__(self, scope: str, session_factory=SessionLocal):
        self.scope = scope
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        db = self._session_factory()
        try:
            entry = db.query(CacheEntry).filter(
                CacheEntry.scope == self.scope, CacheEntry.key == key,
            ).first()
            return entry.value if entry else None
        finally:
            db.close()

    def set(self, key: str, value: str) -> None:
        db = self._session_factory()
        try:
            entry = db.query(CacheEntry).filter(
                CacheEntry.scope == self.scope, CacheEntry.key == key,
            ).first()
            if entry:
                entry.value = value
            else:
                db.add(CacheEntry(scope=self.scope, key=key, value=value))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db = self._session_factory()
        try:
            db.query(CacheEntry).filter(
                CacheEntry.scope == self.scope, CacheEntry.key == key,
            ).delete()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
