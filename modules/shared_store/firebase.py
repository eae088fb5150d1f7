"""
Shared Store - Firebase Realtime Database
===========================================
Multi-writer per-customer key-value store (cart mirror, wishlist, reviews).
REST for reads/writes, Server-Sent Events for live subscriptions.

Paths:
  {customer_id}/cart/{product_key}
  {customer_id}/wishlist/{product_key}
  reviews/{product_key}/{push_id}
"""

import asyncio
import json
import logging
from typing import Any, Callable, Optional

import httpx

from config import settings
from common.exceptions import ConfigurationError, SharedStoreError

logger = logging.getLogger("misab.firebase")

OnChange = Callable[[Any], None]


def build_path(namespace: str, key: Optional[str] = None) -> str:
    parts = [str(namespace).strip("/")]
    if key:
        parts.append(str(key).strip("/"))
    return "/".join(p for p in parts if p)


class SharedStore:
    """Abstract shared store. Every write is a full-value overwrite."""

    async def read(self, namespace: str, key: Optional[str] = None) -> Any:
        """Value at namespace/key (or the whole namespace); None when absent."""
        raise NotImplementedError

    async def write(self, namespace: str, key: str, value: Any) -> None:
        raise NotImplementedError

    async def delete(self, namespace: str, key: Optional[str] = None) -> None:
        raise NotImplementedError

    async def push(self, namespace: str, value: Any) -> str:
        """Append under a generated key; returns the key."""
        raise NotImplementedError

    def subscribe(self, namespace: str, key: Optional[str], on_change: OnChange) -> Callable[[], None]:
        """Call on_change with the current value on every change. Returns an unsubscribe function."""
        raise NotImplementedError


class FirebaseSharedStore(SharedStore):

    def __init__(
        self,
        database_url: str = None,
        auth_token: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.database_url = (database_url if database_url is not None else settings.FIREBASE_DATABASE_URL).rstrip("/")
        self.auth_token = auth_token if auth_token is not None else settings.FIREBASE_AUTH_TOKEN
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self._transport = transport

    def _url(self, path: str) -> str:
        if not self.database_url:
            raise ConfigurationError("Firebase database URL is not configured.")
        return f"{self.database_url}/{path}.json"

    def _params(self) -> dict:
        return {"auth": self.auth_token} if self.auth_token else {}

    async def _request(self, method: str, path: str, body: Any = None) -> Any:
        url = self._url(path)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                if body is None:
                    resp = await client.request(method, url, params=self._params())
                else:
                    resp = await client.request(method, url, params=self._params(), json=body)
        except httpx.HTTPError as e:
            logger.error(f"Firebase {method} {path} failed: {e}")
            raise SharedStoreError(f"Shared store unreachable: {e}")

        if resp.status_code >= 400:
            logger.error(f"Firebase {method} {path}: status={resp.status_code}")
            raise SharedStoreError(f"Shared store error (status {resp.status_code})")
        try:
            return resp.json()
        except ValueError:
            return None

    async def read(self, namespace: str, key: Optional[str] = None) -> Any:
        return await self._request("GET", build_path(namespace, key))

    async def write(self, namespace: str, key: str, value: Any) -> None:
        await self._request("PUT", build_path(namespace, key), value)

    async def delete(self, namespace: str, key: Optional[str] = None) -> None:
        await self._request("DELETE", build_path(namespace, key))

    async def push(self, namespace: str, value: Any) -> str:
        data = await self._request("POST", build_path(namespace), value)
        name = (data or {}).get("name")
        if not name:
            raise SharedStoreError("Shared store did not return a key for the new record")
        return name

    # ------------------------------------------
    # Live subscriptions (display counters only)
    # ------------------------------------------

    def subscribe(self, namespace: str, key: Optional[str], on_change: OnChange) -> Callable[[], None]:
        path = build_path(namespace, key)
        task = asyncio.get_running_loop().create_task(self._listen(path, on_change))

        def unsubscribe():
            task.cancel()

        return unsubscribe

    async def _listen(self, path: str, on_change: OnChange):
        url = self._url(path)
        try:
            async with httpx.AsyncClient(timeout=None, transport=self._transport) as client:
                async with client.stream(
                    "GET", url,
                    params=self._params(),
                    headers={"Accept": "text/event-stream"},
                    follow_redirects=True,
                ) as resp:
                    if resp.status_code >= 400:
                        logger.warning(f"Firebase stream for {path} refused: status={resp.status_code}")
                        return
                    event = None
                    async for line in resp.aiter_lines():
                        if line.startswith("event:"):
                            event = line[len("event:"):].strip()
                        elif line.startswith("data:"):
                            if event in ("put", "patch"):
                                on_change(await self.read(path))
                            elif event in ("cancel", "auth_revoked"):
                                logger.warning(f"Firebase stream for {path} closed by server: {event}")
                                return
        except asyncio.CancelledError:
            raise
        except (httpx.HTTPError, SharedStoreError, json.JSONDecodeError) as e:
            logger.warning(f"Firebase stream for {path} stopped: {e}")
