"""
Misab Storefront - Security Utilities
=======================================
Session cookie ids and the cached bearer token of the signed-in customer.

NOTE: Authentication itself belongs to the identity service. This module only
stores the opaque credentials it hands back and reads them for the cart core.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import Request, Response

from config.settings import SESSION_COOKIE, COOKIE_SECURE, COOKIE_SAMESITE
from common.helpers import extract_customer_id
from common.storage import KeyValueStore

logger = logging.getLogger("misab.security")

TOKEN_KEY = "usertoken"


# ==========================================
# Session Cookie
# ==========================================

def new_session_id() -> str:
    return secrets.token_urlsafe(24)


def get_session_id(request: Request) -> Optional[str]:
    return request.cookies.get(SESSION_COOKIE)


def set_session_cookie(response: Response, session_id: str):
    response.set_cookie(
        SESSION_COOKIE, session_id,
        httponly=True, secure=COOKIE_SECURE, samesite=COOKIE_SAMESITE,
        max_age=60 * 60 * 24 * 30,
    )


# ==========================================
# Token Store
# ==========================================

@dataclass
class SessionToken:
    access_token: str
    user_id: str
    email: str = ""

    @property
    def customer_id(self) -> str:
        """Shared-store namespace of this customer."""
        return extract_customer_id(self.user_id)


class TokenStore:
    """Reads and writes the customer's bearer token in the local cache."""

    def __init__(self, local: KeyValueStore):
        self.local = local

    def get_token(self) -> Optional[SessionToken]:
        data = self.local.get_json(TOKEN_KEY)
        if not isinstance(data, dict):
            return None
        access_token = data.get("accessToken")
        user_id = data.get("userId")
        if not access_token or not user_id:
            return None
        return SessionToken(
            access_token=str(access_token),
            user_id=str(user_id),
            email=str(data.get("email") or ""),
        )

    def set_token(self, access_token: str, user_id: str, email: str = ""):
        self.local.set_json(TOKEN_KEY, {
            "accessToken": access_token,
            "userId": user_id,
            "email": email,
        })
        logger.info(f"Stored token for customer {extract_customer_id(user_id)}")

    def clear(self):
        self.local.delete(TOKEN_KEY)
