"""
Misab Storefront - Shared Helpers
===================================
Pure utility functions with NO database or module dependencies.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional


CUSTOMER_GID_PREFIX = "gid://shopify/Customer/"

_NON_NUMERIC = re.compile(r"[^0-9.\-]+")
_CENTS = Decimal("0.01")


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def safe_int(value) -> Optional[int]:
    """Safely convert a value to int. Returns None on failure."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return None


def parse_decimal(value) -> Optional[Decimal]:
    """
    Parse a display price ("₹1,299.00", "10.00", 5) into a Decimal.
    Formatting characters are stripped first. Returns None when nothing
    numeric is left.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    cleaned = _NON_NUMERIC.sub("", str(value))
    if not cleaned:
        return None
    try:
        result = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not result.is_finite():
        return None
    return result


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP)


def strip_gid(global_id: str) -> str:
    """'gid://shopify/Product/123' -> '123'. Plain ids pass through."""
    if not global_id:
        return ""
    return str(global_id).rstrip("/").split("/")[-1]


def extract_customer_id(user_id: str) -> str:
    """Strip the Shopify customer namespace from a user id."""
    if user_id and CUSTOMER_GID_PREFIX in user_id:
        return user_id.replace(CUSTOMER_GID_PREFIX, "")
    return user_id
