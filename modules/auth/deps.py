"""
Auth Module - Dependencies
===========================
FastAPI dependencies that resolve the session's cart manager and the
customer's cached bearer token. Injected into route handlers via Depends().

NOTE: The session cookie identifies the device; the token identifies the customer.
"""

from fastapi import Request, Response, Depends, HTTPException, status

from common.security import get_session_id, new_session_id, set_session_cookie, SessionToken
from modules.cart.service import CartManager, cart_registry


def get_registry():
    """Overridable in tests."""
    return cart_registry


async def get_cart_manager(request: Request, response: Response, registry=Depends(get_registry)) -> CartManager:
    """
    Cart manager for the session cookie.
    A first visit gets a fresh session id cookie.
    """
    session_id = get_session_id(request)
    if not session_id:
        session_id = new_session_id()
        set_session_cookie(response, session_id)
    request.state.session_id = session_id
    return await registry.get(session_id)


def get_current_token(manager: CartManager = Depends(get_cart_manager)):
    """Returns the cached SessionToken or None."""
    return manager.ctx.tokens.get_token()


def require_login(token=Depends(get_current_token)) -> SessionToken:
    """Require a signed-in customer. Raises 401 if not logged in."""
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="login_required")
    return token
