"""
Auth Routes
=============
Token hand-off from the identity service. Signing in stores the customer's
bearer token in the session cache and re-seeds the cart from the shared store.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from modules.auth.deps import get_cart_manager, get_current_token
from modules.cart.service import CartManager

logger = logging.getLogger("misab.auth")

router = APIRouter(prefix="/api/session", tags=["auth"])


class TokenRequest(BaseModel):
    access_token: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    email: str = Field("", max_length=254)


@router.post("/token")
async def store_token(
    body: TokenRequest,
    manager: CartManager = Depends(get_cart_manager),
):
    manager.ctx.tokens.set_token(body.access_token, body.user_id, body.email)
    await manager.load()
    token = manager.ctx.tokens.get_token()
    return {"status": "success", "customer_id": token.customer_id, "cart": manager.summary()}


@router.get("/token")
async def token_status(token=Depends(get_current_token)):
    if not token:
        return {"authenticated": False}
    return {"authenticated": True, "customer_id": token.customer_id, "email": token.email}


@router.delete("/token")
async def sign_out(manager: CartManager = Depends(get_cart_manager)):
    token = manager.ctx.tokens.get_token()
    manager.ctx.tokens.clear()
    if token:
        logger.info(f"Customer {token.customer_id} signed out")
    return {"status": "success"}
