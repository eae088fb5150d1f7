"""
Wishlist Routes
=================
List, toggle and remove saved products for the signed-in customer, and a
live stream of the header badge counts.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from common.security import SessionToken
from modules.auth.deps import get_cart_manager, require_login
from modules.cart.service import CartManager
from modules.wishlist.service import count_events, wishlist_service

router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])


class ToggleRequest(BaseModel):
    handle: str = Field(..., min_length=1)
    variant_id: Optional[str] = None


@router.get("")
async def list_wishlist(
    manager: CartManager = Depends(get_cart_manager),
    token: SessionToken = Depends(require_login),
):
    items = await wishlist_service.list_items(manager.ctx.shared, token)
    return {
        "items": [dict(record, productKey=key) for key, record in items.items()],
        "wishlist_count": len(items),
    }


@router.get("/counts/stream")
async def stream_counts(
    request: Request,
    manager: CartManager = Depends(get_cart_manager),
    token: SessionToken = Depends(require_login),
):
    """Server-Sent Events: {"cart": n, "wishlist": m} on every change."""
    events = count_events(manager.ctx.shared, token.customer_id, request.is_disconnected)
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{product_key}")
async def wishlist_status(
    product_key: str,
    manager: CartManager = Depends(get_cart_manager),
    token: SessionToken = Depends(require_login),
):
    saved = await wishlist_service.is_in_wishlist(manager.ctx.shared, token, product_key)
    return {"product_key": product_key, "in_wishlist": saved}


@router.post("/toggle")
async def toggle_wishlist(
    body: ToggleRequest,
    manager: CartManager = Depends(get_cart_manager),
    token: SessionToken = Depends(require_login),
):
    product = await manager.ctx.catalog.get_product(body.handle)
    saved = await wishlist_service.toggle(manager.ctx.shared, token, product, body.variant_id)
    return {"product_key": product.product_key, "in_wishlist": saved}


@router.delete("/{product_key}")
async def remove_from_wishlist(
    product_key: str,
    manager: CartManager = Depends(get_cart_manager),
    token: SessionToken = Depends(require_login),
):
    await wishlist_service.remove(manager.ctx.shared, token, product_key)
    return {"status": "success"}
