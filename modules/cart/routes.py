"""
Cart Routes
=============
Cart view, item add / quantity / remove, manual resync, header counters.

Edits always succeed locally; a failed mirror or remote sync is reported in
the response (`synced`, `remote_error`, `warnings`) next to the local cart.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from modules.auth.deps import get_cart_manager
from modules.cart.models import MutationResult
from modules.cart.service import CartManager

router = APIRouter(prefix="/api/cart", tags=["cart"])


# ==========================================
# Schemas
# ==========================================

class AddItemRequest(BaseModel):
    handle: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
    variant_id: Optional[str] = None


class QuantityRequest(BaseModel):
    quantity: int


def mutation_response(manager: CartManager, result: MutationResult) -> dict:
    data = manager.summary()
    data["synced"] = result.synced
    data["warnings"] = result.warnings
    data["remote_error"] = (
        {"error": type(result.remote_error).__name__, "detail": getattr(result.remote_error, "message", str(result.remote_error))}
        if result.remote_error else None
    )
    return data


# ==========================================
# 🛒 View Cart
# ==========================================

@router.get("")
async def view_cart(manager: CartManager = Depends(get_cart_manager)):
    return manager.summary()


@router.get("/count")
async def cart_count(manager: CartManager = Depends(get_cart_manager)):
    return {"cart_count": manager.summary()["item_count"]}


# ==========================================
# ➕➖ Update Cart
# ==========================================

@router.post("/items")
async def add_item(body: AddItemRequest, manager: CartManager = Depends(get_cart_manager)):
    result = await manager.add_product(body.handle, body.quantity, body.variant_id)
    return mutation_response(manager, result)


@router.patch("/items/{product_key}")
async def update_quantity(product_key: str, body: QuantityRequest, manager: CartManager = Depends(get_cart_manager)):
    result = await manager.set_quantity(product_key, body.quantity)
    return mutation_response(manager, result)


@router.delete("/items/{product_key}")
async def remove_item(product_key: str, manager: CartManager = Depends(get_cart_manager)):
    result = await manager.remove_line(product_key)
    return mutation_response(manager, result)


# ==========================================
# 🔄 Manual Resync
# ==========================================

@router.post("/sync")
async def resync_cart(manager: CartManager = Depends(get_cart_manager)):
    sync = await manager.resync()
    data = manager.summary()
    data["sync"] = {
        "sequence": sync.sequence,
        "applied": sync.applied,
        "synced_lines": sync.synced_lines,
        "warnings": sync.warnings,
    }
    return data
