"""
Coupon Routes - Customer Facing
==================================
Apply / remove the cart's discount code.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from modules.auth.deps import get_cart_manager
from modules.cart.service import CartManager
from modules.coupon.service import coupon_service

router = APIRouter(prefix="/api/coupon", tags=["coupon"])


class CouponRequest(BaseModel):
    code: str = ""


@router.post("/apply")
async def apply_coupon(body: CouponRequest, manager: CartManager = Depends(get_cart_manager)):
    """Rejections surface as 422 with the backend's message."""
    await coupon_service.apply_code(manager, body.code)
    return manager.summary()


@router.delete("")
async def remove_coupon(manager: CartManager = Depends(get_cart_manager)):
    await coupon_service.remove_code(manager)
    return manager.summary()
