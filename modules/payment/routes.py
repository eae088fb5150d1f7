"""
Payment Routes
================
Checkout start (gateway order for the cart total) and completion callback
(signature check → order creation → cart cleared).
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from modules.auth.deps import get_cart_manager
from modules.cart.service import CartManager
from modules.order.service import CustomerDetails
from modules.payment.service import payment_service

router = APIRouter(prefix="/api/checkout", tags=["payment"])


class ShippingDetails(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = ""
    email: str = Field(..., min_length=3)
    address1: str = ""
    address2: str = ""
    city: str = ""
    province: str = ""
    zip: str = ""
    country: str = ""
    phone: str = ""


class CompleteRequest(BaseModel):
    razorpay_order_id: str = ""
    razorpay_payment_id: str = ""
    razorpay_signature: str = ""
    customer: ShippingDetails


@router.post("/start")
async def start_checkout(manager: CartManager = Depends(get_cart_manager)):
    return await payment_service.start_checkout(manager)


@router.post("/complete")
async def complete_checkout(body: CompleteRequest, manager: CartManager = Depends(get_cart_manager)):
    params = {
        "razorpay_order_id": body.razorpay_order_id,
        "razorpay_payment_id": body.razorpay_payment_id,
        "razorpay_signature": body.razorpay_signature,
    }
    customer = CustomerDetails(**body.customer.model_dump())
    return await payment_service.complete_checkout(manager, params, customer)
