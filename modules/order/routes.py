"""
Order Routes
==============
Past orders of the signed-in customer: history, detail and cancellation.
"""

from fastapi import APIRouter, Depends

from common.security import SessionToken
from modules.auth.deps import require_login
from modules.order.service import order_service

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("")
async def list_orders(token: SessionToken = Depends(require_login)):
    orders = await order_service.list_orders(token)
    return {"orders": orders, "count": len(orders)}


@router.get("/{order_number}")
async def order_detail(order_number: str, token: SessionToken = Depends(require_login)):
    return {"order": await order_service.get_order(token, order_number)}


@router.post("/{order_number}/cancel")
async def cancel_order(order_number: str, token: SessionToken = Depends(require_login)):
    order = await order_service.cancel_order(token, order_number)
    return {"status": "cancelled", "order": order}
