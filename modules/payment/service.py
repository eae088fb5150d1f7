"""
Payment Service
=================
Checkout hand-off: price the cart, open a gateway order, and after the
gateway reports success create the backend order and only then clear the cart.
A failed payment or order creation never touches the cart.
"""

import logging
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict

from common.exceptions import (
    ConfigurationError, OrderCreationError, PaymentFailedError, RemoteSyncError,
)
from modules.cart.totals import compute_totals
from modules.order.service import CustomerDetails, OrderService, order_service

# Import gateway modules to trigger register_gateway() calls
from modules.payment.gateways import get_gateway, GatewayPaymentRequest  # noqa: F401
import modules.payment.gateways.razorpay  # noqa: F401

logger = logging.getLogger("misab.payment")

DEFAULT_GATEWAY = "razorpay"


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentService:

    def __init__(self, orders: OrderService = None, gateway_name: str = DEFAULT_GATEWAY):
        self.orders = orders or order_service
        self.gateway_name = gateway_name

    def _gateway(self):
        gateway = get_gateway(self.gateway_name)
        if gateway is None:
            raise PaymentFailedError(f"Payment gateway '{self.gateway_name}' is not available")
        return gateway

    # ==========================================
    # 🏦 Start: create gateway order
    # ==========================================

    async def start_checkout(self, manager) -> Dict[str, Any]:
        manager.require_token()
        if manager.cart.is_empty:
            raise PaymentFailedError("Your cart is empty")

        if manager.cart.cost is None or manager.cart.cost_stale:
            try:
                await manager.resync()
            except (RemoteSyncError, ConfigurationError) as e:
                logger.warning(f"Checkout continues with local total, sync failed: {e.message}")

        totals = compute_totals(manager.cart)
        req = GatewayPaymentRequest(
            amount_minor=to_minor_units(totals.total),
            currency=totals.currency,
            receipt=f"receipt_{int(time.time() * 1000)}",
            description=f"{len(manager.cart.lines)} items",
        )
        result = self._gateway().create_payment(req)
        if not result.success:
            logger.error(f"Gateway order failed [{req.receipt}]: {result.error_message}")
            raise PaymentFailedError(result.error_message or "Error creating order")

        return {
            "gateway": self.gateway_name,
            "order_id": result.order_id,
            "amount": result.amount_minor,
            "currency": result.currency,
            "key_id": result.key_id,
            "total": str(totals.total),
            "authoritative": totals.authoritative,
        }

    # ==========================================
    # ✅ Complete: verify → create order → clear cart
    # ==========================================

    async def complete_checkout(self, manager, params: Dict[str, Any], customer: CustomerDetails) -> Dict[str, Any]:
        manager.require_token()

        verify = self._gateway().verify_payment(params)
        if not verify.success:
            raise PaymentFailedError(verify.error_message or "Payment failed")

        totals = compute_totals(manager.cart)
        try:
            order_id = await self.orders.create_order(
                manager.cart,
                payment_ref=verify.payment_id,
                amount=totals.total,
                currency=totals.currency,
                customer=customer,
                gateway=self._gateway().label,
            )
        except OrderCreationError:
            logger.error(f"Payment {verify.payment_id} captured but order creation failed; cart kept")
            raise

        await manager.clear()
        logger.info(f"Checkout complete: order {order_id}, payment {verify.payment_id}")
        return {"success": True, "order_id": order_id, "payment_id": verify.payment_id}


# Singleton
payment_service = PaymentService()
