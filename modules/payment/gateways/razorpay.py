"""
Razorpay Gateway
=================
Orders API (REST/JSON, basic auth). The browser widget completes the payment;
verify_payment() checks the HMAC signature it hands back.
"""

import hashlib
import hmac
import httpx
import logging
from typing import Dict, Any

from config.settings import RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET, HTTP_TIMEOUT
from modules.payment.gateways import (
    BaseGateway, GatewayPaymentRequest, GatewayCreateResult,
    GatewayVerifyResult, register_gateway,
)

logger = logging.getLogger("misab.gateway.razorpay")

RAZORPAY_ORDERS_URL = "https://api.razorpay.com/v1/orders"


def expected_signature(order_id: str, payment_id: str, secret: str) -> str:
    msg = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


class RazorpayGateway(BaseGateway):
    name = "razorpay"
    label = "Razorpay"

    def __init__(self, key_id: str = None, key_secret: str = None, transport: httpx.BaseTransport = None):
        self.key_id = key_id if key_id is not None else RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else RAZORPAY_KEY_SECRET
        self._transport = transport

    def create_payment(self, req: GatewayPaymentRequest) -> GatewayCreateResult:
        if not self.key_id or not self.key_secret:
            return GatewayCreateResult(success=False, error_message="Payment gateway is not configured.")
        if req.amount_minor <= 0:
            return GatewayCreateResult(success=False, error_message="Amount must be positive.")

        try:
            with httpx.Client(timeout=HTTP_TIMEOUT, transport=self._transport) as client:
                resp = client.post(
                    RAZORPAY_ORDERS_URL,
                    auth=(self.key_id, self.key_secret),
                    json={
                        "amount": req.amount_minor,
                        "currency": req.currency,
                        "receipt": req.receipt,
                        "notes": {"description": req.description} if req.description else {},
                    },
                )
            data = resp.json()
            logger.info(f"Razorpay create [{req.receipt}]: status={resp.status_code} id={data.get('id')}")

            if resp.status_code < 400 and data.get("id"):
                return GatewayCreateResult(
                    success=True,
                    order_id=data["id"],
                    amount_minor=data.get("amount", req.amount_minor),
                    currency=data.get("currency", req.currency),
                    key_id=self.key_id,
                )
            msg = (data.get("error") or {}).get("description") or f"status {resp.status_code}"
            return GatewayCreateResult(success=False, error_message=f"Error creating order: {msg}")

        except httpx.TimeoutException:
            return GatewayCreateResult(success=False, error_message="Payment gateway did not respond. Please try again.")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Razorpay create failed: {e}")
            return GatewayCreateResult(success=False, error_message=f"Could not reach payment gateway: {e}")

    def verify_payment(self, params: Dict[str, Any]) -> GatewayVerifyResult:
        order_id = params.get("razorpay_order_id", "")
        payment_id = params.get("razorpay_payment_id", "")
        signature = params.get("razorpay_signature", "")

        if not order_id or not payment_id or not signature:
            return GatewayVerifyResult(success=False, error_message="Payment was cancelled or incomplete.")
        if not self.key_secret:
            return GatewayVerifyResult(success=False, error_message="Payment gateway is not configured.")

        expected = expected_signature(order_id, payment_id, self.key_secret)
        if not hmac.compare_digest(expected, signature):
            logger.warning(f"Razorpay signature mismatch for order {order_id}")
            return GatewayVerifyResult(success=False, error_message="Payment signature is invalid.")

        logger.info(f"Razorpay verify [{order_id}]: payment {payment_id} OK")
        return GatewayVerifyResult(success=True, payment_id=payment_id)


register_gateway(RazorpayGateway())
