"""
Payment Gateway Abstraction
=============================
Each gateway implements create_payment() and verify_payment().
Registry pattern for gateway lookup by name.
"""

import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass

logger = logging.getLogger("misab.gateway")


@dataclass
class GatewayPaymentRequest:
    """Input for creating a payment."""
    amount_minor: int       # smallest currency unit (paise for INR)
    currency: str
    receipt: str            # our reference, echoed back by the gateway
    description: str = ""


@dataclass
class GatewayCreateResult:
    """Result of create_payment()."""
    success: bool
    order_id: Optional[str] = None
    amount_minor: Optional[int] = None
    currency: Optional[str] = None
    key_id: Optional[str] = None    # public key for the browser checkout widget
    error_message: Optional[str] = None


@dataclass
class GatewayVerifyResult:
    """Result of verify_payment()."""
    success: bool
    payment_id: Optional[str] = None
    error_message: Optional[str] = None


class BaseGateway:
    """Abstract gateway interface."""
    name: str = ""
    label: str = ""

    def create_payment(self, req: GatewayPaymentRequest) -> GatewayCreateResult:
        raise NotImplementedError

    def verify_payment(self, params: Dict[str, Any]) -> GatewayVerifyResult:
        raise NotImplementedError


# ── Registry ──

_GATEWAYS: Dict[str, BaseGateway] = {}


def register_gateway(gw: BaseGateway):
    _GATEWAYS[gw.name] = gw


def get_gateway(name: str) -> Optional[BaseGateway]:
    return _GATEWAYS.get(name)
