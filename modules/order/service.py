"""
Order Module - Service Layer
===============================
Record a paid order with the commerce backend (Shopify Admin REST), and
let the signed-in customer browse and cancel their past orders.
Fulfilment stays with Shopify.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from common.exceptions import (
    ConfigurationError, NotFoundError, OrderCreationError, OrderHistoryError, StorefrontError,
    UnauthenticatedError,
)
from common.helpers import now_utc, safe_int, strip_gid
from common.security import SessionToken
from modules.cart.models import Cart
from modules.shopify.client import ShopifyAdminClient, ShopifyClient

logger = logging.getLogger("misab.order")

CUSTOMER_ORDERS = """
  query customerOrders($customerAccessToken: String!, $first: Int!) {
    customer(customerAccessToken: $customerAccessToken) {
      orders(first: $first, sortKey: PROCESSED_AT, reverse: true) {
        edges {
          node {
            id
            name
            orderNumber
            processedAt
            canceledAt
            financialStatus
            fulfillmentStatus
            totalPriceV2 { amount currencyCode }
            shippingAddress { address1 address2 city province zip country }
            successfulFulfillments(first: 10) {
              trackingCompany
              trackingInfo { number url }
            }
            lineItems(first: 50) {
              edges {
                node {
                  title
                  quantity
                  variant {
                    image { url }
                    price { amount currencyCode }
                  }
                }
              }
            }
          }
        }
      }
    }
  }
"""

HISTORY_PAGE = 20
DETAIL_SCAN = 100


@dataclass
class CustomerDetails:
    first_name: str
    last_name: str
    email: str
    address1: str = ""
    address2: str = ""
    city: str = ""
    province: str = ""
    zip: str = ""
    country: str = ""
    phone: str = ""

    def address(self) -> Dict[str, str]:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "address1": self.address1,
            "address2": self.address2,
            "city": self.city,
            "province": self.province,
            "zip": self.zip,
            "country": self.country,
            "phone": self.phone,
        }


def build_line_items(cart: Cart) -> List[Dict[str, Any]]:
    """Order line items from cart lines. Every line must carry a numeric variant id."""
    items = []
    for key, line in cart.lines.items():
        variant_id = safe_int(strip_gid(line.variant_id or ""))
        if variant_id is None:
            raise OrderCreationError(f"Cart line '{line.title or key}' has no variant")
        items.append({
            "variant_id": variant_id,
            "quantity": line.quantity,
            "price": line.unit_price,
            "title": line.title,
            "requires_shipping": True,
            "taxable": True,
        })
    return items


def _money(value: Optional[dict]) -> Dict[str, str]:
    value = value or {}
    return {"amount": value.get("amount") or "0", "currency": value.get("currencyCode") or ""}


def order_summary(node: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten an order node from the customer orders query."""
    items = []
    for edge in (node.get("lineItems") or {}).get("edges") or []:
        item = edge.get("node") or {}
        variant = item.get("variant") or {}
        price = _money(variant.get("price"))
        items.append({
            "title": item.get("title") or "",
            "quantity": item.get("quantity") or 0,
            "image": (variant.get("image") or {}).get("url"),
            "price": price["amount"],
            "currency": price["currency"],
        })

    tracking = []
    for fulfillment in node.get("successfulFulfillments") or []:
        for info in fulfillment.get("trackingInfo") or []:
            tracking.append({
                "company": fulfillment.get("trackingCompany"),
                "number": info.get("number"),
                "url": info.get("url"),
            })

    return {
        "id": node.get("id"),
        "name": node.get("name"),
        "order_number": node.get("orderNumber"),
        "processed_at": node.get("processedAt"),
        "canceled_at": node.get("canceledAt"),
        "financial_status": node.get("financialStatus"),
        "fulfillment_status": node.get("fulfillmentStatus"),
        "total": _money(node.get("totalPriceV2")),
        "shipping_address": node.get("shippingAddress"),
        "tracking": tracking,
        "line_items": items,
    }


class OrderService:

    def __init__(self, admin: ShopifyAdminClient = None, client: ShopifyClient = None):
        self.admin = admin or ShopifyAdminClient()
        self.client = client or ShopifyClient()

    async def create_order(
        self,
        cart: Cart,
        payment_ref: str,
        amount: Decimal,
        currency: str,
        customer: CustomerDetails,
        gateway: str = "Razorpay",
    ) -> str:
        """Submit a paid order. Returns the backend order id."""
        if cart.is_empty:
            raise OrderCreationError("Cart is empty")

        address = customer.address()
        body = {
            "order": {
                "email": customer.email,
                "financial_status": "paid",
                "line_items": build_line_items(cart),
                "customer": {
                    "first_name": customer.first_name,
                    "last_name": customer.last_name,
                    "email": customer.email,
                },
                "shipping_address": address,
                "billing_address": address,
                "total_price": str(amount),
                "currency": currency,
                "discount_codes": (
                    [{"code": cart.applied_discount_code, "amount": str(cart.cost.discount), "type": "fixed_amount"}]
                    if cart.applied_discount_code and cart.cost and cart.cost.discount is not None else []
                ),
                "transactions": [{
                    "kind": "sale",
                    "status": "success",
                    "amount": str(amount),
                    "gateway": gateway,
                    "authorization": payment_ref,
                }],
                "note": f"Payment ID: {payment_ref}",
            }
        }

        try:
            data = await self.admin.post("orders.json", body)
        except StorefrontError as e:
            logger.error(f"Order creation failed for payment {payment_ref}: {e.message}")
            raise OrderCreationError(f"Failed to create order: {e.message}")

        order_id = (data.get("order") or {}).get("id")
        if not order_id:
            raise OrderCreationError("Order response did not include an id")
        logger.info(f"Order {order_id} created for payment {payment_ref}")
        return str(order_id)

    # ------------------------------------------
    # Order history (customer token, Storefront API)
    # ------------------------------------------

    async def _customer_orders(self, token: SessionToken, first: int) -> List[Dict[str, Any]]:
        try:
            data = await self.client.execute(
                CUSTOMER_ORDERS, {"customerAccessToken": token.access_token, "first": first},
            )
        except ConfigurationError:
            raise
        except StorefrontError as e:
            logger.error(f"Order history for customer {token.customer_id} failed: {e.message}")
            raise OrderHistoryError(f"Failed to fetch orders: {e.message}")

        customer = data.get("customer")
        if customer is None:
            # Expired or revoked customer access token
            raise UnauthenticatedError()
        edges = (customer.get("orders") or {}).get("edges") or []
        return [order_summary(e["node"]) for e in edges if e.get("node")]

    async def list_orders(self, token: SessionToken) -> List[Dict[str, Any]]:
        """Most recent orders first."""
        return await self._customer_orders(token, HISTORY_PAGE)

    async def get_order(self, token: SessionToken, order_number: str) -> Dict[str, Any]:
        wanted = str(order_number).strip().lstrip("#")
        if not wanted:
            raise NotFoundError("Order not found")
        for order in await self._customer_orders(token, DETAIL_SCAN):
            if str(order["order_number"]) == wanted:
                return order
        raise NotFoundError("Order not found")

    async def cancel_order(self, token: SessionToken, order_number: str) -> Dict[str, Any]:
        """
        Cancel one of the customer's own orders through the Admin API.
        Ownership is checked by finding the order in the customer's history.
        """
        order = await self.get_order(token, order_number)
        if order["canceled_at"]:
            raise StorefrontError("Order is already cancelled")
        if order["fulfillment_status"] == "FULFILLED":
            raise StorefrontError("Fulfilled orders cannot be cancelled")

        admin_id = strip_gid(order["id"] or "").split("?")[0]
        try:
            data = await self.admin.post(f"orders/{admin_id}/cancel.json", {})
        except ConfigurationError:
            raise
        except StorefrontError as e:
            logger.error(f"Cancelling order {order_number} failed: {e.message}")
            raise OrderHistoryError(f"Failed to cancel order: {e.message}")

        logger.info(f"Order {order_number} cancelled by customer {token.customer_id}")
        cancelled = (data or {}).get("order") or {}
        order["canceled_at"] = cancelled.get("cancelled_at") or now_utc().isoformat()
        return order


# Singleton
order_service = OrderService()
