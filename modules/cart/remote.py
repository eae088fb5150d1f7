"""
Cart Module - Remote Cart Service
===================================
Session-scoped priced cart hosted by the commerce backend.
The engine only depends on RemoteCartService; ShopifyRemoteCart talks to the
Storefront API cart mutations.
"""

import logging
from typing import List, Sequence, Tuple

from common.exceptions import RemoteSyncError
from modules.cart.models import CartCost, DiscountCode, DiscountResult, RemoteCartSnapshot
from modules.shopify.client import ShopifyClient, ShopifyError

logger = logging.getLogger("misab.cart.remote")


class RemoteCartNotFound(RemoteSyncError):
    """The stored cart id is unknown to the backend (expired or purged)."""


_COST_FIELDS = """
        cost {
          subtotalAmount { amount currencyCode }
          totalAmount { amount currencyCode }
          totalTaxAmount { amount currencyCode }
        }
"""

CREATE_CART = """
  mutation createCart {
    cartCreate {
      cart { id }
      userErrors { field message }
    }
  }
"""

GET_CART_LINES = """
  query getCart($cartId: ID!, $after: String) {
    cart(id: $cartId) {
      id
      lines(first: 100, after: $after) {
        pageInfo { hasNextPage endCursor }
        edges { node { id } }
      }
    }
  }
"""

REMOVE_LINES = """
  mutation cartLinesRemove($cartId: ID!, $lineIds: [ID!]!) {
    cartLinesRemove(cartId: $cartId, lineIds: $lineIds) {
      cart { id }
      userErrors { field message }
    }
  }
"""

ADD_LINES = """
  mutation cartLinesAdd($cartId: ID!, $lines: [CartLineInput!]!) {
    cartLinesAdd(cartId: $cartId, lines: $lines) {
      cart {
        id
%s
        # First page only; line ids are informational here
        lines(first: 100) {
          edges { node { id quantity merchandise { ... on ProductVariant { id } } } }
        }
      }
      userErrors { field message }
    }
  }
""" % _COST_FIELDS

UPDATE_DISCOUNT_CODES = """
  mutation cartDiscountCodesUpdate($cartId: ID!, $discountCodes: [String!]) {
    cartDiscountCodesUpdate(cartId: $cartId, discountCodes: $discountCodes) {
      cart {
        id
        discountCodes { code applicable }
%s
      }
      userErrors { field message }
    }
  }
""" % _COST_FIELDS


class RemoteCartService:
    """Abstract remote cart interface."""

    async def create_cart(self) -> str:
        raise NotImplementedError

    async def list_lines(self, cart_id: str) -> List[str]:
        raise NotImplementedError

    async def remove_lines(self, cart_id: str, line_ids: Sequence[str]) -> None:
        raise NotImplementedError

    async def add_lines(self, cart_id: str, lines: Sequence[Tuple[str, int]]) -> RemoteCartSnapshot:
        raise NotImplementedError

    async def set_discount_codes(self, cart_id: str, codes: Sequence[str]) -> DiscountResult:
        raise NotImplementedError


def _user_errors(payload: dict) -> List[str]:
    return [e.get("message", "") for e in (payload.get("userErrors") or []) if e]


def _mentions_cart_id(payload: dict) -> bool:
    """A userError pointing at the cartId argument means the cart is gone."""
    return any("cartId" in (e.get("field") or []) for e in payload.get("userErrors") or [] if e)


class ShopifyRemoteCart(RemoteCartService):

    def __init__(self, client: ShopifyClient = None):
        self.client = client or ShopifyClient()

    async def _run(self, query: str, variables: dict = None) -> dict:
        try:
            return await self.client.execute(query, variables)
        except ShopifyError as e:
            raise RemoteSyncError(e.message)

    async def create_cart(self) -> str:
        data = await self._run(CREATE_CART)
        payload = data.get("cartCreate") or {}
        cart = payload.get("cart") or {}
        if not cart.get("id"):
            errors = _user_errors(payload)
            raise RemoteSyncError(errors[0] if errors else "Failed to create cart")
        logger.info(f"Created remote cart {cart['id']}")
        return cart["id"]

    async def list_lines(self, cart_id: str) -> List[str]:
        """Every line id of the cart, following the connection's pages."""
        line_ids: List[str] = []
        after = None
        while True:
            data = await self._run(GET_CART_LINES, {"cartId": cart_id, "after": after})
            cart = data.get("cart")
            if not cart:
                raise RemoteCartNotFound(f"Remote cart {cart_id} not found")
            lines = cart.get("lines") or {}
            edges = lines.get("edges") or []
            line_ids.extend(e["node"]["id"] for e in edges if e.get("node", {}).get("id"))
            page = lines.get("pageInfo") or {}
            if not page.get("hasNextPage") or not page.get("endCursor"):
                return line_ids
            after = page["endCursor"]

    async def remove_lines(self, cart_id: str, line_ids: Sequence[str]) -> None:
        if not line_ids:
            return
        data = await self._run(REMOVE_LINES, {"cartId": cart_id, "lineIds": list(line_ids)})
        errors = _user_errors(data.get("cartLinesRemove") or {})
        if errors:
            raise RemoteSyncError(errors[0])

    async def add_lines(self, cart_id: str, lines: Sequence[Tuple[str, int]]) -> RemoteCartSnapshot:
        variables = {
            "cartId": cart_id,
            "lines": [{"merchandiseId": vid, "quantity": int(qty)} for vid, qty in lines],
        }
        data = await self._run(ADD_LINES, variables)
        payload = data.get("cartLinesAdd") or {}
        cart = payload.get("cart")
        if not cart:
            errors = _user_errors(payload)
            raise RemoteSyncError(errors[0] if errors else "Failed to add cart lines")
        edges = (cart.get("lines") or {}).get("edges") or []
        return RemoteCartSnapshot(
            cost=CartCost.from_shopify(cart.get("cost")),
            line_ids=[e["node"]["id"] for e in edges if e.get("node")],
        )

    async def set_discount_codes(self, cart_id: str, codes: Sequence[str]) -> DiscountResult:
        try:
            data = await self.client.execute(
                UPDATE_DISCOUNT_CODES, {"cartId": cart_id, "discountCodes": list(codes)},
            )
        except ShopifyError as e:
            if e.graphql:
                return DiscountResult(cost=None, user_errors=[e.message])
            raise RemoteSyncError(e.message)
        payload = data.get("cartDiscountCodesUpdate") or {}
        cart = payload.get("cart") or {}
        if not cart and _mentions_cart_id(payload):
            raise RemoteCartNotFound(f"Remote cart {cart_id} not found")
        return DiscountResult(
            cost=CartCost.from_shopify(cart.get("cost")),
            codes=[
                DiscountCode(code=c.get("code", ""), applicable=bool(c.get("applicable")))
                for c in cart.get("discountCodes") or []
            ],
            user_errors=_user_errors(payload),
        )
