"""
Catalog Module - Service Layer
================================
Product and variant lookup against the Storefront API.
Callers depend on CatalogService; ShopifyCatalog is the production backend.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from common.exceptions import NotFoundError
from common.helpers import strip_gid
from modules.shopify.client import ShopifyClient

logger = logging.getLogger("misab.catalog")


GET_PRODUCT_BY_HANDLE = """
  query getProductByHandle($handle: String!) {
    product(handle: $handle) {
      id
      title
      handle
      images(first: 1) {
        edges { node { url } }
      }
      variants(first: 25) {
        edges {
          node {
            id
            availableForSale
            price { amount currencyCode }
            selectedOptions { name value }
          }
        }
      }
    }
  }
"""


@dataclass
class VariantOption:
    id: str
    price: str
    currency: str = ""
    available: bool = True
    selected_options: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class ProductInfo:
    id: str
    title: str
    handle: str
    image_url: str = ""
    variants: List[VariantOption] = field(default_factory=list)

    @property
    def product_key(self) -> str:
        """Cart/wishlist key: the global id without its namespace."""
        return strip_gid(self.id)

    def variant(self, variant_id: Optional[str] = None) -> Optional[VariantOption]:
        """Requested variant, or the first one when no id is given."""
        if variant_id:
            for v in self.variants:
                if v.id == variant_id or strip_gid(v.id) == strip_gid(variant_id):
                    return v
            return None
        return self.variants[0] if self.variants else None


class CatalogService:
    """Abstract catalog interface."""

    async def get_product(self, handle: str) -> ProductInfo:
        raise NotImplementedError

    async def lookup_variant(self, handle: str) -> str:
        """Default variant id for a product handle. Raises NotFoundError."""
        product = await self.get_product(handle)
        variant = product.variant()
        if not variant:
            raise NotFoundError(f"No variant found for '{handle}'")
        return variant.id


class ShopifyCatalog(CatalogService):

    def __init__(self, client: ShopifyClient = None):
        self.client = client or ShopifyClient()

    async def get_product(self, handle: str) -> ProductInfo:
        if not handle:
            raise NotFoundError("Product handle is empty")

        data = await self.client.execute(GET_PRODUCT_BY_HANDLE, {"handle": handle})
        node = data.get("product")
        if not node:
            raise NotFoundError(f"Product not found: {handle}")

        images = (node.get("images") or {}).get("edges") or []
        image_url = images[0]["node"].get("url", "") if images else ""

        variants = []
        for edge in (node.get("variants") or {}).get("edges") or []:
            v = edge.get("node") or {}
            price = v.get("price") or {}
            variants.append(VariantOption(
                id=v.get("id", ""),
                price=str(price.get("amount") or ""),
                currency=price.get("currencyCode") or "",
                available=v.get("availableForSale", True),
                selected_options=v.get("selectedOptions") or [],
            ))

        return ProductInfo(
            id=node.get("id", ""),
            title=node.get("title", ""),
            handle=node.get("handle") or handle,
            image_url=image_url,
            variants=variants,
        )
