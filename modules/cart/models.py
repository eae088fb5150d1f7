"""
Cart Module - Models
=====================
In-memory cart aggregate shared by the local cache, the shared store and the
remote cart. Records serialise with the storefront's field names
(title/image/price/quantity/handle/variantId/selectedOptions).
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional

from common.helpers import parse_decimal, safe_int


@dataclass
class CartLine:
    product_key: str
    quantity: int
    title: str = ""
    image_url: str = ""
    handle: str = ""
    unit_price: str = ""
    variant_id: Optional[str] = None
    selected_options: List[Dict[str, str]] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "image": self.image_url,
            "price": self.unit_price,
            "quantity": self.quantity,
            "handle": self.handle,
            "variantId": self.variant_id or "",
            "selectedOptions": list(self.selected_options),
        }

    @classmethod
    def from_record(cls, product_key: str, record: Dict[str, Any]) -> Optional["CartLine"]:
        """Build a line from a stored record. Returns None for unusable records."""
        if not isinstance(record, dict):
            return None
        quantity = safe_int(record.get("quantity"))
        if quantity is None or quantity <= 0:
            return None
        options = record.get("selectedOptions")
        return cls(
            product_key=str(product_key),
            quantity=quantity,
            title=str(record.get("title") or ""),
            image_url=str(record.get("image") or ""),
            handle=str(record.get("handle") or ""),
            unit_price=str(record.get("price") or ""),
            variant_id=record.get("variantId") or None,
            selected_options=options if isinstance(options, list) else [],
        )

    def copy(self, **changes) -> "CartLine":
        changes.setdefault("selected_options", list(self.selected_options))
        return replace(self, **changes)


@dataclass
class CartCost:
    subtotal: Decimal
    total: Decimal
    currency: str
    discount: Optional[Decimal] = None
    tax: Optional[Decimal] = None

    def to_record(self) -> Dict[str, Any]:
        data = {
            "subtotal": str(self.subtotal),
            "total": str(self.total),
            "currency": self.currency,
        }
        if self.discount is not None:
            data["discount"] = str(self.discount)
        if self.tax is not None:
            data["tax"] = str(self.tax)
        return data

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Optional["CartCost"]:
        if not isinstance(record, dict):
            return None
        subtotal = parse_decimal(record.get("subtotal"))
        total = parse_decimal(record.get("total"))
        if subtotal is None or total is None:
            return None
        return cls(
            subtotal=subtotal,
            total=total,
            currency=str(record.get("currency") or ""),
            discount=parse_decimal(record.get("discount")),
            tax=parse_decimal(record.get("tax")),
        )

    @classmethod
    def from_shopify(cls, cost: Dict[str, Any]) -> Optional["CartCost"]:
        """Parse a Storefront `cost { subtotalAmount totalAmount totalTaxAmount }` block."""
        if not isinstance(cost, dict):
            return None
        sub = cost.get("subtotalAmount") or {}
        tot = cost.get("totalAmount") or {}
        tax = cost.get("totalTaxAmount") or {}
        subtotal = parse_decimal(sub.get("amount"))
        total = parse_decimal(tot.get("amount"))
        if subtotal is None or total is None:
            return None
        return cls(
            subtotal=subtotal,
            total=total,
            currency=sub.get("currencyCode") or tot.get("currencyCode") or "",
            tax=parse_decimal(tax.get("amount")),
        )


@dataclass
class Cart:
    lines: Dict[str, CartLine] = field(default_factory=dict)
    remote_cart_id: Optional[str] = None
    applied_discount_code: Optional[str] = None
    cost: Optional[CartCost] = None
    cost_stale: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def records(self) -> Dict[str, Dict[str, Any]]:
        return {key: line.to_record() for key, line in self.lines.items()}


@dataclass
class DiscountCode:
    code: str
    applicable: bool


@dataclass
class RemoteCartSnapshot:
    """Result of a bulk add: authoritative cost plus the remote line ids."""
    cost: Optional[CartCost]
    line_ids: List[str] = field(default_factory=list)


@dataclass
class DiscountResult:
    cost: Optional[CartCost]
    codes: List[DiscountCode] = field(default_factory=list)
    user_errors: List[str] = field(default_factory=list)


@dataclass
class SyncResult:
    sequence: int
    applied: bool
    synced_lines: int = 0
    warnings: List[str] = field(default_factory=list)


@dataclass
class MutationResult:
    """
    Outcome of a cart edit. The local mapping is always updated; remote phases
    report here instead of raising.
    """
    cart: Cart
    warnings: List[str] = field(default_factory=list)
    remote_error: Optional[Exception] = None

    @property
    def synced(self) -> bool:
        return self.remote_error is None
