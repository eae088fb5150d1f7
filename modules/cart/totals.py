"""
Cart Module - Derived Totals
==============================
Pure price math over a Cart. No I/O; always re-derivable from local state.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from config.settings import DEFAULT_CURRENCY
from common.helpers import parse_decimal, quantize_money
from modules.cart.models import Cart, CartLine

ZERO = Decimal("0")


@dataclass
class CartTotals:
    subtotal: Decimal
    total: Decimal
    currency: str
    discount: Optional[Decimal] = None
    authoritative: bool = False
    unpriced: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount) if self.discount is not None else None,
            "total": str(self.total),
            "currency": self.currency,
            "authoritative": self.authoritative,
            "unpriced": self.unpriced,
        }


def line_total(line: CartLine) -> Decimal:
    """Unit price × quantity; 0 when the price cannot be parsed."""
    price = parse_decimal(line.unit_price)
    if price is None:
        return ZERO
    return price * line.quantity


def unpriced_lines(cart: Cart) -> List[str]:
    return [key for key, line in cart.lines.items() if parse_decimal(line.unit_price) is None]


def cart_subtotal(cart: Cart) -> Decimal:
    return sum((line_total(line) for line in cart.lines.values()), ZERO)


def item_count(cart: Cart) -> int:
    return sum(line.quantity for line in cart.lines.values())


def compute_totals(cart: Cart) -> CartTotals:
    """
    Prefer the remote cost snapshot when present and fresh; otherwise fall
    back to the locally computed subtotal.
    """
    unpriced = unpriced_lines(cart)
    if cart.cost is not None and not cart.cost_stale:
        discount = cart.cost.discount
        return CartTotals(
            subtotal=quantize_money(cart.cost.subtotal),
            total=quantize_money(cart.cost.total),
            currency=cart.cost.currency or DEFAULT_CURRENCY,
            discount=quantize_money(discount) if discount is not None else None,
            authoritative=True,
            unpriced=unpriced,
        )

    subtotal = quantize_money(cart_subtotal(cart))
    currency = cart.cost.currency if cart.cost and cart.cost.currency else DEFAULT_CURRENCY
    return CartTotals(
        subtotal=subtotal,
        total=subtotal,
        currency=currency,
        authoritative=False,
        unpriced=unpriced,
    )
