"""
Coupon Service
================
Apply and remove a single discount code on the remote cart.

Apply chain:
  1. Code is non-empty (before any network call)
  2. Session is authenticated
  3. Remote cart exists (created + synced if missing or expired)
  4. Remote cart accepts the code (no user errors, code returned)
  5. Code is applicable to the current lines
  6. Discount amount = |subtotal - total|
"""

import logging
from typing import TYPE_CHECKING, List, Tuple

from common.exceptions import (
    CodeInvalidError, CodeNotApplicableError, EmptyCodeError,
    RemoteSyncError, StorefrontError,
)
from modules.cart.models import Cart, CartCost, DiscountResult
from modules.cart.remote import RemoteCartNotFound

if TYPE_CHECKING:
    from modules.cart.service import CartManager

logger = logging.getLogger("misab.coupon")


def evaluate_discount(code: str, result: DiscountResult) -> CartCost:
    """
    Turn a discount-codes response into the discounted cost snapshot.
    Raises CodeInvalidError / CodeNotApplicableError.
    """
    if result.user_errors:
        raise CodeInvalidError(result.user_errors[0] or "Invalid discount code")
    if not result.codes:
        raise CodeInvalidError("Invalid discount code")

    wanted = code.strip().upper()
    discount = next((c for c in result.codes if c.code.upper() == wanted), result.codes[0])
    if not discount.applicable:
        raise CodeNotApplicableError(code)

    cost = result.cost
    if cost is None:
        raise RemoteSyncError("Discount response did not include the cart cost")

    # Sign conventions differ between responses; only the magnitude matters
    amount = abs(cost.subtotal - cost.total)
    return CartCost(
        subtotal=cost.subtotal,
        total=cost.total,
        currency=cost.currency,
        discount=amount,
        tax=cost.tax,
    )


class CouponService:

    async def _submit(self, manager: "CartManager", codes: List[str]) -> Tuple[int, int, str, DiscountResult]:
        """
        Send the code list to the remote cart. An expired remote cart is
        rebuilt by a resync and the request is sent once more.
        """
        for attempt in (1, 2):
            cart_id = manager.cart.remote_cart_id
            if not cart_id:
                raise RemoteSyncError("Remote cart could not be created")
            seq = manager.next_sequence()
            revision = manager.revision
            try:
                result = await manager.ctx.remote.set_discount_codes(cart_id, codes)
                return seq, revision, cart_id, result
            except RemoteCartNotFound:
                if attempt == 2:
                    raise
                logger.warning(f"Remote cart {cart_id} expired before discount update, resyncing")
                await manager.resync()

    async def apply_code(self, manager: "CartManager", code: str) -> Cart:
        code = (code or "").strip()
        if not code:
            raise EmptyCodeError()

        manager.require_token()
        if not manager.cart.remote_cart_id:
            await manager.resync()

        try:
            seq, revision, cart_id, result = await self._submit(manager, [code])
        except StorefrontError as e:
            logger.error(f"Applying discount code {code} failed: {e.message}")
            raise RemoteSyncError("Failed to apply discount code. Please try again.")

        try:
            cost = evaluate_discount(code, result)
        except (CodeInvalidError, CodeNotApplicableError) as e:
            logger.info(f"Discount code {code} rejected: {e.message}")
            raise

        if manager.accept_cost(seq, cost, revision):
            manager.cart.applied_discount_code = code
            manager.persist()
            logger.info(f"Discount code {code} applied to cart {cart_id}: -{cost.discount}")
        return manager.cart

    async def remove_code(self, manager: "CartManager") -> Cart:
        cart = manager.cart
        if not cart.remote_cart_id:
            if cart.applied_discount_code:
                cart.applied_discount_code = None
                manager.persist()
            return cart

        manager.require_token()
        try:
            seq, revision, _, result = await self._submit(manager, [])
        except StorefrontError as e:
            logger.error(f"Removing discount code failed: {e.message}")
            raise RemoteSyncError("Failed to remove discount code. Please try again.")

        if result.user_errors:
            raise RemoteSyncError(result.user_errors[0])

        restored = None
        if result.cost is not None:
            restored = CartCost(
                subtotal=result.cost.subtotal,
                total=result.cost.total,
                currency=result.cost.currency,
                tax=result.cost.tax,
            )
        if manager.accept_cost(seq, restored, revision):
            cart.applied_discount_code = None
            manager.persist()
        return cart


# Singleton
coupon_service = CouponService()
