"""
Cart Module - Service Layer
==============================
Cart reconciliation between three sources:
  - durable local cache  (session-owned, written synchronously)
  - shared store         (per-customer mirror, best-effort, last writer wins)
  - remote cart          (authoritative pricing, full-replace resync)

Every mutation: update mapping → persist locally → mirror the changed line
→ resync the remote cart → re-apply the discount code.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from common.exceptions import (
    CodeInvalidError, CodeNotApplicableError, InvalidQuantityError, NotFoundError,
    RemoteSyncError, StorefrontError, UnauthenticatedError, VariantResolutionError,
)
from common.helpers import safe_int
from common.security import SessionToken, TokenStore
from common.storage import KeyValueStore, SqlKeyValueStore
from modules.cart.models import Cart, CartCost, CartLine, MutationResult, SyncResult
from modules.cart.remote import RemoteCartNotFound, RemoteCartService, ShopifyRemoteCart
from modules.cart.totals import compute_totals, item_count
from modules.catalog.service import CatalogService, ShopifyCatalog
from modules.coupon.service import evaluate_discount
from modules.shared_store.firebase import FirebaseSharedStore, SharedStore
from modules.shopify.client import ShopifyClient

logger = logging.getLogger("misab.cart")

# Local cache keys
LINES_KEY = "cartItems"
REMOTE_ID_KEY = "shopifyCartId"
COST_KEY = "cartCost"
DISCOUNT_KEY = "appliedDiscountCode"

_PATCH_FIELDS = {"quantity", "title", "image_url", "handle", "unit_price", "variant_id", "selected_options"}


@dataclass
class CartContext:
    """Everything one session's cart talks to."""
    local: KeyValueStore
    shared: SharedStore
    catalog: CatalogService
    remote: RemoteCartService
    tokens: Optional[TokenStore] = field(default=None)

    def __post_init__(self):
        if self.tokens is None:
            self.tokens = TokenStore(self.local)


def cart_namespace(token: SessionToken) -> str:
    return f"{token.customer_id}/cart"


def lines_from_records(records: Any) -> Dict[str, CartLine]:
    """Stored {productKey: record} → lines. Unusable records are skipped."""
    lines: Dict[str, CartLine] = {}
    if not isinstance(records, dict):
        return lines
    for key, record in records.items():
        line = CartLine.from_record(key, record)
        if line:
            lines[line.product_key] = line
    return lines


class CartManager:

    def __init__(self, ctx: CartContext):
        self.ctx = ctx
        self.cart = Cart()
        self.loaded = False
        # Sync ordering: results from a sequence lower than the last applied one are discarded
        self._sequence = 0
        self._applied_sequence = 0
        # Bumped on every mapping change; a cost is fresh only if built from the current revision
        self._revision = 0

    # ==========================================
    # 📥 Loading & Persistence
    # ==========================================

    async def load(self) -> Cart:
        """Restore the cart from the local cache, falling back to the shared store."""
        local = self.ctx.local
        records = local.get_json(LINES_KEY)
        cart = Cart(
            lines=lines_from_records(records),
            remote_cart_id=local.get(REMOTE_ID_KEY) or None,
            applied_discount_code=local.get(DISCOUNT_KEY) or None,
        )
        cost_record = local.get_json(COST_KEY)
        cart.cost = CartCost.from_record(cost_record)
        if cart.cost is not None:
            cart.cost_stale = bool(cost_record.get("stale"))
        self.cart = cart

        if not isinstance(records, dict):
            token = self.ctx.tokens.get_token()
            if token:
                try:
                    shared = await self.ctx.shared.read(cart_namespace(token))
                except StorefrontError as e:
                    logger.warning(f"Could not seed cart from shared store: {e.message}")
                    shared = None
                if shared:
                    self.cart.lines = lines_from_records(shared)
                    self.cart.cost_stale = True
                    self.persist()
                    logger.info(f"Seeded cart for customer {token.customer_id} with {len(self.cart.lines)} lines")

        self.loaded = True
        return self.cart

    def persist(self):
        """Write the full cart snapshot to the local cache."""
        local = self.ctx.local
        local.set_json(LINES_KEY, self.cart.records())

        if self.cart.remote_cart_id:
            local.set(REMOTE_ID_KEY, self.cart.remote_cart_id)
        else:
            local.delete(REMOTE_ID_KEY)

        if self.cart.cost is not None:
            record = self.cart.cost.to_record()
            record["stale"] = self.cart.cost_stale
            local.set_json(COST_KEY, record)
        else:
            local.delete(COST_KEY)

        if self.cart.applied_discount_code:
            local.set(DISCOUNT_KEY, self.cart.applied_discount_code)
        else:
            local.delete(DISCOUNT_KEY)

    # ==========================================
    # 🛒 Mapping Operations
    # ==========================================

    async def upsert_line(self, product_key: str, patch: Dict[str, Any]) -> MutationResult:
        """
        Merge `patch` into the line (or create it). A resulting quantity <= 0
        removes the line. Resolved variant/options survive quantity-only patches.
        """
        product_key = str(product_key)
        unknown = set(patch) - _PATCH_FIELDS
        if unknown:
            raise ValueError(f"Unknown cart line fields: {sorted(unknown)}")

        existing = self.cart.lines.get(product_key)
        if "quantity" in patch:
            quantity = safe_int(patch["quantity"])
            if quantity is None:
                raise InvalidQuantityError(patch["quantity"])
        else:
            quantity = existing.quantity if existing else 0

        if quantity <= 0:
            return await self.remove_line(product_key)

        changes = {k: v for k, v in patch.items() if k != "quantity"}
        # Never clear an already-resolved variant or option set
        for keep in ("variant_id", "selected_options"):
            if keep in changes and not changes[keep]:
                changes.pop(keep)

        if existing:
            line = existing.copy(quantity=quantity, **changes)
        else:
            line = CartLine(product_key=product_key, quantity=quantity, **changes)

        self.cart.lines[product_key] = line
        return await self._after_mutation(product_key, line)

    async def remove_line(self, product_key: str) -> MutationResult:
        """Idempotent: removing an absent key changes nothing."""
        product_key = str(product_key)
        if product_key not in self.cart.lines:
            return MutationResult(cart=self.cart)
        del self.cart.lines[product_key]
        return await self._after_mutation(product_key, None)

    async def set_quantity(self, product_key: str, quantity: int) -> MutationResult:
        qty = safe_int(quantity)
        if qty is None or qty < 0:
            raise InvalidQuantityError(quantity)
        if qty == 0:
            return await self.remove_line(product_key)
        return await self.upsert_line(product_key, {"quantity": qty})

    async def add_product(self, handle: str, quantity: int = 1, variant_id: Optional[str] = None) -> MutationResult:
        """Add a catalog product; an existing line's quantity is increased."""
        qty = safe_int(quantity)
        if qty is None or qty < 1:
            raise InvalidQuantityError(quantity)

        product = await self.ctx.catalog.get_product(handle)
        variant = product.variant(variant_id)
        if variant_id and variant is None:
            raise NotFoundError(f"Variant {variant_id} not found for '{handle}'")

        key = product.product_key
        existing = self.cart.lines.get(key)
        patch: Dict[str, Any] = {"quantity": (existing.quantity if existing else 0) + qty}
        if variant:
            patch["variant_id"] = variant.id
            patch["selected_options"] = variant.selected_options
            patch["unit_price"] = variant.price
        if not existing:
            patch.update(title=product.title, image_url=product.image_url, handle=product.handle)
            patch.setdefault("unit_price", "")
        return await self.upsert_line(key, patch)

    async def clear(self) -> Cart:
        """Drop every line everywhere. Only called once an order is confirmed."""
        self._revision += 1
        self.cart.lines.clear()
        self._reset_remote_state()
        self.persist()

        token = self.ctx.tokens.get_token()
        if token:
            try:
                await self.ctx.shared.delete(cart_namespace(token))
            except StorefrontError as e:
                logger.warning(f"Cart mirror not cleared for customer {token.customer_id}: {e.message}")
        return self.cart

    async def _after_mutation(self, product_key: str, line: Optional[CartLine]) -> MutationResult:
        self._revision += 1
        if self.cart.cost is not None:
            self.cart.cost_stale = True
        if self.cart.is_empty:
            self._reset_remote_state()
        self.persist()

        result = MutationResult(cart=self.cart)
        token = self.ctx.tokens.get_token()
        if not token:
            result.remote_error = UnauthenticatedError()
            return result

        await self._mirror(token, product_key, line, result)

        if self.cart.is_empty:
            return result

        try:
            sync = await self.resync()
            result.warnings.extend(sync.warnings)
        except StorefrontError as e:
            result.remote_error = e
        return result

    async def _mirror(self, token: SessionToken, product_key: str, line: Optional[CartLine], result: MutationResult):
        namespace = cart_namespace(token)
        try:
            if line is None:
                await self.ctx.shared.delete(namespace, product_key)
            else:
                await self.ctx.shared.write(namespace, product_key, line.to_record())
        except StorefrontError as e:
            logger.warning(f"Cart mirror not updated for {product_key}: {e.message}")
            result.warnings.append(f"Cart mirror not updated: {e.message}")

    def _reset_remote_state(self):
        """Empty cart: forget the remote cart; in-flight syncs become stale."""
        self.cart.remote_cart_id = None
        self.cart.applied_discount_code = None
        self.cart.cost = None
        self.cart.cost_stale = False
        self._sequence += 1
        self._applied_sequence = self._sequence

    # ==========================================
    # 🔄 Remote Resync (full replace)
    # ==========================================

    def require_token(self) -> SessionToken:
        token = self.ctx.tokens.get_token()
        if not token:
            raise UnauthenticatedError()
        return token

    def next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    @property
    def revision(self) -> int:
        return self._revision

    def accept_cost(self, sequence: int, cost: Optional[CartCost], revision: Optional[int] = None) -> bool:
        """
        Store a remote cost snapshot unless a newer one was already applied.
        `revision` is the mapping revision the snapshot was priced from.
        """
        if sequence < self._applied_sequence:
            logger.info(f"Discarding stale cart cost from sync #{sequence} (applied #{self._applied_sequence})")
            return False
        self._applied_sequence = sequence
        self.cart.cost = cost
        self.cart.cost_stale = cost is not None and revision is not None and revision != self._revision
        self.persist()
        return True

    async def resync(self) -> SyncResult:
        """
        Replace the remote cart's lines with the local mapping and capture the
        authoritative cost. Safe to re-run.
        """
        self.require_token()
        seq = self.next_sequence()
        revision = self._revision
        warnings: List[str] = []

        try:
            cart_id = await self._ensure_remote_cart(seq)
            if cart_id is not None:
                try:
                    line_ids = await self.ctx.remote.list_lines(cart_id)
                except RemoteCartNotFound:
                    logger.warning(f"Remote cart {cart_id} expired, creating a new one")
                    cart_id = await self._create_remote_cart(seq, replace=cart_id)
                    line_ids = []
                if line_ids:
                    await self.ctx.remote.remove_lines(cart_id, line_ids)
        except StorefrontError as e:
            raise self._sync_failed(seq, e)

        if cart_id is None:
            return SyncResult(sequence=seq, applied=False, warnings=warnings)

        pairs = await self._resolve_variants(warnings)

        if not pairs:
            applied = self.accept_cost(seq, None)
            logger.info(f"Sync #{seq}: remote cart {cart_id} left empty")
            return SyncResult(sequence=seq, applied=applied, synced_lines=0, warnings=warnings)

        try:
            snapshot = await self.ctx.remote.add_lines(cart_id, pairs)
        except StorefrontError as e:
            raise self._sync_failed(seq, e)

        applied = self.accept_cost(seq, snapshot.cost, revision)
        if applied and self.cart.applied_discount_code:
            await self._reapply_discount(seq, cart_id, revision, warnings)

        logger.info(f"Sync #{seq}: {len(pairs)} lines pushed to remote cart {cart_id} (applied={applied})")
        return SyncResult(sequence=seq, applied=applied, synced_lines=len(pairs), warnings=warnings)

    async def _ensure_remote_cart(self, seq: int) -> Optional[str]:
        if self.cart.remote_cart_id:
            return self.cart.remote_cart_id
        return await self._create_remote_cart(seq)

    async def _create_remote_cart(self, seq: int, replace: Optional[str] = None) -> Optional[str]:
        """
        New remote cart id, or None when sync #seq was superseded while the
        cart was being created (the id is then dropped).
        """
        new_id = await self.ctx.remote.create_cart()
        if seq < self._applied_sequence or self.cart.is_empty:
            logger.info(f"Sync #{seq} superseded, dropping new remote cart {new_id}")
            return None
        # Another sync may have created one while we waited
        if self.cart.remote_cart_id and self.cart.remote_cart_id != replace:
            return self.cart.remote_cart_id
        self.cart.remote_cart_id = new_id
        self.persist()
        return new_id

    async def _resolve_variants(self, warnings: List[str]) -> List[Tuple[str, int]]:
        """(variant_id, quantity) for every line that has or can get a variant."""
        lines = list(self.cart.lines.values())
        missing = [line for line in lines if not line.variant_id]

        lookups = await asyncio.gather(
            *(self.ctx.catalog.lookup_variant(line.handle) for line in missing),
            return_exceptions=True,
        )

        resolved: Dict[str, str] = {}
        for line, outcome in zip(missing, lookups):
            if isinstance(outcome, StorefrontError):
                err = VariantResolutionError(line.product_key, line.handle)
                logger.warning(f"{err.message}: {outcome.message}")
                warnings.append(err.message)
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome:
                resolved[line.product_key] = outcome
            else:
                warnings.append(VariantResolutionError(line.product_key, line.handle).message)

        if resolved:
            for key, variant_id in resolved.items():
                current = self.cart.lines.get(key)
                if current is not None and not current.variant_id:
                    current.variant_id = variant_id
            self.persist()

        pairs = []
        for line in lines:
            variant_id = line.variant_id or resolved.get(line.product_key)
            if variant_id and line.quantity > 0:
                pairs.append((variant_id, line.quantity))
        return pairs

    async def _reapply_discount(self, seq: int, cart_id: str, revision: int, warnings: List[str]):
        code = self.cart.applied_discount_code
        try:
            result = await self.ctx.remote.set_discount_codes(cart_id, [code])
            cost = evaluate_discount(code, result)
        except (CodeInvalidError, CodeNotApplicableError) as e:
            logger.warning(f"Discount code {code} dropped after sync #{seq}: {e.message}")
            warnings.append(f"Discount code {code} removed: {e.message}")
            if seq >= self._applied_sequence:
                self.cart.applied_discount_code = None
                self.persist()
            return
        except StorefrontError as e:
            # Not a rejection: the code stays, the cost is no longer trusted
            logger.error(f"Discount code {code} not re-applied after sync #{seq}: {e.message}")
            if seq >= self._applied_sequence:
                self.cart.cost_stale = True
                self.persist()
            raise RemoteSyncError(f"Discount code {code} could not be re-applied: {e.message}")
        self.accept_cost(seq, cost, revision)

    def _sync_failed(self, seq: int, error: StorefrontError) -> RemoteSyncError:
        logger.error(f"Sync #{seq} failed: {error.message}")
        if self.cart.cost is not None:
            self.cart.cost_stale = True
            self.persist()
        if isinstance(error, RemoteSyncError):
            return error
        return RemoteSyncError(error.message)

    # ==========================================
    # 📊 Views
    # ==========================================

    def summary(self) -> Dict[str, Any]:
        totals = compute_totals(self.cart)
        return {
            "lines": [
                dict(line.to_record(), productKey=key)
                for key, line in self.cart.lines.items()
            ],
            "item_count": item_count(self.cart),
            "remote_cart_id": self.cart.remote_cart_id,
            "applied_discount_code": self.cart.applied_discount_code,
            "totals": totals.to_dict(),
        }


# ==========================================
# Session registry
# ==========================================

def default_context(session_id: str) -> CartContext:
    client = ShopifyClient()
    return CartContext(
        local=SqlKeyValueStore(session_id),
        shared=FirebaseSharedStore(),
        catalog=ShopifyCatalog(client),
        remote=ShopifyRemoteCart(client),
    )


class CartRegistry:
    """
    One CartManager per session id, kept across requests so sync ordering
    holds for the whole session.
    """

    def __init__(self, context_factory: Callable[[str], CartContext] = default_context, max_sessions: int = 1000):
        self.context_factory = context_factory
        self.max_sessions = max_sessions
        self._managers: "OrderedDict[str, CartManager]" = OrderedDict()

    async def get(self, session_id: str) -> CartManager:
        manager = self._managers.get(session_id)
        if manager is not None:
            self._managers.move_to_end(session_id)
            return manager

        manager = CartManager(self.context_factory(session_id))
        await manager.load()
        self._managers[session_id] = manager
        while len(self._managers) > self.max_sessions:
            self._managers.popitem(last=False)
        return manager

    def forget(self, session_id: str):
        self._managers.pop(session_id, None)


# Singleton
cart_registry = CartRegistry()
