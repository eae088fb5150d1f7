"""
Wishlist Service
==================
Per-customer wishlist records in the shared store, plus the live header
counters (cart lines / wishlist items). Single writer, no derived state.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from common.security import SessionToken
from modules.catalog.service import ProductInfo
from modules.shared_store.firebase import SharedStore

logger = logging.getLogger("misab.wishlist")


def wishlist_namespace(token: SessionToken) -> str:
    return f"{token.customer_id}/wishlist"


class WishlistService:

    async def list_items(self, shared: SharedStore, token: SessionToken) -> Dict[str, Dict[str, Any]]:
        data = await shared.read(wishlist_namespace(token))
        return data if isinstance(data, dict) else {}

    async def is_in_wishlist(self, shared: SharedStore, token: SessionToken, product_key: str) -> bool:
        return await shared.read(wishlist_namespace(token), product_key) is not None

    async def toggle(
        self, shared: SharedStore, token: SessionToken, product: ProductInfo, variant_id: Optional[str] = None,
    ) -> bool:
        """Add the product or remove it if already saved. Returns the new state."""
        namespace = wishlist_namespace(token)
        key = product.product_key
        if await shared.read(namespace, key) is not None:
            await shared.delete(namespace, key)
            logger.info(f"Customer {token.customer_id} removed {key} from wishlist")
            return False

        variant = product.variant(variant_id)
        await shared.write(namespace, key, {
            "title": product.title,
            "image": product.image_url,
            "price": variant.price if variant else "",
            "handle": product.handle,
        })
        logger.info(f"Customer {token.customer_id} added {key} to wishlist")
        return True

    async def remove(self, shared: SharedStore, token: SessionToken, product_key: str):
        await shared.delete(wishlist_namespace(token), product_key)


def subscribe_counts(
    shared: SharedStore, customer_id: str, on_change: Callable[[Dict[str, int]], None],
) -> Callable[[], None]:
    """
    Live {"cart": n, "wishlist": m} counts for display badges.
    Not used for cart mutations. Returns an unsubscribe function.
    """
    counts = {"cart": 0, "wishlist": 0}

    def updater(name: str):
        def _update(value):
            counts[name] = len(value) if isinstance(value, dict) else 0
            on_change(dict(counts))
        return _update

    unsubscribers = [
        shared.subscribe(f"{customer_id}/cart", None, updater("cart")),
        shared.subscribe(f"{customer_id}/wishlist", None, updater("wishlist")),
    ]

    def unsubscribe():
        for unsub in unsubscribers:
            unsub()

    return unsubscribe


async def count_events(
    shared: SharedStore,
    customer_id: str,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    keepalive: float = 15.0,
) -> AsyncIterator[str]:
    """
    Server-Sent Events frames carrying the live badge counts. A comment frame
    is sent when nothing changed for `keepalive` seconds. The subscriptions
    are released when the consumer stops iterating.
    """
    queue: "asyncio.Queue[Dict[str, int]]" = asyncio.Queue()
    unsubscribe = subscribe_counts(shared, customer_id, queue.put_nowait)
    try:
        while True:
            if is_disconnected is not None and await is_disconnected():
                logger.info(f"Count stream for customer {customer_id} disconnected")
                return
            try:
                counts = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            yield f"data: {json.dumps(counts)}\n\n"
    finally:
        unsubscribe()


# Singleton
wishlist_service = WishlistService()
