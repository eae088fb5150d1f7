"""
Tests for wishlist records, live header counters and product reviews.
"""
import asyncio

from common.security import SessionToken
from modules.review.service import review_service
from modules.wishlist.service import count_events, subscribe_counts, wishlist_service
from tests.conftest import CUSTOMER_EMAIL, CUSTOMER_GID, CUSTOMER_ID
from tests.fakes import PRODUCTS, MemorySharedStore


TOKEN = SessionToken(access_token="shpat_test_token", user_id=CUSTOMER_GID, email=CUSTOMER_EMAIL)


class TestWishlist:

    def test_toggle_adds_then_removes(self):
        shared = MemorySharedStore()
        tee = PRODUCTS["classic-tee"]

        added = asyncio.run(wishlist_service.toggle(shared, TOKEN, tee))
        saved = shared.data[f"{CUSTOMER_ID}/wishlist"]["1001"]
        removed = asyncio.run(wishlist_service.toggle(shared, TOKEN, tee))

        assert added is True
        assert saved == {
            "title": "Classic Tee",
            "image": "https://cdn.example.com/classic-tee.jpg",
            "price": "10.00",
            "handle": "classic-tee",
        }
        assert removed is False
        assert asyncio.run(wishlist_service.is_in_wishlist(shared, TOKEN, "1001")) is False

    def test_list_and_remove(self):
        shared = MemorySharedStore()
        asyncio.run(wishlist_service.toggle(shared, TOKEN, PRODUCTS["classic-tee"]))
        asyncio.run(wishlist_service.toggle(shared, TOKEN, PRODUCTS["linen-shirt"]))

        asyncio.run(wishlist_service.remove(shared, TOKEN, "1001"))
        items = asyncio.run(wishlist_service.list_items(shared, TOKEN))

        assert list(items) == ["1002"]

    def test_empty_wishlist_lists_nothing(self):
        assert asyncio.run(wishlist_service.list_items(MemorySharedStore(), TOKEN)) == {}


class TestLiveCounts:

    def test_counts_follow_cart_and_wishlist(self, manager, shared):
        """
        Counters report the number of cart lines and wishlist items and stop
        after unsubscribing.
        """
        # Arrange
        seen = []
        unsubscribe = subscribe_counts(shared, CUSTOMER_ID, seen.append)

        # Act
        asyncio.run(manager.add_product("classic-tee", 3))
        asyncio.run(wishlist_service.toggle(shared, TOKEN, PRODUCTS["linen-shirt"]))
        unsubscribe()
        asyncio.run(manager.add_product("linen-shirt"))

        # Assert
        assert seen[0] == {"cart": 0, "wishlist": 0}
        assert seen[-1] == {"cart": 1, "wishlist": 1}

    def test_event_stream_sends_counts_and_releases_subscriptions(self, shared):
        """
        The stream starts with the current counts, sends a frame per change
        and drops its subscriptions once the consumer closes it.
        """
        async def scenario():
            # Arrange
            events = count_events(shared, CUSTOMER_ID, keepalive=5.0)

            # Act
            frames = [await events.__anext__(), await events.__anext__()]
            await wishlist_service.toggle(shared, TOKEN, PRODUCTS["linen-shirt"])
            frames.append(await events.__anext__())
            await events.aclose()
            return frames

        frames = asyncio.run(scenario())

        # Assert
        assert frames[1] == 'data: {"cart": 0, "wishlist": 0}\n\n'
        assert frames[2] == 'data: {"cart": 0, "wishlist": 1}\n\n'
        assert shared._listeners == []

    def test_quiet_stream_sends_keep_alive(self, shared):
        async def scenario():
            events = count_events(shared, CUSTOMER_ID, keepalive=0.01)
            await events.__anext__()
            await events.__anext__()
            frame = await events.__anext__()
            await events.aclose()
            return frame

        assert asyncio.run(scenario()) == ": keep-alive\n\n"

    def test_stream_ends_when_client_disconnects(self, shared):
        async def disconnected():
            return True

        async def scenario():
            return [frame async for frame in count_events(shared, CUSTOMER_ID, disconnected)]

        assert asyncio.run(scenario()) == []
        assert shared._listeners == []


class TestReviews:

    def test_add_and_list_reviews(self):
        shared = MemorySharedStore()

        first = asyncio.run(review_service.add_review(shared, "1001", "a@example.com", "Asha", 5, " Great fit "))
        asyncio.run(review_service.add_review(shared, "1001", "b@example.com", "Ben", 2))
        reviews, average = asyncio.run(review_service.list_reviews(shared, "1001"))

        assert first["success"] is True
        assert first["review"]["comment"] == "Great fit"
        assert len(reviews) == 2
        assert average == 3.5

    def test_one_review_per_email(self):
        shared = MemorySharedStore()
        asyncio.run(review_service.add_review(shared, "1001", "a@example.com", "Asha", 4))

        again = asyncio.run(review_service.add_review(shared, "1001", "a@example.com", "Asha", 1))

        assert again == {"success": False, "message": "You have already reviewed this product"}
        assert asyncio.run(review_service.has_reviewed(shared, "1001", "a@example.com")) is True

    def test_rating_must_be_one_to_five(self):
        shared = MemorySharedStore()
        for rating in (0, 6, "5"):
            result = asyncio.run(review_service.add_review(shared, "1001", "a@example.com", "Asha", rating))
            assert result["success"] is False

    def test_review_requires_email(self):
        result = asyncio.run(review_service.add_review(MemorySharedStore(), "1001", "", "Anon", 5))
        assert result["message"] == "Please login to submit a review"

    def test_product_without_reviews(self):
        assert asyncio.run(review_service.list_reviews(MemorySharedStore(), "1001")) == ([], 0.0)
