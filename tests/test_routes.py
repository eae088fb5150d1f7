"""
Component tests for the HTTP API.

The app runs with its real routers, dependencies and exception handler; only
the per-session cart registry is overridden so every collaborator is in memory.
"""
import pytest
from fastapi.testclient import TestClient

from common.storage import MemoryKeyValueStore
from main import app
from modules.auth.deps import get_registry
from modules.cart.service import CartContext, CartRegistry
from tests.conftest import CUSTOMER_EMAIL, CUSTOMER_GID, CUSTOMER_ID
from tests.fakes import FakeCatalog, FakeRemoteCart, MemorySharedStore


@pytest.fixture
def shared():
    return MemorySharedStore()


@pytest.fixture
def test_client(shared):
    """
    TestClient whose sessions get in-memory caches over shared fakes.
    Cookies persist between requests, so one client is one browser session.
    """
    catalog = FakeCatalog()
    remote = FakeRemoteCart(catalog)
    caches = {}

    def context_factory(session_id):
        local = caches.setdefault(session_id, MemoryKeyValueStore())
        return CartContext(local=local, shared=shared, catalog=catalog, remote=remote)

    registry = CartRegistry(context_factory)
    app.dependency_overrides[get_registry] = lambda: registry

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()


def sign_in(client: TestClient):
    response = client.post("/api/session/token", json={
        "access_token": "shpat_test_token", "user_id": CUSTOMER_GID, "email": CUSTOMER_EMAIL,
    })
    assert response.status_code == 200
    return response


class TestSession:

    def test_first_visit_gets_session_cookie(self, test_client):
        response = test_client.get("/api/cart")

        assert response.status_code == 200
        assert "cart_session" in response.cookies
        assert response.json()["lines"] == []

    def test_token_hand_off(self, test_client):
        assert test_client.get("/api/session/token").json() == {"authenticated": False}

        data = sign_in(test_client).json()
        status = test_client.get("/api/session/token").json()

        assert data["customer_id"] == CUSTOMER_ID
        assert status == {"authenticated": True, "customer_id": CUSTOMER_ID, "email": CUSTOMER_EMAIL}

        test_client.delete("/api/session/token")
        assert test_client.get("/api/session/token").json() == {"authenticated": False}

    def test_sign_in_restores_mirrored_cart(self, test_client, shared):
        shared.data[f"{CUSTOMER_ID}/cart"] = {
            "1002": {"title": "Linen Shirt", "price": "5.50", "quantity": 2, "handle": "linen-shirt"},
        }

        data = sign_in(test_client).json()

        assert data["cart"]["item_count"] == 2


class TestCartEndpoints:

    def test_guest_add_is_kept_locally(self, test_client):
        """
        A guest can fill the cart; the response reports that it was not synced.
        """
        # Act
        response = test_client.post("/api/cart/items", json={"handle": "classic-tee", "quantity": 2})

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["synced"] is False
        assert data["remote_error"]["error"] == "UnauthenticatedError"
        assert data["item_count"] == 2
        assert data["totals"]["total"] == "20.00"
        assert data["totals"]["authoritative"] is False

    def test_signed_in_add_is_priced_remotely(self, test_client):
        sign_in(test_client)

        data = test_client.post("/api/cart/items", json={"handle": "classic-tee", "quantity": 2}).json()

        assert data["synced"] is True
        assert data["remote_cart_id"] is not None
        assert data["totals"]["authoritative"] is True
        assert data["lines"][0]["productKey"] == "1001"
        assert test_client.get("/api/cart/count").json() == {"cart_count": 2}

    def test_quantity_update_and_remove(self, test_client):
        sign_in(test_client)
        test_client.post("/api/cart/items", json={"handle": "classic-tee"})

        updated = test_client.patch("/api/cart/items/1001", json={"quantity": 4}).json()
        removed = test_client.patch("/api/cart/items/1001", json={"quantity": 0}).json()

        assert updated["item_count"] == 4
        assert removed["lines"] == []
        assert removed["remote_cart_id"] is None

    def test_negative_quantity_is_a_bad_request(self, test_client):
        test_client.post("/api/cart/items", json={"handle": "classic-tee"})

        response = test_client.patch("/api/cart/items/1001", json={"quantity": -2})

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidQuantityError"

    def test_unknown_product_is_not_found(self, test_client):
        response = test_client.post("/api/cart/items", json={"handle": "no-such-thing"})
        assert response.status_code == 404

    def test_zero_quantity_add_fails_validation(self, test_client):
        response = test_client.post("/api/cart/items", json={"handle": "classic-tee", "quantity": 0})
        assert response.status_code == 422

    def test_delete_item(self, test_client):
        test_client.post("/api/cart/items", json={"handle": "classic-tee"})

        data = test_client.delete("/api/cart/items/1001").json()

        assert data["lines"] == []

    def test_manual_sync_requires_sign_in(self, test_client):
        response = test_client.post("/api/cart/sync")

        assert response.status_code == 401
        assert response.json()["detail"] == "Please sign in to continue."

    def test_manual_sync(self, test_client):
        test_client.post("/api/cart/items", json={"handle": "classic-tee"})
        sign_in(test_client)

        data = test_client.post("/api/cart/sync").json()

        assert data["sync"]["synced_lines"] == 1
        assert data["totals"]["authoritative"] is True


class TestCouponEndpoints:

    def test_apply_and_remove(self, test_client):
        sign_in(test_client)
        test_client.post("/api/cart/items", json={"handle": "classic-tee", "quantity": 2})

        applied = test_client.post("/api/coupon/apply", json={"code": "SAVE10"}).json()
        removed = test_client.delete("/api/coupon").json()

        assert applied["applied_discount_code"] == "SAVE10"
        assert applied["totals"]["discount"] == "2.00"
        assert applied["totals"]["total"] == "18.00"
        assert removed["applied_discount_code"] is None
        assert removed["totals"]["total"] == "20.00"

    def test_blank_code(self, test_client):
        response = test_client.post("/api/coupon/apply", json={"code": ""})

        assert response.status_code == 400
        assert response.json()["detail"] == "Please enter a discount code"

    def test_not_applicable_code(self, test_client):
        sign_in(test_client)
        test_client.post("/api/cart/items", json={"handle": "classic-tee"})

        response = test_client.post("/api/coupon/apply", json={"code": "CLOSED"})

        assert response.status_code == 422
        assert response.json()["error"] == "CodeNotApplicableError"


class TestWishlistAndReviewEndpoints:

    def test_wishlist_requires_login(self, test_client):
        response = test_client.get("/api/wishlist")

        assert response.status_code == 401
        assert response.json()["detail"] == "login_required"

    def test_count_stream_requires_login(self, test_client):
        response = test_client.get("/api/wishlist/counts/stream")

        assert response.status_code == 401
        assert response.json()["detail"] == "login_required"

    def test_toggle_and_list(self, test_client):
        sign_in(test_client)

        toggled = test_client.post("/api/wishlist/toggle", json={"handle": "linen-shirt"}).json()
        listing = test_client.get("/api/wishlist").json()
        status = test_client.get("/api/wishlist/1002").json()
        test_client.delete("/api/wishlist/1002")

        assert toggled == {"product_key": "1002", "in_wishlist": True}
        assert listing["wishlist_count"] == 1
        assert listing["items"][0]["productKey"] == "1002"
        assert status["in_wishlist"] is True
        assert test_client.get("/api/wishlist").json()["wishlist_count"] == 0

    def test_review_flow(self, test_client):
        sign_in(test_client)

        created = test_client.post("/api/reviews/1001", json={"rating": 4, "comment": "Soft", "user_name": "Asha"})
        duplicate = test_client.post("/api/reviews/1001", json={"rating": 5})
        listing = test_client.get("/api/reviews/1001").json()

        assert created.status_code == 200
        assert duplicate.status_code == 400
        assert listing["count"] == 1
        assert listing["average_rating"] == 4.0
        assert listing["has_reviewed"] is True

    def test_rating_out_of_range(self, test_client):
        sign_in(test_client)
        response = test_client.post("/api/reviews/1001", json={"rating": 9})
        assert response.status_code == 422


class TestCheckoutEndpoints:

    def test_checkout_requires_sign_in(self, test_client):
        test_client.post("/api/cart/items", json={"handle": "classic-tee"})

        response = test_client.post("/api/checkout/start")

        assert response.status_code == 401
        assert response.json()["error"] == "UnauthenticatedError"

    def test_health(self, test_client):
        assert test_client.get("/health").json() == {"status": "ok"}
