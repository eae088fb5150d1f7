"""
Tests for the customer's order history: listing, detail lookup by order
number and cancellation through the Admin API.
"""
import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from common.exceptions import NotFoundError, OrderHistoryError, StorefrontError, UnauthenticatedError
from common.security import SessionToken
from common.storage import MemoryKeyValueStore
from main import app
from modules.auth.deps import get_registry
from modules.cart.service import CartContext, CartRegistry
from modules.order.service import OrderService, order_service, order_summary
from modules.shopify.client import ShopifyAdminClient, ShopifyClient
from tests.conftest import CUSTOMER_EMAIL, CUSTOMER_GID
from tests.fakes import FakeCatalog, FakeRemoteCart, MemorySharedStore


TOKEN = SessionToken(access_token="shpat_customer", user_id=CUSTOMER_GID, email=CUSTOMER_EMAIL)


def order_node(number, fulfillment="UNFULFILLED", canceled_at=None):
    return {
        "id": f"gid://shopify/Order/{5550000 + number}?key=abc{number}",
        "name": f"#{number}",
        "orderNumber": number,
        "processedAt": "2024-05-01T10:00:00Z",
        "canceledAt": canceled_at,
        "financialStatus": "PAID",
        "fulfillmentStatus": fulfillment,
        "totalPriceV2": {"amount": "18.0", "currencyCode": "INR"},
        "shippingAddress": {"address1": "1 MG Road", "city": "Pune", "country": "India"},
        "successfulFulfillments": [{
            "trackingCompany": "Bluedart",
            "trackingInfo": [{"number": "BD123", "url": "https://track.example.com/BD123"}],
        }] if fulfillment == "FULFILLED" else [],
        "lineItems": {"edges": [{"node": {
            "title": "Classic Tee",
            "quantity": 2,
            "variant": {
                "image": {"url": "https://cdn.example.com/classic-tee.jpg"},
                "price": {"amount": "10.0", "currencyCode": "INR"},
            },
        }}]},
    }


def history(*nodes):
    return {"data": {"customer": {"orders": {"edges": [{"node": n} for n in nodes]}}}}


def make_service(storefront_handler, admin_handler=None):
    client = ShopifyClient(
        domain="misab.myshopify.com", access_token="storefront_token",
        api_version="2024-10", transport=httpx.MockTransport(storefront_handler),
    )
    admin = ShopifyAdminClient(
        store_url="misab.myshopify.com", access_token="shpat_admin", api_version="2024-10",
        transport=httpx.MockTransport(admin_handler or (lambda request: httpx.Response(500))),
    )
    return OrderService(admin=admin, client=client)


class TestOrderSummary:

    def test_node_is_flattened(self):
        summary = order_summary(order_node(1001, fulfillment="FULFILLED"))

        assert summary["order_number"] == 1001
        assert summary["total"] == {"amount": "18.0", "currency": "INR"}
        assert summary["line_items"] == [{
            "title": "Classic Tee", "quantity": 2,
            "image": "https://cdn.example.com/classic-tee.jpg", "price": "10.0", "currency": "INR",
        }]
        assert summary["tracking"] == [
            {"company": "Bluedart", "number": "BD123", "url": "https://track.example.com/BD123"},
        ]

    def test_missing_sections_are_tolerated(self):
        summary = order_summary({"id": "gid://shopify/Order/1", "orderNumber": 1})

        assert summary["line_items"] == []
        assert summary["tracking"] == []
        assert summary["total"] == {"amount": "0", "currency": ""}


class TestOrderHistory:

    def test_list_sends_customer_token(self):
        sent = {}

        def handler(request):
            sent["variables"] = json.loads(request.content)["variables"]
            return httpx.Response(200, json=history(order_node(1002), order_node(1001)))

        orders = asyncio.run(make_service(handler).list_orders(TOKEN))

        assert [o["order_number"] for o in orders] == [1002, 1001]
        assert sent["variables"] == {"customerAccessToken": "shpat_customer", "first": 20}

    def test_unknown_customer_token_is_unauthenticated(self):
        service = make_service(lambda request: httpx.Response(200, json={"data": {"customer": None}}))

        with pytest.raises(UnauthenticatedError):
            asyncio.run(service.list_orders(TOKEN))

    def test_backend_failure_is_an_order_history_error(self):
        service = make_service(lambda request: httpx.Response(500, json={}))

        with pytest.raises(OrderHistoryError):
            asyncio.run(service.list_orders(TOKEN))

    def test_detail_matches_order_number(self):
        service = make_service(lambda request: httpx.Response(200, json=history(order_node(1002), order_node(1001))))

        order = asyncio.run(service.get_order(TOKEN, "#1001"))

        assert order["name"] == "#1001"

    def test_detail_for_someone_elses_order_is_not_found(self):
        service = make_service(lambda request: httpx.Response(200, json=history(order_node(1001))))

        with pytest.raises(NotFoundError) as exc:
            asyncio.run(service.get_order(TOKEN, "9999"))
        assert exc.value.message == "Order not found"


class TestCancelOrder:

    def test_cancel_posts_to_admin_with_numeric_id(self):
        """
        Order #1001 is found in the customer's history and cancelled through
        the Admin API using its numeric id.
        """
        # Arrange
        sent = {}

        def admin_handler(request):
            sent["method"] = request.method
            sent["url"] = str(request.url)
            return httpx.Response(200, json={"order": {"id": 5551001, "cancelled_at": "2024-05-02T09:00:00Z"}})

        service = make_service(
            lambda request: httpx.Response(200, json=history(order_node(1001))), admin_handler,
        )

        # Act
        order = asyncio.run(service.cancel_order(TOKEN, "1001"))

        # Assert
        assert sent["method"] == "POST"
        assert sent["url"] == "https://misab.myshopify.com/admin/api/2024-10/orders/5551001/cancel.json"
        assert order["canceled_at"] == "2024-05-02T09:00:00Z"

    def test_fulfilled_order_cannot_be_cancelled(self):
        service = make_service(
            lambda request: httpx.Response(200, json=history(order_node(1001, fulfillment="FULFILLED"))),
        )

        with pytest.raises(StorefrontError) as exc:
            asyncio.run(service.cancel_order(TOKEN, "1001"))
        assert exc.value.message == "Fulfilled orders cannot be cancelled"

    def test_already_cancelled_order(self):
        service = make_service(
            lambda request: httpx.Response(200, json=history(order_node(1001, canceled_at="2024-05-02T09:00:00Z"))),
        )

        with pytest.raises(StorefrontError):
            asyncio.run(service.cancel_order(TOKEN, "1001"))

    def test_admin_rejection_is_an_order_history_error(self):
        service = make_service(
            lambda request: httpx.Response(200, json=history(order_node(1001))),
            lambda request: httpx.Response(422, json={"errors": "Cannot cancel a refunded order"}),
        )

        with pytest.raises(OrderHistoryError) as exc:
            asyncio.run(service.cancel_order(TOKEN, "1001"))
        assert "Cannot cancel a refunded order" in exc.value.message


@pytest.fixture
def test_client():
    catalog = FakeCatalog()
    remote = FakeRemoteCart(catalog)
    shared = MemorySharedStore()
    caches = {}

    def context_factory(session_id):
        local = caches.setdefault(session_id, MemoryKeyValueStore())
        return CartContext(local=local, shared=shared, catalog=catalog, remote=remote)

    registry = CartRegistry(context_factory)
    app.dependency_overrides[get_registry] = lambda: registry
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def sign_in(client):
    client.post("/api/session/token", json={
        "access_token": "shpat_customer", "user_id": CUSTOMER_GID, "email": CUSTOMER_EMAIL,
    })


class TestOrderEndpoints:

    def test_history_requires_login(self, test_client):
        response = test_client.get("/api/orders")

        assert response.status_code == 401
        assert response.json()["detail"] == "login_required"

    def test_history(self, test_client):
        sign_in(test_client)
        orders = [order_summary(order_node(1001))]

        with patch.object(order_service, "list_orders", AsyncMock(return_value=orders)) as mock_list:
            data = test_client.get("/api/orders").json()

        assert data["count"] == 1
        assert data["orders"][0]["order_number"] == 1001
        assert mock_list.await_args.args[0].access_token == "shpat_customer"

    def test_unknown_order_is_404(self, test_client):
        sign_in(test_client)

        with patch.object(order_service, "get_order", AsyncMock(side_effect=NotFoundError("Order not found"))):
            response = test_client.get("/api/orders/9999")

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_cancel(self, test_client):
        sign_in(test_client)
        cancelled = dict(order_summary(order_node(1001)), canceled_at="2024-05-02T09:00:00Z")

        with patch.object(order_service, "cancel_order", AsyncMock(return_value=cancelled)) as mock_cancel:
            data = test_client.post("/api/orders/1001/cancel").json()

        assert data["status"] == "cancelled"
        assert data["order"]["canceled_at"] == "2024-05-02T09:00:00Z"
        assert mock_cancel.await_args.args[1] == "1001"
