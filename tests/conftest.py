"""
Shared fixtures: an in-memory cart context and a signed-in customer.
"""
import pytest

from common.security import TokenStore
from common.storage import MemoryKeyValueStore
from modules.cart.service import CartContext, CartManager
from tests.fakes import FakeCatalog, FakeRemoteCart, MemorySharedStore


CUSTOMER_GID = "gid://shopify/Customer/7001"
CUSTOMER_ID = "7001"
CUSTOMER_EMAIL = "asha@example.com"


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def remote(catalog):
    return FakeRemoteCart(catalog)


@pytest.fixture
def shared():
    return MemorySharedStore()


@pytest.fixture
def local():
    return MemoryKeyValueStore()


@pytest.fixture
def context(local, shared, catalog, remote):
    return CartContext(local=local, shared=shared, catalog=catalog, remote=remote)


@pytest.fixture
def sign_in(local):
    """Store a bearer token for the session, as the sign-in hand-off does."""
    def _sign_in(user_id: str = CUSTOMER_GID, email: str = CUSTOMER_EMAIL):
        TokenStore(local).set_token("shpat_test_token", user_id, email)
    return _sign_in


@pytest.fixture
def manager(context, sign_in):
    """Signed-in cart manager over fresh in-memory collaborators."""
    sign_in()
    return CartManager(context)


@pytest.fixture
def guest_manager(context):
    """Cart manager for a session with no cached token."""
    return CartManager(context)
