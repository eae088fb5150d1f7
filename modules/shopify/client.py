"""
Shopify Transport
===================
Async GraphQL (Storefront API) and REST (Admin API) calls over httpx.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from config import settings
from common.exceptions import ConfigurationError, StorefrontError

logger = logging.getLogger("misab.shopify")


class ShopifyError(StorefrontError):
    """Transport failure or a GraphQL `errors` payload."""

    def __init__(self, message: str, status_code: Optional[int] = None, graphql: bool = False):
        super().__init__(message)
        self.http_status = status_code
        # Request reached Shopify and it answered with `errors`
        self.graphql = graphql


class ShopifyClient:
    """
    Thin async wrapper around the Storefront GraphQL endpoint.
    A custom `transport` can be passed for tests (httpx.MockTransport).
    """

    def __init__(
        self,
        domain: str = None,
        access_token: str = None,
        api_version: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.domain = domain if domain is not None else settings.SHOPIFY_SHOP_DOMAIN
        self.access_token = access_token if access_token is not None else settings.SHOPIFY_STOREFRONT_ACCESS_TOKEN
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"https://{self.domain}/api/{self.api_version}/graphql.json"

    async def execute(self, query: str, variables: Dict[str, Any] = None) -> Dict[str, Any]:
        """
        Run a query and return its `data` object.
        Raises ShopifyError on HTTP failure or when the response carries `errors`.
        """
        if not self.domain or not self.access_token:
            raise ConfigurationError("Shopify domain or access token is missing.")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.endpoint,
                    json={"query": query, "variables": variables or {}},
                    headers={
                        "Content-Type": "application/json",
                        "X-Shopify-Storefront-Access-Token": self.access_token,
                    },
                )
        except httpx.TimeoutException:
            logger.error("Shopify request timed out")
            raise ShopifyError("Shopify did not respond in time.")
        except httpx.HTTPError as e:
            logger.error(f"Shopify request failed: {e}")
            raise ShopifyError(f"Could not reach Shopify: {e}")

        if resp.status_code >= 400:
            logger.error(f"Shopify HTTP error: status={resp.status_code}")
            raise ShopifyError(f"HTTP error! status: {resp.status_code}", resp.status_code)

        try:
            payload = resp.json()
        except ValueError:
            raise ShopifyError("Shopify returned a non-JSON response.")

        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            message = first.get("message") if isinstance(first, dict) else str(first)
            logger.warning(f"Shopify GraphQL error: {message}")
            raise ShopifyError(message or "Shopify returned an error.", graphql=True)

        return payload.get("data") or {}


class ShopifyAdminClient:
    """Async REST calls against the Admin API (order creation)."""

    def __init__(
        self,
        store_url: str = None,
        access_token: str = None,
        api_version: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.store_url = store_url if store_url is not None else settings.SHOPIFY_STORE_URL
        self.access_token = access_token if access_token is not None else settings.SHOPIFY_ADMIN_ACCESS_TOKEN
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self._transport = transport

    def _url(self, path: str) -> str:
        base = self.store_url.rstrip("/")
        if not base.startswith("http"):
            base = f"https://{base}"
        return f"{base}/admin/api/{self.api_version}/{path.lstrip('/')}"

    async def post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.store_url or not self.access_token:
            raise ConfigurationError("Missing Shopify configuration")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    self._url(path),
                    json=body,
                    headers={
                        "Content-Type": "application/json",
                        "X-Shopify-Access-Token": self.access_token,
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Shopify admin request failed: {e}")
            raise ShopifyError(f"Could not reach Shopify: {e}")

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if resp.status_code >= 400:
            detail = data.get("errors") if isinstance(data, dict) else None
            logger.error(f"Shopify admin error: status={resp.status_code} errors={detail}")
            raise ShopifyError(f"Shopify API error: {detail or resp.status_code}", resp.status_code)
        return data
