from __future__ import annotations

import logging
from typing import Any

import httpx

from app.core.config import (
    SHOPIFY_ADMIN_ACCESS_TOKEN,
    SHOPIFY_ADMIN_API_VERSION,
    SHOPIFY_HTTP_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

ORDER_LOOKUP_QUERY = """
query getOrder($query: String!) {
  orders(first: 1, query: $query) {
    edges {
      node {
        id
        fulfillmentOrders(first: 10) {
          edges { node { id status } }
        }
      }
    }
  }
}
"""

FULFILLMENT_CREATE_MUTATION = """
mutation fulfillmentCreate($fulfillment: FulfillmentInput!) {
  fulfillmentCreate(fulfillment: $fulfillment) {
    fulfillment { id }
    userErrors { message }
  }
}
"""


class ShopifySyncError(RuntimeError):
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


class ShopifyFulfillmentClient:
    """Marks an order fulfilled in Shopify through the Admin GraphQL API."""

    def __init__(
        self,
        access_token: str = SHOPIFY_ADMIN_ACCESS_TOKEN,
        *,
        api_version: str = SHOPIFY_ADMIN_API_VERSION,
        timeout: float = SHOPIFY_HTTP_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.access_token = access_token
        self.api_version = api_version
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.access_token)

    def _endpoint(self, shop: str) -> str:
        shop = shop.strip().removeprefix("https://").removeprefix("http://").rstrip("/")
        return f"https://{shop}/admin/api/{self.api_version}/graphql.json"

    def _post(self, client: httpx.Client, shop: str, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            response = client.post(
                self._endpoint(shop),
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Access-Token": self.access_token,
                },
                json={"query": query, "variables": variables},
            )
        except httpx.HTTPError as exc:
            raise ShopifySyncError(f"Shopify request failed: {exc}") from exc

        if not response.is_success:
            raise ShopifySyncError(f"Shopify request failed with status {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise ShopifySyncError("Shopify returned an invalid response") from exc

        errors = data.get("errors") or []
        if errors:
            raise ShopifySyncError(errors[0].get("message") or "Shopify request failed")
        return data.get("data") or {}

    def fulfill_order(self, *, shop: str, invoice_no: str) -> str | None:
        """Create a fulfillment for every OPEN fulfillment order of ``invoice_no``.

        Returns the created fulfillment id, or None when nothing was open.
        """
        search = invoice_no if invoice_no.startswith("#") else f"#{invoice_no}"
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            data = self._post(client, shop, ORDER_LOOKUP_QUERY, {"query": f"name:{search}"})
            edges = ((data.get("orders") or {}).get("edges")) or []
            node = (edges[0] or {}).get("node") if edges else None
            if not node:
                raise ShopifySyncError(f"Order {search} not found in Shopify", status_code=404)

            open_orders = [
                {"fulfillmentOrderId": edge["node"]["id"]}
                for edge in ((node.get("fulfillmentOrders") or {}).get("edges") or [])
                if (edge.get("node") or {}).get("id") and edge["node"].get("status") == "OPEN"
            ]
            if not open_orders:
                logger.info("no open fulfillment orders order=%s shop=%s", search, shop)
                return None

            data = self._post(
                client,
                shop,
                FULFILLMENT_CREATE_MUTATION,
                {"fulfillment": {"lineItemsByFulfillmentOrder": open_orders}},
            )

        result = data.get("fulfillmentCreate") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            raise ShopifySyncError(user_errors[0].get("message") or "Shopify fulfillment failed", status_code=400)
        fulfillment_id = (result.get("fulfillment") or {}).get("id")
        if not fulfillment_id:
            raise ShopifySyncError("Shopify fulfillment failed", status_code=400)
        return fulfillment_id
