import json

import httpx
import pytest

from app.services.identity_management import (
    IdentityManagementClient,
    IdentityManagementError,
    ManagementTokenCache,
)
from app.services.shopify_fulfillment import ShopifyFulfillmentClient, ShopifySyncError


class _Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_token_cache_expires_within_refresh_margin():
    clock = _Clock()
    cache = ManagementTokenCache(refresh_margin_seconds=60, clock=clock)
    assert cache.get() is None

    cache.store("tok", expires_in=3600)
    assert cache.get() == "tok"

    clock.now += 3600 - 61
    assert cache.get() == "tok"
    clock.now += 1
    assert cache.get() is None

    cache.clear()
    assert cache.get() is None


def _identity_client(handler, cache=None, **overrides):
    settings = {
        "domain": "cosmo.auth.example.com",
        "client_id": "m2m-id",
        "client_secret": "m2m-secret",
        "connection": "Username-Password-Authentication",
    }
    settings.update(overrides)
    return IdentityManagementClient(
        cache or ManagementTokenCache(clock=_Clock()),
        transport=httpx.MockTransport(handler),
        **settings,
    )


def test_management_token_is_fetched_once_and_cached():
    calls = []

    def _handler(request):
        calls.append(json.loads(request.content))
        return httpx.Response(200, json={"access_token": "mgmt-token", "expires_in": 86400})

    client = _identity_client(_handler)

    assert client.get_management_token() == "mgmt-token"
    assert client.get_management_token() == "mgmt-token"
    assert len(calls) == 1
    assert calls[0]["grant_type"] == "client_credentials"
    assert calls[0]["audience"] == "https://cosmo.auth.example.com/api/v2/"


def test_management_token_requires_credentials():
    client = _identity_client(lambda request: httpx.Response(500), client_secret="")

    with pytest.raises(IdentityManagementError):
        client.get_management_token()


def test_create_user_uses_bearer_token():
    seen = []

    def _handler(request):
        if request.url.path == "/oauth/token":
            return httpx.Response(200, json={"access_token": "mgmt-token", "expires_in": 86400})
        seen.append(request)
        return httpx.Response(201, json={"user_id": "auth0|abc123"})

    client = _identity_client(_handler)

    created = client.create_user(email="new@cosmo.test", password="Pa55word!", given_name="New", family_name="User")

    assert created.user_id == "auth0|abc123"
    assert seen[0].headers["Authorization"] == "Bearer mgmt-token"
    body = json.loads(seen[0].content)
    assert body["connection"] == "Username-Password-Authentication"
    assert body["name"] == "New User"


def test_create_user_surfaces_provider_message():
    def _handler(request):
        if request.url.path == "/oauth/token":
            return httpx.Response(200, json={"access_token": "mgmt-token", "expires_in": 86400})
        return httpx.Response(409, json={"message": "The user already exists."})

    client = _identity_client(_handler)

    with pytest.raises(IdentityManagementError, match="already exists"):
        client.create_user(email="dup@cosmo.test", password="x", given_name="D", family_name="U")


def _order_lookup(status="OPEN"):
    return {
        "data": {
            "orders": {
                "edges": [
                    {
                        "node": {
                            "id": "gid://shopify/Order/1",
                            "fulfillmentOrders": {
                                "edges": [{"node": {"id": "gid://shopify/FulfillmentOrder/9", "status": status}}]
                            },
                        }
                    }
                ]
            }
        }
    }


def test_shopify_client_fulfills_open_fulfillment_orders():
    requests = []

    def _handler(request):
        requests.append(request)
        body = json.loads(request.content)
        if "fulfillmentCreate" in body["query"]:
            return httpx.Response(
                200,
                json={"data": {"fulfillmentCreate": {"fulfillment": {"id": "gid://shopify/Fulfillment/5"}, "userErrors": []}}},
            )
        return httpx.Response(200, json=_order_lookup())

    client = ShopifyFulfillmentClient("shpat_token", api_version="2025-10", transport=httpx.MockTransport(_handler))

    assert client.fulfill_order(shop="cosmo-tea.myshopify.com", invoice_no="1001") == "gid://shopify/Fulfillment/5"
    assert str(requests[0].url) == "https://cosmo-tea.myshopify.com/admin/api/2025-10/graphql.json"
    assert requests[0].headers["X-Shopify-Access-Token"] == "shpat_token"
    assert json.loads(requests[0].content)["variables"] == {"query": "name:#1001"}
    create_vars = json.loads(requests[1].content)["variables"]
    assert create_vars == {
        "fulfillment": {"lineItemsByFulfillmentOrder": [{"fulfillmentOrderId": "gid://shopify/FulfillmentOrder/9"}]}
    }


def test_shopify_client_skips_when_nothing_is_open():
    requests = []

    def _handler(request):
        requests.append(request)
        return httpx.Response(200, json=_order_lookup(status="CLOSED"))

    client = ShopifyFulfillmentClient("shpat_token", transport=httpx.MockTransport(_handler))

    assert client.fulfill_order(shop="cosmo-tea.myshopify.com", invoice_no="#1001") is None
    assert len(requests) == 1


def test_shopify_client_missing_order_is_404():
    client = ShopifyFulfillmentClient(
        "shpat_token",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"data": {"orders": {"edges": []}}})),
    )

    with pytest.raises(ShopifySyncError) as exc_info:
        client.fulfill_order(shop="cosmo-tea.myshopify.com", invoice_no="1001")

    assert exc_info.value.status_code == 404


def test_shopify_client_user_errors_are_400():
    def _handler(request):
        if "fulfillmentCreate" in json.loads(request.content)["query"]:
            return httpx.Response(
                200,
                json={"data": {"fulfillmentCreate": {"fulfillment": None, "userErrors": [{"message": "Already fulfilled"}]}}},
            )
        return httpx.Response(200, json=_order_lookup())

    client = ShopifyFulfillmentClient("shpat_token", transport=httpx.MockTransport(_handler))

    with pytest.raises(ShopifySyncError, match="Already fulfilled") as exc_info:
        client.fulfill_order(shop="cosmo-tea.myshopify.com", invoice_no="1001")

    assert exc_info.value.status_code == 400


def test_shopify_client_http_failure_is_502():
    client = ShopifyFulfillmentClient(
        "shpat_token",
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="unavailable")),
    )

    with pytest.raises(ShopifySyncError) as exc_info:
        client.fulfill_order(shop="cosmo-tea.myshopify.com", invoice_no="1001")

    assert exc_info.value.status_code == 502
    assert ShopifyFulfillmentClient("").enabled is False
