import pytest

from app.models.company import Company, CompanyLocation
from app.routers.shopify_webhooks import router as shopify_webhooks_router
from app.services.shopify_webhook import (
    WebhookConfigurationError,
    compute_signature,
    verify_shopify_webhook,
)
from tests.db_support import build_client, build_session_factory, seed_companies
from tests.fixtures_data import (
    LOCATION_SHOPIFY_ID,
    OTHER_LOCATION_SHOPIFY_ID,
    SECRET_A,
    SECRET_B,
    SECRET_C,
    encode,
    order_payload,
    sign,
    signed_headers,
)


def _build_client(monkeypatch):
    session_factory = build_session_factory(monkeypatch)
    db = session_factory()
    seed_companies(db)
    return build_client(db, [shopify_webhooks_router]), db


def test_signature_verifies_against_any_configured_secret():
    body = b'{"id": 1}'
    signature = sign(body, SECRET_A)

    assert verify_shopify_webhook(body, signature, [SECRET_A, SECRET_B]) is True
    assert verify_shopify_webhook(body, signature, [SECRET_B, SECRET_C]) is False


def test_signature_matches_compute_signature_and_detects_tampering():
    body = b'{"id": 1, "total_price": "10.00"}'
    signature = compute_signature(body, SECRET_B)

    assert verify_shopify_webhook(body, signature, [SECRET_A, SECRET_B]) is True
    assert verify_shopify_webhook(body + b" ", signature, [SECRET_A, SECRET_B]) is False


@pytest.mark.parametrize("signature", [None, "", "   ", "not base64!!", "c2hvcnQ="])
def test_missing_or_malformed_signature_is_rejected(signature):
    assert verify_shopify_webhook(b"{}", signature, [SECRET_A]) is False


def test_empty_secret_set_is_a_configuration_error():
    with pytest.raises(WebhookConfigurationError):
        verify_shopify_webhook(b"{}", sign(b"{}", SECRET_A), [])
    with pytest.raises(WebhookConfigurationError):
        verify_shopify_webhook(b"{}", sign(b"{}", SECRET_A), ["", None])


def test_webhook_requires_location_id(monkeypatch):
    client, _db = _build_client(monkeypatch)
    body = encode(order_payload())

    response = client.post("/api/webhooks/shopify/orders", content=body, headers=signed_headers(body))

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing location_id query parameter"


def test_webhook_unknown_location_returns_404(monkeypatch):
    client, _db = _build_client(monkeypatch)
    body = encode(order_payload())

    response = client.post(
        "/api/webhooks/shopify/orders?location_id=404404",
        content=body,
        headers=signed_headers(body),
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "Location not found"


def test_webhook_with_bad_signature_returns_401_and_stores_nothing(monkeypatch):
    from app.models.failed_order_webhook import FailedOrderWebhook
    from app.models.order import Order

    client, db = _build_client(monkeypatch)
    body = encode(order_payload())

    response = client.post(
        f"/api/webhooks/shopify/orders?location_id={LOCATION_SHOPIFY_ID}",
        content=body,
        headers=signed_headers(body, secret=SECRET_C),
    )

    assert response.status_code == 401
    assert db.query(Order).count() == 0
    assert db.query(FailedOrderWebhook).count() == 0


def test_webhook_secret_sets_are_per_tenant(monkeypatch):
    client, _db = _build_client(monkeypatch)
    body = encode(order_payload())

    # Company 2 is configured with {B, C}; a payload signed with A is rejected there
    response = client.post(
        f"/api/webhooks/shopify/orders?location_id={OTHER_LOCATION_SHOPIFY_ID}",
        content=body,
        headers=signed_headers(body, secret=SECRET_A),
    )

    assert response.status_code == 401


def test_webhook_without_configured_secrets_returns_500(monkeypatch):
    client, db = _build_client(monkeypatch)
    db.add(Company(id=3, name="No Secrets"))
    db.add(CompanyLocation(id=3, company_id=3, name="Galle", shopify_location_id="30303"))
    db.commit()
    body = encode(order_payload())

    response = client.post(
        "/api/webhooks/shopify/orders?location_id=30303",
        content=body,
        headers=signed_headers(body),
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Webhook secret not configured"


def test_webhook_rejects_invalid_json(monkeypatch):
    client, _db = _build_client(monkeypatch)
    body = b"{not json"

    response = client.post(
        f"/api/webhooks/shopify/orders?location_id={LOCATION_SHOPIFY_ID}",
        content=body,
        headers=signed_headers(body),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid JSON"


def test_webhook_rejects_invalid_payload_with_field_details(monkeypatch):
    from app.models.failed_order_webhook import FailedOrderWebhook

    client, db = _build_client(monkeypatch)
    payload = order_payload()
    del payload["line_items"][1]["price"]
    payload["line_items"][0]["quantity"] = 0
    body = encode(payload)

    response = client.post(
        f"/api/webhooks/shopify/orders?location_id={LOCATION_SHOPIFY_ID}",
        content=body,
        headers=signed_headers(body),
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error"] == "Invalid order payload"
    assert "line_items.1.price" in detail["details"]
    assert "line_items.0.quantity" in detail["details"]
    assert db.query(FailedOrderWebhook).count() == 0
