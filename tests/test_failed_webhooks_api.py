from app.models.failed_order_webhook import FailedOrderWebhook
from app.models.order import Order
from app.models.user import User
from app.routers.failed_webhooks import router as failed_webhooks_router
from app.services import order_ingestion
from app.services.datetime_utils import utc_now
from app.services.failed_webhooks import shopify_admin_order_url
from tests.db_support import build_client, build_session_factory, seed_companies
from tests.fixtures_data import order_payload

BASE_URL = "/api/admin/orders/failed-webhooks"


def _setup(monkeypatch, user_id=1):
    session_factory = build_session_factory(monkeypatch)
    db = session_factory()
    seed_companies(db)
    return build_client(db, [failed_webhooks_router], user=db.get(User, user_id)), db


def _entry(db, **fields):
    values = {
        "company_id": 1,
        "company_location_id": 1,
        "shopify_order_id": "5550001",
        "topic": "orders/create",
        "payload": order_payload(),
        "error_message": "database went away",
        "error_stack": "Traceback ...",
        "attempts": 1,
    }
    values.update(fields)
    entry = FailedOrderWebhook(**values)
    db.add(entry)
    db.commit()
    return entry


def test_list_shows_only_unresolved_entries_of_the_company(monkeypatch):
    client, db = _setup(monkeypatch, user_id=6)
    open_entry = _entry(db)
    _entry(db, shopify_order_id="5550002", resolved_at=utc_now())
    _entry(db, company_id=2, company_location_id=2, shopify_order_id="5550003")

    response = client.get(BASE_URL)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["limit"] == 10
    assert body["offset"] == 0
    assert [item["id"] for item in body["items"]] == [open_entry.id]
    assert "payload" not in body["items"][0]


def test_list_is_paginated(monkeypatch):
    client, db = _setup(monkeypatch)
    for index in range(3):
        _entry(db, shopify_order_id=f"55500{index}")

    response = client.get(f"{BASE_URL}?limit=2&offset=2")

    assert response.status_code == 200
    assert response.json()["total"] == 3
    assert len(response.json()["items"]) == 1


def test_detail_includes_payload_and_shopify_admin_link(monkeypatch):
    client, db = _setup(monkeypatch)
    entry = _entry(db)

    response = client.get(f"{BASE_URL}/{entry.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["payload"]["id"] == 5550001
    assert body["error_stack"] == "Traceback ..."
    assert body["shopify_admin_url"] == "https://admin.shopify.com/store/cosmo-tea/orders/5550001"


def test_detail_of_another_company_is_not_found(monkeypatch):
    client, db = _setup(monkeypatch)
    entry = _entry(db, company_id=2, company_location_id=2)

    response = client.get(f"{BASE_URL}/{entry.id}")

    assert response.status_code == 404


def test_shopify_admin_url_accepts_plain_store_handles():
    class _Location:
        shopify_shop_name = "https://Cosmo-Tea.myshopify.com/"

    assert shopify_admin_order_url(_Location(), "42") == "https://admin.shopify.com/store/cosmo-tea/orders/42"
    assert shopify_admin_order_url(None, "42") is None


def test_retry_ingests_stored_payload_and_resolves_entry(monkeypatch):
    client, db = _setup(monkeypatch)
    entry = _entry(db)

    response = client.post(f"{BASE_URL}/{entry.id}/retry")

    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert response.json()["created"] is True
    assert db.query(Order).count() == 1
    db.expire_all()
    assert db.get(FailedOrderWebhook, entry.id).resolved_at is not None


def test_retry_of_resolved_entry_is_rejected(monkeypatch):
    client, db = _setup(monkeypatch)
    entry = _entry(db, resolved_at=utc_now())

    response = client.post(f"{BASE_URL}/{entry.id}/retry")

    assert response.status_code == 400
    assert response.json()["detail"] == "Webhook already resolved"


def test_retry_with_invalid_stored_payload(monkeypatch):
    client, db = _setup(monkeypatch)
    entry = _entry(db, payload={"id": 5550001})

    response = client.post(f"{BASE_URL}/{entry.id}/retry")

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error"] == "Stored payload is no longer a valid order"
    assert "line_items" in detail["details"]


def test_failing_retry_updates_entry_in_place(monkeypatch):
    client, db = _setup(monkeypatch)
    entry = _entry(db)

    def _always_fail(*_args, **_kwargs):
        raise RuntimeError("catalog unavailable")

    monkeypatch.setattr(order_ingestion, "upsert_line_item", _always_fail)

    response = client.post(f"{BASE_URL}/{entry.id}/retry")

    assert response.status_code == 500
    assert response.json()["detail"] == {"error": "Retry failed", "details": "catalog unavailable"}
    db.expire_all()
    stored = db.query(FailedOrderWebhook).one()
    assert stored.id == entry.id
    assert stored.attempts == 2
    assert stored.error_message == "catalog unavailable"
    assert stored.resolved_at is None
    assert db.query(Order).count() == 0


def test_retry_requires_manage_permission(monkeypatch):
    client, db = _setup(monkeypatch, user_id=6)
    entry = _entry(db)

    response = client.post(f"{BASE_URL}/{entry.id}/retry")

    assert response.status_code == 403
