from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from app.models.catalog import UNCATEGORIZED_CATEGORY, Category, ProductItem, Vendor
from app.models.company import CompanyLocation
from app.models.customer import Customer
from app.models.failed_order_webhook import FailedOrderWebhook
from app.models.order import Order, OrderLineItem
from app.models.sms import SmsNotificationConfig
from app.routers.shopify_webhooks import router as shopify_webhooks_router
from app.services import order_ingestion
from app.services.order_validation import validate_order_payload
from app.services.sms_gateway import SendSmsResult
from tests.db_support import build_client, build_session_factory, seed_companies
from tests.fixtures_data import LOCATION_SHOPIFY_ID, encode, order_payload, signed_headers

WEBHOOK_URL = f"/api/webhooks/shopify/orders?location_id={LOCATION_SHOPIFY_ID}"


def _build_client(monkeypatch):
    session_factory = build_session_factory(monkeypatch)
    db = session_factory()
    seed_companies(db)
    return build_client(db, [shopify_webhooks_router]), db


def _deliver(client, payload):
    body = encode(payload)
    return client.post(WEBHOOK_URL, content=body, headers=signed_headers(body))


def test_new_order_is_persisted_with_line_items_and_customer(monkeypatch):
    client, db = _build_client(monkeypatch)

    response = _deliver(client, order_payload())

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["created"] is True

    order = db.query(Order).one()
    assert body["order_id"] == order.id
    assert order.shopify_order_id == "5550001"
    assert order.fulfillment_stage == "order_received"
    assert order.assigned_merchant_id == 5
    assert order.total_price == Decimal("2500.00")
    assert order.total_shipping == Decimal("200.00")
    assert order.customer_email == "nimal@example.com"
    assert order.customer_phone == "0771234567"
    assert order.raw_payload["client_details"] == {"browser_ip": "203.0.113.10"}
    assert [line.shopify_line_item_id for line in order.line_items] == ["7001", "7002"]

    customer = db.query(Customer).one()
    assert customer.shopify_customer_id == "9001"
    assert customer.order_count == 1
    assert order.customer_id == customer.id

    items = {item.shopify_variant_id: item for item in db.query(ProductItem).all()}
    assert set(items) == {"8001", "8002"}
    assert items["8001"].product_title == "Green Tea"
    assert items["8001"].vendor.name == "Ceylon Leaf"
    assert items["8002"].vendor_id is None
    assert items["8002"].category.name == UNCATEGORIZED_CATEGORY


def test_redelivery_is_idempotent(monkeypatch):
    client, db = _build_client(monkeypatch)
    payload = order_payload()

    first = _deliver(client, payload)
    second = _deliver(client, payload)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["created"] is False
    assert second.json()["order_id"] == first.json()["order_id"]
    assert db.query(Order).count() == 1
    assert db.query(OrderLineItem).count() == 2
    assert db.query(ProductItem).count() == 2
    assert db.query(Vendor).count() == 1
    assert db.query(Category).count() == 1
    assert db.query(Customer).one().order_count == 1


def test_redelivery_refreshes_fields_without_touching_stage(monkeypatch):
    client, db = _build_client(monkeypatch)
    _deliver(client, order_payload())
    order = db.query(Order).one()
    order.fulfillment_stage = "print"
    db.commit()

    updated = order_payload(total_price="2600.00", financial_status="refunded")
    updated["line_items"][0]["quantity"] = 3
    updated["line_items"] = updated["line_items"][:1]
    response = _deliver(client, updated)

    assert response.status_code == 200
    db.expire_all()
    order = db.query(Order).one()
    assert order.total_price == Decimal("2600.00")
    assert order.financial_status == "refunded"
    assert order.fulfillment_stage == "print"
    assert [(line.shopify_line_item_id, line.quantity) for line in order.line_items] == [("7001", 3)]
    assert db.query(OrderLineItem).count() == 1


def test_overlong_snapshot_fields_are_cut_to_column_width(monkeypatch):
    client, db = _build_client(monkeypatch)
    payload = order_payload(
        name="#" + "9" * 80,
        currency="  LKR-RUPEES-EXTRA ",
        financial_status="p" * 60,
        fulfillment_status="f" * 60,
        email="a" * 250 + "@example.com",
        contact_email=None,
    )
    payload["customer"]["first_name"] = "N" * 120

    response = _deliver(client, payload)

    assert response.status_code == 200
    order = db.query(Order).one()
    assert len(order.name) == 64
    assert order.currency == "LKR-RUPEES"
    assert len(order.financial_status) == 50
    assert len(order.fulfillment_status) == 50
    assert len(order.customer_email) == 254
    assert len(order.customer_first_name) == 100


def test_shipping_line_without_price_uses_discounted_price(monkeypatch):
    client, db = _build_client(monkeypatch)
    payload = order_payload(
        shipping_lines=[
            {"title": "Express", "price": None, "discounted_price": "150.00"},
            {"title": "Pickup"},
            {"title": "Standard", "price": "200.00", "discounted_price": "0.00"},
        ]
    )

    response = _deliver(client, payload)

    assert response.status_code == 200
    order = db.query(Order).one()
    assert order.total_shipping == Decimal("350.00")
    assert order.shipping_lines[0]["discounted_price"] == "150.00"


def test_failure_midway_rolls_back_everything_and_records_ledger(monkeypatch):
    client, db = _build_client(monkeypatch)
    real_upsert = order_ingestion.upsert_line_item
    calls = []

    def _failing_upsert(db_, order, line_item, location):
        calls.append(line_item.id)
        if len(calls) == 2:
            raise RuntimeError("variant lookup exploded")
        return real_upsert(db_, order, line_item, location)

    monkeypatch.setattr(order_ingestion, "upsert_line_item", _failing_upsert)
    payload = order_payload()

    response = _deliver(client, payload)

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["error"] == "Failed to process order"
    assert "variant lookup exploded" in detail["details"]

    assert db.query(Order).count() == 0
    assert db.query(OrderLineItem).count() == 0
    assert db.query(ProductItem).count() == 0
    assert db.query(Customer).count() == 0

    entry = db.query(FailedOrderWebhook).one()
    assert entry.company_id == 1
    assert entry.company_location_id == 1
    assert entry.shopify_order_id == "5550001"
    assert entry.topic == "orders/create"
    assert entry.payload == payload
    assert entry.attempts == 1
    assert entry.resolved_at is None
    assert "RuntimeError" in entry.error_stack


def test_repeated_failure_updates_the_open_ledger_entry(monkeypatch):
    client, db = _build_client(monkeypatch)

    def _always_fail(*_args, **_kwargs):
        raise RuntimeError("still broken")

    monkeypatch.setattr(order_ingestion, "upsert_line_item", _always_fail)

    _deliver(client, order_payload())
    _deliver(client, order_payload(total_price="99.00"))

    entry = db.query(FailedOrderWebhook).one()
    assert entry.attempts == 2
    assert entry.payload["total_price"] == "99.00"
    assert entry.error_message == "still broken"


def test_successful_redelivery_resolves_pending_ledger_entries(monkeypatch):
    client, db = _build_client(monkeypatch)
    real_upsert = order_ingestion.upsert_line_item

    def _always_fail(*_args, **_kwargs):
        raise RuntimeError("temporary outage")

    monkeypatch.setattr(order_ingestion, "upsert_line_item", _always_fail)
    _deliver(client, order_payload())
    monkeypatch.setattr(order_ingestion, "upsert_line_item", real_upsert)

    response = _deliver(client, order_payload())

    assert response.status_code == 200
    db.expire_all()
    assert db.query(FailedOrderWebhook).one().resolved_at is not None


def test_unique_collision_replays_the_unit_once(monkeypatch):
    session_factory = build_session_factory(monkeypatch)
    db = session_factory()
    seed_companies(db)
    location = db.get(CompanyLocation, 1)
    validated = validate_order_payload(order_payload()).payload
    real_ingest = order_ingestion._ingest
    attempts = []

    def _colliding_ingest(*args, **kwargs):
        attempts.append(1)
        if len(attempts) == 1:
            raise IntegrityError("INSERT INTO orders", {}, Exception("UNIQUE constraint failed"))
        return real_ingest(*args, **kwargs)

    monkeypatch.setattr(order_ingestion, "_ingest", _colliding_ingest)

    result = order_ingestion.ingest_order(db, validated, location, raw_payload=order_payload())

    assert len(attempts) == 2
    assert result.created is True
    assert db.query(Order).count() == 1


def test_new_order_sends_order_received_sms_once(monkeypatch):
    client, db = _build_client(monkeypatch)
    db.add(
        SmsNotificationConfig(
            company_id=1,
            trigger="order_received",
            enabled=True,
            template="Hi {customerName}, order {orderName} received",
            send_to_customer=True,
            additional_recipients=[],
        )
    )
    db.commit()
    sent = []

    def _fake_send_sms(_db, *, company_id, phone_number, message, sent_by_id=None):
        sent.append((company_id, phone_number, message))
        return SendSmsResult(success=True)

    monkeypatch.setattr("app.services.order_sms.send_sms", _fake_send_sms)

    _deliver(client, order_payload())
    _deliver(client, order_payload())

    assert sent == [(1, "0771234567", "Hi Nimal Perera, order #1001 received")]
