from decimal import Decimal

from app.models.catalog import Category, ProductItem, Vendor
from app.routers.shopify_webhooks import router as shopify_webhooks_router
from tests.db_support import build_client, build_session_factory, seed_companies
from tests.fixtures_data import LOCATION_SHOPIFY_ID, SECRET_C, encode, product_payload, signed_headers

PRODUCTS_URL = f"/api/webhooks/shopify/products?location_id={LOCATION_SHOPIFY_ID}"


def _setup(monkeypatch):
    session_factory = build_session_factory(monkeypatch)
    db = session_factory()
    seed_companies(db)
    return build_client(db, [shopify_webhooks_router]), db


def _deliver(client, payload, secret=None):
    body = encode(payload)
    headers = signed_headers(body, topic="products/update") if secret is None else signed_headers(body, secret)
    return client.post(PRODUCTS_URL, content=body, headers=headers)


def test_product_webhook_upserts_one_item_per_variant(monkeypatch):
    client, db = _setup(monkeypatch)

    response = _deliver(client, product_payload())

    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert len(response.json()["product_item_ids"]) == 2

    items = {item.shopify_variant_id: item for item in db.query(ProductItem).all()}
    assert set(items) == {"8001", "8003"}
    small = items["8001"]
    assert small.shopify_product_id == "6001"
    assert small.product_title == "Green Tea"
    assert small.variant_title == "100g"
    assert small.price == Decimal("1000.00")
    assert small.inventory_quantity == 40
    assert small.tags == ["tea", "green", "organic"]
    assert small.image_url == "https://cdn.example.com/green-tea.png"
    assert small.vendor.name == "Ceylon Leaf"
    assert small.category.name == "Loose Leaf"
    assert small.category.full_name == "Food > Tea > Loose Leaf"
    assert items["8003"].image_url == "https://cdn.example.com/green-tea-250.png"


def test_product_redelivery_updates_in_place(monkeypatch):
    client, db = _setup(monkeypatch)
    _deliver(client, product_payload())

    updated = product_payload(title="Green Tea Premium")
    updated["variants"][0]["price"] = "1100.00"
    response = _deliver(client, updated)

    assert response.status_code == 200
    db.expire_all()
    assert db.query(ProductItem).count() == 2
    assert db.query(Vendor).count() == 1
    assert db.query(Category).count() == 1
    item = db.query(ProductItem).filter(ProductItem.shopify_variant_id == "8001").one()
    assert item.product_title == "Green Tea Premium"
    assert item.price == Decimal("1100.00")


def test_product_without_category_is_uncategorized(monkeypatch):
    client, db = _setup(monkeypatch)

    response = _deliver(client, product_payload(category=None, vendor=None))

    assert response.status_code == 200
    item = db.query(ProductItem).first()
    assert item.vendor_id is None
    assert item.category.name == "Uncategorized"


def test_product_webhook_validates_payload(monkeypatch):
    client, _db = _setup(monkeypatch)

    response = _deliver(client, product_payload(variants=[{"id": 1}]))

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error"] == "Invalid product payload"
    assert "variants.0.price" in detail["details"]


def test_product_webhook_checks_signature(monkeypatch):
    client, db = _setup(monkeypatch)

    response = _deliver(client, product_payload(), secret=SECRET_C)

    assert response.status_code == 401
    assert db.query(ProductItem).count() == 0
