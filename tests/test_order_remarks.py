from app.models.order import Order
from app.models.order_remark import OrderRemark
from app.models.user import User
from app.routers.order_remarks import router as order_remarks_router
from tests.db_support import build_client, build_session_factory, seed_companies


def _setup(monkeypatch, user_id=1):
    session_factory = build_session_factory(monkeypatch)
    db = session_factory()
    seed_companies(db)
    order = Order(company_id=1, company_location_id=1, shopify_order_id="5550001", name="#1001")
    db.add(order)
    db.commit()
    client = build_client(db, [order_remarks_router], user=db.get(User, user_id))
    return client, db, order


def test_create_list_update_delete_remark(monkeypatch):
    client, db, order = _setup(monkeypatch)
    url = f"/api/admin/orders/{order.id}/remarks"

    created = client.post(url, json={"stage": "print", "content": " Use gift wrap ", "type": "external"})
    assert created.status_code == 201
    remark = created.json()
    assert remark["stage"] == "print"
    assert remark["content"] == "Use gift wrap"
    assert remark["added_by_id"] == 1

    listed = client.get(url)
    assert [row["id"] for row in listed.json()] == [remark["id"]]

    updated = client.patch(f"{url}/{remark['id']}", json={"show_on_invoice": True})
    assert updated.status_code == 200
    assert updated.json()["show_on_invoice"] is True
    assert updated.json()["content"] == "Use gift wrap"

    deleted = client.delete(f"{url}/{remark['id']}")
    assert deleted.status_code == 200
    assert db.query(OrderRemark).count() == 0


def test_remark_stage_and_content_are_validated(monkeypatch):
    client, _db, order = _setup(monkeypatch)
    url = f"/api/admin/orders/{order.id}/remarks"

    bad_stage = client.post(url, json={"stage": "shipped", "content": "hello"})
    blank = client.post(url, json={"stage": "print", "content": "   "})
    too_long = client.post(url, json={"stage": "print", "content": "x" * 2001})

    assert bad_stage.status_code == 422
    assert blank.status_code == 422
    assert too_long.status_code == 422


def test_invoice_stage_remark_is_allowed(monkeypatch):
    client, _db, order = _setup(monkeypatch)

    response = client.post(
        f"/api/admin/orders/{order.id}/remarks",
        json={"stage": "invoice_complete", "content": "Paid in cash", "show_on_invoice": True},
    )

    assert response.status_code == 201


def test_remarks_require_manage_permission_to_write(monkeypatch):
    client, _db, order = _setup(monkeypatch, user_id=6)
    url = f"/api/admin/orders/{order.id}/remarks"

    assert client.get(url).status_code == 200
    assert client.post(url, json={"stage": "print", "content": "hi"}).status_code == 403


def test_remarks_of_other_company_order_are_hidden(monkeypatch):
    client, _db, order = _setup(monkeypatch, user_id=7)

    response = client.get(f"/api/admin/orders/{order.id}/remarks")

    assert response.status_code == 404


def test_unknown_remark_returns_404(monkeypatch):
    client, _db, order = _setup(monkeypatch)

    response = client.patch(f"/api/admin/orders/{order.id}/remarks/999", json={"content": "x"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Remark not found"
