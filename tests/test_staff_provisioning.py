import json

import httpx

from app.deps import get_identity_client, management_token_cache
from app.models.user import User
from app.routers.staff import router as staff_router
from app.services.identity_management import IdentityManagementClient, ManagementTokenCache
from tests.db_support import build_client, build_session_factory, seed_companies

STAFF_URL = "/api/admin/staff"


def _body(**overrides):
    body = {
        "email": " Rider.Two@Cosmo.test ",
        "first_name": "Kamal",
        "last_name": "Silva",
        "password": "Deliver123",
        "confirm_password": "Deliver123",
        "mobile": "0775556667",
        "is_rider": True,
    }
    body.update(overrides)
    return body


def _setup(monkeypatch, handler, permissions=("users.manage",)):
    session_factory = build_session_factory(monkeypatch)
    db = session_factory()
    seed_companies(db)
    admin = db.get(User, 1)
    admin.permissions = list(permissions)
    db.commit()
    client = build_client(db, [staff_router], user=admin)
    identity = IdentityManagementClient(
        ManagementTokenCache(),
        domain="cosmo.auth.example.com",
        client_id="m2m-id",
        client_secret="m2m-secret",
        connection="Username-Password-Authentication",
        transport=httpx.MockTransport(handler),
    )
    client.app.dependency_overrides[get_identity_client] = lambda: identity
    return client, db


def _provider(created):
    def _handler(request):
        if request.url.path == "/oauth/token":
            return httpx.Response(200, json={"access_token": "mgmt-token", "expires_in": 86400})
        created.append(json.loads(request.content))
        return httpx.Response(201, json={"user_id": "auth0|kamal"})

    return _handler


def test_create_staff_user_registers_login_then_company_user(monkeypatch):
    created = []
    client, db = _setup(monkeypatch, _provider(created))

    response = client.post(STAFF_URL, json=_body(permissions=["orders.read", "orders.read"]))

    assert response.status_code == 201
    body = response.json()
    assert body["auth_subject"] == "auth0|kamal"
    assert body["email"] == "rider.two@cosmo.test"
    assert body["name"] == "Kamal Silva"
    assert body["is_rider"] is True
    assert body["permissions"] == ["orders.read"]
    assert created[0]["given_name"] == "Kamal"
    stored = db.query(User).filter(User.auth_subject == "auth0|kamal").one()
    assert stored.company_id == 1


def test_duplicate_email_is_rejected_before_calling_provider(monkeypatch):
    created = []
    client, _db = _setup(monkeypatch, _provider(created))

    response = client.post(STAFF_URL, json=_body(email="manager@cosmo.test"))

    assert response.status_code == 409
    assert created == []


def test_weak_or_mismatched_password_is_422(monkeypatch):
    client, _db = _setup(monkeypatch, _provider([]))

    weak = client.post(STAFF_URL, json=_body(password="alllowercase1", confirm_password="alllowercase1"))
    mismatch = client.post(STAFF_URL, json=_body(confirm_password="Deliver124"))

    assert weak.status_code == 422
    assert mismatch.status_code == 422


def test_provider_failure_leaves_no_local_user(monkeypatch):
    def _handler(request):
        if request.url.path == "/oauth/token":
            return httpx.Response(200, json={"access_token": "mgmt-token", "expires_in": 86400})
        return httpx.Response(400, json={"message": "PasswordStrengthError"})

    client, db = _setup(monkeypatch, _handler)
    before = db.query(User).count()

    response = client.post(STAFF_URL, json=_body())

    assert response.status_code == 502
    assert response.json()["detail"]["details"] == "PasswordStrengthError"
    assert db.query(User).count() == before


def test_staff_creation_requires_users_manage(monkeypatch):
    client, _db = _setup(monkeypatch, _provider([]), permissions=("orders.manage",))

    assert client.post(STAFF_URL, json=_body()).status_code == 403


def test_identity_dependency_shares_process_token_cache():
    first = get_identity_client()
    second = get_identity_client()

    assert first.cache is management_token_cache
    assert second.cache is first.cache
