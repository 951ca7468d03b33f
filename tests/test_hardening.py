from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from app.core import startup_checks
from app.core.logging_setup import JsonFormatter
from app.core.metrics import InMemoryRequestMetrics
from app.core.request_context import (
    clear_request_context,
    get_company_id,
    get_request_id,
    scoped_context,
    set_request_context,
)
from app.services.event_bus import EventBus


def test_request_id_is_returned_in_response_header(monkeypatch):
    from app import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/health")
        echoed = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    UUID(response.headers.get("X-Request-ID"))
    assert echoed.headers.get("X-Request-ID") == "req-123"


def test_cors_allows_known_origin_and_blocks_unknown_origin(monkeypatch):
    from app import main
    from app.core.config import CORS_ORIGINS

    if not CORS_ORIGINS:
        pytest.skip("no CORS origins configured")
    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    allowed_origin = CORS_ORIGINS[0]
    with TestClient(main.app) as client:
        allowed_response = client.options(
            "/health",
            headers={"origin": allowed_origin, "access-control-request-method": "GET"},
        )
        blocked_response = client.options(
            "/health",
            headers={"origin": "https://blocked-origin.example", "access-control-request-method": "GET"},
        )

    assert allowed_response.status_code == 200
    assert allowed_response.headers.get("access-control-allow-origin") == allowed_origin
    assert blocked_response.status_code == 400
    assert blocked_response.headers.get("access-control-allow-origin") is None


def test_production_environment_rejects_sqlite(monkeypatch):
    monkeypatch.setattr(startup_checks, "IS_PROD", True)
    monkeypatch.setattr(startup_checks, "DATABASE_URL", "sqlite:///./forbidden.db")

    with pytest.raises(RuntimeError, match="SQLite is forbidden"):
        startup_checks.validate_database_environment()


def test_migration_check_fails_when_pending_migration(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "pending.db"
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)")
    conn.execute("INSERT INTO alembic_version (version_num) VALUES ('000000000000')")
    conn.commit()
    conn.close()

    from sqlalchemy import create_engine

    monkeypatch.setattr(startup_checks, "ENV_NORMALIZED", "production")
    engine = create_engine(f"sqlite:///{db_path}")

    with pytest.raises(RuntimeError, match="Pending migrations"):
        startup_checks.ensure_migrations_applied(
            engine=engine,
            alembic_config_path=Path(__file__).resolve().parents[1] / "alembic.ini",
        )


def test_migration_check_is_skipped_in_test_env(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(startup_checks, "ENV_NORMALIZED", "test")

    startup_checks.ensure_migrations_applied(engine=None, alembic_config_path=tmp_path / "missing.ini")


def test_metrics_snapshot_per_company() -> None:
    metrics = InMemoryRequestMetrics()

    metrics.observe(endpoint="/api/webhooks/shopify/orders", method="POST", status_code=200, duration_ms=10, company_id="1")
    metrics.observe(endpoint="/api/webhooks/shopify/orders", method="POST", status_code=500, duration_ms=30, company_id="1")
    metrics.observe(endpoint="/api/public/rider-delivery/x", method="GET", status_code=404, duration_ms=20)

    per_company = metrics.snapshot_per_company()
    endpoints = metrics.snapshot()

    assert per_company == {
        "1": {"total_requests": 2, "total_duration_ms": 40.0, "avg_duration_ms": 20.0, "error_count": 1}
    }
    assert endpoints["POST /api/webhooks/shopify/orders"]["total_requests"] == 2
    assert endpoints["GET /api/public/rider-delivery/x"]["error_count"] == 1


def test_json_log_lines_carry_context_and_mask_secrets():
    set_request_context(request_id="req-9", company_id="1")
    try:
        record = logging.LogRecord(
            name="app.services.sms_gateway",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="login password=%s token: %s",
            args=("hunter2", "abc.def"),
            exc_info=None,
        )
        record.order_id = 42
        line = json.loads(JsonFormatter("%(message)s").format(record))
    finally:
        clear_request_context()

    assert line["request_id"] == "req-9"
    assert line["company_id"] == "1"
    assert line["order_id"] == 42
    assert "hunter2" not in line["message"]
    assert "abc.def" not in line["message"]


def test_event_bus_isolates_failing_handlers(caplog):
    bus = EventBus()
    received = []

    def _broken(_payload):
        raise RuntimeError("boom")

    bus.subscribe("order.notification", _broken)
    bus.subscribe("order.notification", received.append)
    bus.subscribe("order.notification", received.append)

    with caplog.at_level(logging.ERROR):
        delivered = bus.emit("order.notification", {"order_id": 1, "trigger": "dispatched"})

    assert delivered == 1
    assert received == [{"order_id": 1, "trigger": "dispatched"}]
    assert "event handler failed" in caplog.text

    bus.unsubscribe("order.notification", _broken)
    assert bus.emit("order.notification", {"order_id": 2}) == 1
    assert bus.emit("unknown.event", {}) == 0


def test_production_requires_identity_secret_and_https_links(monkeypatch):
    monkeypatch.setattr(startup_checks, "IS_PROD", True)
    monkeypatch.setattr(startup_checks, "IDENTITY_JWT_SECRET", "")

    with pytest.raises(RuntimeError, match="IDENTITY_JWT_SECRET"):
        startup_checks.validate_runtime_settings()

    monkeypatch.setattr(startup_checks, "IDENTITY_JWT_SECRET", "s3cret")
    monkeypatch.setattr(startup_checks, "APP_PUBLIC_URL", "http://cosmo.example.com")

    with pytest.raises(RuntimeError, match="APP_PUBLIC_URL"):
        startup_checks.validate_runtime_settings()

    monkeypatch.setattr(startup_checks, "APP_PUBLIC_URL", "cosmo.example.com")
    monkeypatch.setattr(startup_checks, "SHOPIFY_ADMIN_ACCESS_TOKEN", "shpat_x")
    startup_checks.validate_runtime_settings()


def test_metrics_use_route_template_not_raw_path(monkeypatch):
    from app import main
    from app.core.metrics import request_metrics

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)
    request_metrics.reset()

    with TestClient(main.app) as client:
        client.get("/health")
        client.get("/no-such-page")

    snapshot = request_metrics.snapshot()
    assert snapshot["GET /health"]["total_requests"] == 1
    assert snapshot["GET /no-such-page"]["error_count"] == 1


def test_scoped_context_restores_outer_values():
    set_request_context(request_id="outer", company_id="1")
    try:
        with scoped_context(company_id="2"):
            assert get_company_id() == "2"
            assert get_request_id() == "outer"
        assert get_company_id() == "1"
    finally:
        clear_request_context()
