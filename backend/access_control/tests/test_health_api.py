"""Testes para os endpoints de health check e observabilidade."""

from __future__ import annotations

from unittest.mock import AsyncMock

from access_control.core.metrics import record_decision
from access_control.tests.http_test_client import make_sync_asgi_client


def _build_app_with_postgres_check(monkeypatch, result):
    import access_control.main as app_module

    monkeypatch.setattr(app_module, "_check_postgres", AsyncMock(return_value=result))
    return app_module.app


def test_health_endpoint_returns_dependency_map(monkeypatch):
    app_main = _build_app_with_postgres_check(monkeypatch, {"status": "connected"})

    resp = make_sync_asgi_client(app_main).get("/health")

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["status"] == "healthy"
    assert payload["dependencies"]["postgres"]["status"] == "connected"


def test_health_returns_503_when_database_is_down(monkeypatch):
    app_main = _build_app_with_postgres_check(
        monkeypatch, {"status": "disconnected", "error": "timeout"}
    )

    resp = make_sync_asgi_client(app_main).get("/health")

    assert resp.status_code == 503
    assert resp.json()["detail"]["status"] == "unhealthy"


def test_live_endpoint_and_request_id_header():
    import access_control.main as app_module

    resp = make_sync_asgi_client(app_module.app).get(
        "/health/live", headers={"X-Request-Id": "req-123"}
    )

    assert resp.status_code == 200
    assert resp.json()["status"] == "alive"
    assert resp.headers["X-Request-Id"] == "req-123"
    assert "X-Request-Duration-Ms" in resp.headers


def test_metrics_endpoint_exposes_decision_counters():
    import access_control.main as app_module

    record_decision("membership", "deny", "ORGANIZATION_REQUIRED")
    resp = make_sync_asgi_client(app_module.app).get("/metrics")

    assert resp.status_code == 200
    assert "access_decisions_total" in resp.text
    assert 'code="ORGANIZATION_REQUIRED"' in resp.text
