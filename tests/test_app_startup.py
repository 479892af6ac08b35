from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from reqmetrics.common.config import get_settings
from reqmetrics.main import create_app


def test_metrics_disabled(monkeypatch):
    monkeypatch.setenv("ENABLE_METRICS", "false")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    app = create_app(registry=CollectorRegistry())
    client = TestClient(app)

    assert client.get("/health").status_code == 200
    assert client.get("/metrics").status_code == 404
    assert not hasattr(app.state, "http_metrics")


def test_metrics_settings_from_environment(monkeypatch):
    monkeypatch.setenv("METRICS_PATH", "/internal/metrics")
    monkeypatch.setenv("METRICS_NAMESPACE", "shop")
    monkeypatch.setenv("METRICS_SUBSYSTEM", "api")
    monkeypatch.setenv("METRICS_SERVICE_NAME", "orders")
    monkeypatch.setenv("METRICS_LABELS", "region=eu")
    monkeypatch.setenv("METRICS_SKIP_PATHS", "/health")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    registry = CollectorRegistry()
    app = create_app(registry=registry)
    client = TestClient(app)
    client.get("/health")
    client.get("/users/1")
    client.get("/internal/metrics")

    labels = {"service": "orders", "region": "eu", "method": "GET"}
    assert registry.get_sample_value(
        "shop_api_requests_total",
        {**labels, "status_code": "200", "path": "/users/{user_id}"},
    ) == 1.0
    assert registry.get_sample_value(
        "shop_api_requests_total",
        {**labels, "status_code": "200", "path": "/health"},
    ) is None
    assert registry.get_sample_value(
        "shop_api_requests_total",
        {**labels, "status_code": "200", "path": "/internal/metrics"},
    ) is None
    assert app.state.http_metrics.expose_path == "/internal/metrics"


def test_conflicting_const_label_fails_startup(monkeypatch):
    monkeypatch.setenv("METRICS_LABELS", "method=GET")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    with pytest.raises(ValueError):
        create_app(registry=CollectorRegistry())


def test_shared_registry_needs_distinct_namespaces():
    registry = CollectorRegistry()
    create_app(registry=registry)
    with pytest.raises(ValueError):
        create_app(registry=registry)
