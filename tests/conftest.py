from __future__ import annotations

from dataclasses import dataclass

import pytest
from prometheus_client import CollectorRegistry

from reqmetrics.common.config import get_settings
from reqmetrics.infra.observability.sink import PrometheusSink


@dataclass(frozen=True)
class FakeRequestContext:
    method: str
    route_path: str
    path: str


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def sink(registry: CollectorRegistry) -> PrometheusSink:
    return PrometheusSink(registry)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_ctx():
    def _make(
        route_path: str = "/users/{user_id}",
        path: str | None = None,
        method: str = "GET",
    ) -> FakeRequestContext:
        return FakeRequestContext(
            method=method, route_path=route_path, path=path or route_path
        )

    return _make
