from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace

from prometheus_client import CollectorRegistry
from starlette.applications import Starlette

from reqmetrics.common.config import (
    DEFAULT_EXPOSE_PATH,
    DEFAULT_NAMESPACE,
    DEFAULT_SERVICE_NAME,
    Settings,
)
from reqmetrics.infra.observability.interceptor import Interceptor, InterceptorConfig
from reqmetrics.infra.observability.metrics import MetricSet, build_metric_set
from reqmetrics.infra.observability.middleware import MetricsMiddleware, metrics_endpoint
from reqmetrics.infra.observability.sink import PrometheusSink, default_sink


@dataclass
class MetricsConfig:
    registry: CollectorRegistry | None = None
    service_name: str = ""
    namespace: str = ""
    subsystem: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    skip_paths: list[str] = field(default_factory=list)
    full_paths: bool = False

    def with_defaults(self) -> "MetricsConfig":
        return replace(
            self,
            service_name=self.service_name or DEFAULT_SERVICE_NAME,
            namespace=self.namespace or DEFAULT_NAMESPACE,
        )


class HttpMetrics:
    """Wires a MetricSet, an Interceptor and the exposition route together.

    Only this composition layer ever falls back to the process-wide
    ``prometheus_client.REGISTRY``; pass ``registry`` to keep metrics apart.

    For ``namespace="my_app"``, ``subsystem="http"`` and
    ``labels={"key1": "value1"}`` the request counter is exported as
    ``my_app_http_requests_total{key1="value1",...}``.
    """

    def __init__(
        self,
        sink: PrometheusSink,
        metrics: MetricSet,
        config: InterceptorConfig | None = None,
    ):
        self.sink = sink
        self.metrics = metrics
        self.interceptor = Interceptor(metrics, config)

    @classmethod
    def create(
        cls,
        registry: CollectorRegistry | None,
        service_name: str,
        namespace: str,
        subsystem: str,
        labels: Mapping[str, str] | None = None,
        skip_paths: Iterable[str] = (),
        full_paths: bool = False,
    ) -> "HttpMetrics":
        sink = PrometheusSink(registry) if registry is not None else default_sink()
        metric_set = build_metric_set(sink, service_name, namespace, subsystem, labels)
        config = InterceptorConfig(
            skip_paths=frozenset(skip_paths), full_paths=full_paths
        )
        return cls(sink, metric_set, config)

    @classmethod
    def new(cls, service_name: str) -> "HttpMetrics":
        return cls.create(None, service_name, DEFAULT_NAMESPACE, "")

    @classmethod
    def with_namespace(
        cls, service_name: str, namespace: str, subsystem: str
    ) -> "HttpMetrics":
        return cls.create(None, service_name, namespace, subsystem)

    @classmethod
    def with_labels(
        cls, labels: Mapping[str, str], namespace: str, subsystem: str
    ) -> "HttpMetrics":
        return cls.create(None, "", namespace, subsystem, labels)

    @classmethod
    def with_registry(
        cls,
        registry: CollectorRegistry,
        service_name: str,
        namespace: str,
        subsystem: str,
        labels: Mapping[str, str] | None = None,
    ) -> "HttpMetrics":
        return cls.create(registry, service_name, namespace, subsystem, labels)

    @classmethod
    def from_config(cls, config: MetricsConfig) -> "HttpMetrics":
        config = config.with_defaults()
        return cls.create(
            config.registry,
            config.service_name,
            config.namespace,
            config.subsystem,
            config.labels,
            config.skip_paths,
            config.full_paths,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, registry: CollectorRegistry | None = None
    ) -> "HttpMetrics":
        return cls.from_config(
            MetricsConfig(
                registry=registry,
                service_name=settings.METRICS_SERVICE_NAME,
                namespace=settings.METRICS_NAMESPACE,
                subsystem=settings.METRICS_SUBSYSTEM,
                labels=dict(settings.METRICS_LABELS),
                skip_paths=list(settings.METRICS_SKIP_PATHS),
                full_paths=settings.METRICS_FULL_PATHS,
            )
        )

    @property
    def expose_path(self) -> str:
        return self.interceptor.config.expose_path

    def instrument(self, app: Starlette) -> Starlette:
        app.add_middleware(MetricsMiddleware, interceptor=self.interceptor)
        return app

    def register_at(self, app: Starlette, url: str = DEFAULT_EXPOSE_PATH) -> None:
        """Serve the registry at ``url`` and keep that route out of the metrics."""
        self.interceptor.config = replace(self.interceptor.config, expose_path=url)
        app.add_route(
            url, metrics_endpoint(self.sink), methods=["GET"], include_in_schema=False
        )
