from reqmetrics.infra.observability.instrumentation import HttpMetrics, MetricsConfig
from reqmetrics.infra.observability.interceptor import (
    Interceptor,
    InterceptorConfig,
    RequestState,
    resolve_status_code,
)
from reqmetrics.infra.observability.metrics import (
    DEFAULT_BUCKETS,
    ConstLabels,
    LabelConflictError,
    MetricSet,
    build_metric_set,
)
from reqmetrics.infra.observability.middleware import MetricsMiddleware
from reqmetrics.infra.observability.sink import MetricSink, PrometheusSink

__all__ = [
    "DEFAULT_BUCKETS",
    "ConstLabels",
    "HttpMetrics",
    "Interceptor",
    "InterceptorConfig",
    "LabelConflictError",
    "MetricSet",
    "MetricSink",
    "MetricsConfig",
    "MetricsMiddleware",
    "PrometheusSink",
    "RequestState",
    "build_metric_set",
    "resolve_status_code",
]
