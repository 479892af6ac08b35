from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass

from reqmetrics.infra.observability.sink import MetricHandle, MetricSink

logger = logging.getLogger("reqmetrics.startup")

REQUEST_LABELS: tuple[str, ...] = ("status_code", "method", "path")
IN_FLIGHT_LABELS: tuple[str, ...] = ("method",)

# 1ns 到 30s：同时覆盖纯内存处理器和慢速下游调用
DEFAULT_BUCKETS: tuple[float, ...] = (
    0.000000001,  # 1ns
    0.000000002,
    0.000000005,
    0.00000001,  # 10ns
    0.00000002,
    0.00000005,
    0.0000001,  # 100ns
    0.0000002,
    0.0000005,
    0.000001,  # 1µs
    0.000002,
    0.000005,
    0.00001,  # 10µs
    0.00002,
    0.00005,
    0.0001,  # 100µs
    0.0002,
    0.0005,
    0.001,  # 1ms
    0.002,
    0.005,
    0.01,  # 10ms
    0.02,
    0.05,
    0.1,  # 100ms
    0.2,
    0.5,
    1.0,  # 1s
    2.0,
    5.0,
    10.0,  # 10s
    15.0,
    20.0,
    30.0,
)


class LabelConflictError(ValueError):
    """A constant label reuses one of the per-request label names."""


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    return "_".join(part for part in (namespace, subsystem, name) if part)


class ConstLabels(Mapping[str, str]):
    """Immutable set of labels attached to every series of a MetricSet."""

    def __init__(self, labels: Mapping[str, str] | None = None):
        items = dict(labels or {})
        reserved = sorted(set(items) & set(REQUEST_LABELS))
        if reserved:
            raise LabelConflictError(
                "constant labels collide with request labels: " + ", ".join(reserved)
            )
        self._items = items

    @classmethod
    def build(
        cls, service_name: str = "", extra: Mapping[str, str] | None = None
    ) -> "ConstLabels":
        merged: dict[str, str] = {}
        if service_name:
            merged["service"] = service_name
        merged.update(extra or {})
        return cls(merged)

    def __getitem__(self, key: str) -> str:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"ConstLabels({self._items!r})"


@dataclass(frozen=True)
class MetricSet:
    requests_total: MetricHandle
    request_duration: MetricHandle
    requests_in_flight: MetricHandle
    const_labels: ConstLabels
    namespace: str = "http"
    subsystem: str = ""


def build_metric_set(
    sink: MetricSink,
    service_name: str = "",
    namespace: str = "http",
    subsystem: str = "",
    extra_labels: Mapping[str, str] | None = None,
    buckets: tuple[float, ...] = DEFAULT_BUCKETS,
) -> MetricSet:
    """Register the request counter, duration histogram and in-flight gauge.

    Registration errors raised by the sink (for example a metric with the
    same fully-qualified name already living on the registry) are logged and
    re-raised: two services sharing a registry need distinct namespaces. The
    instruments registered before the failure are removed again first.
    """
    const_labels = ConstLabels.build(service_name, extra_labels)
    requests_name = build_fq_name(namespace, subsystem, "requests_total")
    duration_name = build_fq_name(namespace, subsystem, "request_duration_seconds")
    in_flight_name = build_fq_name(namespace, subsystem, "requests_in_progress_total")

    registered: list[MetricHandle] = []
    try:
        requests_total = sink.register_counter(
            requests_name,
            "Count all http requests by status code, method and path.",
            const_labels,
            REQUEST_LABELS,
        )
        registered.append(requests_total)
        request_duration = sink.register_histogram(
            duration_name,
            "Duration of all HTTP requests by status code, method and path.",
            const_labels,
            REQUEST_LABELS,
            buckets,
        )
        registered.append(request_duration)
        requests_in_flight = sink.register_gauge(
            in_flight_name,
            "All the requests in progress",
            const_labels,
            IN_FLIGHT_LABELS,
        )
    except ValueError as exc:
        # 回滚已注册的指标，修正配置后可在同一注册表上重试
        for handle in registered:
            sink.unregister(handle)
        logger.error(
            "metric registration failed, check namespace/subsystem for clashes"
            " [event=metrics_registration_failed] (namespace=%s subsystem=%s error=%s)",
            namespace,
            subsystem,
            exc,
        )
        raise

    logger.info(
        "metrics registered [event=metrics_registered] (%s, %s, %s)",
        requests_name,
        duration_name,
        in_flight_name,
    )
    return MetricSet(
        requests_total=requests_total,
        request_duration=request_duration,
        requests_in_flight=requests_in_flight,
        const_labels=const_labels,
        namespace=namespace,
        subsystem=subsystem,
    )
