"""Metric sink backed by ``prometheus_client``.

The interceptor never talks to ``prometheus_client`` directly; it only sees
the :class:`MetricSink` protocol below, so tests can swap in fakes and the
registry stays an explicit dependency.
"""

from __future__ import annotations

from typing import Mapping, Protocol, Sequence

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram
from prometheus_client.exposition import choose_encoder


class MetricChild(Protocol):
    def inc(self, amount: float = 1) -> None: ...

    def dec(self, amount: float = 1) -> None: ...

    def observe(self, amount: float) -> None: ...


class MetricHandle(Protocol):
    def labels(self, *values: str) -> MetricChild: ...


class MetricSink(Protocol):
    def register_counter(
        self,
        name: str,
        documentation: str,
        const_labels: Mapping[str, str],
        labelnames: Sequence[str],
    ) -> MetricHandle: ...

    def register_histogram(
        self,
        name: str,
        documentation: str,
        const_labels: Mapping[str, str],
        labelnames: Sequence[str],
        buckets: Sequence[float],
    ) -> MetricHandle: ...

    def register_gauge(
        self,
        name: str,
        documentation: str,
        const_labels: Mapping[str, str],
        labelnames: Sequence[str],
    ) -> MetricHandle: ...

    def unregister(self, handle: MetricHandle) -> None: ...


class BoundMetric:
    """Prometheus metric family with constant label values pre-bound.

    ``prometheus_client`` has no notion of constant labels, so they are
    registered as ordinary leading label names and filled in on every
    ``labels()`` call.
    """

    def __init__(self, metric, const_values: Sequence[str]):
        self.metric = metric
        self._const_values = tuple(const_values)

    def labels(self, *values: str):
        return self.metric.labels(*self._const_values, *values)


class PrometheusSink:
    def __init__(self, registry: CollectorRegistry):
        self.registry = registry

    def register_counter(self, name, documentation, const_labels, labelnames):
        metric = Counter(
            name,
            documentation,
            [*const_labels.keys(), *labelnames],
            registry=self.registry,
        )
        return BoundMetric(metric, list(const_labels.values()))

    def register_histogram(
        self, name, documentation, const_labels, labelnames, buckets
    ):
        metric = Histogram(
            name,
            documentation,
            [*const_labels.keys(), *labelnames],
            registry=self.registry,
            buckets=tuple(buckets),
        )
        return BoundMetric(metric, list(const_labels.values()))

    def register_gauge(self, name, documentation, const_labels, labelnames):
        metric = Gauge(
            name,
            documentation,
            [*const_labels.keys(), *labelnames],
            registry=self.registry,
        )
        return BoundMetric(metric, list(const_labels.values()))

    def unregister(self, handle: BoundMetric) -> None:
        self.registry.unregister(handle.metric)

    def expose(self, accept_header: str | None = None) -> tuple[bytes, str]:
        """Render the registry in the format negotiated from ``Accept``."""
        encoder, content_type = choose_encoder(accept_header or "")
        return encoder(self.registry), content_type


def default_sink() -> PrometheusSink:
    # 进程级默认注册表，仅供组合根（HttpMetrics）使用
    return PrometheusSink(REGISTRY)
