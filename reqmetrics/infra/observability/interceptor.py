"""Per-request measurement logic.

The interceptor is framework agnostic: it reads the HTTP method, the route
template and the literal path from a :class:`RequestContext`, and writes to
the three handles of a :class:`MetricSet`. The ASGI glue lives in
``middleware.py``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Protocol

from fastapi import status

from reqmetrics.common.config import DEFAULT_EXPOSE_PATH
from reqmetrics.infra.observability.metrics import MetricSet

logger = logging.getLogger("http")


class RequestContext(Protocol):
    @property
    def method(self) -> str: ...

    @property
    def route_path(self) -> str: ...

    @property
    def path(self) -> str: ...


@dataclass(frozen=True)
class InterceptorConfig:
    expose_path: str = DEFAULT_EXPOSE_PATH
    skip_paths: frozenset[str] = field(default_factory=frozenset)
    # 默认使用路由模板，字面路径会让每个参数值都生成一条新时间序列
    full_paths: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.skip_paths, frozenset):
            object.__setattr__(self, "skip_paths", frozenset(self.skip_paths))


@dataclass
class RequestState:
    start: float
    method: str
    excluded: bool = False
    in_flight: bool = False
    finished: bool = False
    status_code: int | None = None


def resolve_status_code(status_code: int | None, error: BaseException | None) -> int:
    """Pick the ``status_code`` label for a finished request.

    An error carrying an integer ``status_code`` (``HTTPException`` and
    friends) wins; without an error the response status is used; any other
    error is reported as 500.
    """
    if error is not None:
        code = getattr(error, "status_code", None)
        if isinstance(code, int) and not isinstance(code, bool):
            return code
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if status_code is None:
        # 未显式设置状态码时按框架默认值 200 处理
        return status.HTTP_200_OK
    return status_code


class Interceptor:
    def __init__(self, metrics: MetricSet, config: InterceptorConfig | None = None):
        self.metrics = metrics
        self.config = config or InterceptorConfig()

    def is_excluded(self, ctx: RequestContext) -> bool:
        config = self.config
        if ctx.route_path == config.expose_path:
            return True
        return ctx.route_path in config.skip_paths or ctx.path in config.skip_paths

    def path_label(self, ctx: RequestContext) -> str:
        if self.config.full_paths:
            return ctx.path
        return ctx.route_path

    def on_start(self, ctx: RequestContext) -> RequestState:
        state = RequestState(start=time.perf_counter(), method=ctx.method)
        if self.is_excluded(ctx):
            state.excluded = True
            return state
        try:
            self.metrics.requests_in_flight.labels(state.method).inc()
        except Exception:
            logger.exception(
                "metrics_update_failed stage=start method=%s", state.method
            )
        else:
            state.in_flight = True
        return state

    def on_finish(
        self,
        state: RequestState,
        ctx: RequestContext,
        status_code: int | None = None,
        error: BaseException | None = None,
    ) -> None:
        """Release the in-flight slot and record the finished request.

        The duration runs from ``on_start`` to the moment ``on_finish`` is
        entered; the gauge release and label resolution are not included.
        """
        if state.excluded or state.finished:
            return
        state.finished = True
        elapsed = time.perf_counter() - state.start

        if state.in_flight:
            state.in_flight = False
            try:
                self.metrics.requests_in_flight.labels(state.method).dec()
            except Exception:
                logger.exception(
                    "metrics_update_failed stage=release method=%s", state.method
                )

        code = str(resolve_status_code(status_code, error))
        path = self.path_label(ctx)
        try:
            self.metrics.requests_total.labels(code, state.method, path).inc()
            self.metrics.request_duration.labels(code, state.method, path).observe(
                elapsed
            )
        except Exception:
            logger.exception(
                "metrics_update_failed stage=finish method=%s path=%s status=%s",
                state.method,
                path,
                code,
                extra={
                    "extra": {
                        "method": state.method,
                        "path": path,
                        "status": code,
                    }
                },
            )

    @contextmanager
    def track(self, ctx: RequestContext) -> Iterator[RequestState]:
        """Scope one request: ``on_start`` on entry, ``on_finish`` on every exit.

        The caller records the response status on the yielded state. Errors
        from the body (cancellation included) are reported and re-raised
        untouched.
        """
        state = self.on_start(ctx)
        try:
            yield state
        except BaseException as exc:
            self.on_finish(state, ctx, state.status_code, exc)
            raise
        else:
            self.on_finish(state, ctx, state.status_code)
