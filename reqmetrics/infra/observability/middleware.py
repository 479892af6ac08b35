from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import Response
from starlette.routing import BaseRoute, Match
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from reqmetrics.infra.observability.interceptor import Interceptor
from reqmetrics.infra.observability.sink import PrometheusSink

logger = logging.getLogger("http")


def resolve_route_path(
    scope: Scope, routes: Sequence[BaseRoute] | None = None
) -> str | None:
    """Return the route template that will serve ``scope``, if any.

    Mounted sub-applications are walked so ``/api`` + ``/users/{user_id}``
    yields ``/api/users/{user_id}``. A route that matches the path but not the
    method (a 405 in the making) is used as a fallback.
    """
    if routes is None:
        router = getattr(scope.get("app"), "router", None)
        routes = getattr(router, "routes", None) or []

    partial: str | None = None
    for route in routes:
        match, child_scope = route.matches(scope)
        template = getattr(route, "path", None)
        if match == Match.FULL:
            nested = getattr(route, "routes", None)
            if nested:
                inner = resolve_route_path({**scope, **child_scope}, nested)
                if inner is not None:
                    return (template or "") + inner
            return template
        if match == Match.PARTIAL and partial is None:
            partial = template
    return partial


UNMATCHED_ROUTE = "<unmatched>"


@dataclass(frozen=True)
class ScopeRequestContext:
    method: str
    route_path: str
    path: str

    @classmethod
    def from_request(cls, request: Request) -> "ScopeRequestContext":
        path = request.url.path
        # 未命中任何路由时（404）统一归入固定模板，避免扫描类请求制造新时间序列
        route_path = resolve_route_path(request.scope) or UNMATCHED_ROUTE
        return cls(method=request.method, route_path=route_path, path=path)


class MetricsMiddleware:
    """Pure ASGI middleware feeding the interceptor.

    The request is finished once the last body chunk has been sent, so a
    streaming response stays in flight until its body is complete.
    """

    def __init__(self, app: ASGIApp, interceptor: Interceptor) -> None:
        self.app = app
        self.interceptor = interceptor

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        ctx = ScopeRequestContext.from_request(Request(scope))
        with self.interceptor.track(ctx) as state:

            async def send_wrapper(message: Message) -> None:
                if message["type"] == "http.response.start":
                    state.status_code = message["status"]
                await send(message)
                if message["type"] == "http.response.body" and not message.get(
                    "more_body", False
                ):
                    self.interceptor.on_finish(state, ctx, state.status_code)

            try:
                await self.app(scope, receive, send_wrapper)
            except Exception as exc:
                logger.exception(
                    "request_error method=%s route=%s",
                    ctx.method,
                    ctx.route_path,
                    extra={
                        "extra": {
                            "method": ctx.method,
                            "route": ctx.route_path,
                            "exception": repr(exc),
                        }
                    },
                )
                raise


def metrics_endpoint(sink: PrometheusSink):
    async def handle_metrics(request: Request) -> Response:
        payload, content_type = sink.expose(request.headers.get("Accept"))
        return Response(content=payload, media_type=content_type)

    return handle_metrics
