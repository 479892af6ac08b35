import logging

import uvicorn
from fastapi import FastAPI, HTTPException
from prometheus_client import CollectorRegistry

from reqmetrics.common.config import get_settings
from reqmetrics.common.logging import setup_logging
from reqmetrics.infra.observability.instrumentation import HttpMetrics

USERS = {
    1: {"id": 1, "name": "ada"},
    2: {"id": 2, "name": "grace"},
}


def create_app(registry: CollectorRegistry | None = None) -> FastAPI:
    settings = get_settings()
    setup_logging()
    app = FastAPI(
        title="reqmetrics demo",
        version="0.1.0",
        description="Demo service instrumented with request metrics",
    )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/users/{user_id}")
    async def get_user(user_id: int):
        user = USERS.get(user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="user not found")
        return user

    # Metrics
    if settings.ENABLE_METRICS:
        http_metrics = HttpMetrics.from_settings(settings, registry=registry)
        http_metrics.instrument(app)
        http_metrics.register_at(app, settings.METRICS_PATH)
        app.state.http_metrics = http_metrics
        logging.getLogger("reqmetrics.startup").info(
            "metrics enabled [event=metrics_enabled] (path=%s service=%s)",
            settings.METRICS_PATH,
            settings.METRICS_SERVICE_NAME,
        )

    return app


if __name__ == "__main__":
    uvicorn.run("reqmetrics.main:create_app", factory=True, host="0.0.0.0", port=8000)
