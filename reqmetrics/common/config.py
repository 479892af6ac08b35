from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

DEFAULT_SERVICE_NAME = "my-service"
DEFAULT_NAMESPACE = "http"
DEFAULT_EXPOSE_PATH = "/metrics"


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_labels(value: str | None) -> dict[str, str]:
    # 形如 "team=core,region=eu" 的常量标签
    labels: dict[str, str] = {}
    for item in _as_list(value):
        if "=" not in item:
            raise ValueError(
                f"METRICS_LABELS entries must look like key=value, got {item!r}."
            )
        key, label_value = item.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"METRICS_LABELS entry {item!r} has an empty key.")
        labels[key] = label_value.strip()
    return labels


@dataclass
class Settings:
    ENABLE_METRICS: bool = True
    METRICS_SERVICE_NAME: str = DEFAULT_SERVICE_NAME
    METRICS_NAMESPACE: str = DEFAULT_NAMESPACE
    METRICS_SUBSYSTEM: str = ""
    METRICS_LABELS: dict[str, str] = field(default_factory=dict)
    METRICS_SKIP_PATHS: list[str] = field(default_factory=list)
    METRICS_FULL_PATHS: bool = False
    METRICS_PATH: str = DEFAULT_EXPOSE_PATH

    def __post_init__(self) -> None:
        if not self.METRICS_PATH.startswith("/"):
            raise ValueError(
                "METRICS_PATH must be an absolute route path (e.g. /metrics)."
            )

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            METRICS_SERVICE_NAME=os.environ.get(
                "METRICS_SERVICE_NAME", cls.METRICS_SERVICE_NAME
            ),
            METRICS_NAMESPACE=os.environ.get(
                "METRICS_NAMESPACE", cls.METRICS_NAMESPACE
            ),
            METRICS_SUBSYSTEM=os.environ.get(
                "METRICS_SUBSYSTEM", cls.METRICS_SUBSYSTEM
            ),
            METRICS_LABELS=_as_labels(os.environ.get("METRICS_LABELS")),
            METRICS_SKIP_PATHS=_as_list(os.environ.get("METRICS_SKIP_PATHS")),
            METRICS_FULL_PATHS=_as_bool(
                os.environ.get("METRICS_FULL_PATHS"), cls.METRICS_FULL_PATHS
            ),
            METRICS_PATH=os.environ.get("METRICS_PATH", cls.METRICS_PATH),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
