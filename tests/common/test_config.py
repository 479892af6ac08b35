"""测试环境变量驱动的 Settings 解析。"""

from __future__ import annotations

import pytest

from reqmetrics.common import config as config_mod
from reqmetrics.common.config import Settings, get_settings


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """屏蔽真实环境与 .env 文件。"""
    for key in (
        "ENABLE_METRICS",
        "METRICS_SERVICE_NAME",
        "METRICS_NAMESPACE",
        "METRICS_SUBSYSTEM",
        "METRICS_LABELS",
        "METRICS_SKIP_PATHS",
        "METRICS_FULL_PATHS",
        "METRICS_PATH",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(config_mod, "ENV_FILE", tmp_path / ".env")


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings.from_environment()
        assert settings.ENABLE_METRICS is True
        assert settings.METRICS_SERVICE_NAME == "my-service"
        assert settings.METRICS_NAMESPACE == "http"
        assert settings.METRICS_SUBSYSTEM == ""
        assert settings.METRICS_LABELS == {}
        assert settings.METRICS_SKIP_PATHS == []
        assert settings.METRICS_FULL_PATHS is False
        assert settings.METRICS_PATH == "/metrics"

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METRICS_LABELS", "team=core, region = eu")
        monkeypatch.setenv("METRICS_SKIP_PATHS", "/health, /ready,")
        monkeypatch.setenv("METRICS_FULL_PATHS", "yes")
        settings = Settings.from_environment()
        assert settings.METRICS_LABELS == {"team": "core", "region": "eu"}
        assert settings.METRICS_SKIP_PATHS == ["/health", "/ready"]
        assert settings.METRICS_FULL_PATHS is True

    def test_rejects_malformed_labels(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METRICS_LABELS", "team")
        with pytest.raises(ValueError, match="key=value"):
            Settings.from_environment()

    def test_rejects_empty_label_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METRICS_LABELS", "=core")
        with pytest.raises(ValueError, match="empty key"):
            Settings.from_environment()

    def test_rejects_relative_metrics_path(self) -> None:
        with pytest.raises(ValueError, match="METRICS_PATH"):
            Settings(METRICS_PATH="metrics")

    def test_env_file_does_not_override_environment(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path
    ) -> None:
        # 先登记原值，确保 .env 写入的变量在测试结束后被清理
        monkeypatch.setenv("METRICS_NAMESPACE", "placeholder")
        monkeypatch.delenv("METRICS_NAMESPACE")
        (tmp_path / ".env").write_text(
            "# comment\nMETRICS_NAMESPACE='shop'\nMETRICS_SUBSYSTEM=api\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("METRICS_SUBSYSTEM", "web")
        settings = Settings.from_environment()
        assert settings.METRICS_NAMESPACE == "shop"
        assert settings.METRICS_SUBSYSTEM == "web"

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
