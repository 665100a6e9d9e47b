"""Unit tests for environment-based configuration."""

from __future__ import annotations

import pytest

from workagent.config import load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    import os

    for key in list(os.environ):
        if key.startswith("WORKAGENT_"):
            monkeypatch.delenv(key)


class TestDefaults:
    def test_defaults(self) -> None:
        config = load_config()
        assert config.cluster.cluster_namespace == "default"
        assert config.cluster.hub_kubeconfig == ""
        assert config.controller.resync_interval == 60
        assert config.controller.record_wait_seconds == 5
        assert config.controller.workers == 4
        assert config.controller.reconcile_timeout_seconds == 120
        assert config.controller.backoff_base_seconds == 0.5
        assert config.controller.backoff_max_seconds == 300.0
        assert config.api.enabled is True
        assert config.api.port == 8080
        assert config.log.level == "info"


class TestOverrides:
    def test_values_are_read(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WORKAGENT_CLUSTER_NAMESPACE", "cluster-a")
        monkeypatch.setenv("WORKAGENT_HUB_KUBECONFIG", "/etc/hub/kubeconfig")
        monkeypatch.setenv("WORKAGENT_RESYNC_INTERVAL", "30")
        monkeypatch.setenv("WORKAGENT_API_ENABLED", "false")
        monkeypatch.setenv("WORKAGENT_LOG_LEVEL", "DEBUG")
        config = load_config()
        assert config.cluster.cluster_namespace == "cluster-a"
        assert config.cluster.hub_kubeconfig == "/etc/hub/kubeconfig"
        assert config.controller.resync_interval == 30
        assert config.api.enabled is False
        assert config.log.level == "debug"

    @pytest.mark.parametrize(
        ("key", "raw", "attr", "expected"),
        [
            ("RESYNC_INTERVAL", "1", "resync_interval", 10),
            ("RESYNC_INTERVAL", "99999", "resync_interval", 3600),
            ("WORKERS", "0", "workers", 1),
            ("WORKERS", "1000", "workers", 64),
            ("RECORD_WAIT", "0", "record_wait_seconds", 1),
            ("RECONCILE_TIMEOUT", "1", "reconcile_timeout_seconds", 5),
        ],
    )
    def test_values_are_clamped(
        self, monkeypatch: pytest.MonkeyPatch, key: str, raw: str, attr: str, expected: int
    ) -> None:
        monkeypatch.setenv(f"WORKAGENT_{key}", raw)
        assert getattr(load_config().controller, attr) == expected

    def test_backoff_max_never_below_base(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WORKAGENT_BACKOFF_BASE", "10")
        monkeypatch.setenv("WORKAGENT_BACKOFF_MAX", "1")
        config = load_config()
        assert config.controller.backoff_max_seconds == 10.0


class TestValidation:
    @pytest.mark.parametrize("namespace", ["Upper", "-leading", "has_underscore", "x" * 64, ""])
    def test_invalid_namespace(self, monkeypatch: pytest.MonkeyPatch, namespace: str) -> None:
        monkeypatch.setenv("WORKAGENT_CLUSTER_NAMESPACE", namespace)
        with pytest.raises(ValueError, match="cluster namespace"):
            load_config()

    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WORKAGENT_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="log level"):
            load_config()

    def test_non_numeric_interval(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WORKAGENT_WORKERS", "many")
        with pytest.raises(ValueError):
            load_config()
