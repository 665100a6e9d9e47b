"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from workagent.models.config import (
    APIConfig,
    ClusterConfig,
    ControllerConfig,
    LogConfig,
    WorkAgentConfig,
)

_DNS_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"WORKAGENT_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_namespace(value: str) -> str:
    if len(value) > 63 or not _DNS_LABEL.match(value):
        raise ValueError(f"Invalid cluster namespace: {value!r}")
    return value


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> WorkAgentConfig:
    """Load configuration from WORKAGENT_* environment variables."""
    backoff_base = _env_float("BACKOFF_BASE", 0.5, min_val=0.01)
    return WorkAgentConfig(
        cluster=ClusterConfig(
            cluster_namespace=_validate_namespace(_env("CLUSTER_NAMESPACE", "default")),
            hub_kubeconfig=_env("HUB_KUBECONFIG", ""),
            spoke_kubeconfig=_env("SPOKE_KUBECONFIG", ""),
        ),
        controller=ControllerConfig(
            resync_interval=_env_int("RESYNC_INTERVAL", 60, min_val=10, max_val=3600),
            record_wait_seconds=_env_int("RECORD_WAIT", 5, min_val=1, max_val=300),
            workers=_env_int("WORKERS", 4, min_val=1, max_val=64),
            reconcile_timeout_seconds=_env_int("RECONCILE_TIMEOUT", 120, min_val=5, max_val=900),
            backoff_base_seconds=backoff_base,
            backoff_max_seconds=_env_float("BACKOFF_MAX", 300.0, min_val=backoff_base),
        ),
        api=APIConfig(
            enabled=_env_bool("API_ENABLED", True),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
