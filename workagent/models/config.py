"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ClusterConfig:
    """Hub and spoke connection settings."""

    cluster_namespace: str = "default"
    hub_kubeconfig: str = ""
    spoke_kubeconfig: str = ""


@dataclass
class ControllerConfig:
    """Reconcile loop tuning."""

    resync_interval: float = 60
    record_wait_seconds: int = 5
    workers: int = 4
    reconcile_timeout_seconds: int = 120
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 300.0


@dataclass
class APIConfig:
    """Health and metrics API configuration."""

    enabled: bool = True
    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class WorkAgentConfig:
    """Top-level workagent configuration."""

    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
