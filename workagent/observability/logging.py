"""structlog setup for the agent.

Every line is one JSON object on stderr.  Lines carry the ``component`` that
logged them and, once ``setup_logging`` has run, the hub namespace the agent
serves, so the logs of several spoke agents can be merged and still told
apart.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


class _StaticFields:
    """Processor adding fixed process-wide fields without overriding bound ones."""

    def __init__(self, **fields: str) -> None:
        self._fields = {k: v for k, v in fields.items() if v}

    def __call__(self, _logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        for key, value in self._fields.items():
            event_dict.setdefault(key, value)
        return event_dict


def setup_logging(level: str = "info", cluster_namespace: str = "") -> None:
    """Configure structlog; *cluster_namespace* is stamped on every line when given."""
    from workagent import __version__

    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _StaticFields(cluster_namespace=cluster_namespace, agent_version=__version__),
            structlog.processors.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(component=component)  # type: ignore[return-value]
