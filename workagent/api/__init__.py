"""REST API layer for workagent.

Exposes:
    create_app -- FastAPI application factory.
"""

from workagent.api.app import create_app

__all__ = ["create_app"]
