"""Cluster access layer.

Submodules:
    store      -- ObjectStore protocol shared by hub and spoke clients.
    errors     -- ClusterAPIError hierarchy (NotFound, AlreadyExists, Conflict, Gone).
    discovery  -- RESTMapper with invalidate-on-miss refresh over a DiscoverySource.
    kube       -- kubernetes_asyncio dynamic-client implementation.
"""

from workagent.cluster.discovery import DiscoverySource, RESTMapper
from workagent.cluster.errors import (
    AlreadyExistsError,
    ClusterAPIError,
    ConflictError,
    GoneError,
    NotFoundError,
)
from workagent.cluster.store import BACKGROUND, FOREGROUND, ObjectStore

__all__ = [
    "AlreadyExistsError",
    "BACKGROUND",
    "ClusterAPIError",
    "ConflictError",
    "DiscoverySource",
    "FOREGROUND",
    "GoneError",
    "NotFoundError",
    "ObjectStore",
    "RESTMapper",
]
