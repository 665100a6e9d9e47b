"""REST mapping from (apiVersion, kind) to (group, version, resource).

``RESTMapper`` is a process-wide capability object: build it once at startup
around a ``DiscoverySource`` and inject it wherever kinds need resolving.
Discovery caches can be partially populated (a CRD installed after the
agent started), so a miss invalidates discovery and asks live discovery
once more before giving up.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Protocol

from workagent.errors import UnmappableKindError
from workagent.models.resources import ResourceMapping
from workagent.observability.logging import get_logger

_log = get_logger("discovery")


class DiscoverySource(Protocol):
    async def lookup(self, api_version: str, kind: str) -> ResourceMapping | None:
        """Return the mapping for *kind*, or None when the cluster does not serve it."""
        ...

    async def invalidate(self) -> None:
        """Drop any cached discovery documents."""
        ...


class RESTMapper:
    """Cached kind-to-resource resolution with an invalidate-on-miss refresh."""

    def __init__(self, discovery: DiscoverySource) -> None:
        self._discovery = discovery
        self._cache: dict[tuple[str, str], ResourceMapping] = {}
        self._refresh_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    async def mapping(self, api_version: str, kind: str) -> ResourceMapping:
        """Resolve *kind* in *api_version*.

        Raises:
            UnmappableKindError: if neither the cache nor live discovery knows the kind.
        """
        key = (api_version, kind)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        found = await self._discovery.lookup(api_version, kind)
        if found is None:
            async with self._refresh_lock:
                cached = self._cache.get(key)
                if cached is not None:
                    return cached
                _log.debug("discovery_miss_refreshing", api_version=api_version, kind=kind)
                await self._discovery.invalidate()
                found = await self._discovery.lookup(api_version, kind)
        if found is None:
            raise UnmappableKindError(api_version, kind)

        self._cache[key] = found
        return found

    async def forget(self, api_version: str, kind: str) -> None:
        """Drop one cached mapping and refresh discovery, e.g. after the server stopped serving the kind."""
        self._cache.pop((api_version, kind), None)
        async with self._refresh_lock:
            await self._discovery.invalidate()

    def invalidate(self) -> None:
        self._cache.clear()


class KubeDiscovery:
    """DiscoverySource backed by the kubernetes_asyncio dynamic client's discoverer."""

    def __init__(self, dynamic_client: Any) -> None:
        self._client = dynamic_client

    async def lookup(self, api_version: str, kind: str) -> ResourceMapping | None:
        from kubernetes_asyncio.dynamic.exceptions import (  # type: ignore[import-untyped]
            ResourceNotFoundError,
            ResourceNotUniqueError,
        )

        try:
            resource = await self._client.resources.get(api_version=api_version, kind=kind)
        except ResourceNotFoundError:
            return None
        except ResourceNotUniqueError:
            _log.warning("discovery_kind_not_unique", api_version=api_version, kind=kind)
            return None
        return ResourceMapping(
            group=resource.group or "",
            version=resource.api_version,
            resource=resource.name,
            kind=resource.kind,
            namespaced=bool(resource.namespaced),
        )

    async def invalidate(self) -> None:
        result = self._client.resources.invalidate_cache()
        if inspect.isawaitable(result):
            await result
