"""Object store interface shared by the hub and spoke clusters.

Objects travel as plain dicts in their Kubernetes JSON form.  Every method
raises a ``workagent.cluster.errors.ClusterAPIError`` subclass on failure.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Protocol

from workagent.models.resources import ResourceMapping

FOREGROUND = "Foreground"
BACKGROUND = "Background"
ORPHAN = "Orphan"


class ObjectStore(Protocol):
    """get/create/update/delete/list/watch access to one cluster."""

    name: str

    async def get(self, mapping: ResourceMapping, name: str, namespace: str = "") -> dict[str, Any]: ...

    async def list(
        self,
        mapping: ResourceMapping,
        namespace: str = "",
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> tuple[list[dict[str, Any]], str]:
        """Return the matching objects and the list resourceVersion."""
        ...

    async def create(self, mapping: ResourceMapping, body: dict[str, Any]) -> dict[str, Any]: ...

    async def update(self, mapping: ResourceMapping, body: dict[str, Any]) -> dict[str, Any]:
        """Replace the object; ``metadata.resourceVersion`` is the optimistic concurrency token."""
        ...

    async def update_status(self, mapping: ResourceMapping, body: dict[str, Any]) -> dict[str, Any]: ...

    async def delete(
        self,
        mapping: ResourceMapping,
        name: str,
        namespace: str = "",
        propagation_policy: str | None = None,
        uid: str | None = None,
    ) -> None:
        """Delete by name; ``uid`` becomes a precondition when given."""
        ...

    def watch(
        self,
        mapping: ResourceMapping,
        namespace: str = "",
        resource_version: str = "",
    ) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """Yield ``(event_type, object)`` pairs: ADDED, MODIFIED, DELETED."""
        ...


def object_key(obj: dict[str, Any]) -> tuple[str, str]:
    metadata = obj.get("metadata") or {}
    return str(metadata.get("namespace", "")), str(metadata.get("name", ""))
