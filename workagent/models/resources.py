"""Resolved resource identity for dynamically typed manifests."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ResourceMapping:
    """The (group, version, resource) triple a kind resolves to on a cluster.

    ``kind`` is empty when the mapping was rebuilt from an AppliedWork entry,
    which only records the plural resource name.
    """

    group: str
    version: str
    resource: str
    kind: str = ""
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.resource}.{self.version}.{self.group}" if self.group else f"{self.resource}.{self.version}"


def split_api_version(api_version: str) -> tuple[str, str]:
    """Split ``apps/v1`` into ``("apps", "v1")`` and ``v1`` into ``("", "v1")``."""
    if "/" in api_version:
        group, _, version = api_version.partition("/")
        return group, version
    return "", api_version
