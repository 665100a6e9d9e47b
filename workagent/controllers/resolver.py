"""Manifest decoding and kind resolution.

A manifest arrives either as an embedded object (how a ``Work`` read back
from the API server carries it) or as raw JSON bytes/text.  Decoding turns
it into a plain resource dict; resolution maps its apiVersion/kind to the
resource triple the spoke cluster serves it under.
"""

from __future__ import annotations

import json
from copy import deepcopy
from dataclasses import dataclass
from typing import Any

from workagent.cluster.discovery import RESTMapper
from workagent.errors import DecodeError
from workagent.models.resources import ResourceMapping, split_api_version
from workagent.models.work import ResourceIdentifier

DEFAULT_NAMESPACE = "default"


@dataclass
class ResolvedManifest:
    """A decoded manifest plus the mapping it resolved to."""

    obj: dict[str, Any]
    mapping: ResourceMapping

    @property
    def name(self) -> str:
        return str(self.obj["metadata"]["name"])

    @property
    def namespace(self) -> str:
        return str(self.obj["metadata"].get("namespace", ""))


def decode_manifest(payload: Any) -> dict[str, Any]:
    """Decode *payload* into a resource dict.

    Raises:
        DecodeError: if the payload is not a JSON object carrying string
            ``apiVersion``, ``kind`` and ``metadata.name`` fields.
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"manifest is not valid UTF-8: {exc}") from exc
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise DecodeError(f"failed to decode object: {exc}") from exc
    if not isinstance(payload, dict):
        raise DecodeError(f"manifest must be an object, got {type(payload).__name__}")

    obj = deepcopy(payload)
    api_version = obj.get("apiVersion")
    kind = obj.get("kind")
    if not isinstance(api_version, str) or not api_version:
        raise DecodeError("manifest has no apiVersion")
    if not isinstance(kind, str) or not kind:
        raise DecodeError("manifest has no kind")
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict) or not isinstance(metadata.get("name"), str) or not metadata["name"]:
        raise DecodeError(f"{kind} manifest has no metadata.name")
    return obj


class ManifestResolver:
    """Decodes manifests and resolves their kinds through an injected RESTMapper."""

    def __init__(self, rest_mapper: RESTMapper) -> None:
        self._rest_mapper = rest_mapper

    async def resolve(self, obj: dict[str, Any]) -> ResourceMapping:
        """Return the mapping for a decoded object.

        Raises:
            UnmappableKindError: if the spoke cluster does not serve the kind.
        """
        return await self._rest_mapper.mapping(obj["apiVersion"], obj["kind"])

    async def forget(self, obj: dict[str, Any]) -> None:
        await self._rest_mapper.forget(obj["apiVersion"], obj["kind"])

    async def resolve_manifest(self, obj: dict[str, Any]) -> ResolvedManifest:
        """Resolve a decoded manifest and normalize its namespace to the kind's scope."""
        mapping = await self.resolve(obj)
        obj = deepcopy(obj)
        metadata = obj["metadata"]
        if mapping.namespaced:
            metadata["namespace"] = metadata.get("namespace") or DEFAULT_NAMESPACE
        else:
            metadata.pop("namespace", None)
        return ResolvedManifest(obj=obj, mapping=mapping)

    async def decode_and_resolve(self, payload: Any) -> ResolvedManifest:
        return await self.resolve_manifest(decode_manifest(payload))


def build_resource_identifier(
    ordinal: int,
    obj: dict[str, Any] | None,
    mapping: ResourceMapping | None,
) -> ResourceIdentifier:
    """Identifier for the manifest at *ordinal*; only the ordinal is known when decoding failed."""
    if obj is None:
        return ResourceIdentifier(ordinal=ordinal)
    metadata = obj.get("metadata") or {}
    api_version = str(obj.get("apiVersion", ""))
    group, version = split_api_version(api_version)
    return ResourceIdentifier(
        ordinal=ordinal,
        group=mapping.group if mapping is not None else group,
        version=mapping.version if mapping is not None else version,
        kind=str(obj.get("kind", "")),
        resource=mapping.resource if mapping is not None else "",
        namespace=str(metadata.get("namespace", "")),
        name=str(metadata.get("name", "")),
    )
