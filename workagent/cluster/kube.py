"""ObjectStore implementation over the kubernetes_asyncio dynamic client.

One ``KubeObjectStore`` wraps one cluster connection (hub or spoke).  All
kubernetes_asyncio exceptions are translated to ``ClusterAPIError``
subclasses here so the controllers never see client-library types.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from typing import Any

import aiohttp
from kubernetes_asyncio import config as k8s_config  # type: ignore[import-untyped]
from kubernetes_asyncio import dynamic  # type: ignore[import-untyped]
from kubernetes_asyncio.client import ApiClient, Configuration  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]
from kubernetes_asyncio.dynamic.exceptions import ResourceNotFoundError  # type: ignore[import-untyped]

from workagent.cluster.discovery import KubeDiscovery
from workagent.cluster.errors import ClusterAPIError, NotFoundError, from_status
from workagent.models.resources import ResourceMapping
from workagent.observability.logging import get_logger

_log = get_logger("cluster.kube")

_WATCH_TIMEOUT_SECONDS = 300


@contextmanager
def _api_errors() -> Iterator[None]:
    """Translate client-library failures into ClusterAPIError."""
    try:
        yield
    except ApiException as exc:
        raise from_status(int(exc.status or 0), exc.body, default_reason=str(exc.reason or "")) from exc
    except (aiohttp.ClientError, TimeoutError) as exc:
        raise ClusterAPIError(0, "Transport", str(exc)) from exc


async def load_client_configuration(kubeconfig: str = "") -> Configuration:
    """Build a client Configuration from a kubeconfig path or the in-cluster service account.

    An empty path means: in-cluster first, then the default kubeconfig.
    """
    cfg = Configuration()
    if kubeconfig:
        await k8s_config.load_kube_config(config_file=kubeconfig, client_configuration=cfg)
        return cfg
    try:
        # load_incluster_config() is synchronous in kubernetes-asyncio
        k8s_config.load_incluster_config(client_configuration=cfg)
    except k8s_config.ConfigException:
        await k8s_config.load_kube_config(client_configuration=cfg)
    return cfg


class KubeObjectStore:
    """Dict-in, dict-out access to any resource the cluster's discovery knows about."""

    def __init__(self, api_client: ApiClient, dynamic_client: Any, name: str) -> None:
        self.name = name
        self._api_client = api_client
        self._client = dynamic_client

    @classmethod
    async def connect(cls, kubeconfig: str, name: str) -> KubeObjectStore:
        cfg = await load_client_configuration(kubeconfig)
        api_client = ApiClient(configuration=cfg)
        dynamic_client = await dynamic.DynamicClient(api_client)
        _log.info("cluster client configured", cluster=name, host=cfg.host)
        return cls(api_client, dynamic_client, name)

    def discovery(self) -> KubeDiscovery:
        return KubeDiscovery(self._client)

    async def close(self) -> None:
        await self._api_client.close()

    async def _resource(self, mapping: ResourceMapping) -> Any:
        """Look up the dynamic resource; a kind the server no longer serves is NotFound."""
        try:
            with _api_errors():
                if mapping.kind:
                    return await self._client.resources.get(api_version=mapping.api_version, kind=mapping.kind)
                return await self._client.resources.get(api_version=mapping.api_version, name=mapping.resource)
        except ResourceNotFoundError as exc:
            raise NotFoundError(404, "NotFound", str(exc)) from exc

    @staticmethod
    def _namespace(mapping: ResourceMapping, namespace: str) -> str | None:
        return namespace or None if mapping.namespaced else None

    async def get(self, mapping: ResourceMapping, name: str, namespace: str = "") -> dict[str, Any]:
        resource = await self._resource(mapping)
        with _api_errors():
            obj = await self._client.get(resource, name=name, namespace=self._namespace(mapping, namespace))
        return obj.to_dict()  # type: ignore[no-any-return]

    async def list(
        self,
        mapping: ResourceMapping,
        namespace: str = "",
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> tuple[list[dict[str, Any]], str]:
        resource = await self._resource(mapping)
        with _api_errors():
            result = await self._client.get(
                resource,
                namespace=self._namespace(mapping, namespace),
                label_selector=label_selector,
                field_selector=field_selector,
            )
        data = result.to_dict()
        return list(data.get("items") or []), str((data.get("metadata") or {}).get("resourceVersion", ""))

    async def create(self, mapping: ResourceMapping, body: dict[str, Any]) -> dict[str, Any]:
        resource = await self._resource(mapping)
        namespace = (body.get("metadata") or {}).get("namespace", "")
        with _api_errors():
            obj = await self._client.create(resource, body=body, namespace=self._namespace(mapping, namespace))
        return obj.to_dict()  # type: ignore[no-any-return]

    async def update(self, mapping: ResourceMapping, body: dict[str, Any]) -> dict[str, Any]:
        resource = await self._resource(mapping)
        metadata = body.get("metadata") or {}
        with _api_errors():
            obj = await self._client.replace(
                resource,
                body=body,
                name=metadata.get("name"),
                namespace=self._namespace(mapping, metadata.get("namespace", "")),
            )
        return obj.to_dict()  # type: ignore[no-any-return]

    async def update_status(self, mapping: ResourceMapping, body: dict[str, Any]) -> dict[str, Any]:
        resource = await self._resource(mapping)
        status_resource = (getattr(resource, "subresources", None) or {}).get("status", resource)
        metadata = body.get("metadata") or {}
        with _api_errors():
            obj = await self._client.replace(
                status_resource,
                body=body,
                name=metadata.get("name"),
                namespace=self._namespace(mapping, metadata.get("namespace", "")),
            )
        return obj.to_dict()  # type: ignore[no-any-return]

    async def delete(
        self,
        mapping: ResourceMapping,
        name: str,
        namespace: str = "",
        propagation_policy: str | None = None,
        uid: str | None = None,
    ) -> None:
        resource = await self._resource(mapping)
        options: dict[str, Any] = {"apiVersion": "v1", "kind": "DeleteOptions"}
        if propagation_policy:
            options["propagationPolicy"] = propagation_policy
        if uid:
            options["preconditions"] = {"uid": uid}
        with _api_errors():
            await self._client.delete(
                resource,
                name=name,
                namespace=self._namespace(mapping, namespace),
                body=options,
            )

    async def watch(
        self,
        mapping: ResourceMapping,
        namespace: str = "",
        resource_version: str = "",
    ) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        resource = await self._resource(mapping)
        with _api_errors():
            async for event in self._client.watch(
                resource,
                namespace=self._namespace(mapping, namespace),
                resource_version=resource_version or None,
                timeout=_WATCH_TIMEOUT_SECONDS,
            ):
                event_type = str(event.get("type", ""))
                raw = event.get("raw_object") or {}
                if event_type == "ERROR":
                    code = int(raw.get("code", 0) or 0)
                    raise from_status(code, json.dumps(raw))
                yield event_type, raw
