"""End-to-end Work lifecycle against in-memory hub and spoke clusters.

Tests cover: tracked-set evolution as manifests are added and removed,
shared resources with several owning Works, out-of-band AppliedWork
deletion, no partial commit on stale-deletion failure, finalizer
sequencing, idempotence, and the full controller manager wiring.
"""

from __future__ import annotations

from typing import Any

import pytest

from workagent.cluster.discovery import RESTMapper
from workagent.cluster.errors import ClusterAPIError
from workagent.controllers.applied_work import AppliedWorkController
from workagent.controllers.manager import ControllerManager
from workagent.controllers.tracker import AppliedResourceTracker
from workagent.errors import ConsistencyError, DeletionError
from workagent.models.config import ClusterConfig, ControllerConfig, WorkAgentConfig
from workagent.models.results import ObjectKey
from workagent.models.work import (
    APPLIED_WORK_MAPPING,
    CONDITION_APPLIED,
    SPEC_HASH_ANNOTATION,
    WORK_FINALIZER,
    WORK_MAPPING,
)

from ..fakes import CONFIGMAP, FakeObjectStore, configmap, eventually
from .conftest import Agent

NS = "cluster-a"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _create_work(hub: FakeObjectStore, name: str, manifests: list[Any]) -> ObjectKey:
    await hub.create(
        WORK_MAPPING,
        {
            "apiVersion": WORK_MAPPING.api_version,
            "kind": "Work",
            "metadata": {"name": name, "namespace": NS},
            "spec": {"workload": {"manifests": manifests}},
        },
    )
    return ObjectKey(NS, name)


async def _declare(hub: FakeObjectStore, name: str, manifests: list[Any]) -> None:
    body = hub.peek(WORK_MAPPING, name, NS)
    assert body is not None
    body["spec"]["workload"]["manifests"] = manifests
    await hub.update(WORK_MAPPING, body)


def _tracked(spoke: FakeObjectStore, name: str) -> list[str]:
    record = spoke.peek(APPLIED_WORK_MAPPING, name)
    assert record is not None
    return sorted(r["name"] for r in record["status"]["appliedResources"])


def _owners(spoke: FakeObjectStore, name: str) -> list[str]:
    obj = spoke.peek(CONFIGMAP, name, "default")
    assert obj is not None
    return sorted(ref["name"] for ref in obj["metadata"].get("ownerReferences") or [])


def _applied_condition(hub: FakeObjectStore, name: str) -> dict[str, Any]:
    body = hub.peek(WORK_MAPPING, name, NS)
    assert body is not None
    return next(c for c in body["status"]["conditions"] if c["type"] == CONDITION_APPLIED)


# ---------------------------------------------------------------------------
# Tracked set follows the declared manifests
# ---------------------------------------------------------------------------


class TestTrackedSet:
    async def test_add_then_remove_manifests(self, hub: FakeObjectStore, spoke: FakeObjectStore, agent: Agent) -> None:
        m1, m2 = configmap("m1"), configmap("m2")
        key = await _create_work(hub, "b", [m1])

        await agent.sync(key)
        assert _tracked(spoke, "b") == ["m1"]

        await _declare(hub, "b", [m1, m2])
        await agent.sync(key)
        assert _tracked(spoke, "b") == ["m1", "m2"]
        assert spoke.peek(CONFIGMAP, "m2", "default") is not None

        await _declare(hub, "b", [m2])
        await agent.sync(key)
        assert _tracked(spoke, "b") == ["m2"]
        assert spoke.peek(CONFIGMAP, "m1", "default") is None
        assert spoke.peek(CONFIGMAP, "m2", "default") is not None

    async def test_stale_entry_records_deleted_uid(
        self, hub: FakeObjectStore, spoke: FakeObjectStore, agent: Agent, tracker: AppliedResourceTracker
    ) -> None:
        key = await _create_work(hub, "b", [configmap("m1"), configmap("m2")])
        await agent.sync(key)
        m1 = spoke.peek(CONFIGMAP, "m1", "default")
        assert m1 is not None

        await _declare(hub, "b", [configmap("m2")])
        await agent.apply.reconcile(key)
        diff = await tracker.reconcile(key)

        assert diff is not None
        assert [(m.name, m.uid) for m in diff.stale] == [("m1", m1["metadata"]["uid"])]


# ---------------------------------------------------------------------------
# Shared resources
# ---------------------------------------------------------------------------


class TestMultiOwner:
    async def test_shared_resource_survives_until_last_owner(
        self, hub: FakeObjectStore, spoke: FakeObjectStore, agent: Agent
    ) -> None:
        shared = configmap("shared")
        b1 = await _create_work(hub, "b1", [shared])
        b2 = await _create_work(hub, "b2", [shared])
        await agent.sync(b1)
        await agent.sync(b2)

        assert _owners(spoke, "shared") == ["b1", "b2"]
        assert [k for k in spoke.objects if k[1] == "configmaps"] == [("", "configmaps", "default", "shared")]

        await hub.delete(WORK_MAPPING, "b2", NS)
        await agent.sync(b2)
        assert hub.peek(WORK_MAPPING, "b2", NS) is None
        assert _owners(spoke, "shared") == ["b1"]

        await hub.delete(WORK_MAPPING, "b1", NS)
        await agent.sync(b1)
        assert hub.peek(WORK_MAPPING, "b1", NS) is None
        assert spoke.peek(CONFIGMAP, "shared", "default") is None

    async def test_dropping_shared_manifest_releases_instead_of_deleting(
        self, hub: FakeObjectStore, spoke: FakeObjectStore, agent: Agent
    ) -> None:
        shared = configmap("shared")
        b1 = await _create_work(hub, "b1", [shared])
        b2 = await _create_work(hub, "b2", [shared, configmap("own")])
        await agent.sync(b1)
        await agent.sync(b2)

        await _declare(hub, "b2", [configmap("own")])
        await agent.sync(b2)

        assert _tracked(spoke, "b2") == ["own"]
        assert _owners(spoke, "shared") == ["b1"]

    async def test_owner_declared_in_manifest_does_not_pin_stale_resource(
        self, hub: FakeObjectStore, spoke: FakeObjectStore, agent: Agent
    ) -> None:
        parent = spoke.seed(CONFIGMAP, configmap("parent"))
        child = configmap("child")
        child["metadata"]["ownerReferences"] = [
            {"apiVersion": "v1", "kind": "ConfigMap", "name": "parent", "uid": parent["metadata"]["uid"]}
        ]
        key = await _create_work(hub, "b", [child, configmap("keep")])
        await agent.sync(key)
        assert _owners(spoke, "child") == ["b", "parent"]

        await _declare(hub, "b", [configmap("keep")])
        await agent.sync(key)

        assert spoke.peek(CONFIGMAP, "child", "default") is None
        assert spoke.peek(CONFIGMAP, "parent", "default") is not None
        assert _tracked(spoke, "b") == ["keep"]


# ---------------------------------------------------------------------------
# Consistency and failure ordering
# ---------------------------------------------------------------------------


class TestConsistency:
    async def test_record_deleted_out_of_band_is_an_error(
        self,
        hub: FakeObjectStore,
        spoke: FakeObjectStore,
        agent: Agent,
        applied_work: AppliedWorkController,
    ) -> None:
        key = await _create_work(hub, "b", [configmap("m1")])
        await agent.sync(key)

        del spoke.objects[("multicluster.x-k8s.io", "appliedworks", "", "b")]

        with pytest.raises(ConsistencyError):
            await agent.work_status.reconcile(key)
        assert spoke.peek(APPLIED_WORK_MAPPING, "b") is None
        # the periodic monitor stops once the record is gone
        assert (await applied_work.reconcile(ObjectKey("", "b"))).requeue_after is None

    async def test_failed_stale_deletion_commits_nothing(
        self, hub: FakeObjectStore, spoke: FakeObjectStore, agent: Agent
    ) -> None:
        key = await _create_work(hub, "b", [configmap("m1"), configmap("m2"), configmap("m3")])
        await agent.sync(key)
        before = spoke.peek(APPLIED_WORK_MAPPING, "b")

        await _declare(hub, "b", [configmap("m3")])
        await agent.apply.reconcile(key)
        spoke.fail("delete", "m2", ClusterAPIError(500, "InternalError", "etcd timeout"))

        with pytest.raises(DeletionError) as exc_info:
            await agent.work_status.reconcile(key)

        assert len(exc_info.value.failures) == 1
        assert spoke.peek(APPLIED_WORK_MAPPING, "b") == before
        assert spoke.peek(CONFIGMAP, "m1", "default") is None

        await agent.work_status.reconcile(key)
        assert _tracked(spoke, "b") == ["m3"]


# ---------------------------------------------------------------------------
# Deletion sequencing
# ---------------------------------------------------------------------------


class TestFinalizerSequencing:
    async def test_deleting_work_cascades_to_spoke(
        self, hub: FakeObjectStore, spoke: FakeObjectStore, agent: Agent
    ) -> None:
        key = await _create_work(hub, "b", [configmap("m1"), configmap("m2")])
        await agent.sync(key)

        await hub.delete(WORK_MAPPING, "b", NS)
        stored = hub.peek(WORK_MAPPING, "b", NS)
        assert stored is not None
        assert stored["metadata"]["finalizers"] == [WORK_FINALIZER]

        await agent.sync(key)

        assert hub.peek(WORK_MAPPING, "b", NS) is None
        assert spoke.peek(APPLIED_WORK_MAPPING, "b") is None
        assert spoke.peek(CONFIGMAP, "m1", "default") is None
        assert spoke.peek(CONFIGMAP, "m2", "default") is None

    async def test_record_delete_precedes_finalizer_removal(
        self, hub: FakeObjectStore, spoke: FakeObjectStore, agent: Agent
    ) -> None:
        key = await _create_work(hub, "b", [configmap("m1")])
        await agent.sync(key)
        await hub.delete(WORK_MAPPING, "b", NS)
        order: list[str] = []
        spoke_delete, hub_update = spoke.delete, hub.update

        async def record_delete(*args: Any, **kwargs: Any) -> None:
            order.append("delete appliedwork")
            await spoke_delete(*args, **kwargs)

        async def work_update(*args: Any, **kwargs: Any) -> dict[str, Any]:
            order.append("update work")
            return await hub_update(*args, **kwargs)

        spoke.delete = record_delete  # type: ignore[method-assign]
        hub.update = work_update  # type: ignore[method-assign]

        await agent.finalizer.reconcile(key)
        assert order == ["delete appliedwork", "update work"]


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------


class TestIdempotence:
    async def test_resync_writes_nothing(self, hub: FakeObjectStore, spoke: FakeObjectStore, agent: Agent) -> None:
        key = await _create_work(hub, "b", [configmap("m1")])
        await agent.sync(key)
        cm = spoke.peek(CONFIGMAP, "m1", "default")
        condition = _applied_condition(hub, "b")
        hub.calls.clear()
        spoke.calls.clear()

        await agent.sync(key)
        await agent.sync(key)

        assert hub.writes() == []
        assert spoke.writes() == []
        assert spoke.peek(CONFIGMAP, "m1", "default") == cm
        assert _applied_condition(hub, "b") == condition
        assert cm is not None and SPEC_HASH_ANNOTATION in cm["metadata"]["annotations"]


# ---------------------------------------------------------------------------
# Full controller manager
# ---------------------------------------------------------------------------


class TestControllerManager:
    async def test_watch_driven_lifecycle(
        self, hub: FakeObjectStore, spoke: FakeObjectStore, rest_mapper: RESTMapper
    ) -> None:
        config = WorkAgentConfig(
            cluster=ClusterConfig(cluster_namespace=NS),
            controller=ControllerConfig(workers=2, backoff_base_seconds=0.01, backoff_max_seconds=0.1),
        )
        manager = ControllerManager(hub, spoke, rest_mapper, config)
        await manager.start()
        try:
            await eventually(manager.synced)
            await eventually(lambda: len(hub._watches) == 1 and len(spoke._watches) == 1)

            await _create_work(hub, "b", [configmap("m1")])
            await eventually(lambda: spoke.peek(CONFIGMAP, "m1", "default") is not None)
            await eventually(lambda: (hub.peek(WORK_MAPPING, "b", NS) or {}).get("status") is not None)
            await eventually(lambda: _tracked(spoke, "b") == ["m1"])
            assert _applied_condition(hub, "b")["status"] == "True"

            await hub.delete(WORK_MAPPING, "b", NS)
            await eventually(lambda: hub.peek(WORK_MAPPING, "b", NS) is None)
            assert spoke.peek(APPLIED_WORK_MAPPING, "b") is None
            assert spoke.peek(CONFIGMAP, "m1", "default") is None

            status = manager.status()
            assert set(status) == {"finalizer", "apply", "work_status", "applied_work"}
            assert all(s["running"] for s in status.values())
        finally:
            await manager.stop()
        assert not any(q.running for q in manager.queues.values())

    async def test_resync_recreates_resource_deleted_on_spoke(
        self, hub: FakeObjectStore, spoke: FakeObjectStore, rest_mapper: RESTMapper
    ) -> None:
        config = WorkAgentConfig(
            cluster=ClusterConfig(cluster_namespace=NS),
            controller=ControllerConfig(
                workers=2, resync_interval=0.05, backoff_base_seconds=0.01, backoff_max_seconds=0.1
            ),
        )
        manager = ControllerManager(hub, spoke, rest_mapper, config)
        await manager.start()
        try:
            await eventually(manager.synced)
            await _create_work(hub, "b", [configmap("m1")])
            await eventually(lambda: spoke.peek(CONFIGMAP, "m1", "default") is not None)
            first = spoke.peek(CONFIGMAP, "m1", "default")
            assert first is not None
            first_uid = first["metadata"]["uid"]

            await spoke.delete(CONFIGMAP, "m1", "default")

            def recreated() -> bool:
                obj = spoke.peek(CONFIGMAP, "m1", "default")
                return obj is not None and obj["metadata"]["uid"] != first_uid

            await eventually(recreated)
            await eventually(lambda: _tracked(spoke, "b") == ["m1"])
        finally:
            await manager.stop()
