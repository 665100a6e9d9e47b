"""Unit tests for the hub-side status trigger and the spoke-side periodic monitor."""

from __future__ import annotations

import pytest

from workagent.controllers.applied_work import AppliedWorkController
from workagent.controllers.apply import ApplyWorkController
from workagent.controllers.work_status import WorkStatusController
from workagent.errors import ConsistencyError
from workagent.models.results import DONE, ObjectKey, Result
from workagent.models.work import APPLIED_WORK_MAPPING, WORK_MAPPING, AppliedTrackingRecord

from ..fakes import CONFIGMAP, FakeObjectStore, configmap, new_record, onboard


class TestWorkStatusController:
    async def test_records_applied_resources(
        self,
        hub: FakeObjectStore,
        spoke: FakeObjectStore,
        apply_controller: ApplyWorkController,
        work_status: WorkStatusController,
    ) -> None:
        key = await onboard(hub, spoke, "w1", [configmap("a"), configmap("b")])
        await apply_controller.reconcile(key)

        assert await work_status.reconcile(key) == DONE

        record = AppliedTrackingRecord.from_dict(spoke.peek(APPLIED_WORK_MAPPING, "w1"))  # type: ignore[arg-type]
        assert [(m.resource, m.namespace, m.name) for m in record.applied_resources] == [
            ("configmaps", "default", "a"),
            ("configmaps", "default", "b"),
        ]

    async def test_missing_work_and_record_is_done(self, work_status: WorkStatusController) -> None:
        assert await work_status.reconcile(ObjectKey("cluster-a", "absent")) == DONE

    async def test_record_without_work_raises(self, spoke: FakeObjectStore, work_status: WorkStatusController) -> None:
        await new_record(spoke, "orphan")
        with pytest.raises(ConsistencyError):
            await work_status.reconcile(ObjectKey("cluster-a", "orphan"))


class TestAppliedWorkController:
    def test_work_key_uses_cluster_namespace(self, applied_work: AppliedWorkController) -> None:
        assert applied_work.work_key(ObjectKey("", "w1")) == ObjectKey("cluster-a", "w1")

    async def test_requeues_while_record_exists(
        self, hub: FakeObjectStore, spoke: FakeObjectStore, applied_work: AppliedWorkController
    ) -> None:
        await onboard(hub, spoke, "w1", [])
        assert await applied_work.reconcile(ObjectKey("", "w1")) == Result(requeue_after=60.0)

    async def test_stops_once_record_is_gone(self, applied_work: AppliedWorkController) -> None:
        assert await applied_work.reconcile(ObjectKey("", "w1")) == DONE

    async def test_collects_resources_dropped_from_work(
        self,
        hub: FakeObjectStore,
        spoke: FakeObjectStore,
        apply_controller: ApplyWorkController,
        work_status: WorkStatusController,
        applied_work: AppliedWorkController,
    ) -> None:
        """A missed hub event is caught up by the periodic check."""
        key = await onboard(hub, spoke, "w1", [configmap("a"), configmap("b")])
        await apply_controller.reconcile(key)
        await work_status.reconcile(key)

        stored = hub.peek(WORK_MAPPING, "w1", "cluster-a")
        assert stored is not None
        stored["spec"]["workload"]["manifests"] = [configmap("a")]
        await hub.update(WORK_MAPPING, stored)
        await apply_controller.reconcile(key)

        await applied_work.reconcile(ObjectKey("", "w1"))

        record = AppliedTrackingRecord.from_dict(spoke.peek(APPLIED_WORK_MAPPING, "w1"))  # type: ignore[arg-type]
        assert [m.name for m in record.applied_resources] == ["a"]
        assert spoke.peek(CONFIGMAP, "b", "default") is None

    async def test_inconsistency_is_raised(self, spoke: FakeObjectStore, applied_work: AppliedWorkController) -> None:
        await new_record(spoke, "w1")
        with pytest.raises(ConsistencyError):
            await applied_work.reconcile(ObjectKey("", "w1"))
