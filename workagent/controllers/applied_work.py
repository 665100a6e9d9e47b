"""Spoke-side periodic consistency monitor.

Every AppliedWork is re-checked against its hub Work on a fixed interval,
so resources dropped from a Work are collected even when a hub event was
missed, and a Work/AppliedWork mismatch surfaces as an error.
"""

from __future__ import annotations

from workagent.controllers.tracker import AppliedResourceTracker
from workagent.models.results import DONE, ObjectKey, Result
from workagent.observability.logging import get_logger

_log = get_logger("controller.applied_work")


class AppliedWorkController:
    name = "applied_work"

    def __init__(self, tracker: AppliedResourceTracker, cluster_namespace: str, resync_interval: float = 60.0) -> None:
        self._tracker = tracker
        self._cluster_namespace = cluster_namespace
        self._resync_interval = resync_interval

    def work_key(self, key: ObjectKey) -> ObjectKey:
        """Map a cluster-scoped AppliedWork key to its hub Work key."""
        return ObjectKey(self._cluster_namespace, key.name)

    async def reconcile(self, key: ObjectKey) -> Result:
        record = await self._tracker.fetch_record(key.name)
        if record is None:
            _log.debug("appliedwork gone, stopping periodic check", name=key.name)
            return DONE
        await self._tracker.reconcile(self.work_key(key), record=record)
        return Result(requeue_after=self._resync_interval)
