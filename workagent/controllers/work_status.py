"""Hub-side trigger: re-run applied resource tracking whenever a Work's status changes."""

from __future__ import annotations

from workagent.controllers.tracker import AppliedResourceTracker
from workagent.models.results import DONE, ObjectKey, Result


class WorkStatusController:
    name = "work_status"

    def __init__(self, tracker: AppliedResourceTracker) -> None:
        self._tracker = tracker

    async def reconcile(self, key: ObjectKey) -> Result:
        bundle = await self._tracker.fetch_bundle(key)
        await self._tracker.reconcile(key, bundle=bundle, bundle_fetched=True)
        return DONE
