"""Work lifecycle: attaches the cleanup finalizer and tears the AppliedWork down.

The lifecycle is an explicit state machine over the hub ``Work``:

    UNMANAGED   no finalizer, not being deleted -> create AppliedWork, add finalizer
    TRACKED     finalizer attached, not being deleted -> nothing to do
    TERMINATING finalizer attached, being deleted -> delete AppliedWork, drop finalizer
    GONE        the Work no longer exists

Deleting the AppliedWork with foreground propagation lets the spoke's
garbage collector remove every resource it owns before the record itself
disappears; the finalizer is only removed once that delete was accepted.
"""

from __future__ import annotations

from enum import StrEnum

from workagent.cluster.errors import AlreadyExistsError, NotFoundError
from workagent.cluster.store import FOREGROUND, ObjectStore
from workagent.models.results import DONE, ObjectKey, Result
from workagent.models.work import (
    APPLIED_WORK_MAPPING,
    WORK_FINALIZER,
    WORK_MAPPING,
    AppliedTrackingRecord,
    WorkBundle,
)
from workagent.observability.logging import get_logger

_log = get_logger("controller.finalizer")


class LifecycleState(StrEnum):
    UNMANAGED = "unmanaged"
    TRACKED = "tracked"
    TERMINATING = "terminating"
    GONE = "gone"


def lifecycle_state(bundle: WorkBundle | None) -> LifecycleState:
    if bundle is None:
        return LifecycleState.GONE
    if bundle.has_finalizer:
        return LifecycleState.TERMINATING if bundle.being_deleted else LifecycleState.TRACKED
    return LifecycleState.UNMANAGED


class FinalizeWorkController:
    """Hub-triggered reconcile driving a Work through its lifecycle."""

    name = "finalizer"

    def __init__(self, hub: ObjectStore, spoke: ObjectStore) -> None:
        self._hub = hub
        self._spoke = spoke

    async def reconcile(self, key: ObjectKey) -> Result:
        try:
            bundle: WorkBundle | None = WorkBundle.from_dict(
                await self._hub.get(WORK_MAPPING, key.name, key.namespace)
            )
        except NotFoundError:
            bundle = None

        state = lifecycle_state(bundle)
        log = _log.bind(work=str(key), state=str(state))
        if bundle is None or state == LifecycleState.TRACKED:
            return DONE

        if state == LifecycleState.TERMINATING:
            await self.garbage_collect(bundle)
            log.info("work finalized, appliedwork deleted")
            return DONE

        if bundle.being_deleted:
            # deleted before it was ever finalized: nothing was applied for it
            log.debug("unmanaged work is being deleted, nothing to clean up")
            return DONE

        await self.ensure_tracked(bundle)
        log.info("work finalizer added, appliedwork ensured")
        return DONE

    async def ensure_tracked(self, bundle: WorkBundle) -> None:
        """Create the AppliedWork (if missing), then attach the finalizer."""
        record = AppliedTrackingRecord.new(bundle.name, bundle.namespace)
        try:
            await self._spoke.create(APPLIED_WORK_MAPPING, record.to_dict())
            _log.info("appliedwork created", name=record.name)
        except AlreadyExistsError:
            _log.debug("appliedwork already exists", name=record.name)

        bundle.finalizers = [*bundle.finalizers, WORK_FINALIZER]
        await self._hub.update(WORK_MAPPING, bundle.to_dict())

    async def garbage_collect(self, bundle: WorkBundle) -> None:
        """Foreground-delete the AppliedWork, then release the finalizer.

        Any error other than the record already being gone propagates and
        leaves the finalizer in place.
        """
        try:
            await self._spoke.delete(APPLIED_WORK_MAPPING, bundle.name, propagation_policy=FOREGROUND)
            _log.info("appliedwork deletion requested", name=bundle.name)
        except NotFoundError:
            _log.debug("appliedwork already gone", name=bundle.name)

        bundle.finalizers = [f for f in bundle.finalizers if f != WORK_FINALIZER]
        await self._hub.update(WORK_MAPPING, bundle.to_dict())
