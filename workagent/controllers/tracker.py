"""Applied resource tracking and garbage collection.

Compares what a Work's status says is applied against what its AppliedWork
records as applied, removes the resources that dropped out, and only then
records the new applied set.  Nothing is written to the AppliedWork until
every stale removal succeeded, so a crash or failure mid-cleanup leaves the
old set in place and the next reconcile computes the same diff again.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from workagent.cluster.errors import ClusterAPIError, NotFoundError
from workagent.cluster.store import BACKGROUND, ObjectStore
from workagent.errors import ConsistencyError, DeletionError
from workagent.models.results import ObjectKey
from workagent.models.work import (
    API_VERSION,
    APPLIED_WORK_KIND,
    APPLIED_WORK_MAPPING,
    WORK_MAPPING,
    AppliedResourceMeta,
    AppliedTrackingRecord,
    IdentityKey,
    ManifestCondition,
    WorkBundle,
)
from workagent.observability.logging import get_logger
from workagent.observability.metrics import consistency_errors_total, stale_resources_removed_total

_log = get_logger("controller.tracker")


def _is_applied_work_ref(ref: dict[str, object]) -> bool:
    return ref.get("kind") == APPLIED_WORK_KIND and ref.get("apiVersion") == API_VERSION


@dataclass
class AppliedDiff:
    """Result of comparing declared-applied manifests with the recorded applied set."""

    retained_or_new: list[AppliedResourceMeta] = field(default_factory=list)
    stale: list[AppliedResourceMeta] = field(default_factory=list)
    new: list[AppliedResourceMeta] = field(default_factory=list)


def compute_diff(
    manifest_conditions: list[ManifestCondition],
    applied: list[AppliedResourceMeta],
) -> AppliedDiff:
    """Diff Applied=True manifests against the recorded applied resources.

    Identity is (group, version, resource, namespace, name).  Matching
    recorded entries are kept as-is so their uid survives; unmatched
    declared manifests get a fresh entry; unmatched recorded entries are
    stale.  Duplicate identities collapse to a single entry.
    """
    recorded: dict[IdentityKey, AppliedResourceMeta] = {}
    for meta in applied:
        recorded.setdefault(meta.identity, meta)

    diff = AppliedDiff()
    declared: set[IdentityKey] = set()
    for mc in manifest_conditions:
        if not mc.applied:
            continue
        identity = mc.identifier.identity
        if identity in declared:
            continue
        declared.add(identity)
        existing = recorded.get(identity)
        if existing is not None:
            diff.retained_or_new.append(existing)
        else:
            fresh = AppliedResourceMeta.from_identifier(mc.identifier)
            diff.retained_or_new.append(fresh)
            diff.new.append(fresh)

    diff.stale = [meta for identity, meta in recorded.items() if identity not in declared]
    return diff


def check_consistent_exist(
    bundle: WorkBundle | None,
    record: AppliedTrackingRecord | None,
    key: ObjectKey,
) -> bool:
    """Validate that the Work and its AppliedWork exist together.

    Returns False when exactly one side exists but the lifecycle controller
    is still in the middle of creating or deleting the other (nothing to do
    yet), True when both sides exist.

    Raises:
        ConsistencyError: when exactly one side exists outside that window.
    """
    if bundle is None and record is None:
        return False
    if bundle is not None and record is None:
        if not bundle.has_finalizer or bundle.being_deleted:
            return False
        raise ConsistencyError(f"work controller didn't create the appliedWork {key}")
    if bundle is None and record is not None:
        if record.being_deleted:
            return False
        raise ConsistencyError(f"work finalizer didn't delete the appliedWork {key}")
    return True


class AppliedResourceTracker:
    """Shared by the hub-side status controller and the spoke-side periodic monitor."""

    def __init__(self, hub: ObjectStore, spoke: ObjectStore) -> None:
        self._hub = hub
        self._spoke = spoke

    async def fetch_bundle(self, key: ObjectKey) -> WorkBundle | None:
        try:
            return WorkBundle.from_dict(await self._hub.get(WORK_MAPPING, key.name, key.namespace))
        except NotFoundError:
            return None

    async def fetch_record(self, name: str) -> AppliedTrackingRecord | None:
        try:
            return AppliedTrackingRecord.from_dict(await self._spoke.get(APPLIED_WORK_MAPPING, name))
        except NotFoundError:
            return None

    async def reconcile(
        self,
        key: ObjectKey,
        bundle: WorkBundle | None = None,
        record: AppliedTrackingRecord | None = None,
        bundle_fetched: bool = False,
        record_fetched: bool = False,
    ) -> AppliedDiff | None:
        """Fetch whichever side was not supplied, check consistency, then garbage-collect.

        ``*_fetched`` flags mark a None argument as "already looked up and
        absent" rather than "not looked up yet".
        """
        log = _log.bind(work=str(key))
        if bundle is None and not bundle_fetched:
            bundle = await self.fetch_bundle(key)
        if record is None and not record_fetched:
            record = await self.fetch_record(key.name)

        try:
            both_exist = check_consistent_exist(bundle, record, key)
        except ConsistencyError as exc:
            consistency_errors_total.inc()
            log.error("applied/work object existence not consistent", error=str(exc))
            raise
        if not both_exist:
            log.debug("work and appliedwork not both present, nothing to track")
            return None

        assert bundle is not None and record is not None
        return await self.remove_deleted_applied_resources(bundle, record)

    async def remove_deleted_applied_resources(
        self,
        bundle: WorkBundle,
        record: AppliedTrackingRecord,
    ) -> AppliedDiff:
        """Remove stale resources, then persist the retained-or-new set.

        Raises:
            DeletionError: if any stale resource could not be removed.  The
                AppliedWork is left untouched in that case.
        """
        log = _log.bind(work=f"{bundle.namespace}/{bundle.name}")
        diff = compute_diff(bundle.manifest_conditions, record.applied_resources)

        failures: list[tuple[str, Exception]] = []
        removed: list[AppliedResourceMeta] = []
        for meta in diff.stale:
            try:
                removed.append(await self._remove_stale(meta, record))
            except ClusterAPIError as exc:
                log.warning("failed to remove stale resource", resource=str(meta), error=str(exc))
                failures.append((str(meta), exc))
        if failures:
            raise DeletionError(failures)
        diff.stale = removed

        if [m.to_dict() for m in diff.retained_or_new] == [m.to_dict() for m in record.applied_resources]:
            return diff

        record.applied_resources = diff.retained_or_new
        await self._spoke.update_status(APPLIED_WORK_MAPPING, record.to_dict())
        log.info(
            "applied resources updated",
            tracked=len(diff.retained_or_new),
            new=len(diff.new),
            removed=len(removed),
        )
        return diff

    async def _remove_stale(self, meta: AppliedResourceMeta, record: AppliedTrackingRecord) -> AppliedResourceMeta:
        """Delete one stale resource, or release it when other AppliedWorks still own it.

        Returns the entry with the uid of the removed object filled in.
        """
        mapping = meta.mapping
        try:
            live = await self._spoke.get(mapping, meta.name, meta.namespace)
        except NotFoundError:
            stale_resources_removed_total.labels(action="already_gone").inc()
            return meta

        live_meta = live.get("metadata") or {}
        uid = str(live_meta.get("uid", "")) or None

        owners = list(live_meta.get("ownerReferences") or [])
        # only other AppliedWorks keep a stale resource alive; owners declared in the manifest do not
        co_owners = [ref for ref in owners if _is_applied_work_ref(ref) and ref.get("uid") != record.uid]
        if co_owners:
            others = [ref for ref in owners if ref.get("uid") != record.uid]
            if len(others) != len(owners):
                live["metadata"]["ownerReferences"] = others
                try:
                    await self._spoke.update(mapping, live)
                except NotFoundError:
                    pass
            stale_resources_removed_total.labels(action="released").inc()
            _log.info("released co-owned stale resource", resource=str(meta), remaining_owners=len(co_owners))
            return replace(meta, uid=uid)

        try:
            await self._spoke.delete(mapping, meta.name, meta.namespace, propagation_policy=BACKGROUND, uid=uid)
        except NotFoundError:
            stale_resources_removed_total.labels(action="already_gone").inc()
            return meta
        stale_resources_removed_total.labels(action="deleted").inc()
        _log.info("deleted stale resource", resource=str(meta), uid=uid)
        return replace(meta, uid=uid)
