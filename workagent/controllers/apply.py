"""Apply engine: puts every manifest of a Work onto the spoke cluster.

Each manifest is created, updated or left alone depending on the content
hash annotation stamped on the live object, and always ends up carrying an
owner reference to the Work's AppliedWork.  Owner references are merged,
never replaced, so several Works can co-own one resource and the spoke's
garbage collector only removes it once the last AppliedWork is gone.
"""

from __future__ import annotations

import hashlib
import json
from copy import deepcopy
from dataclasses import dataclass
from typing import Any

from workagent.cluster.errors import AlreadyExistsError, ClusterAPIError, NotFoundError
from workagent.cluster.store import ObjectStore
from workagent.controllers.resolver import (
    ManifestResolver,
    ResolvedManifest,
    build_resource_identifier,
    decode_manifest,
)
from workagent.errors import ApplyError, DecodeError, UnmappableKindError
from workagent.models.results import DONE, ObjectKey, Result
from workagent.models.work import (
    APPLIED_WORK_KIND,
    APPLIED_WORK_MAPPING,
    CONDITION_APPLIED,
    SPEC_HASH_ANNOTATION,
    WORK_MAPPING,
    AppliedTrackingRecord,
    Condition,
    ManifestCondition,
    ResourceIdentifier,
    WorkBundle,
    set_condition,
)
from workagent.observability.logging import get_logger
from workagent.observability.metrics import manifest_apply_total

_log = get_logger("controller.apply")

# Server-populated metadata that must not influence the content hash.
_VOLATILE_METADATA = (
    "resourceVersion",
    "uid",
    "generation",
    "creationTimestamp",
    "deletionTimestamp",
    "deletionGracePeriodSeconds",
    "managedFields",
    "ownerReferences",
    "selfLink",
)

_REJECTION_REASONS = {
    400: "Invalid",
    403: "Forbidden",
    422: "Invalid",
}

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_OWNER_ADDED = "owner_added"
ACTION_UNCHANGED = "unchanged"
ACTION_FAILED = "failed"


def compute_manifest_hash(obj: dict[str, Any]) -> str:
    """sha256 of the canonical JSON form of *obj*, ignoring server-owned fields and the hash itself."""
    normalized = deepcopy(obj)
    normalized.pop("status", None)
    metadata = normalized.get("metadata") or {}
    for key in _VOLATILE_METADATA:
        metadata.pop(key, None)
    annotations = dict(metadata.get("annotations") or {})
    annotations.pop(SPEC_HASH_ANNOTATION, None)
    if annotations:
        metadata["annotations"] = annotations
    else:
        metadata.pop("annotations", None)
    encoded = json.dumps(normalized, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def merge_owner_references(existing: list[dict[str, Any]], owner: dict[str, Any]) -> tuple[list[dict[str, Any]], bool]:
    """Return *existing* with *owner* appended unless an entry with its uid is present.

    The second element reports whether the list changed.
    """
    if any(ref.get("uid") == owner.get("uid") for ref in existing):
        return list(existing), False
    return [*existing, owner], True


def _foreign_controller(owner_refs: list[dict[str, Any]]) -> dict[str, Any] | None:
    for ref in owner_refs:
        if ref.get("controller") and ref.get("kind") != APPLIED_WORK_KIND:
            return ref
    return None


def _as_apply_error(exc: ClusterAPIError, resolved: ResolvedManifest) -> ApplyError:
    reason = _REJECTION_REASONS.get(exc.status, "ApplyFailed")
    return ApplyError(
        f"{resolved.obj['kind']} {resolved.namespace}/{resolved.name}: {exc}",
        reason=reason,
        transient=exc.transient,
    )


@dataclass
class ApplyOutcome:
    """What happened to one manifest."""

    identifier: ResourceIdentifier
    action: str
    reason: str = ""
    message: str = ""
    transient: bool = False
    unmappable: bool = False

    @property
    def succeeded(self) -> bool:
        return self.action != ACTION_FAILED


class ApplyEngine:
    """Applies resolved manifests to the spoke cluster on behalf of an AppliedWork."""

    def __init__(self, spoke: ObjectStore, resolver: ManifestResolver) -> None:
        self._spoke = spoke
        self._resolver = resolver

    async def apply(self, resolved: ResolvedManifest, owner: dict[str, Any]) -> str:
        """Create or update one resource; returns the action taken.

        Raises:
            ApplyError: if the spoke cluster rejects the write or the live
                object is controlled by something other than an AppliedWork.
            UnmappableKindError: if a create was refused because the kind is
                no longer served.
        """
        mapping = resolved.mapping
        desired = resolved.obj
        desired_hash = compute_manifest_hash(desired)

        try:
            live = await self._spoke.get(mapping, resolved.name, resolved.namespace)
        except NotFoundError:
            live = None
        except ClusterAPIError as exc:
            raise _as_apply_error(exc, resolved) from exc

        if live is None:
            body = deepcopy(desired)
            metadata = body["metadata"]
            metadata.setdefault("annotations", {})[SPEC_HASH_ANNOTATION] = desired_hash
            metadata["ownerReferences"], _ = merge_owner_references(list(metadata.get("ownerReferences") or []), owner)
            try:
                await self._spoke.create(mapping, body)
            except AlreadyExistsError as exc:
                # created by someone else since our read; retry against the live object
                raise ApplyError(str(exc), reason="AlreadyExists", transient=True) from exc
            except NotFoundError as exc:
                # the cached mapping may name a kind the spoke no longer serves
                await self._resolver.forget(desired)
                await self._resolver.resolve(desired)
                raise _as_apply_error(exc, resolved) from exc
            except ClusterAPIError as exc:
                raise _as_apply_error(exc, resolved) from exc
            return ACTION_CREATED

        live_meta = live.get("metadata") or {}
        live_owners = list(live_meta.get("ownerReferences") or [])
        foreign = _foreign_controller(live_owners)
        if foreign is not None:
            raise ApplyError(
                f"{desired['kind']} {resolved.namespace}/{resolved.name} is controlled by "
                f"{foreign.get('kind')}/{foreign.get('name')}",
                reason="OwnerConflict",
            )

        owners, owner_added = merge_owner_references(live_owners, owner)
        live_hash = (live_meta.get("annotations") or {}).get(SPEC_HASH_ANNOTATION)

        if live_hash == desired_hash:
            if not owner_added:
                return ACTION_UNCHANGED
            body = deepcopy(live)
            body["metadata"]["ownerReferences"] = owners
            action = ACTION_OWNER_ADDED
        else:
            body = deepcopy(desired)
            metadata = body["metadata"]
            metadata.setdefault("annotations", {})[SPEC_HASH_ANNOTATION] = desired_hash
            metadata["ownerReferences"] = owners
            metadata["resourceVersion"] = live_meta.get("resourceVersion", "")
            action = ACTION_UPDATED

        try:
            await self._spoke.update(mapping, body)
        except ClusterAPIError as exc:
            raise _as_apply_error(exc, resolved) from exc
        return action

    async def apply_manifest(self, ordinal: int, payload: Any, owner: dict[str, Any]) -> ApplyOutcome:
        """Decode, resolve and apply one manifest, folding every failure into the outcome."""
        try:
            obj = decode_manifest(payload)
        except DecodeError as exc:
            return ApplyOutcome(build_resource_identifier(ordinal, None, None), ACTION_FAILED, exc.reason, str(exc))
        try:
            resolved = await self._resolver.resolve_manifest(obj)
        except UnmappableKindError as exc:
            return ApplyOutcome(
                build_resource_identifier(ordinal, obj, None),
                ACTION_FAILED,
                exc.reason,
                str(exc),
                unmappable=True,
            )

        identifier = build_resource_identifier(ordinal, resolved.obj, resolved.mapping)
        try:
            action = await self.apply(resolved, owner)
        except UnmappableKindError as exc:
            return ApplyOutcome(identifier, ACTION_FAILED, exc.reason, str(exc), unmappable=True)
        except ApplyError as exc:
            return ApplyOutcome(identifier, ACTION_FAILED, exc.reason, str(exc), transient=exc.transient)
        return ApplyOutcome(identifier, action)

    async def apply_all(self, bundle: WorkBundle, record: AppliedTrackingRecord) -> list[ApplyOutcome]:
        """Apply every manifest in order; one failure never stops the rest."""
        owner = record.owner_reference()
        outcomes = []
        for ordinal, payload in enumerate(bundle.manifests):
            outcome = await self.apply_manifest(ordinal, payload, owner)
            manifest_apply_total.labels(outcome=outcome.action if outcome.succeeded else outcome.reason).inc()
            if outcome.succeeded:
                _log.debug("manifest_applied", work=bundle.name, ordinal=ordinal, action=outcome.action)
            else:
                _log.warning(
                    "manifest_apply_failed",
                    work=bundle.name,
                    ordinal=ordinal,
                    reason=outcome.reason,
                    error=outcome.message,
                )
            outcomes.append(outcome)
        return outcomes


def build_status(bundle: WorkBundle, outcomes: list[ApplyOutcome]) -> tuple[list[ManifestCondition], list[Condition]]:
    """Fold apply outcomes into manifest conditions and the aggregate Applied condition."""
    previous = {mc.identifier.ordinal: mc for mc in bundle.manifest_conditions}
    manifest_conditions = []
    for outcome in outcomes:
        prior = previous.get(outcome.identifier.ordinal)
        if outcome.transient and prior is not None and prior.identifier == outcome.identifier and prior.applied:
            # a retryable error leaves the resource already on the spoke in place
            manifest_conditions.append(ManifestCondition(outcome.identifier, list(prior.conditions)))
            continue
        if outcome.succeeded:
            cond = Condition(
                type=CONDITION_APPLIED,
                status="True",
                reason="AppliedManifestComplete",
                message="Apply manifest complete",
                observed_generation=bundle.generation,
            )
        else:
            cond = Condition(
                type=CONDITION_APPLIED,
                status="False",
                reason=outcome.reason,
                message=outcome.message,
                observed_generation=bundle.generation,
            )
        conditions = set_condition(prior.conditions if prior is not None else [], cond)
        manifest_conditions.append(ManifestCondition(identifier=outcome.identifier, conditions=conditions))

    failed = [o for o in outcomes if not o.succeeded]
    if failed:
        aggregate = Condition(
            type=CONDITION_APPLIED,
            status="False",
            reason="AppliedWorkFailed",
            message=f"Failed to apply {len(failed)} of {len(outcomes)} manifests",
            observed_generation=bundle.generation,
        )
    else:
        aggregate = Condition(
            type=CONDITION_APPLIED,
            status="True",
            reason="AppliedWorkComplete",
            message="Apply work complete",
            observed_generation=bundle.generation,
        )
    return manifest_conditions, set_condition(bundle.conditions, aggregate)


class ApplyWorkController:
    """Hub-triggered reconcile that applies a Work and writes its status."""

    name = "apply"

    def __init__(
        self,
        hub: ObjectStore,
        spoke: ObjectStore,
        engine: ApplyEngine,
        record_wait_seconds: float = 5.0,
        resync_interval: float = 60.0,
    ) -> None:
        self._hub = hub
        self._spoke = spoke
        self._engine = engine
        self._record_wait_seconds = record_wait_seconds
        self._resync_interval = resync_interval

    async def reconcile(self, key: ObjectKey) -> Result:
        log = _log.bind(work=str(key))
        try:
            bundle = WorkBundle.from_dict(await self._hub.get(WORK_MAPPING, key.name, key.namespace))
        except NotFoundError:
            log.debug("work not found, nothing to apply")
            return DONE

        if bundle.being_deleted:
            log.debug("work is being deleted, skipping apply")
            return DONE
        if not bundle.has_finalizer:
            # the lifecycle controller's finalizer update triggers us again
            log.debug("work has no finalizer yet, skipping apply")
            return DONE

        try:
            record = AppliedTrackingRecord.from_dict(await self._spoke.get(APPLIED_WORK_MAPPING, key.name))
        except NotFoundError:
            log.info("appliedwork not created yet, requeueing", after=self._record_wait_seconds)
            return Result(requeue_after=self._record_wait_seconds)

        outcomes = await self._engine.apply_all(bundle, record)
        manifest_conditions, conditions = build_status(bundle, outcomes)

        old_status = bundle.to_dict()["status"]
        bundle.manifest_conditions = manifest_conditions
        bundle.conditions = conditions
        new_body = bundle.to_dict()
        if new_body["status"] != old_status:
            await self._hub.update_status(WORK_MAPPING, new_body)
            log.info(
                "work status updated",
                applied=sum(1 for o in outcomes if o.succeeded),
                failed=sum(1 for o in outcomes if not o.succeeded),
                generation=bundle.generation,
            )

        transient = [o for o in outcomes if o.transient]
        if transient:
            raise ApplyError(
                f"{len(transient)} manifest(s) hit transient errors: {transient[0].message}",
                reason=transient[0].reason,
                transient=True,
            )
        unmappable = sum(1 for o in outcomes if o.unmappable)
        if unmappable:
            log.info("unmappable kinds retried at resync", manifests=unmappable, after=self._resync_interval)
        # re-apply periodically so drift on the spoke, such as a deleted resource, is repaired
        return Result(requeue_after=self._resync_interval)
