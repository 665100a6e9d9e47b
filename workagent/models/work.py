"""Work and AppliedWork data structures.

A ``Work`` (WorkBundle) lives on the hub and declares manifests; an
``AppliedWork`` (AppliedTrackingRecord) lives on the spoke and records what
is actually live because of that Work.  Both are stored as plain dicts in
their cluster; ``from_dict``/``to_dict`` convert to and from that form.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from workagent.models.resources import ResourceMapping

GROUP = "multicluster.x-k8s.io"
VERSION = "v1alpha1"
API_VERSION = f"{GROUP}/{VERSION}"

WORK_KIND = "Work"
APPLIED_WORK_KIND = "AppliedWork"

WORK_FINALIZER = "multicluster.x-k8s.io/work-cleanup"
SPEC_HASH_ANNOTATION = "multicluster.x-k8s.io/spec-hash"

CONDITION_APPLIED = "Applied"

WORK_MAPPING = ResourceMapping(group=GROUP, version=VERSION, resource="works", kind=WORK_KIND, namespaced=True)
APPLIED_WORK_MAPPING = ResourceMapping(
    group=GROUP,
    version=VERSION,
    resource="appliedworks",
    kind=APPLIED_WORK_KIND,
    namespaced=False,
)

IdentityKey = tuple[str, str, str, str, str]


def now_timestamp() -> str:
    """Return the current time in Kubernetes RFC 3339 form."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class Condition:
    """A timestamped named condition (metav1.Condition shape)."""

    type: str
    status: str  # "True" | "False" | "Unknown"
    reason: str = ""
    message: str = ""
    last_transition_time: str = ""
    observed_generation: int = 0

    @property
    def is_true(self) -> bool:
        return self.status == "True"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        return cls(
            type=str(data.get("type", "")),
            status=str(data.get("status", "Unknown")),
            reason=str(data.get("reason", "")),
            message=str(data.get("message", "")),
            last_transition_time=str(data.get("lastTransitionTime", "")),
            observed_generation=int(data.get("observedGeneration", 0) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": self.last_transition_time,
            "observedGeneration": self.observed_generation,
        }


def find_condition(conditions: list[Condition], condition_type: str) -> Condition | None:
    for cond in conditions:
        if cond.type == condition_type:
            return cond
    return None


def is_condition_true(conditions: list[Condition], condition_type: str) -> bool:
    cond = find_condition(conditions, condition_type)
    return cond is not None and cond.is_true


def set_condition(conditions: list[Condition], new: Condition) -> list[Condition]:
    """Return *conditions* with *new* merged in.

    The transition time is only moved when the status actually changes, so
    re-asserting the same outcome does not make the condition flap.
    """
    result: list[Condition] = []
    replaced = False
    for cond in conditions:
        if cond.type != new.type:
            result.append(cond)
            continue
        merged = Condition(
            type=new.type,
            status=new.status,
            reason=new.reason,
            message=new.message,
            last_transition_time=cond.last_transition_time if cond.status == new.status else "",
            observed_generation=new.observed_generation,
        )
        if not merged.last_transition_time:
            merged.last_transition_time = new.last_transition_time or now_timestamp()
        result.append(merged)
        replaced = True
    if not replaced:
        if not new.last_transition_time:
            new = replace(new, last_transition_time=now_timestamp())
        result.append(new)
    return result


@dataclass(frozen=True)
class ResourceIdentifier:
    """Declared identity of a manifest inside Work status."""

    ordinal: int
    group: str = ""
    version: str = ""
    kind: str = ""
    resource: str = ""
    namespace: str = ""
    name: str = ""

    @property
    def identity(self) -> IdentityKey:
        return (self.group, self.version, self.resource, self.namespace, self.name)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceIdentifier:
        return cls(
            ordinal=int(data.get("ordinal", 0) or 0),
            group=str(data.get("group", "")),
            version=str(data.get("version", "")),
            kind=str(data.get("kind", "")),
            resource=str(data.get("resource", "")),
            namespace=str(data.get("namespace", "")),
            name=str(data.get("name", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "ordinal": self.ordinal,
            "group": self.group,
            "version": self.version,
            "kind": self.kind,
            "resource": self.resource,
            "namespace": self.namespace,
            "name": self.name,
        }


@dataclass
class ManifestCondition:
    """Per-manifest status: its resolved identity plus its conditions."""

    identifier: ResourceIdentifier
    conditions: list[Condition] = field(default_factory=list)

    @property
    def applied(self) -> bool:
        return is_condition_true(self.conditions, CONDITION_APPLIED)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ManifestCondition:
        return cls(
            identifier=ResourceIdentifier.from_dict(data.get("identifier") or {}),
            conditions=[Condition.from_dict(c) for c in data.get("conditions") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier.to_dict(),
            "conditions": [c.to_dict() for c in self.conditions],
        }


@dataclass
class WorkBundle:
    """Hub-side ``Work`` object."""

    name: str
    namespace: str
    uid: str = ""
    generation: int = 0
    resource_version: str = ""
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: str | None = None
    manifests: list[Any] = field(default_factory=list)
    manifest_conditions: list[ManifestCondition] = field(default_factory=list)
    conditions: list[Condition] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def has_finalizer(self) -> bool:
        return WORK_FINALIZER in self.finalizers

    @property
    def being_deleted(self) -> bool:
        return bool(self.deletion_timestamp)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkBundle:
        metadata = data.get("metadata") or {}
        spec = data.get("spec") or {}
        status = data.get("status") or {}
        workload = spec.get("workload") or {}
        return cls(
            name=str(metadata.get("name", "")),
            namespace=str(metadata.get("namespace", "")),
            uid=str(metadata.get("uid", "")),
            generation=int(metadata.get("generation", 0) or 0),
            resource_version=str(metadata.get("resourceVersion", "")),
            finalizers=list(metadata.get("finalizers") or []),
            deletion_timestamp=metadata.get("deletionTimestamp"),
            manifests=list(workload.get("manifests") or []),
            manifest_conditions=[ManifestCondition.from_dict(m) for m in status.get("manifestConditions") or []],
            conditions=[Condition.from_dict(c) for c in status.get("conditions") or []],
            raw=deepcopy(data),
        )

    def to_dict(self) -> dict[str, Any]:
        """Render back to the stored form, keeping fields this model does not own."""
        data = deepcopy(self.raw)
        data.setdefault("apiVersion", API_VERSION)
        data.setdefault("kind", WORK_KIND)
        metadata = data.setdefault("metadata", {})
        metadata["name"] = self.name
        metadata["namespace"] = self.namespace
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        if self.finalizers:
            metadata["finalizers"] = list(self.finalizers)
        else:
            metadata.pop("finalizers", None)
        spec = data.setdefault("spec", {})
        spec.setdefault("workload", {})["manifests"] = list(self.manifests)
        data["status"] = {
            "conditions": [c.to_dict() for c in self.conditions],
            "manifestConditions": [m.to_dict() for m in self.manifest_conditions],
        }
        return data


@dataclass(frozen=True)
class AppliedResourceMeta:
    """Identity of a resource that was actually applied on the spoke."""

    group: str = ""
    version: str = ""
    resource: str = ""
    namespace: str = ""
    name: str = ""
    uid: str | None = None

    @property
    def identity(self) -> IdentityKey:
        return (self.group, self.version, self.resource, self.namespace, self.name)

    @property
    def mapping(self) -> ResourceMapping:
        return ResourceMapping(
            group=self.group,
            version=self.version,
            resource=self.resource,
            namespaced=bool(self.namespace),
        )

    @classmethod
    def from_identifier(cls, identifier: ResourceIdentifier) -> AppliedResourceMeta:
        return cls(
            group=identifier.group,
            version=identifier.version,
            resource=identifier.resource,
            namespace=identifier.namespace,
            name=identifier.name,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppliedResourceMeta:
        return cls(
            group=str(data.get("group", "")),
            version=str(data.get("version", "")),
            resource=str(data.get("resource", "")),
            namespace=str(data.get("namespace", "")),
            name=str(data.get("name", "")),
            uid=data.get("uid") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "group": self.group,
            "version": self.version,
            "resource": self.resource,
            "namespace": self.namespace,
            "name": self.name,
        }
        if self.uid:
            data["uid"] = self.uid
        return data

    def __str__(self) -> str:
        gvr = "/".join(p for p in (self.group, self.version, self.resource) if p)
        ns_name = f"{self.namespace}/{self.name}" if self.namespace else self.name
        return f"{gvr} {ns_name}"


@dataclass
class AppliedTrackingRecord:
    """Spoke-side ``AppliedWork`` object."""

    name: str
    work_name: str = ""
    work_namespace: str = ""
    uid: str = ""
    resource_version: str = ""
    deletion_timestamp: str | None = None
    applied_resources: list[AppliedResourceMeta] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def being_deleted(self) -> bool:
        return bool(self.deletion_timestamp)

    @classmethod
    def new(cls, work_name: str, work_namespace: str) -> AppliedTrackingRecord:
        return cls(name=work_name, work_name=work_name, work_namespace=work_namespace)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppliedTrackingRecord:
        metadata = data.get("metadata") or {}
        spec = data.get("spec") or {}
        status = data.get("status") or {}
        return cls(
            name=str(metadata.get("name", "")),
            work_name=str(spec.get("workName", "")),
            work_namespace=str(spec.get("workNamespace", "")),
            uid=str(metadata.get("uid", "")),
            resource_version=str(metadata.get("resourceVersion", "")),
            deletion_timestamp=metadata.get("deletionTimestamp"),
            applied_resources=[AppliedResourceMeta.from_dict(r) for r in status.get("appliedResources") or []],
            raw=deepcopy(data),
        )

    def to_dict(self) -> dict[str, Any]:
        data = deepcopy(self.raw)
        data["apiVersion"] = API_VERSION
        data["kind"] = APPLIED_WORK_KIND
        metadata = data.setdefault("metadata", {})
        metadata["name"] = self.name
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        data["spec"] = {"workName": self.work_name, "workNamespace": self.work_namespace}
        data["status"] = {"appliedResources": [r.to_dict() for r in self.applied_resources]}
        return data

    def owner_reference(self) -> dict[str, Any]:
        """Owner reference placed on every resource applied for this record."""
        return {
            "apiVersion": API_VERSION,
            "kind": APPLIED_WORK_KIND,
            "name": self.name,
            "uid": self.uid,
            "blockOwnerDeletion": False,
        }
