"""Core data structures for workagent."""

from workagent.models.config import WorkAgentConfig
from workagent.models.resources import ResourceMapping
from workagent.models.results import DONE, ObjectKey, Result
from workagent.models.work import (
    APPLIED_WORK_MAPPING,
    WORK_FINALIZER,
    WORK_MAPPING,
    AppliedResourceMeta,
    AppliedTrackingRecord,
    Condition,
    ManifestCondition,
    ResourceIdentifier,
    WorkBundle,
)

__all__ = [
    "APPLIED_WORK_MAPPING",
    "AppliedResourceMeta",
    "AppliedTrackingRecord",
    "Condition",
    "DONE",
    "ManifestCondition",
    "ObjectKey",
    "ResourceIdentifier",
    "ResourceMapping",
    "Result",
    "WORK_FINALIZER",
    "WORK_MAPPING",
    "WorkAgentConfig",
    "WorkBundle",
]
