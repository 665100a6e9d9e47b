"""Error taxonomy for the apply, tracking and lifecycle controllers.

DecodeError, UnmappableKindError and ApplyError are per-manifest: they end up
as a false ``Applied`` condition on the manifest and never abort siblings.
DeletionError and ConsistencyError fail the whole reconcile and are handed
back to the work queue.
"""

from __future__ import annotations

from collections.abc import Sequence


class WorkAgentError(Exception):
    """Base class for every error raised by workagent controllers."""


class DecodeError(WorkAgentError):
    """The manifest payload is not a well-formed resource object."""

    reason = "DecodeFailed"


class UnmappableKindError(WorkAgentError):
    """The manifest kind is not served by the target cluster."""

    reason = "UnmappableKind"

    def __init__(self, api_version: str, kind: str) -> None:
        super().__init__(f"no resource mapping for kind {kind!r} in {api_version!r}")
        self.api_version = api_version
        self.kind = kind


class ApplyError(WorkAgentError):
    """The target cluster rejected a create or update.

    ``transient`` marks failures worth a backoff retry (conflicts,
    throttling, server errors) as opposed to permanent rejections.
    """

    def __init__(self, message: str, reason: str = "ApplyFailed", transient: bool = False) -> None:
        super().__init__(message)
        self.reason = reason
        self.transient = transient


class DeletionError(WorkAgentError):
    """One or more stale resources could not be removed from the spoke cluster."""

    def __init__(self, failures: Sequence[tuple[str, Exception]]) -> None:
        self.failures = list(failures)
        detail = "; ".join(f"{key}: {exc}" for key, exc in self.failures)
        super().__init__(f"failed to delete {len(self.failures)} stale resource(s): {detail}")


class ConsistencyError(WorkAgentError):
    """Work and AppliedWork existence disagree outside the lifecycle transition window."""
