"""Event filters deciding which watch events enqueue a reconcile."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"


@dataclass(frozen=True)
class WatchEvent:
    """A watch event with the previously cached object (``old``) when one is known."""

    type: str
    new: dict[str, Any]
    old: dict[str, Any] | None = None


def _metadata(obj: dict[str, Any] | None) -> dict[str, Any]:
    return (obj or {}).get("metadata") or {}


class Predicate(Protocol):
    def __call__(self, event: WatchEvent) -> bool: ...


class AnyEventPredicate:
    """Passes every event."""

    def __call__(self, event: WatchEvent) -> bool:
        return True


class UpdateOnlyPredicate:
    """Passes updates whose resourceVersion changed and deletes; never creates.

    Used for the status trigger: the create of a Work is handled by the
    lifecycle controller, and the first status write shows up as an update.
    """

    def __call__(self, event: WatchEvent) -> bool:
        if event.type == ADDED:
            return False
        if event.type == DELETED:
            return True
        if event.old is None:
            return True
        return _metadata(event.old).get("resourceVersion") != _metadata(event.new).get("resourceVersion")


class GenerationChangedPredicate:
    """Passes creates, deletes and spec changes; drops status-only updates.

    A deletion timestamp or finalizer change does not bump the generation
    but must still reach the lifecycle controller, so those pass too.
    """

    def __call__(self, event: WatchEvent) -> bool:
        if event.type != MODIFIED or event.old is None:
            return True
        old, new = _metadata(event.old), _metadata(event.new)
        if old.get("generation") != new.get("generation"):
            return True
        if old.get("deletionTimestamp") != new.get("deletionTimestamp"):
            return True
        return list(old.get("finalizers") or []) != list(new.get("finalizers") or [])
