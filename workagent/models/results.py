"""Reconcile outcome handed back to the work queue."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple


@dataclass(frozen=True)
class Result:
    """Successful reconcile outcome.

    ``requeue_after`` asks the queue to run the same key again after the
    given number of seconds; ``None`` means wait for the next event.
    Failures are reported by raising, never through this object.
    """

    requeue_after: float | None = None


DONE = Result()


class ObjectKey(NamedTuple):
    """Work queue key: the namespace/name of the object a reconcile is about."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name
