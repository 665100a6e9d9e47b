"""List+watch loop feeding filtered events into work queues.

Each ``ResourceWatcher`` keeps the last seen version of every object so the
predicates can compare old and new.  A watch that expires (410 Gone) is
recovered with a full relist; objects that vanished while the watch was
down are reported as deletes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from workagent.cluster.errors import ClusterAPIError, GoneError
from workagent.cluster.store import ObjectStore, object_key
from workagent.controllers.predicates import ADDED, DELETED, MODIFIED, Predicate, WatchEvent
from workagent.models.resources import ResourceMapping
from workagent.models.results import ObjectKey
from workagent.observability.logging import get_logger
from workagent.scheduler.queue import WorkQueue

_log = get_logger("scheduler.watcher")

_RETRY_BASE_SECONDS = 1.0
_RETRY_MAX_SECONDS = 30.0

KeyFn = Callable[[dict[str, Any]], ObjectKey]


def namespaced_key(obj: dict[str, Any]) -> ObjectKey:
    namespace, name = object_key(obj)
    return ObjectKey(namespace, name)


@dataclass
class EventHandler:
    """Routes events that pass ``predicate`` into ``queue`` under ``key_fn(obj)``."""

    queue: WorkQueue
    predicate: Predicate
    key_fn: KeyFn = namespaced_key

    def handle(self, event: WatchEvent) -> bool:
        if not self.predicate(event):
            return False
        self.queue.add(self.key_fn(event.new))
        return True


class ResourceWatcher:
    def __init__(
        self,
        store: ObjectStore,
        mapping: ResourceMapping,
        handlers: list[EventHandler],
        namespace: str = "",
    ) -> None:
        self._store = store
        self._mapping = mapping
        self._handlers = handlers
        self._namespace = namespace
        self._cache: dict[tuple[str, str], dict[str, Any]] = {}
        self._task: asyncio.Task[None] | None = None
        self.synced = asyncio.Event()
        self._log = _log.bind(cluster=store.name, resource=mapping.resource)

    def __len__(self) -> int:
        return len(self._cache)

    def dispatch(self, event_type: str, obj: dict[str, Any]) -> None:
        """Update the cache and hand the event to every handler."""
        key = object_key(obj)
        old = self._cache.get(key)
        if event_type == DELETED:
            self._cache.pop(key, None)
        else:
            self._cache[key] = obj
            if event_type == ADDED and old is not None:
                event_type = MODIFIED
        event = WatchEvent(type=event_type, new=obj, old=old)
        for handler in self._handlers:
            handler.handle(event)

    async def relist(self) -> str:
        """List everything, reconcile the cache with it, return the list resourceVersion."""
        items, resource_version = await self._store.list(self._mapping, self._namespace)
        seen = set()
        for obj in items:
            seen.add(object_key(obj))
            self.dispatch(ADDED, obj)
        for key in [k for k in self._cache if k not in seen]:
            self.dispatch(DELETED, self._cache[key])
        self.synced.set()
        self._log.info("resources listed", count=len(items))
        return resource_version

    async def run(self) -> None:
        failures = 0
        while True:
            try:
                resource_version = await self.relist()
                failures = 0
                while True:
                    async for event_type, obj in self._store.watch(self._mapping, self._namespace, resource_version):
                        resource_version = str((obj.get("metadata") or {}).get("resourceVersion", resource_version))
                        if event_type in (ADDED, MODIFIED, DELETED):
                            self.dispatch(event_type, obj)
            except GoneError:
                self._log.info("watch expired, relisting")
            except ClusterAPIError as exc:
                failures += 1
                delay = min(_RETRY_MAX_SECONDS, _RETRY_BASE_SECONDS * 2 ** (failures - 1))
                self._log.warning("watch failed", error=str(exc), retry_in=delay)
                await asyncio.sleep(delay)

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=f"watch-{self._store.name}-{self._mapping.resource}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
