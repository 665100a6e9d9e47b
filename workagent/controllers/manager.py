"""Wires controllers, their work queues and the watches that feed them.

Hub side (the cluster namespace's ``Work`` objects):
    finalizer    generation-changed events
    apply        generation-changed events, then every resync interval
    work_status  updates whose resourceVersion changed

Spoke side (``AppliedWork`` objects):
    applied_work every event, then every resync interval on its own
"""

from __future__ import annotations

from typing import Any, Protocol

from workagent.cluster.discovery import RESTMapper
from workagent.cluster.store import ObjectStore
from workagent.controllers.applied_work import AppliedWorkController
from workagent.controllers.apply import ApplyEngine, ApplyWorkController
from workagent.controllers.finalizer import FinalizeWorkController
from workagent.controllers.predicates import AnyEventPredicate, GenerationChangedPredicate, UpdateOnlyPredicate
from workagent.controllers.resolver import ManifestResolver
from workagent.controllers.tracker import AppliedResourceTracker
from workagent.controllers.work_status import WorkStatusController
from workagent.models.config import WorkAgentConfig
from workagent.models.results import ObjectKey, Result
from workagent.models.work import APPLIED_WORK_MAPPING, WORK_MAPPING
from workagent.observability.logging import get_logger
from workagent.scheduler.queue import WorkQueue
from workagent.scheduler.watcher import EventHandler, ResourceWatcher

_log = get_logger("manager")


class Controller(Protocol):
    name: str

    async def reconcile(self, key: ObjectKey) -> Result: ...


def _cluster_scoped_key(obj: dict[str, Any]) -> ObjectKey:
    return ObjectKey("", str((obj.get("metadata") or {}).get("name", "")))


class ControllerManager:
    """Owns every controller, queue and watcher of one agent process."""

    def __init__(self, hub: ObjectStore, spoke: ObjectStore, rest_mapper: RESTMapper, config: WorkAgentConfig) -> None:
        ctl = config.controller
        namespace = config.cluster.cluster_namespace

        tracker = AppliedResourceTracker(hub, spoke)
        engine = ApplyEngine(spoke, ManifestResolver(rest_mapper))
        self.finalizer = FinalizeWorkController(hub, spoke)
        self.apply = ApplyWorkController(
            hub,
            spoke,
            engine,
            record_wait_seconds=ctl.record_wait_seconds,
            resync_interval=ctl.resync_interval,
        )
        self.work_status = WorkStatusController(tracker)
        self.applied_work = AppliedWorkController(tracker, namespace, resync_interval=ctl.resync_interval)

        self.queues: dict[str, WorkQueue] = {}
        for controller in (self.finalizer, self.apply, self.work_status, self.applied_work):
            self.queues[controller.name] = WorkQueue(
                controller.name,
                controller.reconcile,
                workers=ctl.workers,
                base_delay=ctl.backoff_base_seconds,
                max_delay=ctl.backoff_max_seconds,
                timeout=ctl.reconcile_timeout_seconds,
            )

        self.watchers = [
            ResourceWatcher(
                hub,
                WORK_MAPPING,
                [
                    EventHandler(self.queues[self.finalizer.name], GenerationChangedPredicate()),
                    EventHandler(self.queues[self.apply.name], GenerationChangedPredicate()),
                    EventHandler(self.queues[self.work_status.name], UpdateOnlyPredicate()),
                ],
                namespace=namespace,
            ),
            ResourceWatcher(
                spoke,
                APPLIED_WORK_MAPPING,
                [EventHandler(self.queues[self.applied_work.name], AnyEventPredicate(), _cluster_scoped_key)],
            ),
        ]
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        for queue in self.queues.values():
            await queue.start()
        for watcher in self.watchers:
            await watcher.start()
        self._running = True
        _log.info("controllers started", controllers=sorted(self.queues))

    async def stop(self) -> None:
        self._running = False
        for watcher in self.watchers:
            await watcher.stop()
        for queue in self.queues.values():
            await queue.stop()
        _log.info("controllers stopped")

    def status(self) -> dict[str, dict[str, Any]]:
        """Per-controller queue state for the status endpoint."""
        return {
            name: {"running": queue.running, "queue_depth": queue.depth()}
            for name, queue in self.queues.items()
        }

    def synced(self) -> bool:
        return all(w.synced.is_set() for w in self.watchers)
