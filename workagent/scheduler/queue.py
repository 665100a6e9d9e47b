"""Keyed reconcile queue.

Guarantees, per queue:
  - at most one reconcile in flight for a given key;
  - a key added while it is already waiting is coalesced into one entry;
  - a key added while its reconcile is running is marked dirty and runs
    again once the current reconcile finishes;
  - failed reconciles are retried with per-key exponential backoff;
  - a successful ``Result(requeue_after=...)`` schedules the key again.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from workagent.models.results import ObjectKey, Result
from workagent.observability.logging import get_logger
from workagent.observability.metrics import queue_depth, reconcile_duration_seconds, reconcile_total

_log = get_logger("scheduler.queue")

ReconcileFn = Callable[[ObjectKey], Awaitable[Result]]


class WorkQueue:
    """Runs ``reconcile_fn`` over keys with ``workers`` concurrent coroutines."""

    def __init__(
        self,
        name: str,
        reconcile_fn: ReconcileFn,
        workers: int = 4,
        base_delay: float = 0.5,
        max_delay: float = 300.0,
        timeout: float = 120.0,
    ) -> None:
        self.name = name
        self._reconcile_fn = reconcile_fn
        self._worker_count = max(1, workers)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._timeout = timeout

        self._queue: asyncio.Queue[ObjectKey] = asyncio.Queue()
        self._queued: set[ObjectKey] = set()
        self._processing: set[ObjectKey] = set()
        self._dirty: set[ObjectKey] = set()
        self._failures: dict[ObjectKey, int] = {}
        self._timers: dict[ObjectKey, asyncio.TimerHandle] = {}
        self._workers: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def depth(self) -> int:
        return len(self._queued)

    def failures(self, key: ObjectKey) -> int:
        return self._failures.get(key, 0)

    def add(self, key: ObjectKey) -> None:
        """Enqueue *key* now."""
        if key in self._queued:
            return
        if key in self._processing:
            self._dirty.add(key)
            return
        self._queued.add(key)
        self._queue.put_nowait(key)
        queue_depth.labels(controller=self.name).set(len(self._queued))

    def add_after(self, key: ObjectKey, delay: float) -> None:
        """Enqueue *key* after *delay* seconds; an earlier pending schedule wins."""
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        when = loop.time() + delay
        existing = self._timers.get(key)
        if existing is not None:
            if existing.when() <= when:
                return
            existing.cancel()
        self._timers[key] = loop.call_at(when, self._fire, key)

    def _fire(self, key: ObjectKey) -> None:
        self._timers.pop(key, None)
        if self._running:
            self.add(key)

    def backoff(self, failures: int) -> float:
        """Delay before retry number *failures* (1-based)."""
        return float(min(self._max_delay, self._base_delay * (2 ** max(0, failures - 1))))

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for i in range(self._worker_count):
            task = asyncio.create_task(self._worker(), name=f"{self.name}-worker-{i}")
            self._workers.append(task)
        _log.info("work queue started", controller=self.name, workers=self._worker_count)

    async def stop(self) -> None:
        self._running = False
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in self._workers:
            task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        _log.info("work queue stopped", controller=self.name)

    async def _worker(self) -> None:
        while True:
            key = await self._queue.get()
            self._queued.discard(key)
            queue_depth.labels(controller=self.name).set(len(self._queued))
            self._processing.add(key)
            try:
                await self._process(key)
            finally:
                self._processing.discard(key)
                self._queue.task_done()
                if key in self._dirty:
                    self._dirty.discard(key)
                    if self._running:
                        self.add(key)

    async def _process(self, key: ObjectKey) -> None:
        log = _log.bind(controller=self.name, key=str(key))
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(self._reconcile_fn(key), timeout=self._timeout)
        except TimeoutError:
            self._retry(key, log, "reconcile timed out", f"exceeded {self._timeout}s")
            return
        except Exception as exc:
            self._retry(key, log, "reconcile failed", str(exc))
            return
        finally:
            reconcile_duration_seconds.labels(controller=self.name).observe(time.monotonic() - started)

        self._failures.pop(key, None)
        if result.requeue_after is not None:
            reconcile_total.labels(controller=self.name, result="requeue").inc()
            self.add_after(key, result.requeue_after)
        else:
            reconcile_total.labels(controller=self.name, result="success").inc()

    def _retry(self, key: ObjectKey, log: structlog.stdlib.BoundLogger, event: str, error: str) -> None:
        failures = self._failures.get(key, 0) + 1
        self._failures[key] = failures
        delay = self.backoff(failures)
        reconcile_total.labels(controller=self.name, result="error").inc()
        log.warning(event, error=error, failures=failures, retry_in=delay)
        self.add_after(key, delay)
