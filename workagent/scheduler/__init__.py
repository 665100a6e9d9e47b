"""Work queues and the list+watch loops that fill them."""

from workagent.scheduler.queue import WorkQueue
from workagent.scheduler.watcher import EventHandler, ResourceWatcher

__all__ = ["EventHandler", "ResourceWatcher", "WorkQueue"]
