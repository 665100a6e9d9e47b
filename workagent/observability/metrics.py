"""Prometheus metrics for the controllers and work queues."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

reconcile_total = Counter(
    "workagent_reconcile_total",
    "Reconcile invocations by controller and outcome.",
    ["controller", "result"],
)

reconcile_duration_seconds = Histogram(
    "workagent_reconcile_duration_seconds",
    "Wall time of a single reconcile.",
    ["controller"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

manifest_apply_total = Counter(
    "workagent_manifest_apply_total",
    "Manifest apply outcomes (created, updated, unchanged, failed reason).",
    ["outcome"],
)

stale_resources_removed_total = Counter(
    "workagent_stale_resources_removed_total",
    "Stale applied resources removed from the spoke cluster.",
    ["action"],  # deleted | released | already_gone
)

consistency_errors_total = Counter(
    "workagent_consistency_errors_total",
    "Work/AppliedWork existence mismatches detected.",
)

queue_depth = Gauge(
    "workagent_queue_depth",
    "Keys waiting in a controller work queue.",
    ["controller"],
)
