"""Tests for the process-wide log fields."""

from __future__ import annotations

from workagent.observability.logging import _StaticFields


class TestStaticFields:
    def test_adds_fields(self) -> None:
        processor = _StaticFields(cluster_namespace="cluster-a", agent_version="0.1.0")
        event = processor(None, "info", {"event": "work status updated"})
        assert event == {"event": "work status updated", "cluster_namespace": "cluster-a", "agent_version": "0.1.0"}

    def test_bound_value_wins(self) -> None:
        processor = _StaticFields(cluster_namespace="cluster-a")
        event = processor(None, "info", {"event": "x", "cluster_namespace": "cluster-b"})
        assert event["cluster_namespace"] == "cluster-b"

    def test_empty_values_are_skipped(self) -> None:
        processor = _StaticFields(cluster_namespace="")
        assert processor(None, "info", {"event": "x"}) == {"event": "x"}
