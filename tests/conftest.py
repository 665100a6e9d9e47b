"""Shared fixtures: a hub and a spoke in-memory cluster plus the controllers wired to them."""

from __future__ import annotations

import pytest

from workagent.cluster.discovery import RESTMapper
from workagent.controllers.applied_work import AppliedWorkController
from workagent.controllers.apply import ApplyEngine, ApplyWorkController
from workagent.controllers.finalizer import FinalizeWorkController
from workagent.controllers.resolver import ManifestResolver
from workagent.controllers.tracker import AppliedResourceTracker
from workagent.controllers.work_status import WorkStatusController

from .fakes import FakeDiscovery, FakeObjectStore

CLUSTER_NAMESPACE = "cluster-a"


@pytest.fixture
def hub() -> FakeObjectStore:
    return FakeObjectStore("hub")


@pytest.fixture
def spoke() -> FakeObjectStore:
    return FakeObjectStore("spoke")


@pytest.fixture
def discovery() -> FakeDiscovery:
    return FakeDiscovery()


@pytest.fixture
def rest_mapper(discovery: FakeDiscovery) -> RESTMapper:
    return RESTMapper(discovery)


@pytest.fixture
def resolver(rest_mapper: RESTMapper) -> ManifestResolver:
    return ManifestResolver(rest_mapper)


@pytest.fixture
def engine(spoke: FakeObjectStore, resolver: ManifestResolver) -> ApplyEngine:
    return ApplyEngine(spoke, resolver)


@pytest.fixture
def tracker(hub: FakeObjectStore, spoke: FakeObjectStore) -> AppliedResourceTracker:
    return AppliedResourceTracker(hub, spoke)


@pytest.fixture
def finalizer(hub: FakeObjectStore, spoke: FakeObjectStore) -> FinalizeWorkController:
    return FinalizeWorkController(hub, spoke)


@pytest.fixture
def apply_controller(hub: FakeObjectStore, spoke: FakeObjectStore, engine: ApplyEngine) -> ApplyWorkController:
    return ApplyWorkController(hub, spoke, engine, record_wait_seconds=5.0, resync_interval=60.0)


@pytest.fixture
def work_status(tracker: AppliedResourceTracker) -> WorkStatusController:
    return WorkStatusController(tracker)


@pytest.fixture
def applied_work(tracker: AppliedResourceTracker) -> AppliedWorkController:
    return AppliedWorkController(tracker, CLUSTER_NAMESPACE, resync_interval=60.0)
