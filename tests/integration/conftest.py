"""Shared fixtures for workagent integration tests.

Wires the hub-triggered controllers together over the in-memory clusters so
tests can drive a Work through its whole lifecycle without real clusters or
watches.
"""

from __future__ import annotations

import pytest

from workagent.controllers.apply import ApplyWorkController
from workagent.controllers.finalizer import FinalizeWorkController
from workagent.controllers.work_status import WorkStatusController
from workagent.models.results import ObjectKey


class Agent:
    """Runs the hub-triggered controllers for one Work the way the watches would."""

    def __init__(
        self,
        finalizer: FinalizeWorkController,
        apply_controller: ApplyWorkController,
        work_status: WorkStatusController,
    ) -> None:
        self.finalizer = finalizer
        self.apply = apply_controller
        self.work_status = work_status

    async def sync(self, key: ObjectKey) -> None:
        await self.finalizer.reconcile(key)
        await self.apply.reconcile(key)
        await self.work_status.reconcile(key)


@pytest.fixture
def agent(
    finalizer: FinalizeWorkController,
    apply_controller: ApplyWorkController,
    work_status: WorkStatusController,
) -> Agent:
    return Agent(finalizer, apply_controller, work_status)
