"""Route handlers for the workagent REST API."""

from __future__ import annotations

from fastapi import APIRouter, Request

from workagent.api.schemas import ControllerStatus, HealthResponse, StatusResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness: the process is up and serving requests."""
    from workagent import __version__

    return HealthResponse(version=__version__)


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    manager = request.app.state.manager
    return StatusResponse(
        cluster_namespace=request.app.state.cluster_namespace,
        synced=manager.synced(),
        controllers={name: ControllerStatus(**state) for name, state in manager.status().items()},
    )
