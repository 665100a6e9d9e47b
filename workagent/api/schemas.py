"""Pydantic response models for the workagent REST API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    error: str
    detail: str = ""


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str


class ControllerStatus(BaseModel):
    running: bool
    queue_depth: int = Field(ge=0)


class StatusResponse(BaseModel):
    """Agent-wide view: which cluster namespace it serves and how its controllers are doing."""

    cluster_namespace: str
    synced: bool
    controllers: dict[str, ControllerStatus]
