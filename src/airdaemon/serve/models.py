"""Pydantic models for the daemon HTTP API."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from airdaemon.models.deployment import RemovalResult
from airdaemon.models.instance import InstanceState


class ServerState(str, Enum):
    """Lifecycle state of the HTTP server."""

    INITIALIZING = "initializing"
    READY = "ready"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="'healthy' or 'unhealthy'")
    version: str
    pending_deployments: int = Field(
        default=0, description="Background deployments still running"
    )
    uptime_seconds: float = 0.0


class ErrorResponse(BaseModel):
    """Error body returned for every failed request.

    Attributes:
        error: Stable, machine-readable error category
        detail: Human-readable message
    """

    error: str
    detail: str


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MessageResponse(_ApiModel):
    """Plain acknowledgement."""

    success: bool = True
    message: str


class StateResponse(_ApiModel):
    """Current lifecycle state of an instance."""

    success: bool = True
    state: InstanceState


class PowerResponse(_ApiModel):
    """Result of a power action."""

    success: bool = True
    message: str
    container_id: str = Field(..., alias="containerId")


class RemovalResponse(_ApiModel):
    """Result of removing one container."""

    success: bool = True
    message: str
    result: RemovalResult


class PurgeResponse(_ApiModel):
    """Result of purging every container."""

    success: bool = True
    message: str = "Purge operation completed"
    results: list[RemovalResult] = Field(default_factory=list)


class DiskUsageResponse(_ApiModel):
    """Size of an instance's volume directory."""

    id: str
    total_bytes: int = Field(..., alias="totalBytes")
    total_space: str = Field(..., alias="totalSpace")
    path: str
