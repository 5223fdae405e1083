"""Deployment lifecycle endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from airdaemon.deploy.orchestrator import DeploymentOrchestrator
from airdaemon.lib.errors import NotFoundError, ValidationError
from airdaemon.lib.logging_config import get_logger
from airdaemon.lib.paths import validate_identifier
from airdaemon.models.deployment import (
    ContainerReplaced,
    DeploymentTicket,
    DeployRequest,
    EditRequest,
    RedeployRequest,
    ReinstallRequest,
)
from airdaemon.models.instance import InstanceState
from airdaemon.serve.dependencies import get_orchestrator, get_store
from airdaemon.serve.models import MessageResponse, StateResponse
from airdaemon.state.store import StateStore

logger = get_logger(__name__)

router = APIRouter(prefix="/deployments", tags=["Deployments"])


def _parse_state(value: str) -> InstanceState:
    try:
        return InstanceState(value)
    except ValueError:
        allowed = ", ".join(s.value for s in InstanceState)
        raise ValidationError(
            f"Invalid state '{value}'. Allowed states are: {allowed}"
        ) from None


@router.get("/{instance_id}/states/set/{state}")
async def set_state(
    instance_id: str, state: str, store: StateStore = Depends(get_store)
) -> MessageResponse:
    """Overwrite the state of an existing instance record."""
    validate_identifier(instance_id, "instance id")
    await store.set_state_value(instance_id, _parse_state(state))
    return MessageResponse(message=f"State updated for ID {instance_id}")


@router.get("/{instance_id}/states/get")
async def get_state(
    instance_id: str, store: StateStore = Depends(get_store)
) -> StateResponse:
    """Return the current state of an instance."""
    validate_identifier(instance_id, "instance id")
    state = await store.get_state(instance_id)
    if state is None:
        raise NotFoundError(f"ID {instance_id} not found.")
    return StateResponse(state=state)


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_deployment(
    request: DeployRequest,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> DeploymentTicket:
    """Deploy a new instance; installation continues in the background."""
    return await orchestrator.deploy(request)


@router.delete("/{container_id}")
async def delete_deployment(
    container_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    """Stop and remove a container, keeping its volume directory."""
    await orchestrator.remove(container_id, remove_volume=False)
    return MessageResponse(message="Container removed successfully")


@router.post("/redeploy/{container_id}")
async def redeploy(
    container_id: str,
    request: RedeployRequest,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> ContainerReplaced:
    """Recreate a container on its existing volume."""
    return await orchestrator.redeploy(container_id, request)


@router.post("/reinstall/{container_id}")
async def reinstall(
    container_id: str,
    request: ReinstallRequest,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> ContainerReplaced:
    """Recreate a container and re-run its install scripts."""
    return await orchestrator.reinstall(container_id, request)


@router.put("/edit/{container_id}")
async def edit(
    container_id: str,
    request: EditRequest,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> ContainerReplaced:
    """Recreate a container with a new image or limits."""
    return await orchestrator.edit(container_id, request)
