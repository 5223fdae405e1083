"""Container power action endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from airdaemon.models.config import DaemonConfig
from airdaemon.runtime.client import DockerRuntime
from airdaemon.runtime.power import apply_power_action
from airdaemon.serve.dependencies import get_config, get_runtime
from airdaemon.serve.models import PowerResponse

router = APIRouter(prefix="/power", tags=["Power"])


@router.post("/{container_id}/{action}")
async def power_action(
    container_id: str,
    action: str,
    runtime: DockerRuntime = Depends(get_runtime),
    config: DaemonConfig = Depends(get_config),
) -> PowerResponse:
    """Start, stop, restart, pause, unpause or kill a container."""
    applied = await apply_power_action(
        runtime, container_id, action, timeout=config.power_timeout
    )
    return PowerResponse(
        message=f"Container {applied.value} operation completed successfully",
        container_id=container_id,
    )
