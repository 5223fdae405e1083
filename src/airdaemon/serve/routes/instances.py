"""Container inspection and removal endpoints."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends

from airdaemon.deploy.orchestrator import DeploymentOrchestrator
from airdaemon.lib.errors import NotFoundError
from airdaemon.runtime.client import DockerRuntime
from airdaemon.serve.dependencies import get_orchestrator, get_runtime
from airdaemon.serve.models import DiskUsageResponse, PurgeResponse, RemovalResponse
from airdaemon.volumes.archives import format_file_size
from airdaemon.volumes.usage import directory_size

router = APIRouter(prefix="/instances", tags=["Instances"])


@router.get("")
async def list_instances(
    runtime: DockerRuntime = Depends(get_runtime),
) -> list[dict[str, Any]]:
    """List every container, running or not."""
    return await runtime.list_containers()


@router.post("/purge/all")
async def purge_all(
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> PurgeResponse:
    """Force-remove every container and volume directory."""
    return PurgeResponse(results=await orchestrator.purge_all())


@router.get("/{container_id}")
async def inspect_instance(
    container_id: str, runtime: DockerRuntime = Depends(get_runtime)
) -> dict[str, Any]:
    """Return the raw inspect data of a container."""
    handle = await runtime.get_container(container_id)
    info = await handle.inspect()
    return info.attrs


@router.get("/{container_id}/ports")
async def list_ports(
    container_id: str, runtime: DockerRuntime = Depends(get_runtime)
) -> list[dict[str, str | None]]:
    """List the published ports of a container."""
    handle = await runtime.get_container(container_id)
    info = await handle.inspect()
    return info.port_list()


@router.delete("/{container_id}")
async def delete_instance(
    container_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> RemovalResponse:
    """Force-remove a container together with its volume directory."""
    result = await orchestrator.remove(container_id, remove_volume=True)
    return RemovalResponse(
        message=f"Container {container_id} and its volumes were deleted",
        result=result,
    )


@router.get("/{instance_id}/disk/usage")
async def disk_usage(
    instance_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> DiskUsageResponse:
    """Report the size of an instance's volume directory."""
    volume_path = orchestrator.volume_path(instance_id)
    if not volume_path.is_dir():
        raise NotFoundError("Volume directory not found")
    total = await asyncio.to_thread(directory_size, volume_path)
    return DiskUsageResponse(
        id=instance_id,
        total_bytes=total,
        total_space=format_file_size(total),
        path=str(volume_path),
    )
