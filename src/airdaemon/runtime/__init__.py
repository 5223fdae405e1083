"""Container runtime client and power actions."""

from airdaemon.runtime.client import (
    ContainerHandle,
    ContainerInfo,
    ContainerSpec,
    DockerRuntime,
)

__all__ = ["ContainerHandle", "ContainerInfo", "ContainerSpec", "DockerRuntime"]
