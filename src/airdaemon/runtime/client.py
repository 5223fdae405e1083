"""Container runtime client backed by the Docker SDK.

The Docker SDK is synchronous; every call is offloaded with
``asyncio.to_thread`` so the event loop keeps serving other requests while
the daemon talks to Docker. SDK exceptions are translated into the airdaemon
error hierarchy at this boundary.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound

from airdaemon.lib.errors import (
    ContainerStateError,
    DockerNotAvailableError,
    NotFoundError,
    RuntimeClientError,
)
from airdaemon.lib.logging_config import get_logger

if TYPE_CHECKING:
    from docker import DockerClient
    from docker.models.containers import Container

logger = get_logger(__name__)

T = TypeVar("T")


def _translate(operation: str, exc: DockerException) -> Exception:
    if isinstance(exc, NotFound):
        return NotFoundError(f"{operation}: {exc.explanation or 'not found'}")
    if isinstance(exc, APIError) and exc.status_code == 304:
        return ContainerStateError("Container already in desired state")
    return RuntimeClientError(f"{operation} failed: {exc}")


async def _call(
    operation: str, func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except DockerException as exc:
        raise _translate(operation, exc) from exc


def _host_port_value(bindings: list[dict[str, str]]) -> Any:
    """Convert Docker API port bindings to the SDK ``ports`` notation."""
    values: list[Any] = []
    for binding in bindings:
        host_port = binding.get("HostPort") or None
        port = int(host_port) if host_port else None
        host_ip = binding.get("HostIp")
        values.append((host_ip, port) if host_ip else port)
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return [v[1] if isinstance(v, tuple) else v for v in values]


@dataclass
class ContainerSpec:
    """Everything needed to create an instance container.

    Attributes:
        name: Container name, equal to the instance id
        image: Image reference
        volume_path: Host volume directory bind-mounted into the container
        data_path: Mount point of the volume inside the container
        command: Optional command override
        environment: ``KEY=VALUE`` entries
        exposed_ports: Ports to expose, keyed like ``"25565/tcp"``
        port_bindings: Docker API notation, ``{"25565/tcp": [{"HostPort": ...}]}``
        memory_mb: Memory limit in MiB
        cpu: CPU limit in cores
        network_mode: Docker network mode
    """

    name: str
    image: str
    volume_path: Path
    data_path: str = "/app/data"
    command: list[str] | str | None = None
    environment: list[str] = field(default_factory=list)
    exposed_ports: dict[str, Any] = field(default_factory=dict)
    port_bindings: dict[str, list[dict[str, str]]] = field(default_factory=dict)
    memory_mb: int | None = None
    cpu: float | None = None
    network_mode: str = "host"

    def to_create_kwargs(self) -> dict[str, Any]:
        """Return keyword arguments for ``client.containers.create``."""
        ports: dict[str, Any] = {port: None for port in self.exposed_ports}
        for port, bindings in self.port_bindings.items():
            ports[port] = _host_port_value(bindings)

        kwargs: dict[str, Any] = {
            "image": self.image,
            "name": self.name,
            "environment": list(self.environment),
            "ports": ports,
            "volumes": {
                str(self.volume_path): {"bind": self.data_path, "mode": "rw"}
            },
            "network_mode": self.network_mode,
            "tty": True,
            "stdin_open": True,
            "detach": True,
        }
        if self.command:
            kwargs["command"] = self.command
        if self.memory_mb:
            kwargs["mem_limit"] = self.memory_mb * 1024 * 1024
        if self.cpu:
            kwargs["nano_cpus"] = int(self.cpu * 1_000_000_000)
        return kwargs


@dataclass
class ContainerInfo:
    """Parsed subset of ``docker inspect`` output.

    Attributes:
        id: Full container id
        name: Container name without the leading slash
        image: Image the container was created from
        running: Whether the container is running
        status: Docker status string (``created``, ``running``, ...)
        command: Configured command
        env: Configured environment entries
        exposed_ports: Exposed ports from the container config
        port_bindings: Port bindings from the host config
        network_ports: Published ports from the network settings
        memory_mb: Memory limit in MiB, None when unlimited
        cpu: CPU limit in cores, None when unlimited
        attrs: The raw inspect payload
    """

    id: str
    name: str
    image: str | None
    running: bool
    status: str | None
    command: list[str] | str | None
    env: list[str]
    exposed_ports: dict[str, Any]
    port_bindings: dict[str, list[dict[str, str]]]
    network_ports: dict[str, Any]
    memory_mb: int | None = None
    cpu: float | None = None
    attrs: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_attrs(cls, attrs: dict[str, Any]) -> ContainerInfo:
        """Create ContainerInfo from a Docker inspect payload."""
        config = attrs.get("Config") or {}
        host_config = attrs.get("HostConfig") or {}
        state = attrs.get("State") or {}
        network = attrs.get("NetworkSettings") or {}
        memory = host_config.get("Memory") or 0
        nano_cpus = host_config.get("NanoCpus") or 0
        return cls(
            id=attrs.get("Id", ""),
            name=str(attrs.get("Name", "")).lstrip("/"),
            image=config.get("Image"),
            running=bool(state.get("Running", False)),
            status=state.get("Status"),
            command=config.get("Cmd"),
            env=list(config.get("Env") or []),
            exposed_ports=dict(config.get("ExposedPorts") or {}),
            port_bindings=dict(host_config.get("PortBindings") or {}),
            network_ports=dict(network.get("Ports") or {}),
            memory_mb=memory // (1024 * 1024) or None,
            cpu=nano_cpus / 1_000_000_000 or None,
            attrs=attrs,
        )

    def port_list(self) -> list[dict[str, str | None]]:
        """Return published ports as ``{port, hostIp, hostPort}`` entries."""
        entries: list[dict[str, str | None]] = []
        for port, config in self.network_ports.items():
            first = config[0] if config else {}
            entries.append(
                {
                    "port": port,
                    "hostIp": first.get("HostIp") or None,
                    "hostPort": first.get("HostPort") or None,
                }
            )
        return entries


class ContainerHandle:
    """Async facade over a Docker SDK container object."""

    def __init__(self, container: Container) -> None:
        """Wrap *container*."""
        self._container = container

    @property
    def id(self) -> str:
        """Full container id."""
        return str(self._container.id)

    @property
    def short_id(self) -> str:
        """First 12 characters of the container id."""
        return self.id[:12]

    async def inspect(self) -> ContainerInfo:
        """Refresh and return the container's inspect data."""
        await _call("inspect", self._container.reload)
        return ContainerInfo.from_attrs(self._container.attrs)

    async def start(self) -> None:
        await _call("start", self._container.start)

    async def stop(self) -> None:
        await _call("stop", self._container.stop)

    async def restart(self, timeout: int = 10) -> None:
        await _call("restart", self._container.restart, timeout=timeout)

    async def pause(self) -> None:
        await _call("pause", self._container.pause)

    async def unpause(self) -> None:
        await _call("unpause", self._container.unpause)

    async def kill(self) -> None:
        await _call("kill", self._container.kill)

    async def remove(self, force: bool = False) -> None:
        await _call("remove", self._container.remove, force=force)

    async def stop_if_running(self) -> ContainerInfo:
        """Stop the container when it is running and return its inspect data."""
        info = await self.inspect()
        if info.running:
            logger.info(f"Stopping running container {info.name or self.short_id}")
            await self.stop()
        return info


class DockerRuntime:
    """Container runtime client talking to the local Docker daemon.

    Example:
        >>> runtime = DockerRuntime(socket_path="/var/run/docker.sock")
        >>> await runtime.pull_image("itzg/minecraft-server:latest")
        >>> handle = await runtime.create_container(spec)
        >>> await handle.start()
    """

    def __init__(
        self,
        client: DockerClient | None = None,
        socket_path: str | None = None,
    ) -> None:
        """Initialize the runtime client.

        Args:
            client: Pre-built Docker client. When omitted one is created for
                *socket_path*, or from the environment.
            socket_path: Path of the Docker daemon socket.

        Raises:
            DockerNotAvailableError: If the Docker daemon is not available.
        """
        if client is None:
            try:
                if socket_path:
                    client = docker.DockerClient(base_url=f"unix://{socket_path}")
                else:
                    client = docker.from_env()  # type: ignore[attr-defined]
            except DockerException as e:
                raise DockerNotAvailableError(operation="init") from e
        self.client = client

    async def pull_image(self, ref: str) -> None:
        """Make sure *ref* is available locally, pulling it when missing."""
        try:
            await asyncio.to_thread(self.client.images.get, ref)
            logger.debug(f"Image {ref} already present")
            return
        except ImageNotFound:
            pass
        except DockerException as exc:
            raise _translate("pull", exc) from exc

        logger.info(f"Pulling image {ref}")
        await _call("pull", self.client.images.pull, ref)
        logger.info(f"Image {ref} pulled")

    async def create_container(self, spec: ContainerSpec) -> ContainerHandle:
        """Create (but do not start) a container from *spec*."""
        container = await _call(
            "create", self.client.containers.create, **spec.to_create_kwargs()
        )
        logger.info(f"Created container {container.id[:12]} for {spec.name}")
        return ContainerHandle(container)

    async def get_container(self, ref: str) -> ContainerHandle:
        """Look up a container by id or name.

        Raises:
            NotFoundError: If no such container exists.
        """
        try:
            container = await asyncio.to_thread(self.client.containers.get, ref)
        except NotFound as exc:
            raise NotFoundError("Container not found") from exc
        except DockerException as exc:
            raise _translate("inspect", exc) from exc
        return ContainerHandle(container)

    async def list_containers(self) -> list[dict[str, Any]]:
        """Return the summary of every container, running or not."""
        containers = await _call("list", self.client.containers.list, all=True)
        return [dict(c.attrs) for c in containers]

    async def list_handles(self) -> list[ContainerHandle]:
        """Return handles for every container, running or not."""
        containers = await _call("list", self.client.containers.list, all=True)
        return [ContainerHandle(c) for c in containers]

    def close(self) -> None:
        """Close the underlying Docker client."""
        self.client.close()
