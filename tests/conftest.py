"""Pytest configuration and shared fixtures for airdaemon tests."""

from __future__ import annotations

import itertools
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from airdaemon.lib.errors import ContainerStateError, NotFoundError
from airdaemon.models.config import DaemonConfig
from airdaemon.models.instance import InstanceState
from airdaemon.runtime.client import ContainerInfo, ContainerSpec
from airdaemon.state.store import InMemoryStateStore


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across layers")
    config.addinivalue_line("markers", "slow: Tests that take noticeable time")


class RecordingStateStore(InMemoryStateStore):
    """In-memory store that remembers every state written per instance."""

    def __init__(self) -> None:
        super().__init__()
        self.history: dict[str, list[InstanceState]] = {}

    async def upsert(self, record: Any) -> None:
        await super().upsert(record)
        self.history.setdefault(record.id, []).append(record.state)

    async def update_existing(self, record: Any) -> None:
        await super().update_existing(record)
        self.history.setdefault(record.id, []).append(record.state)


class FakeContainer:
    """State of a container managed by ``FakeRuntime``."""

    def __init__(self, container_id: str, spec: ContainerSpec) -> None:
        self.id = container_id
        self.spec = spec
        self.running = False
        self.paused = False
        self.start_count = 0
        self.removed = False

    def attrs(self) -> dict[str, Any]:
        host_config: dict[str, Any] = {"PortBindings": self.spec.port_bindings}
        if self.spec.memory_mb:
            host_config["Memory"] = self.spec.memory_mb * 1024 * 1024
        if self.spec.cpu:
            host_config["NanoCpus"] = int(self.spec.cpu * 1_000_000_000)
        return {
            "Id": self.id,
            "Name": f"/{self.spec.name}",
            "Config": {
                "Image": self.spec.image,
                "Cmd": self.spec.command,
                "Env": list(self.spec.environment),
                "ExposedPorts": dict(self.spec.exposed_ports),
            },
            "HostConfig": host_config,
            "State": {
                "Running": self.running,
                "Status": "running" if self.running else "created",
            },
            "NetworkSettings": {"Ports": dict(self.spec.port_bindings)},
        }


class FakeHandle:
    """``ContainerHandle`` stand-in operating on a ``FakeContainer``."""

    def __init__(self, container: FakeContainer, runtime: FakeRuntime) -> None:
        self.container = container
        self.runtime = runtime

    @property
    def id(self) -> str:
        return self.container.id

    @property
    def short_id(self) -> str:
        return self.container.id[:12]

    async def inspect(self) -> ContainerInfo:
        return ContainerInfo.from_attrs(self.container.attrs())

    async def start(self) -> None:
        if self.runtime.fail_start is not None:
            raise self.runtime.fail_start
        if self.container.running:
            raise ContainerStateError("Container already in desired state")
        self.container.running = True
        self.container.start_count += 1

    async def stop(self) -> None:
        if not self.container.running:
            raise ContainerStateError("Container already in desired state")
        self.container.running = False

    async def restart(self, timeout: int = 10) -> None:
        self.container.running = True

    async def pause(self) -> None:
        self.container.paused = True

    async def unpause(self) -> None:
        self.container.paused = False

    async def kill(self) -> None:
        self.container.running = False

    async def remove(self, force: bool = False) -> None:
        if self.container.running and not force:
            raise ContainerStateError("Cannot remove a running container")
        self.container.removed = True
        self.runtime.containers.pop(self.container.id, None)

    async def stop_if_running(self) -> ContainerInfo:
        info = await self.inspect()
        if info.running:
            await self.stop()
        return info


class FakeRuntime:
    """In-process stand-in for ``DockerRuntime``."""

    def __init__(self) -> None:
        self.containers: dict[str, FakeContainer] = {}
        self.pulled: list[str] = []
        self.fail_pull: Exception | None = None
        self.fail_start: Exception | None = None
        self.closed = False
        self._ids = itertools.count(1)

    async def pull_image(self, ref: str) -> None:
        if self.fail_pull is not None:
            raise self.fail_pull
        self.pulled.append(ref)

    async def create_container(self, spec: ContainerSpec) -> FakeHandle:
        container_id = f"{next(self._ids):064x}"
        container = FakeContainer(container_id, spec)
        self.containers[container_id] = container
        return FakeHandle(container, self)

    async def get_container(self, ref: str) -> FakeHandle:
        for container in self.containers.values():
            if ref in (container.id, container.spec.name):
                return FakeHandle(container, self)
        raise NotFoundError("Container not found")

    async def list_containers(self) -> list[dict[str, Any]]:
        return [c.attrs() for c in self.containers.values()]

    async def list_handles(self) -> list[FakeHandle]:
        return [FakeHandle(c, self) for c in list(self.containers.values())]

    def close(self) -> None:
        self.closed = True

    def by_name(self, name: str) -> FakeContainer:
        return next(c for c in self.containers.values() if c.spec.name == name)


@pytest.fixture
def daemon_config(tmp_path: Path) -> DaemonConfig:
    """Daemon configuration rooted in a temporary directory."""
    return DaemonConfig(
        volumes_dir=tmp_path / "volumes",
        archives_dir=tmp_path / "archives",
        state_file=tmp_path / "states.json",
    )


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    """In-process container runtime."""
    return FakeRuntime()


@pytest.fixture
def recording_store() -> RecordingStateStore:
    """State store recording every write."""
    return RecordingStateStore()


@pytest.fixture
def volume_factory(daemon_config: DaemonConfig) -> Generator[Any]:
    """Create volume directories populated with files.

    Yields:
        Callable taking a volume id and a ``{relative path: bytes}`` mapping.
    """

    def _create(volume_id: str, files: dict[str, bytes] | None = None) -> Path:
        root = daemon_config.volumes_dir / volume_id
        root.mkdir(parents=True, exist_ok=True)
        for relative, content in (files or {}).items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        return root

    yield _create
