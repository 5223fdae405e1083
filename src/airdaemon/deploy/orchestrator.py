"""Deployment orchestration for instance containers.

The orchestrator drives an instance through its lifecycle states while it
pulls the image, creates the volume directory and container, runs the
install scripts and starts the container. A fresh deployment answers the
caller once the container exists; installation and start-up continue in a
background task whose progress is visible through the state store.
"""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from airdaemon.deploy.install import (
    fetch_install_scripts,
    normalize_variables,
    replace_variables,
)
from airdaemon.deploy.locks import InstanceLocks
from airdaemon.lib.errors import (
    AirDaemonError,
    DeploymentError,
    NotFoundError,
)
from airdaemon.lib.logging_config import get_logger
from airdaemon.lib.paths import is_valid_identifier, resolve_within, validate_identifier
from airdaemon.lib.timestamps import utc_now_iso
from airdaemon.models.deployment import (
    ContainerReplaced,
    DeploymentTicket,
    DeployRequest,
    EditRequest,
    InstallScript,
    RedeployRequest,
    ReinstallRequest,
    RemovalResult,
)
from airdaemon.models.instance import InstanceState
from airdaemon.runtime.client import ContainerHandle, ContainerSpec, DockerRuntime
from airdaemon.volumes.usage import remove_all_volume_dirs, remove_volume_dir

if TYPE_CHECKING:
    import httpx

    from airdaemon.models.config import DaemonConfig
    from airdaemon.models.deployment import ContainerRequest
    from airdaemon.state.store import StateStore

logger = get_logger(__name__)


def build_environment(
    request: ContainerRequest, variables: Mapping[str, str] | None = None
) -> list[str]:
    """Build the container environment for a deployment request.

    The explicit ``Env`` entries come first, followed by one ``KEY=VALUE``
    entry per variable and the instance descriptors. Port, memory and CPU
    entries are only present when the request sets them.

    Example:
        >>> build_environment(request, {"PORT": "25565"})
        ['EULA=TRUE', 'PORT=25565', 'PRIMARY_PORT=25565',
         'INSTANCE_MEMORY=1024', 'INSTANCE_CPU=1.0', 'INSTANCE_ID=app1']
    """
    environment = list(request.env)
    environment.extend(f"{key}={value}" for key, value in (variables or {}).items())
    if request.primary_port:
        environment.append(f"PRIMARY_PORT={request.primary_port}")
    if request.memory:
        environment.append(f"INSTANCE_MEMORY={request.memory}")
    if request.cpu:
        environment.append(f"INSTANCE_CPU={request.cpu}")
    environment.append(f"INSTANCE_ID={request.id}")
    return environment


def env_to_variables(environment: Sequence[str]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` entries into a mapping.

    Entries without ``=`` are ignored. Only the first ``=`` separates the key.
    """
    variables: dict[str, str] = {}
    for entry in environment:
        key, sep, value = entry.partition("=")
        if sep and key:
            variables[key] = value
    return variables


def system_variables(
    primary_port: str | None, container_id: str
) -> dict[str, str]:
    """Return the placeholders the daemon provides to install-script contents."""
    return {
        "primaryPort": primary_port or "",
        "containerName": container_id[:12],
        "timestamp": utc_now_iso(),
        "randomString": secrets.token_hex(3),
    }


class DeploymentOrchestrator:
    """Creates, recreates and removes instance containers.

    Example:
        >>> orchestrator = DeploymentOrchestrator(runtime, store, config)
        >>> ticket = await orchestrator.deploy(request)
        >>> await orchestrator.wait_idle()
        >>> await store.get_state(ticket.volume_id)
        <InstanceState.RUNNING: 'RUNNING'>
    """

    def __init__(
        self,
        runtime: DockerRuntime,
        store: StateStore,
        config: DaemonConfig,
        locks: InstanceLocks | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            runtime: Container runtime client.
            store: Lifecycle state store.
            config: Daemon configuration.
            locks: Per-instance lock registry shared with the volume
                components. A private registry is used when omitted.
            http_client: Client for install-script downloads. A short-lived
                client is created per installation when omitted.
        """
        self.runtime = runtime
        self.store = store
        self.config = config
        self.locks = locks if locks is not None else InstanceLocks()
        self._http_client = http_client
        self._tasks: set[asyncio.Task[None]] = set()

    def volume_path(self, volume_id: str) -> Path:
        """Resolve the volume directory of *volume_id*.

        Raises:
            ValidationError: If *volume_id* is not a valid identifier.
            OutsideRootError: If the path escapes the volume root.
        """
        validate_identifier(volume_id, "volume id")
        return resolve_within(self.config.volumes_dir, volume_id)

    @property
    def pending_tasks(self) -> int:
        """Number of background deployments still running."""
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every background deployment has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _container_spec(
        self,
        request: ContainerRequest,
        volume_path: Path,
        environment: list[str],
        command: list[str] | str | None = None,
    ) -> ContainerSpec:
        return ContainerSpec(
            name=request.id,
            image=request.image,
            volume_path=volume_path,
            data_path=self.config.container_data_path,
            command=command,
            environment=environment,
            exposed_ports=dict(request.ports),
            port_bindings={
                port: [b.model_dump(by_alias=True, exclude_none=True) for b in bindings]
                for port, bindings in request.port_bindings.items()
            },
            memory_mb=request.memory,
            cpu=request.cpu,
            network_mode=self.config.network_mode,
        )

    async def _mark(self, instance_id: str, state: InstanceState) -> None:
        """Record a failure or terminal state without masking the cause."""
        try:
            await self.store.set_state_value(instance_id, state)
        except NotFoundError:
            logger.debug(f"No state record for {instance_id}, {state.value} not set")
        except AirDaemonError as exc:
            logger.error(f"Could not record {state.value} for {instance_id}: {exc}")

    async def _install(
        self,
        scripts: Sequence[InstallScript],
        volume_path: Path,
        uri_variables: Mapping[str, str],
        content_variables: Mapping[str, str],
    ) -> None:
        await fetch_install_scripts(
            scripts,
            volume_path,
            uri_variables,
            client=self._http_client,
            timeout=self.config.download_timeout,
            concurrency=self.config.install_concurrency,
        )
        await replace_variables(volume_path, content_variables)

    async def deploy(self, request: DeployRequest) -> DeploymentTicket:
        """Deploy a new instance.

        Image pull, volume and container creation happen before this returns.
        Installation and start-up continue in a background task.

        Args:
            request: Deployment request.

        Returns:
            A ticket with the container id, the volume id and the next state.

        Raises:
            ValidationError: If the variables or the id are malformed.
            AirDaemonError: If pulling, volume or container creation failed.
                The instance is marked ``FAILED``.
        """
        variables = normalize_variables(request.variables)
        volume_path = self.volume_path(request.id)

        await self.locks.acquire(request.id)
        try:
            handle, environment = await self._provision(
                request, variables, volume_path
            )
        except BaseException:
            self.locks.release(request.id)
            raise

        scripts = request.install_scripts
        task = asyncio.create_task(
            self._complete_deployment(request, handle, variables, volume_path),
            name=f"deploy-{request.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return DeploymentTicket(
            container_id=handle.id,
            volume_id=request.id,
            state=InstanceState.INSTALLING if scripts else InstanceState.STARTING,
            env=environment,
        )

    async def _provision(
        self,
        request: DeployRequest,
        variables: dict[str, str],
        volume_path: Path,
    ) -> tuple[ContainerHandle, list[str]]:
        instance_id = request.id
        logger.info(f"Deployment of {instance_id} in progress")
        try:
            await self.store.set_state(instance_id, InstanceState.PULLING_IMAGE)
            await self.runtime.pull_image(request.image)

            await self.store.set_state(instance_id, InstanceState.CREATING_VOLUME)
            await asyncio.to_thread(volume_path.mkdir, parents=True, exist_ok=True)
            logger.info(f"Volume directory created: {volume_path}")

            environment = build_environment(request, variables)
            spec = self._container_spec(
                request, volume_path, environment, command=request.cmd
            )
            await self.store.set_state(instance_id, InstanceState.CREATING_CONTAINER)
            handle = await self.runtime.create_container(spec)
        except Exception as exc:
            logger.error(f"Deployment of {instance_id} failed: {exc}")
            await self._mark(instance_id, InstanceState.FAILED)
            raise
        return handle, environment

    async def _complete_deployment(
        self,
        request: DeployRequest,
        handle: ContainerHandle,
        variables: dict[str, str],
        volume_path: Path,
    ) -> None:
        instance_id = request.id
        try:
            scripts = request.install_scripts
            if scripts:
                await self.store.set_state(instance_id, InstanceState.INSTALLING)
                content_variables = {
                    **variables,
                    **system_variables(request.primary_port, handle.id),
                }
                try:
                    await self._install(
                        scripts, volume_path, variables, content_variables
                    )
                except Exception as exc:
                    logger.error(f"Installation of {instance_id} failed: {exc}")
                    await self._mark(instance_id, InstanceState.INSTALLATION_FAILED)
                    return
                logger.info(f"Installation of {instance_id} completed")

            await self.store.set_state(instance_id, InstanceState.STARTING)
            await handle.start()
            await self.store.set_state_value(instance_id, InstanceState.RUNNING)
            logger.info(f"Deployment of {instance_id} completed")
        except Exception as exc:
            logger.error(f"Failed to start {instance_id}: {exc}", exc_info=True)
            await self._mark(instance_id, InstanceState.FAILED)
        finally:
            self.locks.release(instance_id)

    async def _replace(
        self,
        container_ref: str,
        request: RedeployRequest | ReinstallRequest,
        scripts: Sequence[InstallScript] = (),
    ) -> ContainerReplaced:
        instance_id = request.id
        volume_path = self.volume_path(instance_id)

        async with self.locks.hold(instance_id):
            old = await self.runtime.get_container(container_ref)
            if not volume_path.is_dir():
                raise NotFoundError(f"Volume directory not found for {instance_id}")

            await old.stop_if_running()
            await old.remove()
            logger.info(f"Removed container {old.short_id} of {instance_id}")

            try:
                await self.store.set_state(
                    instance_id, InstanceState.CREATING_CONTAINER
                )
                spec = self._container_spec(request, volume_path, list(request.env))
                new = await self.runtime.create_container(spec)

                if scripts:
                    await self.store.set_state(instance_id, InstanceState.INSTALLING)
                    variables = env_to_variables(request.env)
                    content_variables = {
                        **variables,
                        **system_variables(request.primary_port, new.id),
                    }
                    try:
                        await self._install(
                            scripts, volume_path, variables, content_variables
                        )
                    except Exception as exc:
                        await self._mark(
                            instance_id, InstanceState.INSTALLATION_FAILED
                        )
                        raise DeploymentError(
                            operation="reinstall",
                            message=f"Installation failed: {exc}",
                        ) from exc

                await self.store.set_state(instance_id, InstanceState.STARTING)
                await new.start()
                await self.store.set_state(instance_id, InstanceState.RUNNING)
            except DeploymentError:
                raise
            except Exception as exc:
                logger.error(f"Recreating container of {instance_id} failed: {exc}")
                await self._mark(instance_id, InstanceState.FAILED)
                raise

        return ContainerReplaced(
            message="",
            container_id=new.id,
            old_container_id=old.id,
        )

    async def redeploy(
        self, container_ref: str, request: RedeployRequest
    ) -> ContainerReplaced:
        """Recreate a container on its existing volume and start it.

        Raises:
            NotFoundError: If the container or the volume directory is absent.
        """
        result = await self._replace(container_ref, request)
        logger.info(f"Redeployed {request.id} as {result.container_id[:12]}")
        return result.model_copy(
            update={"message": "Container redeployed successfully"}
        )

    async def reinstall(
        self, container_ref: str, request: ReinstallRequest
    ) -> ContainerReplaced:
        """Recreate a container and re-run its install scripts before start.

        Raises:
            NotFoundError: If the container or the volume directory is absent.
            DeploymentError: If the installation failed. The instance is
                marked ``INSTALLATION_FAILED``.
        """
        result = await self._replace(
            container_ref, request, scripts=request.install_scripts
        )
        logger.info(f"Reinstalled {request.id} as {result.container_id[:12]}")
        return result.model_copy(
            update={"message": "Container reinstalled successfully"}
        )

    async def edit(self, container_ref: str, request: EditRequest) -> ContainerReplaced:
        """Recreate a container with a new image or limits on a given volume.

        Image, command, environment, exposed ports and port bindings are kept
        from the existing container unless overridden by *request*.

        Raises:
            NotFoundError: If the container or the volume directory is absent.
        """
        volume_path = self.volume_path(request.volume_id)
        old = await self.runtime.get_container(container_ref)
        current = await old.inspect()
        name = current.name or container_ref

        async with self.locks.hold(name, request.volume_id):
            if not volume_path.is_dir():
                raise NotFoundError(
                    f"Volume directory not found for {request.volume_id}"
                )
            current = await old.stop_if_running()
            image = request.image or current.image
            if not image:
                raise DeploymentError(
                    operation="edit", message="Container has no image to recreate"
                )

            spec = ContainerSpec(
                name=name,
                image=image,
                volume_path=volume_path,
                data_path=self.config.container_data_path,
                command=current.command,
                environment=current.env,
                exposed_ports=current.exposed_ports,
                port_bindings=current.port_bindings,
                memory_mb=request.memory or current.memory_mb,
                cpu=request.cpu or current.cpu,
                network_mode=self.config.network_mode,
            )
            if request.image:
                await self.runtime.pull_image(request.image)
            await old.remove()
            new = await self.runtime.create_container(spec)
            await new.start()

        logger.info(f"Edited {name}: {old.short_id} -> {new.short_id}")
        return ContainerReplaced(
            message="Container edited successfully",
            container_id=new.id,
            old_container_id=old.id,
        )

    async def _delete_volume(self, name: str) -> tuple[bool, str | None]:
        if not is_valid_identifier(name):
            return False, f"No volume directory for container name '{name}'"
        try:
            await asyncio.to_thread(remove_volume_dir, self.config.volumes_dir, name)
        except (AirDaemonError, OSError) as exc:
            logger.warning(f"Failed to delete volume directory of {name}: {exc}")
            return False, str(exc)
        return True, None

    async def remove(
        self, container_ref: str, *, remove_volume: bool = False
    ) -> RemovalResult:
        """Remove a container and optionally its volume directory.

        Without *remove_volume* a running container is stopped first; with
        it the container is force-removed.

        Raises:
            NotFoundError: If the container does not exist.
        """
        handle = await self.runtime.get_container(container_ref)
        info = await handle.inspect()
        name = info.name or container_ref

        async with self.locks.hold(name):
            if remove_volume:
                await handle.remove(force=True)
            else:
                await handle.stop_if_running()
                await handle.remove()
            logger.info(f"Container {name} deleted")
            await self._mark(name, InstanceState.DELETED)

            result = RemovalResult(id=handle.id, name=name, container_deleted=True)
            if remove_volume:
                deleted, error = await self._delete_volume(name)
                result.volumes_deleted = deleted
                result.error = error
        return result

    async def purge_all(self) -> list[RemovalResult]:
        """Force-remove every container and every volume directory.

        Removals run concurrently, bounded by ``purge_concurrency``. A failed
        removal is reported in its entry and does not stop the others.

        Returns:
            One entry per container, followed by one entry per leftover
            directory that could not be removed.
        """
        handles = await self.runtime.list_handles()
        semaphore = asyncio.Semaphore(self.config.purge_concurrency)

        async def purge_one(handle: ContainerHandle) -> RemovalResult:
            async with semaphore:
                try:
                    info = await handle.inspect()
                    name = info.name or handle.short_id
                    async with self.locks.hold(name):
                        await handle.remove(force=True)
                        await self._mark(name, InstanceState.DELETED)
                        deleted, error = await self._delete_volume(name)
                except AirDaemonError as exc:
                    logger.error(f"Failed to purge container {handle.short_id}: {exc}")
                    return RemovalResult(id=handle.id, error=exc.message)
                logger.info(f"Container {name} purged")
                return RemovalResult(
                    id=handle.id,
                    name=name,
                    container_deleted=True,
                    volumes_deleted=deleted,
                    error=error,
                )

        results = list(await asyncio.gather(*(purge_one(h) for h in handles)))

        leftovers = await asyncio.to_thread(
            remove_all_volume_dirs, self.config.volumes_dir
        )
        results.extend(
            RemovalResult(
                id=name,
                name=name,
                volumes_deleted=False,
                error="Volume directory could not be deleted",
            )
            for name in leftovers
        )
        logger.info(f"Purged {len(handles)} containers")
        return results
