"""Daemon HTTP server.

Provides the FastAPI application factory and the server lifecycle. The
daemon components are built once per application and shared by all
requests through ``app.state.services``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from fastapi import FastAPI

from airdaemon import __version__
from airdaemon.deploy.locks import InstanceLocks
from airdaemon.deploy.orchestrator import DeploymentOrchestrator
from airdaemon.lib.logging_config import get_logger
from airdaemon.runtime.client import DockerRuntime
from airdaemon.serve.dependencies import DaemonServices
from airdaemon.serve.middleware import (
    ErrorHandlingMiddleware,
    LoggingMiddleware,
    register_error_handlers,
)
from airdaemon.serve.models import HealthResponse, ServerState
from airdaemon.serve.routes import archives, deployments, instances, power
from airdaemon.state.store import JsonStateStore, StateStore
from airdaemon.volumes.archives import ArchiveManager
from airdaemon.volumes.rollback import RollbackEngine

if TYPE_CHECKING:
    import httpx

    from airdaemon.models.config import DaemonConfig

logger = get_logger(__name__)


class DaemonServer:
    """HTTP server exposing the container control operations.

    Attributes:
        config: The resolved daemon configuration.
        services: Components shared by all requests.
        state: The current server state.
    """

    def __init__(
        self,
        config: DaemonConfig,
        runtime: DockerRuntime | None = None,
        store: StateStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        debug: bool = False,
    ) -> None:
        """Initialize the daemon server.

        Args:
            config: The resolved daemon configuration.
            runtime: Container runtime client. Connects to
                ``config.docker_socket`` when omitted.
            store: State store. A ``JsonStateStore`` on ``config.state_file``
                when omitted.
            http_client: Client for install-script downloads.
            debug: Include exception text in 500 responses and log headers.

        Raises:
            DockerNotAvailableError: If no runtime is given and the Docker
                daemon cannot be reached.
        """
        self.config = config
        self.debug = debug

        if config.host == "0.0.0.0":  # noqa: S104
            logger.warning(
                "Server binding to 0.0.0.0 exposes it to all network interfaces. "
                "Use 127.0.0.1 for local-only access."
            )

        runtime = runtime or DockerRuntime(socket_path=config.docker_socket)
        store = store or JsonStateStore(config.state_file)
        locks = InstanceLocks()
        self.services = DaemonServices(
            config=config,
            runtime=runtime,
            store=store,
            locks=locks,
            orchestrator=DeploymentOrchestrator(
                runtime, store, config, locks=locks, http_client=http_client
            ),
            archives=ArchiveManager(config, locks=locks),
            rollback=RollbackEngine(config, locks=locks),
        )
        self.state = ServerState.INITIALIZING
        self._app: FastAPI | None = None
        self._start_time: datetime | None = None

    @property
    def is_ready(self) -> bool:
        """Check if the server is ready to accept requests."""
        return self.state in (ServerState.READY, ServerState.RUNNING)

    @property
    def uptime_seconds(self) -> float:
        """Return server uptime in seconds."""
        if self._start_time is None:
            return 0.0
        delta = datetime.now(timezone.utc) - self._start_time
        return delta.total_seconds()

    def create_app(self) -> FastAPI:
        """Create and configure the FastAPI application.

        Returns:
            Configured FastAPI application instance.
        """

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncIterator[None]:
            await self.start()
            try:
                yield
            finally:
                await self.stop()

        app = FastAPI(
            title="airdaemon",
            description="Host-side container control daemon",
            version=__version__,
            lifespan=lifespan,
        )
        app.state.services = self.services

        # Starlette runs middleware in reverse order of addition:
        # Logging -> ErrorHandling -> Handler
        app.add_middleware(ErrorHandlingMiddleware, debug=self.debug)
        app.add_middleware(LoggingMiddleware, debug=self.debug)
        register_error_handlers(app)

        self._register_health_endpoints(app)
        for module in (deployments, instances, power, archives):
            app.include_router(module.router)

        self._app = app
        self.state = ServerState.READY
        logger.info(
            f"FastAPI app created (volumes={self.config.volumes_dir}, "
            f"archives={self.config.archives_dir})"
        )
        return app

    def _register_health_endpoints(self, app: FastAPI) -> None:
        @app.get("/health", response_model=HealthResponse, tags=["Health"])
        async def health() -> HealthResponse:
            """Basic health check endpoint."""
            return HealthResponse(
                status="healthy" if self.is_ready else "unhealthy",
                version=__version__,
                pending_deployments=self.services.orchestrator.pending_tasks,
                uptime_seconds=self.uptime_seconds,
            )

    async def start(self) -> None:
        """Mark the server as running."""
        if self._app is None:
            self.create_app()
        self._start_time = datetime.now(timezone.utc)
        self.state = ServerState.RUNNING
        address = f"{self.config.host}:{self.config.port}"
        logger.info(f"airdaemon started at http://{address}")

    async def stop(self) -> None:
        """Stop the server gracefully.

        Waits for background deployments to settle before closing the
        runtime client.
        """
        self.state = ServerState.SHUTTING_DOWN
        pending = self.services.orchestrator.pending_tasks
        if pending:
            logger.info(f"Waiting for {pending} background deployments")
        await self.services.orchestrator.wait_idle()
        self.services.runtime.close()
        self.state = ServerState.STOPPED
        logger.info("airdaemon stopped")
