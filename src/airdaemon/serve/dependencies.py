"""FastAPI dependencies resolving the daemon components of a request."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from airdaemon.deploy.locks import InstanceLocks
from airdaemon.deploy.orchestrator import DeploymentOrchestrator
from airdaemon.models.config import DaemonConfig
from airdaemon.runtime.client import DockerRuntime
from airdaemon.state.store import StateStore
from airdaemon.volumes.archives import ArchiveManager
from airdaemon.volumes.rollback import RollbackEngine


@dataclass
class DaemonServices:
    """Components shared by every request of one application."""

    config: DaemonConfig
    runtime: DockerRuntime
    store: StateStore
    locks: InstanceLocks
    orchestrator: DeploymentOrchestrator
    archives: ArchiveManager
    rollback: RollbackEngine


def get_services(request: Request) -> DaemonServices:
    services: DaemonServices = request.app.state.services
    return services


def get_config(request: Request) -> DaemonConfig:
    return get_services(request).config


def get_runtime(request: Request) -> DockerRuntime:
    return get_services(request).runtime


def get_store(request: Request) -> StateStore:
    return get_services(request).store


def get_orchestrator(request: Request) -> DeploymentOrchestrator:
    return get_services(request).orchestrator


def get_archives(request: Request) -> ArchiveManager:
    return get_services(request).archives


def get_rollback(request: Request) -> RollbackEngine:
    return get_services(request).rollback
