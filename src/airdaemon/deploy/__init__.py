"""Instance deployment: orchestration, install scripts and locking."""

from airdaemon.deploy.locks import InstanceLocks
from airdaemon.deploy.orchestrator import DeploymentOrchestrator

__all__ = ["DeploymentOrchestrator", "InstanceLocks"]
