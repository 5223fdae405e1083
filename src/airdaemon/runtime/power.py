"""Container power actions with a bounded duration."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

from airdaemon.lib.errors import OperationTimeoutError, ValidationError
from airdaemon.lib.logging_config import get_logger
from airdaemon.runtime.client import ContainerHandle, DockerRuntime

logger = get_logger(__name__)


class PowerAction(str, Enum):
    """Supported container power actions."""

    START = "start"
    STOP = "stop"
    RESTART = "restart"
    PAUSE = "pause"
    UNPAUSE = "unpause"
    KILL = "kill"


def parse_power_action(value: str) -> PowerAction:
    """Parse an action name.

    Raises:
        ValidationError: If *value* is not a supported action.
    """
    try:
        return PowerAction(value)
    except ValueError:
        supported = ", ".join(a.value for a in PowerAction)
        raise ValidationError(
            f"Invalid action '{value}'. Supported actions are: {supported}"
        ) from None


def _operation(
    handle: ContainerHandle, action: PowerAction
) -> Callable[[], Awaitable[None]]:
    operations: dict[PowerAction, Callable[[], Awaitable[None]]] = {
        PowerAction.START: handle.start,
        PowerAction.STOP: handle.stop,
        PowerAction.RESTART: handle.restart,
        PowerAction.PAUSE: handle.pause,
        PowerAction.UNPAUSE: handle.unpause,
        PowerAction.KILL: handle.kill,
    }
    return operations[action]


async def apply_power_action(
    runtime: DockerRuntime,
    container_ref: str,
    action: str,
    timeout: float,
) -> PowerAction:
    """Run a power action against a container.

    Args:
        runtime: Container runtime client.
        container_ref: Container id or name.
        action: One of the ``PowerAction`` values.
        timeout: Upper bound in seconds for the runtime call.

    Returns:
        The action that was applied.

    Raises:
        ValidationError: Unknown action.
        NotFoundError: The container does not exist.
        ContainerStateError: The container is already in the desired state.
        OperationTimeoutError: The runtime did not answer within *timeout*.
    """
    power = parse_power_action(action)
    handle = await runtime.get_container(container_ref)

    try:
        await asyncio.wait_for(_operation(handle, power)(), timeout=timeout)
    except TimeoutError:
        logger.warning(f"{power.value} on {container_ref} timed out after {timeout}s")
        raise OperationTimeoutError(power.value, timeout) from None

    logger.info(f"Container {container_ref} {power.value} operation completed")
    return power
