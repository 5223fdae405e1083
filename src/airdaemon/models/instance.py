"""Instance lifecycle state models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class InstanceState(str, Enum):
    """Lifecycle phases of an instance.

    A fresh deployment moves through ``PULLING_IMAGE -> CREATING_VOLUME ->
    CREATING_CONTAINER -> INSTALLING (optional) -> STARTING -> RUNNING``.
    ``INSTALLATION_FAILED`` and ``FAILED`` are error exits, ``DELETED`` marks
    a removed instance whose record is kept for audit.
    """

    PULLING_IMAGE = "PULLING_IMAGE"
    CREATING_VOLUME = "CREATING_VOLUME"
    CREATING_CONTAINER = "CREATING_CONTAINER"
    INSTALLING = "INSTALLING"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    INSTALLATION_FAILED = "INSTALLATION_FAILED"
    FAILED = "FAILED"
    DELETED = "DELETED"

    @property
    def is_terminal(self) -> bool:
        """Return True for states that are no longer actionable."""
        return self in (InstanceState.DELETED, InstanceState.FAILED)


class InstanceRecord(BaseModel):
    """Persisted lifecycle record, serialized as ``{"Id", "State"}``."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    id: str = Field(..., alias="Id", min_length=1)
    state: InstanceState = Field(..., alias="State")
