"""Pydantic models for deployment requests and results.

Request models accept the JSON keys used by the panel that drives the daemon
(``Image``, ``Id``, ``PortBindings`` ...) and expose snake_case attributes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from airdaemon.lib.paths import is_valid_identifier
from airdaemon.models.instance import InstanceState


def _check_identifier(value: str, label: str) -> str:
    if not is_valid_identifier(value):
        raise ValueError(
            f"Invalid {label}: only letters, digits, '_', '-' and '.' are allowed"
        )
    return value


class _RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class InstallScript(_RequestModel):
    """A downloadable install asset.

    Attributes:
        uri: Download URI, may contain ``{{var}}`` placeholders
        path: Destination path relative to the volume directory
    """

    uri: str = Field(..., alias="Uri", min_length=1)
    path: str = Field(..., alias="Path", min_length=1)


class ScriptSet(_RequestModel):
    """Script groups attached to an image."""

    install: list[InstallScript] = Field(default_factory=list, alias="Install")


class ImageData(_RequestModel):
    """Image metadata forwarded on reinstall."""

    scripts: ScriptSet | None = Field(default=None, alias="Scripts")


class PortBinding(_RequestModel):
    """Host side of a port binding, in Docker API notation."""

    host_ip: str | None = Field(default=None, alias="HostIp")
    host_port: str = Field(..., alias="HostPort")

    @field_validator("host_port", mode="before")
    @classmethod
    def coerce_port(cls, value: Any) -> str:
        """Accept numeric ports."""
        return str(value)


class ContainerRequest(_RequestModel):
    image: str = Field(..., alias="Image", min_length=1)
    id: str = Field(..., alias="Id", min_length=1)
    env: list[str] = Field(default_factory=list, alias="Env")
    ports: dict[str, Any] = Field(default_factory=dict, alias="Ports")
    port_bindings: dict[str, list[PortBinding]] = Field(
        default_factory=dict, alias="PortBindings"
    )
    memory: int | None = Field(default=None, alias="Memory", gt=0)
    cpu: float | None = Field(default=None, alias="Cpu", gt=0)

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        """Instance ids double as volume directory names."""
        return _check_identifier(value, "instance id")

    @field_validator("env", mode="before")
    @classmethod
    def drop_non_list_env(cls, value: Any) -> Any:
        """Treat a missing or non-list Env as empty."""
        return value if isinstance(value, list) else []

    @property
    def primary_port(self) -> str | None:
        """Host port of the first binding of the first bound port."""
        first = next(iter(self.port_bindings.values()), None)
        return first[0].host_port if first else None


class DeployRequest(ContainerRequest):
    """Body of a fresh deployment."""

    cmd: list[str] | str | None = Field(default=None, alias="Cmd")
    scripts: ScriptSet | None = Field(default=None, alias="Scripts")
    variables: dict[str, Any] | str | None = Field(default=None)

    @property
    def install_scripts(self) -> list[InstallScript]:
        """Install scripts, or an empty list."""
        return self.scripts.install if self.scripts else []


class RedeployRequest(ContainerRequest):
    """Body of a redeploy: recreate the container on the existing volume."""


class ReinstallRequest(ContainerRequest):
    """Body of a reinstall: redeploy and re-run the install scripts."""

    image_data: ImageData | None = Field(default=None, alias="imageData")

    @property
    def install_scripts(self) -> list[InstallScript]:
        """Install scripts, or an empty list."""
        if self.image_data and self.image_data.scripts:
            return self.image_data.scripts.install
        return []


class EditRequest(_RequestModel):
    """Body of an edit: change image or limits and re-bind a volume."""

    volume_id: str = Field(..., alias="VolumeId", min_length=1)
    image: str | None = Field(default=None, alias="Image")
    memory: int | None = Field(default=None, alias="Memory", gt=0)
    cpu: float | None = Field(default=None, alias="Cpu", gt=0)

    @field_validator("volume_id")
    @classmethod
    def validate_volume_id(cls, value: str) -> str:
        """Volume ids are directory names under the volume root."""
        return _check_identifier(value, "volume id")


class _ResultModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DeploymentTicket(_ResultModel):
    """Answer to a deployment request, sent before installation finishes."""

    message: str = "Container and volume created successfully"
    container_id: str = Field(..., alias="containerId")
    volume_id: str = Field(..., alias="volumeId")
    state: InstanceState
    env: list[str] = Field(default_factory=list, alias="Env")


class ContainerReplaced(_ResultModel):
    """Result of redeploy, reinstall and edit."""

    message: str
    container_id: str = Field(..., alias="containerId")
    old_container_id: str | None = Field(default=None, alias="oldContainerId")


class RemovalResult(_ResultModel):
    """Outcome of removing one container and its volume directory."""

    id: str
    name: str | None = None
    container_deleted: bool = Field(default=False, alias="containerDeleted")
    volumes_deleted: bool | None = Field(default=None, alias="volumesDeleted")
    error: str | None = None
