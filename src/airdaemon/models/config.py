"""Pydantic model for the daemon configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from airdaemon.config.defaults import DEFAULT_DAEMON_CONFIG


class DaemonConfig(BaseModel):
    """Resolved runtime configuration of the daemon.

    Attributes:
        host: Interface the HTTP server binds to
        port: Port the HTTP server listens on
        volumes_dir: Root directory holding one volume directory per instance
        archives_dir: Root directory holding one archive directory per instance
        state_file: JSON document holding instance lifecycle records
        docker_socket: Path to the Docker daemon socket
        container_data_path: Mount point of the volume inside containers
        network_mode: Docker network mode for created containers
        max_archive_size: Byte cap for a single archive
        archive_stat_concurrency: Concurrent directory scans while walking a volume
        install_concurrency: Concurrent install-script downloads
        purge_concurrency: Concurrent container removals during a purge
        download_timeout: Timeout in seconds for install-script downloads
        power_timeout: Timeout in seconds for container power actions
    """

    model_config = ConfigDict(extra="forbid")

    host: str = Field(default=str(DEFAULT_DAEMON_CONFIG["host"]))
    port: int = Field(default=int(DEFAULT_DAEMON_CONFIG["port"]), ge=1, le=65535)
    volumes_dir: Path = Field(default=Path(str(DEFAULT_DAEMON_CONFIG["volumes_dir"])))
    archives_dir: Path = Field(
        default=Path(str(DEFAULT_DAEMON_CONFIG["archives_dir"]))
    )
    state_file: Path = Field(default=Path(str(DEFAULT_DAEMON_CONFIG["state_file"])))
    docker_socket: str = Field(default=str(DEFAULT_DAEMON_CONFIG["docker_socket"]))
    container_data_path: str = Field(
        default=str(DEFAULT_DAEMON_CONFIG["container_data_path"])
    )
    network_mode: str = Field(default=str(DEFAULT_DAEMON_CONFIG["network_mode"]))
    max_archive_size: int = Field(
        default=int(DEFAULT_DAEMON_CONFIG["max_archive_size"]), gt=0
    )
    archive_stat_concurrency: int = Field(
        default=int(DEFAULT_DAEMON_CONFIG["archive_stat_concurrency"]), ge=1
    )
    install_concurrency: int = Field(
        default=int(DEFAULT_DAEMON_CONFIG["install_concurrency"]), ge=1
    )
    purge_concurrency: int = Field(
        default=int(DEFAULT_DAEMON_CONFIG["purge_concurrency"]), ge=1
    )
    download_timeout: float = Field(
        default=float(DEFAULT_DAEMON_CONFIG["download_timeout"]), gt=0
    )
    power_timeout: float = Field(
        default=float(DEFAULT_DAEMON_CONFIG["power_timeout"]), gt=0
    )
