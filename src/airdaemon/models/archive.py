"""Archive listing and creation models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class ArchiveInfo(BaseModel):
    """One archive file as reported by a listing."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    size: int
    formatted_size: str = Field(..., alias="formattedSize")
    last_updated: datetime = Field(..., alias="lastUpdated")


class ArchiveCreated(BaseModel):
    """Result of a successful archive creation."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = "Archive created successfully"
    archive_name: str = Field(..., alias="archiveName")
    size: int
    formatted_size: str = Field(..., alias="formattedSize")


@dataclass(frozen=True)
class ArchiveDownload:
    """A resolved archive ready to be streamed.

    Attributes:
        path: Absolute path of the archive file
        filename: Archive file name sent to the client
        size: Size in bytes at the time it was opened
        media_type: MIME type for the Content-Type header
    """

    path: Path
    filename: str
    size: int
    media_type: str


class RollbackCompleted(BaseModel):
    """Result of restoring a volume from an archive."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = "Volume rolled back successfully"
    archive_name: str = Field(..., alias="archiveName")
    volume_id: str = Field(..., alias="volumeId")
    restored_entries: int = Field(..., alias="restoredEntries")
