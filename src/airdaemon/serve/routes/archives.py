"""Volume archive endpoints: list, create, download, delete and rollback."""

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse

from airdaemon.models.archive import ArchiveCreated, ArchiveInfo, RollbackCompleted
from airdaemon.serve.dependencies import get_archives, get_rollback
from airdaemon.serve.models import MessageResponse
from airdaemon.volumes.archives import ArchiveManager, iter_chunks
from airdaemon.volumes.rollback import RollbackEngine

router = APIRouter(prefix="/archives", tags=["Archives"])


def content_disposition(filename: str) -> str:
    """Return an attachment ``Content-Disposition`` value for *filename*."""
    return f"attachment; filename*=UTF-8''{quote(filename, safe='')}"


@router.get("/{archive_id}/archives")
async def list_archives(
    archive_id: str, archives: ArchiveManager = Depends(get_archives)
) -> list[ArchiveInfo]:
    """List the archives of an instance, newest first."""
    return await archives.list(archive_id)


@router.post(
    "/{archive_id}/archives/{volume_id}/create",
    status_code=status.HTTP_201_CREATED,
)
async def create_archive(
    archive_id: str,
    volume_id: str,
    archives: ArchiveManager = Depends(get_archives),
) -> ArchiveCreated:
    """Zip a volume into a new archive."""
    return await archives.create(archive_id, volume_id)


@router.get("/{archive_id}/archives/download/{archive_name}")
async def download_archive(
    archive_id: str,
    archive_name: str,
    archives: ArchiveManager = Depends(get_archives),
) -> StreamingResponse:
    """Stream an archive to the client."""
    download = await archives.open_download(archive_id, archive_name)
    return StreamingResponse(
        iter_chunks(download.path),
        media_type=download.media_type,
        headers={
            "Content-Length": str(download.size),
            "Content-Disposition": content_disposition(download.filename),
            "Cache-Control": "no-store",
        },
    )


@router.post("/{archive_id}/archives/delete/{archive_name}")
async def delete_archive(
    archive_id: str,
    archive_name: str,
    archives: ArchiveManager = Depends(get_archives),
) -> MessageResponse:
    """Delete an archive."""
    await archives.delete(archive_id, archive_name)
    return MessageResponse(message="Archive deleted successfully")


@router.post("/{archive_id}/archives/rollback/{volume_id}/{archive_name}")
async def rollback_archive(
    archive_id: str,
    volume_id: str,
    archive_name: str,
    rollback: RollbackEngine = Depends(get_rollback),
) -> RollbackCompleted:
    """Replace a volume's contents with an archive."""
    return await rollback.rollback(archive_id, volume_id, archive_name)
