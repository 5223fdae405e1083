"""Point-in-time zip archives of instance volumes.

Archives live under ``<archives_dir>/<archive id>/`` and are named
``<archive id>-<timestamp>.zip``. They are written once and never modified.
"""

from __future__ import annotations

import asyncio
import mimetypes
import os
import stat
import zipfile
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

from airdaemon.config.defaults import DOWNLOAD_CHUNK_SIZE
from airdaemon.deploy.locks import InstanceLocks
from airdaemon.lib.errors import NotFoundError, SizeLimitExceededError
from airdaemon.lib.logging_config import get_logger
from airdaemon.lib.paths import resolve_within, validate_identifier
from airdaemon.lib.timestamps import filename_timestamp
from airdaemon.models.archive import ArchiveCreated, ArchiveDownload, ArchiveInfo

if TYPE_CHECKING:
    from airdaemon.models.config import DaemonConfig

logger = get_logger(__name__)

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_file_size(size: int) -> str:
    """Format a byte count with two decimals and a binary unit.

    Example:
        >>> format_file_size(0)
        '0 B'
        >>> format_file_size(1536)
        '1.50 KB'
    """
    if size == 0:
        return "0 B"
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    return f"{value:.2f} {_SIZE_UNITS[exponent]}"


def iter_chunks(path: Path, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the content of *path* in chunks.

    The file is closed when the iterator is exhausted or closed early.
    """
    with path.open("rb") as handle:
        while chunk := handle.read(chunk_size):
            yield chunk


@dataclass(frozen=True)
class _Entry:
    path: Path
    arcname: str
    is_dir: bool


class _CappedWriter:
    """File wrapper that refuses to grow past *limit* bytes.

    The file position high-water mark counts toward the limit, so headers
    rewritten in place by ``zipfile`` are not counted twice.
    """

    def __init__(self, fp: IO[bytes], limit: int) -> None:
        self._fp = fp
        self._limit = limit
        self.high_water = 0

    def write(self, data: bytes) -> int:
        end = self._fp.tell() + len(data)
        if end > self._limit:
            raise SizeLimitExceededError(self._limit)
        written = self._fp.write(data)
        self.high_water = max(self.high_water, end)
        return written

    def __getattr__(self, name: str) -> Any:
        return getattr(self._fp, name)


class ArchiveManager:
    """Creates, lists, serves and deletes volume archives.

    Every operation validates the archive id, the volume id and the file
    name independently before touching the filesystem.
    """

    def __init__(
        self, config: DaemonConfig, locks: InstanceLocks | None = None
    ) -> None:
        """Initialize the manager.

        Args:
            config: Daemon configuration (roots, size cap, stat concurrency).
            locks: Per-instance lock registry shared with the orchestrator.
        """
        self.config = config
        self.locks = locks if locks is not None else InstanceLocks()

    def archive_dir(self, archive_id: str) -> Path:
        """Resolve the archive directory of *archive_id*."""
        validate_identifier(archive_id, "archive id")
        return resolve_within(self.config.archives_dir, archive_id)

    def archive_path(self, archive_id: str, name: str) -> Path:
        """Resolve the path of archive *name* under *archive_id*."""
        archive_dir = self.archive_dir(archive_id)
        validate_identifier(name, "archive name")
        return resolve_within(archive_dir, name)

    async def _collect(self, root: Path) -> list[_Entry]:
        """List the directories and regular files under *root*.

        Each directory is scanned in a worker thread, one scan per directory
        with at most ``archive_stat_concurrency`` scans in flight. Entry
        types come from the scan itself and symlinks are never followed,
        so symlinks and special files are skipped without extra stat calls.
        """
        semaphore = asyncio.Semaphore(self.config.archive_stat_concurrency)

        def scan(directory: Path) -> list[_Entry]:
            found: list[_Entry] = []
            with os.scandir(directory) as listing:
                for item in listing:
                    path = Path(item.path)
                    arcname = path.relative_to(root).as_posix()
                    if item.is_dir(follow_symlinks=False):
                        is_dir = True
                    elif item.is_file(follow_symlinks=False):
                        is_dir = False
                    else:
                        logger.debug(f"Skipping non-regular entry {path}")
                        continue
                    found.append(_Entry(path=path, arcname=arcname, is_dir=is_dir))
            return found

        async def visit(directory: Path) -> list[_Entry]:
            async with semaphore:
                try:
                    found = await asyncio.to_thread(scan, directory)
                except FileNotFoundError:
                    return []
            nested = await asyncio.gather(
                *(visit(entry.path) for entry in found if entry.is_dir)
            )
            for entries in nested:
                found.extend(entries)
            return found

        return sorted(await visit(root), key=lambda e: e.arcname)

    def _open_new_archive(
        self, archive_dir: Path, archive_id: str
    ) -> tuple[Path, IO[bytes]]:
        """Create an archive file that did not exist before.

        Names that are already taken get a ``-1``, ``-2`` ... suffix, so an
        existing archive is never opened for writing.
        """
        stem = f"{archive_id}-{filename_timestamp()}"
        attempt = 0
        while True:
            name = f"{stem}.zip" if attempt == 0 else f"{stem}-{attempt}.zip"
            path = resolve_within(archive_dir, name)
            try:
                return path, path.open("xb")
            except FileExistsError:
                attempt += 1

    def _write_archive(self, raw: IO[bytes], entries: list[_Entry]) -> int:
        with raw:
            writer = _CappedWriter(raw, self.config.max_archive_size)
            with zipfile.ZipFile(
                writer,  # type: ignore[arg-type]
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=9,
            ) as archive:
                for entry in entries:
                    archive.write(entry.path, entry.arcname)
            return writer.high_water

    async def create(self, archive_id: str, volume_id: str) -> ArchiveCreated:
        """Zip the whole volume of *volume_id* into a new archive.

        Args:
            archive_id: Archive directory to store the archive in.
            volume_id: Volume to archive.

        Returns:
            Name and size of the new archive.

        Raises:
            ValidationError: If an id is malformed.
            NotFoundError: If the volume directory does not exist.
            SizeLimitExceededError: If the archive would exceed
                ``max_archive_size``. The partial file is deleted.
        """
        validate_identifier(volume_id, "volume id")
        volume_path = resolve_within(self.config.volumes_dir, volume_id)
        archive_dir = self.archive_dir(archive_id)
        if not volume_path.is_dir():
            raise NotFoundError("Volume not found")

        async with self.locks.hold(volume_id):
            entries = await self._collect(volume_path)
            await asyncio.to_thread(archive_dir.mkdir, parents=True, exist_ok=True)
            archive_path, raw = await asyncio.to_thread(
                self._open_new_archive, archive_dir, archive_id
            )
            name = archive_path.name

            logger.info(f"Creating archive {name} from {volume_path}")
            try:
                await asyncio.to_thread(self._write_archive, raw, entries)
            except SizeLimitExceededError:
                archive_path.unlink(missing_ok=True)
                logger.warning(f"Archive {name} exceeded the size limit, removed")
                raise
            except BaseException:
                archive_path.unlink(missing_ok=True)
                raise

        size = archive_path.stat().st_size
        logger.info(f"Archive {name} created ({format_file_size(size)})")
        return ArchiveCreated(
            archive_name=name, size=size, formatted_size=format_file_size(size)
        )

    async def list(self, archive_id: str) -> list[ArchiveInfo]:
        """List the archives of *archive_id*, newest first.

        A missing archive directory yields an empty list.
        """
        archive_dir = self.archive_dir(archive_id)

        def scan() -> list[ArchiveInfo]:
            if not archive_dir.is_dir():
                return []
            infos: list[ArchiveInfo] = []
            for path in archive_dir.iterdir():
                info = path.lstat()
                if not stat.S_ISREG(info.st_mode):
                    continue
                infos.append(
                    ArchiveInfo(
                        name=path.name,
                        size=info.st_size,
                        formatted_size=format_file_size(info.st_size),
                        last_updated=datetime.fromtimestamp(
                            info.st_mtime, tz=timezone.utc
                        ),
                    )
                )
            return sorted(infos, key=lambda i: (i.last_updated, i.name), reverse=True)

        return await asyncio.to_thread(scan)

    def _existing_archive(self, archive_id: str, name: str) -> Path:
        path = self.archive_path(archive_id, name)
        if not path.is_file() or path.is_symlink():
            raise NotFoundError("Archive not found")
        return path

    async def open_download(self, archive_id: str, name: str) -> ArchiveDownload:
        """Describe an archive for streaming to a client.

        Raises:
            NotFoundError: If the archive does not exist.
        """
        path = self._existing_archive(archive_id, name)
        media_type, _ = mimetypes.guess_type(name)
        return ArchiveDownload(
            path=path,
            filename=name,
            size=path.stat().st_size,
            media_type=media_type or "application/octet-stream",
        )

    async def delete(self, archive_id: str, name: str) -> None:
        """Delete an archive.

        Raises:
            NotFoundError: If the archive does not exist or is not a file.
        """
        path = self._existing_archive(archive_id, name)
        await asyncio.to_thread(path.unlink)
        logger.info(f"Archive {name} of {archive_id} deleted")
