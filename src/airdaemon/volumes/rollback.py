"""Restore a volume directory from one of its archives.

The archive is extracted into a staging directory under
``<volumes_dir>/.staging`` first. The volume is only cleared once every
member has been checked and written, so a corrupt or malicious archive
leaves the volume untouched. Entries are then moved into place with
``os.replace``; the staging area lives under the volume root so every move
is a rename. Volume purges skip the staging area.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from airdaemon.deploy.locks import InstanceLocks
from airdaemon.lib.errors import ArchiveError, NotFoundError
from airdaemon.lib.logging_config import get_logger
from airdaemon.lib.paths import resolve_within, validate_identifier
from airdaemon.models.archive import RollbackCompleted
from airdaemon.volumes.usage import STAGING_DIR_NAME

if TYPE_CHECKING:
    from airdaemon.models.config import DaemonConfig

logger = get_logger(__name__)


def extract_checked(archive_path: Path, destination: Path) -> int:
    """Extract *archive_path* into *destination*, refusing escaping members.

    Every member name is checked before the first byte is written.

    Returns:
        Number of members extracted.

    Raises:
        OutsideRootError: If a member would land outside *destination*.
        ArchiveError: If the file is not a readable zip archive.
    """
    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = archive.infolist()
            targets = [resolve_within(destination, m.filename) for m in members]
            for member, target in zip(members, targets):
                if member.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member) as source, target.open("wb") as sink:
                    shutil.copyfileobj(source, sink)
    except zipfile.BadZipFile as exc:
        name = archive_path.name
        raise ArchiveError(f"Archive {name} is not readable: {exc}") from exc
    return len(members)


def clear_directory(path: Path) -> None:
    """Remove every entry of *path*, keeping the directory itself."""
    for entry in path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


class RollbackEngine:
    """Replaces a volume's contents with the contents of an archive."""

    def __init__(
        self, config: DaemonConfig, locks: InstanceLocks | None = None
    ) -> None:
        """Initialize the engine.

        Args:
            config: Daemon configuration (volume and archive roots).
            locks: Per-instance lock registry shared with the orchestrator.
        """
        self.config = config
        self.locks = locks if locks is not None else InstanceLocks()

    def _restore(self, archive_path: Path, volume_path: Path) -> int:
        staging_root = volume_path.parent / STAGING_DIR_NAME
        staging_root.mkdir(parents=True, exist_ok=True)
        staging = Path(
            tempfile.mkdtemp(prefix=f"{volume_path.name}-", dir=staging_root)
        )
        try:
            extracted = extract_checked(archive_path, staging)

            volume_path.mkdir(exist_ok=True)
            clear_directory(volume_path)
            for entry in sorted(staging.iterdir()):
                os.replace(entry, volume_path / entry.name)
        finally:
            shutil.rmtree(staging, ignore_errors=True)
        return extracted

    async def rollback(
        self, archive_id: str, volume_id: str, archive_name: str
    ) -> RollbackCompleted:
        """Replace the contents of *volume_id* with archive *archive_name*.

        Args:
            archive_id: Archive directory holding the archive.
            volume_id: Volume to restore. Created when absent.
            archive_name: File name of the archive.

        Returns:
            The restored archive, volume and member count.

        Raises:
            ValidationError: If an id or the name is malformed.
            NotFoundError: If the archive does not exist.
            OutsideRootError: If a member would escape the volume.
            ArchiveError: If the archive is not a readable zip file.
        """
        validate_identifier(archive_id, "archive id")
        validate_identifier(volume_id, "volume id")
        validate_identifier(archive_name, "archive name")
        volume_path = resolve_within(self.config.volumes_dir, volume_id)
        archive_path = resolve_within(
            self.config.archives_dir, archive_id, archive_name
        )
        if not archive_path.is_file():
            raise NotFoundError("Archive not found")

        async with self.locks.hold(volume_id):
            logger.info(f"Rolling back {volume_id} from {archive_name}")
            try:
                restored = await asyncio.to_thread(
                    self._restore, archive_path, volume_path
                )
            except Exception as exc:
                logger.error(f"Rollback of {volume_id} failed: {exc}")
                raise

        logger.info(f"Volume {volume_id} rolled back ({restored} entries)")
        return RollbackCompleted(
            archive_name=archive_name, volume_id=volume_id, restored_entries=restored
        )
