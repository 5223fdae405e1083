"""Volume directory housekeeping: size, removal and purge."""

from __future__ import annotations

import os
import shutil
import stat
from pathlib import Path

from airdaemon.lib.logging_config import get_logger
from airdaemon.lib.paths import resolve_within, validate_identifier

logger = get_logger(__name__)

# Working area under the volume root, never a volume itself
STAGING_DIR_NAME = ".staging"


def directory_size(path: Path) -> int:
    """Return the total size in bytes of the regular files under *path*.

    Symlinks are not followed. Files that vanish during the walk are ignored.
    """
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            try:
                info = os.lstat(os.path.join(dirpath, name))
            except FileNotFoundError:
                continue
            if stat.S_ISREG(info.st_mode):
                total += info.st_size
    return total


def remove_volume_dir(volumes_root: Path, volume_id: str) -> Path:
    """Delete the volume directory of *volume_id*.

    A missing directory is not an error.

    Returns:
        The path that was removed.

    Raises:
        ValidationError: If *volume_id* is not a valid identifier.
        OutsideRootError: If the path escapes *volumes_root*.
        OSError: If the directory exists but cannot be removed.
    """
    validate_identifier(volume_id, "volume id")
    path = resolve_within(volumes_root, volume_id)
    if path.exists():
        shutil.rmtree(path)
        logger.info(f"Deleted volume directory: {path}")
    return path


def remove_all_volume_dirs(volumes_root: Path) -> list[str]:
    """Delete every volume directory directly under *volumes_root*.

    Dot-directories such as the rollback staging area are not volumes and
    are left alone. Failures are logged and the directory is reported back.

    Returns:
        Names of the directories that could not be removed.
    """
    if not volumes_root.is_dir():
        return []
    leftovers: list[str] = []
    for entry in sorted(volumes_root.iterdir()):
        if entry.name.startswith(".") or not entry.is_dir() or entry.is_symlink():
            continue
        try:
            shutil.rmtree(entry)
            logger.info(f"Deleted remaining volume directory: {entry}")
        except OSError as exc:
            logger.warning(f"Could not delete directory {entry}: {exc}")
            leftovers.append(entry.name)
    return leftovers
