"""Volume archives, rollback and housekeeping."""

from airdaemon.volumes.archives import ArchiveManager
from airdaemon.volumes.rollback import RollbackEngine

__all__ = ["ArchiveManager", "RollbackEngine"]
