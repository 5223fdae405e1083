"""Per-instance serialization of container and volume operations."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class InstanceLocks:
    """Registry of one ``asyncio.Lock`` per instance id.

    Deployments, redeploys, archive creation and rollbacks that touch the
    same instance id are serialized; different ids run concurrently.

    A lock exists only while some caller holds or waits for it, so ids of
    removed instances do not accumulate.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, instance_id: str) -> bool:
        """Return True while an operation holds the lock for *instance_id*."""
        lock = self._locks.get(instance_id)
        return lock is not None and lock.locked()

    async def acquire(self, instance_id: str) -> None:
        """Wait for and take the lock of *instance_id*.

        Every successful call must be paired with ``release``.
        """
        lock = self._locks.get(instance_id)
        if lock is None:
            lock = self._locks[instance_id] = asyncio.Lock()
        self._users[instance_id] = self._users.get(instance_id, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._forget(instance_id)
            raise

    def release(self, instance_id: str) -> None:
        """Release the lock of *instance_id* taken with ``acquire``."""
        self._locks[instance_id].release()
        self._forget(instance_id)

    def _forget(self, instance_id: str) -> None:
        remaining = self._users[instance_id] - 1
        if remaining:
            self._users[instance_id] = remaining
        else:
            del self._users[instance_id]
            del self._locks[instance_id]

    @asynccontextmanager
    async def hold(self, *instance_ids: str) -> AsyncIterator[None]:
        """Hold the locks of several ids at once.

        Locks are acquired in sorted order so two callers holding
        overlapping sets cannot deadlock.
        """
        acquired: list[str] = []
        try:
            for instance_id in sorted(set(instance_ids)):
                await self.acquire(instance_id)
                acquired.append(instance_id)
            yield
        finally:
            for instance_id in reversed(acquired):
                self.release(instance_id)
