"""Instance lifecycle state storage.

The store maps an instance id to its current ``InstanceState``. Components
depend on the ``StateStore`` interface; the daemon uses ``JsonStateStore``
and tests use ``InMemoryStateStore``.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from airdaemon.lib.errors import NotFoundError, StateStoreError
from airdaemon.lib.logging_config import get_logger
from airdaemon.models.instance import InstanceRecord, InstanceState

logger = get_logger(__name__)

_RECORDS = TypeAdapter(list[InstanceRecord])


class StateStore(ABC):
    """Abstract lifecycle state store.

    Implementations provide three primitives (``get``, ``upsert`` and
    ``update_existing``); the lifecycle operations are built on top of them.
    """

    @abstractmethod
    async def get(self, instance_id: str) -> InstanceRecord | None:
        """Return the record for *instance_id*, or None."""

    @abstractmethod
    async def upsert(self, record: InstanceRecord) -> None:
        """Store *record*, replacing any record with the same id."""

    @abstractmethod
    async def update_existing(self, record: InstanceRecord) -> None:
        """Replace an existing record.

        Raises:
            NotFoundError: If no record exists for ``record.id``.
        """

    async def set_state(self, instance_id: str, state: InstanceState) -> None:
        """Set the state of *instance_id*, creating the record if needed."""
        await self.upsert(InstanceRecord(id=instance_id, state=state))
        logger.info(f"State set for {instance_id} to {state.value}")

    async def set_state_value(self, instance_id: str, state: InstanceState) -> None:
        """Update the state of an existing record.

        Raises:
            NotFoundError: If *instance_id* has no record. Nothing is created.
        """
        await self.update_existing(InstanceRecord(id=instance_id, state=state))
        logger.info(f"State updated for {instance_id} to {state.value}")

    async def get_state(self, instance_id: str) -> InstanceState | None:
        """Return the current state of *instance_id*, or None."""
        record = await self.get(instance_id)
        return record.state if record else None


class InMemoryStateStore(StateStore):
    """Process-local store, used by tests and throwaway runs."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        self.records: dict[str, InstanceRecord] = {}

    async def get(self, instance_id: str) -> InstanceRecord | None:
        return self.records.get(instance_id)

    async def upsert(self, record: InstanceRecord) -> None:
        self.records[record.id] = record

    async def update_existing(self, record: InstanceRecord) -> None:
        if record.id not in self.records:
            raise NotFoundError(f"ID {record.id} not found.")
        self.records[record.id] = record


class JsonStateStore(StateStore):
    """Store backed by a single JSON document.

    The document is an array of ``{"Id": ..., "State": ...}`` objects and
    is read and rewritten on every access. A missing document is created
    empty; a document that exists but cannot be parsed makes every access
    fail instead of being reset.

    Attributes:
        path: Location of the JSON document.
    """

    def __init__(self, path: str | Path) -> None:
        """Initialize the store.

        Args:
            path: Location of the JSON document. Parent directories are
                created on first access.
        """
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _ensure_document(self) -> None:
        if self.path.exists():
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text("[]\n", encoding="utf-8")
        except OSError as exc:
            raise StateStoreError(
                f"Failed to create state file at {self.path}: {exc}"
            ) from exc

    def _read(self) -> list[InstanceRecord]:
        self._ensure_document()
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StateStoreError(
                f"Failed to read state file at {self.path}: {exc}"
            ) from exc

        try:
            return _RECORDS.validate_json(content)
        except PydanticValidationError as exc:
            logger.error(f"State file {self.path} is corrupted")
            raise StateStoreError(
                f"Invalid state file format in {self.path}: {exc}"
            ) from exc

    def _write(self, records: list[InstanceRecord]) -> None:
        payload = json.dumps(
            [record.model_dump(mode="json", by_alias=True) for record in records],
            indent=2,
        )
        tmp_fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}."
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.write("\n")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StateStoreError(
                f"Failed to write state file to {self.path}: {exc}"
            ) from exc
        finally:
            tmp_path.unlink(missing_ok=True)

    def _upsert(self, record: InstanceRecord) -> None:
        records = [r for r in self._read() if r.id != record.id]
        records.append(record)
        self._write(records)

    def _update_existing(self, record: InstanceRecord) -> None:
        records = self._read()
        for index, existing in enumerate(records):
            if existing.id == record.id:
                records[index] = record
                self._write(records)
                return
        raise NotFoundError(f"ID {record.id} not found.")

    async def get(self, instance_id: str) -> InstanceRecord | None:
        async with self._lock:
            records = await asyncio.to_thread(self._read)
        return next((r for r in records if r.id == instance_id), None)

    async def upsert(self, record: InstanceRecord) -> None:
        async with self._lock:
            await asyncio.to_thread(self._upsert, record)

    async def update_existing(self, record: InstanceRecord) -> None:
        async with self._lock:
            await asyncio.to_thread(self._update_existing, record)
