"""Tests for volume archives in airdaemon.volumes.archives."""

from __future__ import annotations

import asyncio
import os
import re
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from airdaemon.lib.errors import (
    NotFoundError,
    OutsideRootError,
    SizeLimitExceededError,
    ValidationError,
)
from airdaemon.models.config import DaemonConfig
from airdaemon.volumes.archives import ArchiveManager, format_file_size, iter_chunks

ARCHIVE_NAME = re.compile(r"^v1-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z\.zip$")


@pytest.fixture
def manager(daemon_config: DaemonConfig) -> ArchiveManager:
    return ArchiveManager(daemon_config)


class TestFormatFileSize:
    """Tests for human-readable sizes."""

    @pytest.mark.parametrize(
        ("size", "expected"),
        [
            (0, "0 B"),
            (10, "10.00 B"),
            (1023, "1023.00 B"),
            (1024, "1.00 KB"),
            (1536, "1.50 KB"),
            (5 * 1024**3, "5.00 GB"),
            (3 * 1024**5, "3072.00 TB"),
        ],
    )
    def test_format(self, size: int, expected: str) -> None:
        assert format_file_size(size) == expected


class TestCreate:
    """Tests for archive creation."""

    @pytest.mark.asyncio
    async def test_archive_lifecycle(
        self, manager: ArchiveManager, volume_factory: Any, daemon_config: DaemonConfig
    ) -> None:
        """Create, list, download and delete a single archive."""
        volume_factory("v1", {"a.txt": b"0123456789"})

        created = await manager.create("v1", "v1")

        assert ARCHIVE_NAME.match(created.archive_name)
        listed = await manager.list("v1")
        assert [a.name for a in listed] == [created.archive_name]
        assert listed[0].size == created.size
        assert listed[0].formatted_size == format_file_size(created.size)

        download = await manager.open_download("v1", created.archive_name)
        assert download.media_type == "application/zip"
        assert download.size == created.size
        assert b"".join(iter_chunks(download.path)) == download.path.read_bytes()

        await manager.delete("v1", created.archive_name)
        assert await manager.list("v1") == []

    @pytest.mark.asyncio
    async def test_archive_contains_tree_and_directories(
        self, manager: ArchiveManager, volume_factory: Any, daemon_config: DaemonConfig
    ) -> None:
        root = volume_factory(
            "v1",
            {"server.properties": b"port=1", "world/region/r.0.0.mca": bytes(100)},
        )
        (root / "empty").mkdir()

        created = await manager.create("backups", "v1")

        path = daemon_config.archives_dir / "backups" / created.archive_name
        with zipfile.ZipFile(path) as archive:
            names = set(archive.namelist())
            assert archive.read("world/region/r.0.0.mca") == b"\x00" * 100
            assert all(
                i.compress_type == zipfile.ZIP_DEFLATED
                for i in archive.infolist()
                if not i.is_dir()
            )
        assert {"server.properties", "world/", "world/region/", "empty/"} <= names
        assert created.archive_name.startswith("backups-")

    @pytest.mark.asyncio
    async def test_symlinks_are_skipped(
        self,
        manager: ArchiveManager,
        volume_factory: Any,
        daemon_config: DaemonConfig,
        tmp_path: Path,
    ) -> None:
        secret = tmp_path / "secret.txt"
        secret.write_text("do not archive")
        root = volume_factory("v1", {"a.txt": b"a"})
        (root / "link.txt").symlink_to(secret)

        created = await manager.create("v1", "v1")

        path = daemon_config.archives_dir / "v1" / created.archive_name
        with zipfile.ZipFile(path) as archive:
            assert archive.namelist() == ["a.txt"]

    @pytest.mark.asyncio
    async def test_same_timestamp_never_overwrites(
        self,
        manager: ArchiveManager,
        volume_factory: Any,
        daemon_config: DaemonConfig,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            "airdaemon.volumes.archives.filename_timestamp",
            lambda: "2026-10-19T12-00-00-000Z",
        )
        root = volume_factory("v1", {"a.txt": b"first"})
        first = await manager.create("v1", "v1")
        (root / "a.txt").write_bytes(b"second")

        second = await manager.create("v1", "v1")
        third = await manager.create("v1", "v1")

        assert first.archive_name == "v1-2026-10-19T12-00-00-000Z.zip"
        assert second.archive_name == "v1-2026-10-19T12-00-00-000Z-1.zip"
        assert third.archive_name == "v1-2026-10-19T12-00-00-000Z-2.zip"
        archive_dir = daemon_config.archives_dir / "v1"
        with zipfile.ZipFile(archive_dir / first.archive_name) as archive:
            assert archive.read("a.txt") == b"first"
        with zipfile.ZipFile(archive_dir / second.archive_name) as archive:
            assert archive.read("a.txt") == b"second"

    @pytest.mark.asyncio
    async def test_concurrent_volumes_into_one_archive_dir(
        self,
        manager: ArchiveManager,
        volume_factory: Any,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            "airdaemon.volumes.archives.filename_timestamp",
            lambda: "2026-10-19T12-00-00-000Z",
        )
        volume_factory("v1", {"a.txt": b"1"})
        volume_factory("v2", {"b.txt": b"2"})

        results = await asyncio.gather(
            manager.create("shared", "v1"), manager.create("shared", "v2")
        )

        assert len({r.archive_name for r in results}) == 2
        assert len(await manager.list("shared")) == 2

    @pytest.mark.asyncio
    async def test_deep_tree_with_single_scan_slot(
        self, volume_factory: Any, daemon_config: DaemonConfig
    ) -> None:
        config = daemon_config.model_copy(update={"archive_stat_concurrency": 1})
        manager = ArchiveManager(config)
        volume_factory(
            "v1",
            {
                "a/b/c/d/e.txt": b"deep",
                "a/x.txt": b"x",
                "f/g/h.txt": b"h",
            },
        )

        created = await asyncio.wait_for(manager.create("v1", "v1"), timeout=5)

        path = config.archives_dir / "v1" / created.archive_name
        with zipfile.ZipFile(path) as archive:
            names = archive.namelist()
        assert names == sorted(names)
        assert {"a/b/c/d/e.txt", "a/x.txt", "f/g/h.txt", "a/b/c/d/"} <= set(names)

    @pytest.mark.asyncio
    async def test_size_limit_removes_partial_file(
        self, volume_factory: Any, daemon_config: DaemonConfig
    ) -> None:
        config = daemon_config.model_copy(update={"max_archive_size": 4096})
        manager = ArchiveManager(config)
        volume_factory("v1", {"random.bin": os.urandom(64 * 1024)})

        with pytest.raises(SizeLimitExceededError):
            await manager.create("v1", "v1")

        assert await manager.list("v1") == []
        assert list((daemon_config.archives_dir / "v1").iterdir()) == []

    @pytest.mark.asyncio
    async def test_missing_volume(self, manager: ArchiveManager) -> None:
        with pytest.raises(NotFoundError, match="Volume not found"):
            await manager.create("v1", "nothing-here")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("archive_id", "volume_id"), [("../x", "v1"), ("v1", "../x"), ("v1", "a/b")]
    )
    async def test_invalid_ids(
        self, manager: ArchiveManager, archive_id: str, volume_id: str
    ) -> None:
        with pytest.raises(ValidationError):
            await manager.create(archive_id, volume_id)


class TestListAndDelete:
    """Tests for listing, downloading and deleting."""

    @pytest.mark.asyncio
    async def test_list_missing_directory_is_empty(
        self, manager: ArchiveManager
    ) -> None:
        assert await manager.list("never-archived") == []

    @pytest.mark.asyncio
    async def test_list_newest_first_files_only(
        self, manager: ArchiveManager, daemon_config: DaemonConfig
    ) -> None:
        archive_dir = daemon_config.archives_dir / "v1"
        archive_dir.mkdir(parents=True)
        (archive_dir / "old.zip").write_bytes(b"old")
        (archive_dir / "new.zip").write_bytes(b"newer")
        (archive_dir / "subdir").mkdir()
        os.utime(archive_dir / "old.zip", (1_000, 1_000))
        os.utime(archive_dir / "new.zip", (2_000, 2_000))

        listed = await manager.list("v1")

        assert [a.name for a in listed] == ["new.zip", "old.zip"]
        assert listed[0].last_updated == datetime.fromtimestamp(2_000, tz=timezone.utc)
        assert listed[0].size == 5

    @pytest.mark.asyncio
    async def test_delete_missing_archive(self, manager: ArchiveManager) -> None:
        with pytest.raises(NotFoundError, match="Archive not found"):
            await manager.delete("v1", "missing.zip")

    @pytest.mark.asyncio
    async def test_delete_directory_is_not_found(
        self, manager: ArchiveManager, daemon_config: DaemonConfig
    ) -> None:
        (daemon_config.archives_dir / "v1" / "dir.zip").mkdir(parents=True)

        with pytest.raises(NotFoundError):
            await manager.delete("v1", "dir.zip")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["../states.json", "..", "a/b.zip"])
    async def test_download_rejects_traversal(
        self, manager: ArchiveManager, name: str
    ) -> None:
        with pytest.raises((ValidationError, OutsideRootError)):
            await manager.open_download("v1", name)

    def test_iter_chunks_uses_chunk_size(self, tmp_path: Path) -> None:
        path = tmp_path / "blob"
        path.write_bytes(b"x" * 150)

        chunks = list(iter_chunks(path, chunk_size=64))

        assert [len(c) for c in chunks] == [64, 64, 22]
