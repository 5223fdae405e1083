"""Tests for volume housekeeping in airdaemon.volumes.usage."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from airdaemon.lib.errors import ValidationError
from airdaemon.models.config import DaemonConfig
from airdaemon.volumes.usage import (
    directory_size,
    remove_all_volume_dirs,
    remove_volume_dir,
)


class TestDirectorySize:
    """Tests for directory_size()."""

    def test_sums_nested_files(self, volume_factory: Any) -> None:
        root = volume_factory("v1", {"a": b"x" * 10, "d/b": b"y" * 5, "d/e/c": b"z"})
        assert directory_size(root) == 16

    def test_ignores_symlinks(self, volume_factory: Any, tmp_path: Path) -> None:
        big = tmp_path / "big"
        big.write_bytes(b"x" * 1000)
        root = volume_factory("v1", {"a": b"x"})
        (root / "link").symlink_to(big)

        assert directory_size(root) == 1


class TestRemoval:
    """Tests for volume directory removal."""

    def test_remove_volume_dir(
        self, volume_factory: Any, daemon_config: DaemonConfig
    ) -> None:
        volume_factory("v1", {"nested/file": b"x"})

        removed = remove_volume_dir(daemon_config.volumes_dir, "v1")

        assert not removed.exists()

    def test_remove_missing_is_not_an_error(self, daemon_config: DaemonConfig) -> None:
        remove_volume_dir(daemon_config.volumes_dir, "never-created")

    def test_remove_rejects_invalid_id(self, daemon_config: DaemonConfig) -> None:
        with pytest.raises(ValidationError):
            remove_volume_dir(daemon_config.volumes_dir, "../outside")

    def test_remove_all(self, volume_factory: Any, daemon_config: DaemonConfig) -> None:
        volume_factory("v1", {"a": b"1"})
        volume_factory("v2", {"b/c": b"2"})

        leftovers = remove_all_volume_dirs(daemon_config.volumes_dir)

        assert leftovers == []
        assert list(daemon_config.volumes_dir.iterdir()) == []

    def test_remove_all_without_root(self, tmp_path: Path) -> None:
        assert remove_all_volume_dirs(tmp_path / "absent") == []

    def test_remove_all_skips_dot_directories(
        self, volume_factory: Any, daemon_config: DaemonConfig
    ) -> None:
        volume_factory("v1", {"a": b"1"})
        staging = daemon_config.volumes_dir / ".staging" / "v1-restore"
        staging.mkdir(parents=True)

        leftovers = remove_all_volume_dirs(daemon_config.volumes_dir)

        assert leftovers == []
        assert [p.name for p in daemon_config.volumes_dir.iterdir()] == [".staging"]
        assert staging.is_dir()
