"""Tests for path safety helpers in airdaemon.lib.paths."""

from __future__ import annotations

from pathlib import Path

import pytest

from airdaemon.lib.errors import OutsideRootError, ValidationError
from airdaemon.lib.paths import is_valid_identifier, resolve_within, validate_identifier


class TestValidateIdentifier:
    """Tests for identifier validation."""

    @pytest.mark.parametrize(
        "value", ["app1", "my-server_2", "v1.2", "A-Z.0_9", "x"]
    )
    def test_accepts_safe_identifiers(self, value: str) -> None:
        assert validate_identifier(value) == value
        assert is_valid_identifier(value)

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "..",
            ".staging",
            ".hidden-volume",
            "a..b",
            "../etc",
            "a/b",
            "a\\b",
            "name with space",
            "ünïcode",
            None,
        ],
    )
    def test_rejects_unsafe_identifiers(self, value: str | None) -> None:
        with pytest.raises(ValidationError):
            validate_identifier(value)
        assert not is_valid_identifier(value)

    def test_error_message_names_the_label(self) -> None:
        with pytest.raises(ValidationError, match="Invalid volume id"):
            validate_identifier("a/b", "volume id")


class TestResolveWithin:
    """Tests for root-bounded path resolution."""

    def test_resolves_child_to_absolute_path(self, tmp_path: Path) -> None:
        result = resolve_within(tmp_path, "app1", "server.properties")
        assert result == (tmp_path / "app1" / "server.properties").resolve()
        assert result.is_absolute()

    def test_root_itself_is_allowed(self, tmp_path: Path) -> None:
        assert resolve_within(tmp_path) == tmp_path.resolve()

    @pytest.mark.parametrize(
        "part", ["..", "../sibling", "a/../../b", "a/../b", "..\\outside"]
    )
    def test_rejects_parent_segments(self, tmp_path: Path, part: str) -> None:
        with pytest.raises(OutsideRootError):
            resolve_within(tmp_path / "root", part)

    def test_rejects_absolute_paths(self, tmp_path: Path) -> None:
        with pytest.raises(OutsideRootError):
            resolve_within(tmp_path / "root", "/etc/passwd")

    def test_prefix_sibling_is_outside(self, tmp_path: Path) -> None:
        """A sibling sharing the root's name prefix is not inside the root."""
        root = tmp_path / "data"
        root.mkdir()
        (tmp_path / "database").mkdir()
        (root / "link").symlink_to(tmp_path / "database")

        with pytest.raises(OutsideRootError):
            resolve_within(root, "link")

    def test_error_carries_root_and_target(self, tmp_path: Path) -> None:
        with pytest.raises(OutsideRootError) as exc_info:
            resolve_within(tmp_path, "../x")
        assert exc_info.value.root == str(tmp_path.resolve())
        assert exc_info.value.target == "../x"
