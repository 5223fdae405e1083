"""Path safety helpers.

Identifiers and relative paths arriving from API callers are untrusted. Two
independent checks are applied before anything touches the filesystem:

- ``validate_identifier`` restricts the character set of single path
  segments (instance ids, volume ids, archive names).
- ``resolve_within`` resolves a relative path against a root directory and
  rejects anything that is not the root itself or a descendant of it.
"""

from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath, PureWindowsPath

from airdaemon.lib.errors import OutsideRootError, ValidationError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


def is_valid_identifier(value: str | None) -> bool:
    """Return True if *value* is a safe single path segment."""
    if not value:
        return False
    return (
        bool(IDENTIFIER_PATTERN.match(value))
        and ".." not in value
        and not value.startswith(".")
    )


def validate_identifier(value: str | None, label: str = "identifier") -> str:
    """Validate an identifier used as a path segment.

    Args:
        value: The untrusted identifier.
        label: Human-readable name used in the error message.

    Returns:
        The identifier, unchanged.

    Raises:
        ValidationError: If the value is empty, starts with ``.``, contains
            ``..`` or contains characters outside ``[A-Za-z0-9_.-]``.
    """
    if not value or not is_valid_identifier(value):
        raise ValidationError(f"Invalid {label}")
    return value


def _has_parent_segment(part: str) -> bool:
    # Check both separators so "a\\..\\b" is caught on POSIX hosts too
    return ".." in PurePosixPath(part).parts or ".." in PureWindowsPath(part).parts


def resolve_within(root: str | Path, *parts: str) -> Path:
    """Resolve *parts* under *root*, refusing to leave it.

    The resolved path must be the root itself or a strict descendant. The
    comparison is a prefix match against the resolved root followed by the
    path separator, so ``/data/ab`` is never accepted as inside ``/data/a``.

    Args:
        root: The designated root directory.
        *parts: Untrusted relative path components.

    Returns:
        The resolved absolute path.

    Raises:
        OutsideRootError: If any part contains a ``..`` segment or the path
            resolves outside of the root.
    """
    resolved_root = Path(root).resolve()
    joined = os.path.join(*parts) if parts else ""

    for part in parts:
        if _has_parent_segment(part):
            raise OutsideRootError(str(resolved_root), joined)

    full_path = (resolved_root / joined).resolve()
    if full_path != resolved_root and not str(full_path).startswith(
        str(resolved_root) + os.sep
    ):
        raise OutsideRootError(str(resolved_root), joined)
    return full_path
