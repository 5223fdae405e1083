"""UTC timestamp formatting."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now_iso(now: datetime | None = None) -> str:
    """Return an ISO 8601 UTC timestamp with millisecond precision.

    Example:
        >>> utc_now_iso(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc))
        '2026-10-19T12:00:00.000Z'
    """
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def filename_timestamp(now: datetime | None = None) -> str:
    """Return ``utc_now_iso`` with ``:`` and ``.`` replaced by ``-``.

    Example:
        >>> filename_timestamp(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc))
        '2026-10-19T12-00-00-000Z'
    """
    return utc_now_iso(now).replace(":", "-").replace(".", "-")
