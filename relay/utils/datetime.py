"""Datetime helpers.

Timestamps are stored as naive UTC datetimes and rendered on the wire as
ISO-8601 with microseconds and a ``Z`` suffix. Full precision matters:
``since`` cursors are compared against stored values, so truncating on
output would make a poll re-return the message it was taken from.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_iso(value: datetime) -> str:
    """Render a stored (naive UTC) datetime for API responses."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.isoformat(timespec="microseconds") + "Z"


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into a naive UTC datetime.

    Accepts a ``Z`` suffix, an explicit offset, or no zone (taken as UTC).

    Raises:
        ValueError: If the value is not ISO-8601
    """
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed
