"""Shared UTC time helpers.

Every module that stamps events, metrics or retry contexts goes through
``utc_now`` so that timestamps are comparable across the session.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return the current UTC timestamp."""
    return datetime.now(UTC)


def elapsed_ms(start: datetime, end: datetime | None = None) -> int:
    """Milliseconds between ``start`` and ``end`` (defaults to now)."""
    return int(((end or utc_now()) - start).total_seconds() * 1000)
