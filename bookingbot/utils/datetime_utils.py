"""
Helpers for timezone handling: everything is stored and compared in UTC.
"""
from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def dt_replace_utc(dt: datetime | None | Any) -> datetime | None:
    """
    Return dt with tzinfo=UTC if naive, or None if dt is None.
    Use for datetimes read back from the DB (SQLite drops tzinfo).
    """
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt
    return None


def to_utc(dt: datetime) -> datetime:
    """Convert an aware datetime to UTC. Naive input is rejected."""
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        raise ValueError("Timezone-aware datetime required")
    return dt.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)
