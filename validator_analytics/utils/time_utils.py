"""
Time helpers shared by the scoring cycle, snapshot storage and the cache.

Wall-clock values (``utcnow``) are persisted and returned to callers;
cache expiry uses the monotonic clock so it is immune to clock changes.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def monotonic() -> float:
    """Seconds on the monotonic clock (cache TTL arithmetic)."""
    return time.monotonic()


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for SQLite storage, passing ``None`` through."""
    return dt.isoformat() if dt is not None else None


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string from SQLite, assuming UTC when naive."""
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
