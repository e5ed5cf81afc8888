"""
Timezone helpers. SQLite hands back naive datetimes for DateTime(timezone=True)
columns, so every comparison against "now" goes through as_utc().
"""
from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(dt: datetime | None | Any) -> datetime | None:
    """Return dt with tzinfo=UTC if naive, or None if dt is None."""
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)
    return None


def iso_or_none(dt: datetime | None | Any) -> str | None:
    """ISO string for dt, or None. Naive values are assumed to be UTC."""
    aware = as_utc(dt)
    return aware.isoformat() if aware is not None else None
