"""Small time and percentage helpers shared across services."""

from __future__ import annotations

import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return as_utc(value).isoformat()


def percentage(completed: int, total: int) -> int:
    """Whole-number completion percentage, halves rounded up; 0 when there is nothing to complete."""
    if total <= 0:
        return 0
    return math.floor(completed * 100 / total + 0.5)
