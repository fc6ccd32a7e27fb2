"""Small time helpers shared by the periodic jobs."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current timezone-aware UTC time."""
    return datetime.now(tz=UTC)


def relative_time(timestamp: datetime, now: datetime) -> str:
    """Return a coarse "N minutes ago" label for presentation payloads."""
    diff_minutes = int((now - timestamp).total_seconds() // 60)
    if diff_minutes < 1:
        return "Just now"
    if diff_minutes < 60:
        return f"{diff_minutes} minutes ago"
    diff_hours = diff_minutes // 60
    if diff_hours < 24:
        return f"{diff_hours} hours ago"
    return f"{diff_hours // 24} days ago"
