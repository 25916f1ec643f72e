"""Shared utility functions used across components."""

import re
from datetime import datetime, timezone

_FIRST_INT_RE = re.compile(r"(\d+)")


def utcnow() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Return datetime as timezone-aware UTC. Returns None if input is None."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_duration_seconds(label: str | int | None, default_minutes: int) -> int:
    """Parse a duration label such as "45 mins" into seconds.

    The first integer in the label is taken as minutes; labels without one
    fall back to ``default_minutes``.
    """
    if isinstance(label, int) and not isinstance(label, bool):
        minutes = label
    else:
        match = _FIRST_INT_RE.search(str(label or ""))
        minutes = int(match.group(1)) if match else default_minutes
    return max(0, minutes) * 60


def format_time(seconds: int) -> str:
    """Render a countdown as m:ss."""
    seconds = max(0, int(seconds or 0))
    mins, secs = divmod(seconds, 60)
    return f"{mins}:{secs:02d}"
