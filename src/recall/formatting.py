"""Display helpers for consumer-facing payloads."""

from __future__ import annotations

import datetime

from recall.store import now_ms

_MINUTE_MS = 60_000
_HOUR_MS = 3_600_000
_DAY_MS = 86_400_000


def iso_timestamp(ms: int) -> str:
    """Millisecond epoch -> ISO-8601 UTC, e.g. ``2024-05-01T12:00:00.000Z``."""
    seconds, millis = divmod(int(ms), 1000)
    dt = datetime.datetime.fromtimestamp(seconds, tz=datetime.timezone.utc) + datetime.timedelta(milliseconds=millis)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def format_age(ms: int, now: int | None = None) -> str:
    """Relative age such as ``"1 day ago"`` or ``"5 minutes ago"``."""
    age = max(0, (now_ms() if now is None else now) - ms)
    days, hours, minutes = age // _DAY_MS, age // _HOUR_MS, age // _MINUTE_MS
    if days > 0:
        return f"{_plural(days, 'day')} ago"
    if hours > 0:
        return f"{_plural(hours, 'hour')} ago"
    if minutes > 0:
        return f"{_plural(minutes, 'minute')} ago"
    return "just now"


def relevance_percent(score: float) -> str:
    return f"{round(score * 100)}%"
