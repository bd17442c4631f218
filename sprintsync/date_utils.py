"""Shared date normalization helpers."""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with a ``Z`` suffix.

    Microseconds are kept when present so a logical clock survives a
    round trip through the wire form unchanged.
    """
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def parse_iso(token: str) -> datetime | None:
    cleaned = (token or "").strip()
    if not cleaned:
        return None
    if _DATE_ONLY_RE.match(cleaned):
        try:
            return datetime.combine(date.fromisoformat(cleaned), datetime.min.time(), timezone.utc)
        except ValueError:
            return None
    try:
        return ensure_utc(datetime.fromisoformat(cleaned.replace("Z", "+00:00")))
    except ValueError:
        return None


def start_of_day(value: datetime) -> datetime:
    dt = ensure_utc(value)
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def add_weeks(value: datetime, weeks: int) -> datetime:
    return value + timedelta(weeks=weeks)


def days_between(start: datetime, end: datetime) -> int:
    return (start_of_day(end) - start_of_day(start)).days


def file_mtime(path: Path) -> float | None:
    """Return the file's modification time in epoch seconds, or None."""
    try:
        return path.stat().st_mtime
    except OSError:
        return None


def mtime_to_datetime(mtime: float) -> datetime:
    return datetime.fromtimestamp(float(mtime), timezone.utc)
