"""Calendar helpers shared by the predictor and the API layer."""

from __future__ import annotations

import re
from datetime import date, datetime, time
from enum import Enum
from zoneinfo import ZoneInfo

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class CountdownStatus(str, Enum):
    upcoming = "upcoming"
    today = "today"
    passed = "passed"


def parse_date(value: str | date | None) -> date | None:
    """Parse a ``YYYY-MM-DD`` string into a date.

    Returns None for empty input, other formats, and impossible dates
    such as ``2023-02-29``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not _ISO_DATE_RE.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def format_display_date(value: str | date) -> str:
    """Format a date as ``DD.MM.YYYY``."""
    d = parse_date(value)
    if d is None:
        raise ValueError(f"Not a calendar date: {value!r}")
    return f"{d.day:02d}.{d.month:02d}.{d.year}"


def local_today(tz_name: str = "UTC", now: datetime | None = None) -> date:
    """Calendar date in ``tz_name`` at ``now`` (default: the current instant)."""
    zone = ZoneInfo(tz_name)
    if now is None:
        return datetime.now(zone).date()
    return now.astimezone(zone).date()


def days_until(target: str | date, today: date | None = None) -> int:
    """Whole days from ``today`` to ``target`` (negative once it has passed)."""
    d = parse_date(target)
    if d is None:
        raise ValueError(f"Not a calendar date: {target!r}")
    return (d - (today or local_today())).days


def countdown_status(days: int) -> CountdownStatus:
    if days > 0:
        return CountdownStatus.upcoming
    if days == 0:
        return CountdownStatus.today
    return CountdownStatus.passed


def record_timestamp_ms(d: date, tz_name: str = "UTC") -> int:
    """Epoch milliseconds of local midnight on ``d`` in ``tz_name``."""
    midnight = datetime.combine(d, time.min, tzinfo=ZoneInfo(tz_name))
    return int(midnight.timestamp() * 1000)
