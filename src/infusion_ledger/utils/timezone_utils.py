"""
Timezone, calendar-day and clock utilities.

The ledger never reads the system time directly; it asks a clock. A day is
the calendar date in the clock's local zone.
"""

from datetime import date, datetime
from typing import Protocol

import pytz
from dateutil import parser


class Clock(Protocol):
    """Anything that can tell the current time."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock localized to a configured timezone."""

    def __init__(self, timezone_str: str = "UTC") -> None:
        self.tz = pytz.timezone(timezone_str)

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock:
    """Clock frozen at a given instant until moved with ``set``."""

    def __init__(self, current: datetime, timezone_str: str = "UTC") -> None:
        self.timezone_str = timezone_str
        self.current = make_timezone_aware(current, timezone_str, assume_local=True)

    def set(self, current: datetime) -> None:
        self.current = make_timezone_aware(current, self.timezone_str, assume_local=True)

    def now(self) -> datetime:
        return self.current


def make_timezone_aware(
    dt: datetime, timezone_str: str = "UTC", assume_local: bool = False
) -> datetime:
    """
    Make a datetime object timezone-aware.

    Args:
        dt: Datetime object (may be naive or aware).
        timezone_str: Timezone string (e.g., "Europe/Rome").
        assume_local: If True and dt is naive, assume it's in timezone_str.

    Returns:
        Timezone-aware datetime object.
    """
    tz = pytz.timezone(timezone_str)

    if dt.tzinfo is None:
        if assume_local:
            return tz.localize(dt)
        else:
            return pytz.utc.localize(dt).astimezone(tz)
    else:
        return dt.astimezone(tz)


def local_today(clock: Clock) -> date:
    """Calendar day of the clock's current instant, in the clock's own zone."""
    return clock.now().date()


def month_key(day: date) -> str:
    """Month bucket key, ``YYYY-MM``."""
    return f"{day.year}-{day.month:02d}"


def epoch_millis(dt: datetime) -> int:
    """Milliseconds since the Unix epoch."""
    return int(dt.timestamp() * 1000)


def parse_date(date_str: str) -> date:
    """
    Parse a calendar date from user input.

    Args:
        date_str: Date string (ISO and most common formats supported).

    Returns:
        The parsed calendar date.

    Raises:
        ValueError: If the string is not a recognizable date.
    """
    try:
        return parser.parse(date_str).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid date: {date_str!r}") from e
