"""
Injectable clock.

Every "today" in the engine goes through ``Clock.calendar_day`` so that the
scheduler, the streak tracker and the store agree on where midnight is.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Source of the current time and of calendar-day boundaries."""

    def now(self) -> datetime:
        """Current time as a timezone-aware datetime."""
        ...

    def calendar_day(self, ts: datetime) -> date:
        """Calendar day ``ts`` falls on in the clock's time zone."""
        ...


def _resolve_tz(tz: str | tzinfo) -> tzinfo:
    if tz == "UTC":
        return timezone.utc
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


class SystemClock:
    """Wall clock in a fixed IANA time zone."""

    def __init__(self, tz: str | tzinfo = "UTC"):
        self.tz = _resolve_tz(tz)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def calendar_day(self, ts: datetime) -> date:
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=self.tz)
        return ts.astimezone(self.tz).date()

    def start_of_day(self, day: date) -> datetime:
        """Midnight at the start of ``day`` in the clock's zone."""
        return datetime(day.year, day.month, day.day, tzinfo=self.tz)


class FixedClock(SystemClock):
    """
    Clock that only moves when told to.

    Used by tests and simulations to step across day boundaries.
    """

    def __init__(self, start: datetime, tz: str | tzinfo | None = None):
        super().__init__(tz or start.tzinfo or "UTC")
        if start.tzinfo is None:
            start = start.replace(tzinfo=self.tz)
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, ts: datetime) -> None:
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=self.tz)
        self._now = ts

    def advance(self, days: int = 0, hours: int = 0, minutes: int = 0, seconds: float = 0) -> datetime:
        self._now = self._now + timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
        return self._now


def add_days(ts: datetime, days: int) -> datetime:
    """
    Add whole calendar days to ``ts``.

    Aware datetimes keep their wall-clock time across DST changes, so this
    is calendar-day arithmetic rather than ``days * 86400`` seconds.
    """
    return ts + timedelta(days=days)
