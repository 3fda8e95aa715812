"""
Module: approval_engines.business_time
Responsibility:
    Elapsed-time arithmetic restricted to a configuration's working hours.
    ``business_elapsed`` measures the business time between two instants and
    ``add_business_hours`` finds the instant a given amount of business time
    after a start.

Architecture position:
    Engines -- pure functions, zero I/O.  Timezone data comes from the
    standard ``zoneinfo`` database (the ``tzdata`` package on platforms
    without a system database).

Invariants enforced:
    - DST safety: working windows are built as local wall-clock times in the
      calendar's timezone and converted to UTC before any subtraction, so a
      day with a DST shift contributes its true length.
    - Holidays and non-working weekdays contribute zero time.
    - Without business hours or holidays the calendar is plain wall-clock
      time.

Failure modes:
    - ValueError from add_business_hours when the calendar has no working
      time within ``MAX_SCAN_DAYS``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from approval_kernel.domain.approval import ApprovalConfiguration, BusinessHours

MAX_SCAN_DAYS = 3660
_ALL_WEEKDAYS = frozenset(range(7))


@dataclass(frozen=True)
class BusinessCalendar:
    """Working-time calendar: weekly window plus holidays."""

    hours: BusinessHours | None = None
    holidays: frozenset[date] = frozenset()

    @classmethod
    def from_configuration(cls, configuration: ApprovalConfiguration) -> BusinessCalendar:
        return cls(hours=configuration.business_hours, holidays=configuration.holidays)

    @property
    def is_wall_clock(self) -> bool:
        return self.hours is None and not self.holidays

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.hours.timezone if self.hours else "UTC")

    def window(self, day: date) -> tuple[datetime, datetime] | None:
        """UTC ``[start, end)`` of working time on local ``day``, or None."""
        if day in self.holidays:
            return None
        weekdays = self.hours.weekdays if self.hours else _ALL_WEEKDAYS
        if day.weekday() not in weekdays:
            return None
        tz = self.tz
        if self.hours is None:
            start_local = datetime.combine(day, time(0, 0), tzinfo=tz)
            end_local = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tz)
        else:
            start_local = datetime.combine(day, self.hours.start, tzinfo=tz)
            end_local = datetime.combine(day, self.hours.end, tzinfo=tz)
        start = start_local.astimezone(timezone.utc)
        end = end_local.astimezone(timezone.utc)
        if end <= start:
            return None
        return start, end

    def local_date(self, instant: datetime) -> date:
        return instant.astimezone(self.tz).date()


def business_elapsed(
    calendar: BusinessCalendar,
    start: datetime,
    end: datetime,
) -> timedelta:
    """Business time in ``[start, end)``; zero when ``end <= start``."""
    if end <= start:
        return timedelta(0)
    if calendar.is_wall_clock:
        return end - start

    total = timedelta(0)
    day = calendar.local_date(start) - timedelta(days=1)
    last = calendar.local_date(end) + timedelta(days=1)
    while day <= last:
        window = calendar.window(day)
        if window is not None:
            lo = max(start, window[0])
            hi = min(end, window[1])
            if hi > lo:
                total += hi - lo
        day += timedelta(days=1)
    return total


def add_business_hours(
    calendar: BusinessCalendar,
    start: datetime,
    hours: float,
) -> datetime:
    """Instant at which ``hours`` of business time have elapsed since ``start``."""
    remaining = timedelta(hours=hours)
    if calendar.is_wall_clock:
        return start + remaining

    day = calendar.local_date(start) - timedelta(days=1)
    for _ in range(MAX_SCAN_DAYS):
        window = calendar.window(day)
        if window is not None and window[1] > start:
            lo = max(start, window[0])
            available = window[1] - lo
            if remaining <= available:
                return lo + remaining
            remaining -= available
        day += timedelta(days=1)
    raise ValueError(
        f"No working time found within {MAX_SCAN_DAYS} days of {start.isoformat()}"
    )


def elapsed_hours(calendar: BusinessCalendar, start: datetime, end: datetime) -> float:
    """Business time between two instants, in hours."""
    return business_elapsed(calendar, start, end) / timedelta(hours=1)
