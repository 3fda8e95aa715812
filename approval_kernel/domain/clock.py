"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock interface so that submission, decision and
    timer code never call ``datetime.now()`` directly.  Reminder, escalation
    and expiry logic is therefore testable without real sleeps.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Failure modes:
    - DeterministicClock.set_time raises ValueError for naive datetimes.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time receive a Clock instance via
        constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...


class SystemClock(Clock):
    """Production clock that returns actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        if fixed_time is not None:
            self.set_time(fixed_time)

    def now(self) -> datetime:
        return self._now

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific (aware) time."""
        if time.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware datetime")
        self._now = time.astimezone(timezone.utc)

    def advance(self, seconds: float = 0, *, hours: float = 0, minutes: float = 0) -> datetime:
        """Advance the clock and return the new time."""
        self._now = self._now + timedelta(hours=hours, minutes=minutes, seconds=seconds)
        return self._now
