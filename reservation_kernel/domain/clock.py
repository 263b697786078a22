"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that domain and service code never call
    ``datetime.now()`` or ``date.today()`` directly.  Deadlines are business
    dates in the dealership's local timezone, so ``today(tz)`` and
    ``local_now(tz)`` are the only places where an instant becomes local.

Storage convention:
    Business timestamps (reservation, change-log and notification columns)
    are stored naive, as local wall time in the configured timezone.  Write
    them with ``local_now(tz)``, never with ``now()``.

Architecture position:
    Kernel > Domain -- zero I/O except SystemClock, which is the one
    sanctioned boundary for time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/Bogota"


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Services receive a Clock via constructor injection.

    Guarantees:
        - ``now()`` returns a ``datetime``; aware in production.
        - ``today(tz)`` returns the calendar date at ``now()`` in ``tz``.
        - ``local_now(tz)`` returns naive wall time in ``tz``.
        - Naive instants (test clocks) are taken as already local.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    def now_utc(self) -> datetime:
        current = self.now()
        if current.tzinfo is None:
            return current
        return current.astimezone(timezone.utc)

    def local_now(self, tz: str = DEFAULT_TIMEZONE) -> datetime:
        current = self.now()
        if current.tzinfo is None:
            return current
        return current.astimezone(ZoneInfo(tz)).replace(tzinfo=None)

    def today(self, tz: str | None = None) -> date:
        current = self.now()
        if tz is None or current.tzinfo is None:
            return current.date()
        return current.astimezone(ZoneInfo(tz)).date()


class SystemClock(Clock):
    """Production clock returning aware UTC system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()``, ``advance_days()`` or ``set_time()`` is called.
        - ``tick()`` advances by exactly 1 second and returns the new time.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 3, 3, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        self._advance_seconds += seconds

    def advance_days(self, days: int) -> None:
        self.advance(days * 86400)

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
