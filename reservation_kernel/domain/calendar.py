"""
Business-day calendar (``reservation_kernel.domain.calendar``).

A business day is any calendar day that is not a Sunday and whose
month-day is not in the configured holiday set.  Saturdays count.

Both directions walk one day at a time away from the input date and stop
once ``n`` qualifying days have been traversed; the input date itself is
never counted.  ``n == 0`` returns the input unchanged.  Pure and total:
no clock, no I/O, and an empty holiday set is valid.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

MonthDay = tuple[int, int]

_SUNDAY = 6
_ONE_DAY = timedelta(days=1)

# Fixed-date national holidays
DEFAULT_HOLIDAYS: frozenset[MonthDay] = frozenset({
    (1, 1),
    (5, 1),
    (7, 20),
    (8, 7),
    (12, 8),
    (12, 25),
})


def _validate_month_day(month_day: MonthDay) -> MonthDay:
    month, day = month_day
    # Leap year so 02-29 is accepted
    date(2024, month, day)
    return (month, day)


@dataclass(frozen=True)
class BusinessCalendar:
    """Calendar arithmetic over Sundays plus a fixed month-day holiday set."""

    holidays: frozenset[MonthDay] = DEFAULT_HOLIDAYS

    @classmethod
    def from_month_days(cls, month_days: Iterable[MonthDay]) -> BusinessCalendar:
        return cls(frozenset(_validate_month_day(tuple(md)) for md in month_days))

    def is_business_day(self, day: date) -> bool:
        if day.weekday() == _SUNDAY:
            return False
        return (day.month, day.day) not in self.holidays

    def add_business_days(self, start: date, n: int) -> date:
        return self._walk(start, n, _ONE_DAY)

    def subtract_business_days(self, start: date, n: int) -> date:
        return self._walk(start, n, -_ONE_DAY)

    def count_business_days(self, start: date, end: date) -> int:
        """Qualifying days in the half-open interval (start, end].

        Negative when ``end`` precedes ``start``, so that
        ``count_business_days(d, add_business_days(d, n)) == n``.
        """
        if end == start:
            return 0
        step = _ONE_DAY if end > start else -_ONE_DAY
        sign = 1 if end > start else -1
        count = 0
        current = start
        while current != end:
            current += step
            if self.is_business_day(current):
                count += 1
        return sign * count

    def _walk(self, start: date, n: int, step: timedelta) -> date:
        if n < 0:
            raise ValueError(f"business day count must be >= 0, got {n}")
        current = start
        counted = 0
        while counted < n:
            current += step
            if self.is_business_day(current):
                counted += 1
        return current


_DEFAULT_CALENDAR = BusinessCalendar()


def add_business_days(start: date, n: int, calendar: BusinessCalendar | None = None) -> date:
    return (calendar or _DEFAULT_CALENDAR).add_business_days(start, n)


def subtract_business_days(start: date, n: int, calendar: BusinessCalendar | None = None) -> date:
    return (calendar or _DEFAULT_CALENDAR).subtract_business_days(start, n)
