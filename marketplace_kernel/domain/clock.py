"""
Clock -- injectable time source for the engines.

Engines never read the wall clock themselves.  Signature timestamps,
earnings periods and settlement holds are all taken from the Clock passed
to the service, so tests can pin a payment to a month and step past a hold
without sleeping.

``SystemClock`` is the only implementation that touches real time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Source of the current instant.

    Guarantees:
        - ``now_utc()`` is timezone-aware and in UTC.
    """

    @abstractmethod
    def now_utc(self) -> datetime:
        ...

    def now(self) -> datetime:
        return self.now_utc()

    def today(self) -> date:
        """The current UTC calendar date (contract effective dates)."""
        return self.now_utc().date()

    def hold_cutoff(self, hold_days: int) -> datetime:
        """Payments that succeeded at or before this instant are past their hold."""
        return self.now_utc() - timedelta(days=hold_days)


class SystemClock(Clock):
    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Repeated reads return the same instant until ``advance()``,
    ``advance_days()`` or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now_utc(self) -> datetime:
        return self._current.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)
