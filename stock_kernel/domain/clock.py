"""
Time source for ledger timestamps.

Every created_at / updated_at written by LedgerService and every "today"
used by the daily report comes from a Clock handed to the facade, never
from ``datetime.now()`` inside the kernel.  Tests pin time with
DeterministicClock so period and date-range assertions are exact.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta

DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


class Clock(ABC):
    """Source of timezone-aware UTC instants."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        """Current UTC calendar day."""
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    ``now()`` keeps returning the same instant until the test moves it
    with ``advance()``, ``tick()`` or ``set_time()``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Move forward one second and return the new instant."""
        self.advance(1)
        return self._current
