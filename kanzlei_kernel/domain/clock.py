"""
Injectable time source.

Signatures, Kassenbelege, export runs and journal entries are stamped from
a ``Clock``.  The daily closure groups signatures by ``signed_on``, which
is ``Clock.today()`` at signing time, so the calendar day of a fiscal
event is decided here and nowhere else.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Source of aware UTC timestamps."""

    @abstractmethod
    def now_utc(self) -> datetime:
        ...

    def today(self) -> date:
        """UTC calendar day of ``now_utc()``."""
        return self.now_utc().date()


class SystemClock(Clock):
    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Time stands still until ``advance()`` moves it; crossing midnight UTC
    moves ``today()`` and with it the closure day of later signatures.
    """

    def __init__(self, start: datetime | None = None):
        start = start or datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start")
        self._current = start.astimezone(timezone.utc)

    def now_utc(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
