"""
Clock collaborators.

All "today" lookups go through a Clock so tests can pin the date.
"""

from abc import ABC, abstractmethod
from datetime import date, timedelta


class Clock(ABC):
    """Supplies the evaluation date for due checks and processing."""

    @abstractmethod
    def now(self) -> date:
        pass


class SystemClock(Clock):
    """Local calendar date of the host."""

    def now(self) -> date:
        return date.today()


class FixedClock(Clock):
    """A clock pinned to a given date. Can be moved forward explicitly."""

    def __init__(self, today: date):
        self._today = today

    def now(self) -> date:
        return self._today

    def set(self, today: date) -> None:
        self._today = today

    def advance(self, days: int = 1) -> date:
        self._today = self._today + timedelta(days=days)
        return self._today
