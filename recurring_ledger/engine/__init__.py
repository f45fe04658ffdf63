"""Recurrence engine package."""

from recurring_ledger.engine.clock import Clock, FixedClock, SystemClock
from recurring_ledger.engine.errors import (
    EngineError,
    InvalidStateError,
    SeriesNotDueError,
)
from recurring_ledger.engine.periods import (
    add_months,
    add_years,
    compute_next_due_date,
)
from recurring_ledger.engine.recurrence import RecurrenceEngine

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "EngineError",
    "InvalidStateError",
    "SeriesNotDueError",
    "add_months",
    "add_years",
    "compute_next_due_date",
    "RecurrenceEngine",
]
