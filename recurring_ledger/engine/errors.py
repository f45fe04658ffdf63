"""Engine exceptions. These signal caller bugs and are never retried."""

from datetime import date
from uuid import UUID


class EngineError(Exception):
    """Base exception for recurrence engine errors."""
    pass


class InvalidStateError(EngineError):
    """Operation is not allowed in the series' current lifecycle state."""
    pass


class SeriesNotDueError(InvalidStateError):
    """Materialization requested before the series' next due date."""

    def __init__(self, series_id: UUID, next_due_date: date):
        self.series_id = series_id
        self.next_due_date = next_due_date
        super().__init__(
            f"Series {series_id} is not due until {next_due_date.isoformat()}"
        )
