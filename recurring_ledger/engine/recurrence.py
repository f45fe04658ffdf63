"""
Recurrence Engine

Decides whether a recurring series is due and performs one
materialize-and-advance step.

DESIGN DECISION: The engine is pure. It never reads storage, never logs,
never retries and never mutates its inputs. Every operation returns new
values; persistence and at-most-once guarantees belong to the caller.

State machine (per series):
    ACTIVE_NOT_DUE -> ACTIVE_DUE      as_of reaches next_due_date
    ACTIVE_DUE     -> ACTIVE_NOT_DUE  materialize, next due within end date
    ACTIVE_DUE     -> ENDED           materialize, next due past end date
    ACTIVE_*       -> PAUSED          user pause (SeriesService)
    PAUSED         -> ACTIVE_*        user resume (SeriesService)
    ENDED is terminal.
"""

from datetime import date
from typing import Optional

from recurring_ledger.engine.clock import Clock, SystemClock
from recurring_ledger.engine.errors import InvalidStateError, SeriesNotDueError
from recurring_ledger.engine.periods import compute_next_due_date
from recurring_ledger.models.series import (
    Frequency,
    MaterializationResult,
    PeriodKey,
    RecurringSeries,
    SeriesState,
    TransactionInstance,
    TransactionKind,
)


DEFAULT_DESCRIPTION_PREFIX = "Recurring: "


class RecurrenceEngine:
    """
    Due-date decisions and single-step materialization for recurring series.

    `as_of` arguments default to the injected clock; pass them explicitly
    for fully deterministic calls.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        description_prefix: str = DEFAULT_DESCRIPTION_PREFIX,
    ):
        self._clock = clock or SystemClock()
        self._description_prefix = description_prefix

    @property
    def clock(self) -> Clock:
        return self._clock

    def today(self) -> date:
        return self._clock.now()

    # -------------------------------------------------------------------------
    # Schedule arithmetic
    # -------------------------------------------------------------------------

    @staticmethod
    def compute_next_due_date(from_date: date, frequency: Frequency) -> date:
        """Advance one period from the previous due date."""
        return compute_next_due_date(from_date, frequency)

    @staticmethod
    def first_due_date(
        start_date: date,
        frequency: Frequency,
        include_start: bool = False,
    ) -> date:
        """
        Initial next_due_date for a new or rescheduled series.

        By default the start date itself counts as already satisfied and
        the first materialized occurrence is one period later.
        """
        if include_start:
            return start_date
        return compute_next_due_date(start_date, frequency)

    # -------------------------------------------------------------------------
    # Decisions
    # -------------------------------------------------------------------------

    def is_due(self, series: RecurringSeries, as_of: Optional[date] = None) -> bool:
        """
        True iff the series is active and as_of has reached next_due_date.

        A paused or ended series is never due. A pending occurrence past
        the end date is never due either.
        """
        if not series.active:
            return False
        if series.is_past_end:
            return False
        as_of = as_of or self.today()
        return as_of >= series.next_due_date

    def state_of(self, series: RecurringSeries, as_of: Optional[date] = None) -> SeriesState:
        """Classify the series into its lifecycle state at as_of."""
        if series.is_past_end:
            return SeriesState.ENDED
        if not series.active:
            return SeriesState.PAUSED
        if self.is_due(series, as_of):
            return SeriesState.ACTIVE_DUE
        return SeriesState.ACTIVE_NOT_DUE

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def materialize(
        self,
        series: RecurringSeries,
        process_as_of: Optional[date] = None,
    ) -> MaterializationResult:
        """
        Produce the instance for the pending period and the advanced series.

        Exactly one period is consumed per call. Calling this on a series
        that is not due is a caller bug and raises InvalidStateError.
        """
        process_as_of = process_as_of or self.today()

        if not self.is_due(series, process_as_of):
            if not series.active or series.is_past_end:
                raise InvalidStateError(
                    f"Series {series.id} is {self.state_of(series, process_as_of).value}"
                )
            raise SeriesNotDueError(series.id, series.next_due_date)

        period = PeriodKey(series_id=series.id, due_date=series.next_due_date)
        instance = self._build_instance(series, period, process_as_of)

        new_next_due = compute_next_due_date(series.next_due_date, series.frequency)
        exhausted = series.end_date is not None and new_next_due > series.end_date

        updated = series.model_copy(
            update={
                "next_due_date": new_next_due,
                "active": series.active and not exhausted,
            }
        )

        return MaterializationResult(
            instance=instance,
            updated_series=updated,
            period=period,
            schedule_exhausted=exhausted,
        )

    def _build_instance(
        self,
        series: RecurringSeries,
        period: PeriodKey,
        occurred_on: date,
    ) -> TransactionInstance:
        description = series.description or f"{self._description_prefix}{series.name}"

        if series.kind == TransactionKind.EXPENSE:
            return TransactionInstance(
                id=period.instance_id,
                kind=series.kind,
                amount=series.amount,
                description=description,
                occurred_on=occurred_on,
                category_ref=series.category_ref,
            )

        return TransactionInstance(
            id=period.instance_id,
            kind=series.kind,
            amount=series.amount,
            description=description,
            occurred_on=occurred_on,
            source_label=series.source_label or series.name,
        )
