"""
Recurring Series Management

Create, edit, pause, resume and delete recurring series.

Schedule rules:
- A new series gets next_due_date = start_date advanced by one period
  (or start_date itself when RECURRING_MATERIALIZE_START_DATE is set).
- Changing frequency or start date recomputes next_due_date from the
  start date, then skips any period this series has already recorded.
- A series whose pending occurrence already lies past its end date is
  stored inactive: it is ENDED and cannot be edited or resumed.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from recurring_ledger.audit import AuditLogger
from recurring_ledger.config import get_settings
from recurring_ledger.engine import InvalidStateError, RecurrenceEngine
from recurring_ledger.models.series import (
    Frequency,
    PeriodKey,
    RecurringSeries,
    SeriesChanges,
    SeriesDraft,
    SeriesState,
    TransactionKind,
)
from recurring_ledger.services.storage import DuplicateError, RecurringStorageInterface


class SeriesService:
    """User-facing operations on recurring series."""

    def __init__(
        self,
        store: RecurringStorageInterface,
        engine: Optional[RecurrenceEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        materialize_start_date: Optional[bool] = None,
    ):
        self._store = store
        self._engine = engine or RecurrenceEngine()
        self._audit_logger = audit_logger
        if materialize_start_date is None:
            materialize_start_date = get_settings().recurrence.materialize_start_date
        self._include_start = materialize_start_date

    async def _ensure_unique_name(
        self,
        name: str,
        kind: TransactionKind,
        exclude_id: Optional[UUID] = None,
    ) -> None:
        for existing in await self._store.list_series(kind=kind):
            if existing.name == name and existing.id != exclude_id:
                raise DuplicateError(
                    f"A recurring {kind.value} named '{name}' already exists"
                )

    async def _first_unrecorded_due_date(
        self,
        series_id: UUID,
        start_date: date,
        frequency: Frequency,
    ) -> date:
        """First occurrence from start_date that has no ledger entry yet."""
        due = self._engine.first_due_date(
            start_date, frequency, include_start=self._include_start
        )
        while await self._store.period_exists(PeriodKey(series_id=series_id, due_date=due)):
            due = self._engine.compute_next_due_date(due, frequency)
        return due

    def _close_if_past_end(self, series: RecurringSeries) -> RecurringSeries:
        if series.active and series.is_past_end:
            return series.model_copy(update={"active": False})
        return series

    async def create(
        self,
        draft: SeriesDraft,
        correlation_id: Optional[UUID] = None,
    ) -> RecurringSeries:
        """
        Create a series from user input.

        Raises:
            DuplicateError: If a series of the same kind has this name
        """
        await self._ensure_unique_name(draft.name, draft.kind)

        next_due = self._engine.first_due_date(
            draft.start_date, draft.frequency, include_start=self._include_start
        )
        series = RecurringSeries(**draft.model_dump(), next_due_date=next_due)
        series = self._close_if_past_end(series)

        await self._store.save(series)

        if self._audit_logger:
            await self._audit_logger.log_series_created(
                series_id=series.id,
                name=series.name,
                frequency=series.frequency.value,
                next_due_date=series.next_due_date,
                correlation_id=correlation_id,
            )
        return series

    async def get(self, series_id: UUID) -> RecurringSeries:
        """Raises NotFoundError if the series doesn't exist."""
        return await self._store.load(series_id)

    async def list_series(
        self,
        kind: Optional[TransactionKind] = None,
        active: Optional[bool] = None,
    ) -> list[RecurringSeries]:
        """Series ordered by next due date."""
        return await self._store.list_series(kind=kind, active=active)

    async def update(
        self,
        series_id: UUID,
        changes: SeriesChanges,
        correlation_id: Optional[UUID] = None,
    ) -> RecurringSeries:
        """
        Apply a partial edit.

        Raises:
            NotFoundError: If the series doesn't exist
            InvalidStateError: If the series has ended
            DuplicateError: If the new name clashes with another series
            ValidationError: If the merged series is invalid
        """
        series = await self._store.load(series_id)
        if self._engine.state_of(series) == SeriesState.ENDED:
            raise InvalidStateError(f"Series {series_id} has ended and cannot be edited")

        data = changes.model_dump(exclude_unset=True)
        merged = {**series.model_dump(), **data}

        if "name" in data or "kind" in data:
            await self._ensure_unique_name(
                merged["name"], TransactionKind(merged["kind"]), exclude_id=series.id
            )

        if changes.reschedules:
            merged["next_due_date"] = await self._first_unrecorded_due_date(
                series.id, merged["start_date"], merged["frequency"]
            )

        updated = self._close_if_past_end(RecurringSeries.model_validate(merged))
        await self._store.save(updated)

        if self._audit_logger:
            await self._audit_logger.log_series_updated(
                series_id=updated.id,
                changed_fields=sorted(data),
                next_due_date=updated.next_due_date,
                correlation_id=correlation_id,
            )
        return updated

    async def pause(
        self,
        series_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> RecurringSeries:
        """Stop a series from becoming due. Pausing a paused series is a no-op."""
        series = await self._store.load(series_id)
        state = self._engine.state_of(series)
        if state == SeriesState.ENDED:
            raise InvalidStateError(f"Series {series_id} has ended")
        if state == SeriesState.PAUSED:
            return series

        paused = series.model_copy(update={"active": False})
        await self._store.save(paused)

        if self._audit_logger:
            await self._audit_logger.log_series_paused(
                series_id=series_id,
                correlation_id=correlation_id,
            )
        return paused

    async def resume(
        self,
        series_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[RecurringSeries, SeriesState]:
        """
        Reactivate a paused series.

        The schedule is not moved: a series paused across one or more due
        dates is immediately due again on resume.

        Returns:
            (series, state) with the due state evaluated right away
        """
        series = await self._store.load(series_id)
        state = self._engine.state_of(series)
        if state == SeriesState.ENDED:
            raise InvalidStateError(f"Series {series_id} has ended and cannot be resumed")

        if state == SeriesState.PAUSED:
            series = series.model_copy(update={"active": True})
            await self._store.save(series)
            state = self._engine.state_of(series)

            if self._audit_logger:
                await self._audit_logger.log_series_resumed(
                    series_id=series_id,
                    state=state.value,
                    correlation_id=correlation_id,
                )
        return series, state

    async def delete(
        self,
        series_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete a series. Ledger entries it produced are kept.

        Raises:
            NotFoundError: If the series doesn't exist
        """
        await self._store.delete(series_id)

        if self._audit_logger:
            await self._audit_logger.log_series_deleted(
                series_id=series_id,
                correlation_id=correlation_id,
            )
