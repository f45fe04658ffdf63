"""
Recurring Processor

This module ties the recurrence engine to storage and audit logging.
It is what a trigger surface (an HTTP endpoint or a scheduled job) calls.

Flow for one step:
1. Load the series (NotFoundError if missing)
2. Ask the engine whether it is due (SeriesNotDueError if not)
3. Materialize: instance + advanced series, as new values
4. Persist atomically; storage rejects an already-recorded period
5. Audit the outcome

DESIGN DECISION: Catch-up is explicit. `process` consumes exactly one
period; `catch_up` loops only when the caller asks for it, and stops at
the first period that was already recorded.
"""

from datetime import date
from typing import Optional, Union
from uuid import UUID

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from recurring_ledger.audit import AuditLogger, create_correlation_id
from recurring_ledger.config import get_settings
from recurring_ledger.config.settings import StorageSettings
from recurring_ledger.engine import Clock, RecurrenceEngine, SeriesNotDueError, SystemClock
from recurring_ledger.models.series import (
    MaterializationResult,
    ProcessOutcome,
    ProcessStatus,
    RecurringSeries,
)
from recurring_ledger.services.series_service import SeriesService
from recurring_ledger.services.storage import (
    DuplicatePeriodError,
    InMemoryAuditStorage,
    InMemoryRecurringStorage,
    RecurringStorageInterface,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteRecurringStorage,
    SeriesConflictError,
    StorageConnectionError,
)


class RecurringProcessor:
    """
    Orchestrates materialization of due recurring series.

    The engine decides; this class persists, retries transient storage
    failures and audits. Not-found, not-due, duplicate-period and
    conflict errors are surfaced to the caller as typed exceptions.
    """

    def __init__(
        self,
        storage: RecurringStorageInterface,
        engine: Optional[RecurrenceEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        storage_settings: Optional[StorageSettings] = None,
        max_catch_up_periods: Optional[int] = None,
    ):
        settings = get_settings()
        self._storage = storage
        self._engine = engine or RecurrenceEngine(
            description_prefix=settings.recurrence.description_prefix,
        )
        self._audit_logger = audit_logger
        self._storage_settings = storage_settings or settings.storage
        self._max_catch_up_periods = (
            max_catch_up_periods or settings.recurrence.max_catch_up_periods
        )

    @property
    def engine(self) -> RecurrenceEngine:
        return self._engine

    async def _persist(self, result: MaterializationResult, correlation_id: UUID) -> None:
        """Write one step atomically, retrying only transient failures."""
        cfg = self._storage_settings
        retrying = AsyncRetrying(
            stop=stop_after_attempt(cfg.retry_attempts),
            wait=wait_exponential(
                multiplier=cfg.retry_wait_min_seconds,
                min=cfg.retry_wait_min_seconds,
                max=cfg.retry_wait_max_seconds,
            ),
            retry=retry_if_exception_type(StorageConnectionError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                try:
                    await self._storage.record_materialization(result)
                except StorageConnectionError as e:
                    if self._audit_logger:
                        await self._audit_logger.log_storage_retry(
                            operation="record_materialization",
                            attempt=attempt.retry_state.attempt_number,
                            error_message=str(e),
                            correlation_id=correlation_id,
                        )
                    raise

    async def _step(
        self,
        series: RecurringSeries,
        as_of: date,
        correlation_id: UUID,
    ) -> tuple[ProcessOutcome, RecurringSeries]:
        """
        Materialize and persist one period of a loaded series.

        Returns the outcome and the series state after the step.
        """
        try:
            result = self._engine.materialize(series, as_of)
        except SeriesNotDueError:
            if self._audit_logger:
                await self._audit_logger.log_series_not_due(
                    series_id=series.id,
                    next_due_date=series.next_due_date,
                    as_of=as_of,
                    correlation_id=correlation_id,
                )
            raise

        try:
            await self._persist(result, correlation_id)
        except DuplicatePeriodError as e:
            if self._audit_logger:
                await self._audit_logger.log_duplicate_period(
                    series_id=series.id,
                    due_date=e.period.due_date,
                    existing_instance_id=e.existing_instance_id,
                    correlation_id=correlation_id,
                )
            raise
        except SeriesConflictError as e:
            if self._audit_logger:
                await self._audit_logger.log_series_changed_midstep(
                    series_id=series.id,
                    due_date=e.period.due_date,
                    correlation_id=correlation_id,
                )
            raise

        updated = result.updated_series
        if self._audit_logger:
            await self._audit_logger.log_instance_materialized(
                instance_id=result.instance.id,
                series_id=series.id,
                kind=result.instance.kind.value,
                amount=str(result.instance.amount),
                due_date=result.period.due_date,
                occurred_on=result.instance.occurred_on,
                next_due_date=updated.next_due_date,
                correlation_id=correlation_id,
            )
            if result.schedule_exhausted:
                await self._audit_logger.log_schedule_exhausted(
                    series_id=series.id,
                    end_date=series.end_date,
                    correlation_id=correlation_id,
                )

        outcome = ProcessOutcome(
            series_id=series.id,
            status=ProcessStatus.EXHAUSTED if result.schedule_exhausted else ProcessStatus.PROCESSED,
            instance=result.instance,
            period=result.period,
            next_due_date=updated.next_due_date,
            active=updated.active,
        )
        return outcome, updated

    @staticmethod
    def _skipped_outcome(
        series: RecurringSeries,
        error: Union[DuplicatePeriodError, SeriesConflictError],
    ) -> ProcessOutcome:
        """Outcome for a step that wrote nothing; series fields are as loaded."""
        if isinstance(error, DuplicatePeriodError):
            return ProcessOutcome(
                series_id=series.id,
                status=ProcessStatus.DUPLICATE,
                period=error.period,
                next_due_date=series.next_due_date,
                active=series.active,
                existing_instance_id=error.existing_instance_id,
            )
        return ProcessOutcome(
            series_id=series.id,
            status=ProcessStatus.CONFLICT,
            period=error.period,
            next_due_date=series.next_due_date,
            active=series.active,
        )

    async def process(
        self,
        series_id: UUID,
        process_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ProcessOutcome:
        """
        Process one period of a series.

        Args:
            series_id: Series to process
            process_date: Date the instance is recorded on (default: today)

        Returns:
            The created instance and the series' new schedule state

        Raises:
            NotFoundError: Series doesn't exist
            SeriesNotDueError: process_date is before the next due date
            InvalidStateError: Series is paused or ended
            DuplicatePeriodError: This period was already recorded
            SeriesConflictError: Series was paused or rescheduled mid-step
        """
        correlation_id = correlation_id or create_correlation_id()
        series = await self._storage.load(series_id)
        as_of = process_date or self._engine.today()

        outcome, _ = await self._step(series, as_of, correlation_id)
        return outcome

    async def catch_up(
        self,
        series_id: UUID,
        as_of: Optional[date] = None,
        max_periods: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[ProcessOutcome]:
        """
        Materialize every elapsed period of a series, one step at a time.

        Each instance is dated as_of. Stops when the series is no longer
        due, after max_periods steps, at the first duplicate period (reported
        as a DUPLICATE outcome) or when the series changed underneath the
        step (a CONFLICT outcome).
        """
        correlation_id = correlation_id or create_correlation_id()
        series = await self._storage.load(series_id)
        as_of = as_of or self._engine.today()
        limit = max_periods or self._max_catch_up_periods

        outcomes: list[ProcessOutcome] = []
        while len(outcomes) < limit and self._engine.is_due(series, as_of):
            try:
                outcome, series = await self._step(series, as_of, correlation_id)
            except (DuplicatePeriodError, SeriesConflictError) as e:
                outcomes.append(self._skipped_outcome(series, e))
                break
            outcomes.append(outcome)
        return outcomes

    async def process_all_due(
        self,
        as_of: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[ProcessOutcome]:
        """
        Process one period of every active series that is due.

        Duplicate periods and series changed mid-step are reported as
        outcomes, not raised.
        Storage failures that survive retries are logged and re-raised.
        """
        correlation_id = correlation_id or create_correlation_id()
        as_of = as_of or self._engine.today()

        outcomes: list[ProcessOutcome] = []
        for series in await self._storage.list_series(active=True):
            if not self._engine.is_due(series, as_of):
                continue
            try:
                outcome, _ = await self._step(series, as_of, correlation_id)
            except (DuplicatePeriodError, SeriesConflictError) as e:
                outcomes.append(self._skipped_outcome(series, e))
                continue
            except Exception as e:
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type=type(e).__name__,
                        error_message=str(e),
                        details={"series_id": str(series.id)},
                        correlation_id=correlation_id,
                    )
                raise
            outcomes.append(outcome)
        return outcomes


def create_app_components(
    clock: Optional[Clock] = None,
    storage_backend: Optional[str] = None,
) -> tuple[SeriesService, RecurringProcessor, RecurringStorageInterface]:
    """
    Factory function to create all application components.

    Args:
        clock: Clock to evaluate due dates against (default: system clock)
        storage_backend: "memory" or "sqlite"; defaults to STORAGE_BACKEND

    Returns:
        (series_service, processor, storage)
    """
    settings = get_settings()
    backend = storage_backend or settings.storage.backend

    if backend == "sqlite":
        database = SQLiteDatabase(settings.storage.sqlite_path)
        storage = SQLiteRecurringStorage(database)
        audit_storage = SQLiteAuditStorage(database)
    elif backend == "memory":
        storage = InMemoryRecurringStorage()
        audit_storage = InMemoryAuditStorage()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    audit_logger = AuditLogger(audit_storage)
    engine = RecurrenceEngine(
        clock=clock or SystemClock(),
        description_prefix=settings.recurrence.description_prefix,
    )

    series_service = SeriesService(
        store=storage,
        engine=engine,
        audit_logger=audit_logger,
        materialize_start_date=settings.recurrence.materialize_start_date,
    )
    processor = RecurringProcessor(
        storage=storage,
        engine=engine,
        audit_logger=audit_logger,
    )
    return series_service, processor, storage
