"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for storage operations.
This allows us to:
1. Use in-memory storage for tests and single-process use
2. Use SQLite (or any database) without touching business logic
3. Keep the recurrence engine free of any storage knowledge

The recurring core needs three collaborators:
- SeriesStore: load/save/list/delete recurring series
- LedgerSink: append materialized instances to the expense or income ledger
- DuplicateGuard: at-most-once materialization per (series, due date)

RecurringStorageInterface bundles them because the instance write and the
series advance must happen in one atomic unit.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from recurring_ledger.models.audit import AuditEvent
from recurring_ledger.models.series import (
    MaterializationResult,
    PeriodKey,
    RecurringSeries,
    TransactionInstance,
    TransactionKind,
)


class SeriesStoreInterface(ABC):
    """Persistence of recurring series."""

    @abstractmethod
    async def load(self, series_id: UUID) -> RecurringSeries:
        """
        Load a series by its ID.

        Raises:
            NotFoundError: If the series doesn't exist
        """
        pass

    @abstractmethod
    async def save(self, series: RecurringSeries) -> None:
        """Insert or replace a series."""
        pass

    @abstractmethod
    async def delete(self, series_id: UUID) -> None:
        """
        Delete a series.

        Raises:
            NotFoundError: If the series doesn't exist
        """
        pass

    @abstractmethod
    async def list_series(
        self,
        kind: Optional[TransactionKind] = None,
        active: Optional[bool] = None,
    ) -> list[RecurringSeries]:
        """
        List series with optional filters.

        Returns:
            Matching series ordered by next_due_date (soonest first)
        """
        pass


class LedgerSinkInterface(ABC):
    """Expense and income ledgers that receive materialized instances."""

    @abstractmethod
    async def append(self, instance: TransactionInstance) -> None:
        """Append an instance to the ledger matching its kind."""
        pass

    @abstractmethod
    async def list_instances(
        self,
        kind: Optional[TransactionKind] = None,
    ) -> list[TransactionInstance]:
        """List ledger entries, oldest first."""
        pass


class DuplicateGuardInterface(ABC):
    """At-most-once bookkeeping keyed by PeriodKey."""

    @abstractmethod
    async def find_period(self, period: PeriodKey) -> Optional[UUID]:
        """
        Return the instance ID already recorded for this period, if any.
        """
        pass

    async def period_exists(self, period: PeriodKey) -> bool:
        return await self.find_period(period) is not None


class RecurringStorageInterface(
    SeriesStoreInterface,
    LedgerSinkInterface,
    DuplicateGuardInterface,
):
    """
    Full persistence boundary for the recurring core.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def record_materialization(self, result: MaterializationResult) -> None:
        """
        Atomically record one materialize step.

        In one unit: claim result.period, append result.instance to its
        ledger, and advance the stored series. Either all three happen
        or none do.

        The advance is a check-and-set: it applies only while the stored
        series is still active and due on result.period.due_date, and it
        writes next_due_date and active only. Other fields keep whatever
        value is stored.

        Raises:
            DuplicatePeriodError: If the period was already recorded.
                The stored series is left unchanged.
            NotFoundError: If the series was deleted meanwhile
            SeriesConflictError: If the series was paused or rescheduled
                meanwhile
            StorageError: If the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class DuplicatePeriodError(DuplicateError):
    """An instance already exists for this series' due period."""

    def __init__(self, period: PeriodKey, existing_instance_id: Optional[UUID] = None):
        self.period = period
        self.existing_instance_id = existing_instance_id
        super().__init__(
            f"Series {period.series_id} already has an instance for "
            f"{period.due_date.isoformat()}"
        )


class SeriesConflictError(StorageError):
    """The stored series changed since the step was computed."""

    def __init__(self, period: PeriodKey):
        self.period = period
        super().__init__(
            f"Series {period.series_id} is no longer active and due on "
            f"{period.due_date.isoformat()}"
        )


class StorageConnectionError(StorageError):
    """Could not reach the storage backend. Safe to retry."""
    pass
