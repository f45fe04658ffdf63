"""
In-Memory Storage Implementation

Keeps series, ledgers, claimed periods and audit events in process memory.
Used by the test-suite and for single-process runs where durability is
not needed.

Critical sections never await, so a single threading.Lock makes
record_materialization atomic for both coroutines and threads.
"""

import threading
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
from recurring_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicatePeriodError,
    NotFoundError,
    RecurringStorageInterface,
    SeriesConflictError,
)


class InMemoryRecurringStorage(RecurringStorageInterface):
    """Dict-backed implementation of the recurring persistence boundary."""

    def __init__(self):
        self._lock = threading.Lock()
        self._series: dict[UUID, RecurringSeries] = {}
        self._ledgers: dict[TransactionKind, list[TransactionInstance]] = {
            TransactionKind.EXPENSE: [],
            TransactionKind.INCOME: [],
        }
        self._periods: dict[PeriodKey, UUID] = {}

    async def load(self, series_id: UUID) -> RecurringSeries:
        with self._lock:
            try:
                return self._series[series_id]
            except KeyError:
                raise NotFoundError(f"Recurring series not found: {series_id}")

    async def save(self, series: RecurringSeries) -> None:
        with self._lock:
            self._series[series.id] = series

    async def delete(self, series_id: UUID) -> None:
        with self._lock:
            if self._series.pop(series_id, None) is None:
                raise NotFoundError(f"Recurring series not found: {series_id}")

    async def list_series(
        self,
        kind: Optional[TransactionKind] = None,
        active: Optional[bool] = None,
    ) -> list[RecurringSeries]:
        with self._lock:
            series = list(self._series.values())

        if kind is not None:
            series = [s for s in series if s.kind == kind]
        if active is not None:
            series = [s for s in series if s.active == active]

        series.sort(key=lambda s: (s.next_due_date, s.name))
        return series

    async def append(self, instance: TransactionInstance) -> None:
        with self._lock:
            self._ledgers[instance.kind].append(instance)

    async def list_instances(
        self,
        kind: Optional[TransactionKind] = None,
    ) -> list[TransactionInstance]:
        with self._lock:
            if kind is not None:
                return list(self._ledgers[kind])
            return self._ledgers[TransactionKind.EXPENSE] + self._ledgers[TransactionKind.INCOME]

    async def find_period(self, period: PeriodKey) -> Optional[UUID]:
        with self._lock:
            return self._periods.get(period)

    async def record_materialization(self, result: MaterializationResult) -> None:
        advanced = result.updated_series
        with self._lock:
            existing = self._periods.get(result.period)
            if existing is not None:
                raise DuplicatePeriodError(result.period, existing)

            stored = self._series.get(advanced.id)
            if stored is None:
                raise NotFoundError(f"Recurring series not found: {advanced.id}")
            if not stored.active or stored.next_due_date != result.period.due_date:
                raise SeriesConflictError(result.period)

            self._periods[result.period] = result.instance.id
            self._ledgers[result.instance.kind].append(result.instance)
            self._series[advanced.id] = stored.model_copy(update={
                "next_due_date": advanced.next_due_date,
                "active": advanced.active,
            })


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        with self._lock:
            return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        with self._lock:
            return [
                e for e in self._events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        with self._lock:
            return list(reversed(self._events))[:limit]
