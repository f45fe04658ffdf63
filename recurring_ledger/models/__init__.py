"""
Data Models Package

This package contains all Pydantic models used in Recurring Ledger.
All data flowing through the system must conform to these schemas.
"""

from recurring_ledger.models.series import (
    Frequency,
    MaterializationResult,
    PeriodKey,
    ProcessOutcome,
    ProcessStatus,
    RecurringSeries,
    SeriesChanges,
    SeriesDraft,
    SeriesState,
    TransactionInstance,
    TransactionKind,
)
from recurring_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Series models
    "Frequency",
    "MaterializationResult",
    "PeriodKey",
    "ProcessOutcome",
    "ProcessStatus",
    "RecurringSeries",
    "SeriesChanges",
    "SeriesDraft",
    "SeriesState",
    "TransactionInstance",
    "TransactionKind",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
