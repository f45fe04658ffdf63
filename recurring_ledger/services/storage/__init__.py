"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend and a SQLite backend, selected by configuration.
"""

from recurring_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    DuplicateGuardInterface,
    DuplicatePeriodError,
    LedgerSinkInterface,
    NotFoundError,
    RecurringStorageInterface,
    SeriesConflictError,
    SeriesStoreInterface,
    StorageConnectionError,
    StorageError,
)
from recurring_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecurringStorage,
)
from recurring_ledger.services.storage.sqlite import (
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteRecurringStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DuplicateGuardInterface",
    "LedgerSinkInterface",
    "RecurringStorageInterface",
    "SeriesStoreInterface",
    # Exceptions
    "DuplicateError",
    "DuplicatePeriodError",
    "NotFoundError",
    "SeriesConflictError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecurringStorage",
    # SQLite implementation
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteRecurringStorage",
]
