"""Services package."""

from recurring_ledger.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    DuplicatePeriodError,
    InMemoryAuditStorage,
    InMemoryRecurringStorage,
    NotFoundError,
    RecurringStorageInterface,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteRecurringStorage,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "DuplicateError",
    "DuplicatePeriodError",
    "InMemoryAuditStorage",
    "InMemoryRecurringStorage",
    "NotFoundError",
    "RecurringStorageInterface",
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteRecurringStorage",
    "StorageConnectionError",
    "StorageError",
]
