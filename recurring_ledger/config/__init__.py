"""Configuration package."""

from recurring_ledger.config.settings import (
    AppSettings,
    RecurrenceSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "RecurrenceSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
