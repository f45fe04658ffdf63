"""
Configuration Management for Recurring Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see every tunable and ensures configuration is
validated at startup.
"""

from functools import cached_property, lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RecurrenceSettings(BaseSettings):
    """Scheduling policy for recurring series."""

    model_config = SettingsConfigDict(
        env_prefix="RECURRING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    materialize_start_date: bool = Field(
        default=False,
        description="Make the first occurrence fall on the start date itself "
                    "instead of one period after it"
    )
    max_catch_up_periods: int = Field(
        default=366,
        ge=1,
        le=10000,
        description="Upper bound on periods materialized by one catch-up call"
    )
    description_prefix: str = Field(
        default="Recurring: ",
        description="Prefix for instance descriptions when a series has none"
    )


class StorageSettings(BaseSettings):
    """Storage backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: Literal["memory", "sqlite"] = Field(
        default="memory",
        description="Which storage backend to use"
    )
    sqlite_path: str = Field(
        default="recurring_ledger.db",
        description="Path to the SQLite database file"
    )

    # Retry policy for transient storage failures
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a storage write before giving up"
    )
    retry_wait_min_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum wait between retries"
    )
    retry_wait_max_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Maximum wait between retries"
    )

    @model_validator(mode='after')
    def validate_wait_bounds(self) -> 'StorageSettings':
        if self.retry_wait_max_seconds < self.retry_wait_min_seconds:
            raise ValueError("retry_wait_max_seconds cannot be below retry_wait_min_seconds")
        return self


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access. Each group is read from
    the environment once per Settings instance.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @cached_property
    def recurrence(self) -> RecurrenceSettings:
        return RecurrenceSettings()

    @cached_property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @cached_property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for failures. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("recurrence", "storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
