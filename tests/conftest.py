"""Shared fixtures for the Recurring Ledger test-suite."""

from datetime import date
from decimal import Decimal

import pytest

from recurring_ledger.audit import AuditLogger
from recurring_ledger.config import StorageSettings, get_settings
from recurring_ledger.engine import FixedClock, RecurrenceEngine
from recurring_ledger.models.series import (
    Frequency,
    RecurringSeries,
    TransactionKind,
)
from recurring_ledger.processor import RecurringProcessor
from recurring_ledger.services.series_service import SeriesService
from recurring_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryRecurringStorage,
)


def make_series(**overrides) -> RecurringSeries:
    """Monthly 1200 rent expense, next due 2024-02-01, unless overridden."""
    fields = dict(
        name="Rent",
        kind=TransactionKind.EXPENSE,
        amount=Decimal("1200"),
        frequency=Frequency.MONTHLY,
        category_ref="housing",
        start_date=date(2024, 1, 1),
        next_due_date=date(2024, 2, 1),
        end_date=None,
        active=True,
    )
    fields.update(overrides)
    return RecurringSeries(**fields)


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return FixedClock(date(2024, 2, 3))


@pytest.fixture
def engine(clock):
    return RecurrenceEngine(clock=clock)


@pytest.fixture
def storage():
    return InMemoryRecurringStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def fast_retry_settings():
    return StorageSettings(
        retry_attempts=3,
        retry_wait_min_seconds=0,
        retry_wait_max_seconds=0,
    )


@pytest.fixture
def service(storage, engine, audit_logger):
    return SeriesService(
        store=storage,
        engine=engine,
        audit_logger=audit_logger,
        materialize_start_date=False,
    )


@pytest.fixture
def processor(storage, engine, audit_logger, fast_retry_settings):
    return RecurringProcessor(
        storage=storage,
        engine=engine,
        audit_logger=audit_logger,
        storage_settings=fast_retry_settings,
        max_catch_up_periods=50,
    )


@pytest.fixture
def series_factory():
    return make_series
