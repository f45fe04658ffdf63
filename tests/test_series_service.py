"""
Tests for SeriesService: create, edit, pause, resume, delete.
"""

import asyncio

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from recurring_ledger.engine import InvalidStateError
from recurring_ledger.models.audit import AuditEventType
from recurring_ledger.models.series import (
    Frequency,
    ProcessStatus,
    SeriesChanges,
    SeriesDraft,
    SeriesState,
    TransactionKind,
)
from recurring_ledger.services.series_service import SeriesService
from recurring_ledger.services.storage import DuplicateError, NotFoundError


def rent_draft(**overrides) -> SeriesDraft:
    fields = dict(
        name="Rent",
        kind=TransactionKind.EXPENSE,
        amount=Decimal("1200"),
        frequency=Frequency.MONTHLY,
        category_ref="housing",
        start_date=date(2024, 1, 1),
    )
    fields.update(overrides)
    return SeriesDraft(**fields)


class TestCreate:
    """Tests for SeriesService.create."""

    def test_first_due_is_one_period_after_start(self, service):
        series = asyncio.run(service.create(rent_draft()))
        assert series.next_due_date == date(2024, 2, 1)
        assert series.active is True

    def test_first_due_per_frequency(self, service):
        expected = {
            Frequency.DAILY: date(2024, 1, 2),
            Frequency.WEEKLY: date(2024, 1, 8),
            Frequency.YEARLY: date(2025, 1, 1),
        }
        for frequency, first_due in expected.items():
            series = asyncio.run(service.create(
                rent_draft(name=f"Rent {frequency.value}", frequency=frequency)
            ))
            assert series.next_due_date == first_due

    def test_materialize_start_date_option(self, storage, engine):
        service = SeriesService(store=storage, engine=engine, materialize_start_date=True)
        series = asyncio.run(service.create(rent_draft()))
        assert series.next_due_date == date(2024, 1, 1)

    def test_persists_and_audits(self, service, storage, audit_storage):
        series = asyncio.run(service.create(rent_draft()))
        assert asyncio.run(storage.load(series.id)) == series

        events = asyncio.run(audit_storage.get_events_by_entity("series", series.id))
        assert [e.event_type for e in events] == [AuditEventType.SERIES_CREATED]

    def test_duplicate_name_same_kind_rejected(self, service):
        asyncio.run(service.create(rent_draft()))
        with pytest.raises(DuplicateError):
            asyncio.run(service.create(rent_draft(amount=Decimal("900"))))

    def test_same_name_other_kind_allowed(self, service):
        asyncio.run(service.create(rent_draft()))
        income = asyncio.run(service.create(rent_draft(
            kind=TransactionKind.INCOME, category_ref=None, source_label="Tenant",
        )))
        assert income.kind == TransactionKind.INCOME

    def test_first_due_past_end_creates_ended_series(self, service, engine):
        series = asyncio.run(service.create(rent_draft(end_date=date(2024, 1, 20))))
        assert series.active is False
        assert engine.state_of(series) == SeriesState.ENDED


class TestQueries:
    """Tests for get and list_series."""

    def test_get_missing(self, service):
        with pytest.raises(NotFoundError):
            asyncio.run(service.get(uuid4()))

    def test_list_sorted_by_next_due(self, service):
        asyncio.run(service.create(rent_draft(name="Yearly", frequency=Frequency.YEARLY)))
        asyncio.run(service.create(rent_draft(name="Weekly", frequency=Frequency.WEEKLY)))
        names = [s.name for s in asyncio.run(service.list_series())]
        assert names == ["Weekly", "Yearly"]

    def test_list_by_kind(self, service):
        asyncio.run(service.create(rent_draft()))
        asyncio.run(service.create(rent_draft(
            name="Salary", kind=TransactionKind.INCOME, category_ref=None,
        )))
        incomes = asyncio.run(service.list_series(kind=TransactionKind.INCOME))
        assert [s.name for s in incomes] == ["Salary"]


class TestUpdate:
    """Tests for SeriesService.update."""

    def test_amount_change_keeps_schedule(self, service):
        series = asyncio.run(service.create(rent_draft()))
        updated = asyncio.run(service.update(series.id, SeriesChanges(amount=Decimal("1300"))))
        assert updated.amount == Decimal("1300")
        assert updated.next_due_date == series.next_due_date
        assert updated.id == series.id

    def test_frequency_change_recomputes_from_start(self, service):
        series = asyncio.run(service.create(rent_draft()))
        updated = asyncio.run(service.update(series.id, SeriesChanges(frequency=Frequency.WEEKLY)))
        assert updated.next_due_date == date(2024, 1, 8)

    def test_start_date_change_recomputes(self, service):
        series = asyncio.run(service.create(rent_draft()))
        updated = asyncio.run(service.update(
            series.id, SeriesChanges(start_date=date(2024, 3, 31))
        ))
        assert updated.next_due_date == date(2024, 4, 30)

    def test_clear_end_date(self, service):
        series = asyncio.run(service.create(rent_draft(end_date=date(2024, 12, 31))))
        updated = asyncio.run(service.update(series.id, SeriesChanges(end_date=None)))
        assert updated.end_date is None

    def test_end_date_before_pending_occurrence_ends_series(self, service, engine):
        series = asyncio.run(service.create(rent_draft()))
        updated = asyncio.run(service.update(
            series.id, SeriesChanges(end_date=date(2024, 1, 15))
        ))
        assert updated.active is False
        assert engine.state_of(updated) == SeriesState.ENDED

    def test_ended_series_cannot_be_edited(self, service):
        series = asyncio.run(service.create(rent_draft(end_date=date(2024, 1, 20))))
        with pytest.raises(InvalidStateError):
            asyncio.run(service.update(series.id, SeriesChanges(amount=Decimal("1"))))

    def test_invalid_merge_rejected(self, service):
        series = asyncio.run(service.create(rent_draft()))
        with pytest.raises(ValidationError):
            asyncio.run(service.update(series.id, SeriesChanges(kind=TransactionKind.INCOME)))

    def test_rename_clash_rejected(self, service):
        asyncio.run(service.create(rent_draft()))
        gym = asyncio.run(service.create(rent_draft(name="Gym")))
        with pytest.raises(DuplicateError):
            asyncio.run(service.update(gym.id, SeriesChanges(name="Rent")))

    def test_update_audited_with_changed_fields(self, service, audit_storage):
        series = asyncio.run(service.create(rent_draft()))
        asyncio.run(service.update(series.id, SeriesChanges(amount=Decimal("1300"), description="New")))
        events = asyncio.run(audit_storage.get_events_by_entity("series", series.id))
        assert events[-1].event_type == AuditEventType.SERIES_UPDATED
        assert events[-1].details["changed_fields"] == ["amount", "description"]


class TestPauseResume:
    """Tests for the pause/resume lifecycle."""

    def test_pause_makes_series_not_due(self, service, engine, clock):
        series = asyncio.run(service.create(rent_draft()))
        assert engine.is_due(series) is True  # clock is 2024-02-03

        paused = asyncio.run(service.pause(series.id))
        assert paused.active is False
        assert engine.state_of(paused) == SeriesState.PAUSED
        assert engine.is_due(paused) is False

    def test_pause_twice_is_noop(self, service):
        series = asyncio.run(service.create(rent_draft()))
        first = asyncio.run(service.pause(series.id))
        second = asyncio.run(service.pause(series.id))
        assert first == second

    def test_resume_reevaluates_due_state(self, service, clock):
        series = asyncio.run(service.create(rent_draft()))
        asyncio.run(service.pause(series.id))

        resumed, state = asyncio.run(service.resume(series.id))
        assert resumed.active is True
        assert resumed.next_due_date == date(2024, 2, 1)
        assert state == SeriesState.ACTIVE_DUE

    def test_resume_not_yet_due(self, service, clock):
        clock.set(date(2024, 1, 10))
        series = asyncio.run(service.create(rent_draft()))
        asyncio.run(service.pause(series.id))
        _, state = asyncio.run(service.resume(series.id))
        assert state == SeriesState.ACTIVE_NOT_DUE

    def test_ended_series_cannot_resume_or_pause(self, service):
        series = asyncio.run(service.create(rent_draft(end_date=date(2024, 1, 20))))
        with pytest.raises(InvalidStateError):
            asyncio.run(service.resume(series.id))
        with pytest.raises(InvalidStateError):
            asyncio.run(service.pause(series.id))

    def test_pause_resume_audited(self, service, audit_storage):
        series = asyncio.run(service.create(rent_draft()))
        asyncio.run(service.pause(series.id))
        asyncio.run(service.resume(series.id))
        events = asyncio.run(audit_storage.get_events_by_entity("series", series.id))
        assert [e.event_type for e in events] == [
            AuditEventType.SERIES_CREATED,
            AuditEventType.SERIES_PAUSED,
            AuditEventType.SERIES_RESUMED,
        ]
        assert events[-1].details["state"] == "active_due"


class TestDelete:
    """Tests for SeriesService.delete."""

    def test_delete(self, service):
        series = asyncio.run(service.create(rent_draft()))
        asyncio.run(service.delete(series.id))
        with pytest.raises(NotFoundError):
            asyncio.run(service.get(series.id))

    def test_delete_missing(self, service):
        with pytest.raises(NotFoundError):
            asyncio.run(service.delete(uuid4()))


class TestRescheduleAfterProcessing:
    """A reschedule never lands on a period that already has a ledger entry."""

    def test_same_frequency_resubmitted(self, service, processor, clock):
        series = asyncio.run(service.create(rent_draft()))
        asyncio.run(processor.process(series.id))  # records 2024-02-01

        updated = asyncio.run(service.update(
            series.id, SeriesChanges(frequency=Frequency.MONTHLY)
        ))
        assert updated.next_due_date == date(2024, 3, 1)

        for month in (3, 4, 5):
            clock.set(date(2024, month, 5))
            outcome = asyncio.run(processor.process(series.id))
            assert outcome.status == ProcessStatus.PROCESSED
            assert outcome.period.due_date == date(2024, month, 1)

    def test_batch_run_after_reschedule(self, service, processor, clock):
        series = asyncio.run(service.create(rent_draft()))
        asyncio.run(processor.process(series.id))
        asyncio.run(service.update(series.id, SeriesChanges(start_date=date(2024, 1, 1))))

        clock.set(date(2024, 3, 5))
        outcomes = asyncio.run(processor.process_all_due())
        assert [o.status for o in outcomes] == [ProcessStatus.PROCESSED]

    def test_skips_every_recorded_period(self, service, processor):
        series = asyncio.run(service.create(rent_draft(
            name="Coffee",
            amount=Decimal("4.50"),
            frequency=Frequency.DAILY,
            start_date=date(2024, 1, 28),
        )))
        asyncio.run(processor.catch_up(series.id))  # 2024-01-29 .. 2024-02-03

        updated = asyncio.run(service.update(
            series.id, SeriesChanges(frequency=Frequency.DAILY)
        ))
        assert updated.next_due_date == date(2024, 2, 4)

    def test_new_frequency_starts_from_unrecorded_period(self, service, processor):
        series = asyncio.run(service.create(rent_draft()))
        asyncio.run(processor.process(series.id))

        updated = asyncio.run(service.update(
            series.id, SeriesChanges(frequency=Frequency.WEEKLY)
        ))
        assert updated.next_due_date == date(2024, 1, 8)

    def test_skipping_past_end_date_ends_series(self, service, processor, engine):
        series = asyncio.run(service.create(rent_draft(end_date=date(2024, 12, 31))))
        asyncio.run(processor.process(series.id))  # records 2024-02-01

        updated = asyncio.run(service.update(series.id, SeriesChanges(
            start_date=date(2024, 1, 1),
            end_date=date(2024, 2, 15),
        )))
        assert updated.next_due_date == date(2024, 3, 1)
        assert updated.active is False
        assert engine.state_of(updated) == SeriesState.ENDED
