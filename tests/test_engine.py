"""
Tests for the recurrence engine and its calendar arithmetic.

The engine is pure, so these tests need no storage: a series value and
an evaluation date are all the input there is.
"""

import pytest
from datetime import date
from decimal import Decimal

from recurring_ledger.engine import (
    FixedClock,
    InvalidStateError,
    RecurrenceEngine,
    SeriesNotDueError,
    add_months,
    add_years,
    compute_next_due_date,
)
from recurring_ledger.models.series import (
    Frequency,
    SeriesState,
    TransactionKind,
)


class TestPeriodArithmetic:
    """Tests for compute_next_due_date and its helpers."""

    def test_daily_adds_one_day(self):
        assert compute_next_due_date(date(2024, 2, 28), Frequency.DAILY) == date(2024, 2, 29)
        assert compute_next_due_date(date(2023, 12, 31), Frequency.DAILY) == date(2024, 1, 1)

    def test_weekly_crosses_year_boundary(self):
        """2024-12-30 (Monday) + 1 week is 2025-01-06."""
        assert compute_next_due_date(date(2024, 12, 30), Frequency.WEEKLY) == date(2025, 1, 6)

    def test_monthly_plain(self):
        assert compute_next_due_date(date(2024, 1, 1), Frequency.MONTHLY) == date(2024, 2, 1)
        assert compute_next_due_date(date(2024, 12, 15), Frequency.MONTHLY) == date(2025, 1, 15)

    def test_monthly_clamps_to_month_end(self):
        """Jan 31 -> Feb 29 in a leap year, Feb 28 otherwise."""
        assert compute_next_due_date(date(2024, 1, 31), Frequency.MONTHLY) == date(2024, 2, 29)
        assert compute_next_due_date(date(2023, 1, 31), Frequency.MONTHLY) == date(2023, 2, 28)
        assert compute_next_due_date(date(2024, 3, 31), Frequency.MONTHLY) == date(2024, 4, 30)

    def test_monthly_does_not_snap_back(self):
        """Once clamped, the following period keeps the clamped day."""
        feb = compute_next_due_date(date(2024, 1, 31), Frequency.MONTHLY)
        mar = compute_next_due_date(feb, Frequency.MONTHLY)
        assert feb == date(2024, 2, 29)
        assert mar == date(2024, 3, 29)

    def test_yearly_leap_day(self):
        assert compute_next_due_date(date(2024, 2, 29), Frequency.YEARLY) == date(2025, 2, 28)
        assert compute_next_due_date(date(2023, 6, 15), Frequency.YEARLY) == date(2024, 6, 15)

    def test_accepts_string_frequency(self):
        assert compute_next_due_date(date(2024, 1, 1), "weekly") == date(2024, 1, 8)

    def test_add_months_multiple(self):
        assert add_months(date(2024, 1, 31), 13) == date(2025, 2, 28)
        assert add_months(date(2024, 5, 31), -3) == date(2024, 2, 29)

    def test_add_years_multiple(self):
        assert add_years(date(2024, 2, 29), 4) == date(2028, 2, 29)


class TestIsDue:
    """Tests for RecurrenceEngine.is_due."""

    def test_due_on_and_after_next_due_date(self, engine, series_factory):
        series = series_factory(next_due_date=date(2024, 2, 1))
        assert engine.is_due(series, date(2024, 1, 31)) is False
        assert engine.is_due(series, date(2024, 2, 1)) is True
        assert engine.is_due(series, date(2024, 2, 3)) is True

    def test_repeated_calls_agree(self, engine, series_factory):
        series = series_factory()
        results = {engine.is_due(series, date(2024, 2, 3)) for _ in range(5)}
        assert results == {True}

    def test_inactive_series_never_due(self, engine, series_factory):
        series = series_factory(active=False)
        for as_of in (date(2024, 1, 1), date(2024, 2, 1), date(2099, 1, 1)):
            assert engine.is_due(series, as_of) is False

    def test_pending_occurrence_past_end_not_due(self, engine, series_factory):
        series = series_factory(
            next_due_date=date(2024, 3, 1),
            end_date=date(2024, 2, 15),
        )
        assert engine.is_due(series, date(2024, 6, 1)) is False

    def test_defaults_to_clock(self, series_factory):
        clock = FixedClock(date(2024, 1, 31))
        engine = RecurrenceEngine(clock=clock)
        series = series_factory()
        assert engine.is_due(series) is False
        clock.advance()
        assert engine.is_due(series) is True


class TestMaterialize:
    """Tests for RecurrenceEngine.materialize."""

    def test_end_to_end_monthly(self, engine, series_factory):
        """Monthly 1200 due 2024-02-01, processed 2024-02-03."""
        series = series_factory()
        as_of = date(2024, 2, 3)

        assert engine.is_due(series, as_of) is True
        result = engine.materialize(series, as_of)

        assert result.instance.amount == Decimal("1200")
        assert result.instance.occurred_on == as_of
        assert result.instance.kind == TransactionKind.EXPENSE
        assert result.instance.category_ref == "housing"
        assert result.updated_series.next_due_date == date(2024, 3, 1)
        assert result.updated_series.active is True
        assert result.schedule_exhausted is False
        assert result.period.due_date == date(2024, 2, 1)
        assert result.period.series_id == series.id

    def test_does_not_mutate_input(self, engine, series_factory):
        series = series_factory()
        engine.materialize(series, date(2024, 2, 3))
        assert series.next_due_date == date(2024, 2, 1)
        assert series.active is True

    def test_deterministic(self, engine, series_factory):
        series = series_factory()
        first = engine.materialize(series, date(2024, 2, 3))
        second = engine.materialize(series, date(2024, 2, 3))
        assert first == second
        assert first.instance.id == second.instance.id

    def test_advances_from_due_date_not_process_date(self, engine, series_factory):
        """Late processing does not shift the schedule."""
        series = series_factory(next_due_date=date(2024, 2, 1))
        result = engine.materialize(series, date(2024, 2, 20))
        assert result.updated_series.next_due_date == date(2024, 3, 1)

    def test_termination_past_end_date(self, engine, series_factory):
        series = series_factory(
            start_date=date(2024, 1, 15),
            next_due_date=date(2024, 5, 15),
            end_date=date(2024, 6, 1),
        )
        result = engine.materialize(series, date(2024, 5, 20))

        assert result.updated_series.next_due_date == date(2024, 6, 15)
        assert result.updated_series.active is False
        assert result.schedule_exhausted is True
        assert engine.state_of(result.updated_series, date(2024, 7, 1)) == SeriesState.ENDED

    def test_next_due_equal_to_end_date_stays_active(self, engine, series_factory):
        series = series_factory(
            next_due_date=date(2024, 2, 1),
            end_date=date(2024, 3, 1),
        )
        result = engine.materialize(series, date(2024, 2, 1))
        assert result.updated_series.next_due_date == date(2024, 3, 1)
        assert result.updated_series.active is True

    def test_single_step_catch_up(self, engine, series_factory):
        """A daily series five days behind advances one day per call."""
        series = series_factory(
            frequency=Frequency.DAILY,
            start_date=date(2024, 2, 1),
            next_due_date=date(2024, 2, 2),
        )
        as_of = date(2024, 2, 7)

        result = engine.materialize(series, as_of)
        assert result.updated_series.next_due_date == date(2024, 2, 3)

        steps = 1
        current = result.updated_series
        while engine.is_due(current, as_of):
            current = engine.materialize(current, as_of).updated_series
            steps += 1
        assert steps == 6
        assert current.next_due_date == date(2024, 2, 8)

    def test_anchor_jan_31_sequence(self, engine, series_factory):
        series = series_factory(
            start_date=date(2023, 12, 31),
            next_due_date=date(2024, 1, 31),
        )
        feb = engine.materialize(series, date(2024, 4, 1)).updated_series
        mar = engine.materialize(feb, date(2024, 4, 1)).updated_series
        assert feb.next_due_date == date(2024, 2, 29)
        assert mar.next_due_date == date(2024, 3, 29)

    def test_not_due_raises(self, engine, series_factory):
        series = series_factory()
        with pytest.raises(SeriesNotDueError) as exc_info:
            engine.materialize(series, date(2024, 1, 20))
        assert exc_info.value.next_due_date == date(2024, 2, 1)

    def test_not_due_is_invalid_state(self, engine, series_factory):
        with pytest.raises(InvalidStateError):
            engine.materialize(series_factory(), date(2024, 1, 20))

    def test_inactive_raises(self, engine, series_factory):
        series = series_factory(active=False)
        with pytest.raises(InvalidStateError, match="paused"):
            engine.materialize(series, date(2024, 2, 3))

    def test_income_instance_uses_source(self, engine, series_factory):
        series = series_factory(
            name="Salary",
            kind=TransactionKind.INCOME,
            category_ref=None,
            source_label="Employer",
        )
        instance = engine.materialize(series, date(2024, 2, 3)).instance
        assert instance.kind == TransactionKind.INCOME
        assert instance.source_label == "Employer"
        assert instance.category_ref is None

    def test_income_source_defaults_to_name(self, engine, series_factory):
        series = series_factory(
            name="Salary",
            kind=TransactionKind.INCOME,
            category_ref=None,
        )
        instance = engine.materialize(series, date(2024, 2, 3)).instance
        assert instance.source_label == "Salary"

    def test_description_fallback(self, engine, series_factory):
        instance = engine.materialize(series_factory(), date(2024, 2, 3)).instance
        assert instance.description == "Recurring: Rent"

        described = series_factory(description="Flat rent")
        instance = engine.materialize(described, date(2024, 2, 3)).instance
        assert instance.description == "Flat rent"

    def test_custom_description_prefix(self, clock, series_factory):
        engine = RecurrenceEngine(clock=clock, description_prefix="Auto - ")
        instance = engine.materialize(series_factory(), date(2024, 2, 3)).instance
        assert instance.description == "Auto - Rent"

    def test_instance_id_differs_per_period(self, engine, series_factory):
        series = series_factory()
        first = engine.materialize(series, date(2024, 3, 5))
        second = engine.materialize(first.updated_series, date(2024, 3, 5))
        assert first.instance.id != second.instance.id


class TestStateMachine:
    """Tests for RecurrenceEngine.state_of."""

    def test_active_states(self, engine, series_factory):
        series = series_factory()
        assert engine.state_of(series, date(2024, 1, 15)) == SeriesState.ACTIVE_NOT_DUE
        assert engine.state_of(series, date(2024, 2, 1)) == SeriesState.ACTIVE_DUE

    def test_paused(self, engine, series_factory):
        series = series_factory(active=False)
        assert engine.state_of(series, date(2024, 2, 3)) == SeriesState.PAUSED

    def test_ended(self, engine, series_factory):
        series = series_factory(
            next_due_date=date(2024, 3, 1),
            end_date=date(2024, 2, 1),
            active=False,
        )
        assert engine.state_of(series, date(2024, 2, 3)) == SeriesState.ENDED

    def test_materialize_moves_due_to_not_due(self, engine, series_factory):
        series = series_factory()
        as_of = date(2024, 2, 3)
        assert engine.state_of(series, as_of) == SeriesState.ACTIVE_DUE
        updated = engine.materialize(series, as_of).updated_series
        assert engine.state_of(updated, as_of) == SeriesState.ACTIVE_NOT_DUE


class TestFirstDueDate:
    """Tests for the initial next_due_date of a new series."""

    def test_default_skips_start_date(self):
        assert RecurrenceEngine.first_due_date(date(2024, 1, 1), Frequency.MONTHLY) == date(2024, 2, 1)

    def test_include_start(self):
        first = RecurrenceEngine.first_due_date(
            date(2024, 1, 1), Frequency.MONTHLY, include_start=True
        )
        assert first == date(2024, 1, 1)
