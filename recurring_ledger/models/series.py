"""
Core Data Models for Recurring Ledger

These models define the strict schemas for recurring series and the ledger
entries materialized from them. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be immutable values, so every schedule change is an explicit new copy
4. Be serializable for storage and logging

DESIGN DECISION: Series and instances are frozen Pydantic v2 models.
The engine returns updated copies (model_copy) and the caller decides
when and how to persist them.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4, uuid5

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """Which ledger an instance posts to."""
    EXPENSE = "expense"
    INCOME = "income"


class Frequency(str, Enum):
    """How often a series repeats."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SeriesState(str, Enum):
    """
    Lifecycle state of a series at a given evaluation date.

    ENDED is terminal: a series whose schedule ran past its end date
    can never be resumed. The user must create a new one.
    """
    ACTIVE_NOT_DUE = "active_not_due"
    ACTIVE_DUE = "active_due"
    ENDED = "ended"
    PAUSED = "paused"


class ProcessStatus(str, Enum):
    """Outcome of one processing step for a series."""
    PROCESSED = "processed"
    EXHAUSTED = "exhausted"    # processed, and the series has now ended
    DUPLICATE = "duplicate"    # period already materialized, nothing written
    CONFLICT = "conflict"      # series paused or rescheduled mid-step, nothing written


Amount = Annotated[
    Decimal,
    Field(gt=0, decimal_places=2, description="Amount per occurrence")
]


# =============================================================================
# SERIES MODELS
# =============================================================================

class SeriesDraft(BaseModel):
    """
    User input for a new recurring series.

    Only the fields a user chooses. The schedule state (next due date,
    active flag) is derived when the series is created.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name, unique per kind"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Description copied onto every materialized instance"
    )
    kind: TransactionKind
    amount: Amount
    frequency: Frequency = Frequency.MONTHLY
    category_ref: Optional[str] = Field(
        default=None,
        description="Expense category reference (expense series only)"
    )
    source_label: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Income source label (income series only)"
    )
    start_date: date = Field(
        ...,
        description="Anchor date of the schedule"
    )
    end_date: Optional[date] = Field(
        default=None,
        description="No instance is produced for a due date after this"
    )

    @model_validator(mode='after')
    def validate_kind_fields(self):
        """Category belongs to expenses, source to incomes."""
        if self.kind == TransactionKind.INCOME and self.category_ref:
            raise ValueError("Income series cannot reference a category")
        if self.kind == TransactionKind.EXPENSE and self.source_label:
            raise ValueError("Expense series cannot carry a source label")
        return self

    @model_validator(mode='after')
    def validate_dates(self):
        """End date cannot precede the start date."""
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class RecurringSeries(SeriesDraft):
    """
    A recurring-transaction template with its schedule state.

    `next_due_date` and `active` are the only fields the engine changes.
    Everything else changes only through explicit user edits.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique series ID"
    )
    next_due_date: date = Field(
        ...,
        description="Next occurrence awaiting materialization"
    )
    active: bool = Field(
        default=True,
        description="False once ended or paused"
    )

    @model_validator(mode='after')
    def validate_schedule(self) -> 'RecurringSeries':
        if self.next_due_date < self.start_date:
            raise ValueError("Next due date cannot be before start date")
        return self

    @property
    def is_past_end(self) -> bool:
        """True when the pending occurrence falls after the end date."""
        return self.end_date is not None and self.next_due_date > self.end_date


class SeriesChanges(BaseModel):
    """
    Partial update of a series. Unset fields are left unchanged.

    Schedule state is not editable here; use pause/resume for `active`.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    kind: Optional[TransactionKind] = None
    amount: Optional[Amount] = None
    frequency: Optional[Frequency] = None
    category_ref: Optional[str] = None
    source_label: Optional[str] = Field(default=None, max_length=200)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def reschedules(self) -> bool:
        """Changing frequency or start date resets the schedule."""
        fields = self.model_fields_set
        return "frequency" in fields or "start_date" in fields


# =============================================================================
# LEDGER MODELS
# =============================================================================

class PeriodKey(BaseModel):
    """
    Idempotency key for one due period of one series.

    At most one instance may ever be recorded per key.
    """
    model_config = ConfigDict(frozen=True)

    series_id: UUID
    due_date: date

    @property
    def instance_id(self) -> UUID:
        """Deterministic instance ID for this period."""
        return uuid5(self.series_id, self.due_date.isoformat())


class TransactionInstance(BaseModel):
    """
    A materialized ledger entry.

    Once written it is an ordinary expense/income row with no link back
    to the series that produced it.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: UUID
    kind: TransactionKind
    amount: Amount
    description: str = Field(..., max_length=500)
    occurred_on: date = Field(
        ...,
        description="Date the instance was processed, not the date it fell due"
    )
    category_ref: Optional[str] = None
    source_label: Optional[str] = None


class MaterializationResult(BaseModel):
    """
    Output of one materialize step.

    `schedule_exhausted` is informational: the instance and the now
    inactive series must still be persisted.
    """
    model_config = ConfigDict(frozen=True)

    instance: TransactionInstance
    updated_series: RecurringSeries
    period: PeriodKey
    schedule_exhausted: bool = False


# =============================================================================
# PROCESSING MODELS
# =============================================================================

class ProcessOutcome(BaseModel):
    """What happened to one series during a processing run."""

    series_id: UUID
    status: ProcessStatus
    instance: Optional[TransactionInstance] = None
    period: Optional[PeriodKey] = None
    next_due_date: date
    active: bool
    existing_instance_id: Optional[UUID] = Field(
        default=None,
        description="Set when the period had already been materialized"
    )

    @property
    def created(self) -> bool:
        return self.instance is not None
