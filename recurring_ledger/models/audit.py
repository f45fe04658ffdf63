"""
Audit Models for Recurring Ledger

Every significant action on a recurring series is logged for audit purposes.
This provides:
1. Traceability of every materialized ledger entry back to its run
2. Debugging information when a run is skipped or fails
3. A history of user changes to schedules

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Series management
    SERIES_CREATED = "series_created"
    SERIES_UPDATED = "series_updated"
    SERIES_PAUSED = "series_paused"
    SERIES_RESUMED = "series_resumed"
    SERIES_DELETED = "series_deleted"

    # Processing
    INSTANCE_MATERIALIZED = "instance_materialized"
    SCHEDULE_EXHAUSTED = "schedule_exhausted"
    DUPLICATE_PERIOD_SKIPPED = "duplicate_period_skipped"
    SERIES_CHANGED_MIDSTEP = "series_changed_midstep"
    SERIES_NOT_DUE = "series_not_due"

    # System events
    STORAGE_RETRY = "storage_retry"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'series', 'instance')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one processing run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> tuple:
        """
        Convert to a flat row for table storage.

        Columns in order:
        (event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action)
        """
        return (
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            int(self.is_user_action),
        )

    @classmethod
    def from_row(cls, row) -> "AuditEvent":
        """Inverse of to_row."""
        return cls(
            event_id=UUID(row[0]),
            timestamp=datetime.fromisoformat(row[1]),
            event_type=AuditEventType(row[2]),
            severity=AuditSeverity(row[3]),
            entity_type=row[4] or None,
            entity_id=UUID(row[5]) if row[5] else None,
            correlation_id=UUID(row[6]) if row[6] else None,
            description=row[7],
            details=json.loads(row[8]) if row[8] else {},
            error_message=row[9] or None,
            is_user_action=bool(row[10]),
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.series_created(series_id, name, correlation_id)
        event = AuditEventBuilder.instance_materialized(...)
    """

    @staticmethod
    def series_created(
        series_id: UUID,
        name: str,
        frequency: str,
        next_due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_CREATED,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description=f"Recurring series created: {name}",
            details={
                "frequency": frequency,
                "next_due_date": next_due_date.isoformat(),
            },
            is_user_action=True,
        )

    @staticmethod
    def series_updated(
        series_id: UUID,
        changed_fields: list[str],
        next_due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_UPDATED,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description=f"Recurring series updated: {', '.join(changed_fields) or 'no changes'}",
            details={
                "changed_fields": changed_fields,
                "next_due_date": next_due_date.isoformat(),
            },
            is_user_action=True,
        )

    @staticmethod
    def series_paused(
        series_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_PAUSED,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description="Recurring series paused",
            is_user_action=True,
        )

    @staticmethod
    def series_resumed(
        series_id: UUID,
        state: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_RESUMED,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description=f"Recurring series resumed ({state})",
            details={"state": state},
            is_user_action=True,
        )

    @staticmethod
    def series_deleted(
        series_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_DELETED,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description="Recurring series deleted",
            is_user_action=True,
        )

    @staticmethod
    def instance_materialized(
        instance_id: UUID,
        series_id: UUID,
        kind: str,
        amount: str,
        due_date: date,
        occurred_on: date,
        next_due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTANCE_MATERIALIZED,
            entity_type="instance",
            entity_id=instance_id,
            correlation_id=correlation_id,
            description=f"Recurring {kind} of {amount} recorded for {due_date.isoformat()}",
            details={
                "series_id": str(series_id),
                "kind": kind,
                "amount": amount,
                "due_date": due_date.isoformat(),
                "occurred_on": occurred_on.isoformat(),
                "next_due_date": next_due_date.isoformat(),
            },
        )

    @staticmethod
    def schedule_exhausted(
        series_id: UUID,
        end_date: Optional[date],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_EXHAUSTED,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description="Recurring series reached its end date and was deactivated",
            details={"end_date": end_date.isoformat() if end_date else None},
        )

    @staticmethod
    def duplicate_period_skipped(
        series_id: UUID,
        due_date: date,
        existing_instance_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATE_PERIOD_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description=f"Period {due_date.isoformat()} already recorded, nothing written",
            details={
                "due_date": due_date.isoformat(),
                "existing_instance_id": str(existing_instance_id) if existing_instance_id else None,
            },
        )

    @staticmethod
    def series_changed_midstep(
        series_id: UUID,
        due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_CHANGED_MIDSTEP,
            severity=AuditSeverity.WARNING,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description=(
                f"Series paused or rescheduled while period {due_date.isoformat()} "
                "was being recorded, nothing written"
            ),
            details={"due_date": due_date.isoformat()},
        )

    @staticmethod
    def series_not_due(
        series_id: UUID,
        next_due_date: date,
        as_of: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_NOT_DUE,
            severity=AuditSeverity.DEBUG,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description=f"Series not due until {next_due_date.isoformat()}",
            details={
                "next_due_date": next_due_date.isoformat(),
                "as_of": as_of.isoformat(),
            },
        )

    @staticmethod
    def storage_retry(
        operation: str,
        attempt: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_RETRY,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Retrying {operation} (attempt {attempt})",
            error_message=error_message,
            details={"operation": operation, "attempt": attempt},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
