"""
Audit Logger

DESIGN DECISION: Every significant action on a recurring series is logged.
This provides:
1. Traceability from each ledger entry back to the run that created it
2. Debugging capability for skipped or duplicate periods
3. History of user changes to schedules

The audit logger:
- Always writes a structured local log line
- Persists to audit storage when one is configured
- Never raises on audit-storage failure
- Supports correlation IDs to trace related events
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from recurring_ledger.config import get_settings
from recurring_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from recurring_ledger.services.storage import AuditStorageInterface


def configure_logging(log_level: Optional[str] = None) -> None:
    """Configure stdlib logging and structlog JSON output."""
    level = (log_level or get_settings().app.log_level).upper()
    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("recurring_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_series_created(
        self,
        series_id: UUID,
        name: str,
        frequency: str,
        next_due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log series creation."""
        await self.log(AuditEventBuilder.series_created(
            series_id=series_id,
            name=name,
            frequency=frequency,
            next_due_date=next_due_date,
            correlation_id=correlation_id,
        ))

    async def log_series_updated(
        self,
        series_id: UUID,
        changed_fields: list[str],
        next_due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a user edit."""
        await self.log(AuditEventBuilder.series_updated(
            series_id=series_id,
            changed_fields=changed_fields,
            next_due_date=next_due_date,
            correlation_id=correlation_id,
        ))

    async def log_series_paused(
        self,
        series_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.series_paused(
            series_id=series_id,
            correlation_id=correlation_id,
        ))

    async def log_series_resumed(
        self,
        series_id: UUID,
        state: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.series_resumed(
            series_id=series_id,
            state=state,
            correlation_id=correlation_id,
        ))

    async def log_series_deleted(
        self,
        series_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.series_deleted(
            series_id=series_id,
            correlation_id=correlation_id,
        ))

    async def log_instance_materialized(
        self,
        instance_id: UUID,
        series_id: UUID,
        kind: str,
        amount: str,
        due_date: date,
        occurred_on: date,
        next_due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a ledger entry created from a series."""
        await self.log(AuditEventBuilder.instance_materialized(
            instance_id=instance_id,
            series_id=series_id,
            kind=kind,
            amount=amount,
            due_date=due_date,
            occurred_on=occurred_on,
            next_due_date=next_due_date,
            correlation_id=correlation_id,
        ))

    async def log_schedule_exhausted(
        self,
        series_id: UUID,
        end_date: Optional[date],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.schedule_exhausted(
            series_id=series_id,
            end_date=end_date,
            correlation_id=correlation_id,
        ))

    async def log_duplicate_period(
        self,
        series_id: UUID,
        due_date: date,
        existing_instance_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a skipped, already-recorded period."""
        await self.log(AuditEventBuilder.duplicate_period_skipped(
            series_id=series_id,
            due_date=due_date,
            existing_instance_id=existing_instance_id,
            correlation_id=correlation_id,
        ))

    async def log_series_changed_midstep(
        self,
        series_id: UUID,
        due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.series_changed_midstep(
            series_id=series_id,
            due_date=due_date,
            correlation_id=correlation_id,
        ))

    async def log_series_not_due(
        self,
        series_id: UUID,
        next_due_date: date,
        as_of: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.series_not_due(
            series_id=series_id,
            next_due_date=next_due_date,
            as_of=as_of,
            correlation_id=correlation_id,
        ))

    async def log_storage_retry(
        self,
        operation: str,
        attempt: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.storage_retry(
            operation=operation,
            attempt=attempt,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a processing run or user action and
    pass it through all subsequent operations.
    """
    return uuid4()
