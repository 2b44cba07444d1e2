"""
Audit Logger

DESIGN DECISION: Every ledger mutation and session change is logged.
This provides:
1. Traceability of what the user did to their ledgers
2. A record of partially completed operations (paying a reminder)

The audit logger:
- Is async like the stores it sits next to
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to tie the steps of one action together
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_control.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from finance_control.services.storage.interface import AuditStorageInterface


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for JSON output through the stdlib root logger."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))
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
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when one is configured (Google Sheets AuditLog)
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
        self._logger = structlog.get_logger("finance_control.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_control_created(
        self,
        control_id: UUID,
        name: str,
        owner_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.control_created(control_id, name, owner_id))

    async def log_control_deleted(
        self,
        control_id: UUID,
        transaction_count: int,
        reminder_count: int,
        investment_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.control_deleted(
            control_id=control_id,
            transaction_count=transaction_count,
            reminder_count=reminder_count,
            investment_count=investment_count,
        ))

    async def log_transaction_added(
        self,
        transaction_id: UUID,
        control_id: UUID,
        transaction_type: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_added(
            transaction_id=transaction_id,
            control_id=control_id,
            transaction_type=transaction_type,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_deleted(self, entity_type: str, entity_id: UUID) -> None:
        """Log deletion of a transaction or reminder."""
        await self.log(AuditEventBuilder.entity_deleted(entity_type, entity_id))

    async def log_reminder_added(
        self,
        reminder_id: UUID,
        control_id: UUID,
        amount: str,
        due: str,
    ) -> None:
        await self.log(AuditEventBuilder.reminder_added(
            reminder_id=reminder_id,
            control_id=control_id,
            amount=amount,
            due=due,
        ))

    async def log_reminder_paid(
        self,
        reminder_id: UUID,
        transaction_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.reminder_paid(
            reminder_id=reminder_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_partial_operation(
        self,
        operation: str,
        completed_step: str,
        failed_step: str,
        error_message: str,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an action that stopped halfway. The user has to finish it."""
        await self.log(AuditEventBuilder.partial_operation(
            operation=operation,
            completed_step=completed_step,
            failed_step=failed_step,
            error_message=error_message,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    async def log_store_write_failed(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.store_write_failed(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(self, operation: str, issues: list[dict]) -> None:
        await self.log(AuditEventBuilder.validation_failed(operation, issues))

    async def log_session_event(
        self,
        event_type: AuditEventType,
        user_id: Optional[UUID],
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.session_event(
            event_type=event_type,
            user_id=user_id,
            description=description,
            details=details,
        ))

    async def log_advice_requested(
        self,
        control_id: Optional[UUID],
        transaction_count: int,
        language: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.advice_requested(
            control_id=control_id,
            transaction_count=transaction_count,
            language=language,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step action (e.g., paying a reminder).
    Pass it through all subsequent steps.
    """
    return uuid4()
