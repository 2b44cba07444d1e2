"""
Audit Models for Finance Control

Every mutation of a ledger is logged for audit purposes.
This provides:
1. Complete traceability of all operations
2. Debugging information when a store rejects a write
3. A record of half-finished composite operations (paying a reminder)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session
    USER_SIGNED_UP = "user_signed_up"
    USER_SIGNED_IN = "user_signed_in"
    USER_SIGNED_OUT = "user_signed_out"
    AUTH_FAILED = "auth_failed"
    PROFILE_UPDATED = "profile_updated"
    LANGUAGE_CHANGED = "language_changed"

    # Controls
    CONTROL_CREATED = "control_created"
    CONTROL_DELETED = "control_deleted"

    # Transactions
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_DELETED = "transaction_deleted"

    # Reminders
    REMINDER_ADDED = "reminder_added"
    REMINDER_PAID = "reminder_paid"
    REMINDER_DELETED = "reminder_deleted"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    STORE_WRITE_FAILED = "store_write_failed"
    PARTIAL_OPERATION = "partial_operation"

    # Advice
    ADVICE_REQUESTED = "advice_requested"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


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

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'control', 'transaction', 'reminder')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., both steps of paying a reminder)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
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
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
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
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.control_created(control_id, name, owner_id)
        event = AuditEventBuilder.reminder_paid(reminder_id, transaction_id, correlation_id)
    """

    @staticmethod
    def control_created(
        control_id: UUID,
        name: str,
        owner_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONTROL_CREATED,
            entity_type="control",
            entity_id=control_id,
            correlation_id=correlation_id,
            description=f"Control created: {name}",
            details={"name": name, "owner_id": str(owner_id)},
            is_user_action=True,
        )

    @staticmethod
    def control_deleted(
        control_id: UUID,
        transaction_count: int,
        reminder_count: int,
        investment_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONTROL_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="control",
            entity_id=control_id,
            correlation_id=correlation_id,
            description="Control deleted with all of its records",
            details={
                "transactions": transaction_count,
                "reminders": reminder_count,
                "investments": investment_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_added(
        transaction_id: UUID,
        control_id: UUID,
        transaction_type: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{transaction_type.capitalize()} of {amount} recorded",
            details={
                "control_id": str(control_id),
                "type": transaction_type,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def entity_deleted(
        entity_type: str,
        entity_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.TRANSACTION_DELETED
            if entity_type == "transaction"
            else AuditEventType.REMINDER_DELETED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} deleted",
            is_user_action=True,
        )

    @staticmethod
    def reminder_added(
        reminder_id: UUID,
        control_id: UUID,
        amount: str,
        due: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_ADDED,
            entity_type="reminder",
            entity_id=reminder_id,
            correlation_id=correlation_id,
            description=f"Reminder of {amount} due {due}",
            details={"control_id": str(control_id), "amount": amount, "due": due},
            is_user_action=True,
        )

    @staticmethod
    def reminder_paid(
        reminder_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_PAID,
            entity_type="reminder",
            entity_id=reminder_id,
            correlation_id=correlation_id,
            description="Reminder paid and recorded as expense",
            details={"transaction_id": str(transaction_id)},
            is_user_action=True,
        )

    @staticmethod
    def partial_operation(
        operation: str,
        completed_step: str,
        failed_step: str,
        error_message: str,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTIAL_OPERATION,
            severity=AuditSeverity.ERROR,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{operation}: '{completed_step}' done but '{failed_step}' failed",
            details={
                "operation": operation,
                "completed_step": completed_step,
                "failed_step": failed_step,
            },
            error_message=error_message,
        )

    @staticmethod
    def store_write_failed(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"Store rejected {operation}",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def validation_failed(
        operation: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"{operation} rejected with {len(issues)} issues",
            details={"operation": operation, "issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def session_event(
        event_type: AuditEventType,
        user_id: Optional[UUID],
        description: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        severity = (
            AuditSeverity.WARNING
            if event_type == AuditEventType.AUTH_FAILED
            else AuditSeverity.INFO
        )
        return AuditEvent(
            event_type=event_type,
            severity=severity,
            entity_type="user",
            entity_id=user_id,
            description=description,
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def advice_requested(
        control_id: Optional[UUID],
        transaction_count: int,
        language: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADVICE_REQUESTED,
            entity_type="control",
            entity_id=control_id,
            correlation_id=correlation_id,
            description=f"Advice requested for {transaction_count} transactions",
            details={"transactions": transaction_count, "language": language},
            is_user_action=True,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"External service error: {service}",
            details={"service": service},
            error_message=error_message,
        )

