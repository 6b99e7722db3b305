"""
Audit Models for Ledgerbook

Every change to a balance or a ledger record is logged for audit purposes.
This provides:
1. Traceability of every balance overwrite
2. Enough detail to repair a partially-applied plan by hand
3. Debugging information when things go wrong

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of a save has its own event type.
    """
    # Validation
    VALIDATION_FAILED = "validation_failed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    EDIT_REJECTED_IN_PROGRESS = "edit_rejected_in_progress"

    # Balances
    BALANCE_UPDATED = "balance_updated"

    # Records
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    SAVE_FAILED = "save_failed"
    PENDING_RETRIED = "pending_retried"

    # Loans
    LOAN_CREATED = "loan_created"
    LOAN_DELETED = "loan_deleted"
    REPAYMENT_RECORDED = "repayment_recorded"
    REPAYMENT_DELETED = "repayment_deleted"

    # System events
    SYSTEM_ERROR = "system_error"
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
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
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
        description="Type of entity (e.g., 'account', 'transaction', 'transfer')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events of one save share this
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one edit)"
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
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.balance_updated(account_id, "100.00", "70.00", correlation_id)
        event = AuditEventBuilder.record_saved("transfer", record_id, "updated", correlation_id)
    """

    @staticmethod
    def validation_failed(
        entity_type: str,
        entity_id: Optional[UUID],
        issues: list[dict],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Validation failed with {len(issues)} issues",
            details={
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def insufficient_funds(
        account_id: UUID,
        available: Decimal,
        requested: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSUFFICIENT_FUNDS,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Rejected: {requested} requested, {available} available",
            details={
                "available": str(available),
                "requested": str(requested),
            },
            is_user_action=True,
        )

    @staticmethod
    def edit_in_progress(
        entity_type: str,
        entity_id: Optional[UUID],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EDIT_REJECTED_IN_PROGRESS,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description="Save rejected: another save is still running",
            is_user_action=True,
        )

    @staticmethod
    def balance_updated(
        account_id: UUID,
        previous_balance: str,
        new_balance: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_UPDATED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance updated: {previous_balance} -> {new_balance}",
            details={
                "previous_balance": previous_balance,
                "new_balance": new_balance,
            },
        )

    @staticmethod
    def record_saved(
        entity_type: str,
        record_id: UUID,
        action: str,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        event_type = {
            "created": AuditEventType.RECORD_CREATED,
            "updated": AuditEventType.RECORD_UPDATED,
            "deleted": AuditEventType.RECORD_DELETED,
        }[action]
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {action}: {amount}",
            details={
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def save_failed(
        entity_type: str,
        record_id: UUID,
        error_message: str,
        applied_accounts: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} save failed part-way",
            error_message=error_message,
            details={
                "applied_accounts": applied_accounts,
            },
        )

    @staticmethod
    def pending_retried(
        entity_type: str,
        record_id: UUID,
        idempotency_key: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PENDING_RETRIED,
            entity_type=entity_type,
            entity_id=record_id,
            correlation_id=correlation_id,
            description="Retried a partially-applied save",
            details={
                "idempotency_key": idempotency_key,
            },
            is_user_action=True,
        )

    @staticmethod
    def loan_event(
        action: str,
        loan_id: UUID,
        amount: str,
        remaining: str,
        correlation_id: UUID
    ) -> AuditEvent:
        event_type = {
            "loan_created": AuditEventType.LOAN_CREATED,
            "loan_deleted": AuditEventType.LOAN_DELETED,
            "repayment_recorded": AuditEventType.REPAYMENT_RECORDED,
            "repayment_deleted": AuditEventType.REPAYMENT_DELETED,
        }[action]
        return AuditEvent(
            event_type=event_type,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"{action.replace('_', ' ').capitalize()}: {amount}",
            details={
                "amount": amount,
                "remaining_amount": remaining,
            },
            is_user_action=True,
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

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
