"""
Audit Logger

DESIGN DECISION: Every balance change and every failed save is logged.
This provides:
1. Traceability from an account balance back to the edit that set it
2. A record of partially-applied saves that still need a retry
3. Debugging capability

The audit logger:
- Gracefully handles failures (a broken audit sheet never blocks a save)
- Supports correlation IDs to tie one edit's events together
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledgerbook.models.audit import AuditEvent, AuditEventBuilder
from ledgerbook.services.storage import AuditStorageInterface


# Configure structlog for local logging
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


def configure_logging(log_level: str = "INFO") -> None:
    """
    Send ledgerbook's structured logs to stderr at `log_level`.

    structlog filters through the stdlib logger, so the level set on the
    "ledgerbook" logger applies to every ledgerbook.* logger.
    """
    logging.basicConfig(format="%(message)s", level=log_level)
    logging.getLogger("ledgerbook").setLevel(log_level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log
    2. The audit store (Google Sheets or memory)
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
        self._logger = structlog.get_logger("ledgerbook.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
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

    async def log_validation_failed(
        self,
        entity_type: str,
        entity_id: Optional[UUID],
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log a rejected draft."""
        await self.log(AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            entity_id=entity_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_insufficient_funds(
        self,
        account_id: UUID,
        available: Decimal,
        requested: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.insufficient_funds(
            account_id=account_id,
            available=available,
            requested=requested,
            correlation_id=correlation_id,
        ))

    async def log_edit_in_progress(
        self,
        entity_type: str,
        entity_id: Optional[UUID],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.edit_in_progress(
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    async def log_balance_updated(
        self,
        account_id: UUID,
        previous_balance: Decimal,
        new_balance: Decimal,
        correlation_id: UUID,
    ) -> None:
        """Log one account balance overwrite."""
        await self.log(AuditEventBuilder.balance_updated(
            account_id=account_id,
            previous_balance=str(previous_balance),
            new_balance=str(new_balance),
            correlation_id=correlation_id,
        ))

    async def log_record_saved(
        self,
        entity_type: str,
        record_id: UUID,
        action: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        """Log a record create, update or delete."""
        await self.log(AuditEventBuilder.record_saved(
            entity_type=entity_type,
            record_id=record_id,
            action=action,
            amount=str(amount),
            correlation_id=correlation_id,
        ))

    async def log_save_failed(
        self,
        entity_type: str,
        record_id: UUID,
        error_message: str,
        applied_accounts: list[UUID],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            entity_type=entity_type,
            record_id=record_id,
            error_message=error_message,
            applied_accounts=[str(a) for a in applied_accounts],
            correlation_id=correlation_id,
        ))

    async def log_pending_retried(
        self,
        entity_type: str,
        record_id: UUID,
        idempotency_key: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.pending_retried(
            entity_type=entity_type,
            record_id=record_id,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
        ))

    async def log_loan_event(
        self,
        action: str,
        loan_id: UUID,
        amount: Decimal,
        remaining: Decimal,
        correlation_id: UUID,
    ) -> None:
        """Log a loan or repayment being recorded or removed."""
        await self.log(AuditEventBuilder.loan_event(
            action=action,
            loan_id=loan_id,
            amount=str(amount),
            remaining=str(remaining),
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

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a storage backend failure."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use one per user action (one save, one delete, one retry).
    """
    return uuid4()
