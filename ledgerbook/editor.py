"""
Ledger Record Editor

This module ties the validator, the reconciliation engine, the stores and
the audit log together. It defines the save flows for:
1. Create (draft → validate → plan → apply balances → insert record)
2. Edit (draft → validate → load old → plan → apply balances → update record)
3. Delete (load old → plan → apply balances → delete record)

DESIGN DECISION: The editor enforces the write order:
- Every balance update in the plan is written first, in plan order
- The record itself is written last
- Nothing is rolled back on failure; the failed plan is kept as pending
  and `retry_pending()` finishes it

Balance updates are absolute, so re-issuing one that already landed
leaves the same balance. That makes a retry safe.

One save runs at a time per editor. A second call while one is running
raises EditInProgressError at once.
"""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from ledgerbook.audit import AuditLogger, configure_logging, create_correlation_id
from ledgerbook.config import AppSettings, get_settings
from ledgerbook.models.ledger import (
    Account,
    BalanceUpdate,
    EntryDraft,
    EntryType,
    LedgerRecordBase,
    ReconciliationPlan,
)
from ledgerbook.queries import LedgerQueryExecutor
from ledgerbook.reconciliation import (
    EditInProgressError,
    InsufficientFundsError,
    PersistenceError,
    ReconciliationError,
    ValidationError,
    reconcile_create,
    reconcile_delete,
    reconcile_edit,
)
from ledgerbook.services.storage import (
    AccountStorageInterface,
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryLedgerStorage,
    InMemoryLoanStorage,
    LedgerStorageInterface,
    StorageError,
)
from ledgerbook.services.storage.google_sheets import (
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    GoogleSheetsLoanStorage,
)
from ledgerbook.validation import EntryValidator

if TYPE_CHECKING:
    from ledgerbook.loans import LoanManager


logger = structlog.get_logger("ledgerbook.editor")


class PendingSave(BaseModel):
    """A plan whose application stopped part-way."""

    plan: ReconciliationPlan
    action: str = Field(..., pattern="^(created|updated|deleted)$")
    applied: list[BalanceUpdate] = Field(default_factory=list)
    record_done: bool = False
    attempts: int = 0

    @property
    def entity_type(self) -> str:
        record = self.plan.persist or self.plan.delete
        return "transfer" if record.type == EntryType.TRANSFER else "transaction"

    @property
    def record(self) -> LedgerRecordBase:
        return self.plan.persist or self.plan.delete

    def is_applied(self, account_id: UUID) -> bool:
        return any(u.account_id == account_id for u in self.applied)


def _next_updated_at(previous: datetime) -> datetime:
    """updated_at strictly increases per edit, so every version gets its own key."""
    return max(datetime.utcnow(), previous + timedelta(microseconds=1))


class LedgerEditor:
    """
    Creates, edits and deletes ledger records while keeping
    account balances consistent.

    Flow for an edit:
    1. Validate the draft → ValidationError with issues
    2. Load the stored record → ValidationError if missing
    3. Fetch every account either version touches
    4. Reconcile → ValidationError / InsufficientFundsError, nothing written
    5. Write balance updates in plan order
    6. Write the record
    7. Audit

    Any storage failure in 5 or 6 raises PersistenceError and the plan
    becomes pending.
    """

    def __init__(
        self,
        account_storage: AccountStorageInterface,
        ledger_storage: LedgerStorageInterface,
        validator: Optional[EntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._accounts = account_storage
        self._ledger = ledger_storage
        self._settings = settings or get_settings().app
        self._validator = validator or EntryValidator(self._settings)
        self._audit_logger = audit_logger
        self._saving = False
        self._pending: Optional[PendingSave] = None

    @property
    def saving(self) -> bool:
        """True while a save is in flight."""
        return self._saving

    @property
    def pending(self) -> Optional[PendingSave]:
        """The last failed save, if it has not been retried successfully."""
        return self._pending

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def create_transaction(
        self,
        draft: EntryDraft,
        correlation_id: Optional[UUID] = None,
        record_id: Optional[UUID] = None,
    ) -> LedgerRecordBase:
        """
        Add an income or expense record and apply it to its account.

        `record_id` lets a caller that links to the record (a loan, a
        repayment) choose its ID up front.
        """
        correlation_id = correlation_id or create_correlation_id()
        return await self._guarded(
            "transaction", record_id, correlation_id,
            lambda: self._create(draft, "transaction", correlation_id, record_id),
        )

    async def create_transfer(
        self,
        draft: EntryDraft,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerRecordBase:
        """Add a transfer and move the money between the two accounts."""
        correlation_id = correlation_id or create_correlation_id()
        return await self._guarded(
            "transfer", None, correlation_id,
            lambda: self._create(draft, "transfer", correlation_id, None),
        )

    async def edit_transaction(
        self,
        transaction_id: UUID,
        draft: EntryDraft,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerRecordBase:
        """
        Replace an income/expense record.

        The type may switch between income and expense. The account
        and amount may change freely.
        """
        correlation_id = correlation_id or create_correlation_id()
        return await self._guarded(
            "transaction", transaction_id, correlation_id,
            lambda: self._edit(transaction_id, draft, "transaction", correlation_id),
        )

    async def edit_transfer(
        self,
        transfer_id: UUID,
        draft: EntryDraft,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerRecordBase:
        """Replace a transfer. Either account may change."""
        correlation_id = correlation_id or create_correlation_id()
        return await self._guarded(
            "transfer", transfer_id, correlation_id,
            lambda: self._edit(transfer_id, draft, "transfer", correlation_id),
        )

    async def delete_transaction(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerRecordBase:
        """Remove an income/expense record and reverse its effect."""
        correlation_id = correlation_id or create_correlation_id()
        return await self._guarded(
            "transaction", transaction_id, correlation_id,
            lambda: self._delete(transaction_id, "transaction", correlation_id),
        )

    async def delete_transfer(
        self,
        transfer_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerRecordBase:
        """Remove a transfer and reverse its effect."""
        correlation_id = correlation_id or create_correlation_id()
        return await self._guarded(
            "transfer", transfer_id, correlation_id,
            lambda: self._delete(transfer_id, "transfer", correlation_id),
        )

    async def retry_pending(
        self,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[LedgerRecordBase]:
        """
        Finish the last failed save.

        Balance updates that already landed and a record write that already
        happened are skipped. Returns None when nothing is pending.
        """
        if self._pending is None:
            return None

        correlation_id = correlation_id or create_correlation_id()
        pending = self._pending

        async def work() -> LedgerRecordBase:
            if self._audit_logger:
                await self._audit_logger.log_pending_retried(
                    entity_type=pending.entity_type,
                    record_id=pending.record.id,
                    idempotency_key=pending.plan.idempotency_key,
                    correlation_id=correlation_id,
                )
            return await self._apply(pending, correlation_id)

        return await self._guarded(
            pending.entity_type, pending.record.id, correlation_id, work,
            allow_pending=True,
        )

    def discard_pending(self) -> Optional[PendingSave]:
        """
        Forget the pending save without finishing it.

        The balances it already wrote stay as they are.
        """
        pending, self._pending = self._pending, None
        if pending is not None:
            logger.warning(
                "pending_save_discarded",
                idempotency_key=pending.plan.idempotency_key,
                applied=[str(u.account_id) for u in pending.applied],
            )
        return pending

    # -------------------------------------------------------------------------
    # Flows
    # -------------------------------------------------------------------------

    async def _guarded(
        self,
        entity_type: str,
        entity_id: Optional[UUID],
        correlation_id: UUID,
        work: Callable[[], Awaitable[LedgerRecordBase]],
        allow_pending: bool = False,
    ) -> LedgerRecordBase:
        # Check-and-set happens before the first await.
        if self._saving or (self._pending is not None and not allow_pending):
            message = (
                "A save is already in progress"
                if self._saving
                else "A failed save is pending; retry or discard it first"
            )
            if self._audit_logger:
                await self._audit_logger.log_edit_in_progress(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    correlation_id=correlation_id,
                )
            raise EditInProgressError(message)

        self._saving = True
        try:
            return await work()
        except ReconciliationError:
            raise
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"entity_type": entity_type},
                    correlation_id=correlation_id,
                )
            raise
        finally:
            self._saving = False

    async def _create(
        self,
        draft: EntryDraft,
        entity_type: str,
        correlation_id: UUID,
        record_id: Optional[UUID],
    ) -> LedgerRecordBase:
        await self._validate(draft, entity_type, record_id, correlation_id)
        new = await self._build(
            draft, entity_type, correlation_id, record_id=record_id
        )

        accounts = await self._fetch_accounts(new.account_ids, correlation_id)
        plan = await self._reconcile(
            lambda: reconcile_create(
                new, accounts, self._settings.enforce_expense_funds
            ),
            entity_type, new.id, correlation_id,
        )
        return await self._apply(PendingSave(plan=plan, action="created"), correlation_id)

    async def _edit(
        self,
        record_id: UUID,
        draft: EntryDraft,
        entity_type: str,
        correlation_id: UUID,
    ) -> LedgerRecordBase:
        await self._validate(draft, entity_type, record_id, correlation_id)
        old = await self._load(record_id, entity_type, correlation_id)
        new = await self._build(
            draft,
            entity_type,
            correlation_id,
            record_id=old.id,
            created_at=old.created_at,
            updated_at=_next_updated_at(old.updated_at),
        )

        accounts = await self._fetch_accounts(
            old.account_ids + new.account_ids, correlation_id
        )
        plan = await self._reconcile(
            lambda: reconcile_edit(
                old, new, accounts, self._settings.enforce_expense_funds
            ),
            entity_type, record_id, correlation_id,
        )
        return await self._apply(PendingSave(plan=plan, action="updated"), correlation_id)

    async def _delete(
        self,
        record_id: UUID,
        entity_type: str,
        correlation_id: UUID,
    ) -> LedgerRecordBase:
        old = await self._load(record_id, entity_type, correlation_id)
        accounts = await self._fetch_accounts(old.account_ids, correlation_id)
        plan = await self._reconcile(
            lambda: reconcile_delete(old, accounts),
            entity_type, record_id, correlation_id,
        )
        return await self._apply(PendingSave(plan=plan, action="deleted"), correlation_id)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _validate(
        self,
        draft: EntryDraft,
        entity_type: str,
        record_id: Optional[UUID],
        correlation_id: UUID,
    ) -> None:
        is_transfer = draft.type == EntryType.TRANSFER
        if is_transfer != (entity_type == "transfer"):
            raise ValidationError(
                f"A {draft.type.value} entry cannot be saved as a {entity_type}"
            )

        result = self._validator.validate(draft)
        if result.has_errors:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    entity_type=entity_type,
                    entity_id=record_id,
                    issues=[
                        {"field": i.field, "type": i.issue_type, "message": i.message}
                        for i in result.issues
                    ],
                    correlation_id=correlation_id,
                )
            raise ValidationError(
                self._validator.get_user_friendly_summary(result),
                issues=result.issues,
            )

    async def _build(
        self,
        draft: EntryDraft,
        entity_type: str,
        correlation_id: UUID,
        **kwargs,
    ) -> LedgerRecordBase:
        try:
            return self._validator.build_record(draft, **kwargs)
        except ValidationError as e:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    entity_type=entity_type,
                    entity_id=kwargs.get("record_id"),
                    issues=[
                        {"field": i.field, "type": i.issue_type, "message": i.message}
                        for i in e.issues
                    ],
                    correlation_id=correlation_id,
                )
            raise

    async def _load(
        self,
        record_id: UUID,
        entity_type: str,
        correlation_id: UUID,
    ) -> LedgerRecordBase:
        try:
            if entity_type == "transfer":
                record = await self._ledger.get_transfer_by_id(record_id)
            else:
                record = await self._ledger.get_transaction_by_id(record_id)
        except StorageError as e:
            await self._storage_failed(e, correlation_id)
            raise PersistenceError(f"Failed to load {entity_type}: {e}") from e

        if record is None:
            raise ValidationError(f"{entity_type.capitalize()} not found: {record_id}")
        return record

    async def _fetch_accounts(
        self,
        account_ids: Iterable[UUID],
        correlation_id: UUID,
    ) -> dict[UUID, Account]:
        """Missing accounts are left out; the engine reports them."""
        accounts: dict[UUID, Account] = {}
        try:
            for account_id in account_ids:
                if account_id in accounts:
                    continue
                account = await self._accounts.fetch_account(account_id)
                if account is not None:
                    accounts[account_id] = account
        except StorageError as e:
            await self._storage_failed(e, correlation_id)
            raise PersistenceError(f"Failed to fetch accounts: {e}") from e
        return accounts

    async def _reconcile(
        self,
        compute: Callable[[], ReconciliationPlan],
        entity_type: str,
        record_id: UUID,
        correlation_id: UUID,
    ) -> ReconciliationPlan:
        try:
            return compute()
        except InsufficientFundsError as e:
            if self._audit_logger:
                await self._audit_logger.log_insufficient_funds(
                    account_id=e.account_id,
                    available=e.available,
                    requested=e.requested,
                    correlation_id=correlation_id,
                )
            raise
        except ValidationError as e:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    entity_type=entity_type,
                    entity_id=record_id,
                    issues=[{"field": "record", "type": "invalid_value", "message": str(e)}],
                    correlation_id=correlation_id,
                )
            raise

    async def _persist(self, pending: PendingSave) -> None:
        record = pending.record
        is_transfer = record.type == EntryType.TRANSFER

        if pending.action == "created":
            if is_transfer:
                await self._ledger.add_transfer(record)
            else:
                await self._ledger.add_transaction(record)
        elif pending.action == "updated":
            if is_transfer:
                await self._ledger.update_transfer(record)
            else:
                await self._ledger.update_transaction(record)
        else:
            if is_transfer:
                await self._ledger.delete_transfer(record.id)
            else:
                await self._ledger.delete_transaction(record.id)

    async def _apply(
        self,
        pending: PendingSave,
        correlation_id: UUID,
    ) -> LedgerRecordBase:
        """
        Write the plan: balances in order, then the record.

        Raises:
            PersistenceError: A store call failed. The plan is kept as pending.
        """
        pending.attempts += 1
        plan = pending.plan

        try:
            for update in plan.balance_updates:
                if pending.is_applied(update.account_id):
                    continue
                await self._accounts.update_account_balance(
                    update.account_id, update.new_balance
                )
                pending.applied.append(update)
                if self._audit_logger:
                    await self._audit_logger.log_balance_updated(
                        account_id=update.account_id,
                        previous_balance=update.previous_balance,
                        new_balance=update.new_balance,
                        correlation_id=correlation_id,
                    )

            if not pending.record_done:
                await self._persist(pending)
                pending.record_done = True
        except StorageError as e:
            self._pending = pending
            logger.error(
                "save_failed",
                idempotency_key=plan.idempotency_key,
                applied=[str(u.account_id) for u in pending.applied],
                attempts=pending.attempts,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    entity_type=pending.entity_type,
                    record_id=pending.record.id,
                    error_message=str(e),
                    applied_accounts=[u.account_id for u in pending.applied],
                    correlation_id=correlation_id,
                )
            raise PersistenceError(
                f"Save stopped after {len(pending.applied)} of "
                f"{len(plan.balance_updates)} balance updates: {e}",
                plan=plan,
                applied=list(pending.applied),
            ) from e

        self._pending = None
        if self._audit_logger:
            await self._audit_logger.log_record_saved(
                entity_type=pending.entity_type,
                record_id=pending.record.id,
                action=pending.action,
                amount=pending.record.amount,
                correlation_id=correlation_id,
            )
        return pending.record

    async def _storage_failed(self, error: Exception, correlation_id: UUID) -> None:
        if self._audit_logger:
            await self._audit_logger.log_external_service_error(
                service="storage",
                error_message=str(error),
                correlation_id=correlation_id,
            )


def create_app_components(
    use_storage: bool = True,
) -> tuple[LedgerEditor, "LoanManager", LedgerQueryExecutor, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Configures logging at LEDGER_LOG_LEVEL first.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory stores.

    Returns:
        (editor, loan_manager, query_executor, sheets_client)
    """
    from ledgerbook.loans import LoanManager

    configure_logging(get_settings().app.log_level)
    sheets_client = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            account_storage = GoogleSheetsAccountStorage(sheets_client)
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            loan_storage = GoogleSheetsLoanStorage(sheets_client)
            budget_storage = GoogleSheetsBudgetStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            logger.warning("storage_not_configured", error=str(e))
            use_storage = False

    if not use_storage:
        sheets_client = None
        account_storage = InMemoryAccountStorage()
        ledger_storage = InMemoryLedgerStorage()
        loan_storage = InMemoryLoanStorage()
        budget_storage = InMemoryBudgetStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    editor = LedgerEditor(
        account_storage=account_storage,
        ledger_storage=ledger_storage,
        audit_logger=audit_logger,
    )
    loan_manager = LoanManager(
        editor=editor,
        loan_storage=loan_storage,
        ledger_storage=ledger_storage,
        audit_logger=audit_logger,
    )
    query_executor = LedgerQueryExecutor(ledger_storage, budget_storage)

    return editor, loan_manager, query_executor, sheets_client
