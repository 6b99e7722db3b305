"""
Personal Loans

Loans given to or taken from other people, and their repayments.

DESIGN DECISION: Loans never touch balances directly. Every loan and every
repayment is backed by an ordinary income/expense record that goes through
the editor, so balances move through the same reconciliation, write order,
pending-retry and audit path as any other record:
- loan_taken: principal is income, repayments are expenses
- loan_given: principal is an expense, repayments are income

Write order:
- Create: the loan/repayment row first, then the ledger record. If the
  editor refuses the record before writing anything, the rows are put back.
  If it fails part-way, the editor keeps the plan pending and the rows stay.
- Delete: the ledger record first, then the rows. A ledger record that is
  already gone is skipped, so an interrupted delete can simply be repeated.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Awaitable, Optional, TypeVar
from uuid import UUID

import pydantic
import structlog

from ledgerbook.audit import AuditLogger, create_correlation_id
from ledgerbook.editor import LedgerEditor
from ledgerbook.models.ledger import EntryDraft
from ledgerbook.models.loan import (
    LOAN_CATEGORY,
    REPAYMENT_CATEGORY,
    Loan,
    LoanRepayment,
    LoanStatus,
    LoanType,
    status_for,
)
from ledgerbook.models.validation import ValidationIssue
from ledgerbook.reconciliation import (
    EditInProgressError,
    PersistenceError,
    ReconciliationError,
    ValidationError,
)
from ledgerbook.services.storage import (
    LedgerStorageInterface,
    LoanStorageInterface,
    StorageError,
)
from ledgerbook.validation import issues_from_error, parse_amount


logger = structlog.get_logger("ledgerbook.loans")

T = TypeVar("T")


def _parse_loan_amount(raw: str) -> Decimal:
    amount = parse_amount(raw)
    if amount is None or amount <= 0:
        issue = ValidationIssue(
            field="amount",
            issue_type="invalid_value",
            message=f"'{raw}' is not a valid amount",
            severity="error",
            suggested_fix="Enter a positive number with at most two decimal places",
        )
        raise ValidationError(issue.message, issues=[issue])
    return amount


class LoanManager:
    """
    Records loans and repayments and keeps their account balances right.

    Repayments can never exceed what is still owed, and a loan's
    `remaining_amount` always equals principal minus recorded repayments.
    One loan operation runs at a time, and none starts while the editor
    is saving or holds a pending save.
    """

    def __init__(
        self,
        editor: LedgerEditor,
        loan_storage: LoanStorageInterface,
        ledger_storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._editor = editor
        self._loans = loan_storage
        self._ledger = ledger_storage
        self._audit_logger = audit_logger
        self._busy = False

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_loan(self, loan_id: UUID) -> Optional[Loan]:
        return await self._store(self._loans.get_loan(loan_id), "load loan")

    async def list_loans(self, status: Optional[LoanStatus] = None) -> list[Loan]:
        return await self._store(self._loans.list_loans(status), "list loans")

    async def list_repayments(self, loan_id: UUID) -> list[LoanRepayment]:
        return await self._store(self._loans.list_repayments(loan_id), "list repayments")

    # -------------------------------------------------------------------------
    # Loans
    # -------------------------------------------------------------------------

    async def create_loan(
        self,
        loan_type: LoanType,
        party_name: str,
        account_id: UUID,
        amount: str,
        start_date: Optional[date] = None,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Loan:
        """
        Record a new loan and move the principal on its account.

        Raises:
            ValidationError: Bad amount, party, dates or account
            InsufficientFundsError: Only for loan_given with expense funds enforced
            EditInProgressError: Another save is running or pending
            PersistenceError: A store call failed
        """
        correlation_id = correlation_id or create_correlation_id()
        principal = _parse_loan_amount(amount)
        try:
            loan = Loan(
                type=loan_type,
                party_name=party_name,
                account_id=account_id,
                principal_amount=principal,
                remaining_amount=principal,
                start_date=start_date or date.today(),
                due_date=due_date,
                notes=notes,
            )
        except pydantic.ValidationError as e:
            issues = issues_from_error(e)
            raise ValidationError(
                "Loan could not be saved: " + "; ".join(i.message for i in issues),
                issues=issues,
            ) from e

        self._claim()
        try:
            await self._store(self._loans.add_loan(loan), "save loan")
            draft = EntryDraft(
                type=loan.principal_entry_type,
                amount=str(loan.principal_amount),
                description=loan.principal_description,
                category=LOAN_CATEGORY,
                entry_date=loan.start_date,
                account_id=loan.account_id,
            )
            try:
                await self._editor.create_transaction(
                    draft, correlation_id, record_id=loan.ledger_record_id
                )
            except PersistenceError:
                raise
            except ReconciliationError:
                await self._store(self._loans.delete_loan(loan.id), "remove loan")
                raise
        finally:
            self._busy = False

        await self._audit("loan_created", loan, loan.principal_amount, correlation_id)
        return loan

    async def delete_loan(
        self,
        loan_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Loan:
        """
        Remove a loan, its repayments and all their ledger records.

        The account ends up as if the loan had never been recorded.
        """
        correlation_id = correlation_id or create_correlation_id()
        loan = await self._require_loan(loan_id)

        self._claim()
        try:
            repayments = await self._store(
                self._loans.list_repayments(loan.id), "list repayments"
            )
            for repayment in repayments:
                await self._delete_record(repayment.ledger_record_id, correlation_id)
                await self._store(
                    self._loans.delete_repayment(repayment.id), "delete repayment"
                )
            await self._delete_record(loan.ledger_record_id, correlation_id)
            await self._store(self._loans.delete_loan(loan.id), "delete loan")
        finally:
            self._busy = False

        await self._audit("loan_deleted", loan, loan.principal_amount, correlation_id)
        return loan

    # -------------------------------------------------------------------------
    # Repayments
    # -------------------------------------------------------------------------

    async def record_repayment(
        self,
        loan_id: UUID,
        amount: str,
        payment_date: Optional[date] = None,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> LoanRepayment:
        """
        Record a payment against a loan.

        Raises:
            ValidationError: Unknown loan, bad amount, loan already settled,
                or amount larger than what is still owed
        """
        correlation_id = correlation_id or create_correlation_id()
        paid = _parse_loan_amount(amount)

        self._claim()
        try:
            loan = await self._require_loan(loan_id)
            if loan.remaining_amount <= 0:
                raise ValidationError("Loan is already fully repaid")
            if paid > loan.remaining_amount:
                raise ValidationError(
                    f"Repayment amount cannot exceed remaining amount "
                    f"({loan.remaining_amount})"
                )

            repayment = LoanRepayment(
                loan_id=loan.id,
                amount=paid,
                payment_date=payment_date or date.today(),
                notes=notes,
            )
            updated = self._with_remaining(loan, loan.remaining_amount - paid)

            await self._store(self._loans.add_repayment(repayment), "save repayment")
            await self._store(self._loans.update_loan(updated), "update loan")

            draft = EntryDraft(
                type=loan.repayment_entry_type,
                amount=str(paid),
                description=loan.repayment_description,
                category=REPAYMENT_CATEGORY,
                entry_date=repayment.payment_date,
                account_id=loan.account_id,
            )
            try:
                await self._editor.create_transaction(
                    draft, correlation_id, record_id=repayment.ledger_record_id
                )
            except PersistenceError:
                raise
            except ReconciliationError:
                await self._store(self._loans.delete_repayment(repayment.id), "remove repayment")
                await self._store(self._loans.update_loan(loan), "restore loan")
                raise
        finally:
            self._busy = False

        await self._audit("repayment_recorded", updated, paid, correlation_id)
        return repayment

    async def delete_repayment(
        self,
        repayment_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> LoanRepayment:
        """Remove a repayment, reverse its ledger record and reopen the loan by its amount."""
        correlation_id = correlation_id or create_correlation_id()

        self._claim()
        try:
            repayment = await self._store(
                self._loans.get_repayment(repayment_id), "load repayment"
            )
            if repayment is None:
                raise ValidationError(f"Repayment not found: {repayment_id}")
            loan = await self._require_loan(repayment.loan_id)

            await self._delete_record(repayment.ledger_record_id, correlation_id)
            await self._store(self._loans.delete_repayment(repayment.id), "delete repayment")
            updated = self._with_remaining(
                loan, min(loan.principal_amount, loan.remaining_amount + repayment.amount)
            )
            await self._store(self._loans.update_loan(updated), "update loan")
        finally:
            self._busy = False

        await self._audit("repayment_deleted", updated, repayment.amount, correlation_id)
        return repayment

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _claim(self) -> None:
        # Check-and-set happens before the first await.
        if self._busy or self._editor.saving:
            raise EditInProgressError("A save is already in progress")
        if self._editor.pending is not None:
            raise EditInProgressError(
                "A failed save is pending; retry or discard it first"
            )
        self._busy = True

    async def _store(self, operation: Awaitable[T], what: str) -> T:
        try:
            return await operation
        except StorageError as e:
            logger.error("loan_store_failed", operation=what, error=str(e))
            raise PersistenceError(f"Failed to {what}: {e}") from e

    async def _require_loan(self, loan_id: UUID) -> Loan:
        loan = await self._store(self._loans.get_loan(loan_id), "load loan")
        if loan is None:
            raise ValidationError(f"Loan not found: {loan_id}")
        return loan

    async def _delete_record(self, record_id: UUID, correlation_id: UUID) -> None:
        record = await self._store(
            self._ledger.get_transaction_by_id(record_id), "load ledger record"
        )
        if record is None:
            logger.warning("loan_record_missing", record_id=str(record_id))
            return
        await self._editor.delete_transaction(record_id, correlation_id)

    @staticmethod
    def _with_remaining(loan: Loan, remaining: Decimal) -> Loan:
        return loan.model_copy(update={
            "remaining_amount": remaining,
            "status": status_for(remaining, loan.principal_amount),
            "updated_at": datetime.utcnow(),
        })

    async def _audit(
        self,
        action: str,
        loan: Loan,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_loan_event(
                action=action,
                loan_id=loan.id,
                amount=amount,
                remaining=loan.remaining_amount,
                correlation_id=correlation_id,
            )
