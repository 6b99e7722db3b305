"""
Tests for personal loans and repayments.

Loans move balances only through ledger records saved by the editor, so
these check both the loan rows and the account balances.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import expense_draft
from ledgerbook.audit import AuditLogger
from ledgerbook.editor import LedgerEditor
from ledgerbook.loans import LoanManager
from ledgerbook.models.audit import AuditEventType
from ledgerbook.models.ledger import EntryType
from ledgerbook.models.loan import (
    LOAN_CATEGORY,
    REPAYMENT_CATEGORY,
    LoanStatus,
    LoanType,
)
from ledgerbook.reconciliation import (
    EditInProgressError,
    InsufficientFundsError,
    PersistenceError,
    ValidationError,
)
from ledgerbook.services.storage import (
    InMemoryLedgerStorage,
    InMemoryLoanStorage,
    StorageError,
)


class FlakyLedgerStorage(InMemoryLedgerStorage):
    """Fails the first record insert."""

    def __init__(self):
        super().__init__()
        self.add_calls = 0

    async def add_transaction(self, record):
        self.add_calls += 1
        if self.add_calls == 1:
            raise StorageError("timeout")
        return await super().add_transaction(record)


@pytest.fixture
def loan_storage() -> InMemoryLoanStorage:
    return InMemoryLoanStorage()


@pytest.fixture
def loans(editor, loan_storage, ledger_storage, audit_storage) -> LoanManager:
    return LoanManager(
        editor=editor,
        loan_storage=loan_storage,
        ledger_storage=ledger_storage,
        audit_logger=AuditLogger(audit_storage),
    )


@pytest.fixture
def strict_editor(account_storage, ledger_storage, settings) -> LedgerEditor:
    """Expenses may not overdraw, so a loan posting can be refused."""
    strict = settings.model_copy(update={"enforce_expense_funds": True})
    return LedgerEditor(account_storage, ledger_storage, settings=strict)


@pytest.fixture
def strict_loans(strict_editor, loan_storage, ledger_storage) -> LoanManager:
    return LoanManager(strict_editor, loan_storage, ledger_storage)


async def balance(storage, account) -> Decimal:
    return (await storage.fetch_account(account.id)).amount


class TestCreateLoan:

    @pytest.mark.asyncio
    async def test_loan_taken_is_income(self, loans, account_storage, ledger_storage, account_b):
        """Borrowed money arrives in the account as a Loans income."""
        loan = await loans.create_loan(
            LoanType.LOAN_TAKEN, "Alex", account_b.id, "200",
            start_date=date(2024, 3, 1),
        )

        assert loan.remaining_amount == Decimal("200.00")
        assert loan.status == LoanStatus.ACTIVE
        assert await balance(account_storage, account_b) == Decimal("300.00")

        record = await ledger_storage.get_transaction_by_id(loan.ledger_record_id)
        assert record.type == EntryType.INCOME
        assert record.category == LOAN_CATEGORY
        assert record.description == "Loan taken from Alex"
        assert record.date == date(2024, 3, 1)

    @pytest.mark.asyncio
    async def test_loan_given_is_expense(self, loans, account_storage, ledger_storage, account_a):
        loan = await loans.create_loan(LoanType.LOAN_GIVEN, "Sam", account_a.id, "100")

        assert await balance(account_storage, account_a) == Decimal("400.00")
        record = await ledger_storage.get_transaction_by_id(loan.ledger_record_id)
        assert record.type == EntryType.EXPENSE
        assert record.description == "Loan given to Sam"

    @pytest.mark.asyncio
    async def test_loan_created_is_audited(self, loans, audit_storage, account_a):
        loan = await loans.create_loan(LoanType.LOAN_GIVEN, "Sam", account_a.id, "100")

        events = await audit_storage.get_events_by_entity("loan", loan.id)
        assert [e.event_type for e in events] == [AuditEventType.LOAN_CREATED]
        assert events[0].details["remaining_amount"] == "100.00"

    @pytest.mark.asyncio
    async def test_invalid_amount(self, loans, loan_storage, account_a):
        with pytest.raises(ValidationError) as exc_info:
            await loans.create_loan(LoanType.LOAN_GIVEN, "Sam", account_a.id, "abc")

        assert exc_info.value.issues[0].field == "amount"
        assert await loan_storage.list_loans() == []

    @pytest.mark.asyncio
    async def test_missing_party(self, loans, loan_storage, account_a):
        with pytest.raises(ValidationError) as exc_info:
            await loans.create_loan(LoanType.LOAN_GIVEN, "  ", account_a.id, "10")

        assert exc_info.value.issues[0].field == "party_name"
        assert await loan_storage.list_loans() == []

    @pytest.mark.asyncio
    async def test_refused_posting_removes_loan(
        self, strict_loans, loan_storage, account_storage, ledger_storage, account_b
    ):
        """If the account can't fund a loan given, no loan row is left behind."""
        with pytest.raises(InsufficientFundsError):
            await strict_loans.create_loan(
                LoanType.LOAN_GIVEN, "Sam", account_b.id, "150"
            )

        assert await loan_storage.list_loans() == []
        assert await ledger_storage.list_transactions() == []
        assert await balance(account_storage, account_b) == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_unknown_account(self, loans, loan_storage):
        with pytest.raises(ValidationError):
            await loans.create_loan(LoanType.LOAN_TAKEN, "Alex", uuid4(), "10")

        assert await loan_storage.list_loans() == []


class TestRepayments:

    @pytest.mark.asyncio
    async def test_repayment_reduces_remaining(
        self, loans, account_storage, ledger_storage, account_b
    ):
        """Paying back borrowed money is an expense on the same account."""
        loan = await loans.create_loan(LoanType.LOAN_TAKEN, "Alex", account_b.id, "200")

        repayment = await loans.record_repayment(loan.id, "50")

        stored = await loans.get_loan(loan.id)
        assert stored.remaining_amount == Decimal("150.00")
        assert stored.status == LoanStatus.PARTIAL
        assert await balance(account_storage, account_b) == Decimal("250.00")

        record = await ledger_storage.get_transaction_by_id(repayment.ledger_record_id)
        assert record.type == EntryType.EXPENSE
        assert record.category == REPAYMENT_CATEGORY
        assert record.description == "Loan repayment to Alex"

    @pytest.mark.asyncio
    async def test_repayment_received_is_income(self, loans, account_storage, account_a):
        loan = await loans.create_loan(LoanType.LOAN_GIVEN, "Sam", account_a.id, "100")

        await loans.record_repayment(loan.id, "40")

        assert await balance(account_storage, account_a) == Decimal("440.00")

    @pytest.mark.asyncio
    async def test_full_repayment_settles(self, loans, account_a):
        loan = await loans.create_loan(LoanType.LOAN_GIVEN, "Sam", account_a.id, "100")

        await loans.record_repayment(loan.id, "60")
        await loans.record_repayment(loan.id, "40")

        stored = await loans.get_loan(loan.id)
        assert stored.remaining_amount == Decimal("0")
        assert stored.status == LoanStatus.SETTLED
        assert len(await loans.list_repayments(loan.id)) == 2

    @pytest.mark.asyncio
    async def test_settled_loan_takes_no_repayment(self, loans, account_a):
        loan = await loans.create_loan(LoanType.LOAN_GIVEN, "Sam", account_a.id, "100")
        await loans.record_repayment(loan.id, "100")

        with pytest.raises(ValidationError, match="already fully repaid"):
            await loans.record_repayment(loan.id, "1")

    @pytest.mark.asyncio
    async def test_repayment_over_remaining_rejected(self, loans, account_storage, account_b):
        loan = await loans.create_loan(LoanType.LOAN_TAKEN, "Alex", account_b.id, "200")

        with pytest.raises(ValidationError, match="cannot exceed remaining amount"):
            await loans.record_repayment(loan.id, "200.01")

        assert (await loans.get_loan(loan.id)).remaining_amount == Decimal("200.00")
        assert await loans.list_repayments(loan.id) == []
        assert await balance(account_storage, account_b) == Decimal("300.00")

    @pytest.mark.asyncio
    async def test_unknown_loan(self, loans):
        with pytest.raises(ValidationError, match="Loan not found"):
            await loans.record_repayment(uuid4(), "10")

    @pytest.mark.asyncio
    async def test_refused_repayment_restores_loan(
        self, strict_loans, strict_editor, account_storage, account_b
    ):
        """A repayment the account can't cover leaves the loan as it was."""
        loan = await strict_loans.create_loan(
            LoanType.LOAN_TAKEN, "Alex", account_b.id, "200"
        )
        await strict_editor.create_transaction(expense_draft(account_b.id, "250"))

        with pytest.raises(InsufficientFundsError):
            await strict_loans.record_repayment(loan.id, "100")

        stored = await strict_loans.get_loan(loan.id)
        assert stored.remaining_amount == Decimal("200.00")
        assert stored.status == LoanStatus.ACTIVE
        assert await strict_loans.list_repayments(loan.id) == []
        assert await balance(account_storage, account_b) == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_delete_repayment_reopens_loan(
        self, loans, account_storage, ledger_storage, account_b
    ):
        loan = await loans.create_loan(LoanType.LOAN_TAKEN, "Alex", account_b.id, "200")
        repayment = await loans.record_repayment(loan.id, "200")

        await loans.delete_repayment(repayment.id)

        stored = await loans.get_loan(loan.id)
        assert stored.remaining_amount == Decimal("200.00")
        assert stored.status == LoanStatus.ACTIVE
        assert await loans.list_repayments(loan.id) == []
        assert await ledger_storage.get_transaction_by_id(repayment.ledger_record_id) is None
        assert await balance(account_storage, account_b) == Decimal("300.00")


class TestDeleteLoan:

    @pytest.mark.asyncio
    async def test_delete_reverses_everything(
        self, loans, account_storage, ledger_storage, loan_storage, audit_storage, account_a
    ):
        """Deleting a loan leaves the account as if it had never been recorded."""
        loan = await loans.create_loan(LoanType.LOAN_GIVEN, "Sam", account_a.id, "300")
        await loans.record_repayment(loan.id, "100")
        await loans.record_repayment(loan.id, "50")
        assert await balance(account_storage, account_a) == Decimal("350.00")

        await loans.delete_loan(loan.id)

        assert await balance(account_storage, account_a) == Decimal("500.00")
        assert await loan_storage.get_loan(loan.id) is None
        assert await loan_storage.list_repayments(loan.id) == []
        assert await ledger_storage.list_transactions() == []

        events = await audit_storage.get_events_by_entity("loan", loan.id)
        assert AuditEventType.LOAN_DELETED in [e.event_type for e in events]

    @pytest.mark.asyncio
    async def test_delete_skips_missing_ledger_record(
        self, loans, editor, account_storage, loan_storage, account_a
    ):
        """A loan whose ledger record is already gone can still be removed."""
        loan = await loans.create_loan(LoanType.LOAN_GIVEN, "Sam", account_a.id, "100")
        await editor.delete_transaction(loan.ledger_record_id)

        await loans.delete_loan(loan.id)

        assert await loan_storage.get_loan(loan.id) is None
        assert await balance(account_storage, account_a) == Decimal("500.00")


class TestPendingSaves:

    @pytest.mark.asyncio
    async def test_failed_posting_keeps_loan_and_blocks(
        self, account_storage, loan_storage, settings, account_b
    ):
        """A half-written posting stays pending; loans wait until it is retried."""
        ledger = FlakyLedgerStorage()
        editor = LedgerEditor(account_storage, ledger, settings=settings)
        loans = LoanManager(editor, loan_storage, ledger)

        with pytest.raises(PersistenceError):
            await loans.create_loan(LoanType.LOAN_TAKEN, "Alex", account_b.id, "200")

        [loan] = await loan_storage.list_loans()
        assert editor.pending is not None

        with pytest.raises(EditInProgressError):
            await loans.create_loan(LoanType.LOAN_TAKEN, "Kim", account_b.id, "10")

        await editor.retry_pending()

        assert await ledger.get_transaction_by_id(loan.ledger_record_id) is not None
        assert await balance(account_storage, account_b) == Decimal("300.00")
        await loans.record_repayment(loan.id, "20")
        assert await balance(account_storage, account_b) == Decimal("280.00")
