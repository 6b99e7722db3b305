"""
In-Memory Storage Implementation

Used for tests and local runs without a spreadsheet. Behaves like the
Google Sheets backend: per-call atomic, no transactions, copies in and out
so callers can't mutate stored rows by accident.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from ledgerbook.models.audit import AuditEvent
from ledgerbook.models.budget import Budget, BudgetPeriod
from ledgerbook.models.ledger import (
    Account,
    EntryType,
    TransactionRecord,
    TransferRecord,
)
from ledgerbook.models.loan import Loan, LoanRepayment, LoanStatus
from ledgerbook.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    LoanStorageInterface,
    NotFoundError,
)


def _in_range(
    record_date: date,
    date_from: Optional[date],
    date_to: Optional[date],
) -> bool:
    if date_from and record_date < date_from:
        return False
    if date_to and record_date > date_to:
        return False
    return True


class InMemoryAccountStorage(AccountStorageInterface):
    """Account store backed by a dict."""

    def __init__(self, accounts: Optional[list[Account]] = None):
        self._accounts: dict[UUID, Account] = {}
        for account in accounts or []:
            self._accounts[account.id] = account.model_copy()

    async def fetch_account(self, account_id: UUID) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy() if account else None

    async def list_accounts(self) -> list[Account]:
        accounts = [a.model_copy() for a in self._accounts.values()]
        accounts.sort(key=lambda a: a.created_at, reverse=True)
        return accounts

    async def create_account(self, account: Account) -> Account:
        if account.id in self._accounts:
            raise DuplicateError(f"Account already exists: {account.id}")
        self._accounts[account.id] = account.model_copy()
        return account.model_copy()

    async def update_account_balance(
        self,
        account_id: UUID,
        new_balance: Decimal,
    ) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")
        updated = account.model_copy(update={
            "amount": new_balance,
            "updated_at": datetime.utcnow(),
        })
        self._accounts[account_id] = updated
        return updated.model_copy()


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger store backed by two dicts."""

    def __init__(self):
        self._transactions: dict[UUID, TransactionRecord] = {}
        self._transfers: dict[UUID, TransferRecord] = {}

    async def get_transaction_by_id(
        self,
        transaction_id: UUID,
    ) -> Optional[TransactionRecord]:
        record = self._transactions.get(transaction_id)
        return record.model_copy() if record else None

    async def add_transaction(self, record: TransactionRecord) -> bool:
        if record.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {record.id}")
        self._transactions[record.id] = record.model_copy()
        return True

    async def update_transaction(self, record: TransactionRecord) -> bool:
        if record.id not in self._transactions:
            raise NotFoundError(f"Transaction not found: {record.id}")
        self._transactions[record.id] = record.model_copy()
        return True

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    async def list_transactions(
        self,
        account_id: Optional[UUID] = None,
        entry_type: Optional[EntryType] = None,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = 100,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        records = []
        for record in self._transactions.values():
            if account_id and record.account_id != account_id:
                continue
            if entry_type and record.type != entry_type:
                continue
            if category and record.category.lower() != category.lower():
                continue
            if not _in_range(record.date, date_from, date_to):
                continue
            records.append(record.model_copy())

        records.sort(key=lambda r: (r.date, r.created_at), reverse=True)
        return records[offset:] if limit is None else records[offset:offset + limit]

    async def get_transfer_by_id(self, transfer_id: UUID) -> Optional[TransferRecord]:
        record = self._transfers.get(transfer_id)
        return record.model_copy() if record else None

    async def add_transfer(self, record: TransferRecord) -> bool:
        if record.id in self._transfers:
            raise DuplicateError(f"Transfer already exists: {record.id}")
        self._transfers[record.id] = record.model_copy()
        return True

    async def update_transfer(self, record: TransferRecord) -> bool:
        if record.id not in self._transfers:
            raise NotFoundError(f"Transfer not found: {record.id}")
        self._transfers[record.id] = record.model_copy()
        return True

    async def delete_transfer(self, transfer_id: UUID) -> bool:
        return self._transfers.pop(transfer_id, None) is not None

    async def list_transfers(
        self,
        account_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = 100,
        offset: int = 0,
    ) -> list[TransferRecord]:
        records = []
        for record in self._transfers.values():
            if account_id and account_id not in (record.from_account_id, record.to_account_id):
                continue
            if not _in_range(record.date, date_from, date_to):
                continue
            records.append(record.model_copy())

        records.sort(key=lambda r: (r.date, r.created_at), reverse=True)
        return records[offset:] if limit is None else records[offset:offset + limit]


class InMemoryLoanStorage(LoanStorageInterface):
    """Loans and repayments backed by two dicts."""

    def __init__(self):
        self._loans: dict[UUID, Loan] = {}
        self._repayments: dict[UUID, LoanRepayment] = {}

    async def get_loan(self, loan_id: UUID) -> Optional[Loan]:
        loan = self._loans.get(loan_id)
        return loan.model_copy() if loan else None

    async def list_loans(
        self,
        status: Optional[LoanStatus] = None,
    ) -> list[Loan]:
        loans = [
            loan.model_copy() for loan in self._loans.values()
            if status is None or loan.status == status
        ]
        loans.sort(key=lambda loan: loan.created_at, reverse=True)
        return loans

    async def add_loan(self, loan: Loan) -> bool:
        if loan.id in self._loans:
            raise DuplicateError(f"Loan already exists: {loan.id}")
        self._loans[loan.id] = loan.model_copy()
        return True

    async def update_loan(self, loan: Loan) -> bool:
        if loan.id not in self._loans:
            raise NotFoundError(f"Loan not found: {loan.id}")
        self._loans[loan.id] = loan.model_copy()
        return True

    async def delete_loan(self, loan_id: UUID) -> bool:
        return self._loans.pop(loan_id, None) is not None

    async def get_repayment(self, repayment_id: UUID) -> Optional[LoanRepayment]:
        repayment = self._repayments.get(repayment_id)
        return repayment.model_copy() if repayment else None

    async def list_repayments(self, loan_id: UUID) -> list[LoanRepayment]:
        repayments = [
            r.model_copy() for r in self._repayments.values()
            if r.loan_id == loan_id
        ]
        repayments.sort(key=lambda r: (r.payment_date, r.created_at), reverse=True)
        return repayments

    async def add_repayment(self, repayment: LoanRepayment) -> bool:
        if repayment.id in self._repayments:
            raise DuplicateError(f"Repayment already exists: {repayment.id}")
        self._repayments[repayment.id] = repayment.model_copy()
        return True

    async def delete_repayment(self, repayment_id: UUID) -> bool:
        return self._repayments.pop(repayment_id, None) is not None


class InMemoryBudgetStorage(BudgetStorageInterface):
    """Budgets backed by a dict."""

    def __init__(self, budgets: Optional[list[Budget]] = None):
        self._budgets: dict[UUID, Budget] = {}
        for budget in budgets or []:
            self._budgets[budget.id] = budget.model_copy()

    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        budget = self._budgets.get(budget_id)
        return budget.model_copy() if budget else None

    async def list_budgets(
        self,
        active_only: bool = True,
        category: Optional[str] = None,
        period: Optional[BudgetPeriod] = None,
        account_id: Optional[UUID] = None,
    ) -> list[Budget]:
        budgets = []
        for budget in self._budgets.values():
            if active_only and not budget.is_active:
                continue
            if category and budget.category.lower() != category.lower():
                continue
            if period and budget.period != period:
                continue
            if account_id and budget.account_id != account_id:
                continue
            budgets.append(budget.model_copy())

        budgets.sort(key=lambda b: b.created_at, reverse=True)
        return budgets

    async def add_budget(self, budget: Budget) -> bool:
        if budget.id in self._budgets:
            raise DuplicateError(f"Budget already exists: {budget.id}")
        self._budgets[budget.id] = budget.model_copy()
        return True

    async def update_budget(self, budget: Budget) -> bool:
        if budget.id not in self._budgets:
            raise NotFoundError(f"Budget not found: {budget.id}")
        self._budgets[budget.id] = budget.model_copy()
        return True

    async def delete_budget(self, budget_id: UUID) -> bool:
        return self._budgets.pop(budget_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
