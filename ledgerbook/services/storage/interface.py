"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a hosted database later
2. Use in-memory storage for testing
3. Keep the reconciliation logic decoupled from the backend

The backend gives us per-call atomicity only. There is no way to wrap
several calls in one transaction, which is why the editor orders its
calls carefully and keeps failed plans for retry.
"""

from abc import ABC, abstractmethod
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


class AccountStorageInterface(ABC):
    """
    Abstract interface for the account store.

    Balances are overwritten, never incremented: the caller computes
    the final value.
    """

    @abstractmethod
    async def fetch_account(self, account_id: UUID) -> Optional[Account]:
        """
        Retrieve an account by its ID.

        Returns:
            The account if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """List all accounts, newest first."""
        pass

    @abstractmethod
    async def create_account(self, account: Account) -> Account:
        """
        Save a new account.

        Raises:
            DuplicateError: If an account with this ID exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def update_account_balance(
        self,
        account_id: UUID,
        new_balance: Decimal,
    ) -> Account:
        """
        Overwrite an account's stored balance.

        Args:
            account_id: The account to update
            new_balance: The final balance to store

        Returns:
            The updated account

        Raises:
            NotFoundError: If the account doesn't exist
            StorageError: If the update fails
        """
        pass


class LedgerStorageInterface(ABC):
    """
    Abstract interface for the ledger collections.

    Income and expense records live in the transactions collection,
    transfers in their own collection.
    """

    # -- transactions ---------------------------------------------------------

    @abstractmethod
    async def get_transaction_by_id(
        self,
        transaction_id: UUID,
    ) -> Optional[TransactionRecord]:
        """Retrieve an income/expense record, or None."""
        pass

    @abstractmethod
    async def add_transaction(self, record: TransactionRecord) -> bool:
        """
        Insert a new income/expense record.

        Raises:
            DuplicateError: If a record with this ID exists
        """
        pass

    @abstractmethod
    async def update_transaction(self, record: TransactionRecord) -> bool:
        """
        Replace a stored income/expense record.

        Raises:
            NotFoundError: If the record doesn't exist
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """Delete a record. Returns False if it was not there."""
        pass

    @abstractmethod
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
        """
        List income/expense records with optional filters, newest first.

        `limit=None` returns every match.
        """
        pass

    # -- transfers ------------------------------------------------------------

    @abstractmethod
    async def get_transfer_by_id(self, transfer_id: UUID) -> Optional[TransferRecord]:
        """Retrieve a transfer, or None."""
        pass

    @abstractmethod
    async def add_transfer(self, record: TransferRecord) -> bool:
        """Insert a new transfer."""
        pass

    @abstractmethod
    async def update_transfer(self, record: TransferRecord) -> bool:
        """
        Replace a stored transfer.

        Raises:
            NotFoundError: If the transfer doesn't exist
        """
        pass

    @abstractmethod
    async def delete_transfer(self, transfer_id: UUID) -> bool:
        """Delete a transfer. Returns False if it was not there."""
        pass

    @abstractmethod
    async def list_transfers(
        self,
        account_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = 100,
        offset: int = 0,
    ) -> list[TransferRecord]:
        """
        List transfers, newest first.

        `account_id` matches either side of the transfer.
        """
        pass


class LoanStorageInterface(ABC):
    """
    Abstract interface for loans and their repayments.

    These rows never carry balances; the ledger records they point to do.
    """

    @abstractmethod
    async def get_loan(self, loan_id: UUID) -> Optional[Loan]:
        pass

    @abstractmethod
    async def list_loans(
        self,
        status: Optional[LoanStatus] = None,
    ) -> list[Loan]:
        """List loans, newest first."""
        pass

    @abstractmethod
    async def add_loan(self, loan: Loan) -> bool:
        """
        Raises:
            DuplicateError: If a loan with this ID exists
        """
        pass

    @abstractmethod
    async def update_loan(self, loan: Loan) -> bool:
        """
        Raises:
            NotFoundError: If the loan doesn't exist
        """
        pass

    @abstractmethod
    async def delete_loan(self, loan_id: UUID) -> bool:
        """Delete a loan. Returns False if it was not there."""
        pass

    @abstractmethod
    async def get_repayment(self, repayment_id: UUID) -> Optional[LoanRepayment]:
        pass

    @abstractmethod
    async def list_repayments(self, loan_id: UUID) -> list[LoanRepayment]:
        """Repayments of one loan, newest payment first."""
        pass

    @abstractmethod
    async def add_repayment(self, repayment: LoanRepayment) -> bool:
        pass

    @abstractmethod
    async def delete_repayment(self, repayment_id: UUID) -> bool:
        """Delete a repayment. Returns False if it was not there."""
        pass


class BudgetStorageInterface(ABC):
    """Abstract interface for category budgets."""

    @abstractmethod
    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        pass

    @abstractmethod
    async def list_budgets(
        self,
        active_only: bool = True,
        category: Optional[str] = None,
        period: Optional[BudgetPeriod] = None,
        account_id: Optional[UUID] = None,
    ) -> list[Budget]:
        """
        List budgets, newest first.

        Category matching is case-insensitive.
        """
        pass

    @abstractmethod
    async def add_budget(self, budget: Budget) -> bool:
        pass

    @abstractmethod
    async def update_budget(self, budget: Budget) -> bool:
        """
        Raises:
            NotFoundError: If the budget doesn't exist
        """
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: UUID) -> bool:
        pass

    async def deactivate_budget(self, budget_id: UUID) -> Budget:
        """
        Switch a budget off without deleting it.

        Raises:
            NotFoundError: If the budget doesn't exist
        """
        budget = await self.get_budget(budget_id)
        if budget is None:
            raise NotFoundError(f"Budget not found: {budget_id}")
        budget = budget.model_copy(update={
            "is_active": False,
            "updated_at": datetime.utcnow(),
        })
        await self.update_budget(budget)
        return budget


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one edit).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
