"""
Reconciliation error taxonomy.

Every error is raised BEFORE any balance is touched, except
PersistenceError, which reports how far the apply step got.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID


class ReconciliationError(Exception):
    """Base exception for ledger reconciliation."""
    pass


class ValidationError(ReconciliationError):
    """Input is malformed: missing account, equal transfer accounts, bad amount."""

    def __init__(self, message: str, issues: Optional[list] = None):
        self.issues = issues or []
        super().__init__(message)


class InsufficientFundsError(ReconciliationError):
    """The source account cannot cover the requested amount."""

    def __init__(self, account_id: UUID, available: Decimal, requested: Decimal):
        self.account_id = account_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient funds in account {account_id}: "
            f"available {available}, requested {requested}"
        )


class PersistenceError(ReconciliationError):
    """
    A backend call failed while applying a plan.

    `applied` lists the balance updates that were written before the
    failure. They are NOT rolled back.
    """

    def __init__(self, message: str, plan=None, applied: Optional[list] = None):
        self.plan = plan
        self.applied = applied or []
        super().__init__(message)


class EditInProgressError(ReconciliationError):
    """A save is already running on this editor."""
    pass
