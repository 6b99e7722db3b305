"""Balance reconciliation package."""

from ledgerbook.reconciliation.engine import (
    apply_plan,
    reconcile_create,
    reconcile_delete,
    reconcile_edit,
)
from ledgerbook.reconciliation.errors import (
    EditInProgressError,
    InsufficientFundsError,
    PersistenceError,
    ReconciliationError,
    ValidationError,
)

__all__ = [
    "apply_plan",
    "reconcile_create",
    "reconcile_delete",
    "reconcile_edit",
    # Errors
    "EditInProgressError",
    "InsufficientFundsError",
    "PersistenceError",
    "ReconciliationError",
    "ValidationError",
]
