"""Services package."""

from ledgerbook.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryLedgerStorage,
    InMemoryLoanStorage,
    LedgerStorageInterface,
    LoanStorageInterface,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Storage interfaces
    "AccountStorageInterface",
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "LoanStorageInterface",
    "BudgetStorageInterface",
    # In-memory backends
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "InMemoryLoanStorage",
    "InMemoryBudgetStorage",
    # Errors
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
]
