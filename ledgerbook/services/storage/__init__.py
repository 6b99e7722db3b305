"""Storage backends."""

from ledgerbook.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    LoanStorageInterface,
    NotFoundError,
    StorageError,
)
from ledgerbook.services.storage.memory import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryLedgerStorage,
    InMemoryLoanStorage,
)

__all__ = [
    "AccountStorageInterface",
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "LedgerStorageInterface",
    "LoanStorageInterface",
    "StorageError",
    "NotFoundError",
    "DuplicateError",
    "ConnectionError",
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryLedgerStorage",
    "InMemoryLoanStorage",
]
