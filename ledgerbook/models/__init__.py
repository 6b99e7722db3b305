"""
Data Models Package

This package contains all Pydantic models used in Ledgerbook.
All data flowing through the system must conform to these schemas.
"""

from ledgerbook.models.ledger import (
    Account,
    BalanceUpdate,
    EntryDraft,
    EntryType,
    ExpenseRecord,
    IncomeRecord,
    LedgerRecord,
    LedgerRecordBase,
    ReconciliationPlan,
    RecurrenceInterval,
    TransactionRecord,
    TransferRecord,
)
from ledgerbook.models.budget import (
    Budget,
    BudgetPeriod,
    BudgetProgress,
)
from ledgerbook.models.loan import (
    Loan,
    LoanRepayment,
    LoanStatus,
    LoanType,
)
from ledgerbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from ledgerbook.models.query import (
    CategoryBreakdown,
    LedgerFilters,
    LedgerSummary,
    RecencySection,
)
from ledgerbook.models.validation import (
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Ledger models
    "Account",
    "BalanceUpdate",
    "EntryDraft",
    "EntryType",
    "ExpenseRecord",
    "IncomeRecord",
    "LedgerRecord",
    "LedgerRecordBase",
    "ReconciliationPlan",
    "RecurrenceInterval",
    "TransactionRecord",
    "TransferRecord",
    # Loan models
    "Loan",
    "LoanRepayment",
    "LoanStatus",
    "LoanType",
    # Budget models
    "Budget",
    "BudgetPeriod",
    "BudgetProgress",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Query models
    "CategoryBreakdown",
    "LedgerFilters",
    "LedgerSummary",
    "RecencySection",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
