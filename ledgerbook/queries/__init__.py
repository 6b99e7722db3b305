"""Ledger queries."""

from ledgerbook.queries.executor import (
    LedgerQueryExecutor,
    QueryExecutionError,
    group_by_recency,
)

__all__ = [
    "LedgerQueryExecutor",
    "QueryExecutionError",
    "group_by_recency",
]
