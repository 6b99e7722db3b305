"""
Query models for searching and summarizing the ledger.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ledgerbook.models.ledger import EntryType, LedgerRecord


class LedgerFilters(BaseModel):
    """
    Filters shared by search and summary.

    `account_id` matches either side of a transfer.
    A category filter excludes transfers, which have no category.
    """

    account_id: Optional[UUID] = None
    entry_type: Optional[EntryType] = None
    category: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    limit: int = Field(default=1000, ge=1, le=10000)


class CategoryBreakdown(BaseModel):
    """Spending in one expense category."""

    category: str
    amount: Decimal
    count: int
    percentage: float = Field(
        ...,
        description="Share of total expenses, 0-100"
    )


class LedgerSummary(BaseModel):
    """Totals over a filtered slice of the ledger."""

    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    total_transfers: Decimal = Decimal("0")
    net: Decimal = Field(
        default=Decimal("0"),
        description="Income minus expenses"
    )
    count: int = 0
    average: Decimal = Field(
        default=Decimal("0"),
        description="Mean amount across all matched records"
    )
    categories: list[CategoryBreakdown] = Field(default_factory=list)


class RecencySection(BaseModel):
    """A titled group of records for a list view."""

    title: str
    records: list[LedgerRecord] = Field(default_factory=list)
