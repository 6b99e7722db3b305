"""
Ledger Query Engine

DESIGN DECISION: Queries are DETERMINISTIC reads over the ledger store.
Every figure returned comes from stored records; nothing is estimated.
An empty result is reported as empty, never padded.

Filtering beyond what the store supports (free-text search) happens here,
in Python, like the Sheets backend does for everything else.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from ledgerbook.models.budget import BudgetProgress
from ledgerbook.models.ledger import EntryType, LedgerRecordBase
from ledgerbook.models.query import (
    CategoryBreakdown,
    LedgerFilters,
    LedgerSummary,
    RecencySection,
)
from ledgerbook.services.storage import (
    BudgetStorageInterface,
    LedgerStorageInterface,
    StorageError,
)


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


class LedgerQueryExecutor:
    """
    Executes searches and summaries against the ledger store.

    GUARANTEES:
    - Only returns real data from storage
    - Never invents or estimates
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        budget_storage: Optional[BudgetStorageInterface] = None,
    ):
        self._storage = storage
        self._budgets = budget_storage

    @staticmethod
    def group_by_recency(
        records: Iterable[LedgerRecordBase],
        today: Optional[date] = None,
    ) -> list[RecencySection]:
        return group_by_recency(records, today)

    async def _fetch(self, filters: LedgerFilters) -> list[LedgerRecordBase]:
        records: list[LedgerRecordBase] = []
        want_transfers = (
            filters.entry_type in (None, EntryType.TRANSFER)
            and not filters.category
        )
        want_transactions = filters.entry_type != EntryType.TRANSFER

        try:
            if want_transactions:
                records.extend(await self._storage.list_transactions(
                    account_id=filters.account_id,
                    entry_type=filters.entry_type,
                    category=filters.category,
                    date_from=filters.date_from,
                    date_to=filters.date_to,
                    limit=None,
                ))
            if want_transfers:
                records.extend(await self._storage.list_transfers(
                    account_id=filters.account_id,
                    date_from=filters.date_from,
                    date_to=filters.date_to,
                    limit=None,
                ))
        except StorageError as e:
            raise QueryExecutionError(f"Failed to read ledger: {e}") from e

        records.sort(key=lambda r: (r.date, r.created_at), reverse=True)
        return records

    async def search(
        self,
        text: str = "",
        filters: Optional[LedgerFilters] = None,
    ) -> list[LedgerRecordBase]:
        """
        Find records whose description or category contains `text`.

        Matching is case-insensitive. Empty text matches everything
        the filters let through. Newest first, at most `filters.limit`.
        """
        filters = filters or LedgerFilters()
        needle = text.strip().lower()
        records = await self._fetch(filters)
        if not needle:
            return records[:filters.limit]

        matches = []
        for record in records:
            haystack = [record.description]
            if record.type != EntryType.TRANSFER:
                haystack.append(record.category)
            if any(needle in value.lower() for value in haystack):
                matches.append(record)
        return matches[:filters.limit]

    async def summarize(
        self,
        filters: Optional[LedgerFilters] = None,
    ) -> LedgerSummary:
        """
        Totals, net, average and an expense breakdown by category.

        Covers the newest `filters.limit` records. Category percentages
        are shares of total expenses and are sorted largest first.
        """
        filters = filters or LedgerFilters()
        records = (await self._fetch(filters))[:filters.limit]
        if not records:
            return LedgerSummary()

        totals = {
            EntryType.INCOME: Decimal("0"),
            EntryType.EXPENSE: Decimal("0"),
            EntryType.TRANSFER: Decimal("0"),
        }
        by_category: dict[str, list[Decimal]] = {}

        for record in records:
            totals[EntryType(record.type)] += record.amount
            if record.type == EntryType.EXPENSE:
                by_category.setdefault(record.category, []).append(record.amount)

        total_expenses = totals[EntryType.EXPENSE]
        categories = []
        for category, amounts in by_category.items():
            amount = sum(amounts, Decimal("0"))
            percentage = (
                float(amount / total_expenses * 100) if total_expenses else 0.0
            )
            categories.append(CategoryBreakdown(
                category=category,
                amount=amount,
                count=len(amounts),
                percentage=round(percentage, 2),
            ))
        categories.sort(key=lambda c: c.amount, reverse=True)

        grand_total = sum(totals.values(), Decimal("0"))
        return LedgerSummary(
            total_income=totals[EntryType.INCOME],
            total_expenses=total_expenses,
            total_transfers=totals[EntryType.TRANSFER],
            net=totals[EntryType.INCOME] - total_expenses,
            count=len(records),
            average=(grand_total / len(records)).quantize(Decimal("0.01")),
            categories=categories,
        )

    async def budget_progress(
        self,
        today: Optional[date] = None,
        account_id: Optional[UUID] = None,
    ) -> list[BudgetProgress]:
        """
        Spent versus limit for every active budget running today.

        Spending is the expenses in the budget's category (case-insensitive)
        inside the current week, month or year of the budget. A budget tied
        to an account only counts that account's expenses. Budgets closest
        to or over their limit come first.
        """
        if self._budgets is None:
            raise QueryExecutionError("No budget store configured")

        today = today or date.today()
        try:
            budgets = await self._budgets.list_budgets(
                active_only=True, account_id=account_id
            )
        except StorageError as e:
            raise QueryExecutionError(f"Failed to read budgets: {e}") from e

        progress = []
        for budget in budgets:
            if not budget.covers(today):
                continue
            period_start, period_end = budget.period_bounds(today)
            try:
                expenses = await self._storage.list_transactions(
                    account_id=budget.account_id,
                    entry_type=EntryType.EXPENSE,
                    category=budget.category,
                    date_from=period_start,
                    date_to=period_end,
                    limit=None,
                )
            except StorageError as e:
                raise QueryExecutionError(f"Failed to read ledger: {e}") from e

            spent = sum((r.amount for r in expenses), Decimal("0"))
            progress.append(BudgetProgress(
                budget_id=budget.id,
                category=budget.category,
                period=budget.period,
                period_start=period_start,
                period_end=period_end,
                budgeted=budget.amount,
                spent=spent,
                remaining=budget.amount - spent,
                percentage=round(float(spent / budget.amount * 100), 2),
            ))

        progress.sort(key=lambda p: p.percentage, reverse=True)
        return progress


def group_by_recency(
    records: Iterable[LedgerRecordBase],
    today: Optional[date] = None,
) -> list[RecencySection]:
    """
    Split records into Upcoming / Today / Yesterday / Last Week / Older.

    "Last Week" is two to seven days ago. Empty sections are omitted and
    each section is newest first.
    """
    today = today or date.today()
    yesterday = today - timedelta(days=1)
    week_ago = today - timedelta(days=7)

    sections: dict[str, list[LedgerRecordBase]] = {
        "Upcoming": [],
        "Today": [],
        "Yesterday": [],
        "Last Week": [],
        "Older": [],
    }
    for record in records:
        if record.date > today:
            sections["Upcoming"].append(record)
        elif record.date == today:
            sections["Today"].append(record)
        elif record.date == yesterday:
            sections["Yesterday"].append(record)
        elif record.date >= week_ago:
            sections["Last Week"].append(record)
        else:
            sections["Older"].append(record)

    return [
        RecencySection(
            title=title,
            records=sorted(items, key=lambda r: r.date, reverse=True),
        )
        for title, items in sections.items()
        if items
    ]
