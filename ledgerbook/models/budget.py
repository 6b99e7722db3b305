"""
Budget Models for Ledgerbook

A budget caps spending in one expense category per period. Budgets never
touch balances; progress is computed from the ledger when asked for.
"""

from calendar import monthrange
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ledgerbook.models.ledger import CATEGORY_MAX_LENGTH


class BudgetPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Budget(BaseModel):
    """
    Spending limit for a category.

    `account_id` narrows the budget to one account; None covers all.
    Inactive budgets are kept but ignored by progress reports.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    category: str = Field(..., min_length=1, max_length=CATEGORY_MAX_LENGTH)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: date
    end_date: Optional[date] = None
    account_id: Optional[UUID] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_dates(self) -> 'Budget':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before its start date")
        return self

    def covers(self, day: date) -> bool:
        """True if the budget is running on `day`."""
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date

    def period_bounds(self, day: date) -> tuple[date, date]:
        """
        Calendar period containing `day`, clipped to the budget's own dates.

        Weeks start on Monday.
        """
        if self.period == BudgetPeriod.WEEKLY:
            start = day - timedelta(days=day.weekday())
            end = start + timedelta(days=6)
        elif self.period == BudgetPeriod.MONTHLY:
            start = day.replace(day=1)
            end = day.replace(day=monthrange(day.year, day.month)[1])
        else:
            start = date(day.year, 1, 1)
            end = date(day.year, 12, 31)

        start = max(start, self.start_date)
        if self.end_date:
            end = min(end, self.end_date)
        return start, end


class BudgetProgress(BaseModel):
    """Spent-versus-limit for one budget in its current period."""

    budget_id: UUID
    category: str
    period: BudgetPeriod
    period_start: date
    period_end: date
    budgeted: Decimal
    spent: Decimal
    remaining: Decimal = Field(
        ...,
        description="Budgeted minus spent; negative when over budget"
    )
    percentage: float = Field(
        ...,
        description="Spent as a share of the budget, 0-100+"
    )

    @property
    def is_over(self) -> bool:
        return self.spent > self.budgeted
