"""
Loan Models for Ledgerbook

A personal loan is money lent to or borrowed from someone outside the
user's accounts. It moves an account balance exactly like an income or
expense does, so every loan and every repayment is backed by a ledger
record that goes through reconciliation.

DESIGN DECISION: A loan links to its ledger records by ID
(`ledger_record_id`) instead of finding them again by description and
amount. Renaming the other party never orphans a record.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ledgerbook.models.ledger import DESCRIPTION_MAX_LENGTH, EntryType


LOAN_CATEGORY = "Loans"
REPAYMENT_CATEGORY = "Loan Repayments"


class LoanType(str, Enum):
    """Direction of a loan."""
    LOAN_GIVEN = "loan_given"   # money left the account
    LOAN_TAKEN = "loan_taken"   # money came into the account


class LoanStatus(str, Enum):
    ACTIVE = "active"
    PARTIAL = "partial"
    SETTLED = "settled"


def status_for(remaining: Decimal, principal: Decimal) -> LoanStatus:
    """Status implied by how much is still owed."""
    if remaining <= 0:
        return LoanStatus.SETTLED
    if remaining < principal:
        return LoanStatus.PARTIAL
    return LoanStatus.ACTIVE


class Loan(BaseModel):
    """
    A loan given or taken.

    `remaining_amount` starts at the principal and drops with each
    repayment. It never goes below zero or above the principal.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    type: LoanType
    party_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Who the money was lent to or borrowed from"
    )
    account_id: UUID = Field(
        ...,
        description="Account the principal left or arrived in"
    )
    principal_amount: Decimal = Field(..., gt=0, decimal_places=2)
    remaining_amount: Decimal = Field(..., ge=0, decimal_places=2)
    status: LoanStatus = LoanStatus.ACTIVE
    start_date: date
    due_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    ledger_record_id: UUID = Field(
        default_factory=uuid4,
        description="The income/expense record that moved the principal"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_amounts(self) -> 'Loan':
        if self.remaining_amount > self.principal_amount:
            raise ValueError("Remaining amount cannot exceed the principal")
        if self.due_date and self.due_date < self.start_date:
            raise ValueError("Due date cannot be before the start date")
        return self

    @property
    def principal_entry_type(self) -> EntryType:
        """Taking a loan is income to the account; giving one is an expense."""
        return EntryType.INCOME if self.type == LoanType.LOAN_TAKEN else EntryType.EXPENSE

    @property
    def repayment_entry_type(self) -> EntryType:
        return EntryType.EXPENSE if self.type == LoanType.LOAN_TAKEN else EntryType.INCOME

    @property
    def principal_description(self) -> str:
        if self.type == LoanType.LOAN_TAKEN:
            return f"Loan taken from {self.party_name}"
        return f"Loan given to {self.party_name}"

    @property
    def repayment_description(self) -> str:
        if self.type == LoanType.LOAN_TAKEN:
            return f"Loan repayment to {self.party_name}"
        return f"Loan repayment received from {self.party_name}"


class LoanRepayment(BaseModel):
    """One payment against a loan."""

    id: UUID = Field(default_factory=uuid4)
    loan_id: UUID
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_date: date
    notes: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    ledger_record_id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=datetime.utcnow)
