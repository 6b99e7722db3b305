"""
Core Ledger Models for Ledgerbook

These models define the schemas for accounts and the ledger of
income, expense and transfer records.

DESIGN DECISION: A ledger record is a tagged union on `type`.
Income and Expense carry a single `account_id` and a category;
a Transfer carries `from_account_id` and `to_account_id` and no category.
The variant-specific fields are enforced by pydantic, not by
string checks scattered through the code.

Balances are NOT stored on records. An account's `amount` is maintained
incrementally from the signed effect of every record that touches it.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from ledgerbook.config import get_settings


DESCRIPTION_MAX_LENGTH = 500
CATEGORY_MAX_LENGTH = 50


def default_currency() -> str:
    """Currency for new accounts, from LEDGER_DEFAULT_CURRENCY."""
    return get_settings().app.default_currency


# =============================================================================
# ENUMS
# =============================================================================

class EntryType(str, Enum):
    """Ledger record variants."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class RecurrenceInterval(str, Enum):
    """How often a recurring record repeats."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(BaseModel):
    """
    An account holding a current balance.

    `amount` is signed: a negative balance is an overdraft.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique account ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name of the account"
    )
    account_type: str = Field(
        default="cash",
        max_length=50,
        description="Account type label (e.g. cash, bank, savings)"
    )
    amount: Decimal = Field(
        default=Decimal("0"),
        decimal_places=2,
        description="Current balance"
    )
    currency: str = Field(
        default_factory=default_currency,
        min_length=3,
        max_length=3,
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class LedgerRecordBase(BaseModel):
    """Fields shared by every ledger record variant."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique record ID"
    )
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Unsigned amount, always positive")
    ]
    date: date
    description: str = Field(
        ...,
        min_length=1,
        max_length=DESCRIPTION_MAX_LENGTH,
    )
    is_recurring: bool = False
    recurrence_interval: Optional[RecurrenceInterval] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def idempotency_key(self) -> str:
        """Key identifying this exact version of the record."""
        return f"{self.id}:{self.updated_at.isoformat()}"

    @property
    def account_ids(self) -> list[UUID]:
        """Accounts this record touches, in effect order."""
        raise NotImplementedError

    def effect(self) -> dict[UUID, Decimal]:
        """Signed balance change this record applies to each account."""
        raise NotImplementedError


class IncomeRecord(LedgerRecordBase):
    """Money coming into an account."""

    type: Literal["income"] = "income"
    account_id: UUID
    category: str = Field(..., min_length=1, max_length=CATEGORY_MAX_LENGTH)

    @property
    def account_ids(self) -> list[UUID]:
        return [self.account_id]

    def effect(self) -> dict[UUID, Decimal]:
        return {self.account_id: self.amount}


class ExpenseRecord(LedgerRecordBase):
    """Money leaving an account."""

    type: Literal["expense"] = "expense"
    account_id: UUID
    category: str = Field(..., min_length=1, max_length=CATEGORY_MAX_LENGTH)

    @property
    def account_ids(self) -> list[UUID]:
        return [self.account_id]

    def effect(self) -> dict[UUID, Decimal]:
        return {self.account_id: -self.amount}


class TransferRecord(LedgerRecordBase):
    """
    Money moved between two of the user's own accounts.

    The source and destination must differ.
    """

    type: Literal["transfer"] = "transfer"
    from_account_id: UUID
    to_account_id: UUID

    @model_validator(mode='after')
    def validate_accounts(self) -> 'TransferRecord':
        if self.from_account_id == self.to_account_id:
            raise ValueError("Transfer source and destination accounts must differ")
        return self

    @property
    def account_ids(self) -> list[UUID]:
        return [self.from_account_id, self.to_account_id]

    def effect(self) -> dict[UUID, Decimal]:
        return {
            self.from_account_id: -self.amount,
            self.to_account_id: self.amount,
        }


TransactionRecord = Annotated[
    Union[IncomeRecord, ExpenseRecord],
    Field(discriminator="type"),
]

LedgerRecord = Annotated[
    Union[IncomeRecord, ExpenseRecord, TransferRecord],
    Field(discriminator="type"),
]


# =============================================================================
# RECONCILIATION OUTPUT
# =============================================================================

class BalanceUpdate(BaseModel):
    """
    One account balance overwrite.

    The store is written with `new_balance` (absolute, not additive),
    so issuing the same update twice leaves the same result.
    """

    account_id: UUID
    previous_balance: Decimal
    new_balance: Decimal

    @property
    def delta(self) -> Decimal:
        return self.new_balance - self.previous_balance


class ReconciliationPlan(BaseModel):
    """
    Everything needed to move the system from the old record to the new one.

    Balance updates are applied first, in order, then `persist` is written
    (or `delete` removed). Nothing here has been applied yet.
    """

    balance_updates: list[BalanceUpdate] = Field(default_factory=list)
    persist: Optional[LedgerRecord] = None
    delete: Optional[LedgerRecord] = None
    idempotency_key: str

    def balance_for(self, account_id: UUID) -> Optional[Decimal]:
        """New balance for an account, if this plan touches it."""
        for update in self.balance_updates:
            if update.account_id == account_id:
                return update.new_balance
        return None


# =============================================================================
# EDITOR INPUT
# =============================================================================

class EntryDraft(BaseModel):
    """
    Raw values collected from an add/edit form.

    Everything is loosely typed here; the validator turns a draft into a
    proper ledger record or reports what is wrong with it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: EntryType
    amount: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    entry_date: Optional[date] = None
    account_id: Optional[UUID] = None
    from_account_id: Optional[UUID] = None
    to_account_id: Optional[UUID] = None
    is_recurring: bool = False
    recurrence_interval: Optional[RecurrenceInterval] = None
