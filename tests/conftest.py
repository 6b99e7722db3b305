"""
Shared fixtures.

No test touches the network: the in-memory stores and a fake worksheet
stand in for Google Sheets.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledgerbook.audit import AuditLogger
from ledgerbook.config import AppSettings
from ledgerbook.editor import LedgerEditor
from ledgerbook.models.ledger import Account, EntryDraft, EntryType
from ledgerbook.services.storage import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from ledgerbook.validation import EntryValidator


def make_account(name: str, amount: str) -> Account:
    return Account(name=name, amount=Decimal(amount))


def expense_draft(account_id, amount: str, **overrides) -> EntryDraft:
    values = {
        "type": EntryType.EXPENSE,
        "amount": amount,
        "description": "Groceries",
        "category": "Food",
        "entry_date": date(2024, 3, 10),
        "account_id": account_id,
    }
    values.update(overrides)
    return EntryDraft(**values)


def income_draft(account_id, amount: str, **overrides) -> EntryDraft:
    values = {
        "type": EntryType.INCOME,
        "amount": amount,
        "description": "Salary",
        "category": "Salary",
        "entry_date": date(2024, 3, 1),
        "account_id": account_id,
    }
    values.update(overrides)
    return EntryDraft(**values)


def transfer_draft(from_id, to_id, amount: str, **overrides) -> EntryDraft:
    values = {
        "type": EntryType.TRANSFER,
        "amount": amount,
        "description": "Move to savings",
        "entry_date": date(2024, 3, 5),
        "from_account_id": from_id,
        "to_account_id": to_id,
    }
    values.update(overrides)
    return EntryDraft(**values)


@pytest.fixture
def settings() -> AppSettings:
    """App settings independent of the environment and any .env file."""
    return AppSettings(_env_file=None)


@pytest.fixture
def validator(settings) -> EntryValidator:
    return EntryValidator(settings)


@pytest.fixture
def account_a() -> Account:
    return make_account("Checking", "500.00")


@pytest.fixture
def account_b() -> Account:
    return make_account("Savings", "100.00")


@pytest.fixture
def account_storage(account_a, account_b) -> InMemoryAccountStorage:
    return InMemoryAccountStorage([account_a, account_b])


@pytest.fixture
def ledger_storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def editor(account_storage, ledger_storage, audit_storage, settings) -> LedgerEditor:
    return LedgerEditor(
        account_storage=account_storage,
        ledger_storage=ledger_storage,
        audit_logger=AuditLogger(audit_storage),
        settings=settings,
    )
