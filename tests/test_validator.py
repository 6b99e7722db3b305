"""
Tests for the entry validator.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from conftest import expense_draft, income_draft, transfer_draft
from ledgerbook.models.ledger import (
    EntryType,
    ExpenseRecord,
    RecurrenceInterval,
    TransferRecord,
)
from ledgerbook.reconciliation import ValidationError
from ledgerbook.validation import parse_amount


class TestParseAmount:
    """Form amounts arrive as text."""

    @pytest.mark.parametrize("raw,expected", [
        ("50", Decimal("50.00")),
        ("  12.5 ", Decimal("12.50")),
        ("1,234.56", Decimal("1234.56")),
        ("-3", Decimal("-3.00")),
    ])
    def test_parses_valid_amounts(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", "1.234", "NaN", "Infinity"])
    def test_rejects_invalid_amounts(self, raw):
        assert parse_amount(raw) is None

    def test_rejects_amount_beyond_decimal_precision(self):
        """1e30 parses as a Decimal but cannot be held to two places."""
        assert parse_amount("1e30") is None


class TestFieldValidation:
    """Stage 1 errors block the save."""

    def test_valid_expense(self, validator):
        result = validator.validate(expense_draft(uuid4(), "25.00"), today=date(2024, 3, 10))

        assert result.is_valid
        assert result.issues == []

    def test_missing_description(self, validator):
        result = validator.validate(expense_draft(uuid4(), "25", description="   "))

        assert not result.is_valid
        assert [i.field for i in result.issues] == ["description"]

    def test_missing_amount(self, validator):
        result = validator.validate(expense_draft(uuid4(), None))

        assert result.issues[0].field == "amount"
        assert result.issues[0].issue_type == "missing"

    def test_unparsable_amount(self, validator):
        result = validator.validate(expense_draft(uuid4(), "twelve"))

        assert result.issues[0].issue_type == "invalid_value"

    def test_exponent_amount(self, validator):
        result = validator.validate(expense_draft(uuid4(), "1e30"))

        assert result.has_errors
        assert result.issues[0].field == "amount"
        assert result.issues[0].issue_type == "invalid_value"

    def test_description_too_long(self, validator):
        result = validator.validate(expense_draft(uuid4(), "10", description="x" * 600))

        assert result.has_errors
        assert result.issues[0].field == "description"
        assert result.issues[0].issue_type == "too_long"

    def test_category_too_long(self, validator):
        result = validator.validate(expense_draft(uuid4(), "10", category="c" * 60))

        assert result.has_errors
        assert result.issues[0].field == "category"
        assert result.issues[0].issue_type == "too_long"

    def test_non_positive_amount(self, validator):
        result = validator.validate(income_draft(uuid4(), "0"))

        assert result.has_errors
        assert result.issues[0].message == "Amount must be greater than zero"

    def test_missing_category_and_account(self, validator):
        draft = expense_draft(None, "10", category=None)

        result = validator.validate(draft)

        assert {i.field for i in result.issues} == {"account_id", "category"}
        assert result.error_count == 2

    def test_transfer_needs_both_accounts(self, validator):
        result = validator.validate(transfer_draft(None, None, "10"))

        assert {i.field for i in result.issues} == {"from_account_id", "to_account_id"}

    def test_transfer_accounts_must_differ(self, validator):
        account_id = uuid4()

        result = validator.validate(transfer_draft(account_id, account_id, "10"))

        assert not result.is_valid
        assert result.issues[0].field == "to_account_id"

    def test_transfer_category_is_a_warning(self, validator):
        """A category on a transfer is dropped, not an error."""
        draft = transfer_draft(uuid4(), uuid4(), "10", category="Food")

        result = validator.validate(draft, today=date(2024, 3, 10))

        assert result.is_valid
        assert result.issues[0].severity == "warning"
        assert len(result.warnings) == 1

    def test_recurring_needs_interval(self, validator):
        result = validator.validate(expense_draft(uuid4(), "10", is_recurring=True))

        assert result.issues[0].field == "recurrence_interval"


class TestSemanticValidation:
    """Stage 2 only warns."""

    def test_future_date_warning(self, validator):
        today = date(2024, 3, 10)
        draft = expense_draft(uuid4(), "10", entry_date=today + timedelta(days=30))

        result = validator.validate(draft, today=today)

        assert result.is_valid
        assert result.issues[0].issue_type == "future_date"

    def test_future_date_within_tolerance(self, validator):
        today = date(2024, 3, 10)
        draft = expense_draft(uuid4(), "10", entry_date=today + timedelta(days=7))

        result = validator.validate(draft, today=today)

        assert result.issues == []

    def test_large_amount_warning(self, validator):
        result = validator.validate(
            income_draft(uuid4(), "2000000"), today=date(2024, 3, 10)
        )

        assert result.is_valid
        assert result.issues[0].issue_type == "suspicious_value"

    def test_semantic_stage_skipped_on_errors(self, validator):
        draft = expense_draft(uuid4(), "2000000", description="")

        result = validator.validate(draft, today=date(2024, 3, 10))

        assert [i.field for i in result.issues] == ["description"]


class TestBuildRecord:
    """Drafts become typed records."""

    def test_builds_expense(self, validator):
        account_id = uuid4()

        record = validator.build_record(expense_draft(account_id, "19.99"))

        assert isinstance(record, ExpenseRecord)
        assert record.account_id == account_id
        assert record.amount == Decimal("19.99")
        assert record.date == date(2024, 3, 10)

    def test_builds_transfer_without_category(self, validator):
        source, dest = uuid4(), uuid4()

        record = validator.build_record(
            transfer_draft(source, dest, "10", category="ignored")
        )

        assert isinstance(record, TransferRecord)
        assert record.type == EntryType.TRANSFER
        assert not hasattr(record, "category")

    def test_keeps_identity_when_editing(self, validator):
        record_id = uuid4()
        original = validator.build_record(expense_draft(uuid4(), "10"))

        record = validator.build_record(
            expense_draft(uuid4(), "10"),
            record_id=record_id,
            created_at=original.created_at,
        )

        assert record.id == record_id
        assert record.created_at == original.created_at

    def test_interval_dropped_when_not_recurring(self, validator):
        draft = expense_draft(
            uuid4(), "10", recurrence_interval=RecurrenceInterval.MONTHLY
        )

        record = validator.build_record(draft)

        assert record.recurrence_interval is None

    def test_missing_date_defaults_to_today(self, validator):
        record = validator.build_record(expense_draft(uuid4(), "10", entry_date=None))

        assert record.date == date.today()

    def test_model_errors_become_validation_error(self, validator):
        """Building straight from an unchecked draft reports issues instead of a raw model error."""
        with pytest.raises(ValidationError) as exc_info:
            validator.build_record(expense_draft(uuid4(), "10", description="x" * 600))

        issue = exc_info.value.issues[0]
        assert issue.field == "description"
        assert issue.severity == "error"


class TestSummary:

    def test_all_passed(self, validator):
        result = validator.validate(expense_draft(uuid4(), "10"), today=date(2024, 3, 10))

        assert validator.get_user_friendly_summary(result).startswith("✅")

    def test_errors_and_fixes_listed(self, validator):
        result = validator.validate(expense_draft(uuid4(), "abc"))

        summary = validator.get_user_friendly_summary(result)

        assert "❌" in summary
        assert "'abc' is not a valid amount" in summary
        assert "💡" in summary
