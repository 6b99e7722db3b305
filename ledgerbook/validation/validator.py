"""
Two-Stage Entry Validation

DESIGN DECISION: Form input is validated in two distinct stages:

STAGE 1 - FIELD VALIDATION:
- Required field presence
- Amount parsing (string from the form, Decimal afterwards)
- Variant-specific fields (category vs. from/to accounts)

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Absurd amount detection

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues, with one exception:
a category on a transfer is dropped, and that is reported as a warning.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

import pydantic

from ledgerbook.config import AppSettings, get_settings
from ledgerbook.models.ledger import (
    CATEGORY_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    EntryDraft,
    EntryType,
    ExpenseRecord,
    IncomeRecord,
    LedgerRecordBase,
    TransferRecord,
)
from ledgerbook.models.validation import ValidationIssue, ValidationResult
from ledgerbook.reconciliation.errors import ValidationError


CENT = Decimal("0.01")


def parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    """
    Parse a form amount into a two-decimal Decimal.

    Returns None when the text is empty, not a number, or has
    more than two decimal places. Thousands separators are accepted.
    """
    if raw is None:
        return None
    text = raw.strip().replace(",", "")
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        return None  # too many digits for the decimal context
    if quantized != amount:
        return None
    return quantized


def issues_from_error(error: pydantic.ValidationError) -> list[ValidationIssue]:
    """Turn a model validation error into validation issues."""
    return [
        ValidationIssue(
            field=".".join(str(part) for part in item["loc"]) or "record",
            issue_type="invalid_value",
            message=item["msg"],
            severity="error",
        )
        for item in error.errors()
    ]


class EntryValidator:
    """
    Validates an EntryDraft before it reaches the reconciliation engine.

    Stage 1: Field validation
    Stage 2: Semantic validation
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _validate_fields(
        self,
        draft: EntryDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Field validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not draft.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
                suggested_fix="Enter a short description",
            ))
        elif len(draft.description) > DESCRIPTION_MAX_LENGTH:
            issues.append(ValidationIssue(
                field="description",
                issue_type="too_long",
                message=f"Description is longer than {DESCRIPTION_MAX_LENGTH} characters",
                severity="error",
                suggested_fix="Shorten the description",
            ))

        if draft.amount is None or not draft.amount.strip():
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
                suggested_fix="Enter an amount",
            ))
        else:
            amount = parse_amount(draft.amount)
            if amount is None:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message=f"'{draft.amount}' is not a valid amount",
                    severity="error",
                    suggested_fix="Use a number with at most two decimal places",
                ))
            elif amount <= 0:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be greater than zero",
                    severity="error",
                    suggested_fix="Enter a positive amount",
                ))

        if draft.type == EntryType.TRANSFER:
            if draft.from_account_id is None:
                issues.append(ValidationIssue(
                    field="from_account_id",
                    issue_type="missing",
                    message="Source account is required",
                    severity="error",
                    suggested_fix="Pick the account the money leaves",
                ))
            if draft.to_account_id is None:
                issues.append(ValidationIssue(
                    field="to_account_id",
                    issue_type="missing",
                    message="Destination account is required",
                    severity="error",
                    suggested_fix="Pick the account the money goes to",
                ))
            if (
                draft.from_account_id is not None
                and draft.from_account_id == draft.to_account_id
            ):
                issues.append(ValidationIssue(
                    field="to_account_id",
                    issue_type="invalid_value",
                    message="Source and destination accounts must differ",
                    severity="error",
                    suggested_fix="Pick two different accounts",
                ))
            if draft.category:
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="ignored",
                    message="Transfers have no category; it will be ignored",
                    severity="warning",
                ))
        else:
            if draft.account_id is None:
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="missing",
                    message="Account is required",
                    severity="error",
                    suggested_fix="Pick an account",
                ))
            if not draft.category:
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="missing",
                    message="Category is required",
                    severity="error",
                    suggested_fix="Pick a category",
                ))
            elif len(draft.category) > CATEGORY_MAX_LENGTH:
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="too_long",
                    message=f"Category is longer than {CATEGORY_MAX_LENGTH} characters",
                    severity="error",
                    suggested_fix="Use a shorter category name",
                ))

        if draft.is_recurring and draft.recurrence_interval is None:
            issues.append(ValidationIssue(
                field="recurrence_interval",
                issue_type="missing",
                message="Recurring entries need an interval",
                severity="error",
                suggested_fix="Choose weekly, monthly or yearly",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        draft: EntryDraft,
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if draft.entry_date and draft.entry_date > max_future_date:
            issues.append(ValidationIssue(
                field="entry_date",
                issue_type="future_date",
                message=f"Date ({draft.entry_date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        amount = parse_amount(draft.amount)
        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if amount is not None and amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        draft: EntryDraft,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run the two-stage validation pipeline.

        Args:
            draft: Raw form values
            today: Reference date for the future-date check

        Returns:
            ValidationResult with all issues found
        """
        today = today or date.today()
        all_issues = []

        fields_valid, field_issues = self._validate_fields(draft)
        all_issues.extend(field_issues)

        semantic_valid = False
        if fields_valid:
            semantic_valid, semantic_issues = self._validate_semantic(draft, today)
            all_issues.extend(semantic_issues)

        warnings = [
            issue.message for issue in all_issues if issue.severity == "warning"
        ]

        return ValidationResult(
            is_valid=fields_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def build_record(
        self,
        draft: EntryDraft,
        record_id: Optional[UUID] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> LedgerRecordBase:
        """
        Turn a validated draft into a ledger record.

        Pass `record_id` and `created_at` of the stored record when editing.
        Missing dates default to today.

        Raises:
            ValidationError: The draft doesn't make a valid record
        """
        now = datetime.utcnow()
        common = {
            "amount": parse_amount(draft.amount),
            "date": draft.entry_date or date.today(),
            "description": draft.description,
            "is_recurring": draft.is_recurring,
            "recurrence_interval": draft.recurrence_interval if draft.is_recurring else None,
            "created_at": created_at or now,
            "updated_at": updated_at or now,
        }
        if record_id is not None:
            common["id"] = record_id

        try:
            if draft.type == EntryType.TRANSFER:
                return TransferRecord(
                    from_account_id=draft.from_account_id,
                    to_account_id=draft.to_account_id,
                    **common,
                )

            record_class = IncomeRecord if draft.type == EntryType.INCOME else ExpenseRecord
            return record_class(
                account_id=draft.account_id,
                category=draft.category,
                **common,
            )
        except pydantic.ValidationError as e:
            issues = issues_from_error(e)
            raise ValidationError(
                "Entry could not be saved: " + "; ".join(i.message for i in issues),
                issues=issues,
            ) from e

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the alert shows.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
