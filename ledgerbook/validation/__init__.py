"""Entry validation."""

from ledgerbook.validation.validator import EntryValidator, issues_from_error, parse_amount

__all__ = ["EntryValidator", "issues_from_error", "parse_amount"]
