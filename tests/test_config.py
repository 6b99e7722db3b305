"""
Tests for configuration loading.
"""

import logging

import pytest

from ledgerbook.audit import configure_logging
from ledgerbook.config import AppSettings, GoogleSheetsSettings, get_settings, validate_all_settings
from ledgerbook.editor import create_app_components
from ledgerbook.models.ledger import Account


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestAppSettings:

    def test_defaults(self):
        settings = AppSettings(_env_file=None)

        assert settings.app_environment == "development"
        assert settings.enforce_expense_funds is False
        assert settings.future_date_tolerance_days == 7

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("LEDGER_ENFORCE_EXPENSE_FUNDS", "true")
        monkeypatch.setenv("LEDGER_MAX_TRANSACTION_AMOUNT", "500")

        settings = AppSettings(_env_file=None)

        assert settings.enforce_expense_funds is True
        assert settings.max_transaction_amount == 500.0

    def test_invalid_log_level(self, monkeypatch):
        monkeypatch.setenv("LEDGER_LOG_LEVEL", "LOUD")

        with pytest.raises(ValueError):
            AppSettings(_env_file=None)


class TestGoogleSheetsSettings:

    def test_missing_credentials_warns(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", str(tmp_path / "missing.json"))
        monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "sheet-123")

        with pytest.warns(UserWarning):
            settings = GoogleSheetsSettings()

        assert settings.transfers_sheet_name == "Transfers"

    def test_validate_all_reports_missing_sheets(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        results = validate_all_settings()

        assert results["google_sheets"] is False
        assert "google_sheets_error" in results
        assert results["app"] is True


class TestAmbientSettings:
    """Settings that reach beyond the validator."""

    @pytest.fixture
    def ledgerbook_logger(self):
        logger = logging.getLogger("ledgerbook")
        level = logger.level
        yield logger
        logger.setLevel(level)

    def test_account_currency_from_environment(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DEFAULT_CURRENCY", "EUR")

        assert Account(name="Cash").currency == "EUR"
        assert Account(name="Card", currency="GBP").currency == "GBP"

    def test_configure_logging_sets_level(self, ledgerbook_logger):
        configure_logging("DEBUG")

        assert ledgerbook_logger.level == logging.DEBUG

    def test_factory_applies_log_level(self, monkeypatch, ledgerbook_logger):
        monkeypatch.setenv("LEDGER_LOG_LEVEL", "WARNING")

        create_app_components(use_storage=False)

        assert ledgerbook_logger.level == logging.WARNING
