"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the hosted backend because:
1. Users can inspect their accounts and ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No transactions across calls (the editor sequences writes and keeps
  failed plans for retry)
- Limited query capabilities (we filter in Python)
- No compare-and-swap on a balance cell

Each collection lives on its own worksheet, one row per entity.
Decimals are stored as strings with RAW input so Sheets never reformats them.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledgerbook.config import get_settings
from ledgerbook.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledgerbook.models.budget import Budget, BudgetPeriod
from ledgerbook.models.ledger import (
    Account,
    EntryType,
    ExpenseRecord,
    IncomeRecord,
    RecurrenceInterval,
    TransactionRecord,
    TransferRecord,
    default_currency,
)
from ledgerbook.models.loan import Loan, LoanRepayment, LoanStatus, LoanType
from ledgerbook.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    LoanStorageInterface,
    NotFoundError,
    StorageError,
)


ACCOUNT_COLUMNS = [
    "id",
    "name",
    "account_type",
    "amount",
    "currency",
    "description",
    "created_at",
    "updated_at",
]

TRANSACTION_COLUMNS = [
    "id",
    "type",
    "account_id",
    "amount",
    "category",
    "description",
    "date",
    "is_recurring",
    "recurrence_interval",
    "created_at",
    "updated_at",
]

TRANSFER_COLUMNS = [
    "id",
    "from_account_id",
    "to_account_id",
    "amount",
    "description",
    "date",
    "is_recurring",
    "recurrence_interval",
    "created_at",
    "updated_at",
]

LOAN_COLUMNS = [
    "id",
    "type",
    "party_name",
    "account_id",
    "principal_amount",
    "remaining_amount",
    "status",
    "start_date",
    "due_date",
    "notes",
    "ledger_record_id",
    "created_at",
    "updated_at",
]

REPAYMENT_COLUMNS = [
    "id",
    "loan_id",
    "amount",
    "payment_date",
    "notes",
    "ledger_record_id",
    "created_at",
]

BUDGET_COLUMNS = [
    "id",
    "category",
    "amount",
    "period",
    "start_date",
    "end_date",
    "account_id",
    "is_active",
    "created_at",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Transient API failures (quota, 5xx) are retried; everything else surfaces.
sheets_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet creation.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @sheets_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except gspread.exceptions.APIError:
                raise
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_accounts_sheet(self) -> gspread.Worksheet:
        """Get or create the Accounts worksheet."""
        return self._get_or_create(
            self._settings.accounts_sheet_name, ACCOUNT_COLUMNS, rows=200
        )

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=2000
        )

    def get_transfers_sheet(self) -> gspread.Worksheet:
        """Get or create the Transfers worksheet."""
        return self._get_or_create(
            self._settings.transfers_sheet_name, TRANSFER_COLUMNS, rows=1000
        )

    def get_loans_sheet(self) -> gspread.Worksheet:
        """Get or create the Loans worksheet."""
        return self._get_or_create(
            self._settings.loans_sheet_name, LOAN_COLUMNS, rows=200
        )

    def get_repayments_sheet(self) -> gspread.Worksheet:
        """Get or create the Loan Repayments worksheet."""
        return self._get_or_create(
            self._settings.repayments_sheet_name, REPAYMENT_COLUMNS, rows=1000
        )

    def get_budgets_sheet(self) -> gspread.Worksheet:
        """Get or create the Budgets worksheet."""
        return self._get_or_create(
            self._settings.budgets_sheet_name, BUDGET_COLUMNS, rows=200
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class _SheetTable:
    """
    Row-level helpers shared by the storage classes.

    Rows are addressed by the value of their first column (the ID).
    Row 1 is the header.
    """

    @sheets_retry
    def _data_rows(self, sheet: gspread.Worksheet) -> list[list]:
        return sheet.get_all_values()[1:]

    @sheets_retry
    def _find_row_index(self, sheet: gspread.Worksheet, entity_id: UUID) -> Optional[int]:
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == str(entity_id):
                return idx
        return None

    @sheets_retry
    def _append(self, sheet: gspread.Worksheet, row: list) -> None:
        sheet.append_row(row, value_input_option="RAW")

    @sheets_retry
    def _overwrite(self, sheet: gspread.Worksheet, idx: int, row: list) -> None:
        sheet.update(values=[row], range_name=f"A{idx}", value_input_option="RAW")

    @sheets_retry
    def _delete(self, sheet: gspread.Worksheet, idx: int) -> None:
        sheet.delete_rows(idx)

    def _get(self, sheet, entity_id: UUID, convert):
        for row in self._data_rows(sheet):
            if row and row[0] == str(entity_id):
                return convert(row)
        return None

    def _insert(self, sheet, entity_id: UUID, row: list, label: str) -> bool:
        if self._find_row_index(sheet, entity_id) is not None:
            raise DuplicateError(f"{label} already exists: {entity_id}")
        self._append(sheet, row)
        return True

    def _replace(self, sheet, entity_id: UUID, row: list, label: str) -> bool:
        idx = self._find_row_index(sheet, entity_id)
        if idx is None:
            raise NotFoundError(f"{label} not found: {entity_id}")
        self._overwrite(sheet, idx, row)
        return True

    def _remove(self, sheet, entity_id: UUID) -> bool:
        idx = self._find_row_index(sheet, entity_id)
        if idx is None:
            return False
        self._delete(sheet, idx)
        return True

    def _parse_rows(self, sheet, convert) -> list:
        records = []
        for row in self._data_rows(sheet):
            if not row or not row[0]:
                continue
            try:
                records.append(convert(row))
            except (ValueError, ArithmeticError):
                continue  # Skip malformed rows
        return records


class GoogleSheetsAccountStorage(_SheetTable, AccountStorageInterface):
    """
    Google Sheets implementation of the account store.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _account_to_row(self, account: Account) -> list:
        return [
            str(account.id),
            account.name,
            account.account_type,
            str(account.amount),
            account.currency,
            account.description or "",
            account.created_at.isoformat(),
            account.updated_at.isoformat(),
        ]

    def _row_to_account(self, row: list) -> Account:
        return Account(
            id=UUID(_safe_get(row, 0)),
            name=_safe_get(row, 1),
            account_type=_safe_get(row, 2, "cash"),
            amount=Decimal(_safe_get(row, 3, "0")),
            currency=_safe_get(row, 4) or default_currency(),
            description=_safe_get(row, 5) or None,
            created_at=datetime.fromisoformat(_safe_get(row, 6)),
            updated_at=datetime.fromisoformat(_safe_get(row, 7)),
        )

    async def fetch_account(self, account_id: UUID) -> Optional[Account]:
        try:
            sheet = self._client.get_accounts_sheet()
            for row in self._data_rows(sheet):
                if row and row[0] == str(account_id):
                    return self._row_to_account(row)
            return None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get account: {e}")

    async def list_accounts(self) -> list[Account]:
        try:
            sheet = self._client.get_accounts_sheet()
            accounts = [
                self._row_to_account(row)
                for row in self._data_rows(sheet)
                if row and row[0]
            ]
            accounts.sort(key=lambda a: a.created_at, reverse=True)
            return accounts
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list accounts: {e}")

    async def create_account(self, account: Account) -> Account:
        try:
            sheet = self._client.get_accounts_sheet()
            if self._find_row_index(sheet, account.id) is not None:
                raise DuplicateError(f"Account already exists: {account.id}")
            self._append(sheet, self._account_to_row(account))
            return account
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create account: {e}")

    async def update_account_balance(
        self,
        account_id: UUID,
        new_balance: Decimal,
    ) -> Account:
        try:
            sheet = self._client.get_accounts_sheet()
            for idx, row in enumerate(self._data_rows(sheet), start=2):
                if row and row[0] == str(account_id):
                    account = self._row_to_account(row).model_copy(update={
                        "amount": new_balance,
                        "updated_at": datetime.utcnow(),
                    })
                    self._overwrite(sheet, idx, self._account_to_row(account))
                    return account

            raise NotFoundError(f"Account not found: {account_id}")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update account balance: {e}")


class GoogleSheetsLedgerStorage(_SheetTable, LedgerStorageInterface):
    """
    Google Sheets implementation of the ledger store.

    Income and expense records share the Transactions sheet;
    transfers have their own sheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -- row conversion -------------------------------------------------------

    def _transaction_to_row(self, record: TransactionRecord) -> list:
        return [
            str(record.id),
            record.type,
            str(record.account_id),
            str(record.amount),
            record.category,
            record.description,
            record.date.isoformat(),
            str(record.is_recurring),
            record.recurrence_interval.value if record.recurrence_interval else "",
            record.created_at.isoformat(),
            record.updated_at.isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> TransactionRecord:
        record_class = (
            IncomeRecord if _safe_get(row, 1) == EntryType.INCOME.value else ExpenseRecord
        )
        interval = _safe_get(row, 8)
        return record_class(
            id=UUID(_safe_get(row, 0)),
            account_id=UUID(_safe_get(row, 2)),
            amount=Decimal(_safe_get(row, 3)),
            category=_safe_get(row, 4),
            description=_safe_get(row, 5),
            date=date.fromisoformat(_safe_get(row, 6)),
            is_recurring=_safe_get(row, 7).lower() == "true",
            recurrence_interval=RecurrenceInterval(interval) if interval else None,
            created_at=datetime.fromisoformat(_safe_get(row, 9)),
            updated_at=datetime.fromisoformat(_safe_get(row, 10)),
        )

    def _transfer_to_row(self, record: TransferRecord) -> list:
        return [
            str(record.id),
            str(record.from_account_id),
            str(record.to_account_id),
            str(record.amount),
            record.description,
            record.date.isoformat(),
            str(record.is_recurring),
            record.recurrence_interval.value if record.recurrence_interval else "",
            record.created_at.isoformat(),
            record.updated_at.isoformat(),
        ]

    def _row_to_transfer(self, row: list) -> TransferRecord:
        interval = _safe_get(row, 7)
        return TransferRecord(
            id=UUID(_safe_get(row, 0)),
            from_account_id=UUID(_safe_get(row, 1)),
            to_account_id=UUID(_safe_get(row, 2)),
            amount=Decimal(_safe_get(row, 3)),
            description=_safe_get(row, 4),
            date=date.fromisoformat(_safe_get(row, 5)),
            is_recurring=_safe_get(row, 6).lower() == "true",
            recurrence_interval=RecurrenceInterval(interval) if interval else None,
            created_at=datetime.fromisoformat(_safe_get(row, 8)),
            updated_at=datetime.fromisoformat(_safe_get(row, 9)),
        )

    # -- transactions ---------------------------------------------------------

    async def get_transaction_by_id(
        self,
        transaction_id: UUID,
    ) -> Optional[TransactionRecord]:
        try:
            sheet = self._client.get_transactions_sheet()
            return self._get(sheet, transaction_id, self._row_to_transaction)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def add_transaction(self, record: TransactionRecord) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            return self._insert(sheet, record.id, self._transaction_to_row(record), "Transaction")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to add transaction: {e}")

    async def update_transaction(self, record: TransactionRecord) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            return self._replace(sheet, record.id, self._transaction_to_row(record), "Transaction")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            return self._remove(sheet, transaction_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    async def list_transactions(
        self,
        account_id: Optional[UUID] = None,
        entry_type: Optional[EntryType] = None,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = 100,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        try:
            sheet = self._client.get_transactions_sheet()
            records = []
            for record in self._parse_rows(sheet, self._row_to_transaction):
                if account_id and record.account_id != account_id:
                    continue
                if entry_type and record.type != entry_type:
                    continue
                if category and record.category.lower() != category.lower():
                    continue
                if date_from and record.date < date_from:
                    continue
                if date_to and record.date > date_to:
                    continue
                records.append(record)

            records.sort(key=lambda r: (r.date, r.created_at), reverse=True)
            return records[offset:] if limit is None else records[offset:offset + limit]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

    # -- transfers ------------------------------------------------------------

    async def get_transfer_by_id(self, transfer_id: UUID) -> Optional[TransferRecord]:
        try:
            sheet = self._client.get_transfers_sheet()
            return self._get(sheet, transfer_id, self._row_to_transfer)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get transfer: {e}")

    async def add_transfer(self, record: TransferRecord) -> bool:
        try:
            sheet = self._client.get_transfers_sheet()
            return self._insert(sheet, record.id, self._transfer_to_row(record), "Transfer")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to add transfer: {e}")

    async def update_transfer(self, record: TransferRecord) -> bool:
        try:
            sheet = self._client.get_transfers_sheet()
            return self._replace(sheet, record.id, self._transfer_to_row(record), "Transfer")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transfer: {e}")

    async def delete_transfer(self, transfer_id: UUID) -> bool:
        try:
            sheet = self._client.get_transfers_sheet()
            return self._remove(sheet, transfer_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete transfer: {e}")

    async def list_transfers(
        self,
        account_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = 100,
        offset: int = 0,
    ) -> list[TransferRecord]:
        try:
            sheet = self._client.get_transfers_sheet()
            records = []
            for record in self._parse_rows(sheet, self._row_to_transfer):
                if account_id and account_id not in (record.from_account_id, record.to_account_id):
                    continue
                if date_from and record.date < date_from:
                    continue
                if date_to and record.date > date_to:
                    continue
                records.append(record)

            records.sort(key=lambda r: (r.date, r.created_at), reverse=True)
            return records[offset:] if limit is None else records[offset:offset + limit]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list transfers: {e}")


def _optional_date(value: str) -> Optional[date]:
    return date.fromisoformat(value) if value else None


class GoogleSheetsLoanStorage(_SheetTable, LoanStorageInterface):
    """
    Google Sheets implementation of the loan store.

    Loans and repayments live on separate sheets.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _loan_to_row(self, loan: Loan) -> list:
        return [
            str(loan.id),
            loan.type.value,
            loan.party_name,
            str(loan.account_id),
            str(loan.principal_amount),
            str(loan.remaining_amount),
            loan.status.value,
            loan.start_date.isoformat(),
            loan.due_date.isoformat() if loan.due_date else "",
            loan.notes or "",
            str(loan.ledger_record_id),
            loan.created_at.isoformat(),
            loan.updated_at.isoformat(),
        ]

    def _row_to_loan(self, row: list) -> Loan:
        return Loan(
            id=UUID(_safe_get(row, 0)),
            type=LoanType(_safe_get(row, 1)),
            party_name=_safe_get(row, 2),
            account_id=UUID(_safe_get(row, 3)),
            principal_amount=Decimal(_safe_get(row, 4)),
            remaining_amount=Decimal(_safe_get(row, 5)),
            status=LoanStatus(_safe_get(row, 6, LoanStatus.ACTIVE.value)),
            start_date=date.fromisoformat(_safe_get(row, 7)),
            due_date=_optional_date(_safe_get(row, 8)),
            notes=_safe_get(row, 9) or None,
            ledger_record_id=UUID(_safe_get(row, 10)),
            created_at=datetime.fromisoformat(_safe_get(row, 11)),
            updated_at=datetime.fromisoformat(_safe_get(row, 12)),
        )

    def _repayment_to_row(self, repayment: LoanRepayment) -> list:
        return [
            str(repayment.id),
            str(repayment.loan_id),
            str(repayment.amount),
            repayment.payment_date.isoformat(),
            repayment.notes or "",
            str(repayment.ledger_record_id),
            repayment.created_at.isoformat(),
        ]

    def _row_to_repayment(self, row: list) -> LoanRepayment:
        return LoanRepayment(
            id=UUID(_safe_get(row, 0)),
            loan_id=UUID(_safe_get(row, 1)),
            amount=Decimal(_safe_get(row, 2)),
            payment_date=date.fromisoformat(_safe_get(row, 3)),
            notes=_safe_get(row, 4) or None,
            ledger_record_id=UUID(_safe_get(row, 5)),
            created_at=datetime.fromisoformat(_safe_get(row, 6)),
        )

    async def get_loan(self, loan_id: UUID) -> Optional[Loan]:
        try:
            return self._get(self._client.get_loans_sheet(), loan_id, self._row_to_loan)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get loan: {e}")

    async def list_loans(
        self,
        status: Optional[LoanStatus] = None,
    ) -> list[Loan]:
        try:
            loans = [
                loan for loan in self._parse_rows(self._client.get_loans_sheet(), self._row_to_loan)
                if status is None or loan.status == status
            ]
            loans.sort(key=lambda loan: loan.created_at, reverse=True)
            return loans
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list loans: {e}")

    async def add_loan(self, loan: Loan) -> bool:
        try:
            return self._insert(self._client.get_loans_sheet(), loan.id, self._loan_to_row(loan), "Loan")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to add loan: {e}")

    async def update_loan(self, loan: Loan) -> bool:
        try:
            return self._replace(self._client.get_loans_sheet(), loan.id, self._loan_to_row(loan), "Loan")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update loan: {e}")

    async def delete_loan(self, loan_id: UUID) -> bool:
        try:
            return self._remove(self._client.get_loans_sheet(), loan_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete loan: {e}")

    async def get_repayment(self, repayment_id: UUID) -> Optional[LoanRepayment]:
        try:
            return self._get(
                self._client.get_repayments_sheet(), repayment_id, self._row_to_repayment
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get repayment: {e}")

    async def list_repayments(self, loan_id: UUID) -> list[LoanRepayment]:
        try:
            sheet = self._client.get_repayments_sheet()
            repayments = [
                r for r in self._parse_rows(sheet, self._row_to_repayment)
                if r.loan_id == loan_id
            ]
            repayments.sort(key=lambda r: (r.payment_date, r.created_at), reverse=True)
            return repayments
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list repayments: {e}")

    async def add_repayment(self, repayment: LoanRepayment) -> bool:
        try:
            return self._insert(
                self._client.get_repayments_sheet(),
                repayment.id,
                self._repayment_to_row(repayment),
                "Repayment",
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to add repayment: {e}")

    async def delete_repayment(self, repayment_id: UUID) -> bool:
        try:
            return self._remove(self._client.get_repayments_sheet(), repayment_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete repayment: {e}")


class GoogleSheetsBudgetStorage(_SheetTable, BudgetStorageInterface):
    """Google Sheets implementation of the budget store."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _budget_to_row(self, budget: Budget) -> list:
        return [
            str(budget.id),
            budget.category,
            str(budget.amount),
            budget.period.value,
            budget.start_date.isoformat(),
            budget.end_date.isoformat() if budget.end_date else "",
            str(budget.account_id) if budget.account_id else "",
            str(budget.is_active),
            budget.created_at.isoformat(),
            budget.updated_at.isoformat(),
        ]

    def _row_to_budget(self, row: list) -> Budget:
        account_id = _safe_get(row, 6)
        return Budget(
            id=UUID(_safe_get(row, 0)),
            category=_safe_get(row, 1),
            amount=Decimal(_safe_get(row, 2)),
            period=BudgetPeriod(_safe_get(row, 3, BudgetPeriod.MONTHLY.value)),
            start_date=date.fromisoformat(_safe_get(row, 4)),
            end_date=_optional_date(_safe_get(row, 5)),
            account_id=UUID(account_id) if account_id else None,
            is_active=_safe_get(row, 7, "True").lower() == "true",
            created_at=datetime.fromisoformat(_safe_get(row, 8)),
            updated_at=datetime.fromisoformat(_safe_get(row, 9)),
        )

    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        try:
            return self._get(self._client.get_budgets_sheet(), budget_id, self._row_to_budget)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get budget: {e}")

    async def list_budgets(
        self,
        active_only: bool = True,
        category: Optional[str] = None,
        period: Optional[BudgetPeriod] = None,
        account_id: Optional[UUID] = None,
    ) -> list[Budget]:
        try:
            budgets = []
            for budget in self._parse_rows(self._client.get_budgets_sheet(), self._row_to_budget):
                if active_only and not budget.is_active:
                    continue
                if category and budget.category.lower() != category.lower():
                    continue
                if period and budget.period != period:
                    continue
                if account_id and budget.account_id != account_id:
                    continue
                budgets.append(budget)

            budgets.sort(key=lambda b: b.created_at, reverse=True)
            return budgets
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list budgets: {e}")

    async def add_budget(self, budget: Budget) -> bool:
        try:
            return self._insert(
                self._client.get_budgets_sheet(), budget.id, self._budget_to_row(budget), "Budget"
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to add budget: {e}")

    async def update_budget(self, budget: Budget) -> bool:
        try:
            return self._replace(
                self._client.get_budgets_sheet(), budget.id, self._budget_to_row(budget), "Budget"
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update budget: {e}")

    async def delete_budget(self, budget_id: UUID) -> bool:
        try:
            return self._remove(self._client.get_budgets_sheet(), budget_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete budget: {e}")


class GoogleSheetsAuditStorage(_SheetTable, AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=UUID(_safe_get(row, 5)) if _safe_get(row, 5) else None,
            correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            description=_safe_get(row, 7),
            details=json.loads(_safe_get(row, 8)) if _safe_get(row, 8) else {},
            error_message=_safe_get(row, 9) or None,
            is_user_action=_safe_get(row, 10).lower() == "true",
        )

    def _events(self, keep) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in self._data_rows(sheet):
            if not row or not row[0] or not keep(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            self._append(sheet, event.to_sheets_row())
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = self._events(
                lambda row: len(row) > 6 and row[6] == str(correlation_id)
            )
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = self._events(
                lambda row: len(row) > 5 and row[4] == entity_type and row[5] == str(entity_id)
            )
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._events(lambda row: True)
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
