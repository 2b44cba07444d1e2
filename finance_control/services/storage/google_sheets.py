"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the hosted backend. Each worksheet plays
the role of one table:
- profiles, financial_controls, transactions, reminders, investments
- AuditLog (append-only)

Child tables reference their control through a snake_case control_id
column, the way a relational backend keys them by foreign key.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: deleting a control removes children first, then the control
- Limited query capabilities (we filter in Python)

BOUNDARY RULE: Rows are loosely typed strings. Every row is mapped field by
field into a model; unknown columns are ignored and rows that do not fit the
model are skipped with a warning instead of reaching the ledger.
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError

from finance_control.config import GoogleSheetsSettings, get_settings
from finance_control.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_control.models.ledger import (
    Account,
    FinancialControl,
    Investment,
    Reminder,
    Transaction,
    User,
)
from finance_control.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    JsonFileBackend,
    KeyValueBackend,
    LedgerStorageInterface,
    LocalPreferencesMixin,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Column layout per table
SHEET_COLUMNS: dict[str, list[str]] = {
    "profiles": [
        "id", "email", "name", "nickname", "avatar_url", "password_hash", "created_at",
    ],
    "financial_controls": [
        "id", "name", "currency", "type", "owner_id", "members_json", "created_at",
    ],
    "transactions": [
        "id", "control_id", "description", "amount", "type", "category", "frequency", "date",
    ],
    "reminders": [
        "id", "control_id", "description", "amount", "date",
    ],
    "investments": [
        "id", "control_id", "name", "type", "custom_type", "amount",
        "expected_return", "return_frequency", "date",
    ],
    "audit": [
        "event_id", "timestamp", "event_type", "severity", "entity_type", "entity_id",
        "correlation_id", "description", "details_json", "error_message", "is_user_action",
    ],
}

CHILD_TABLES = ("transactions", "reminders", "investments")


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and maps table names to worksheets,
    creating missing worksheets with their header row.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _sheet_title(self, table: str) -> str:
        titles = {
            "profiles": self._settings.profiles_sheet_name,
            "financial_controls": self._settings.controls_sheet_name,
            "transactions": self._settings.transactions_sheet_name,
            "reminders": self._settings.reminders_sheet_name,
            "investments": self._settings.investments_sheet_name,
            "audit": self._settings.audit_sheet_name,
        }
        return titles[table]

    def get_sheet(self, table: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a table."""
        spreadsheet = self.get_spreadsheet()
        title = self._sheet_title(table)
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            columns = SHEET_COLUMNS[table]
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


# =============================================================================
# ROW <-> MODEL MAPPING
# =============================================================================

def _read_records(sheet: Any) -> list[tuple[int, dict[str, str]]]:
    """
    Read a worksheet as (row_number, {column: value}) pairs.

    Row numbers are 1-based sheet rows (row 1 is the header).
    Short rows are padded with empty strings; empty rows are skipped.
    """
    values = sheet.get_all_values()
    if not values:
        return []

    header = values[0]
    records = []
    for row_number, row in enumerate(values[1:], start=2):
        if not row or not row[0]:
            continue
        record = {
            column: (row[idx] if idx < len(row) else "")
            for idx, column in enumerate(header)
        }
        records.append((row_number, record))
    return records


def _optional(value: str) -> Optional[str]:
    return value or None


def _parse_rows(
    table: str,
    records: list[tuple[int, dict[str, str]]],
    build: Callable[[dict[str, str]], T],
) -> list[tuple[dict[str, str], T]]:
    parsed = []
    for row_number, record in records:
        try:
            parsed.append((record, build(record)))
        except (KeyError, ValueError, ValidationError) as e:
            logger.warning(
                "sheet_row_skipped",
                table=table,
                row=row_number,
                error=str(e),
            )
    return parsed


def _control_from_record(record: dict[str, str]) -> FinancialControl:
    members = json.loads(record["members_json"]) if record.get("members_json") else []
    return FinancialControl.model_validate({
        "id": record["id"],
        "name": record["name"],
        "currency": record["currency"],
        "type": record["type"],
        "owner_id": record["owner_id"],
        "members": members,
    })


def _transaction_from_record(record: dict[str, str]) -> Transaction:
    return Transaction.model_validate({
        "id": record["id"],
        "description": record["description"],
        "amount": record["amount"],
        "type": record["type"],
        "category": record["category"],
        "frequency": record["frequency"] or "one-time",
        "date": record["date"],
    })


def _reminder_from_record(record: dict[str, str]) -> Reminder:
    return Reminder.model_validate({
        "id": record["id"],
        "description": record["description"],
        "amount": record["amount"],
        "date": record["date"],
    })


def _investment_from_record(record: dict[str, str]) -> Investment:
    return Investment.model_validate({
        "id": record["id"],
        "name": record["name"],
        "type": record["type"],
        "custom_type": _optional(record.get("custom_type", "")),
        "amount": record["amount"],
        "expected_return": _optional(record.get("expected_return", "")),
        "return_frequency": _optional(record.get("return_frequency", "")),
        "date": record["date"],
    })


def _account_from_record(record: dict[str, str]) -> Account:
    user = User.model_validate({
        "id": record["id"],
        "email": record["email"],
        "name": record["name"],
        "nickname": _optional(record.get("nickname", "")),
        "avatar": _optional(record.get("avatar_url", "")),
    })
    return Account(user=user, password_hash=record["password_hash"])


def _control_to_row(control: FinancialControl) -> list:
    return [
        str(control.id),
        control.name,
        control.currency.value,
        control.type.value,
        str(control.owner_id),
        json.dumps(control.members),
        datetime.now(timezone.utc).isoformat(),
    ]


def _transaction_to_row(control_id: UUID, transaction: Transaction) -> list:
    return [
        str(transaction.id),
        str(control_id),
        transaction.description,
        str(transaction.amount),
        transaction.type.value,
        transaction.category.value,
        transaction.frequency.value,
        transaction.date.isoformat(),
    ]


def _reminder_to_row(control_id: UUID, reminder: Reminder) -> list:
    return [
        str(reminder.id),
        str(control_id),
        reminder.description,
        str(reminder.amount),
        reminder.date.isoformat(),
    ]


def _account_to_row(account: Account, created_at: Optional[str] = None) -> list:
    user = account.user
    return [
        str(user.id),
        user.email,
        user.name,
        user.nickname or "",
        user.avatar or "",
        account.password_hash,
        created_at or datetime.now(timezone.utc).isoformat(),
    ]


# =============================================================================
# LEDGER STORAGE
# =============================================================================

class GoogleSheetsLedgerStorage(
    LocalPreferencesMixin,
    LedgerStorageInterface,
    AccountStorageInterface,
):
    """
    Google Sheets implementation of ledger storage.

    Ledger tables live in the spreadsheet; session and language live in a
    local key-value backend.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        backend: Optional[KeyValueBackend] = None,
        key_prefix: Optional[str] = None,
    ):
        self._client = client or GoogleSheetsClient()
        if backend is None or key_prefix is None:
            settings = get_settings().local_storage
            backend = backend or JsonFileBackend(settings.data_dir)
            key_prefix = key_prefix or settings.key_prefix
        self._backend = backend
        self._key_prefix = key_prefix

    def _records(self, table: str) -> list[tuple[int, dict[str, str]]]:
        return _read_records(self._client.get_sheet(table))

    def _append(self, table: str, row: list) -> None:
        self._client.get_sheet(table).append_row(row, value_input_option="RAW")

    def _delete_where(self, table: str, column: str, value: str) -> int:
        """Delete every row whose column equals value. Returns rows deleted."""
        sheet = self._client.get_sheet(table)
        matches = [
            row_number
            for row_number, record in _read_records(sheet)
            if record.get(column) == value
        ]
        # Bottom-up so earlier row numbers stay valid
        for row_number in sorted(matches, reverse=True):
            sheet.delete_rows(row_number)
        return len(matches)

    def _require_control(self, control_id: UUID) -> None:
        if not any(
            record.get("id") == str(control_id)
            for _, record in self._records("financial_controls")
        ):
            raise NotFoundError(f"Control not found: {control_id}")

    # -------------------------------------------------------------------------
    # Controls
    # -------------------------------------------------------------------------

    async def list_controls(self, owner_id: UUID) -> list[FinancialControl]:
        """Load a user's controls with their collections."""
        try:
            controls = [
                control
                for _, control in _parse_rows(
                    "financial_controls",
                    self._records("financial_controls"),
                    _control_from_record,
                )
                if control.owner_id == owner_id
            ]
            if not controls:
                return []

            wanted = {str(c.id) for c in controls}
            children: dict[str, dict[str, list]] = {
                table: {control_id: [] for control_id in wanted} for table in CHILD_TABLES
            }
            builders = {
                "transactions": _transaction_from_record,
                "reminders": _reminder_from_record,
                "investments": _investment_from_record,
            }
            for table in CHILD_TABLES:
                records = [
                    (row_number, record)
                    for row_number, record in self._records(table)
                    if record.get("control_id") in wanted
                ]
                for record, item in _parse_rows(table, records, builders[table]):
                    children[table][record["control_id"]].append(item)

            result = []
            for control in controls:
                key = str(control.id)
                # Newest appended row first, then newest date first (stable)
                transactions = list(reversed(children["transactions"][key]))
                transactions.sort(key=lambda t: t.date, reverse=True)
                result.append(control.model_copy(update={
                    "transactions": transactions,
                    "reminders": list(reversed(children["reminders"][key])),
                    "investments": list(reversed(children["investments"][key])),
                }))
            return result
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list controls: {e}")

    async def insert_control(self, control: FinancialControl) -> FinancialControl:
        try:
            self._append("financial_controls", _control_to_row(control))
            return control
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save control: {e}")

    async def delete_control(self, control_id: UUID) -> bool:
        """Delete a control; children go first so none are left orphaned."""
        try:
            for table in CHILD_TABLES:
                deleted = self._delete_where(table, "control_id", str(control_id))
                logger.debug("control_children_deleted", table=table, count=deleted)
            return self._delete_where("financial_controls", "id", str(control_id)) > 0
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete control: {e}")

    # -------------------------------------------------------------------------
    # Transactions and reminders
    # -------------------------------------------------------------------------

    async def insert_transaction(
        self,
        control_id: UUID,
        transaction: Transaction,
    ) -> Transaction:
        try:
            self._require_control(control_id)
            self._append("transactions", _transaction_to_row(control_id, transaction))
            return transaction
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        try:
            return self._delete_where("transactions", "id", str(transaction_id)) > 0
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    async def insert_reminder(self, control_id: UUID, reminder: Reminder) -> Reminder:
        try:
            self._require_control(control_id)
            self._append("reminders", _reminder_to_row(control_id, reminder))
            return reminder
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save reminder: {e}")

    async def delete_reminder(self, reminder_id: UUID) -> bool:
        try:
            return self._delete_where("reminders", "id", str(reminder_id)) > 0
        except Exception as e:
            raise StorageError(f"Failed to delete reminder: {e}")

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    async def find_account(self, email: str) -> Optional[Account]:
        wanted = email.strip().lower()
        try:
            records = [
                (row_number, record)
                for row_number, record in self._records("profiles")
                if record.get("email", "").lower() == wanted
            ]
            parsed = _parse_rows("profiles", records, _account_from_record)
            return parsed[0][1] if parsed else None
        except Exception as e:
            raise StorageError(f"Failed to look up profile: {e}")

    async def save_account(self, account: Account) -> Account:
        try:
            sheet = self._client.get_sheet("profiles")
            for row_number, record in _read_records(sheet):
                if record.get("id") == str(account.user.id):
                    new_row = _account_to_row(account, created_at=record.get("created_at"))
                    for col_idx, value in enumerate(new_row, start=1):
                        sheet.update_cell(row_number, col_idx, value)
                    return account

            sheet.append_row(_account_to_row(account), value_input_option="RAW")
            return account
        except Exception as e:
            raise StorageError(f"Failed to save profile: {e}")


# =============================================================================
# AUDIT STORAGE
# =============================================================================

class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, record: dict[str, str]) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(record["event_id"]),
            timestamp=datetime.fromisoformat(record["timestamp"]),
            event_type=AuditEventType(record["event_type"]),
            severity=AuditSeverity(record["severity"]),
            entity_type=record.get("entity_type") or None,
            entity_id=UUID(record["entity_id"]) if record.get("entity_id") else None,
            correlation_id=UUID(record["correlation_id"]) if record.get("correlation_id") else None,
            description=record["description"],
            details=json.loads(record["details_json"]) if record.get("details_json") else {},
            error_message=record.get("error_message") or None,
            is_user_action=record.get("is_user_action", "").lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_sheet("audit")
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get recent events, newest first."""
        try:
            records = _read_records(self._client.get_sheet("audit"))
            events = [
                event
                for _, event in _parse_rows("audit", records, self._row_to_event)
            ]
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
