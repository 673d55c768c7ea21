"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the initial hosted backend because:
1. The finance committee can view the books directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

Each table is one worksheet. Row 1 holds the column names; new columns are
appended to the header the first time a record carries them. Nested values
(``payment_details``) are stored as JSON text.

TRADEOFFS:
- Not suitable for high-volume data (a congregation's books are fine)
- No transactions (the reconciliation flow surfaces partial failures)
- Limited query capabilities (we filter in Python)
- Every cell comes back as text, so ``is_loan`` may read as "TRUE"/"false"
  and amounts as "5000"; models normalise these on validation
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import get_settings
from src.services.storage.filters import RecordFilter, matches
from src.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)


DEFAULT_COLUMNS = ["id", "created_at", "updated_at"]


def encode_cell(value: Any) -> str:
    """Convert a record value to sheet text."""
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def decode_cell(text: str) -> Any:
    """Convert sheet text back to a record value."""
    if text == "":
        return None
    if text[:1] in ("{", "["):
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
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

    def get_worksheet(self, table: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a table."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(table)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=table,
                rows=self._settings.default_sheet_rows,
                cols=len(DEFAULT_COLUMNS),
            )
            sheet.append_row(DEFAULT_COLUMNS)
        return sheet


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of the record store.

    Records are stored as rows, one record per row, keyed by the ``id``
    column.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read(self, table: str) -> tuple[gspread.Worksheet, list[str], list[list[str]]]:
        sheet = self._client.get_worksheet(table)
        values = sheet.get_all_values()
        header = values[0] if values else list(DEFAULT_COLUMNS)
        return sheet, header, values[1:]

    def _row_to_record(self, header: list[str], row: list[str]) -> dict[str, Any]:
        # Handle short rows gracefully
        padded = row + [""] * (len(header) - len(row))
        return {
            column: decode_cell(cell)
            for column, cell in zip(header, padded)
            if column
        }

    def _record_to_row(self, header: list[str], record: dict[str, Any]) -> list[str]:
        return [encode_cell(record.get(column)) for column in header]

    def _ensure_columns(
        self,
        sheet: gspread.Worksheet,
        header: list[str],
        record: dict[str, Any],
    ) -> list[str]:
        missing = [key for key in record if key not in header]
        if not missing:
            return header
        new_header = header + missing
        if sheet.col_count < len(new_header):
            sheet.add_cols(len(new_header) - sheet.col_count)
        sheet.update([new_header], "A1")
        return new_header

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def select(
        self,
        table: str,
        filters: Optional[list[RecordFilter]] = None,
    ) -> list[dict[str, Any]]:
        try:
            _, header, rows = self._read(table)
        except Exception as e:
            raise StorageError(f"Failed to read {table}: {e}")

        records = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            record = self._row_to_record(header, row)
            if matches(record, filters or []):
                records.append(record)
        return records

    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        found = await self.select(table, [RecordFilter.eq("id", str(record_id))])
        return found[0] if found else None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        stored = dict(record)
        stored["id"] = str(stored.get("id") or uuid4())
        stored.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        try:
            sheet, header, rows = self._read(table)
            if any(row and row[0] == stored["id"] for row in rows):
                raise DuplicateError(f"Duplicate id in {table}: {stored['id']}")
            header = self._ensure_columns(sheet, header, stored)
            sheet.append_row(
                self._record_to_row(header, stored),
                value_input_option="RAW",
            )
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {table}: {e}")
        return self._row_to_record(header, self._record_to_row(header, stored))

    async def update(
        self,
        table: str,
        record_id: str,
        patch: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            sheet, header, rows = self._read(table)

            # Row 1 is the header, data starts at row 2
            for idx, row in enumerate(rows, start=2):
                if row and row[0] == str(record_id):
                    record = self._row_to_record(header, row)
                    record.update({k: v for k, v in patch.items() if k != "id"})
                    record["updated_at"] = datetime.now(timezone.utc).isoformat()
                    header = self._ensure_columns(sheet, header, record)
                    sheet.update(
                        [self._record_to_row(header, record)],
                        f"A{idx}",
                        value_input_option="RAW",
                    )
                    return self._row_to_record(
                        header, self._record_to_row(header, record)
                    )

            raise NotFoundError(f"Record not found in {table}: {record_id}")
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {table}: {e}")

    async def delete(self, table: str, filters: list[RecordFilter]) -> int:
        if not filters:
            raise StorageError(f"Refusing to delete from {table} without filters")
        try:
            sheet, header, rows = self._read(table)
            doomed = [
                idx
                for idx, row in enumerate(rows, start=2)
                if row and row[0] and matches(self._row_to_record(header, row), filters)
            ]
            # Delete bottom-up so earlier indexes stay valid
            for idx in reversed(doomed):
                sheet.delete_rows(idx)
            return len(doomed)
        except Exception as e:
            raise StorageError(f"Failed to delete from {table}: {e}")
