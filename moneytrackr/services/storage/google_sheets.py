"""
Google Sheets Backend

Google Sheets serves as the hosted remote store:
1. Users can inspect their data directly in Sheets
2. No database server to provision
3. Google's infrastructure provides durability

TRADEOFFS:
- Not suitable for high-volume data (fine for one household's finances)
- No transactions (each call touches one worksheet)
- Limited query capabilities (we filter in Python)
- A cell holds at most 50,000 characters, which bounds backup size

Each table is one worksheet whose first row is the column header. Every
cell holds the JSON encoding of its value so numbers, booleans and
nested objects survive the round trip; an empty cell reads back as None.
"""

import json
from typing import Any, Optional, Sequence
from uuid import uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from moneytrackr.config import GoogleSheetsSettings, get_settings
from moneytrackr.services.storage.interface import (
    GOALS_TABLE,
    RESTORE_POINTS_TABLE,
    SECURITY_LOGS_TABLE,
    SETTINGS_TABLE,
    SNAPSHOTS_TABLE,
    TRANSACTIONS_TABLE,
    BackendConnectionError,
    Filter,
    Order,
    PersistenceBackend,
    StorageError,
    apply_query,
)


# Column layout of every table worksheet
TABLE_COLUMNS: dict[str, list[str]] = {
    TRANSACTIONS_TABLE: [
        "id",
        "user_id",
        "type",
        "amount",
        "description",
        "category",
        "date",
        "time",
        "payment_method",
        "source",
        "merchant",
        "notes",
        "recurring",
        "currency",
    ],
    GOALS_TABLE: [
        "id",
        "user_id",
        "title",
        "description",
        "target_amount",
        "current_amount",
        "deadline",
        "category",
        "priority",
        "status",
        "created_at",
        "currency",
        "target_category",
    ],
    SETTINGS_TABLE: [
        "id",
        "user_id",
        "profile",
        "notifications",
        "privacy",
        "appearance",
    ],
    SNAPSHOTS_TABLE: [
        "id",
        "user_id",
        "timestamp",
        "version",
        "operation",
        "entity_type",
        "entity_id",
        "previous_data",
        "new_data",
        "change_description",
        "device_info",
        "metadata",
    ],
    RESTORE_POINTS_TABLE: [
        "id",
        "user_id",
        "timestamp",
        "description",
        "data_size",
        "version",
        "is_auto_backup",
        "data",
    ],
    SECURITY_LOGS_TABLE: [
        "id",
        "user_id",
        "type",
        "timestamp",
        "details",
        "ip_address",
        "user_agent",
    ],
}

_RETRY = dict(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def encode_row(columns: Sequence[str], row: dict) -> list[str]:
    """Convert a row dict to worksheet cells in column order."""
    return [
        "" if row.get(column) is None else json.dumps(row[column], ensure_ascii=False)
        for column in columns
    ]


def decode_row(columns: Sequence[str], cells: Sequence[str]) -> dict[str, Any]:
    """Convert worksheet cells back to a row dict; missing cells read as None."""
    row = {}
    for index, column in enumerate(columns):
        raw = cells[index] if index < len(cells) else ""
        row[column] = json.loads(raw) if raw else None
    return row


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet lookup, with retry logic for
    the connection.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(**_RETRY)
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
                raise BackendConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise BackendConnectionError(f"Failed to connect to Google Sheets: {e}") from e

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
                raise BackendConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_table_sheet(self, table: str) -> gspread.Worksheet:
        """Get or create the worksheet backing ``table``."""
        columns = TABLE_COLUMNS[table]
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(table)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=table,
                rows=self._settings.initial_rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class GoogleSheetsBackend(PersistenceBackend):
    """
    Google Sheets implementation of the persistence contract.

    The backend assigns a UUID to inserted rows that carry no id, the way
    a hosted database would generate a primary key.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read_rows(self, table: str) -> list[tuple[int, dict]]:
        """All data rows with their 1-based sheet row numbers."""
        columns = TABLE_COLUMNS[table]
        sheet = self._client.get_table_sheet(table)
        values = sheet.get_all_values()[1:]  # Skip header
        rows = []
        for index, cells in enumerate(values, start=2):
            if not cells or not cells[0]:  # Skip empty rows
                continue
            rows.append((index, decode_row(columns, cells)))
        return rows

    def _matching(self, table: str, filters: Sequence[Filter]) -> list[tuple[int, dict]]:
        return [
            (index, row) for index, row in self._read_rows(table)
            if all(f.matches(row) for f in filters)
        ]

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        row_range: Optional[tuple[int, int]] = None,
    ) -> list[dict]:
        try:
            rows = [row for _, row in self._read_rows(table)]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {table}: {e}") from e
        return apply_query(rows, filters, order, row_range)

    async def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        try:
            return len(self._matching(table, filters))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to count {table}: {e}") from e

    @retry(**_RETRY)
    async def insert(self, table: str, row: dict) -> dict:
        stored = dict(row)
        if not stored.get("id"):
            stored["id"] = str(uuid4())
        try:
            sheet = self._client.get_table_sheet(table)
            sheet.append_row(encode_row(TABLE_COLUMNS[table], stored), value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {table}: {e}") from e
        return stored

    @retry(**_RETRY)
    async def update(self, table: str, filters: Sequence[Filter], patch: dict) -> int:
        columns = TABLE_COLUMNS[table]
        try:
            sheet = self._client.get_table_sheet(table)
            matched = self._matching(table, filters)
            for index, row in matched:
                row.update(patch)
                sheet.update(
                    range_name=f"A{index}",
                    values=[encode_row(columns, row)],
                    value_input_option="RAW",
                )
            return len(matched)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {table}: {e}") from e

    @retry(**_RETRY)
    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        try:
            sheet = self._client.get_table_sheet(table)
            matched = self._matching(table, filters)
            # Bottom-up so earlier row numbers stay valid
            for index, _ in sorted(matched, key=lambda item: item[0], reverse=True):
                sheet.delete_rows(index)
            return len(matched)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete from {table}: {e}") from e
