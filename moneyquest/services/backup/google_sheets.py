"""
Google Sheets Backup Store

DESIGN DECISION: Google Sheets is used as the first remote backup target because:
1. Users can see (and download) their own snapshots in Sheets
2. No server or bucket to provision
3. Google handles durability

TRADEOFFS:
- One snapshot per row, so a single snapshot must fit in one cell
  (50,000 characters). Larger payloads are rejected, not truncated.
- Lookups scan the whole sheet (fine for a handful of snapshots per user)

Rows are append-only; the latest snapshot for a user is the last row
carrying their user id.
"""

import json
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from moneyquest.config import GoogleSheetsSettings, get_settings
from moneyquest.models.integrations import BackupSnapshot
from moneyquest.services.backup.interface import RemoteBlobStore
from moneyquest.services.storage.interface import StorageError


# Google Sheets hard limit per cell
MAX_CELL_CHARACTERS = 50_000

BACKUP_COLUMNS = [
    "user_id",
    "timestamp",
    "version",
    "checksum",
    "payload_json",
]


class SheetsConnectionError(StorageError):
    """Could not reach the configured spreadsheet."""
    pass


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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
                raise SheetsConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise SheetsConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise SheetsConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_backups_sheet(self) -> gspread.Worksheet:
        """Get or create the Backups worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.backups_sheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.backups_sheet_name,
                rows=1000,
                cols=len(BACKUP_COLUMNS),
            )
            sheet.append_row(BACKUP_COLUMNS)
        return sheet


class GoogleSheetsBlobStore(RemoteBlobStore):
    """
    Google Sheets implementation of the remote blob store.

    The (possibly encrypted) payload is JSON-serialized into a single cell.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _snapshot_to_row(self, snapshot: BackupSnapshot) -> list:
        payload = json.dumps(snapshot.to_wire()["data"], separators=(",", ":"))
        if len(payload) > MAX_CELL_CHARACTERS:
            raise StorageError(
                f"Backup payload is {len(payload)} characters; "
                f"a sheet cell holds at most {MAX_CELL_CHARACTERS}"
            )
        return [
            snapshot.user_id,
            snapshot.timestamp.isoformat(),
            snapshot.version,
            snapshot.checksum,
            payload,
        ]

    def _row_to_snapshot(self, row: list) -> BackupSnapshot:
        return BackupSnapshot(
            user_id=row[0],
            timestamp=row[1],
            version=row[2],
            checksum=row[3],
            data=json.loads(row[4]),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_row(self, row: list) -> None:
        try:
            sheet = self._client.get_backups_sheet()
            sheet.append_row(row, value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save backup: {e}")

    async def put(self, snapshot: BackupSnapshot) -> None:
        """Append a snapshot row. Oversized payloads are rejected before any network call."""
        self._append_row(self._snapshot_to_row(snapshot))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_rows(self) -> list[list]:
        try:
            sheet = self._client.get_backups_sheet()
            # Skip header
            return sheet.get_all_values()[1:]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read backups: {e}")

    async def get_latest(self, user_id: str) -> Optional[BackupSnapshot]:
        """Last snapshot row written for ``user_id``."""
        all_rows = self._read_rows()

        latest = None
        for row in all_rows:
            if row and len(row) >= len(BACKUP_COLUMNS) and row[0] == user_id:
                latest = row

        if latest is None:
            return None
        try:
            return self._row_to_snapshot(latest)
        except (ValueError, IndexError) as e:
            raise StorageError(f"Corrupt backup row for user {user_id}: {e}")
