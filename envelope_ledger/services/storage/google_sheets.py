"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the remote store because:
1. Users can view their accounts and envelopes directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No multi-row transactions (the ledger engine orders its writes and
  reports partial commits instead)
- Limited query capabilities (we filter in Python)
- No push notifications: subscribers only hear about writes made
  through this client

Each entity lives in its own worksheet, one record per row, with the
model's field names as the header row.
"""

import json
from datetime import datetime
from typing import Any, Optional, get_origin

import gspread
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from envelope_ledger.config import GoogleSheetsSettings, get_settings
from envelope_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from envelope_ledger.models.ledger import ENTITY_MODELS, ChangeType, Entity
from envelope_ledger.services.storage.interface import (
    AuditStorageInterface,
    RemoteStore,
    RemoteUnavailableError,
    StorageError,
    matches_filters,
)


# Column mappings for Audit sheet
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
]


def entity_columns(entity: Entity) -> list[str]:
    """Header row for an entity worksheet."""
    return list(ENTITY_MODELS[entity].model_fields)


def record_to_row(entity: Entity, record: BaseModel) -> list[str]:
    """Convert a record to a spreadsheet row of strings."""
    data = record.model_dump(mode="json")
    row = []
    for column in entity_columns(entity):
        value = data.get(column)
        if value is None:
            row.append("")
        elif isinstance(value, bool):
            row.append("true" if value else "false")
        elif isinstance(value, (dict, list)):
            row.append(json.dumps(value))
        else:
            row.append(str(value))
    return row


def row_to_record(entity: Entity, row: list[str]) -> BaseModel:
    """Convert a spreadsheet row back to its model."""
    model = ENTITY_MODELS[entity]
    data: dict[str, Any] = {}
    for index, column in enumerate(entity_columns(entity)):
        value = row[index] if index < len(row) else ""
        if value == "":
            continue
        if get_origin(model.model_fields[column].annotation) is dict:
            value = json.loads(value)
        data[column] = value
    return model.model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
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
                raise StorageError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise RemoteUnavailableError(f"Failed to connect to Google Sheets: {e}")

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
                raise StorageError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def sheet_name(self, entity: Entity) -> str:
        return {
            Entity.ACCOUNTS: self._settings.accounts_sheet_name,
            Entity.CATEGORIES: self._settings.categories_sheet_name,
            Entity.TRANSACTIONS: self._settings.transactions_sheet_name,
            Entity.MONTHLY_SUMMARIES: self._settings.summaries_sheet_name,
        }[entity]

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_entity_sheet(self, entity: Entity) -> gspread.Worksheet:
        """Get or create the worksheet holding an entity."""
        return self._get_or_create(self.sheet_name(entity), entity_columns(entity), 1000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000)


class GoogleSheetsRemoteStore(RemoteStore):
    """
    Google Sheets implementation of the remote store.

    Ids are integers in the first column; new ids are one past the
    largest id in the sheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        super().__init__()
        self._client = client or GoogleSheetsClient()

    def _rows(self, entity: Entity) -> tuple[gspread.Worksheet, list[list[str]]]:
        try:
            sheet = self._client.get_entity_sheet(entity)
            return sheet, sheet.get_all_values()[1:]  # Skip header
        except StorageError:
            raise
        except (gspread.exceptions.APIError, OSError) as e:
            raise RemoteUnavailableError(f"Failed to read {entity.value}: {e}")

    @staticmethod
    def _find(rows: list[list[str]], record_id: int) -> Optional[int]:
        """Index of the row holding record_id, or None."""
        for idx, row in enumerate(rows):
            if row and row[0] == str(record_id):
                return idx
        return None

    async def get(self, entity: Entity, record_id: int) -> Optional[BaseModel]:
        _, rows = self._rows(entity)
        idx = self._find(rows, record_id)
        if idx is None:
            return None
        return row_to_record(entity, rows[idx])

    async def upsert(self, entity: Entity, record: BaseModel) -> BaseModel:
        sheet, rows = self._rows(entity)
        stored = record.model_copy(deep=True)
        try:
            idx = self._find(rows, stored.id) if stored.id is not None else None
            if idx is None:
                if stored.id is None:
                    ids = [int(row[0]) for row in rows if row and row[0]]
                    stored.id = max(ids, default=0) + 1
                sheet.append_row(record_to_row(entity, stored), value_input_option="RAW")
                change = ChangeType.CREATE
            else:
                # Row 1 is the header
                sheet.update(
                    values=[record_to_row(entity, stored)],
                    range_name=f"A{idx + 2}",
                    value_input_option="RAW",
                )
                change = ChangeType.UPDATE
        except (gspread.exceptions.APIError, OSError) as e:
            raise RemoteUnavailableError(f"Failed to write {entity.value} {stored.id}: {e}")
        except Exception as e:
            raise StorageError(f"Failed to write {entity.value} {stored.id}: {e}")

        self._notify(change, entity, stored.id, stored.owner_id)
        return stored

    async def delete(self, entity: Entity, record_id: int) -> bool:
        sheet, rows = self._rows(entity)
        idx = self._find(rows, record_id)
        if idx is None:
            return False
        owner_id = row_to_record(entity, rows[idx]).owner_id
        try:
            sheet.delete_rows(idx + 2)
        except (gspread.exceptions.APIError, OSError) as e:
            raise RemoteUnavailableError(f"Failed to delete {entity.value} {record_id}: {e}")
        self._notify(ChangeType.DELETE, entity, record_id, owner_id)
        return True

    async def list(
        self,
        entity: Entity,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[BaseModel]:
        _, rows = self._rows(entity)
        records = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            record = row_to_record(entity, row)
            if matches_filters(record, filters):
                records.append(record)
        if order_by:
            records.sort(key=lambda r: getattr(r, order_by), reverse=descending)
        if limit is not None:
            records = records[:limit]
        return records


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit storage.

    Audit events are appended as rows - never modified or deleted.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to append audit event: {e}")

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=safe_get(0),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3, "info")),
            entity_type=safe_get(4) or None,
            entity_id=int(safe_get(5)) if safe_get(5) else None,
            correlation_id=safe_get(6) or None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
        )

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get most recent events (newest first)."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]

            # Take last N rows and reverse for newest first
            recent_rows = all_rows[-limit:][::-1]
            return [self._row_to_event(row) for row in recent_rows if row and row[0]]
        except Exception as e:
            raise StorageError(f"Failed to get recent events: {e}")
