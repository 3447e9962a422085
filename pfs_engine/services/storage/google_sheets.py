"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the hosted persistence backend because:
1. The subject can view and audit their figures directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

LAYOUT:
- One worksheet per entity table (Properties, BankAccounts, ...). Each row
  holds the indexed bookkeeping columns plus the full entity as JSON.
- One worksheet for PFS snapshots, one for the audit log.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions; each write is one row append or one row rewrite
- Limited query capabilities (we filter in Python)

gspread is blocking, so every sheet call runs in a worker thread. Transient
API failures are retried here with tenacity; the engine itself never retries.
"""

import asyncio
import json
import threading
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from pfs_engine.config import GoogleSheetsSettings, get_settings
from pfs_engine.models.audit import AuditEvent, AuditEventType, AuditSeverity
from pfs_engine.models.base import utcnow
from pfs_engine.models.pfs import PFSSnapshot
from pfs_engine.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    SnapshotStorageInterface,
    StorageError,
    T,
)
from pfs_engine.services.storage.versioned import Normalizer, VersionedRepository


logger = structlog.get_logger()

# Column mappings for entity sheets
ENTITY_COLUMNS = [
    "id",
    "subject_id",
    "version",
    "created_at",
    "updated_at",
    "deleted_at",
    "data_json",
]

# Column mappings for the snapshots sheet
SNAPSHOT_COLUMNS = [
    "id",
    "subject_id",
    "snapshot_name",
    "snapshot_date",
    "is_outdated",
    "outdated_reason",
    "deleted_at",
    "data_json",
]

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

sheets_retry = retry(
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

    Handles authentication and provides retry logic for API calls.
    Lazy setup runs under a lock; blocking calls arrive from worker threads.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._lock = threading.RLock()
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @sheets_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        with self._lock:
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
                    raise ConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        with self._lock:
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

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        if title in self._worksheets:
            return self._worksheets[title]

        with self._lock:
            # Another thread may have created it while we waited
            if title in self._worksheets:
                return self._worksheets[title]

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
            self._worksheets[title] = sheet
            return sheet

    def get_snapshots_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.snapshots_sheet_name, SNAPSHOT_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


# =============================================================================
# ROW HELPERS
# =============================================================================

@sheets_retry
def _read_rows(sheet: gspread.Worksheet) -> list[list[str]]:
    """All data rows, header excluded."""
    return sheet.get_all_values()[1:]


@sheets_retry
def _append_row(sheet: gspread.Worksheet, row: list) -> None:
    sheet.append_row(row, value_input_option="RAW")


@sheets_retry
def _rewrite_row(sheet: gspread.Worksheet, row_number: int, row: list) -> None:
    sheet.update(
        values=[row],
        range_name=f"A{row_number}",
        value_input_option="RAW",
    )


def _find_row_number(rows: list[list[str]], key: str) -> Optional[int]:
    """1-based sheet row number for the row whose first cell is key."""
    for idx, row in enumerate(rows, start=2):  # Row 1 is the header
        if row and row[0] == key:
            return idx
    return None


async def _run(operation: str, func: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking sheet call in a thread, mapping failures to StorageError."""
    try:
        return await asyncio.to_thread(func, *args)
    except StorageError:
        raise
    except Exception as e:
        raise StorageError(f"Failed to {operation}: {e}") from e


# =============================================================================
# ENTITIES
# =============================================================================

class GoogleSheetsEntityRepository(VersionedRepository[T]):
    """
    Entity repository backed by one worksheet named after the entity table.

    The JSON column is authoritative; the other columns exist so the sheet
    stays readable and filterable by a person.
    """

    def __init__(
        self,
        model: type[T],
        client: Optional[GoogleSheetsClient] = None,
        normalizer: Optional[Normalizer] = None,
    ):
        super().__init__(model, normalizer)
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self.model.table_name, ENTITY_COLUMNS)

    def _entity_to_row(self, entity: T) -> list:
        return [
            entity.id,
            getattr(entity, "subject_id", None) or "",
            entity.version,
            entity.created_at.isoformat(),
            entity.updated_at.isoformat(),
            entity.deleted_at.isoformat() if entity.deleted_at else "",
            entity.model_dump_json(by_alias=True),
        ]

    def _row_to_entity(self, row: list) -> T:
        return self.model.model_validate_json(_safe_get(row, 6))

    def _load_all_sync(self) -> list[T]:
        entities = []
        for row in _read_rows(self._sheet()):
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                entities.append(self._row_to_entity(row))
            except ValidationError as e:
                logger.warning(
                    "malformed_entity_row",
                    table=self.model.table_name,
                    entity_id=row[0],
                    error=str(e),
                )
        return entities

    def _load_sync(self, entity_id: str) -> Optional[T]:
        for row in _read_rows(self._sheet()):
            if row and row[0] == entity_id:
                return self._row_to_entity(row)
        return None

    def _insert_sync(self, entity: T) -> None:
        sheet = self._sheet()
        if _find_row_number(_read_rows(sheet), entity.id) is not None:
            raise DuplicateError(f"{self.model.__name__} already exists: {entity.id}")
        _append_row(sheet, self._entity_to_row(entity))

    def _replace_sync(self, entity: T) -> None:
        sheet = self._sheet()
        row_number = _find_row_number(_read_rows(sheet), entity.id)
        if row_number is None:
            raise NotFoundError(f"{self.model.__name__} not found: {entity.id}")
        _rewrite_row(sheet, row_number, self._entity_to_row(entity))

    async def _load_all(self) -> list[T]:
        return await _run(f"list {self.model.table_name}", self._load_all_sync)

    async def _load(self, entity_id: str) -> Optional[T]:
        return await _run(f"get {self.model.__name__}", self._load_sync, entity_id)

    async def _insert(self, entity: T) -> None:
        await _run(f"save {self.model.__name__}", self._insert_sync, entity)

    async def _replace(self, entity: T) -> None:
        await _run(f"update {self.model.__name__}", self._replace_sync, entity)


# =============================================================================
# SNAPSHOTS
# =============================================================================

class GoogleSheetsSnapshotStorage(SnapshotStorageInterface):
    """PFS snapshots, one per row. Captured fields are never rewritten."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _snapshot_to_row(self, snapshot: PFSSnapshot) -> list:
        return [
            snapshot.id,
            snapshot.subject_id or "",
            snapshot.snapshot_name,
            snapshot.snapshot_date.isoformat(),
            str(snapshot.is_outdated),
            snapshot.outdated_reason or "",
            snapshot.deleted_at.isoformat() if snapshot.deleted_at else "",
            snapshot.model_dump_json(by_alias=True),
        ]

    def _row_to_snapshot(self, row: list) -> PFSSnapshot:
        return PFSSnapshot.model_validate_json(_safe_get(row, 7))

    def _load_all_sync(self) -> list[PFSSnapshot]:
        snapshots = []
        for row in _read_rows(self._client.get_snapshots_sheet()):
            if not row or not row[0]:
                continue
            try:
                snapshots.append(self._row_to_snapshot(row))
            except ValidationError as e:
                logger.warning("malformed_snapshot_row", snapshot_id=row[0], error=str(e))
        return snapshots

    def _find_sync(self, snapshot_id: str) -> tuple[Optional[int], Optional[PFSSnapshot]]:
        rows = _read_rows(self._client.get_snapshots_sheet())
        row_number = _find_row_number(rows, snapshot_id)
        if row_number is None:
            return None, None
        return row_number, self._row_to_snapshot(rows[row_number - 2])

    def _save_sync(self, snapshot: PFSSnapshot) -> None:
        sheet = self._client.get_snapshots_sheet()
        if _find_row_number(_read_rows(sheet), snapshot.id) is not None:
            raise DuplicateError(f"Snapshot already exists: {snapshot.id}")
        _append_row(sheet, self._snapshot_to_row(snapshot))

    def _mark_outdated_sync(self, snapshot_id: str, reason: str) -> PFSSnapshot:
        row_number, snapshot = self._find_sync(snapshot_id)
        if snapshot is None:
            raise NotFoundError(f"Snapshot not found: {snapshot_id}")
        if snapshot.is_outdated:
            return snapshot
        marked = snapshot.with_outdated(reason)
        _rewrite_row(self._client.get_snapshots_sheet(), row_number, self._snapshot_to_row(marked))
        return marked

    def _delete_sync(self, snapshot_id: str) -> bool:
        row_number, snapshot = self._find_sync(snapshot_id)
        if snapshot is None:
            return False
        if snapshot.deleted_at is None:
            deleted = snapshot.model_copy(update={"deleted_at": utcnow()})
            _rewrite_row(self._client.get_snapshots_sheet(), row_number, self._snapshot_to_row(deleted))
        return True

    async def save_snapshot(self, snapshot: PFSSnapshot) -> PFSSnapshot:
        await _run("save snapshot", self._save_sync, snapshot)
        return snapshot

    async def get_snapshot_by_id(self, snapshot_id: str) -> Optional[PFSSnapshot]:
        _, snapshot = await _run("get snapshot", self._find_sync, snapshot_id)
        return snapshot

    async def list_snapshots(
        self,
        subject_id: Optional[str] = None,
        include_deleted: bool = False,
    ) -> list[PFSSnapshot]:
        snapshots = await _run("list snapshots", self._load_all_sync)
        snapshots = [
            s for s in snapshots
            if (include_deleted or s.deleted_at is None)
            and (subject_id is None or s.subject_id == subject_id)
        ]
        snapshots.sort(key=lambda s: s.snapshot_date, reverse=True)
        return snapshots

    async def mark_outdated(self, snapshot_id: str, reason: str) -> PFSSnapshot:
        return await _run("mark snapshot outdated", self._mark_outdated_sync, snapshot_id, reason)

    async def delete_snapshot(self, snapshot_id: str) -> bool:
        return await _run("delete snapshot", self._delete_sync, snapshot_id)


# =============================================================================
# AUDIT LOG
# =============================================================================

class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=_safe_get(row, 5) or None,
            correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            description=_safe_get(row, 7),
            details=json.loads(_safe_get(row, 8)) if _safe_get(row, 8) else {},
            error_message=_safe_get(row, 9) or None,
        )

    def _append_sync(self, event: AuditEvent) -> None:
        _append_row(self._client.get_audit_sheet(), event.to_sheets_row())

    def _load_events_sync(self) -> list[AuditEvent]:
        events = []
        for row in _read_rows(self._client.get_audit_sheet()):
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, ValidationError) as e:
                logger.warning("malformed_audit_row", event_id=row[0], error=str(e))
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            await asyncio.to_thread(self._append_sync, event)
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_append_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = await _run("get audit events", self._load_events_sync)
        events = [e for e in events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = await _run("get audit events", self._load_events_sync)
        events = [
            e for e in events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = await _run("get audit events", self._load_events_sync)
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
