"""
Tests for the Google Sheets backend.

No real Google API calls: worksheets are replaced by an in-memory fake
that speaks the small part of the gspread Worksheet API the backend uses.
"""

import asyncio
import time
from decimal import Decimal
from uuid import uuid4

import gspread
import pytest

from pfs_engine.config import GoogleSheetsSettings
from pfs_engine.models.audit import AuditEventBuilder, AuditEventType
from pfs_engine.models.entities import CreditLine
from pfs_engine.models.pfs import PFSSnapshot, PFSSummaries
from pfs_engine.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntityRepository,
    GoogleSheetsSnapshotStorage,
    NotFoundError,
)
from pfs_engine.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    ENTITY_COLUMNS,
    SNAPSHOT_COLUMNS,
)
from pfs_engine.sync import sync_entity


class FakeWorksheet:
    """Rows kept as lists of strings, header first."""

    def __init__(self, columns):
        self.rows = [list(columns)]

    def get_all_values(self):
        return [[str(cell) for cell in row] for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append(list(row))

    def update(self, values, range_name, value_input_option=None):
        row_number = int(range_name[1:])
        self.rows[row_number - 1] = list(values[0])


class FakeSheetsClient(GoogleSheetsClient):
    """GoogleSheetsClient with fake worksheets instead of a spreadsheet."""

    def __init__(self, fail=False):
        super().__init__(GoogleSheetsSettings.model_construct(
            credentials_path="credentials.json",
            spreadsheet_id="spreadsheet-1",
            snapshots_sheet_name="PFSSnapshots",
            audit_sheet_name="AuditLog",
        ))
        self.sheets = {}
        self.fail = fail

    def get_worksheet(self, title, columns, rows=1000):
        if self.fail:
            raise RuntimeError("quota exceeded")
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(columns)
        return self.sheets[title]


class FakeSpreadsheet:
    """Spreadsheet whose worksheet creation is slow enough to overlap."""

    def __init__(self):
        self.sheets = {}
        self.created = []

    def worksheet(self, title):
        if title not in self.sheets:
            raise gspread.WorksheetNotFound(title)
        return self.sheets[title]

    def add_worksheet(self, title, rows, cols):
        time.sleep(0.05)
        self.created.append(title)
        self.sheets[title] = FakeWorksheet([])
        return self.sheets[title]


@pytest.fixture
def client() -> FakeSheetsClient:
    return FakeSheetsClient()


class TestGoogleSheetsClient:
    """Tests for lazy worksheet setup."""

    @pytest.mark.asyncio
    async def test_concurrent_first_use_creates_sheet_once(self):
        """Test that overlapping first calls from worker threads add one worksheet."""
        sheets_client = GoogleSheetsClient(GoogleSheetsSettings.model_construct(
            credentials_path="credentials.json",
            spreadsheet_id="spreadsheet-1",
            snapshots_sheet_name="PFSSnapshots",
            audit_sheet_name="AuditLog",
        ))
        spreadsheet = FakeSpreadsheet()
        sheets_client._spreadsheet = spreadsheet

        results = await asyncio.gather(*(
            asyncio.to_thread(sheets_client.get_snapshots_sheet) for _ in range(8)
        ))

        assert spreadsheet.created == ["PFSSnapshots"]
        assert all(sheet is results[0] for sheet in results)


class TestGoogleSheetsEntityRepository:
    """Tests for entity rows."""

    @pytest.mark.asyncio
    async def test_create_writes_one_row(self, client):
        """Test row layout: bookkeeping columns plus JSON."""
        repo = GoogleSheetsEntityRepository(CreditLine, client, sync_entity)
        line = await repo.create({"institution": "Chase", "creditLimit": "100"}, subject_id="user-1")

        sheet = client.sheets["CreditLines"]
        assert sheet.rows[0] == ENTITY_COLUMNS
        assert sheet.rows[1][0] == line.id
        assert sheet.rows[1][1] == "user-1"
        assert '"availableCredit"' in sheet.rows[1][6]

    @pytest.mark.asyncio
    async def test_round_trip_and_update(self, client):
        """Test that stored entities load back and updates rewrite in place."""
        repo = GoogleSheetsEntityRepository(CreditLine, client, sync_entity)
        line = await repo.create({"institution": "Chase", "creditLimit": "100"})

        updated = await repo.update(line.id, {"currentBalance": "25"})
        loaded = await repo.fetch_by_id(line.id)

        assert len(client.sheets["CreditLines"].rows) == 2
        assert loaded.version == 2
        assert loaded.available_credit == Decimal("75")
        assert loaded.id == updated.id

    @pytest.mark.asyncio
    async def test_soft_delete_keeps_row(self, client):
        """Test that deletes rewrite the row rather than removing it."""
        repo = GoogleSheetsEntityRepository(CreditLine, client)
        line = await repo.create({"institution": "Chase"})
        await repo.delete(line.id)

        assert await repo.fetch_all() == []
        assert client.sheets["CreditLines"].rows[1][5] != ""

    @pytest.mark.asyncio
    async def test_missing_entity(self, client):
        """Test NotFoundError for unknown ids."""
        repo = GoogleSheetsEntityRepository(CreditLine, client)
        with pytest.raises(NotFoundError):
            await repo.update("missing", {"notes": "x"})

    @pytest.mark.asyncio
    async def test_malformed_rows_skipped(self, client):
        """Test that a hand-edited bad row does not break listing."""
        repo = GoogleSheetsEntityRepository(CreditLine, client)
        await repo.create({"institution": "Chase"})
        client.sheets["CreditLines"].append_row(["bad-id", "", "1", "", "", "", "{not json"])

        assert [e.institution for e in await repo.fetch_all()] == ["Chase"]


class TestGoogleSheetsSnapshotStorage:
    """Tests for snapshot rows."""

    @pytest.mark.asyncio
    async def test_save_and_mark_outdated(self, client):
        """Test the outdated transition keeps captured fields."""
        storage = GoogleSheetsSnapshotStorage(client)
        snapshot = PFSSnapshot(
            snapshot_name="Q1",
            subject_id="user-1",
            summaries=PFSSummaries(net_worth=Decimal("100")),
        )
        await storage.save_snapshot(snapshot)

        marked = await storage.mark_outdated(snapshot.id, "Mortgage updated: m1")
        again = await storage.mark_outdated(snapshot.id, "Property updated: p1")
        loaded = await storage.get_snapshot_by_id(snapshot.id)

        assert client.sheets["PFSSnapshots"].rows[0] == SNAPSHOT_COLUMNS
        assert marked.is_outdated
        assert again.outdated_reason == "Mortgage updated: m1"
        assert loaded.summaries.net_worth == Decimal("100")
        assert loaded.outdated_reason == "Mortgage updated: m1"

    @pytest.mark.asyncio
    async def test_duplicate_and_delete(self, client):
        """Test write-once ids and soft delete."""
        storage = GoogleSheetsSnapshotStorage(client)
        snapshot = PFSSnapshot(snapshot_name="Q1", summaries=PFSSummaries())
        await storage.save_snapshot(snapshot)

        with pytest.raises(DuplicateError):
            await storage.save_snapshot(snapshot)
        assert await storage.delete_snapshot(snapshot.id) is True
        assert await storage.list_snapshots() == []
        assert await storage.delete_snapshot("snapshot_missing") is False


class TestGoogleSheetsAuditStorage:
    """Tests for the audit sheet."""

    @pytest.mark.asyncio
    async def test_append_and_query(self, client):
        """Test that events round-trip through sheet rows."""
        storage = GoogleSheetsAuditStorage(client)
        correlation_id = uuid4()
        event = AuditEventBuilder.entity_deleted("CreditLine", "c1", 2, correlation_id)

        assert await storage.append_event(event) is True

        related = await storage.get_events_by_correlation_id(correlation_id)
        assert client.sheets["AuditLog"].rows[0] == AUDIT_COLUMNS
        assert [e.event_id for e in related] == [event.event_id]
        assert related[0].event_type == AuditEventType.ENTITY_DELETED

    @pytest.mark.asyncio
    async def test_append_failure_returns_false(self):
        """Test that audit failures never raise."""
        storage = GoogleSheetsAuditStorage(FakeSheetsClient(fail=True))
        event = AuditEventBuilder.entity_deleted("CreditLine", "c1", 2)
        assert await storage.append_event(event) is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
