"""
Tests for the in-memory storage backend and the repository registry.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from pfs_engine.config import AppSettings
from pfs_engine.models.audit import AuditEventBuilder
from pfs_engine.models.base import utcnow
from pfs_engine.models.entities import CreditLine, RealEstateProperty
from pfs_engine.models.pfs import PFSSnapshot, PFSSummaries
from pfs_engine.services.storage import (
    COLLECTION_KINDS,
    ConfigurationError,
    DuplicateError,
    EntityKind,
    InMemoryEntityRepository,
    NotFoundError,
    RepositoryRegistry,
    create_storage,
)
from pfs_engine.sync import sync_entity
from pfs_engine.versioning import NoSnapshotError, ReservedFieldError


@pytest.fixture
def lines() -> InMemoryEntityRepository:
    return InMemoryEntityRepository(CreditLine, sync_entity)


def make_snapshot(name: str, days_ago: int = 0, subject_id: str = "user-1") -> PFSSnapshot:
    return PFSSnapshot(
        snapshot_name=name,
        subject_id=subject_id,
        snapshot_date=utcnow() - timedelta(days=days_ago),
        summaries=PFSSummaries(),
    )


class TestInMemoryEntityRepository:
    """Tests for the versioned repository contract."""

    @pytest.mark.asyncio
    async def test_create_syncs_derived_fields(self, lines):
        """Test that the normalizer runs on create."""
        line = await lines.create({"institution": "Chase", "creditLimit": "100", "currentBalance": "30"})
        assert line.version == 1
        assert line.available_credit == Decimal("70")

    @pytest.mark.asyncio
    async def test_update_syncs_and_versions(self, lines):
        """Test that an update bumps the version and re-syncs."""
        line = await lines.create({"institution": "Chase", "creditLimit": "100"})
        updated = await lines.update(line.id, {"currentBalance": "60"})

        assert updated.version == 2
        assert updated.available_credit == Decimal("40")
        assert (await lines.fetch_by_id(line.id)) == updated

    @pytest.mark.asyncio
    async def test_create_rejects_metadata(self, lines):
        """Test that ids cannot be supplied on create."""
        with pytest.raises(ReservedFieldError):
            await lines.create({"institution": "Chase", "id": "mine"})

    @pytest.mark.asyncio
    async def test_unknown_id(self, lines):
        """Test NotFoundError for every write on a missing id."""
        for operation in (lines.delete, lines.restore, lines.rollback):
            with pytest.raises(NotFoundError):
                await operation("missing")
        with pytest.raises(NotFoundError):
            await lines.update("missing", {"notes": "x"})
        assert await lines.fetch_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_soft_delete_and_restore(self, lines):
        """Test that deleted entities are hidden but retrievable."""
        line = await lines.create({"institution": "Chase"}, subject_id="user-1")
        await lines.delete(line.id)

        assert await lines.fetch_all("user-1") == []
        assert len(await lines.fetch_all("user-1", include_deleted=True)) == 1
        assert (await lines.fetch_by_id(line.id)).deleted_at is not None

        restored = await lines.restore(line.id)
        assert restored.version == 3
        assert [e.id for e in await lines.fetch_all("user-1")] == [line.id]

    @pytest.mark.asyncio
    async def test_rollback(self, lines):
        """Test one-level rollback through the repository."""
        line = await lines.create({"institution": "Chase", "creditLimit": "100"})
        with pytest.raises(NoSnapshotError):
            await lines.rollback(line.id)

        await lines.update(line.id, {"creditLimit": "500"})
        rolled_back = await lines.rollback(line.id)

        assert rolled_back.credit_limit == Decimal("100")
        assert rolled_back.available_credit == Decimal("100")
        assert rolled_back.version == 3

    @pytest.mark.asyncio
    async def test_fetch_all_filters_by_subject(self, lines):
        """Test subject filtering."""
        await lines.create({"institution": "A"}, subject_id="user-1")
        await lines.create({"institution": "B"}, subject_id="user-2")
        assert [e.institution for e in await lines.fetch_all("user-2")] == ["B"]
        assert len(await lines.fetch_all()) == 2

    @pytest.mark.asyncio
    async def test_find_by_field(self, lines):
        """Test lookup by field name or camelCase alias."""
        await lines.create({"institution": "Chase", "creditLimit": "100"})
        await lines.create({"institution": "Amex", "creditLimit": "200"})

        assert [e.institution for e in await lines.find_by_field("creditLimit", Decimal("200"))] == ["Amex"]
        assert len(await lines.find_by_field("institution", "Chase")) == 1
        assert await lines.find_by_field("noSuchField", "x") == []


class TestInMemorySnapshotStorage:
    """Tests for snapshot persistence."""

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, snapshot_storage):
        """Test that a snapshot id is written once."""
        snapshot = make_snapshot("Q1")
        await snapshot_storage.save_snapshot(snapshot)
        with pytest.raises(DuplicateError):
            await snapshot_storage.save_snapshot(snapshot)

    @pytest.mark.asyncio
    async def test_list_newest_first(self, snapshot_storage):
        """Test ordering and subject filter."""
        await snapshot_storage.save_snapshot(make_snapshot("Old", days_ago=30))
        await snapshot_storage.save_snapshot(make_snapshot("New", days_ago=1))
        await snapshot_storage.save_snapshot(make_snapshot("Other", subject_id="user-2"))

        names = [s.snapshot_name for s in await snapshot_storage.list_snapshots("user-1")]
        assert names == ["New", "Old"]

    @pytest.mark.asyncio
    async def test_mark_outdated(self, snapshot_storage):
        """Test the outdated transition and unknown ids."""
        snapshot = await snapshot_storage.save_snapshot(make_snapshot("Q1"))
        marked = await snapshot_storage.mark_outdated(snapshot.id, "Bank account updated: b1")

        assert marked.is_outdated
        assert marked.summaries == snapshot.summaries
        with pytest.raises(NotFoundError):
            await snapshot_storage.mark_outdated("snapshot_missing", "x")

    @pytest.mark.asyncio
    async def test_soft_delete(self, snapshot_storage):
        """Test that deleted snapshots are hidden from listings."""
        snapshot = await snapshot_storage.save_snapshot(make_snapshot("Q1"))

        assert await snapshot_storage.delete_snapshot(snapshot.id) is True
        assert await snapshot_storage.delete_snapshot("snapshot_missing") is False
        assert await snapshot_storage.list_snapshots() == []
        assert len(await snapshot_storage.list_snapshots(include_deleted=True)) == 1


class TestInMemoryAuditStorage:
    """Tests for the append-only audit log."""

    @pytest.mark.asyncio
    async def test_queries(self, audit_storage):
        """Test lookups by correlation id and entity."""
        correlation_id = uuid4()
        first = AuditEventBuilder.entity_deleted("CreditLine", "c1", 2, correlation_id)
        second = AuditEventBuilder.entity_restored("CreditLine", "c1", 3, correlation_id)
        await audit_storage.append_event(first)
        await audit_storage.append_event(second)

        assert len(await audit_storage.get_events_by_entity("CreditLine", "c1")) == 2
        related = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.entity_id for e in related] == ["c1", "c1"]
        recent = await audit_storage.get_recent_events(limit=1)
        assert len(recent) == 1


class TestRegistry:
    """Tests for the repository registry and storage factory."""

    def test_every_kind_registered(self, registry):
        """Test that the in-memory registry covers every kind."""
        for kind in EntityKind:
            assert registry.get(kind).model is kind.model
        assert len(COLLECTION_KINDS) == 11

    def test_lookup_by_value_and_entity(self, registry, credit_line):
        """Test lookup by camelCase value and by entity instance."""
        assert registry.get("creditLines").model is CreditLine
        assert registry.for_entity(credit_line).model is CreditLine
        assert EntityKind.for_model(RealEstateProperty) is EntityKind.REAL_ESTATE
        assert EntityKind.REAL_ESTATE.collection == "real_estate"

    def test_missing_repository(self):
        """Test that an incomplete registry is a configuration error."""
        with pytest.raises(ConfigurationError):
            RepositoryRegistry({EntityKind.CREDIT_LINES: InMemoryEntityRepository(CreditLine)})

    def test_create_memory_storage(self):
        """Test the memory backend."""
        storage = create_storage(AppSettings(storage_backend="memory"))
        assert storage.repositories.get(EntityKind.BANK_ACCOUNTS) is not None

    def test_unknown_backend(self):
        """Test that an unknown backend is rejected, never substituted."""
        settings = AppSettings.model_construct(storage_backend="postgres")
        with pytest.raises(ConfigurationError):
            create_storage(settings)

    def test_unconfigured_google_sheets(self, monkeypatch):
        """Test that missing Sheets configuration fails immediately."""
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        with pytest.raises(ConfigurationError):
            create_storage(AppSettings(storage_backend="google_sheets"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
