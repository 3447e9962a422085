"""
Tests for snapshot capture and staleness tracking.

The critical property: an entity write succeeds even when the
staleness follow-up fails.
"""

from decimal import Decimal

import pytest

from pfs_engine.assembler import assemble_pfs_from_data
from pfs_engine.models.audit import AuditEventType
from pfs_engine.orchestrator import PortfolioService
from pfs_engine.services.storage import EntityKind, InMemorySnapshotStorage, StorageError
from pfs_engine.snapshots import (
    SnapshotStalenessTracker,
    create_pfs_snapshot,
    describe_mutation,
)


class FailingSnapshotStorage(InMemorySnapshotStorage):
    """Snapshot storage whose listing always fails."""

    async def list_snapshots(self, subject_id=None, include_deleted=False):
        raise StorageError("snapshot table unavailable")


class TestDescribeMutation:
    """Tests for staleness reasons."""

    def test_created(self):
        """Test the reason for a new entity."""
        assert describe_mutation("RealEstateProperty", "p1", "created") == (
            "New real estate property created: p1"
        )

    def test_updated_with_fields(self):
        """Test that changed fields are listed."""
        reason = describe_mutation("Mortgage", "m1", "updated", ["principal_balance"])
        assert reason == "Mortgage updated (principal_balance): m1"

    def test_fields_sorted_and_action_spaced(self):
        """Test deterministic field order and readable actions."""
        assert describe_mutation("CreditLine", "c1", "updated", ["notes", "credit_limit"]) == (
            "Credit line updated (credit_limit, notes): c1"
        )
        assert describe_mutation("CreditLine", "c1", "rolled_back") == "Credit line rolled back: c1"


class TestCreateSnapshot:
    """Tests for create_pfs_snapshot."""

    def test_captures_summaries(self, make_property):
        """Test that the snapshot carries the PFS summaries and source id."""
        pfs = assemble_pfs_from_data("user-1", {"real_estate": [make_property()]})
        snapshot = create_pfs_snapshot(pfs, "Q1 2024", template_id="bank-a")

        assert snapshot.summaries == pfs.summaries
        assert snapshot.source_pfs_id == pfs.id
        assert snapshot.subject_id == "user-1"
        assert snapshot.template_id == "bank-a"
        assert snapshot.is_outdated is False


class TestSnapshotStalenessTracker:
    """Tests for the tracker on its own."""

    @pytest.mark.asyncio
    async def test_mark_all_outdated_counts_only_current(self, tracker, snapshot_storage):
        """Test that already-outdated snapshots keep their first reason."""
        pfs = assemble_pfs_from_data("user-1")
        first = await tracker.take_snapshot(pfs, "First")
        await tracker.take_snapshot(pfs, "Second")
        await snapshot_storage.mark_outdated(first.id, "Earlier change")

        marked = await tracker.mark_all_outdated("Credit line updated: c1")

        assert marked == 1
        reloaded = await snapshot_storage.get_snapshot_by_id(first.id)
        assert reloaded.outdated_reason == "Earlier change"

    @pytest.mark.asyncio
    async def test_disabled_tracker_does_nothing(self, snapshot_storage):
        """Test that a disabled tracker leaves snapshots current."""
        tracker = SnapshotStalenessTracker(snapshot_storage, enabled=False)
        snapshot = await tracker.take_snapshot(assemble_pfs_from_data("user-1"), "Q1")

        assert await tracker.notify_entity_mutated("anything") is True
        assert (await snapshot_storage.get_snapshot_by_id(snapshot.id)).is_outdated is False

    @pytest.mark.asyncio
    async def test_name_length_limit(self, snapshot_storage):
        """Test the configured snapshot name limit."""
        tracker = SnapshotStalenessTracker(snapshot_storage, max_name_length=5)
        with pytest.raises(ValueError):
            await tracker.take_snapshot(assemble_pfs_from_data("user-1"), "Too long a name")

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, audit_logger, audit_storage):
        """Test that a storage failure returns False and is audited."""
        tracker = SnapshotStalenessTracker(FailingSnapshotStorage(), audit_logger)

        assert await tracker.notify_entity_mutated("Credit line updated: c1") is False

        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.STALENESS_UPDATE_FAILED
        assert "unavailable" in event.error_message

    @pytest.mark.asyncio
    async def test_drain_waits_for_scheduled(self, tracker, snapshot_storage):
        """Test that drain() settles background notifications."""
        snapshot = await tracker.take_snapshot(assemble_pfs_from_data("user-1"), "Q1")

        tracker.schedule_entity_mutated("Bank account updated: b1")
        await tracker.drain()

        assert tracker.pending == 0
        assert (await snapshot_storage.get_snapshot_by_id(snapshot.id)).is_outdated is True


class TestStalenessThroughService:
    """End-to-end staleness via the portfolio service."""

    @pytest.mark.asyncio
    async def test_mortgage_update_marks_snapshots_outdated(
        self, service, snapshot_storage, make_property_data
    ):
        """Test that a mortgage change outdates every existing snapshot."""
        prop = await service.create(EntityKind.REAL_ESTATE, make_property_data(), subject_id="user-1")
        await service.drain()

        first = await service.take_snapshot("user-1", "Before refinance")
        second = await service.take_snapshot("user-1", "Lender copy")
        assert not first.is_outdated and not second.is_outdated

        mortgage_id = prop.mortgages[0].id
        updated = await service.update_mortgage(prop.id, mortgage_id, {"principalBalance": "250000"})
        await service.drain()

        assert updated.mortgages[0].principal_balance == Decimal("250000")
        for snapshot_id in (first.id, second.id):
            snapshot = await snapshot_storage.get_snapshot_by_id(snapshot_id)
            assert snapshot.is_outdated is True
            assert snapshot.outdated_reason == (
                f"Mortgage updated (principal_balance): {mortgage_id}"
            )

    @pytest.mark.asyncio
    async def test_new_snapshot_after_change_is_current(self, service, make_property_data):
        """Test that taking a new snapshot supersedes the stale one."""
        await service.create(EntityKind.REAL_ESTATE, make_property_data(), subject_id="user-1")
        await service.drain()
        await service.take_snapshot("user-1", "Old")

        await service.create(
            EntityKind.REAL_ESTATE,
            make_property_data(address="2 Oak Ave"),
            subject_id="user-1",
        )
        await service.drain()
        fresh = await service.take_snapshot("user-1", "New")

        snapshots = await service.list_snapshots("user-1")
        by_name = {s.snapshot_name: s for s in snapshots}
        assert by_name["Old"].is_outdated is True
        assert by_name["New"].is_outdated is False
        assert fresh.summaries.total_real_estate_value == Decimal("1000000")

    @pytest.mark.asyncio
    async def test_write_succeeds_when_staleness_fails(self, registry, audit_logger, audit_storage):
        """Test that a failing staleness update never fails the write."""
        storage = FailingSnapshotStorage()
        service = PortfolioService(
            repositories=registry,
            snapshot_storage=storage,
            audit_logger=audit_logger,
        )

        created = await service.create(
            EntityKind.CREDIT_LINES,
            {"institution": "Chase", "creditLimit": "10000", "currentBalance": "3000"},
            subject_id="user-1",
        )
        await service.drain()

        stored = await registry.get(EntityKind.CREDIT_LINES).fetch_by_id(created.id)
        assert stored is not None
        assert stored.available_credit == Decimal("7000")
        types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.ENTITY_CREATED in types
        assert AuditEventType.STALENESS_UPDATE_FAILED in types


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
