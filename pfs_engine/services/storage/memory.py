"""
In-Memory Storage Implementation

Process-local backend used for tests and for running the engine without
external services. Same contracts as the Google Sheets backend.
"""

from typing import Optional
from uuid import UUID

from pfs_engine.models.audit import AuditEvent
from pfs_engine.models.base import utcnow
from pfs_engine.models.pfs import PFSSnapshot
from pfs_engine.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    SnapshotStorageInterface,
    T,
)
from pfs_engine.services.storage.versioned import Normalizer, VersionedRepository


class InMemoryEntityRepository(VersionedRepository[T]):
    """Entities kept in a dict keyed by id, in insertion order."""

    def __init__(self, model: type[T], normalizer: Optional[Normalizer] = None):
        super().__init__(model, normalizer)
        self._rows: dict[str, T] = {}

    async def _load_all(self) -> list[T]:
        return list(self._rows.values())

    async def _load(self, entity_id: str) -> Optional[T]:
        return self._rows.get(entity_id)

    async def _insert(self, entity: T) -> None:
        if entity.id in self._rows:
            raise DuplicateError(f"{self.model.__name__} already exists: {entity.id}")
        self._rows[entity.id] = entity

    async def _replace(self, entity: T) -> None:
        if entity.id not in self._rows:
            raise NotFoundError(f"{self.model.__name__} not found: {entity.id}")
        self._rows[entity.id] = entity


class InMemorySnapshotStorage(SnapshotStorageInterface):

    def __init__(self):
        self._snapshots: dict[str, PFSSnapshot] = {}

    async def save_snapshot(self, snapshot: PFSSnapshot) -> PFSSnapshot:
        if snapshot.id in self._snapshots:
            raise DuplicateError(f"Snapshot already exists: {snapshot.id}")
        self._snapshots[snapshot.id] = snapshot
        return snapshot

    async def get_snapshot_by_id(self, snapshot_id: str) -> Optional[PFSSnapshot]:
        return self._snapshots.get(snapshot_id)

    async def list_snapshots(
        self,
        subject_id: Optional[str] = None,
        include_deleted: bool = False,
    ) -> list[PFSSnapshot]:
        snapshots = [
            s for s in self._snapshots.values()
            if (include_deleted or s.deleted_at is None)
            and (subject_id is None or s.subject_id == subject_id)
        ]
        snapshots.sort(key=lambda s: s.snapshot_date, reverse=True)
        return snapshots

    async def mark_outdated(self, snapshot_id: str, reason: str) -> PFSSnapshot:
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None:
            raise NotFoundError(f"Snapshot not found: {snapshot_id}")
        marked = snapshot.with_outdated(reason)
        self._snapshots[snapshot_id] = marked
        return marked

    async def delete_snapshot(self, snapshot_id: str) -> bool:
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None:
            return False
        if snapshot.deleted_at is None:
            self._snapshots[snapshot_id] = snapshot.model_copy(
                update={"deleted_at": utcnow()}
            )
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
