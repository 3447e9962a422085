"""
Abstract Storage Interface

DESIGN DECISION: The engine talks to persistence through small abstract
interfaces. This allows us to:
1. Keep entity, snapshot and audit logic independent of the backend
2. Use in-memory storage for tests and local use
3. Swap Google Sheets for a real database without touching the engine

One generic repository interface serves every entity type. It is
parameterized over a VersionedEntity subclass rather than being
duplicated per table.

Every operation is async and fallible. The engine never assumes ordering
between calls beyond what concurrent fan-out provides.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, Mapping, Optional, TypeVar
from uuid import UUID

from pfs_engine.models.audit import AuditEvent
from pfs_engine.models.base import VersionedEntity
from pfs_engine.models.pfs import PFSSnapshot


T = TypeVar("T", bound=VersionedEntity)


class EntityRepository(ABC, Generic[T]):
    """
    CRUD over one entity table.

    Writes go through the versioning contract: every successful create,
    update, delete, restore or rollback returns a new version of the
    entity. Deletes are soft.
    """

    model: type[T]

    @abstractmethod
    async def fetch_all(
        self,
        subject_id: Optional[str] = None,
        include_deleted: bool = False,
    ) -> list[T]:
        """
        List entities, optionally for one subject.

        Soft-deleted entities are excluded unless include_deleted is set.
        """
        pass

    @abstractmethod
    async def fetch_by_id(self, entity_id: str) -> Optional[T]:
        """
        Retrieve an entity by id, deleted or not.

        Returns:
            The entity if found, None otherwise
        """
        pass

    @abstractmethod
    async def create(
        self,
        data: Mapping[str, Any],
        subject_id: Optional[str] = None,
    ) -> T:
        """
        Create a new entity at version 1.

        Raises:
            ReservedFieldError: If data carries versioning metadata
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(self, entity_id: str, patch: Mapping[str, Any]) -> T:
        """
        Apply a patch and bump the version.

        Raises:
            NotFoundError: If no entity has this id
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, entity_id: str) -> T:
        """
        Soft-delete an entity. It remains retrievable by id.

        Raises:
            NotFoundError: If no entity has this id
        """
        pass

    @abstractmethod
    async def restore(self, entity_id: str) -> T:
        """
        Undo a soft delete.

        Raises:
            NotFoundError: If no entity has this id
        """
        pass

    @abstractmethod
    async def rollback(self, entity_id: str) -> T:
        """
        Roll an entity back to its snapshot.

        Raises:
            NotFoundError: If no entity has this id
            NoSnapshotError: If the entity has no snapshot
        """
        pass

    @abstractmethod
    async def find_by_field(self, field: str, value: Any) -> list[T]:
        """
        Active entities whose field (name or camelCase alias) equals value.
        """
        pass


class SnapshotStorageInterface(ABC):
    """
    Abstract interface for PFS snapshot storage.

    Snapshots are write-once. The only post-creation writes are marking
    a snapshot outdated and soft-deleting it.
    """

    @abstractmethod
    async def save_snapshot(self, snapshot: PFSSnapshot) -> PFSSnapshot:
        """
        Persist a newly taken snapshot.

        Raises:
            DuplicateError: If a snapshot with this id already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_snapshot_by_id(self, snapshot_id: str) -> Optional[PFSSnapshot]:
        pass

    @abstractmethod
    async def list_snapshots(
        self,
        subject_id: Optional[str] = None,
        include_deleted: bool = False,
    ) -> list[PFSSnapshot]:
        """
        List snapshots, newest snapshot_date first.
        """
        pass

    @abstractmethod
    async def mark_outdated(self, snapshot_id: str, reason: str) -> PFSSnapshot:
        """
        Flag a snapshot outdated.

        A snapshot that is already outdated keeps its original reason.

        Raises:
            NotFoundError: If no snapshot has this id
        """
        pass

    @abstractmethod
    async def delete_snapshot(self, snapshot_id: str) -> bool:
        """
        Soft-delete a snapshot.

        Returns:
            True if a snapshot was deleted, False if none had this id
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., a write and its side effects).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConfigurationError(StorageError):
    """Persistence collaborator is unconfigured or unavailable."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
