"""
Versioned Repository Base

Implements the EntityRepository contract once, on top of four storage
primitives that each backend provides:

    _load_all()        every stored entity of this table
    _load(entity_id)   one stored entity, or None
    _insert(entity)    store a new entity
    _replace(entity)   overwrite the stored entity with the same id

GUARANTEES:
- Every write goes through the versioning module, so version and
  timestamps follow the same rules on every backend
- Every written entity passes through the normalizer first (the sync
  engine in production), so stored derived fields are always current
"""

from abc import abstractmethod
from typing import Any, Callable, Mapping, Optional

import structlog

from pfs_engine.models.base import VersionedEntity
from pfs_engine.services.storage.interface import (
    EntityRepository,
    NotFoundError,
    T,
)
from pfs_engine.versioning import (
    create_versioned_entity,
    restore_entity,
    restore_from_snapshot,
    soft_delete_entity,
    update_versioned_entity,
)


Normalizer = Callable[[VersionedEntity], VersionedEntity]


class VersionedRepository(EntityRepository[T]):
    """Backend-independent half of an entity repository."""

    def __init__(
        self,
        model: type[T],
        normalizer: Optional[Normalizer] = None,
    ):
        """
        Args:
            model: Entity class stored in this repository
            normalizer: Applied to every entity before it is written
        """
        self.model = model
        self._normalizer = normalizer
        self._logger = structlog.get_logger().bind(entity_type=model.__name__)

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def _load_all(self) -> list[T]:
        pass

    @abstractmethod
    async def _load(self, entity_id: str) -> Optional[T]:
        pass

    @abstractmethod
    async def _insert(self, entity: T) -> None:
        pass

    @abstractmethod
    async def _replace(self, entity: T) -> None:
        pass

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _normalize(self, entity: T) -> T:
        if self._normalizer is None:
            return entity
        return self._normalizer(entity)

    async def _require(self, entity_id: str) -> T:
        entity = await self._load(entity_id)
        if entity is None:
            raise NotFoundError(f"{self.model.__name__} not found: {entity_id}")
        return entity

    async def _write(self, entity: T) -> T:
        entity = self._normalize(entity)
        await self._replace(entity)
        return entity

    # ------------------------------------------------------------------
    # EntityRepository
    # ------------------------------------------------------------------

    async def fetch_all(
        self,
        subject_id: Optional[str] = None,
        include_deleted: bool = False,
    ) -> list[T]:
        entities = await self._load_all()
        return [
            e for e in entities
            if (include_deleted or e.deleted_at is None)
            and (subject_id is None or getattr(e, "subject_id", None) == subject_id)
        ]

    async def fetch_by_id(self, entity_id: str) -> Optional[T]:
        return await self._load(entity_id)

    async def create(
        self,
        data: Mapping[str, Any],
        subject_id: Optional[str] = None,
    ) -> T:
        fields = dict(data)
        if subject_id is not None:
            fields["subject_id"] = subject_id
        entity = self._normalize(create_versioned_entity(self.model, fields))
        await self._insert(entity)
        self._logger.debug("entity_created", entity_id=entity.id)
        return entity

    async def update(self, entity_id: str, patch: Mapping[str, Any]) -> T:
        current = await self._require(entity_id)
        updated = await self._write(update_versioned_entity(current, patch))
        self._logger.debug("entity_updated", entity_id=entity_id, version=updated.version)
        return updated

    async def delete(self, entity_id: str) -> T:
        current = await self._require(entity_id)
        return await self._write(soft_delete_entity(current))

    async def restore(self, entity_id: str) -> T:
        current = await self._require(entity_id)
        return await self._write(restore_entity(current))

    async def rollback(self, entity_id: str) -> T:
        current = await self._require(entity_id)
        return await self._write(restore_from_snapshot(current))

    async def find_by_field(self, field: str, value: Any) -> list[T]:
        name = self.model.resolve_field_name(field)
        if name is None:
            return []
        return [e for e in await self.fetch_all() if getattr(e, name) == value]
