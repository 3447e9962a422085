"""
Entity Versioning

Creates, updates, soft-deletes, restores and rolls back versioned entities.

GUARANTEES:
- Every operation returns a new entity; inputs are never mutated
- version increases by exactly 1 on every state transition (rollback included)
- updated_at never goes backwards, even if the wall clock does
- snapshot holds only the immediately preceding state (single-level undo)

These are pure data transforms. Persistence is the caller's responsibility.
"""

import math
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, TypeVar

from pfs_engine.models.base import (
    VERSION_METADATA_FIELDS,
    VersionedEntity,
    new_entity_id,
    utcnow,
)


T = TypeVar("T", bound=VersionedEntity)

SECONDS_PER_DAY = 86400


class VersioningError(Exception):
    """Base exception for versioning operations."""
    pass


class ReservedFieldError(VersioningError):
    """Create input carried fields that only the versioning module may set."""

    def __init__(self, fields: Iterable[str]):
        self.fields = sorted(fields)
        super().__init__(
            f"Versioning metadata cannot be supplied on create: {', '.join(self.fields)}"
        )


class NoSnapshotError(VersioningError):
    """Rollback requested for an entity that has no snapshot."""

    def __init__(self, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__("No snapshot available for rollback")


def _next_timestamp(entity: VersionedEntity) -> datetime:
    return max(utcnow(), entity.updated_at)


def _resolve_keys(model_cls: type[VersionedEntity], data: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize alias/field-name keys to field names; unknown keys pass through."""
    resolved = {}
    for key, value in data.items():
        resolved[model_cls.resolve_field_name(key) or key] = value
    return resolved


def create_snapshot(entity: VersionedEntity) -> dict[str, Any]:
    """
    Capture an entity's state for rollback.

    The capture excludes the entity's own snapshot and deleted_at, so
    snapshots never nest.
    """
    return entity.model_dump(by_alias=True, exclude={"snapshot", "deleted_at"})


def create_versioned_entity(
    model_cls: type[T],
    data: Optional[Mapping[str, Any]] = None,
) -> T:
    """
    Create a brand-new entity at version 1.

    Args:
        model_cls: Concrete entity class to instantiate
        data: Primitive fields, by field name or camelCase alias

    Raises:
        ReservedFieldError: If data carries id, timestamps, version,
            snapshot or deleted_at
        pydantic.ValidationError: If data does not match the schema
    """
    fields = _resolve_keys(model_cls, data or {})
    reserved = VERSION_METADATA_FIELDS.intersection(fields)
    if reserved:
        raise ReservedFieldError(reserved)

    now = utcnow()
    fields.update(
        id=new_entity_id(),
        created_at=now,
        updated_at=now,
        version=1,
    )
    return model_cls.model_validate(fields)


def update_versioned_entity(entity: T, patch: Mapping[str, Any]) -> T:
    """
    Merge a patch into an entity and bump its version.

    The pre-update state becomes the new snapshot. Patch keys are not
    checked against the schema here; keys that are not fields of the
    entity are dropped by the model. id, created_at and deleted_at are
    never taken from the patch.

    Raises:
        VersioningError: If entity is None
        pydantic.ValidationError: If the merged state is not a valid entity
    """
    if entity is None:
        raise VersioningError("Cannot update an undefined entity")

    model_cls = type(entity)
    state = entity.model_dump()
    state.update(_resolve_keys(model_cls, patch))
    state.update(
        id=entity.id,
        created_at=entity.created_at,
        updated_at=_next_timestamp(entity),
        version=entity.version + 1,
        snapshot=create_snapshot(entity),
        deleted_at=entity.deleted_at,
    )
    return model_cls.model_validate(state)


def soft_delete_entity(entity: T) -> T:
    """Mark an entity deleted. The record stays retrievable by id."""
    now = _next_timestamp(entity)
    return entity.model_copy(
        update={
            "deleted_at": now,
            "updated_at": now,
            "version": entity.version + 1,
        }
    )


def restore_entity(entity: T) -> T:
    """Undo a soft delete."""
    return entity.model_copy(
        update={
            "deleted_at": None,
            "updated_at": _next_timestamp(entity),
            "version": entity.version + 1,
        }
    )


def restore_from_snapshot(entity: T) -> T:
    """
    Roll an entity back to its snapshot.

    The pre-rollback state becomes the new snapshot, so a rollback can
    itself be rolled back. Soft-delete status is not part of the captured
    state and is carried over unchanged.

    Raises:
        NoSnapshotError: If the entity has no snapshot
    """
    if not entity.snapshot:
        raise NoSnapshotError(entity.id)

    previous = type(entity).model_validate(entity.snapshot)
    return previous.model_copy(
        update={
            "updated_at": _next_timestamp(entity),
            "version": entity.version + 1,
            "snapshot": create_snapshot(entity),
            "deleted_at": entity.deleted_at,
        }
    )


def is_entity_deleted(entity: VersionedEntity) -> bool:
    return entity.deleted_at is not None


def filter_active_entities(entities: Iterable[T]) -> list[T]:
    """Entities that have not been soft-deleted, in input order."""
    return [entity for entity in entities if entity.deleted_at is None]


def extract_changes(
    old: VersionedEntity,
    new: VersionedEntity,
) -> dict[str, dict[str, Any]]:
    """
    Field-by-field diff of two entity states.

    Values are compared in their JSON-serialized form; versioning
    bookkeeping fields are ignored.

    Returns:
        {field_name: {"from": old_value, "to": new_value}} for every
        field that differs, values in JSON form
    """
    old_state = old.model_dump(mode="json", exclude=set(VERSION_METADATA_FIELDS))
    new_state = new.model_dump(mode="json", exclude=set(VERSION_METADATA_FIELDS))

    changes = {}
    for name in list(old_state) + [n for n in new_state if n not in old_state]:
        before = old_state.get(name)
        after = new_state.get(name)
        if before != after:
            changes[name] = {"from": before, "to": after}
    return changes


def _days_since(moment: datetime, now: Optional[datetime]) -> int:
    now = now or utcnow()
    return math.ceil((now - moment).total_seconds() / SECONDS_PER_DAY)


def get_entity_age(entity: VersionedEntity, now: Optional[datetime] = None) -> int:
    """Whole days since creation, rounded up."""
    return _days_since(entity.created_at, now)


def get_time_since_update(entity: VersionedEntity, now: Optional[datetime] = None) -> int:
    """Whole days since the last update, rounded up."""
    return _days_since(entity.updated_at, now)
