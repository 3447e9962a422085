"""Entity versioning: create, update, soft delete, restore and rollback."""

from pfs_engine.versioning.entity_versioning import (
    NoSnapshotError,
    ReservedFieldError,
    VersioningError,
    create_snapshot,
    create_versioned_entity,
    extract_changes,
    filter_active_entities,
    get_entity_age,
    get_time_since_update,
    is_entity_deleted,
    restore_entity,
    restore_from_snapshot,
    soft_delete_entity,
    update_versioned_entity,
)

__all__ = [
    "NoSnapshotError",
    "ReservedFieldError",
    "VersioningError",
    "create_snapshot",
    "create_versioned_entity",
    "extract_changes",
    "filter_active_entities",
    "get_entity_age",
    "get_time_since_update",
    "is_entity_deleted",
    "restore_entity",
    "restore_from_snapshot",
    "soft_delete_entity",
    "update_versioned_entity",
]
