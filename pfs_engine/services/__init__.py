"""Services package."""

from pfs_engine.services.storage import (
    AuditStorageInterface,
    ConfigurationError,
    ConnectionError,
    DuplicateError,
    EntityKind,
    EntityRepository,
    NotFoundError,
    RepositoryRegistry,
    SnapshotStorageInterface,
    StorageError,
    create_storage,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConfigurationError",
    "ConnectionError",
    "DuplicateError",
    "EntityKind",
    "EntityRepository",
    "NotFoundError",
    "RepositoryRegistry",
    "SnapshotStorageInterface",
    "StorageError",
    "create_storage",
]
