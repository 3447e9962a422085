"""
Storage Services Package

Provides abstract interfaces and concrete implementations for persistence.
Two backends ship: in-memory (tests, local use) and Google Sheets. The
engine only ever sees the interfaces.
"""

from pfs_engine.services.storage.interface import (
    AuditStorageInterface,
    ConfigurationError,
    ConnectionError,
    DuplicateError,
    EntityRepository,
    NotFoundError,
    SnapshotStorageInterface,
    StorageError,
)
from pfs_engine.services.storage.versioned import VersionedRepository
from pfs_engine.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryEntityRepository,
    InMemorySnapshotStorage,
)
from pfs_engine.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntityRepository,
    GoogleSheetsSnapshotStorage,
)
from pfs_engine.services.storage.registry import (
    COLLECTION_KINDS,
    EntityKind,
    RepositoryRegistry,
    StorageComponents,
    create_storage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "EntityRepository",
    "SnapshotStorageInterface",
    "VersionedRepository",
    # Exceptions
    "ConfigurationError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryEntityRepository",
    "InMemorySnapshotStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsEntityRepository",
    "GoogleSheetsSnapshotStorage",
    # Registry
    "COLLECTION_KINDS",
    "EntityKind",
    "RepositoryRegistry",
    "StorageComponents",
    "create_storage",
]
