"""
Audit Logger

DESIGN DECISION: Every entity version transition and every side effect
in the engine is logged. This provides:
1. Complete traceability of who-changed-what between two snapshots
2. Debugging capability when an assembly or staleness update fails
3. A readable history next to the data in the persistence backend

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (never raises, never fails the caller's write)
- Supports correlation IDs to tie a write to its follow-up side effects
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from pfs_engine.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from pfs_engine.models.base import VersionedEntity
from pfs_engine.models.pfs import FullPFS, PFSSnapshot
from pfs_engine.models.validation import ValidationResult
from pfs_engine.services.storage import AuditStorageInterface
from pfs_engine.versioning import extract_changes


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit storage backend (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_entity_created(
        self,
        entity: VersionedEntity,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log entity creation."""
        event = AuditEventBuilder.entity_created(
            entity_type=type(entity).__name__,
            entity_id=entity.id,
            version=entity.version,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_updated(
        self,
        before: VersionedEntity,
        after: VersionedEntity,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an entity update with its field-level diff."""
        event = AuditEventBuilder.entity_updated(
            entity_type=type(after).__name__,
            entity_id=after.id,
            version=after.version,
            changes=extract_changes(before, after),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_deleted(
        self,
        entity: VersionedEntity,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log soft delete."""
        event = AuditEventBuilder.entity_deleted(
            entity_type=type(entity).__name__,
            entity_id=entity.id,
            version=entity.version,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_restored(
        self,
        entity: VersionedEntity,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log restore after soft delete."""
        event = AuditEventBuilder.entity_restored(
            entity_type=type(entity).__name__,
            entity_id=entity.id,
            version=entity.version,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_rolled_back(
        self,
        entity: VersionedEntity,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log rollback to snapshot."""
        event = AuditEventBuilder.entity_rolled_back(
            entity_type=type(entity).__name__,
            entity_id=entity.id,
            version=entity.version,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        result: ValidationResult,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            entity_type=result.entity_type,
            entity_id=result.entity_id,
            issues=[issue.model_dump() for issue in result.issues],
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_pfs_assembled(
        self,
        pfs: FullPFS,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log PFS assembly."""
        event = AuditEventBuilder.pfs_assembled(
            pfs_id=pfs.id,
            subject_id=pfs.subject_id,
            net_worth=str(pfs.summaries.net_worth),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_assembly_failed(
        self,
        subject_id: str,
        collection: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log PFS assembly failure."""
        event = AuditEventBuilder.pfs_assembly_failed(
            subject_id=subject_id,
            collection=collection,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_snapshot_created(
        self,
        snapshot: PFSSnapshot,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log snapshot creation."""
        event = AuditEventBuilder.snapshot_created(
            snapshot_id=snapshot.id,
            snapshot_name=snapshot.snapshot_name,
            net_worth=str(snapshot.summaries.net_worth),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_snapshots_marked_outdated(
        self,
        count: int,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log staleness marking."""
        event = AuditEventBuilder.snapshots_marked_outdated(
            count=count,
            reason=reason,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_staleness_update_failed(
        self,
        reason: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed best-effort staleness update."""
        event = AuditEventBuilder.staleness_update_failed(
            reason=reason,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log persistence failure."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a write. Pass it through the audit events of
    the write and of its staleness follow-up.
    """
    return uuid4()
