"""
Audit Models for the PFS Engine

Every significant action in the engine is logged for audit purposes.
This provides:
1. Traceability of every entity version transition
2. Debugging information when an assembly or staleness update fails
3. The ability to reconstruct who changed which figure, and when

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from pfs_engine.models.base import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every versioning transition and every side effect has its own type.
    """
    # Entity lifecycle
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_DELETED = "entity_deleted"
    ENTITY_RESTORED = "entity_restored"
    ENTITY_ROLLED_BACK = "entity_rolled_back"
    ENTITY_VALIDATION_FAILED = "entity_validation_failed"

    # Assembly
    PFS_ASSEMBLED = "pfs_assembled"
    PFS_ASSEMBLY_FAILED = "pfs_assembly_failed"

    # Snapshots
    SNAPSHOT_CREATED = "snapshot_created"
    SNAPSHOTS_MARKED_OUTDATED = "snapshots_marked_outdated"
    STALENESS_UPDATE_FAILED = "staleness_update_failed"

    # System events
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _json_default(value: Any) -> str:
    # Decimals, dates and enums in change diffs
    return str(value)


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'CreditLine', 'pfs', 'snapshot')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a write and its staleness update)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": json.loads(json.dumps(self.details, default=_json_default)),
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=_json_default) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entity_created("CreditLine", line.id, 1)
        event = AuditEventBuilder.snapshots_marked_outdated(3, reason)
    """

    @staticmethod
    def entity_created(
        entity_type: str,
        entity_id: str,
        version: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_CREATED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type} created",
            details={"version": version},
        )

    @staticmethod
    def entity_updated(
        entity_type: str,
        entity_id: str,
        version: int,
        changes: dict[str, dict[str, Any]],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_UPDATED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type} updated to version {version}",
            details={
                "version": version,
                "changed_fields": sorted(changes),
                "changes": changes,
            },
        )

    @staticmethod
    def entity_deleted(
        entity_type: str,
        entity_id: str,
        version: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_DELETED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type} soft-deleted",
            details={"version": version},
        )

    @staticmethod
    def entity_restored(
        entity_type: str,
        entity_id: str,
        version: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_RESTORED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type} restored",
            details={"version": version},
        )

    @staticmethod
    def entity_rolled_back(
        entity_type: str,
        entity_id: str,
        version: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_ROLLED_BACK,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type} rolled back to its previous state",
            details={"version": version},
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        entity_id: Optional[str],
        issues: list[dict],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type} validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def pfs_assembled(
        pfs_id: str,
        subject_id: str,
        net_worth: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PFS_ASSEMBLED,
            entity_type="pfs",
            entity_id=pfs_id,
            correlation_id=correlation_id,
            description=f"PFS assembled for {subject_id}",
            details={
                "subject_id": subject_id,
                "net_worth": net_worth,
            },
        )

    @staticmethod
    def pfs_assembly_failed(
        subject_id: str,
        collection: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PFS_ASSEMBLY_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="pfs",
            correlation_id=correlation_id,
            description=f"PFS assembly failed while fetching {collection}",
            error_message=error_message,
            details={
                "subject_id": subject_id,
                "collection": collection,
            },
        )

    @staticmethod
    def snapshot_created(
        snapshot_id: str,
        snapshot_name: str,
        net_worth: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_CREATED,
            entity_type="snapshot",
            entity_id=snapshot_id,
            correlation_id=correlation_id,
            description=f"Snapshot created: {snapshot_name}",
            details={"net_worth": net_worth},
        )

    @staticmethod
    def snapshots_marked_outdated(
        count: int,
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOTS_MARKED_OUTDATED,
            entity_type="snapshot",
            correlation_id=correlation_id,
            description=f"{count} snapshot(s) marked outdated",
            details={
                "count": count,
                "reason": reason,
            },
        )

    @staticmethod
    def staleness_update_failed(
        reason: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STALENESS_UPDATE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="snapshot",
            correlation_id=correlation_id,
            description="Could not mark snapshots outdated",
            error_message=error_message,
            details={"reason": reason},
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
