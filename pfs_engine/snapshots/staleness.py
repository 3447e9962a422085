"""
Snapshot Staleness Tracker

A PFSSnapshot moves from current to outdated when any entity that could
have contributed to its totals is mutated. Outdated is terminal: a stale
snapshot is superseded by taking a new one, never reset.

DESIGN DECISION: No dependency index. Any entity mutation marks every
existing snapshot outdated. This over-invalidates occasionally but never
leaves a stale snapshot looking current.

CRITICAL: Marking snapshots outdated is a best-effort follow-up to a
write. It must never block, fail or roll back the write that triggered
it. Failures are logged and audited, then dropped.
"""

import asyncio
import re
from typing import Iterable, Optional
from uuid import UUID

import structlog

from pfs_engine.audit import AuditLogger
from pfs_engine.models.pfs import FullPFS, PFSSnapshot
from pfs_engine.services.storage import SnapshotStorageInterface


logger = structlog.get_logger()


def create_pfs_snapshot(
    pfs: FullPFS,
    name: str,
    template_id: Optional[str] = None,
    template_name: Optional[str] = None,
    notes: Optional[str] = None,
) -> PFSSnapshot:
    """Capture the summaries of an assembled PFS as a new, current snapshot."""
    return PFSSnapshot(
        subject_id=pfs.subject_id,
        snapshot_name=name,
        template_id=template_id,
        template_name=template_name,
        notes=notes,
        source_pfs_id=pfs.id,
        summaries=pfs.summaries,
    )


def _entity_label(entity_type: str) -> str:
    # "RealEstateProperty" -> "Real estate property"
    words = re.sub(r"([a-z])([A-Z])", r"\1 \2", entity_type).split()
    return " ".join([words[0]] + [w.lower() for w in words[1:]]) if words else entity_type


def describe_mutation(
    entity_type: str,
    entity_id: str,
    action: str,
    fields: Optional[Iterable[str]] = None,
) -> str:
    """
    Human-readable staleness reason.

    Examples:
        describe_mutation("Mortgage", "m1", "updated", ["principal_balance"])
            -> "Mortgage updated (principal_balance): m1"
        describe_mutation("RealEstateProperty", "p1", "created")
            -> "New real estate property created: p1"
    """
    label = _entity_label(entity_type)
    if action == "created":
        text = f"New {label.lower()} created"
    else:
        text = f"{label} {action.replace('_', ' ')}"

    changed = sorted(fields or [])
    if changed:
        text += f" ({', '.join(changed)})"
    return f"{text}: {entity_id}"


class SnapshotStalenessTracker:
    """Owns snapshot creation and the outdated flag of every snapshot."""

    def __init__(
        self,
        storage: SnapshotStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        enabled: bool = True,
        max_name_length: Optional[int] = None,
    ):
        """
        Args:
            storage: Snapshot persistence
            audit_logger: Receives snapshot and staleness events
            enabled: When False, mutations never mark snapshots outdated
            max_name_length: Upper bound for snapshot names, if any
        """
        self._storage = storage
        self._audit_logger = audit_logger
        self._enabled = enabled
        self._max_name_length = max_name_length
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of scheduled notifications not yet finished."""
        return len(self._pending)

    async def take_snapshot(
        self,
        pfs: FullPFS,
        name: str,
        template_id: Optional[str] = None,
        template_name: Optional[str] = None,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> PFSSnapshot:
        """
        Capture and persist a snapshot of an assembled PFS.

        Raises:
            ValueError: If the name exceeds the configured maximum length
        """
        if self._max_name_length is not None and len(name.strip()) > self._max_name_length:
            raise ValueError(
                f"Snapshot name exceeds {self._max_name_length} characters"
            )

        snapshot = create_pfs_snapshot(
            pfs,
            name,
            template_id=template_id,
            template_name=template_name,
            notes=notes,
        )
        saved = await self._storage.save_snapshot(snapshot)

        logger.info(
            "snapshot_created",
            snapshot_id=saved.id,
            snapshot_name=saved.snapshot_name,
            source_pfs_id=saved.source_pfs_id,
        )
        if self._audit_logger:
            await self._audit_logger.log_snapshot_created(saved, correlation_id)

        return saved

    async def mark_all_outdated(
        self,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Mark every current snapshot outdated.

        Snapshots already outdated keep their first reason and are not
        counted.

        Returns:
            Number of snapshots that moved to outdated

        Raises:
            Whatever the snapshot storage raises
        """
        snapshots = await self._storage.list_snapshots()

        marked = 0
        for snapshot in snapshots:
            if snapshot.is_outdated:
                continue
            await self._storage.mark_outdated(snapshot.id, reason)
            marked += 1

        if marked:
            logger.info("snapshots_marked_outdated", count=marked, reason=reason)
            if self._audit_logger:
                await self._audit_logger.log_snapshots_marked_outdated(
                    count=marked,
                    reason=reason,
                    correlation_id=correlation_id,
                )

        return marked

    async def notify_entity_mutated(
        self,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Best-effort staleness update after a successful entity write.

        Never raises. Returns False if the update failed.
        """
        if not self._enabled:
            return True

        try:
            await self.mark_all_outdated(reason, correlation_id)
            return True
        except Exception as e:
            # Reported separately; the triggering write already succeeded
            logger.warning(
                "staleness_update_failed",
                reason=reason,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_staleness_update_failed(
                    reason=reason,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return False

    def schedule_entity_mutated(
        self,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> asyncio.Task:
        """
        Run notify_entity_mutated in the background.

        Must be called from a running event loop. Use drain() to wait
        for scheduled notifications.
        """
        task = asyncio.create_task(self.notify_entity_mutated(reason, correlation_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait until every scheduled notification has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
