"""
Main Orchestrator for the PFS Engine

This module ties together all the components and defines the
end-to-end flows for:
1. Entity writes (patch -> guard -> validate -> persist -> audit -> staleness)
2. Statement generation (fetch -> sync -> summarize)
3. Snapshots (capture -> list -> compare against current)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Derived fields are never accepted from a caller
- No entity is persisted while its validation reports errors (strict mode)
- Every write is audited
- Snapshot staleness is a follow-up that never blocks or rolls back a write

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from typing import Any, Awaitable, Mapping, Optional, TypeVar
from uuid import UUID

import structlog

from pfs_engine.assembler import RepositoryFetchers, assemble_pfs
from pfs_engine.audit import AuditLogger, create_correlation_id
from pfs_engine.config import Settings, get_settings
from pfs_engine.models.base import PFSEntity
from pfs_engine.models.entities import Mortgage, RealEstateProperty
from pfs_engine.models.pfs import FullPFS, PFSSnapshot, SnapshotComparison
from pfs_engine.models.validation import ValidationIssue, ValidationResult
from pfs_engine.services.storage import (
    EntityKind,
    NotFoundError,
    RepositoryRegistry,
    SnapshotStorageInterface,
    StorageError,
    create_storage,
)
from pfs_engine.snapshots import (
    SnapshotStalenessTracker,
    compare_snapshots,
    describe_mutation,
)
from pfs_engine.sync import sync_entity
from pfs_engine.validation import EntityValidator, validate_mortgage
from pfs_engine.versioning import (
    create_versioned_entity,
    restore_from_snapshot,
    update_versioned_entity,
)


logger = structlog.get_logger()

E = TypeVar("E", bound=PFSEntity)


class DerivedFieldWriteError(Exception):
    """A caller tried to set fields that only the sync engine writes."""

    def __init__(self, entity_type: str, fields: set[str]):
        self.entity_type = entity_type
        self.fields = sorted(fields)
        super().__init__(
            f"Derived fields of {entity_type} cannot be written: {', '.join(self.fields)}"
        )


class EntityValidationError(Exception):
    """The entity's validation reported errors; nothing was persisted."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(
            issue.message for issue in result.issues if issue.severity == "error"
        )
        super().__init__(f"{result.entity_type} failed validation: {messages}")


class PortfolioService:
    """
    Single entry point for reading and writing a subject's portfolio.

    Write flow:
    1. Guard   -> reject patches that touch derived fields
    2. Validate -> build the would-be entity and run semantic checks
    3. Persist -> versioned repository (sync runs inside)
    4. Audit   -> entity event with field-level changes
    5. Staleness -> scheduled in the background, best-effort

    Steps 1 and 2 raise before anything is written.
    """

    def __init__(
        self,
        repositories: RepositoryRegistry,
        snapshot_storage: SnapshotStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[EntityValidator] = None,
        staleness_tracker: Optional[SnapshotStalenessTracker] = None,
        strict_validation: bool = True,
        default_template_id: Optional[str] = None,
    ):
        self._repositories = repositories
        self._snapshots = snapshot_storage
        self._audit_logger = audit_logger
        self._validator = validator or EntityValidator()
        self._tracker = staleness_tracker or SnapshotStalenessTracker(
            snapshot_storage,
            audit_logger,
        )
        self._strict_validation = strict_validation
        self._default_template_id = default_template_id

    @property
    def repositories(self) -> RepositoryRegistry:
        return self._repositories

    @property
    def staleness_tracker(self) -> SnapshotStalenessTracker:
        return self._tracker

    # ------------------------------------------------------------------
    # Write-path helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _reject_derived_fields(model: type[PFSEntity], data: Mapping[str, Any]) -> None:
        names = {model.resolve_field_name(key) or key for key in data}
        derived = names & model.derived_fields
        if derived:
            raise DerivedFieldWriteError(model.__name__, derived)

    async def _validate(
        self,
        candidate: PFSEntity,
        correlation_id: UUID,
        extra_issues: Optional[list[ValidationIssue]] = None,
    ) -> ValidationResult:
        result = self._validator.validate(sync_entity(candidate))
        if extra_issues:
            issues = result.issues + extra_issues
            result = result.model_copy(update={
                "issues": issues,
                "is_valid": not any(i.severity == "error" for i in issues),
            })

        if not result.is_valid:
            logger.warning(
                "entity_validation_failed",
                entity_type=result.entity_type,
                entity_id=result.entity_id,
                errors=[i.message for i in result.issues if i.severity == "error"],
            )
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(result, correlation_id)
            if self._strict_validation:
                raise EntityValidationError(result)

        return result

    async def _require(self, kind: EntityKind, entity_id: str) -> PFSEntity:
        entity = await self._repositories.get(kind).fetch_by_id(entity_id)
        if entity is None:
            raise NotFoundError(f"{kind.model.__name__} not found: {entity_id}")
        return entity

    async def _persist(
        self,
        kind: EntityKind,
        operation: str,
        write: Awaitable[E],
        correlation_id: UUID,
    ) -> E:
        """Await a repository write, auditing backend failures before re-raising."""
        try:
            return await write
        except NotFoundError:
            raise
        except StorageError as e:
            logger.error(
                "entity_write_failed",
                entity_type=kind.model.__name__,
                operation=operation,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation=f"{operation} {kind.model.__name__}",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

    def _after_write(
        self,
        kind: EntityKind,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        # Personal info does not contribute to any total
        if kind is EntityKind.PERSONAL_INFO:
            return
        self._tracker.schedule_entity_mutated(reason, correlation_id)

    # ------------------------------------------------------------------
    # Entity writes
    # ------------------------------------------------------------------

    async def create(
        self,
        kind: EntityKind,
        data: Mapping[str, Any],
        subject_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> PFSEntity:
        """
        Create an entity of the given kind.

        Raises:
            DerivedFieldWriteError: If data sets a derived field
            ReservedFieldError: If data sets versioning metadata
            EntityValidationError: If validation reports errors (strict mode)
        """
        kind = EntityKind(kind)
        correlation_id = correlation_id or create_correlation_id()
        self._reject_derived_fields(kind.model, data)

        fields = dict(data)
        if subject_id is not None:
            fields["subject_id"] = subject_id
        await self._validate(create_versioned_entity(kind.model, fields), correlation_id)

        entity = await self._persist(
            kind,
            "create",
            self._repositories.get(kind).create(data, subject_id),
            correlation_id,
        )

        logger.info("entity_created", entity_type=kind.model.__name__, entity_id=entity.id)
        if self._audit_logger:
            await self._audit_logger.log_entity_created(entity, correlation_id)

        self._after_write(
            kind,
            describe_mutation(kind.model.__name__, entity.id, "created"),
            correlation_id,
        )
        return entity

    async def update(
        self,
        kind: EntityKind,
        entity_id: str,
        patch: Mapping[str, Any],
        correlation_id: Optional[UUID] = None,
        reason: Optional[str] = None,
        extra_issues: Optional[list[ValidationIssue]] = None,
    ) -> PFSEntity:
        """
        Apply a patch to an entity.

        Raises:
            NotFoundError: If no entity has this id
            DerivedFieldWriteError: If the patch sets a derived field
            EntityValidationError: If validation reports errors (strict mode)
        """
        kind = EntityKind(kind)
        correlation_id = correlation_id or create_correlation_id()
        self._reject_derived_fields(kind.model, patch)

        current = await self._require(kind, entity_id)
        await self._validate(
            update_versioned_entity(current, patch),
            correlation_id,
            extra_issues,
        )

        updated = await self._persist(
            kind,
            "update",
            self._repositories.get(kind).update(entity_id, patch),
            correlation_id,
        )

        logger.info(
            "entity_updated",
            entity_type=kind.model.__name__,
            entity_id=entity_id,
            version=updated.version,
        )
        if self._audit_logger:
            await self._audit_logger.log_entity_updated(current, updated, correlation_id)

        if reason is None:
            fields = [kind.model.resolve_field_name(key) or key for key in patch]
            reason = describe_mutation(kind.model.__name__, entity_id, "updated", fields)
        self._after_write(kind, reason, correlation_id)
        return updated

    async def delete(
        self,
        kind: EntityKind,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> PFSEntity:
        """Soft-delete an entity. Raises NotFoundError for unknown ids."""
        kind = EntityKind(kind)
        correlation_id = correlation_id or create_correlation_id()

        deleted = await self._persist(
            kind,
            "delete",
            self._repositories.get(kind).delete(entity_id),
            correlation_id,
        )

        logger.info("entity_deleted", entity_type=kind.model.__name__, entity_id=entity_id)
        if self._audit_logger:
            await self._audit_logger.log_entity_deleted(deleted, correlation_id)

        self._after_write(
            kind,
            describe_mutation(kind.model.__name__, entity_id, "deleted"),
            correlation_id,
        )
        return deleted

    async def restore(
        self,
        kind: EntityKind,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> PFSEntity:
        """Undo a soft delete. Raises NotFoundError for unknown ids."""
        kind = EntityKind(kind)
        correlation_id = correlation_id or create_correlation_id()

        restored = await self._persist(
            kind,
            "restore",
            self._repositories.get(kind).restore(entity_id),
            correlation_id,
        )

        logger.info("entity_restored", entity_type=kind.model.__name__, entity_id=entity_id)
        if self._audit_logger:
            await self._audit_logger.log_entity_restored(restored, correlation_id)

        self._after_write(
            kind,
            describe_mutation(kind.model.__name__, entity_id, "restored"),
            correlation_id,
        )
        return restored

    async def rollback(
        self,
        kind: EntityKind,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> PFSEntity:
        """
        Roll an entity back to its previous state.

        Raises:
            NotFoundError: If no entity has this id
            NoSnapshotError: If the entity has no previous state
            EntityValidationError: If the restored state fails validation
                (strict mode)
        """
        kind = EntityKind(kind)
        correlation_id = correlation_id or create_correlation_id()

        current = await self._require(kind, entity_id)
        await self._validate(restore_from_snapshot(current), correlation_id)

        rolled_back = await self._persist(
            kind,
            "rollback",
            self._repositories.get(kind).rollback(entity_id),
            correlation_id,
        )

        logger.info(
            "entity_rolled_back",
            entity_type=kind.model.__name__,
            entity_id=entity_id,
            version=rolled_back.version,
        )
        if self._audit_logger:
            await self._audit_logger.log_entity_rolled_back(rolled_back, correlation_id)

        self._after_write(
            kind,
            describe_mutation(kind.model.__name__, entity_id, "rolled_back"),
            correlation_id,
        )
        return rolled_back

    # ------------------------------------------------------------------
    # Mortgages (embedded in their property)
    # ------------------------------------------------------------------

    async def add_mortgage(
        self,
        property_id: str,
        data: Mapping[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> RealEstateProperty:
        """Add a mortgage to a property. A new property version is written."""
        prop = await self._require(EntityKind.REAL_ESTATE, property_id)
        mortgage = Mortgage.model_validate({**data, "property_id": property_id})

        mortgages = [m.model_dump() for m in prop.mortgages] + [mortgage.model_dump()]
        return await self.update(
            EntityKind.REAL_ESTATE,
            property_id,
            {"mortgages": mortgages},
            correlation_id=correlation_id,
            reason=describe_mutation("Mortgage", mortgage.id, "created"),
            extra_issues=validate_mortgage(mortgage, f"mortgages[{len(prop.mortgages)}]"),
        )

    async def update_mortgage(
        self,
        property_id: str,
        mortgage_id: str,
        patch: Mapping[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> RealEstateProperty:
        """
        Patch one mortgage of a property.

        Raises:
            NotFoundError: If the property or the mortgage does not exist
        """
        prop = await self._require(EntityKind.REAL_ESTATE, property_id)

        fields = {Mortgage.resolve_field_name(key) or key: value for key, value in patch.items()}
        fields.pop("id", None)

        mortgages = []
        found = False
        for mortgage in prop.mortgages:
            state = mortgage.model_dump()
            if mortgage.id == mortgage_id:
                state.update(fields)
                found = True
            mortgages.append(Mortgage.model_validate(state).model_dump())

        if not found:
            raise NotFoundError(f"Mortgage not found: {mortgage_id}")

        return await self.update(
            EntityKind.REAL_ESTATE,
            property_id,
            {"mortgages": mortgages},
            correlation_id=correlation_id,
            reason=describe_mutation("Mortgage", mortgage_id, "updated", fields),
        )

    # ------------------------------------------------------------------
    # Statements and snapshots
    # ------------------------------------------------------------------

    async def assemble(self, subject_id: str) -> FullPFS:
        """Assemble the current statement. Raises PFSAssemblyError on fetch failure."""
        return await assemble_pfs(
            subject_id,
            RepositoryFetchers(self._repositories),
            self._audit_logger,
        )

    async def take_snapshot(
        self,
        subject_id: str,
        name: str,
        template_id: Optional[str] = None,
        template_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PFSSnapshot:
        """Assemble the current statement and capture it as a snapshot."""
        pfs = await self.assemble(subject_id)
        return await self._tracker.take_snapshot(
            pfs,
            name,
            template_id=template_id or self._default_template_id,
            template_name=template_name,
            notes=notes,
        )

    async def list_snapshots(self, subject_id: Optional[str] = None) -> list[PFSSnapshot]:
        """Active snapshots, newest first."""
        return await self._snapshots.list_snapshots(subject_id)

    async def delete_snapshot(self, snapshot_id: str) -> bool:
        return await self._snapshots.delete_snapshot(snapshot_id)

    async def compare_snapshot_to_current(
        self,
        snapshot_id: str,
        subject_id: Optional[str] = None,
        higher_is_better: Optional[Mapping[str, bool]] = None,
    ) -> SnapshotComparison:
        """
        Compare a stored snapshot (from) with a fresh assembly (to).

        Raises:
            NotFoundError: If the snapshot does not exist
            ValueError: If no subject id is given and the snapshot has none
        """
        snapshot = await self._snapshots.get_snapshot_by_id(snapshot_id)
        if snapshot is None:
            raise NotFoundError(f"Snapshot not found: {snapshot_id}")

        subject_id = subject_id or snapshot.subject_id
        if subject_id is None:
            raise ValueError("A subject id is required to assemble the current statement")

        current = await self.assemble(subject_id)
        comparison = compare_snapshots(snapshot, current, higher_is_better)
        logger.info("snapshot_compared", **comparison.to_log_dict())
        return comparison

    async def drain(self) -> None:
        """Wait for scheduled staleness notifications."""
        await self._tracker.drain()


def create_portfolio_service(settings: Optional[Settings] = None) -> PortfolioService:
    """
    Factory function to create a configured PortfolioService.

    Uses settings to build the configured storage backend.

    Raises:
        ConfigurationError: If the selected backend is not configured
    """
    settings = settings or get_settings()
    app = settings.app

    storage = create_storage(app)
    audit_logger = AuditLogger(storage.audit)
    tracker = SnapshotStalenessTracker(
        storage.snapshots,
        audit_logger,
        enabled=app.staleness_tracking_enabled,
        max_name_length=app.max_snapshot_name_length,
    )

    return PortfolioService(
        repositories=storage.repositories,
        snapshot_storage=storage.snapshots,
        audit_logger=audit_logger,
        staleness_tracker=tracker,
        strict_validation=app.strict_validation,
        default_template_id=app.default_template_id,
    )
