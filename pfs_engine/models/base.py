"""
Base Models for the PFS Engine

Every financial record in the system is a VersionedEntity: it has an
immutable id, creation/update timestamps, a monotonic version and an
optional one-level rollback snapshot.

Python attributes are snake_case. The JSON contract consumed by rendering,
document-filling and storage collaborators uses camelCase field names, so
every model serializes by alias and accepts either spelling on input.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, ClassVar, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# Money, ratios and percentages. Exact in Python, plain numbers in JSON.
Amount = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]

ZERO = Decimal("0")

# Bookkeeping fields owned by the versioning module.
VERSION_METADATA_FIELDS = frozenset(
    {"id", "created_at", "updated_at", "version", "snapshot", "deleted_at"}
)


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_entity_id() -> str:
    """Generate a fresh, never-reused entity identifier."""
    return str(uuid4())


class CamelModel(BaseModel):
    """Base for every model that is part of the camelCase JSON contract."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    @classmethod
    def resolve_field_name(cls, key: str) -> Optional[str]:
        """
        Map a field name or its JSON alias to the Python field name.

        Returns None if the key is not a field of this model.
        """
        if key in cls.model_fields:
            return key
        for name, info in cls.model_fields.items():
            if info.alias == key:
                return name
        return None

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize to the plain camelCase JSON object consumers expect."""
        return self.model_dump(mode="json", by_alias=True)


class VersionedEntity(CamelModel):
    """
    Abstract base for all domain entities.

    INVARIANTS:
    - id is assigned once and never reused
    - updated_at >= created_at
    - version starts at 1 and only ever increases
    - snapshot, when present, is the immediately preceding state
      (without its own snapshot/deleted_at), not a full history
    """

    id: str = Field(
        default_factory=new_entity_id,
        description="Opaque stable identifier"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the entity was created (UTC)"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        description="Last state transition (UTC)"
    )
    version: int = Field(
        default=1,
        ge=1,
        description="Incremented by exactly 1 on every state transition"
    )
    deleted_at: Optional[datetime] = Field(
        default=None,
        description="Soft-delete marker; the record itself is retained"
    )
    snapshot: Optional[dict[str, Any]] = Field(
        default=None,
        description="Prior state captured for one-level rollback"
    )

    @field_validator("created_at", "updated_at", "deleted_at")
    @classmethod
    def normalize_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        return ensure_utc(v)

    @model_validator(mode="after")
    def validate_timestamps(self) -> "VersionedEntity":
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")
        return self


class PFSEntity(VersionedEntity):
    """
    A versioned entity that belongs to one PFS subject.

    Subclasses declare the persistence table they live in and which of
    their fields are derived (written only by the sync engine).
    """

    table_name: ClassVar[str] = ""
    derived_fields: ClassVar[frozenset[str]] = frozenset()

    subject_id: Optional[str] = Field(
        default=None,
        alias="userId",
        description="The person whose statement this entity belongs to"
    )
