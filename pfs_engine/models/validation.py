"""
Validation Result Models

Two-stage validation:
Stage 1: Schema validation (pydantic: types, required fields)
Stage 2: Semantic validation (EntityValidator: financial logic checks)

DESIGN DECISION: Validation reports problems, it never fixes them.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from pfs_engine.models.base import utcnow


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'negative', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Result of validating one entity."""

    entity_type: str = Field(
        ...,
        description="Class name of the validated entity"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the validated entity, if it has one yet"
    )
    validated_at: datetime = Field(
        default_factory=utcnow
    )

    is_valid: bool = Field(
        ...,
        description="True when no error-level issue was found"
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]

    def fields_with_errors(self) -> set[str]:
        return {issue.field for issue in self.issues if issue.severity == "error"}
