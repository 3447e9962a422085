"""Semantic validation of PFS entities."""

from pfs_engine.validation.validator import (
    EntityValidator,
    validate_mortgage,
    validate_owner_shares,
)

__all__ = [
    "EntityValidator",
    "validate_mortgage",
    "validate_owner_shares",
]
