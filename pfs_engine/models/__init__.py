"""
Data Models Package

This package contains all Pydantic models used in the PFS engine.
All data flowing through the engine must conform to these schemas.
"""

from pfs_engine.models.base import (
    VERSION_METADATA_FIELDS,
    ZERO,
    Amount,
    CamelModel,
    PFSEntity,
    VersionedEntity,
    new_entity_id,
    utcnow,
)
from pfs_engine.models.entities import (
    BankAccount,
    BankAccountType,
    BusinessAsset,
    BusinessEntity,
    BusinessEntityType,
    BusinessLiability,
    CapTable,
    CreditCard,
    CreditLine,
    IncomeSource,
    IncomeSourceType,
    InvestmentAccount,
    InvestmentAccountType,
    LoanType,
    Mortgage,
    OwnerShare,
    OwnershipStructure,
    PersonalInfo,
    PersonalLoan,
    PostalAddress,
    PrivateEquity,
    PropertyType,
    RealEstateProperty,
    RSURestrictedStock,
    StockHolding,
)
from pfs_engine.models.pfs import (
    ChangeDirection,
    ComparisonSummary,
    FullPFS,
    MetricDelta,
    PFSSnapshot,
    PFSSummaries,
    SnapshotComparison,
)
from pfs_engine.models.validation import ValidationIssue, ValidationResult
from pfs_engine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Base
    "VERSION_METADATA_FIELDS",
    "ZERO",
    "Amount",
    "CamelModel",
    "PFSEntity",
    "VersionedEntity",
    "new_entity_id",
    "utcnow",
    # Entities
    "BankAccount",
    "BankAccountType",
    "BusinessAsset",
    "BusinessEntity",
    "BusinessEntityType",
    "BusinessLiability",
    "CapTable",
    "CreditCard",
    "CreditLine",
    "IncomeSource",
    "IncomeSourceType",
    "InvestmentAccount",
    "InvestmentAccountType",
    "LoanType",
    "Mortgage",
    "OwnerShare",
    "OwnershipStructure",
    "PersonalInfo",
    "PersonalLoan",
    "PostalAddress",
    "PrivateEquity",
    "PropertyType",
    "RealEstateProperty",
    "RSURestrictedStock",
    "StockHolding",
    # Portfolio
    "ChangeDirection",
    "ComparisonSummary",
    "FullPFS",
    "MetricDelta",
    "PFSSnapshot",
    "PFSSummaries",
    "SnapshotComparison",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
