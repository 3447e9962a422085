"""
Shared fixtures for the PFS Engine tests.

Test strategy:
1. Unit tests for pure components (versioning, calculations, sync, comparison)
2. Integration tests for flows over the in-memory backend
3. No real Google API calls in tests (worksheets are faked)
"""

from decimal import Decimal
from typing import Any, Optional

import pytest

from pfs_engine.audit import AuditLogger
from pfs_engine.models.entities import (
    CreditLine,
    IncomeSource,
    Mortgage,
    OwnerShare,
    RealEstateProperty,
)
from pfs_engine.orchestrator import PortfolioService
from pfs_engine.services.storage import (
    InMemoryAuditStorage,
    InMemorySnapshotStorage,
    RepositoryRegistry,
)
from pfs_engine.snapshots import SnapshotStalenessTracker


SUBJECT = "user-1"


def build_property(
    market_value: Any = "500000",
    principal: Any = "300000",
    monthly_payment: Any = "0",
    ownership: Any = "100",
    **fields: Any,
) -> RealEstateProperty:
    """A property with one mortgage and one owner."""
    mortgages = []
    if principal is not None:
        mortgages.append(Mortgage(
            lender="First Bank",
            principal_balance=Decimal(str(principal)),
            monthly_payment=Decimal(str(monthly_payment)),
        ))
    return RealEstateProperty(
        address=fields.pop("address", "1 Main St"),
        market_value=Decimal(str(market_value)) if market_value is not None else None,
        mortgages=mortgages,
        owners=[OwnerShare(owner_id="o1", owner_name="Alex", ownership_percentage=Decimal(str(ownership)))],
        subject_id=fields.pop("subject_id", SUBJECT),
        **fields,
    )


def property_data(
    market_value: str = "500000",
    principal: Optional[str] = "300000",
    address: str = "1 Main St",
) -> dict:
    """camelCase create payload for a property, as a client would send it."""
    mortgages = []
    if principal is not None:
        mortgages.append({"lender": "First Bank", "principalBalance": principal})
    return {
        "address": address,
        "marketValue": market_value,
        "mortgages": mortgages,
        "owners": [{"ownerId": "o1", "ownerName": "Alex", "ownershipPercentage": "100"}],
    }


@pytest.fixture
def make_property():
    return build_property


@pytest.fixture
def make_property_data():
    return property_data


@pytest.fixture
def credit_line() -> CreditLine:
    return CreditLine(
        institution="Chase",
        credit_limit=Decimal("10000"),
        current_balance=Decimal("3000"),
        subject_id=SUBJECT,
    )


@pytest.fixture
def income_source() -> IncomeSource:
    return IncomeSource(
        source_name="Acme Corp",
        monthly_amount=Decimal("5000"),
        subject_id=SUBJECT,
    )


@pytest.fixture
def registry() -> RepositoryRegistry:
    return RepositoryRegistry.in_memory()


@pytest.fixture
def snapshot_storage() -> InMemorySnapshotStorage:
    return InMemorySnapshotStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def tracker(snapshot_storage, audit_logger) -> SnapshotStalenessTracker:
    return SnapshotStalenessTracker(snapshot_storage, audit_logger)


@pytest.fixture
def service(registry, snapshot_storage, audit_logger, tracker) -> PortfolioService:
    return PortfolioService(
        repositories=registry,
        snapshot_storage=snapshot_storage,
        audit_logger=audit_logger,
        staleness_tracker=tracker,
    )
