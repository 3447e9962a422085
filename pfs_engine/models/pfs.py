"""
Portfolio-level Models

PFSSummaries is the single source of truth for "the numbers": every display,
export and comparison surface reads it rather than re-totalling entities.

FullPFS bundles one consistent revision of every entity collection with the
summaries computed from exactly that revision.

PFSSnapshot is a point-in-time capture of a PFS. Its captured fields are
write-once; only the outdated flag, its reason and the soft-delete marker
may change after creation.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import ConfigDict, Field, field_validator

from pfs_engine.models.base import (
    ZERO,
    Amount,
    CamelModel,
    ensure_utc,
    new_entity_id,
    utcnow,
)
from pfs_engine.models.entities import (
    BankAccount,
    BusinessEntity,
    CapTable,
    CreditCard,
    CreditLine,
    IncomeSource,
    InvestmentAccount,
    PersonalInfo,
    PersonalLoan,
    PrivateEquity,
    RealEstateProperty,
    RSURestrictedStock,
)


class PFSSummaries(CamelModel):
    """
    Flat aggregate of every PFS metric.

    Pure function of the entity collections; never persisted as primitive
    state. Frozen so a computed summary can be shared safely.
    """

    model_config = ConfigDict(frozen=True)

    # Asset totals
    total_real_estate_value: Amount = ZERO
    total_real_estate_equity: Amount = ZERO
    total_bank_account_balance: Amount = ZERO
    total_investment_value: Amount = ZERO
    total_rsu_value: Amount = Field(default=ZERO, alias="totalRSUValue")
    total_private_equity_value: Amount = ZERO
    total_cap_table_value: Amount = ZERO
    total_business_equity: Amount = ZERO
    total_assets: Amount = ZERO

    # Liability totals
    total_mortgage_balance: Amount = ZERO
    total_personal_loan_balance: Amount = ZERO
    total_credit_line_balance: Amount = ZERO
    total_credit_card_balance: Amount = ZERO
    total_liabilities: Amount = ZERO

    # Income
    total_monthly_income: Amount = ZERO
    total_annual_income: Amount = ZERO

    # Key ratios
    net_worth: Amount = ZERO
    total_debt: Amount = ZERO
    debt_to_asset_ratio: Amount = Field(
        default=ZERO,
        description="total_debt / total_assets * 100"
    )
    liquidity: Amount = ZERO

    # Real estate underwriting
    average_ltv: Amount = Field(default=ZERO, alias="averageLTV")
    total_noi: Amount = Field(default=ZERO, alias="totalNOI")
    average_dscr: Amount = Field(default=ZERO, alias="averageDSCR")

    @classmethod
    def metric_names(cls) -> list[str]:
        """The camelCase metric names, in declaration order."""
        return [info.alias or name for name, info in cls.model_fields.items()]

    def metric(self, name: str) -> Decimal:
        """Look up a metric by camelCase or snake_case name."""
        field_name = self.resolve_field_name(name)
        if field_name is None:
            raise KeyError(name)
        return getattr(self, field_name)

    def metrics(self) -> dict[str, Decimal]:
        """All metrics keyed by camelCase name."""
        return {
            info.alias or name: getattr(self, name)
            for name, info in type(self).model_fields.items()
        }


class FullPFS(CamelModel):
    """
    A complete personal financial statement for one subject.

    GUARANTEE: summaries were computed from exactly the collections carried
    in the same object.
    """

    id: str = Field(..., description="pfs-{subject}-{timestamp}")
    subject_id: str = Field(..., alias="userId")
    generated_at: datetime = Field(default_factory=utcnow)
    personal_info: Optional[PersonalInfo] = None

    real_estate: list[RealEstateProperty] = Field(default_factory=list)
    bank_accounts: list[BankAccount] = Field(default_factory=list)
    investments: list[InvestmentAccount] = Field(default_factory=list)
    rsu_restricted_stock: list[RSURestrictedStock] = Field(default_factory=list)
    private_equity: list[PrivateEquity] = Field(default_factory=list)
    cap_tables: list[CapTable] = Field(default_factory=list)
    business_entities: list[BusinessEntity] = Field(default_factory=list)
    personal_loans: list[PersonalLoan] = Field(default_factory=list)
    credit_lines: list[CreditLine] = Field(default_factory=list)
    credit_cards: list[CreditCard] = Field(default_factory=list)
    income_sources: list[IncomeSource] = Field(default_factory=list)

    summaries: PFSSummaries


def new_snapshot_id() -> str:
    return f"snapshot_{new_entity_id()}"


class PFSSnapshot(CamelModel):
    """
    Point-in-time capture of a PFS.

    State machine: current -> outdated. Outdated is terminal; a stale
    snapshot is superseded by taking a new one, never reset.
    """

    id: str = Field(default_factory=new_snapshot_id, frozen=True)
    created_at: datetime = Field(default_factory=utcnow, frozen=True)
    subject_id: Optional[str] = Field(default=None, alias="userId", frozen=True)

    snapshot_name: str = Field(
        ...,
        min_length=1,
        max_length=1000,
        frozen=True,
        description="User-facing name of the snapshot"
    )
    snapshot_date: datetime = Field(default_factory=utcnow, frozen=True)
    template_id: Optional[str] = Field(
        default=None,
        frozen=True,
        description="Lender/template the snapshot was prepared for"
    )
    template_name: Optional[str] = Field(default=None, frozen=True)
    notes: Optional[str] = Field(default=None, frozen=True)
    source_pfs_id: Optional[str] = Field(
        default=None,
        frozen=True,
        description="Id of the FullPFS the summaries were captured from"
    )
    summaries: PFSSummaries = Field(..., frozen=True)

    # Mutable after creation
    is_outdated: bool = False
    outdated_reason: Optional[str] = None
    deleted_at: Optional[datetime] = None

    @field_validator("created_at", "snapshot_date", "deleted_at")
    @classmethod
    def normalize_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        return ensure_utc(v)

    @property
    def totals(self) -> dict[str, Decimal]:
        """Headline totals shown in snapshot lists."""
        return {
            "totalAssets": self.summaries.total_assets,
            "totalLiabilities": self.summaries.total_liabilities,
            "netWorth": self.summaries.net_worth,
        }

    def with_outdated(self, reason: str) -> "PFSSnapshot":
        """
        Return this snapshot marked outdated.

        An already-outdated snapshot is returned unchanged so the first
        reason is kept.
        """
        if self.is_outdated:
            return self
        return self.model_copy(
            update={"is_outdated": True, "outdated_reason": reason}
        )


# =============================================================================
# COMPARISON RESULTS
# =============================================================================

class ChangeDirection(str, Enum):
    """Semantic direction of a metric change, independent of its sign."""
    IMPROVED = "improved"
    DETERIORATED = "deteriorated"
    UNCHANGED = "unchanged"


class MetricDelta(CamelModel):
    metric: str = Field(..., description="camelCase metric name")
    label: str = Field(..., description="Title Case display name")
    from_value: Amount = Field(..., alias="from")
    to_value: Amount = Field(..., alias="to")
    delta: Amount
    percent_change: Optional[Amount] = Field(
        default=None,
        description="delta / |from| * 100; None when from is 0"
    )
    higher_is_better: bool
    direction: ChangeDirection


class ComparisonSummary(CamelModel):
    total_assets_delta: Amount
    total_liabilities_delta: Amount
    net_worth_delta: Amount


class SnapshotComparison(CamelModel):
    """Pairwise comparison of two PFS revisions (b relative to a)."""

    from_label: Optional[str] = None
    to_label: Optional[str] = None
    deltas: dict[str, MetricDelta]
    summary: ComparisonSummary

    def delta(self, metric: str) -> Decimal:
        return self.deltas[metric].delta

    def changed(self) -> list[MetricDelta]:
        """Metrics whose value moved."""
        return [d for d in self.deltas.values() if d.delta != 0]

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_label,
            "to": self.to_label,
            "changed_metrics": [d.metric for d in self.changed()],
            "net_worth_delta": str(self.summary.net_worth_delta),
        }
