"""
Synchronization Engine

Re-derives entity-local computed fields after a primitive field changes,
so the calculation engine always aggregates over current values.

OWNERSHIP: this module is the only writer of derived fields
(`PFSEntity.derived_fields`). Repositories run `sync_entity` on every
write; the assembler runs `sync_all_entities` on every fetch.

Syncing is not a state transition: it never bumps version or touches
timestamps, and syncing an already-synced entity is a no-op.

Real estate underwriting metrics (LTV, NOI, DSCR) are not stored on the
property. They are computed on demand by `property_metrics`.
"""

from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, TypeVar, Union

from pydantic import Field

from pfs_engine.calculations.engine import (
    MONTHS_PER_YEAR,
    calculate_average_dscr,
    calculate_average_ltv,
    calculate_dscr,
    calculate_ltv,
    calculate_noi,
    calculate_total_business_equity,
    calculate_total_investment_value,
    calculate_total_mortgage_balance,
    calculate_total_noi,
    calculate_total_real_estate_equity,
    calculate_total_real_estate_value,
)
from pfs_engine.models.base import ZERO, Amount, CamelModel, PFSEntity
from pfs_engine.models.entities import (
    BankAccount,
    BusinessEntity,
    CapTable,
    CreditCard,
    CreditLine,
    IncomeSource,
    InvestmentAccount,
    PersonalLoan,
    PrivateEquity,
    RealEstateProperty,
    RSURestrictedStock,
    StockHolding,
)


E = TypeVar("E", bound=PFSEntity)


# =============================================================================
# RESULT MODELS
# =============================================================================

class PropertyMetrics(CamelModel):
    """On-demand underwriting metrics for one property."""

    ltv: Amount
    noi: Amount
    dscr: Amount = Field(
        ...,
        description="Decimal('Infinity') when the property carries no debt service"
    )


class RealEstatePortfolioSync(CamelModel):
    properties: list[RealEstateProperty]
    total_value: Amount
    total_equity: Amount
    total_mortgages: Amount
    average_ltv: Amount = Field(..., alias="averageLTV")
    total_noi: Amount = Field(..., alias="totalNOI")
    average_dscr: Amount = Field(..., alias="averageDSCR")


class InvestmentPortfolioSync(CamelModel):
    accounts: list[InvestmentAccount]
    total_value: Amount


class BusinessPortfolioSync(CamelModel):
    entities: list[BusinessEntity]
    total_equity: Amount


class EntityBundle(CamelModel):
    """
    A partial bag of entity collections.

    None means "not supplied", which is different from an empty list.
    """

    real_estate: Optional[list[RealEstateProperty]] = None
    bank_accounts: Optional[list[BankAccount]] = None
    investments: Optional[list[InvestmentAccount]] = None
    rsu_restricted_stock: Optional[list[RSURestrictedStock]] = None
    private_equity: Optional[list[PrivateEquity]] = None
    cap_tables: Optional[list[CapTable]] = None
    business_entities: Optional[list[BusinessEntity]] = None
    personal_loans: Optional[list[PersonalLoan]] = None
    credit_lines: Optional[list[CreditLine]] = None
    credit_cards: Optional[list[CreditCard]] = None
    income_sources: Optional[list[IncomeSource]] = None

    def supplied(self) -> set[str]:
        """Names of the collections present in this bundle."""
        return {
            name for name in type(self).model_fields
            if getattr(self, name) is not None
        }


# =============================================================================
# REAL ESTATE
# =============================================================================

def sync_real_estate_property(prop: RealEstateProperty) -> RealEstateProperty:
    """Properties store no derived fields; returned unchanged."""
    return prop


def property_metrics(prop: RealEstateProperty) -> PropertyMetrics:
    return PropertyMetrics(
        ltv=calculate_ltv(prop),
        noi=calculate_noi(prop),
        dscr=calculate_dscr(prop),
    )


def sync_real_estate_portfolio(properties: list[RealEstateProperty]) -> RealEstatePortfolioSync:
    synced = [sync_real_estate_property(p) for p in properties]
    return RealEstatePortfolioSync(
        properties=synced,
        total_value=calculate_total_real_estate_value(synced),
        total_equity=calculate_total_real_estate_equity(synced),
        total_mortgages=calculate_total_mortgage_balance(synced),
        average_ltv=calculate_average_ltv(synced),
        total_noi=calculate_total_noi(synced),
        average_dscr=calculate_average_dscr(synced),
    )


# =============================================================================
# INVESTMENTS
# =============================================================================

def holding_value(holding: StockHolding) -> Decimal:
    """Known position value, else shares at the current price (or cost)."""
    if holding.current_value:
        return holding.current_value
    price = holding.current_price or holding.average_cost
    return holding.shares * price


def sync_investment_account(account: InvestmentAccount) -> InvestmentAccount:
    total_value = sum(
        (holding_value(h) for h in [*account.stocks, *account.etfs]),
        ZERO,
    )
    return account.model_copy(update={"total_value": total_value})


def sync_investment_portfolio(accounts: list[InvestmentAccount]) -> InvestmentPortfolioSync:
    synced = [sync_investment_account(a) for a in accounts]
    return InvestmentPortfolioSync(
        accounts=synced,
        total_value=calculate_total_investment_value(synced),
    )


# =============================================================================
# BUSINESS ENTITIES AND CAP TABLES
# =============================================================================

def sync_business_entity(entity: BusinessEntity) -> BusinessEntity:
    total_assets = sum((a.value for a in entity.assets), ZERO)
    total_liabilities = sum((liability.balance for liability in entity.liabilities), ZERO)
    return entity.model_copy(
        update={
            "total_assets": total_assets,
            "total_liabilities": total_liabilities,
            "net_equity": total_assets - total_liabilities,
        }
    )


def sync_business_portfolio(entities: list[BusinessEntity]) -> BusinessPortfolioSync:
    synced = [sync_business_entity(e) for e in entities]
    return BusinessPortfolioSync(
        entities=synced,
        total_equity=calculate_total_business_equity(synced),
    )


def sync_cap_table(cap_table: CapTable) -> CapTable:
    """Value of the stake: shares_owned / total_shares * valuation."""
    if not cap_table.total_shares or not cap_table.valuation:
        current_value = ZERO
    else:
        current_value = cap_table.shares_owned / cap_table.total_shares * cap_table.valuation
    return cap_table.model_copy(update={"current_value": current_value})


def sync_cap_tables(cap_tables: list[CapTable]) -> list[CapTable]:
    return [sync_cap_table(c) for c in cap_tables]


# =============================================================================
# CREDIT AND INCOME
# =============================================================================

def sync_credit_line(line: CreditLine) -> CreditLine:
    return line.model_copy(
        update={"available_credit": line.credit_limit - line.current_balance}
    )


def sync_credit_lines(lines: list[CreditLine]) -> list[CreditLine]:
    return [sync_credit_line(line) for line in lines]


def sync_credit_card(card: CreditCard) -> CreditCard:
    return card.model_copy(
        update={"available_credit": card.credit_limit - card.current_balance}
    )


def sync_credit_cards(cards: list[CreditCard]) -> list[CreditCard]:
    return [sync_credit_card(card) for card in cards]


def sync_income_source(source: IncomeSource) -> IncomeSource:
    return source.model_copy(
        update={"annual_amount": source.monthly_amount * MONTHS_PER_YEAR}
    )


def sync_income_sources(sources: list[IncomeSource]) -> list[IncomeSource]:
    return [sync_income_source(s) for s in sources]


# =============================================================================
# DISPATCH
# =============================================================================

_ENTITY_SYNCERS: dict[type, Callable[[Any], Any]] = {
    RealEstateProperty: sync_real_estate_property,
    InvestmentAccount: sync_investment_account,
    BusinessEntity: sync_business_entity,
    CapTable: sync_cap_table,
    CreditLine: sync_credit_line,
    CreditCard: sync_credit_card,
    IncomeSource: sync_income_source,
}


def sync_entity(entity: E) -> E:
    """
    Recompute the derived fields of any entity.

    Entities without derived fields are returned unchanged.
    """
    syncer = _ENTITY_SYNCERS.get(type(entity))
    if syncer is None:
        return entity
    return syncer(entity)


def sync_all_entities(bundle: Union[EntityBundle, Mapping[str, Any]]) -> EntityBundle:
    """
    Sync every entity in a partial bundle.

    Returns a bundle with exactly the same collections supplied; missing
    collections stay missing rather than becoming empty lists.
    """
    if not isinstance(bundle, EntityBundle):
        bundle = EntityBundle.model_validate(bundle)

    synced = {}
    if bundle.real_estate is not None:
        synced["real_estate"] = sync_real_estate_portfolio(bundle.real_estate).properties
    if bundle.investments is not None:
        synced["investments"] = sync_investment_portfolio(bundle.investments).accounts
    if bundle.business_entities is not None:
        synced["business_entities"] = sync_business_portfolio(bundle.business_entities).entities
    if bundle.cap_tables is not None:
        synced["cap_tables"] = sync_cap_tables(bundle.cap_tables)
    if bundle.credit_lines is not None:
        synced["credit_lines"] = sync_credit_lines(bundle.credit_lines)
    if bundle.credit_cards is not None:
        synced["credit_cards"] = sync_credit_cards(bundle.credit_cards)
    if bundle.income_sources is not None:
        synced["income_sources"] = sync_income_sources(bundle.income_sources)

    return bundle.model_copy(update=synced)
