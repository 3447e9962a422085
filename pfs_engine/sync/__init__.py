"""Derived-field synchronization for entities and portfolios."""

from pfs_engine.sync.engine import (
    BusinessPortfolioSync,
    EntityBundle,
    InvestmentPortfolioSync,
    PropertyMetrics,
    RealEstatePortfolioSync,
    holding_value,
    property_metrics,
    sync_all_entities,
    sync_business_entity,
    sync_business_portfolio,
    sync_cap_table,
    sync_cap_tables,
    sync_credit_card,
    sync_credit_cards,
    sync_credit_line,
    sync_credit_lines,
    sync_entity,
    sync_income_source,
    sync_income_sources,
    sync_investment_account,
    sync_investment_portfolio,
    sync_real_estate_portfolio,
    sync_real_estate_property,
)

__all__ = [
    "BusinessPortfolioSync",
    "EntityBundle",
    "InvestmentPortfolioSync",
    "PropertyMetrics",
    "RealEstatePortfolioSync",
    "holding_value",
    "property_metrics",
    "sync_all_entities",
    "sync_business_entity",
    "sync_business_portfolio",
    "sync_cap_table",
    "sync_cap_tables",
    "sync_credit_card",
    "sync_credit_cards",
    "sync_credit_line",
    "sync_credit_lines",
    "sync_entity",
    "sync_income_source",
    "sync_income_sources",
    "sync_investment_account",
    "sync_investment_portfolio",
    "sync_real_estate_portfolio",
    "sync_real_estate_property",
]
