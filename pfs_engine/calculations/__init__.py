"""Pure financial calculations over entity collections."""

from pfs_engine.calculations.engine import (
    HUNDRED,
    MONTHS_PER_YEAR,
    INFINITE_COVERAGE,
    calculate_property_mortgage_balance,
    calculate_annual_debt_service,
    calculate_total_real_estate_value,
    calculate_total_mortgage_balance,
    calculate_total_real_estate_equity,
    calculate_ltv,
    calculate_average_ltv,
    calculate_noi,
    calculate_total_noi,
    calculate_dscr,
    calculate_average_dscr,
    calculate_total_bank_balance,
    calculate_total_investment_value,
    calculate_total_rsu_value,
    calculate_total_private_equity_value,
    calculate_total_cap_table_value,
    calculate_total_business_equity,
    calculate_total_assets,
    calculate_total_personal_loan_balance,
    calculate_total_credit_line_balance,
    calculate_total_credit_card_balance,
    calculate_total_liabilities,
    calculate_total_monthly_income,
    calculate_total_annual_income,
    calculate_net_worth,
    calculate_debt_to_asset_ratio,
    calculate_liquidity,
    calculate_pfs_summaries,
)

__all__ = [
    "HUNDRED",
    "MONTHS_PER_YEAR",
    "INFINITE_COVERAGE",
    "calculate_property_mortgage_balance",
    "calculate_annual_debt_service",
    "calculate_total_real_estate_value",
    "calculate_total_mortgage_balance",
    "calculate_total_real_estate_equity",
    "calculate_ltv",
    "calculate_average_ltv",
    "calculate_noi",
    "calculate_total_noi",
    "calculate_dscr",
    "calculate_average_dscr",
    "calculate_total_bank_balance",
    "calculate_total_investment_value",
    "calculate_total_rsu_value",
    "calculate_total_private_equity_value",
    "calculate_total_cap_table_value",
    "calculate_total_business_equity",
    "calculate_total_assets",
    "calculate_total_personal_loan_balance",
    "calculate_total_credit_line_balance",
    "calculate_total_credit_card_balance",
    "calculate_total_liabilities",
    "calculate_total_monthly_income",
    "calculate_total_annual_income",
    "calculate_net_worth",
    "calculate_debt_to_asset_ratio",
    "calculate_liquidity",
    "calculate_pfs_summaries",
]
