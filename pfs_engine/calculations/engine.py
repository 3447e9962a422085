"""
PFS Calculation Engine

Pure, deterministic functions mapping entity collections to financial
metrics. No I/O, no mutation, no state.

CRITICAL: calculate_pfs_summaries is the single source of truth for
the numbers shown anywhere in the system. Display, export and
comparison surfaces derive from its result; they never re-total
entities themselves.

CONVENTIONS:
- Every value is a Decimal; missing optional amounts count as 0.
- Ratios (LTV, debt-to-asset) are percentages, 0-100.
- Division by zero is never an error: LTV and debt-to-asset fall back
  to 0, DSCR to Decimal("Infinity").
- Ownership percentages are trusted as given. Shares that add up to
  more than 100% are multiplied through without complaint.
"""

from decimal import Decimal
from typing import Iterable, Optional, Sequence

from pfs_engine.models.base import ZERO
from pfs_engine.models.entities import (
    BankAccount,
    BusinessEntity,
    CapTable,
    CreditCard,
    CreditLine,
    IncomeSource,
    InvestmentAccount,
    OwnerShare,
    PersonalLoan,
    PrivateEquity,
    RealEstateProperty,
    RSURestrictedStock,
)
from pfs_engine.models.pfs import PFSSummaries


HUNDRED = Decimal("100")
MONTHS_PER_YEAR = Decimal("12")
INFINITE_COVERAGE = Decimal("Infinity")


def _or_zero(value: Optional[Decimal]) -> Decimal:
    return value if value is not None else ZERO


def _ownership_weight(owners: Iterable[OwnerShare]) -> Decimal:
    """Combined owner share as a fraction (100% -> 1)."""
    return sum((owner.ownership_percentage for owner in owners), ZERO) / HUNDRED


def _mean(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return sum(values, ZERO) / len(values)


# =============================================================================
# REAL ESTATE
# =============================================================================

def calculate_property_mortgage_balance(prop: RealEstateProperty) -> Decimal:
    return sum((m.principal_balance for m in prop.mortgages), ZERO)


def calculate_annual_debt_service(prop: RealEstateProperty) -> Decimal:
    return sum(
        (m.monthly_payment * MONTHS_PER_YEAR for m in prop.mortgages),
        ZERO,
    )


def calculate_total_real_estate_value(properties: Iterable[RealEstateProperty]) -> Decimal:
    """Market value of each property weighted by the combined owner share."""
    return sum(
        (_or_zero(p.market_value) * _ownership_weight(p.owners) for p in properties),
        ZERO,
    )


def calculate_total_mortgage_balance(properties: Iterable[RealEstateProperty]) -> Decimal:
    """Sum of principal balances. Not ownership-weighted."""
    return sum((calculate_property_mortgage_balance(p) for p in properties), ZERO)


def calculate_total_real_estate_equity(properties: Sequence[RealEstateProperty]) -> Decimal:
    return (
        calculate_total_real_estate_value(properties)
        - calculate_total_mortgage_balance(properties)
    )


def calculate_ltv(prop: RealEstateProperty) -> Decimal:
    """
    Loan-to-value ratio as a percentage.

    Returns exactly 0 when the market value is 0 or unknown.
    """
    if not prop.market_value:
        return ZERO
    return calculate_property_mortgage_balance(prop) / prop.market_value * HUNDRED


def calculate_average_ltv(properties: Sequence[RealEstateProperty]) -> Decimal:
    return _mean([calculate_ltv(p) for p in properties])


def calculate_noi(prop: RealEstateProperty) -> Decimal:
    """Annualized net operating income."""
    income = _or_zero(prop.monthly_income)
    expenses = _or_zero(prop.monthly_expenses)
    return (income - expenses) * MONTHS_PER_YEAR


def calculate_total_noi(properties: Iterable[RealEstateProperty]) -> Decimal:
    return sum((calculate_noi(p) for p in properties), ZERO)


def calculate_dscr(prop: RealEstateProperty) -> Decimal:
    """
    Debt service coverage ratio: NOI / annual debt service.

    A property with no debt service has unbounded coverage and returns
    Decimal("Infinity"); check with .is_finite() before doing arithmetic.
    """
    annual_debt_service = calculate_annual_debt_service(prop)
    if annual_debt_service == 0:
        return INFINITE_COVERAGE
    return calculate_noi(prop) / annual_debt_service


def calculate_average_dscr(properties: Sequence[RealEstateProperty]) -> Decimal:
    """Mean of the finite DSCRs. 0 when there are none."""
    finite = [d for d in (calculate_dscr(p) for p in properties) if d.is_finite()]
    return _mean(finite)


# =============================================================================
# ASSETS
# =============================================================================

def calculate_total_bank_balance(accounts: Iterable[BankAccount]) -> Decimal:
    return sum((a.balance for a in accounts), ZERO)


def calculate_total_investment_value(accounts: Iterable[InvestmentAccount]) -> Decimal:
    """Synced total_value of each account weighted by the combined owner share."""
    return sum(
        (a.total_value * _ownership_weight(a.owners) for a in accounts),
        ZERO,
    )


def calculate_total_rsu_value(rsus: Iterable[RSURestrictedStock]) -> Decimal:
    """Per-share value times vested shares. Unvested shares are not counted."""
    return sum((_or_zero(r.current_value) * r.vested_shares for r in rsus), ZERO)


def calculate_total_private_equity_value(holdings: Iterable[PrivateEquity]) -> Decimal:
    """Latest mark, falling back to the invested amount when unmarked."""
    return sum(
        (pe.current_value or pe.invested_amount for pe in holdings),
        ZERO,
    )


def calculate_total_cap_table_value(cap_tables: Iterable[CapTable]) -> Decimal:
    return sum((c.current_value for c in cap_tables), ZERO)


def calculate_total_business_equity(entities: Iterable[BusinessEntity]) -> Decimal:
    return sum(
        (
            (e.total_assets - e.total_liabilities) * e.ownership_percentage / HUNDRED
            for e in entities
        ),
        ZERO,
    )


def calculate_total_assets(
    real_estate: Sequence[RealEstateProperty] = (),
    bank_accounts: Sequence[BankAccount] = (),
    investments: Sequence[InvestmentAccount] = (),
    rsus: Sequence[RSURestrictedStock] = (),
    private_equity: Sequence[PrivateEquity] = (),
    cap_tables: Sequence[CapTable] = (),
    business_entities: Sequence[BusinessEntity] = (),
) -> Decimal:
    return (
        calculate_total_real_estate_value(real_estate)
        + calculate_total_bank_balance(bank_accounts)
        + calculate_total_investment_value(investments)
        + calculate_total_rsu_value(rsus)
        + calculate_total_private_equity_value(private_equity)
        + calculate_total_cap_table_value(cap_tables)
        + calculate_total_business_equity(business_entities)
    )


# =============================================================================
# LIABILITIES
# =============================================================================

def calculate_total_personal_loan_balance(loans: Iterable[PersonalLoan]) -> Decimal:
    return sum((loan.current_balance for loan in loans), ZERO)


def calculate_total_credit_line_balance(lines: Iterable[CreditLine]) -> Decimal:
    return sum((line.current_balance for line in lines), ZERO)


def calculate_total_credit_card_balance(cards: Iterable[CreditCard]) -> Decimal:
    return sum((card.current_balance for card in cards), ZERO)


def calculate_total_liabilities(
    real_estate: Sequence[RealEstateProperty] = (),
    personal_loans: Sequence[PersonalLoan] = (),
    credit_lines: Sequence[CreditLine] = (),
    credit_cards: Sequence[CreditCard] = (),
) -> Decimal:
    return (
        calculate_total_mortgage_balance(real_estate)
        + calculate_total_personal_loan_balance(personal_loans)
        + calculate_total_credit_line_balance(credit_lines)
        + calculate_total_credit_card_balance(credit_cards)
    )


# =============================================================================
# INCOME
# =============================================================================

def calculate_total_monthly_income(sources: Iterable[IncomeSource]) -> Decimal:
    """Recurring sources only."""
    return sum((s.monthly_amount for s in sources if s.is_recurring), ZERO)


def calculate_total_annual_income(sources: Iterable[IncomeSource]) -> Decimal:
    """All sources, recurring or not, by their synced annual amount."""
    return sum((s.annual_amount for s in sources), ZERO)


# =============================================================================
# FINANCIAL METRICS
# =============================================================================

def calculate_net_worth(total_assets: Decimal, total_liabilities: Decimal) -> Decimal:
    return total_assets - total_liabilities


def calculate_debt_to_asset_ratio(total_debt: Decimal, total_assets: Decimal) -> Decimal:
    """Percentage of assets financed by debt. 0 when there are no assets."""
    if total_assets == 0:
        return ZERO
    return total_debt / total_assets * HUNDRED


def calculate_liquidity(accounts: Iterable[BankAccount]) -> Decimal:
    """Readily available cash: the bank account total."""
    return calculate_total_bank_balance(accounts)


# =============================================================================
# COMPREHENSIVE SUMMARY
# =============================================================================

def calculate_pfs_summaries(
    real_estate: Sequence[RealEstateProperty] = (),
    bank_accounts: Sequence[BankAccount] = (),
    investments: Sequence[InvestmentAccount] = (),
    rsus: Sequence[RSURestrictedStock] = (),
    private_equity: Sequence[PrivateEquity] = (),
    cap_tables: Sequence[CapTable] = (),
    business_entities: Sequence[BusinessEntity] = (),
    personal_loans: Sequence[PersonalLoan] = (),
    credit_lines: Sequence[CreditLine] = (),
    credit_cards: Sequence[CreditCard] = (),
    income_sources: Sequence[IncomeSource] = (),
) -> PFSSummaries:
    """
    Compute every PFS metric from the eleven entity collections.

    Entities are expected to be synced already (derived fields current);
    the assembler guarantees this.
    """
    total_assets = calculate_total_assets(
        real_estate,
        bank_accounts,
        investments,
        rsus,
        private_equity,
        cap_tables,
        business_entities,
    )
    total_liabilities = calculate_total_liabilities(
        real_estate,
        personal_loans,
        credit_lines,
        credit_cards,
    )
    total_debt = total_liabilities

    return PFSSummaries(
        total_real_estate_value=calculate_total_real_estate_value(real_estate),
        total_real_estate_equity=calculate_total_real_estate_equity(real_estate),
        total_bank_account_balance=calculate_total_bank_balance(bank_accounts),
        total_investment_value=calculate_total_investment_value(investments),
        total_rsu_value=calculate_total_rsu_value(rsus),
        total_private_equity_value=calculate_total_private_equity_value(private_equity),
        total_cap_table_value=calculate_total_cap_table_value(cap_tables),
        total_business_equity=calculate_total_business_equity(business_entities),
        total_assets=total_assets,
        total_mortgage_balance=calculate_total_mortgage_balance(real_estate),
        total_personal_loan_balance=calculate_total_personal_loan_balance(personal_loans),
        total_credit_line_balance=calculate_total_credit_line_balance(credit_lines),
        total_credit_card_balance=calculate_total_credit_card_balance(credit_cards),
        total_liabilities=total_liabilities,
        total_monthly_income=calculate_total_monthly_income(income_sources),
        total_annual_income=calculate_total_annual_income(income_sources),
        net_worth=calculate_net_worth(total_assets, total_liabilities),
        total_debt=total_debt,
        debt_to_asset_ratio=calculate_debt_to_asset_ratio(total_debt, total_assets),
        liquidity=calculate_liquidity(bank_accounts),
        average_ltv=calculate_average_ltv(real_estate),
        total_noi=calculate_total_noi(real_estate),
        average_dscr=calculate_average_dscr(real_estate),
    )
