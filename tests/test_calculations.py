"""
Tests for the calculation engine.

All functions are pure: entity collections in, Decimals out.
"""

from decimal import Decimal

import pytest

from pfs_engine.calculations import (
    calculate_average_dscr,
    calculate_average_ltv,
    calculate_debt_to_asset_ratio,
    calculate_dscr,
    calculate_ltv,
    calculate_net_worth,
    calculate_noi,
    calculate_pfs_summaries,
    calculate_total_annual_income,
    calculate_total_assets,
    calculate_total_business_equity,
    calculate_total_investment_value,
    calculate_total_liabilities,
    calculate_total_monthly_income,
    calculate_total_mortgage_balance,
    calculate_total_private_equity_value,
    calculate_total_real_estate_equity,
    calculate_total_real_estate_value,
    calculate_total_rsu_value,
)
from pfs_engine.models.entities import (
    BankAccount,
    BusinessEntity,
    CreditCard,
    IncomeSource,
    InvestmentAccount,
    OwnerShare,
    PersonalLoan,
    PrivateEquity,
    RealEstateProperty,
    RSURestrictedStock,
)


class TestRealEstate:
    """Tests for real estate totals and underwriting metrics."""

    def test_two_property_scenario(self, make_property):
        """Test value, mortgage and equity totals for two owned properties."""
        properties = [
            make_property(market_value="500000", principal="300000"),
            make_property(market_value="300000", principal="100000"),
        ]
        assert calculate_total_real_estate_value(properties) == Decimal("800000")
        assert calculate_total_mortgage_balance(properties) == Decimal("400000")
        assert calculate_total_real_estate_equity(properties) == Decimal("400000")

    def test_value_weighted_by_ownership(self, make_property):
        """Test that a 50% owner counts half the market value."""
        prop = make_property(market_value="400000", ownership="50")
        assert calculate_total_real_estate_value([prop]) == Decimal("200000")

    def test_ownership_over_100_is_trusted(self, make_property):
        """Test that the engine multiplies whatever shares it is given."""
        prop = make_property(market_value="100000", principal=None)
        prop = prop.model_copy(update={"owners": [
            OwnerShare(owner_id="a", ownership_percentage=Decimal("80")),
            OwnerShare(owner_id="b", ownership_percentage=Decimal("80")),
        ]})
        assert calculate_total_real_estate_value([prop]) == Decimal("160000")

    def test_no_owners_counts_nothing(self):
        """Test that a property without owner shares has zero weighted value."""
        prop = RealEstateProperty(address="1 Main St", market_value=Decimal("100000"))
        assert calculate_total_real_estate_value([prop]) == Decimal("0")

    def test_ltv(self, make_property):
        """Test loan-to-value as a percentage."""
        prop = make_property(market_value="500000", principal="300000")
        assert calculate_ltv(prop) == Decimal("60")

    @pytest.mark.parametrize("market_value", ["0", None])
    def test_ltv_without_market_value_is_zero(self, make_property, market_value):
        """Test that LTV is exactly 0, never a division error."""
        prop = make_property(market_value=market_value, principal="300000")
        ltv = calculate_ltv(prop)
        assert ltv == 0
        assert ltv.is_finite()

    def test_average_ltv(self, make_property):
        """Test the mean LTV."""
        properties = [
            make_property(market_value="100000", principal="50000"),
            make_property(market_value="100000", principal="70000"),
        ]
        assert calculate_average_ltv(properties) == Decimal("60")

    def test_noi(self, make_property):
        """Test annualized NOI with missing values treated as 0."""
        prop = make_property(monthly_income=Decimal("3000"), monthly_expenses=Decimal("1000"))
        assert calculate_noi(prop) == Decimal("24000")
        assert calculate_noi(make_property()) == Decimal("0")

    def test_dscr(self, make_property):
        """Test NOI over annual debt service."""
        prop = make_property(
            monthly_payment="1000",
            monthly_income=Decimal("3000"),
            monthly_expenses=Decimal("1000"),
        )
        assert calculate_dscr(prop) == Decimal("2")

    def test_dscr_without_debt_service_is_infinite(self, make_property):
        """Test that zero debt service gives unbounded coverage."""
        prop = make_property(monthly_payment="0", monthly_income=Decimal("3000"))
        assert not calculate_dscr(prop).is_finite()

    def test_average_dscr_excludes_infinite(self, make_property):
        """Test that unbounded coverage is left out of the average."""
        financed = make_property(monthly_payment="1000", monthly_income=Decimal("3000"))
        debt_free = make_property(monthly_payment="0", monthly_income=Decimal("3000"))
        assert calculate_average_dscr([financed, debt_free]) == Decimal("3")

    def test_average_dscr_all_infinite_is_zero(self, make_property):
        """Test that the average is 0 when no DSCR is finite."""
        debt_free = make_property(monthly_payment="0")
        average = calculate_average_dscr([debt_free])
        assert average == 0
        assert average.is_finite()


class TestAssetsAndLiabilities:
    """Tests for the other asset and liability totals."""

    def test_investment_value_uses_synced_total(self):
        """Test ownership-weighted investment value."""
        account = InvestmentAccount(
            account_name="Brokerage",
            total_value=Decimal("1000"),
            owners=[OwnerShare(owner_id="a", ownership_percentage=Decimal("100"))],
        )
        assert calculate_total_investment_value([account]) == Decimal("1000")

    def test_rsu_counts_vested_shares_only(self):
        """Test per-share value times vested shares."""
        rsu = RSURestrictedStock(
            company_name="Acme",
            shares=Decimal("100"),
            vested_shares=Decimal("40"),
            current_value=Decimal("25"),
        )
        assert calculate_total_rsu_value([rsu]) == Decimal("1000")

    def test_private_equity_falls_back_to_invested(self):
        """Test unmarked holdings count at cost."""
        marked = PrivateEquity(fund_name="A", invested_amount=Decimal("100"), current_value=Decimal("150"))
        unmarked = PrivateEquity(fund_name="B", invested_amount=Decimal("200"))
        assert calculate_total_private_equity_value([marked, unmarked]) == Decimal("350")

    def test_business_equity_weighted(self):
        """Test net line totals times ownership percentage."""
        entity = BusinessEntity(
            business_name="Acme LLC",
            total_assets=Decimal("1000"),
            total_liabilities=Decimal("400"),
            ownership_percentage=Decimal("50"),
        )
        assert calculate_total_business_equity([entity]) == Decimal("300")

    def test_totals(self, make_property):
        """Test total assets and liabilities across classes."""
        prop = make_property(market_value="500000", principal="300000")
        bank = BankAccount(bank_name="Chase", balance=Decimal("20000"))
        loan = PersonalLoan(lender="SoFi", current_balance=Decimal("5000"))
        card = CreditCard(issuer="Amex", credit_limit=Decimal("10000"), current_balance=Decimal("1000"))

        assert calculate_total_assets([prop], [bank]) == Decimal("520000")
        assert calculate_total_liabilities([prop], [loan], [], [card]) == Decimal("306000")


class TestIncomeAndRatios:
    """Tests for income totals and headline ratios."""

    def test_monthly_income_counts_recurring_only(self):
        """Test that one-off income is excluded from monthly income."""
        salary = IncomeSource(source_name="Acme", monthly_amount=Decimal("5000"), annual_amount=Decimal("60000"))
        bonus = IncomeSource(
            source_name="Bonus",
            monthly_amount=Decimal("1000"),
            annual_amount=Decimal("12000"),
            is_recurring=False,
        )
        assert calculate_total_monthly_income([salary, bonus]) == Decimal("5000")
        assert calculate_total_annual_income([salary, bonus]) == Decimal("72000")

    def test_net_worth(self):
        """Test assets minus liabilities."""
        assert calculate_net_worth(Decimal("100"), Decimal("30")) == Decimal("70")

    def test_debt_to_asset_ratio(self):
        """Test ratio as a percentage, 0 when there are no assets."""
        assert calculate_debt_to_asset_ratio(Decimal("25"), Decimal("100")) == Decimal("25")
        assert calculate_debt_to_asset_ratio(Decimal("25"), Decimal("0")) == Decimal("0")


class TestSummaries:
    """Tests for calculate_pfs_summaries."""

    def test_empty_portfolio(self):
        """Test that no data gives all-zero summaries."""
        summaries = calculate_pfs_summaries()
        assert all(value == 0 for value in summaries.metrics().values())

    def test_summaries_consistent_with_components(self, make_property):
        """Test that the summary composes the individual functions."""
        properties = [make_property(market_value="500000", principal="300000", monthly_payment="2000")]
        bank = [BankAccount(bank_name="Chase", balance=Decimal("100000"))]
        loans = [PersonalLoan(lender="SoFi", current_balance=Decimal("20000"))]

        summaries = calculate_pfs_summaries(
            real_estate=properties,
            bank_accounts=bank,
            personal_loans=loans,
        )

        assert summaries.total_assets == Decimal("600000")
        assert summaries.total_liabilities == Decimal("320000")
        assert summaries.total_debt == summaries.total_liabilities
        assert summaries.net_worth == Decimal("280000")
        assert summaries.liquidity == Decimal("100000")
        assert summaries.total_real_estate_equity == Decimal("200000")
        assert summaries.average_ltv == Decimal("60")
        assert summaries.debt_to_asset_ratio == (
            Decimal("320000") / Decimal("600000") * Decimal("100")
        )

    def test_summaries_have_no_infinite_values(self, make_property):
        """Test that a debt-free property never leaks Infinity into the summary."""
        summaries = calculate_pfs_summaries(real_estate=[make_property(principal=None)])
        assert all(value.is_finite() for value in summaries.metrics().values())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
