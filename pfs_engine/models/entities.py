"""
Domain Entities for the Personal Financial Statement

Each entity is one financial fact about the subject: a property, an account,
a loan, an income stream. Entities carry two kinds of fields:

- primitive fields, entered by the user
- derived fields (listed in `derived_fields`), written only by the
  synchronization engine and never accepted from a user patch

UNITS:
- Money is a Decimal in the account currency.
- Interest rates are decimals (0.05 == 5%).
- Ownership percentages are whole percentages (0-100).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from pfs_engine.models.base import (
    ZERO,
    Amount,
    CamelModel,
    PFSEntity,
    new_entity_id,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class PropertyType(str, Enum):
    RESIDENTIAL = "Residential"
    COMMERCIAL = "Commercial"
    LAND = "Land"
    MIXED_USE = "Mixed Use"
    OTHER = "Other"


class OwnershipStructure(str, Enum):
    """Whether a property is held personally or through a business entity."""
    PERSONAL = "Personal"
    ENTITY = "Entity"


class BankAccountType(str, Enum):
    CHECKING = "Checking"
    SAVINGS = "Savings"
    MONEY_MARKET = "Money Market"
    CD = "CD"
    OTHER = "Other"


class InvestmentAccountType(str, Enum):
    BROKERAGE = "Brokerage"
    IRA = "IRA"
    FOUR_OH_ONE_K = "401k"
    ROTH_IRA = "Roth IRA"
    OTHER = "Other"


class BusinessEntityType(str, Enum):
    LLC = "LLC"
    CORPORATION = "Corporation"
    PARTNERSHIP = "Partnership"
    SOLE_PROPRIETORSHIP = "Sole Proprietorship"
    OTHER = "Other"


class LoanType(str, Enum):
    PERSONAL = "Personal Loan"
    AUTO = "Auto Loan"
    STUDENT = "Student Loan"
    OTHER = "Other"


class IncomeSourceType(str, Enum):
    SALARY = "Salary"
    RENTAL = "Rental"
    DISTRIBUTION = "Distribution"
    DIVIDEND = "Dividend"
    INTEREST = "Interest"
    OTHER = "Other"


# =============================================================================
# EMBEDDED LINE ITEMS - not versioned on their own
# =============================================================================

class OwnerShare(CamelModel):
    """One owner's share of a jointly held asset."""

    owner_id: str = Field(
        ...,
        description="Identifier of the owner"
    )
    owner_name: str = Field(
        default="",
        description="Display name of the owner"
    )
    ownership_percentage: Amount = Field(
        ...,
        description="Share of the asset owned, 0-100"
    )


class Mortgage(CamelModel):
    """
    A mortgage secured by a property.

    Mortgages are embedded in their property; mutating one is a mutation
    of the property.
    """

    id: str = Field(default_factory=new_entity_id)
    lender: str = Field(
        default="",
        description="Lending institution"
    )
    principal_balance: Amount = Field(
        default=ZERO,
        description="Outstanding principal"
    )
    interest_rate: Optional[Amount] = Field(
        default=None,
        description="Annual rate as a decimal (0.05 == 5%)"
    )
    monthly_payment: Amount = Field(
        default=ZERO,
        description="Scheduled monthly payment (principal + interest)"
    )
    term_months: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[date] = None
    maturity_date: Optional[date] = None
    property_id: Optional[str] = Field(
        default=None,
        description="Back-reference to the owning property"
    )


class StockHolding(CamelModel):
    """A stock or ETF position inside an investment account."""

    symbol: str = Field(
        ...,
        min_length=1,
        max_length=20,
        description="Ticker symbol"
    )
    shares: Decimal = Field(
        default=ZERO,
        ge=0,
        description="Number of shares held"
    )
    average_cost: Amount = Field(
        default=ZERO,
        description="Average cost basis per share"
    )
    current_price: Optional[Amount] = Field(
        default=None,
        description="Last known price per share"
    )
    current_value: Optional[Amount] = Field(
        default=None,
        description="Position value, if known directly"
    )

    @field_validator("symbol")
    @classmethod
    def uppercase_symbol(cls, v: str) -> str:
        return v.upper()


class BusinessAsset(CamelModel):
    id: str = Field(default_factory=new_entity_id)
    description: str = ""
    value: Amount = ZERO
    category: Optional[str] = None


class BusinessLiability(CamelModel):
    id: str = Field(default_factory=new_entity_id)
    description: str = ""
    balance: Amount = ZERO
    category: Optional[str] = None


class PostalAddress(CamelModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


# =============================================================================
# VERSIONED ENTITIES
# =============================================================================

class PersonalInfo(PFSEntity):
    """Identity of the statement's subject. One per subject."""

    table_name = "PersonalInfo"

    name: str = Field(
        default="",
        max_length=200,
        description="Full legal name"
    )
    date_of_birth: Optional[date] = None
    address: Optional[PostalAddress] = None
    ssn: Optional[str] = Field(
        default=None,
        repr=False,
        description="Social security number (never logged)"
    )
    email: Optional[str] = None
    phone: Optional[str] = None


class RealEstateProperty(PFSEntity):
    """
    A real estate holding with its mortgages and owners.

    LTV, NOI and DSCR are not stored here; they are computed on demand
    (see pfs_engine.sync.property_metrics).
    """

    table_name = "Properties"

    address: str = Field(
        ...,
        description="Street address of the property"
    )
    property_type: PropertyType = Field(default=PropertyType.RESIDENTIAL)
    acquisition_date: Optional[date] = None
    purchase_price: Optional[Amount] = None
    market_value: Optional[Amount] = Field(
        default=None,
        description="Current estimated market value"
    )
    mortgages: list[Mortgage] = Field(default_factory=list)
    monthly_income: Optional[Amount] = Field(
        default=None,
        description="Gross monthly rental income"
    )
    monthly_expenses: Optional[Amount] = Field(
        default=None,
        description="Monthly operating expenses (excluding debt service)"
    )
    ownership_structure: OwnershipStructure = Field(
        default=OwnershipStructure.PERSONAL
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Holding business entity when ownership_structure is Entity"
    )
    owners: list[OwnerShare] = Field(default_factory=list)
    notes: Optional[str] = None


class BankAccount(PFSEntity):
    table_name = "BankAccounts"

    bank_name: str = Field(..., description="Name of the bank")
    account_type: BankAccountType = Field(default=BankAccountType.CHECKING)
    account_number: Optional[str] = Field(
        default=None,
        repr=False,
        description="Account number (masked in UI)"
    )
    balance: Amount = Field(default=ZERO, description="Current balance")
    is_joint: bool = False
    joint_owners: list[str] = Field(default_factory=list)
    interest_rate: Optional[Amount] = Field(
        default=None,
        description="Annual rate as a decimal"
    )
    notes: Optional[str] = None


class InvestmentAccount(PFSEntity):
    """Brokerage or retirement account. total_value is derived from holdings."""

    table_name = "Investments"
    derived_fields = frozenset({"total_value"})

    account_name: str = Field(..., description="Account nickname")
    account_type: InvestmentAccountType = Field(
        default=InvestmentAccountType.BROKERAGE
    )
    custodian: str = Field(default="", description="Custodian institution")
    stocks: list[StockHolding] = Field(default_factory=list)
    etfs: list[StockHolding] = Field(default_factory=list)
    total_value: Amount = Field(
        default=ZERO,
        description="Sum of holding values (derived)"
    )
    owners: list[OwnerShare] = Field(default_factory=list)
    notes: Optional[str] = None


class RSURestrictedStock(PFSEntity):
    table_name = "RSUs"

    company_name: str = Field(..., description="Issuing company")
    grant_date: Optional[date] = None
    vesting_date: Optional[date] = None
    shares: Decimal = Field(default=ZERO, ge=0, description="Shares granted")
    strike_price: Optional[Amount] = None
    current_value: Optional[Amount] = Field(
        default=None,
        description="Current value per share"
    )
    vested_shares: Decimal = Field(default=ZERO, ge=0)


class PrivateEquity(PFSEntity):
    table_name = "PrivateEquity"

    fund_name: str = Field(..., description="Fund or deal name")
    commitment_amount: Amount = ZERO
    invested_amount: Amount = ZERO
    current_value: Optional[Amount] = Field(
        default=None,
        description="Latest mark; falls back to invested_amount when absent"
    )
    ownership_percentage: Optional[Amount] = None


class CapTable(PFSEntity):
    """Equity stake in a private company. current_value is derived."""

    table_name = "CapTables"
    derived_fields = frozenset({"current_value"})

    company_name: str = Field(..., description="Company name")
    ownership_percentage: Optional[Amount] = None
    shares_owned: Decimal = Field(default=ZERO, ge=0)
    total_shares: Decimal = Field(default=ZERO, ge=0)
    valuation: Optional[Amount] = Field(
        default=None,
        description="Latest company valuation"
    )
    current_value: Amount = Field(
        default=ZERO,
        description="shares_owned / total_shares * valuation (derived)"
    )


class BusinessEntity(PFSEntity):
    """An operating business. Totals and net equity are derived from lines."""

    table_name = "BusinessEntities"
    derived_fields = frozenset({"total_assets", "total_liabilities", "net_equity"})

    business_name: str = Field(..., description="Legal business name")
    ein: Optional[str] = Field(
        default=None,
        description="Employer identification number (XX-XXXXXXX)"
    )
    entity_type: BusinessEntityType = Field(default=BusinessEntityType.LLC)
    ownership_percentage: Amount = Field(
        default=Decimal("100"),
        description="Subject's share of the business, 0-100"
    )
    assets: list[BusinessAsset] = Field(default_factory=list)
    liabilities: list[BusinessLiability] = Field(default_factory=list)
    total_assets: Amount = ZERO
    total_liabilities: Amount = ZERO
    net_equity: Amount = ZERO
    notes: Optional[str] = None


class PersonalLoan(PFSEntity):
    table_name = "PersonalLoans"

    lender: str = Field(..., description="Lending institution")
    loan_type: LoanType = Field(default=LoanType.PERSONAL)
    original_balance: Amount = ZERO
    current_balance: Amount = ZERO
    interest_rate: Optional[Amount] = None
    monthly_payment: Amount = ZERO
    term_months: Optional[int] = Field(default=None, ge=0)
    maturity_date: Optional[date] = None
    is_secured: bool = False
    collateral: Optional[str] = None
    notes: Optional[str] = None


class CreditLine(PFSEntity):
    table_name = "CreditLines"
    derived_fields = frozenset({"available_credit"})

    institution: str = Field(..., description="Issuing institution")
    credit_limit: Amount = ZERO
    current_balance: Amount = ZERO
    available_credit: Amount = Field(
        default=ZERO,
        description="credit_limit - current_balance (derived)"
    )
    interest_rate: Optional[Amount] = None
    is_business: bool = False
    notes: Optional[str] = None


class CreditCard(PFSEntity):
    table_name = "CreditCards"
    derived_fields = frozenset({"available_credit"})

    issuer: str = Field(..., description="Card issuer")
    card_name: str = Field(default="", description="Product name")
    credit_limit: Amount = ZERO
    current_balance: Amount = ZERO
    available_credit: Amount = Field(
        default=ZERO,
        description="credit_limit - current_balance (derived)"
    )
    interest_rate: Optional[Amount] = None
    is_business: bool = False
    notes: Optional[str] = None


class IncomeSource(PFSEntity):
    table_name = "IncomeSources"
    derived_fields = frozenset({"annual_amount"})

    source_type: IncomeSourceType = Field(default=IncomeSourceType.SALARY)
    source_name: str = Field(..., description="Employer, tenant, fund, ...")
    monthly_amount: Amount = ZERO
    annual_amount: Amount = Field(
        default=ZERO,
        description="monthly_amount * 12 (derived)"
    )
    is_recurring: bool = True
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None
