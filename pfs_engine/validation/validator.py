"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION (pydantic, at model construction):
- Type checking
- Required field presence
- Enum values, non-negative share counts

STAGE 2 - SEMANTIC VALIDATION (this module):
- Required names that are present but blank
- Negative money amounts
- Interest rates outside 0-1
- Ownership shares that do not sum to 100%
- Mortgages exceeding the property's market value
- Balances exceeding their limit or original principal
- EIN format
- Date ranges that end before they start

IMPORTANT: Validation NEVER silently fixes issues.
It reports them. The calculation engine still trusts whatever input it is
given (ownership over 100% is a warning, not an error).
"""

import re
from decimal import Decimal
from typing import Callable, Optional, Union

from pfs_engine.models.base import ZERO, PFSEntity
from pfs_engine.models.entities import (
    BankAccount,
    BusinessEntity,
    CapTable,
    CreditCard,
    CreditLine,
    IncomeSource,
    InvestmentAccount,
    Mortgage,
    OwnerShare,
    PersonalInfo,
    PersonalLoan,
    PrivateEquity,
    RealEstateProperty,
    RSURestrictedStock,
)
from pfs_engine.models.validation import ValidationIssue, ValidationResult


EIN_PATTERN = re.compile(r"^\d{2}-?\d{7}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

FULL_OWNERSHIP = Decimal("100")
OWNERSHIP_TOLERANCE = Decimal("0.01")
MAX_RATE = Decimal("1")


def _required(value: Optional[str], field: str, label: str) -> list[ValidationIssue]:
    if value:
        return []
    return [ValidationIssue(
        field=field,
        issue_type="missing",
        message=f"{label} is required",
        severity="error",
    )]


def _non_negative(value: Optional[Decimal], field: str, label: str) -> list[ValidationIssue]:
    if value is None or value >= ZERO:
        return []
    return [ValidationIssue(
        field=field,
        issue_type="negative",
        message=f"{label} must be at least 0 (got {value})",
        severity="error",
    )]


def _rate(value: Optional[Decimal], field: str, label: str) -> list[ValidationIssue]:
    if value is None or ZERO <= value <= MAX_RATE:
        return []
    return [ValidationIssue(
        field=field,
        issue_type="out_of_range",
        message=f"{label} must be between 0 and 1 (got {value})",
        severity="error",
        suggested_fix="Rates are decimals: enter 5% as 0.05",
    )]


def _percentage(value: Optional[Decimal], field: str, label: str) -> list[ValidationIssue]:
    if value is None or ZERO <= value <= FULL_OWNERSHIP:
        return []
    return [ValidationIssue(
        field=field,
        issue_type="out_of_range",
        message=f"{label} must be between 0 and 100 (got {value})",
        severity="error",
    )]


def validate_owner_shares(owners: list[OwnerShare], field: str = "owners") -> list[ValidationIssue]:
    """
    Ownership shares should sum to 100% with unique owner ids.

    Reported as warnings: the calculation engine weights by whatever
    shares it is given.
    """
    if not owners:
        return []

    issues = []
    total = sum((owner.ownership_percentage for owner in owners), ZERO)
    if abs(total - FULL_OWNERSHIP) > OWNERSHIP_TOLERANCE:
        issues.append(ValidationIssue(
            field=field,
            issue_type="ownership_sum",
            message=f"Total ownership percentage must equal 100% (currently {total}%)",
            severity="warning",
            suggested_fix="Adjust the owner shares so they add up to 100%",
        ))

    owner_ids = [owner.owner_id for owner in owners]
    if len(owner_ids) != len(set(owner_ids)):
        issues.append(ValidationIssue(
            field=field,
            issue_type="duplicate_owner",
            message="Duplicate owner IDs are not allowed",
            severity="warning",
        ))

    for i, owner in enumerate(owners):
        issues.extend(_percentage(
            owner.ownership_percentage,
            f"{field}[{i}].ownership_percentage",
            "Ownership percentage",
        ))

    return issues


def validate_mortgage(mortgage: Mortgage, field: str = "mortgage") -> list[ValidationIssue]:
    issues = []
    issues.extend(_required(mortgage.lender, f"{field}.lender", "Lender"))
    issues.extend(_non_negative(mortgage.principal_balance, f"{field}.principal_balance", "Principal balance"))
    issues.extend(_rate(mortgage.interest_rate, f"{field}.interest_rate", "Interest rate"))
    issues.extend(_non_negative(mortgage.monthly_payment, f"{field}.monthly_payment", "Monthly payment"))
    return issues


def _validate_personal_info(info: PersonalInfo) -> list[ValidationIssue]:
    issues = []
    if info.email and not EMAIL_PATTERN.match(info.email):
        issues.append(ValidationIssue(
            field="email",
            issue_type="invalid_format",
            message="Email must be a valid email address",
            severity="error",
        ))
    return issues


def _validate_property(prop: RealEstateProperty) -> list[ValidationIssue]:
    issues = []
    issues.extend(_required(prop.address, "address", "Address"))
    issues.extend(_non_negative(prop.market_value, "market_value", "Market value"))
    issues.extend(_non_negative(prop.purchase_price, "purchase_price", "Purchase price"))
    issues.extend(_non_negative(prop.monthly_income, "monthly_income", "Monthly income"))
    issues.extend(_non_negative(prop.monthly_expenses, "monthly_expenses", "Monthly expenses"))

    for i, mortgage in enumerate(prop.mortgages):
        issues.extend(validate_mortgage(mortgage, f"mortgages[{i}]"))

    if prop.market_value:
        total_mortgages = sum((m.principal_balance for m in prop.mortgages), ZERO)
        if total_mortgages > prop.market_value:
            issues.append(ValidationIssue(
                field="mortgages",
                issue_type="inconsistent",
                message=(
                    f"Total mortgage balance ({total_mortgages}) cannot exceed "
                    f"market value ({prop.market_value})"
                ),
                severity="error",
                suggested_fix="Check the market value and each mortgage balance",
            ))

    issues.extend(validate_owner_shares(prop.owners))
    return issues


def _validate_bank_account(account: BankAccount) -> list[ValidationIssue]:
    issues = []
    issues.extend(_required(account.bank_name, "bank_name", "Bank name"))
    issues.extend(_rate(account.interest_rate, "interest_rate", "Interest rate"))
    return issues


def _validate_investment_account(account: InvestmentAccount) -> list[ValidationIssue]:
    issues = []
    issues.extend(_required(account.account_name, "account_name", "Account name"))
    if not account.custodian:
        issues.append(ValidationIssue(
            field="custodian",
            issue_type="missing",
            message="Custodian is not set",
            severity="warning",
        ))
    for name in ("stocks", "etfs"):
        for i, holding in enumerate(getattr(account, name)):
            issues.extend(_non_negative(holding.average_cost, f"{name}[{i}].average_cost", "Average cost"))
            issues.extend(_non_negative(holding.current_price, f"{name}[{i}].current_price", "Current price"))
            issues.extend(_non_negative(holding.current_value, f"{name}[{i}].current_value", "Current value"))
    issues.extend(validate_owner_shares(account.owners))
    return issues


def _validate_rsu(rsu: RSURestrictedStock) -> list[ValidationIssue]:
    issues = []
    issues.extend(_required(rsu.company_name, "company_name", "Company name"))
    issues.extend(_non_negative(rsu.current_value, "current_value", "Current value"))
    if rsu.vested_shares > rsu.shares:
        issues.append(ValidationIssue(
            field="vested_shares",
            issue_type="inconsistent",
            message="Vested shares cannot exceed granted shares",
            severity="error",
        ))
    return issues


def _validate_private_equity(holding: PrivateEquity) -> list[ValidationIssue]:
    issues = []
    issues.extend(_required(holding.fund_name, "fund_name", "Fund name"))
    issues.extend(_non_negative(holding.invested_amount, "invested_amount", "Invested amount"))
    issues.extend(_non_negative(holding.current_value, "current_value", "Current value"))
    issues.extend(_percentage(holding.ownership_percentage, "ownership_percentage", "Ownership percentage"))
    return issues


def _validate_cap_table(cap_table: CapTable) -> list[ValidationIssue]:
    issues = []
    issues.extend(_required(cap_table.company_name, "company_name", "Company name"))
    issues.extend(_non_negative(cap_table.valuation, "valuation", "Valuation"))
    issues.extend(_percentage(cap_table.ownership_percentage, "ownership_percentage", "Ownership percentage"))
    if cap_table.total_shares and cap_table.shares_owned > cap_table.total_shares:
        issues.append(ValidationIssue(
            field="shares_owned",
            issue_type="inconsistent",
            message="Shares owned cannot exceed total shares",
            severity="error",
        ))
    return issues


def _validate_business_entity(entity: BusinessEntity) -> list[ValidationIssue]:
    issues = []
    issues.extend(_required(entity.business_name, "business_name", "Business name"))
    issues.extend(_percentage(entity.ownership_percentage, "ownership_percentage", "Ownership percentage"))
    if entity.ein and not EIN_PATTERN.match(entity.ein):
        issues.append(ValidationIssue(
            field="ein",
            issue_type="invalid_format",
            message="EIN must be in format XX-XXXXXXX",
            severity="error",
        ))
    return issues


def _validate_personal_loan(loan: PersonalLoan) -> list[ValidationIssue]:
    issues = []
    issues.extend(_required(loan.lender, "lender", "Lender"))
    issues.extend(_non_negative(loan.current_balance, "current_balance", "Current balance"))
    issues.extend(_non_negative(loan.original_balance, "original_balance", "Original balance"))
    issues.extend(_rate(loan.interest_rate, "interest_rate", "Interest rate"))
    if loan.original_balance and loan.current_balance > loan.original_balance:
        issues.append(ValidationIssue(
            field="current_balance",
            issue_type="inconsistent",
            message="Current balance cannot exceed original balance",
            severity="error",
        ))
    return issues


def _validate_revolving(
    account: Union[CreditLine, CreditCard],
    name_field: str,
    label: str,
) -> list[ValidationIssue]:
    issues = []
    issues.extend(_required(getattr(account, name_field), name_field, label))
    issues.extend(_non_negative(account.credit_limit, "credit_limit", "Credit limit"))
    issues.extend(_non_negative(account.current_balance, "current_balance", "Current balance"))
    issues.extend(_rate(account.interest_rate, "interest_rate", "Interest rate"))
    if account.current_balance > account.credit_limit:
        issues.append(ValidationIssue(
            field="current_balance",
            issue_type="inconsistent",
            message="Current balance cannot exceed credit limit",
            severity="error",
        ))
    return issues


def _validate_credit_line(line: CreditLine) -> list[ValidationIssue]:
    return _validate_revolving(line, "institution", "Institution")


def _validate_credit_card(card: CreditCard) -> list[ValidationIssue]:
    return _validate_revolving(card, "issuer", "Issuer")


def _validate_income_source(source: IncomeSource) -> list[ValidationIssue]:
    issues = []
    issues.extend(_required(source.source_name, "source_name", "Source name"))
    issues.extend(_non_negative(source.monthly_amount, "monthly_amount", "Monthly amount"))
    if source.start_date and source.end_date and source.end_date <= source.start_date:
        issues.append(ValidationIssue(
            field="end_date",
            issue_type="inconsistent",
            message="End date must be after start date",
            severity="error",
        ))
    return issues


_VALIDATORS: dict[type, Callable[[PFSEntity], list[ValidationIssue]]] = {
    PersonalInfo: _validate_personal_info,
    RealEstateProperty: _validate_property,
    BankAccount: _validate_bank_account,
    InvestmentAccount: _validate_investment_account,
    RSURestrictedStock: _validate_rsu,
    PrivateEquity: _validate_private_equity,
    CapTable: _validate_cap_table,
    BusinessEntity: _validate_business_entity,
    PersonalLoan: _validate_personal_loan,
    CreditLine: _validate_credit_line,
    CreditCard: _validate_credit_card,
    IncomeSource: _validate_income_source,
}


class EntityValidator:
    """
    Semantic validation of schema-valid entities.

    Every entity reaching this validator has already passed pydantic
    (stage 1). This stage reports financial logic problems.
    """

    def validate(self, entity: PFSEntity) -> ValidationResult:
        """
        Run the semantic checks for the entity's type.

        Returns:
            ValidationResult with all issues found. is_valid is False when
            any error-level issue was found; warnings never invalidate.
        """
        check = _VALIDATORS.get(type(entity))
        issues = check(entity) if check else []

        return ValidationResult(
            entity_type=type(entity).__name__,
            entity_id=entity.id,
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Plain-language summary of a validation result."""
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning.message}")

        return "\n".join(lines)
