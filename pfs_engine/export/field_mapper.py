"""
Export Field Mapping

Turns an assembled FullPFS into the flat {form field name: text} input a
document-generation collaborator fills into a template. Filling the
document itself happens outside the engine.

Data paths use the camelCase JSON contract with dot notation and list
indices, e.g. "personalInfo.name" or "realEstate[0].address".
"""

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Literal, Optional, Union

import structlog
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from pfs_engine.models.base import CamelModel
from pfs_engine.models.pfs import FullPFS, PFSSummaries


logger = structlog.get_logger()

FieldType = Literal["text", "number", "date", "currency", "percentage"]

_INDEXED_PART = re.compile(r"^(\w+)\[(\d+)\]$")


class ExportError(Exception):
    """Required export fields could not be resolved."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required export fields: {', '.join(missing)}")


class FieldMapping(CamelModel):
    """Maps one form field to one value in the PFS."""

    pdf_field_name: str = Field(..., min_length=1)
    data_path: str = Field(
        ...,
        min_length=1,
        description="e.g. 'summaries.netWorth', 'realEstate[0].address'"
    )
    field_type: FieldType = "text"
    required: bool = False


def flatten_summaries(pfs: Union[FullPFS, PFSSummaries]) -> dict[str, Decimal]:
    """Every summary metric keyed by camelCase name."""
    summaries = pfs.summaries if isinstance(pfs, FullPFS) else pfs
    return summaries.metrics()


def resolve_path(data: Any, path: str) -> Any:
    """
    Look up a dot/index path in a model or nested dict.

    Returns None when any step of the path is missing.
    """
    current = data.model_dump(by_alias=True) if isinstance(data, BaseModel) else data

    for part in path.split("."):
        match = _INDEXED_PART.match(part)
        key, index = (match.group(1), int(match.group(2))) if match else (part, None)

        if not isinstance(current, dict):
            return None
        if key not in current:
            key = to_camel(key)
        current = current.get(key)

        if index is not None:
            if not isinstance(current, list) or index >= len(current):
                return None
            current = current[index]

        if current is None:
            return None

    return current


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {value!r}") from e


def _format_currency(value: Any) -> str:
    amount = _to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.0f}"


def _format_percentage(value: Any) -> str:
    return f"{_to_decimal(value):.2f}%"


def _format_date(value: Any) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, (date, datetime)):
        return value.strftime("%m/%d/%Y")
    raise ValueError(f"Not a date: {value!r}")


def _format_number(value: Any) -> str:
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def format_field_value(value: Any, field_type: FieldType = "text") -> str:
    """
    Render a value for a form field.

    currency    "$1,234" (whole dollars)
    percentage  "12.50%"
    date        "MM/DD/YYYY"
    number      plain digits
    text        str(value)
    """
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value

    if field_type == "currency":
        return _format_currency(value)
    if field_type == "percentage":
        return _format_percentage(value)
    if field_type == "date":
        return _format_date(value)
    if field_type == "number":
        return _format_number(value)
    return str(value)


def build_field_values(
    pfs: FullPFS,
    mappings: Iterable[Union[FieldMapping, dict]],
) -> dict[str, str]:
    """
    Resolve and format every mapped field.

    Optional fields whose path is missing are skipped, as are optional
    values that cannot be formatted as their declared type.

    Raises:
        ExportError: If a mapping marked required has no usable value
    """
    data = pfs.model_dump(by_alias=True)
    values: dict[str, str] = {}
    missing: list[str] = []

    for mapping in mappings:
        if not isinstance(mapping, FieldMapping):
            mapping = FieldMapping.model_validate(mapping)

        value = resolve_path(data, mapping.data_path)
        if value is None:
            if mapping.required:
                missing.append(mapping.pdf_field_name)
            continue

        try:
            values[mapping.pdf_field_name] = format_field_value(value, mapping.field_type)
        except ValueError as e:
            logger.warning(
                "export_field_skipped",
                pdf_field_name=mapping.pdf_field_name,
                data_path=mapping.data_path,
                error=str(e),
            )
            if mapping.required:
                missing.append(mapping.pdf_field_name)

    if missing:
        raise ExportError(missing)

    return values


def default_summary_mappings(prefix: Optional[str] = None) -> list[FieldMapping]:
    """One currency/percentage field per summary metric, named after the metric."""
    percentage_metrics = {"debtToAssetRatio", "averageLTV"}
    return [
        FieldMapping(
            pdf_field_name=f"{prefix}{name}" if prefix else name,
            data_path=f"summaries.{name}",
            field_type="percentage" if name in percentage_metrics else (
                "number" if name == "averageDSCR" else "currency"
            ),
        )
        for name in PFSSummaries.metric_names()
    ]
