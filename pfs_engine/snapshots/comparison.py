"""
Comparison Engine

Pairwise comparison of two PFS revisions. Every metric gets a signed
delta (b - a) and a semantic direction that depends on whether a higher
value is better for that metric, not on the raw sign.

Comparing more than two revisions is done by repeated pairwise
comparison against a baseline.
"""

import re
from decimal import Decimal
from typing import Mapping, Optional, Sequence, Union

from pfs_engine.models.pfs import (
    ChangeDirection,
    ComparisonSummary,
    FullPFS,
    MetricDelta,
    PFSSnapshot,
    PFSSummaries,
    SnapshotComparison,
)


Comparable = Union[PFSSummaries, PFSSnapshot, FullPFS]

HUNDRED = Decimal("100")

# Liability-like metrics: an increase is a deterioration
_LOWER_IS_BETTER = frozenset({
    "totalMortgageBalance",
    "totalPersonalLoanBalance",
    "totalCreditLineBalance",
    "totalCreditCardBalance",
    "totalLiabilities",
    "totalDebt",
    "debtToAssetRatio",
    "averageLTV",
})

DEFAULT_METRIC_POLARITY: dict[str, bool] = {
    name: name not in _LOWER_IS_BETTER
    for name in PFSSummaries.metric_names()
}


def format_metric_name(name: str) -> str:
    """
    Display label for a metric name.

    "totalRealEstateValue" -> "Total Real Estate Value"
    "averageLTV" -> "Average LTV"
    """
    spaced = name.replace("_", " ")
    spaced = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1 \2", spaced)
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", spaced)
    return " ".join(word[:1].upper() + word[1:] for word in spaced.split())


def classify_change(delta: Decimal, higher_is_better: bool) -> ChangeDirection:
    if delta == 0:
        return ChangeDirection.UNCHANGED
    if (delta > 0) == higher_is_better:
        return ChangeDirection.IMPROVED
    return ChangeDirection.DETERIORATED


def _summaries(value: Comparable) -> PFSSummaries:
    if isinstance(value, PFSSummaries):
        return value
    if isinstance(value, (PFSSnapshot, FullPFS)):
        return value.summaries
    raise TypeError(f"Cannot compare {type(value).__name__}")


def _label(value: Comparable) -> Optional[str]:
    if isinstance(value, PFSSnapshot):
        return value.snapshot_name
    if isinstance(value, FullPFS):
        return value.id
    return None


def _polarity(overrides: Optional[Mapping[str, bool]]) -> dict[str, bool]:
    polarity = dict(DEFAULT_METRIC_POLARITY)
    for key, higher_is_better in (overrides or {}).items():
        field_name = PFSSummaries.resolve_field_name(key)
        if field_name is None:
            raise KeyError(f"Unknown metric: {key}")
        info = PFSSummaries.model_fields[field_name]
        polarity[info.alias or field_name] = higher_is_better
    return polarity


def _percent_change(from_value: Decimal, delta: Decimal) -> Optional[Decimal]:
    if from_value == 0:
        return None
    return delta / abs(from_value) * HUNDRED


def compare_snapshots(
    a: Comparable,
    b: Comparable,
    higher_is_better: Optional[Mapping[str, bool]] = None,
) -> SnapshotComparison:
    """
    Compare b against a.

    Args:
        a: Earlier revision (the "from" side)
        b: Later revision (the "to" side)
        higher_is_better: Per-metric polarity overrides, camelCase or
            snake_case keys. Unlisted metrics use DEFAULT_METRIC_POLARITY.
    """
    before = _summaries(a)
    after = _summaries(b)
    polarity = _polarity(higher_is_better)

    deltas: dict[str, MetricDelta] = {}
    for name in PFSSummaries.metric_names():
        from_value = before.metric(name)
        to_value = after.metric(name)
        delta = to_value - from_value
        deltas[name] = MetricDelta(
            metric=name,
            label=format_metric_name(name),
            from_value=from_value,
            to_value=to_value,
            delta=delta,
            percent_change=_percent_change(from_value, delta),
            higher_is_better=polarity[name],
            direction=classify_change(delta, polarity[name]),
        )

    return SnapshotComparison(
        from_label=_label(a),
        to_label=_label(b),
        deltas=deltas,
        summary=ComparisonSummary(
            total_assets_delta=after.total_assets - before.total_assets,
            total_liabilities_delta=after.total_liabilities - before.total_liabilities,
            net_worth_delta=after.net_worth - before.net_worth,
        ),
    )


def compare_against_baseline(
    baseline: Comparable,
    others: Sequence[Comparable],
    higher_is_better: Optional[Mapping[str, bool]] = None,
) -> list[SnapshotComparison]:
    """One pairwise comparison of each revision against the baseline."""
    return [
        compare_snapshots(baseline, other, higher_is_better)
        for other in others
    ]
