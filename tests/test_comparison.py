"""
Tests for the comparison engine.
"""

from decimal import Decimal

import pytest

from pfs_engine.models.pfs import ChangeDirection, PFSSnapshot, PFSSummaries
from pfs_engine.snapshots import (
    DEFAULT_METRIC_POLARITY,
    classify_change,
    compare_against_baseline,
    compare_snapshots,
    format_metric_name,
)


def summaries(**values) -> PFSSummaries:
    return PFSSummaries(**{name: Decimal(str(v)) for name, v in values.items()})


class TestFormatMetricName:
    """Tests for display labels."""

    @pytest.mark.parametrize("name,label", [
        ("totalRealEstateValue", "Total Real Estate Value"),
        ("averageLTV", "Average LTV"),
        ("totalRSUValue", "Total RSU Value"),
        ("netWorth", "Net Worth"),
        ("debtToAssetRatio", "Debt To Asset Ratio"),
        ("net_worth", "Net Worth"),
    ])
    def test_labels(self, name, label):
        """Test camelCase, acronyms and snake_case."""
        assert format_metric_name(name) == label


class TestClassifyChange:
    """Tests for semantic direction."""

    def test_direction_depends_on_polarity(self):
        """Test that the same sign means opposite things for assets and debts."""
        assert classify_change(Decimal("10"), True) == ChangeDirection.IMPROVED
        assert classify_change(Decimal("10"), False) == ChangeDirection.DETERIORATED
        assert classify_change(Decimal("-10"), False) == ChangeDirection.IMPROVED
        assert classify_change(Decimal("0"), True) == ChangeDirection.UNCHANGED

    def test_default_polarity(self):
        """Test that liability-like metrics are lower-is-better."""
        assert DEFAULT_METRIC_POLARITY["netWorth"] is True
        assert DEFAULT_METRIC_POLARITY["totalLiabilities"] is False
        assert DEFAULT_METRIC_POLARITY["averageLTV"] is False
        assert set(DEFAULT_METRIC_POLARITY) == set(PFSSummaries.metric_names())


class TestCompareSnapshots:
    """Tests for pairwise comparison."""

    def test_deltas_and_summary(self):
        """Test signed deltas, percent change and headline summary."""
        a = summaries(total_assets=1000, total_liabilities=400, net_worth=600)
        b = summaries(total_assets=1200, total_liabilities=300, net_worth=900)

        comparison = compare_snapshots(a, b)

        assert comparison.delta("totalAssets") == Decimal("200")
        assert comparison.deltas["totalAssets"].percent_change == Decimal("20")
        assert comparison.deltas["totalLiabilities"].direction == ChangeDirection.IMPROVED
        assert comparison.summary.net_worth_delta == Decimal("300")

    def test_every_metric_present(self):
        """Test that the comparison covers all 23 metrics."""
        comparison = compare_snapshots(PFSSummaries(), PFSSummaries())
        assert list(comparison.deltas) == PFSSummaries.metric_names()
        assert comparison.changed() == []

    def test_percent_change_none_from_zero(self):
        """Test that growth from 0 has no percentage."""
        comparison = compare_snapshots(PFSSummaries(), summaries(liquidity=50))
        assert comparison.deltas["liquidity"].percent_change is None

    def test_antisymmetric(self):
        """Test that swapping sides negates every delta."""
        a = summaries(total_assets=1000, average_ltv=60)
        b = summaries(total_assets=800, average_ltv=70)

        forward = compare_snapshots(a, b)
        backward = compare_snapshots(b, a)

        for name in PFSSummaries.metric_names():
            assert forward.delta(name) == -backward.delta(name)

    def test_ltv_increase_deteriorates(self):
        """Test that a rising LTV is a deterioration."""
        comparison = compare_snapshots(summaries(average_ltv=60), summaries(average_ltv=70))
        assert comparison.deltas["averageLTV"].direction == ChangeDirection.DETERIORATED
        assert comparison.deltas["averageLTV"].label == "Average LTV"

    def test_polarity_override(self):
        """Test caller overrides with either spelling."""
        comparison = compare_snapshots(
            summaries(liquidity=100),
            summaries(liquidity=50),
            higher_is_better={"liquidity": False},
        )
        assert comparison.deltas["liquidity"].direction == ChangeDirection.IMPROVED

    def test_unknown_override_rejected(self):
        """Test that an unknown metric override is an error."""
        with pytest.raises(KeyError):
            compare_snapshots(PFSSummaries(), PFSSummaries(), higher_is_better={"bogus": True})

    def test_snapshot_labels(self):
        """Test that snapshots are labelled by name."""
        a = PFSSnapshot(snapshot_name="Q1", summaries=PFSSummaries())
        b = PFSSnapshot(snapshot_name="Q2", summaries=summaries(net_worth=10))

        comparison = compare_snapshots(a, b)

        assert comparison.from_label == "Q1"
        assert comparison.to_label == "Q2"
        assert comparison.to_log_dict()["changed_metrics"] == ["netWorth"]

    def test_rejects_other_types(self):
        """Test that unsupported inputs raise TypeError."""
        with pytest.raises(TypeError):
            compare_snapshots({"netWorth": 1}, PFSSummaries())


class TestCompareAgainstBaseline:
    """Tests for multi-way comparison."""

    def test_one_comparison_per_revision(self):
        """Test pairwise comparison of each revision against the baseline."""
        baseline = summaries(net_worth=100)
        results = compare_against_baseline(baseline, [summaries(net_worth=150), summaries(net_worth=80)])

        assert [r.delta("netWorth") for r in results] == [Decimal("50"), Decimal("-20")]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
