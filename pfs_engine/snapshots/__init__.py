"""Portfolio snapshots: capture, staleness tracking and comparison."""

from pfs_engine.snapshots.comparison import (
    DEFAULT_METRIC_POLARITY,
    classify_change,
    compare_against_baseline,
    compare_snapshots,
    format_metric_name,
)
from pfs_engine.snapshots.staleness import (
    SnapshotStalenessTracker,
    create_pfs_snapshot,
    describe_mutation,
)

__all__ = [
    "DEFAULT_METRIC_POLARITY",
    "SnapshotStalenessTracker",
    "classify_change",
    "compare_against_baseline",
    "compare_snapshots",
    "create_pfs_snapshot",
    "describe_mutation",
    "format_metric_name",
]
