"""Valuation engines: snapshot projection with moving weighted-average cost."""

from stock_engines.valuation.moving_average import (
    PositionAccumulator,
    SnapshotRow,
    SnapshotView,
    project_all,
    project_ledger,
)

__all__ = [
    "PositionAccumulator",
    "SnapshotRow",
    "SnapshotView",
    "project_all",
    "project_ledger",
]
