"""
Module: stock_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines used by
    the services layer: warehouse resolution and snapshot valuation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import stock_kernel (domain, utils) and stock_config.schema.
    MUST NOT import stock_services or stock_ingestion.

Invariants enforced:
    - Purity: engines never read the clock; dates arrive on the movements.
    - Decimal-only arithmetic for quantities and costs.
    - Determinism: identical ledger input always yields identical rows.

Usage:
    from stock_engines.warehouse import WarehouseResolver
    from stock_engines.valuation import project_all, SnapshotView
"""

from stock_kernel.logging_config import get_logger

logger = get_logger("engines")

from stock_engines.valuation import (  # noqa: E402
    PositionAccumulator,
    SnapshotRow,
    SnapshotView,
    project_all,
    project_ledger,
)
from stock_engines.warehouse import (  # noqa: E402
    ResolutionSource,
    WarehouseResolution,
    WarehouseResolver,
)

__all__ = [
    "PositionAccumulator",
    "ResolutionSource",
    "SnapshotRow",
    "SnapshotView",
    "WarehouseResolution",
    "WarehouseResolver",
    "project_all",
    "project_ledger",
]
