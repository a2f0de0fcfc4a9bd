"""
Moving weighted-average snapshot projection.

Responsibility:
    Replays ledger movements in insertion order and derives, per
    (sku, warehouse, variant), the on-hand quantity, the total cost basis and
    the average unit cost.  The result is the full content of the snapshot
    tables; nothing is ever patched incrementally.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Callers pass the ledger
    rows (ORM LedgerEntry or domain LedgerRecord, anything with the ledger
    attributes) already ordered by sequence.

Costing policy:
    One policy for every warehouse group, a moving weighted average:

        IN   on_hand += qty; total += total_cost (else qty * unit_cost)
        OUT  on_hand -= qty; total -= qty * avg         (avg unchanged)

    IN 10 @ 100, IN 10 @ 120, OUT 5  ->  on_hand 15, avg 110, total 1650.

Invariants enforced:
    - on_hand is the signed running sum of qty_in - qty_out for the whole
      replay.  An OUT that takes it below zero is logged as
      ``snapshot_overship``; while short the cost basis is zero, and the
      next IN values what remains at its own unit cost.
    - Only the emitted row is clamped: a position still short at the end
      is written as on_hand 0, total 0.
    - on_hand <= 0 forces total == 0.
    - avg = total / on_hand while on_hand > 0; otherwise the last average
      is kept so a later OUT-before-IN still prices at something sensible.
    - last_txn_date / last_source_* follow the latest txn_date; equal dates
      resolve to the later insertion.

Failure modes:
    - None raised.  Rows whose warehouse belongs to no group are left out of
      every group and logged once per warehouse.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from stock_config.schema import InventoryConfig
from stock_engines.warehouse import WarehouseResolver
from stock_kernel.domain.ledger_record import ZERO, quantize_cost, to_decimal
from stock_kernel.logging_config import get_logger
from stock_kernel.utils.codes import clean_text, normalize_warehouse_code

logger = get_logger("engines.valuation.moving_average")

PositionKey = tuple[str, str, str]


@dataclass(frozen=True, slots=True)
class SnapshotRow:
    """One projected position (mirrors the WarehouseSnapshot table)."""

    warehouse_group: str
    sku: str
    warehouse: str
    variant: str
    product_name: str
    on_hand: Decimal
    avg_cost: Decimal
    total_cost: Decimal
    last_txn_date: date | None = None
    last_source_type: str = ""
    last_source_id: str = ""
    allocated: Decimal = ZERO

    @property
    def available(self) -> Decimal:
        return self.on_hand - self.allocated


@dataclass
class PositionAccumulator:
    """Mutable running position for one (sku, warehouse, variant)."""

    sku: str
    warehouse: str
    variant: str = ""
    product_name: str = ""
    on_hand: Decimal = ZERO
    total_cost: Decimal = ZERO
    avg_cost: Decimal = ZERO
    last_txn_date: date | None = None
    last_source_type: str = ""
    last_source_id: str = ""

    def apply(self, entry: Any) -> bool:
        """
        Apply one ledger movement to the signed running position.

        Returns:
            True when the movement took the position below zero.
        """
        qty_in = to_decimal(entry.qty_in)
        qty_out = to_decimal(entry.qty_out)
        prior = self.on_hand

        if qty_in > ZERO:
            value_in = to_decimal(getattr(entry, "total_cost", None))
            if value_in <= ZERO:
                value_in = qty_in * to_decimal(entry.unit_cost)
            self.on_hand += qty_in
            if prior >= ZERO:
                self.total_cost += value_in
            elif self.on_hand > ZERO:
                # A short position is settled at the incoming unit cost
                self.total_cost = self.on_hand * (value_in / qty_in)
        if qty_out > ZERO:
            if prior > ZERO:
                self.total_cost -= min(qty_out, prior) * self.avg_cost
            self.on_hand -= qty_out

        if self.on_hand <= ZERO or self.total_cost < ZERO:
            self.total_cost = ZERO
        if self.on_hand > ZERO:
            self.avg_cost = self.total_cost / self.on_hand

        if not self.product_name:
            self.product_name = clean_text(entry.product_name)

        txn_date = entry.txn_date
        if txn_date is not None and (
            self.last_txn_date is None or txn_date >= self.last_txn_date
        ):
            self.last_txn_date = txn_date
            self.last_source_type = clean_text(entry.source_type)
            self.last_source_id = clean_text(entry.source_id)
        return qty_out > ZERO and self.on_hand < ZERO <= prior

    def to_row(self, group: str) -> SnapshotRow:
        # A position still short at the end of the replay is emitted as 0/0
        on_hand = max(self.on_hand, ZERO)
        return SnapshotRow(
            warehouse_group=group,
            sku=self.sku,
            warehouse=self.warehouse,
            variant=self.variant,
            product_name=self.product_name,
            on_hand=on_hand,
            avg_cost=quantize_cost(self.avg_cost),
            total_cost=quantize_cost(self.total_cost) if on_hand > ZERO else quantize_cost(ZERO),
            last_txn_date=self.last_txn_date,
            last_source_type=self.last_source_type,
            last_source_id=self.last_source_id,
        )


def _is_zero_row(row: SnapshotRow, tolerance: Decimal) -> bool:
    return row.on_hand <= ZERO and abs(row.total_cost) <= tolerance


def project_all(
    entries: Iterable[Any],
    config: InventoryConfig,
) -> dict[str, list[SnapshotRow]]:
    """
    Project the whole ledger into rows for every configured group.

    Args:
        entries: ledger rows in insertion order.
        config: supplies the warehouse groups and the zero-row policy.

    Returns:
        Mapping of group name to its rows, in order of first appearance in
        the ledger.  Every configured group is present, possibly empty.
    """
    resolver = WarehouseResolver(config)
    positions: dict[str, dict[PositionKey, PositionAccumulator]] = {
        name: {} for name in config.group_names
    }
    group_cache: dict[str, str | None] = {}
    ungrouped: set[str] = set()
    overships = 0

    for entry in entries:
        warehouse = normalize_warehouse_code(entry.warehouse)
        sku = clean_text(entry.sku)
        if not warehouse or not sku:
            continue
        if warehouse not in group_cache:
            group_cache[warehouse] = resolver.group_of(warehouse)
        group = group_cache[warehouse]
        if group is None:
            if warehouse not in ungrouped:
                ungrouped.add(warehouse)
                logger.warning(
                    "snapshot_ungrouped_warehouse",
                    extra={"warehouse": warehouse, "sku": sku},
                )
            continue

        variant = clean_text(entry.variant)
        key = (sku, warehouse, variant)
        position = positions[group].get(key)
        if position is None:
            position = PositionAccumulator(sku=sku, warehouse=warehouse, variant=variant)
            positions[group][key] = position

        if position.apply(entry):
            overships += 1
            logger.warning(
                "snapshot_overship",
                extra={
                    "sku": sku,
                    "warehouse": warehouse,
                    "qty_out": to_decimal(entry.qty_out),
                    "txn_id": getattr(entry, "txn_id", ""),
                },
            )

    settings = config.snapshot
    result: dict[str, list[SnapshotRow]] = {}
    for group, by_key in positions.items():
        for p in by_key.values():
            if p.on_hand < ZERO:
                logger.warning(
                    "snapshot_short_position",
                    extra={"sku": p.sku, "warehouse": p.warehouse, "on_hand": p.on_hand},
                )
        rows = [p.to_row(group) for p in by_key.values()]
        if not settings.keep_zero_rows:
            rows = [r for r in rows if not _is_zero_row(r, settings.zero_value_tolerance)]
        result[group] = rows

    logger.debug(
        "ledger_projected",
        extra={
            "groups": {g: len(rows) for g, rows in result.items()},
            "overships": overships,
        },
    )
    return result


def project_ledger(
    entries: Iterable[Any],
    config: InventoryConfig,
    group: str,
) -> list[SnapshotRow]:
    """
    Project the ledger rows of one warehouse group.

    Raises:
        KeyError: if ``group`` is not configured.
    """
    config.group(group)
    return project_all(entries, config)[group]


@dataclass
class SnapshotView:
    """
    Read-only lookups over projected rows, used by connectors during a run.

    Built once at the start of a run from the ledger as it stood then.
    """

    rows: Sequence[SnapshotRow] = ()
    _by_sku: dict[str, list[SnapshotRow]] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        for row in self.rows:
            self._by_sku.setdefault(row.sku, []).append(row)

    @classmethod
    def from_groups(cls, groups: dict[str, list[SnapshotRow]]) -> SnapshotView:
        return cls([row for rows in groups.values() for row in rows])

    def rows_for(self, sku: str, group: str | None = None) -> list[SnapshotRow]:
        rows = self._by_sku.get(clean_text(sku), [])
        if group is None:
            return list(rows)
        return [r for r in rows if r.warehouse_group == group]

    def warehouses_for(self, sku: str, group: str | None = None) -> list[str]:
        """Distinct warehouses holding ``sku``, in snapshot order."""
        seen: list[str] = []
        for row in self.rows_for(sku, group):
            if row.warehouse not in seen:
                seen.append(row.warehouse)
        return seen

    def position(self, sku: str, warehouse: str) -> SnapshotRow | None:
        """First row for (sku, warehouse), any variant."""
        code = normalize_warehouse_code(warehouse)
        for row in self.rows_for(sku):
            if row.warehouse == code:
                return row
        return None

    def avg_cost(self, sku: str, warehouse: str) -> Decimal | None:
        row = self.position(sku, warehouse)
        if row is None or row.avg_cost <= ZERO:
            return None
        return row.avg_cost
