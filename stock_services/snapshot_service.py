"""
SnapshotService -- persists the projected warehouse snapshots.

Responsibility:
    Replays the whole ledger through the moving-average projector and
    replaces the ``warehouse_snapshots`` rows of each group (clear, then
    write).  Also builds the in-memory SnapshotView that connectors use for
    SKU-history warehouse resolution and origin costs.

Architecture position:
    Services -- imperative shell around stock_engines.valuation.

Invariants enforced:
    - Snapshots are derived data: every rebuild is a full replacement, so
      running it twice yields identical rows.
    - The caller holds the ledger lock and owns the transaction.
"""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from stock_config.schema import InventoryConfig
from stock_engines.valuation import SnapshotRow, SnapshotView, project_all
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.snapshot import WarehouseSnapshot
from stock_services.ledger_store import LedgerStore

logger = get_logger("services.snapshot")


def _to_model(row: SnapshotRow) -> WarehouseSnapshot:
    return WarehouseSnapshot(
        warehouse_group=row.warehouse_group,
        sku=row.sku,
        product_name=row.product_name,
        variant=row.variant,
        warehouse=row.warehouse,
        on_hand=row.on_hand,
        allocated=row.allocated,
        available=row.available,
        avg_cost=row.avg_cost,
        total_cost=row.total_cost,
        last_txn_date=row.last_txn_date,
        last_source_type=row.last_source_type,
        last_source_id=row.last_source_id,
    )


class SnapshotService:
    """Rebuilds and reads the snapshot tables."""

    def __init__(self, session: Session, config: InventoryConfig):
        self._session = session
        self._config = config
        self._store = LedgerStore(session, config.ledger.write_chunk_size)

    def project(self) -> dict[str, list[SnapshotRow]]:
        """Project the ledger, including rows appended earlier in this transaction."""
        return project_all(self._store.iter_entries(), self._config)

    def load_view(self) -> SnapshotView:
        """In-memory view of the ledger as it stands now."""
        return SnapshotView.from_groups(self.project())

    def rebuild(self, group: str) -> int:
        """
        Replace one group's snapshot rows.

        Raises:
            KeyError: if ``group`` is not configured.
        """
        self._config.group(group)
        rows = self.project()[group]
        return self._write(group, rows)

    def rebuild_all(self) -> dict[str, int]:
        """Replace every configured group's rows from one ledger replay."""
        projected = self.project()
        return {group: self._write(group, rows) for group, rows in projected.items()}

    def _write(self, group: str, rows: list[SnapshotRow]) -> int:
        with LogContext.bind(warehouse_group=group):
            self._session.execute(
                delete(WarehouseSnapshot).where(WarehouseSnapshot.warehouse_group == group)
            )
            self._session.add_all(_to_model(r) for r in rows)
            self._session.flush()
            logger.info("snapshot_rebuilt", extra={"rows": len(rows)})
        return len(rows)

    def read(self, group: str | None = None) -> list[WarehouseSnapshot]:
        """Persisted snapshot rows, optionally for one group."""
        stmt = select(WarehouseSnapshot).order_by(
            WarehouseSnapshot.warehouse_group,
            WarehouseSnapshot.sku,
            WarehouseSnapshot.warehouse,
            WarehouseSnapshot.variant,
        )
        if group is not None:
            stmt = stmt.where(WarehouseSnapshot.warehouse_group == group)
        return list(self._session.scalars(stmt))
