"""WarehouseSnapshot -- derived on-hand/cost row, rebuilt from the ledger."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class WarehouseSnapshot(Base):
    """One (sku, warehouse, variant) position inside a warehouse group."""

    __tablename__ = "warehouse_snapshots"

    __table_args__ = (
        Index("idx_snapshot_group_sku", "warehouse_group", "sku"),
    )

    warehouse_group: Mapped[str] = mapped_column(String(20), nullable=False)
    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    variant: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    warehouse: Mapped[str] = mapped_column(String(50), nullable=False)
    on_hand: Mapped[Decimal] = mapped_column(nullable=False)
    allocated: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    available: Mapped[Decimal] = mapped_column(nullable=False)
    avg_cost: Mapped[Decimal] = mapped_column(nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(nullable=False)
    last_txn_date: Mapped[date | None] = mapped_column(nullable=True)
    last_source_type: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    last_source_id: Mapped[str] = mapped_column(String(200), nullable=False, default="")
