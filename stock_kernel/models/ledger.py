"""
LedgerEntry -- one appended stock movement.

Contract:
    A LedgerEntry is written once by LedgerStore and never updated or
    deleted (see db/immutability.py).  ``txn_id`` is unique and derived from
    the movement content; ``sequence`` is the insertion order, the only
    ordering consumers may rely on.

Architecture: stock_kernel/models.  Imports from stock_kernel.db.base only.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base

if TYPE_CHECKING:
    from stock_kernel.domain.ledger_record import LedgerRecord


class LedgerEntry(Base):
    """Row of the inventory ledger (header names in LEDGER_HEADERS)."""

    __tablename__ = "inventory_ledger"

    __table_args__ = (
        Index("idx_ledger_source", "source_type", "source_id"),
        Index("idx_ledger_sku_wh", "sku", "warehouse"),
    )

    # Deterministic fingerprint, "TXN-" + 12 hex chars
    txn_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)

    # Insertion order
    sequence: Mapped[int] = mapped_column(nullable=False, unique=True)

    txn_date: Mapped[date] = mapped_column(nullable=False)

    # IN or OUT
    type: Mapped[str] = mapped_column(String(3), nullable=False)

    source_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    batch_code: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    variant: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    warehouse: Mapped[str] = mapped_column(String(50), nullable=False)

    qty_in: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    qty_out: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="")
    unit_price_orig: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    @classmethod
    def from_record(cls, record: LedgerRecord, sequence: int) -> LedgerEntry:
        return cls(
            txn_id=record.txn_id,
            sequence=sequence,
            txn_date=record.txn_date,
            type=record.type.value,
            source_type=record.source_type,
            source_id=record.source_id,
            batch_code=record.batch_code,
            sku=record.sku,
            product_name=record.product_name,
            variant=record.variant,
            warehouse=record.warehouse,
            qty_in=record.qty_in,
            qty_out=record.qty_out,
            unit_cost=record.unit_cost,
            total_cost=record.total_cost,
            currency=record.currency,
            unit_price_orig=record.unit_price_orig,
            notes=record.notes,
        )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.txn_id} #{self.sequence} {self.type} "
            f"{self.sku}@{self.warehouse}>"
        )
