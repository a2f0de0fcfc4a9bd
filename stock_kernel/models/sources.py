"""
Upstream source tables read by the connectors.

Contract:
    These rows mirror the user-edited tables of the ERP (QC inspections,
    purchases, inbound shipments, UAE->EG transfers, sales, catalog).  They
    are loaded by stock_ingestion and read by stock_services.connectors.
    The only column this subsystem writes back is ``TransferLine.qty_synced``
    (plus the empty-field back-fill done by the transfer connector).

Architecture: stock_kernel/models.  Imports from stock_kernel.db.base only.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class ReceivingLine(Base):
    """One QC inspection line (units of one SKU received at a UAE warehouse)."""

    __tablename__ = "receiving_lines"

    # Stable QC line identifier ("QC ID"); never the row position
    line_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    # Position in the imported sheet; only used to match legacy "row N" notes
    row_number: Mapped[int | None] = mapped_column(nullable=True)

    order_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    shipment_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    sku: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    batch_code: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    product_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    variant: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    qty_received: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    qty_defective: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    # None when the sheet has no "Qty OK" value for the line
    qty_ok: Mapped[Decimal | None] = mapped_column(nullable=True)
    warehouse: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    carrier: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    qc_date: Mapped[date | None] = mapped_column(nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")


class PurchaseLine(Base):
    """Purchase order line, used only for unit cost lookup."""

    __tablename__ = "purchase_lines"

    __table_args__ = (Index("idx_purchase_order_sku", "order_id", "sku"),)

    order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    batch_code: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    product_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    variant: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    unit_landed_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    net_unit_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="")


class InboundShipment(Base):
    """CN->UAE shipment header; decides whether QC lines may be posted."""

    __tablename__ = "inbound_shipments"

    shipment_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    ship_date: Mapped[date | None] = mapped_column(nullable=True)
    arrival_date: Mapped[date | None] = mapped_column(nullable=True)


class TransferLine(Base):
    """UAE->EG transfer line with its cumulative synced counter."""

    __tablename__ = "transfer_lines"

    __table_args__ = (Index("idx_transfer_shipment", "shipment_id"),)

    # Stable per-line identifier
    line_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    shipment_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    box_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    courier: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    origin_warehouse: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    sku: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    product_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    variant: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    # Cumulative quantity shipped so far
    qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    # Cumulative quantity already posted to the ledger (written back)
    qty_synced: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    ship_date: Mapped[date | None] = mapped_column(nullable=True)
    arrival_date: Mapped[date | None] = mapped_column(nullable=True)
    ship_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    customs: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    other_fees: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    # Overrides ship_cost + customs + other_fees when set
    total_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")


class SalesLine(Base):
    """Sales order line; duplicates of one order+SKU are allowed."""

    __tablename__ = "sales_lines"

    __table_args__ = (Index("idx_sales_order_sku", "order_id", "sku"),)

    row_number: Mapped[int | None] = mapped_column(nullable=True)
    order_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    sku: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    product_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    variant: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    warehouse: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    courier: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    order_status: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    delivered_date: Mapped[date | None] = mapped_column(nullable=True)


class CatalogItem(Base):
    """Catalog master data; supplies the default cost fallback for sales."""

    __tablename__ = "catalog_items"

    sku: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    product_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    variant: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    default_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    default_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
