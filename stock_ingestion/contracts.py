"""
Table contracts: named columns addressed by header, never by position.

Each upstream table has a ``TableContract`` that lists its columns
explicitly, says which are required, how each cell is coerced, and which
legacy header spellings are accepted.  Header matching ignores case, runs of
whitespace and the en/em dash vs hyphen difference, so

    "Ship Cost (EGP) – per unit or box"
    "ship cost (egp) - per unit or box"

bind to the same column.

Architecture: stock_ingestion.  Pure, ZERO I/O.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from stock_ingestion.coercion import ColumnKind, coerce_cell
from stock_kernel.exceptions import RowValidationError, SchemaError

_DASHES = re.compile(r"[‐-―−]")
_ARROWS = re.compile(r"\s*(->|→)\s*")
_SPACES = re.compile(r"\s+")


def normalize_header(header: Any) -> str:
    """Matching form of a header: dashes unified, spaces collapsed, casefolded."""
    text = "" if header is None else str(header)
    text = _DASHES.sub("-", text)
    text = _ARROWS.sub("->", text)
    return _SPACES.sub(" ", text).strip().casefold()


@dataclass(frozen=True)
class ColumnSpec:
    """One named column of a table."""

    header: str
    attr: str
    kind: ColumnKind = ColumnKind.TEXT
    required: bool = False
    aliases: tuple[str, ...] = ()

    def match_keys(self) -> tuple[str, ...]:
        return tuple(normalize_header(h) for h in (self.header, *self.aliases))


@dataclass(frozen=True)
class HeaderBinding:
    """Which source header feeds each column attribute."""

    table: str
    sources: Mapping[str, str]
    unknown_headers: tuple[str, ...] = ()

    def has(self, attr: str) -> bool:
        return attr in self.sources


@dataclass(frozen=True)
class TableContract:
    """Explicit column contract of one table."""

    name: str
    columns: tuple[ColumnSpec, ...]

    @property
    def headers(self) -> tuple[str, ...]:
        """Canonical headers, in export order."""
        return tuple(c.header for c in self.columns)

    @property
    def required_headers(self) -> tuple[str, ...]:
        return tuple(c.header for c in self.columns if c.required)

    def bind(self, headers: Iterable[Any]) -> HeaderBinding:
        """
        Bind source headers to columns.

        The canonical header wins over an alias when both are present.

        Raises:
            SchemaError: if a required column has no matching header.
        """
        by_key: dict[str, str] = {}
        for header in headers:
            key = normalize_header(header)
            if key and key not in by_key:
                by_key[key] = str(header)

        sources: dict[str, str] = {}
        used: set[str] = set()
        for column in self.columns:
            for key in column.match_keys():
                if key in by_key:
                    sources[column.attr] = by_key[key]
                    used.add(key)
                    break

        missing = [c.header for c in self.columns if c.required and c.attr not in sources]
        if missing:
            raise SchemaError(self.name, missing)
        unknown = tuple(h for k, h in by_key.items() if k not in used)
        return HeaderBinding(self.name, sources, unknown)

    def coerce_row(
        self,
        raw: Mapping[str, Any],
        binding: HeaderBinding,
        row_number: int,
    ) -> dict[str, Any]:
        """
        Coerce one raw row into column attributes.

        Columns absent from the source are filled with their blank value.

        Raises:
            RowValidationError: naming the first cell that cannot be coerced.
        """
        values: dict[str, Any] = {}
        for column in self.columns:
            source = binding.sources.get(column.attr)
            raw_value = raw.get(source) if source is not None else None
            try:
                values[column.attr] = coerce_cell(raw_value, column.kind)
            except ValueError as exc:
                raise RowValidationError(self.name, row_number, column.header, str(exc)) from None
        return values


_T = ColumnKind.TEXT
_C = ColumnKind.CODE
_D = ColumnKind.DECIMAL
_OD = ColumnKind.OPTIONAL_DECIMAL
_DT = ColumnKind.DATE

_PRODUCT = ColumnSpec("Product Name", "product_name", aliases=("Product", "ProductName"))
_VARIANT = ColumnSpec("Variant / Color", "variant", aliases=("Variant", "Variant/Color", "Color"))
_NOTES = ColumnSpec("Notes", "notes")


RECEIVING = TableContract(
    "receiving",
    (
        ColumnSpec("QC ID", "line_id", required=True),
        ColumnSpec("Order ID", "order_id"),
        ColumnSpec(
            "Shipment CN→UAE ID",
            "shipment_id",
            aliases=("Shipment CN->UAE ID", "Shipment ID"),
        ),
        ColumnSpec("SKU", "sku", required=True),
        ColumnSpec("Batch Code", "batch_code"),
        _PRODUCT,
        _VARIANT,
        ColumnSpec("Qty Received", "qty_received", _D),
        ColumnSpec("Qty Defective", "qty_defective", _D),
        ColumnSpec("Qty OK", "qty_ok", _OD),
        ColumnSpec("QC Date", "qc_date", _DT),
        ColumnSpec("Warehouse (UAE)", "warehouse", _C, aliases=("Warehouse",)),
        ColumnSpec("Carrier", "carrier", aliases=("Courier", "Agent")),
        _NOTES,
    ),
)

PURCHASES = TableContract(
    "purchases",
    (
        ColumnSpec("Order ID", "order_id", required=True),
        ColumnSpec("SKU", "sku", required=True),
        ColumnSpec("Batch Code", "batch_code"),
        _PRODUCT,
        _VARIANT,
        ColumnSpec("Qty", "qty", _D, aliases=("Qty (pcs)",)),
        ColumnSpec(
            "Unit Landed Cost (EGP)", "unit_landed_cost", _OD, aliases=("Unit Landed Cost",)
        ),
        ColumnSpec("Net Unit Price", "net_unit_price", _OD, aliases=("Net Unit Price (EGP)",)),
        ColumnSpec("Currency", "currency"),
    ),
)

INBOUND_SHIPMENTS = TableContract(
    "inbound_shipments",
    (
        ColumnSpec("Shipment ID", "shipment_id", required=True),
        ColumnSpec("Status", "status"),
        ColumnSpec("Ship Date", "ship_date", _DT),
        ColumnSpec("Actual Arrival", "arrival_date", _DT, aliases=("Arrival Date",)),
    ),
)

TRANSFERS = TableContract(
    "transfers",
    (
        ColumnSpec("Line ID", "line_id"),
        ColumnSpec("Shipment ID", "shipment_id", required=True),
        ColumnSpec("Box ID", "box_id"),
        ColumnSpec("Courier", "courier"),
        ColumnSpec(
            "Warehouse (UAE)", "origin_warehouse", _C, aliases=("Origin Warehouse", "Warehouse")
        ),
        ColumnSpec("Status", "status"),
        ColumnSpec("SKU", "sku", required=True),
        _PRODUCT,
        _VARIANT,
        ColumnSpec("Qty", "qty", _D, required=True, aliases=("Qty (pcs)",)),
        ColumnSpec("Qty Synced", "qty_synced", _D),
        ColumnSpec("Ship Date", "ship_date", _DT),
        ColumnSpec("Actual Arrival", "arrival_date", _DT, aliases=("Arrival Date",)),
        ColumnSpec(
            "Ship Cost (EGP) – per unit or box",
            "ship_cost",
            _D,
            aliases=("Ship Cost (EGP)", "Ship Cost"),
        ),
        ColumnSpec("Customs (EGP)", "customs", _D, aliases=("Customs",)),
        ColumnSpec("Other (EGP)", "other_fees", _D, aliases=("Other", "Other Fees")),
        ColumnSpec("Total Cost (EGP)", "total_cost", _OD, aliases=("Total Cost",)),
        _NOTES,
    ),
)

SALES = TableContract(
    "sales",
    (
        ColumnSpec("Order ID", "order_id", required=True),
        ColumnSpec("SKU", "sku", required=True),
        _PRODUCT,
        _VARIANT,
        ColumnSpec("Warehouse (EG)", "warehouse", _C, aliases=("Warehouse",)),
        ColumnSpec("Courier", "courier"),
        ColumnSpec("Qty", "qty", _D, required=True, aliases=("Qty (pcs)",)),
        ColumnSpec("Unit Price (EGP)", "unit_price", _D, aliases=("Unit Price",)),
        ColumnSpec("Order Status", "order_status", aliases=("Status",)),
        ColumnSpec("Delivered Date", "delivered_date", _DT),
    ),
)

CATALOG = TableContract(
    "catalog",
    (
        ColumnSpec("SKU", "sku", required=True),
        _PRODUCT,
        _VARIANT,
        ColumnSpec("Default Cost (EGP)", "default_cost", _D, aliases=("Default Cost",)),
        ColumnSpec("Default Price (EGP)", "default_price", _D, aliases=("Default Price",)),
    ),
)

LEDGER = TableContract(
    "ledger",
    (
        ColumnSpec("Txn ID", "txn_id"),
        ColumnSpec("Txn Date", "txn_date", _DT, required=True),
        ColumnSpec("Type", "type"),
        ColumnSpec("Source Type", "source_type"),
        ColumnSpec("Source ID", "source_id"),
        ColumnSpec("Batch Code", "batch_code"),
        ColumnSpec("SKU", "sku", required=True),
        _PRODUCT,
        _VARIANT,
        ColumnSpec("Warehouse", "warehouse", _C, required=True),
        ColumnSpec("Qty In", "qty_in", _D, required=True),
        ColumnSpec("Qty Out", "qty_out", _D, required=True),
        ColumnSpec("Unit Cost", "unit_cost", _D, aliases=("Unit Cost (EGP)",)),
        ColumnSpec("Total Cost", "total_cost", _OD, aliases=("Total Cost (EGP)",)),
        ColumnSpec("Currency", "currency"),
        ColumnSpec("Unit Price (Orig)", "unit_price_orig", _D),
        _NOTES,
    ),
)

SNAPSHOTS = TableContract(
    "snapshots",
    (
        ColumnSpec("SKU", "sku"),
        _PRODUCT,
        _VARIANT,
        ColumnSpec("Warehouse", "warehouse", _C, aliases=("Warehouse (UAE)", "Warehouse (EG)")),
        ColumnSpec("On Hand Qty", "on_hand", _D),
        ColumnSpec("Allocated Qty", "allocated", _D),
        ColumnSpec("Available Qty", "available", _D),
        ColumnSpec("Avg Cost", "avg_cost", _D, aliases=("Avg Cost (EGP)",)),
        ColumnSpec("Total Cost", "total_cost", _D, aliases=("Total Cost (EGP)",)),
        ColumnSpec("Last Txn Date", "last_txn_date", _DT),
        ColumnSpec("Last Source Type", "last_source_type"),
        ColumnSpec("Last Source ID", "last_source_id"),
    ),
)

CONTRACTS: dict[str, TableContract] = {
    c.name: c
    for c in (RECEIVING, PURCHASES, INBOUND_SHIPMENTS, TRANSFERS, SALES, CATALOG, LEDGER, SNAPSHOTS)
}


def get_contract(table: str) -> TableContract:
    """
    Look up a table contract by name.

    Raises:
        KeyError: listing the known tables.
    """
    try:
        return CONTRACTS[table]
    except KeyError:
        raise KeyError(f"unknown table {table!r}; known: {', '.join(CONTRACTS)}") from None
