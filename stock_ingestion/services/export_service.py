"""
Export service: ledger, snapshots and transfer lines back to tabular files.

Files are written with the canonical contract headers, so an exported file
can be re-imported through the same contract.  Snapshots are partitioned
by warehouse group: an XLSX workbook gets one sheet per group, a CSV file
holds exactly one group.
"""

from __future__ import annotations

import csv
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.styles import Font
from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_config.schema import InventoryConfig
from stock_ingestion.contracts import TableContract, get_contract
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.ledger import LedgerEntry
from stock_kernel.models.sources import TransferLine
from stock_kernel.utils.hashing import canonical_number
from stock_services.snapshot_service import SnapshotService

logger = get_logger("ingestion.export_service")

EXPORTABLE_TABLES = ("ledger", "snapshots", "transfers")

HEADER_FONT = Font(bold=True)


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return canonical_number(value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _row_values(contract: TableContract, obj: Any) -> list[Any]:
    return [getattr(obj, column.attr) for column in contract.columns]


class TableExportService:
    """Writes persisted tables to CSV or XLSX."""

    def __init__(self, session: Session, config: InventoryConfig):
        self._session = session
        self._config = config

    def export(self, table: str, target_path: Path | str, group: str | None = None) -> int:
        """
        Export ``table`` to ``target_path``; returns the number of data rows.

        Raises:
            ValueError: unknown table, unsupported file type, or a CSV
                snapshot export without a single warehouse group.
            KeyError: unknown warehouse group.
        """
        if table not in EXPORTABLE_TABLES:
            raise ValueError(
                f"Table {table!r} cannot be exported; choose one of {', '.join(EXPORTABLE_TABLES)}"
            )
        path = Path(target_path)
        suffix = path.suffix.lower()
        if suffix not in (".csv", ".xlsx"):
            raise ValueError(f"Unsupported export file type {path.suffix!r}")

        contract = get_contract(table)
        sheets = self._sheets(table, group)
        if suffix == ".csv":
            if len(sheets) != 1:
                raise ValueError("CSV snapshot export needs exactly one warehouse group")
            (rows,) = sheets.values()
            count = self._write_csv(path, contract, rows)
        else:
            count = self._write_xlsx(path, contract, sheets)

        with LogContext.bind(table=table):
            logger.info(
                "export_completed",
                extra={"target": path.name, "rows": count, "sheets": len(sheets)},
            )
        return count

    def _sheets(self, table: str, group: str | None) -> dict[str, list[Any]]:
        if table == "ledger":
            entries = self._session.scalars(select(LedgerEntry).order_by(LedgerEntry.sequence))
            return {"Inventory Ledger": list(entries)}
        if table == "transfers":
            lines = self._session.scalars(
                select(TransferLine).order_by(TransferLine.shipment_id, TransferLine.line_id)
            )
            return {"Transfers": list(lines)}

        snapshots = SnapshotService(self._session, self._config)
        groups = [self._config.group(group).name] if group else list(self._config.group_names)
        return {f"Inventory Snapshot {name}": snapshots.read(name) for name in groups}

    def _write_csv(self, path: Path, contract: TableContract, rows: Iterable[Any]) -> int:
        count = 0
        with path.open("w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(contract.headers)
            for obj in rows:
                writer.writerow([_csv_cell(v) for v in _row_values(contract, obj)])
                count += 1
        return count

    def _write_xlsx(
        self, path: Path, contract: TableContract, sheets: dict[str, list[Any]]
    ) -> int:
        wb = openpyxl.Workbook()
        wb.remove(wb.active)
        count = 0
        for title, rows in sheets.items():
            # Excel caps sheet titles at 31 characters
            ws = wb.create_sheet(title=title[:31])
            ws.append(list(contract.headers))
            for cell in ws[1]:
                cell.font = HEADER_FONT
            ws.freeze_panes = "A2"
            for obj in rows:
                ws.append(_row_values(contract, obj))
                count += 1
        wb.save(path)
        return count
