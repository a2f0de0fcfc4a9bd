"""
Import service: source file -> table contract -> source tables.

Orchestrates the source adapters and the table contracts.  Headers are
validated once per file (missing required columns abort the import with a
SchemaError); each row is coerced on its own and a bad row is skipped and
reported without stopping the file.

Write policy per table:
    transfers          upsert by line id; stored qty_synced is kept
    ledger             appended through LedgerStore (legacy export); the
                       caller must hold the ledger lock
    everything else    replaced wholesale

Uses structured logging (LogContext table binding, get_logger("ingestion.*")).
"""

from __future__ import annotations

import hashlib
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from stock_config.schema import InventoryConfig
from stock_ingestion.adapters.base import SourceAdapter, SourceProbe
from stock_ingestion.adapters.csv_adapter import CsvSourceAdapter
from stock_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter
from stock_ingestion.contracts import HeaderBinding, TableContract, get_contract
from stock_kernel.domain.ledger_record import ZERO, LedgerRecord, MovementType
from stock_kernel.exceptions import RowValidationError, ValidationError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.sources import (
    CatalogItem,
    InboundShipment,
    PurchaseLine,
    ReceivingLine,
    SalesLine,
    TransferLine,
)
from stock_services.ledger_store import LedgerStore

logger = get_logger("ingestion.import_service")

LEGACY_SOURCE_TYPE = "LEGACY_IMPORT"

# Transfer fields the transfer connector back-fills; a blank cell keeps them
_BACKFILLED = frozenset({"origin_warehouse", "product_name", "variant", "courier"})

_FORMATS = {".csv": "csv", ".txt": "csv", ".xlsx": "xlsx", ".xlsm": "xlsx"}


@dataclass(frozen=True)
class RowError:
    """A source row that was not imported."""

    row_number: int
    code: str
    message: str


@dataclass(frozen=True)
class ImportResult:
    table: str
    source_filename: str
    rows_read: int
    rows_imported: int
    errors: tuple[RowError, ...] = ()
    unknown_headers: tuple[str, ...] = ()
    duplicates: int = 0

    @property
    def rows_skipped(self) -> int:
        return len(self.errors)


_Rows = list[tuple[int, dict[str, Any]]]
_Writer = Callable[[_Rows], tuple[int, list[RowError], int]]


def _default_adapters() -> dict[str, SourceAdapter]:
    return {
        "csv": CsvSourceAdapter(),
        "xlsx": XlsxSourceAdapter(),
    }


def source_format(path: Path) -> str:
    """Adapter key for a file, from its suffix."""
    try:
        return _FORMATS[path.suffix.lower()]
    except KeyError:
        raise ValueError(f"Unsupported source file type {path.suffix!r}") from None


def derived_id(prefix: str, *parts: Any) -> str:
    """Content-derived identifier for rows that arrive without one."""
    text = "|".join("" if p is None else str(p) for p in parts)
    return f"{prefix}-" + hashlib.sha1(text.encode("utf-8")).hexdigest()[:10].upper()


class SourceImportService:
    """Imports one source file into its table. Uses session, config, adapters."""

    def __init__(
        self,
        session: Session,
        config: InventoryConfig,
        adapters: dict[str, SourceAdapter] | None = None,
    ):
        self._session = session
        self._config = config
        self._adapters = adapters if adapters is not None else _default_adapters()
        self._writers: dict[str, _Writer] = {
            "receiving": self._write_receiving,
            "purchases": self._write_purchases,
            "inbound_shipments": self._write_inbound_shipments,
            "transfers": self._write_transfers,
            "sales": self._write_sales,
            "catalog": self._write_catalog,
            "ledger": self._write_ledger,
        }

    @property
    def tables(self) -> tuple[str, ...]:
        return tuple(self._writers)

    def _adapter(self, path: Path) -> SourceAdapter:
        fmt = source_format(path)
        adapter = self._adapters.get(fmt)
        if adapter is None:
            raise ValueError(f"No adapter for source format {fmt!r}")
        return adapter

    def probe(self, source_path: Path, options: dict[str, Any] | None = None) -> SourceProbe:
        """Preview a source file: row count, columns, sample data."""
        path = Path(source_path)
        return self._adapter(path).probe(path, dict(options or {}))

    def import_file(
        self,
        table: str,
        source_path: Path | str,
        options: dict[str, Any] | None = None,
    ) -> ImportResult:
        """
        Import one file into ``table``.

        Raises:
            KeyError: unknown table.
            SchemaError: a required column is missing from the file.
            ValueError: unsupported file type.
        """
        if table not in self._writers:
            raise KeyError(f"unknown table {table!r}; known: {', '.join(self._writers)}")
        contract = get_contract(table)
        path = Path(source_path)
        opts = {"header_keywords": contract.headers, **(options or {})}

        with LogContext.bind(table=table):
            rows = list(self._adapter(path).read(path, opts))
            if rows:
                headers = list(rows[0].keys())
            else:
                headers = list(self._adapter(path).probe(path, opts).columns)
            binding = contract.bind(headers)
            if binding.unknown_headers:
                logger.debug(
                    "import_unknown_headers",
                    extra={"headers": list(binding.unknown_headers)},
                )

            coerced, errors = self._coerce(contract, rows, binding)
            imported, write_errors, duplicates = self._writers[table](coerced)
            errors.extend(write_errors)
            self._session.flush()

            result = ImportResult(
                table=table,
                source_filename=path.name,
                rows_read=len(rows),
                rows_imported=imported,
                errors=tuple(sorted(errors, key=lambda e: e.row_number)),
                unknown_headers=binding.unknown_headers,
                duplicates=duplicates,
            )
            logger.info(
                "import_completed",
                extra={
                    "source_filename": path.name,
                    "rows_read": result.rows_read,
                    "rows_imported": result.rows_imported,
                    "rows_skipped": result.rows_skipped,
                    "duplicates": duplicates,
                },
            )
            return result

    def _coerce(
        self,
        contract: TableContract,
        rows: list[dict[str, Any]],
        binding: HeaderBinding,
    ) -> tuple[list[tuple[int, dict[str, Any]]], list[RowError]]:
        coerced: list[tuple[int, dict[str, Any]]] = []
        errors: list[RowError] = []
        # Sheet row numbers: the header is row 1
        for offset, raw in enumerate(rows):
            row_number = offset + 2
            try:
                coerced.append((row_number, contract.coerce_row(raw, binding, row_number)))
            except RowValidationError as exc:
                errors.append(RowError(row_number, exc.code, str(exc)))
                logger.warning(
                    "import_row_rejected",
                    extra={"row_number": row_number, "field": exc.field, "reason": exc.reason},
                )
        return coerced, errors

    def _reject(self, table: str, row_number: int, field: str, reason: str) -> RowError:
        exc = RowValidationError(table, row_number, field, reason)
        logger.warning(
            "import_row_rejected",
            extra={"row_number": row_number, "field": field, "reason": reason},
        )
        return RowError(row_number, exc.code, str(exc))

    def _replace(self, model: type, objects: list[Any]) -> None:
        self._session.execute(delete(model))
        self._session.add_all(objects)

    # ------------------------------------------------------------------
    # Writers: (row_number, values) pairs -> (imported, errors, duplicates)
    # ------------------------------------------------------------------

    def _write_receiving(self, rows):
        errors: list[RowError] = []
        objects: list[ReceivingLine] = []
        seen_ids: set[str] = set()
        occurrences: Counter[str] = Counter()
        for row_number, values in rows:
            line_id = values["line_id"]
            if not line_id:
                base = derived_id(
                    "QC",
                    values["order_id"],
                    values["shipment_id"],
                    values["sku"],
                    values["batch_code"],
                    values["variant"],
                )
                occurrences[base] += 1
                line_id = base if occurrences[base] == 1 else f"{base}-{occurrences[base]}"
            if line_id in seen_ids:
                errors.append(self._reject("receiving", row_number, "QC ID", f"duplicate QC ID {line_id!r}"))
                continue
            seen_ids.add(line_id)
            objects.append(ReceivingLine(**{**values, "line_id": line_id}, row_number=row_number))
        self._replace(ReceivingLine, objects)
        return len(objects), errors, 0

    def _write_purchases(self, rows):
        objects = [PurchaseLine(**values) for _, values in rows]
        self._replace(PurchaseLine, objects)
        return len(objects), [], 0

    def _write_inbound_shipments(self, rows):
        # CN->UAE sheets carry one row per SKU; fold them into one header per shipment
        headers: dict[str, InboundShipment] = {}
        for _, values in rows:
            shipment_id = values["shipment_id"]
            if not shipment_id:
                continue
            header = headers.get(shipment_id)
            if header is None:
                headers[shipment_id] = InboundShipment(**values)
                continue
            if values["status"]:
                header.status = values["status"]
            header.ship_date = header.ship_date or values["ship_date"]
            header.arrival_date = header.arrival_date or values["arrival_date"]
        self._replace(InboundShipment, list(headers.values()))
        return len(headers), [], len(rows) - len(headers)

    def _write_transfers(self, rows):
        errors: list[RowError] = []
        existing = {t.line_id: t for t in self._session.scalars(select(TransferLine))}
        seen_ids: set[str] = set()
        occurrences: Counter[str] = Counter()
        imported = 0
        for row_number, values in rows:
            line_id = values["line_id"]
            if not line_id:
                base = derived_id(
                    "TL", values["shipment_id"], values["box_id"], values["sku"], values["variant"]
                )
                occurrences[base] += 1
                line_id = base if occurrences[base] == 1 else f"{base}-{occurrences[base]}"
            if line_id in seen_ids:
                errors.append(self._reject("transfers", row_number, "Line ID", f"duplicate line id {line_id!r}"))
                continue
            seen_ids.add(line_id)
            values = {**values, "line_id": line_id}

            line = existing.get(line_id)
            if line is None:
                self._session.add(TransferLine(**values))
            else:
                for attr, value in values.items():
                    if attr == "qty_synced" or (attr in _BACKFILLED and not value):
                        continue
                    setattr(line, attr, value)
            imported += 1
        return imported, errors, 0

    def _write_sales(self, rows):
        objects = [SalesLine(**values, row_number=row_number) for row_number, values in rows]
        self._replace(SalesLine, objects)
        return len(objects), [], 0

    def _write_catalog(self, rows):
        errors: list[RowError] = []
        objects: dict[str, CatalogItem] = {}
        for row_number, values in rows:
            sku = values["sku"]
            if not sku:
                errors.append(self._reject("catalog", row_number, "SKU", "missing SKU"))
                continue
            if sku in objects:
                errors.append(self._reject("catalog", row_number, "SKU", f"duplicate SKU {sku!r}"))
                continue
            objects[sku] = CatalogItem(**values)
        self._replace(CatalogItem, list(objects.values()))
        return len(objects), errors, 0

    def _write_ledger(self, rows):
        errors: list[RowError] = []
        records: list[LedgerRecord] = []
        for row_number, values in rows:
            try:
                records.append(self._ledger_record(values))
            except ValidationError as exc:
                errors.append(RowError(row_number, exc.code, str(exc)))
                logger.warning(
                    "import_row_rejected",
                    extra={"row_number": row_number, "reason": str(exc)},
                )
        store = LedgerStore(self._session, self._config.ledger.write_chunk_size)
        result = store.append(records)
        return result.appended_count, errors, len(result.duplicates)

    def _ledger_record(self, values: dict[str, Any]) -> LedgerRecord:
        qty_in: Decimal = values["qty_in"]
        qty_out: Decimal = values["qty_out"]
        movement_type = values["type"].upper() or (
            MovementType.IN.value if qty_in > ZERO else MovementType.OUT.value
        )
        return LedgerRecord(
            txn_id=values["txn_id"],
            txn_date=values["txn_date"],
            type=movement_type,
            source_type=values["source_type"] or LEGACY_SOURCE_TYPE,
            source_id=values["source_id"],
            batch_code=values["batch_code"],
            sku=values["sku"],
            product_name=values["product_name"],
            variant=values["variant"],
            warehouse=values["warehouse"],
            qty_in=qty_in,
            qty_out=qty_out,
            unit_cost=values["unit_cost"],
            total_cost=values["total_cost"],
            currency=values["currency"] or self._config.currency,
            unit_price_orig=values["unit_price_orig"],
            notes=values["notes"],
        )
