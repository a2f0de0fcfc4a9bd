"""Tests for TableExportService (CSV / XLSX with contract headers)."""

import csv
from datetime import date
from decimal import Decimal

import openpyxl
import pytest

from stock_ingestion.contracts import LEDGER, SNAPSHOTS
from stock_ingestion.services import SourceImportService, TableExportService
from stock_kernel.domain.ledger_record import LedgerRecord, MovementType
from stock_services.ledger_store import LedgerStore
from stock_services.snapshot_service import SnapshotService


@pytest.fixture
def populated(session, config):
    def _in(qty, cost, warehouse, source_id):
        return LedgerRecord.movement(
            MovementType.IN,
            Decimal(qty),
            txn_date=date(2024, 1, 5),
            source_type="QC_UAE",
            source_id=source_id,
            sku="ABC-1",
            warehouse=warehouse,
            unit_cost=Decimal(cost),
            currency="EGP",
            notes=f"QC {source_id}",
        )

    LedgerStore(session).append(
        [
            _in("10", "100", "UAE-KOR", "QC-1"),
            _in("4", "12.5", "TAN-GH", "QC-2"),
        ]
    )
    SnapshotService(session, config).rebuild_all()
    return session


@pytest.fixture
def exporter(populated, config):
    return TableExportService(populated, config)


class TestLedgerExport:
    def test_csv_uses_contract_headers(self, exporter, tmp_path):
        path = tmp_path / "ledger.csv"
        assert exporter.export("ledger", path) == 2

        with path.open(encoding="utf-8", newline="") as f:
            rows = list(csv.reader(f))
        assert tuple(rows[0]) == LEDGER.headers
        first = dict(zip(rows[0], rows[1]))
        assert first["Txn ID"].startswith("TXN-")
        assert first["Qty In"] == "10"
        assert first["Unit Cost"] == "100"
        assert first["Txn Date"] == "2024-01-05"

    def test_exported_ledger_reimports_as_duplicates(self, exporter, populated, config, tmp_path):
        path = tmp_path / "ledger.csv"
        exporter.export("ledger", path)

        result = SourceImportService(populated, config).import_file("ledger", path)

        assert result.rows_imported == 0
        assert result.duplicates == 2


class TestSnapshotExport:
    def test_xlsx_one_sheet_per_group(self, exporter, tmp_path):
        path = tmp_path / "snapshots.xlsx"
        assert exporter.export("snapshots", path) == 2

        wb = openpyxl.load_workbook(path)
        assert wb.sheetnames == ["Inventory Snapshot UAE", "Inventory Snapshot EG"]
        ws = wb["Inventory Snapshot EG"]
        header = [c.value for c in ws[1]]
        assert tuple(header) == SNAPSHOTS.headers
        row = dict(zip(header, [c.value for c in ws[2]]))
        assert row["Warehouse"] == "TAN-GH"
        assert Decimal(str(row["Avg Cost"])) == Decimal("12.5")

    def test_csv_single_group(self, exporter, tmp_path):
        path = tmp_path / "uae.csv"
        assert exporter.export("snapshots", path, group="UAE") == 1

    def test_csv_needs_group(self, exporter, tmp_path):
        with pytest.raises(ValueError, match="warehouse group"):
            exporter.export("snapshots", tmp_path / "all.csv")

    def test_unknown_group(self, exporter, tmp_path):
        with pytest.raises(KeyError):
            exporter.export("snapshots", tmp_path / "x.xlsx", group="KSA")


def test_unexportable_table(exporter, tmp_path):
    with pytest.raises(ValueError, match="cannot be exported"):
        exporter.export("sales", tmp_path / "sales.csv")
