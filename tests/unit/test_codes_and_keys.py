"""Unit tests for code normalization and idempotency key strategies."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from stock_kernel.domain.ledger_record import LedgerRecord, MovementType
from stock_kernel.utils.codes import clean_text, normalize_sku, normalize_warehouse_code
from stock_kernel.utils.idempotency import (
    LEGACY_ROW_NOTE,
    SOURCE_ID,
    TXN_ID,
    run_row_key,
)


class TestWarehouseCodes:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (" uae_attia ", "UAE-ATTIA"),
            ("eg -- cai", "EG-CAI"),
            ("TAN GH", "TAN-GH"),
            ("-kor-", "KOR"),
            (None, ""),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_warehouse_code(raw) == expected

    def test_sku_lookup_form(self):
        assert normalize_sku(" abc 1 ") == "ABC1"

    def test_clean_text(self):
        assert clean_text(None) == ""
        assert clean_text(12) == "12"


def _record(source_row=None, source_id="QC-7"):
    return LedgerRecord.movement(
        MovementType.IN,
        Decimal("4"),
        txn_date=date(2024, 1, 5),
        source_type="QC_UAE",
        source_id=source_id,
        sku="ABC-1",
        warehouse="UAE-KOR",
        source_row=source_row,
    )


def _entry(source_id="", notes="", txn_id="TXN-000000000001", type="IN"):
    return SimpleNamespace(source_id=source_id, notes=notes, txn_id=txn_id, type=type)


class TestKeyStrategies:
    def test_txn_id_key(self):
        record = _record()
        assert TXN_ID.candidate_key(record) == record.txn_id
        assert TXN_ID.ledger_key(_entry()) == "TXN-000000000001"

    def test_source_id_key_includes_direction(self):
        assert SOURCE_ID.candidate_key(_record()) == "IN:QC-7"
        assert SOURCE_ID.ledger_key(_entry(source_id="QC-7")) == "IN:QC-7"
        assert SOURCE_ID.ledger_key(_entry(source_id="QC-7", type="OUT")) == "OUT:QC-7"

    def test_source_id_key_absent_without_source_id(self):
        assert SOURCE_ID.ledger_key(_entry(source_id=" ")) is None

    def test_row_note_key_from_legacy_rows(self):
        assert LEGACY_ROW_NOTE.ledger_key(_entry(notes="QC import; Row 12")) == "row:12"
        assert LEGACY_ROW_NOTE.candidate_key(_record(source_row=12)) == "row:12"

    def test_row_note_key_ignored_when_row_has_source_id(self):
        assert LEGACY_ROW_NOTE.ledger_key(_entry(source_id="QC-7", notes="row 12")) is None

    def test_row_note_key_absent_without_row(self):
        assert LEGACY_ROW_NOTE.candidate_key(_record()) is None
        assert LEGACY_ROW_NOTE.ledger_key(_entry(notes="no position")) is None


def test_run_row_key():
    assert run_row_key("ORD-1", " ABC-1 ", 3) == "ORD-1||ABC-1||3"
