"""
Unit tests for deterministic txn id hashing.

Verifies:
- Canonical number rendering (10 == 10.0 == 10.000)
- Fingerprint field order
- Txn id format and stability
"""

import hashlib
import re
from datetime import date, datetime
from decimal import Decimal

import pytest

from stock_kernel.utils.hashing import (
    TXN_ID_FIELDS,
    canonical_day,
    canonical_number,
    hash_payload,
    make_txn_id,
    txn_fingerprint,
)


def _fields(**overrides):
    fields = {
        "type": "IN",
        "source_type": "QC_UAE",
        "source_id": "QC-1",
        "batch_code": "",
        "sku": "ABC-1",
        "warehouse": "UAE-ATTIA",
        "qty_in": Decimal("10"),
        "qty_out": Decimal("0"),
        "unit_cost": Decimal("100"),
        "currency": "EGP",
        "unit_price_orig": Decimal("0"),
        "txn_date": date(2024, 1, 5),
    }
    fields.update(overrides)
    return fields


class TestCanonicalNumber:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (10, "10"),
            (10.0, "10"),
            (Decimal("10.000"), "10"),
            (Decimal("0.50"), "0.5"),
            (Decimal("1E+2"), "100"),
            (Decimal("12.3456"), "12.3456"),
            (None, "0"),
            ("", "0"),
        ],
    )
    def test_shortest_plain_form(self, value, expected):
        assert canonical_number(value) == expected

    def test_day_truncates_datetime(self):
        assert canonical_day(datetime(2024, 1, 5, 23, 59)) == "2024-01-05"
        assert canonical_day(None) == ""


class TestFingerprint:
    def test_field_order_is_fixed(self):
        assert TXN_ID_FIELDS[0] == "type"
        assert TXN_ID_FIELDS[-1] == "txn_date"
        assert len(TXN_ID_FIELDS) == 12

    def test_pipe_joined_canonical_values(self):
        assert txn_fingerprint(_fields()) == (
            "IN|QC_UAE|QC-1||ABC-1|UAE-ATTIA|10|0|100|EGP|0|2024-01-05"
        )

    def test_missing_fields_are_empty_or_zero(self):
        assert txn_fingerprint({"type": "OUT"}) == "OUT||||||0|0|0||0|"


class TestMakeTxnId:
    def test_format(self):
        assert re.fullmatch(r"TXN-[0-9A-F]{12}", make_txn_id(_fields()))

    def test_is_sha1_prefix_of_fingerprint(self):
        fp = txn_fingerprint(_fields())
        expected = "TXN-" + hashlib.sha1(fp.encode("utf-8")).hexdigest()[:12].upper()
        assert make_txn_id(_fields()) == expected

    def test_numeric_representation_does_not_matter(self):
        assert make_txn_id(_fields(qty_in=10.0, unit_cost="100.00")) == make_txn_id(_fields())

    def test_time_of_day_does_not_matter(self):
        assert make_txn_id(_fields(txn_date=datetime(2024, 1, 5, 18, 30))) == make_txn_id(
            _fields()
        )

    def test_content_change_changes_id(self):
        assert make_txn_id(_fields(qty_in=Decimal("11"))) != make_txn_id(_fields())
        assert make_txn_id(_fields(warehouse="UAE-KOR")) != make_txn_id(_fields())


def test_hash_payload_ignores_key_order():
    assert hash_payload({"a": 1, "b": Decimal("2.0")}) == hash_payload({"b": Decimal("2.0"), "a": 1})
