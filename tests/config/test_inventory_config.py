"""Tests for loading and validating the inventory configuration."""

from __future__ import annotations

import copy
from decimal import Decimal

import pytest
import yaml

from stock_config import DEFAULT_CONFIG_PATH, load_config
from stock_config.loader import load_yaml_file, parse_config
from stock_kernel.exceptions import ConfigurationError

MINIMAL = {
    "currency": "usd",
    "warehouse_groups": {"A": {"members": ["a_1", "a 2"]}},
    "receiving": {"warehouse_group": "A"},
    "transfer": {"origin_group": "A", "destination_warehouse": "a 1"},
    "sales": {"warehouse_group": "A"},
}


def _doc(**changes):
    doc = copy.deepcopy(MINIMAL)
    doc.update(changes)
    return doc


class TestDefaults:
    """The packaged defaults describe the UAE -> EG business."""

    def test_groups(self, config):
        assert config.currency == "EGP"
        assert config.group_names == ("UAE", "EG")
        uae = config.group("UAE")
        assert "UAE-ATTIA" in uae.members
        assert uae.prefixes == ("UAE-",)
        assert config.group("EG").members == ("TAN-GH", "EG-CAI", "EG-TANTA")

    def test_carrier_rules_in_file_order(self, config):
        assert [r.warehouse for r in config.carrier_rules] == ["UAE-ATTIA", "UAE-KOR"]
        assert "عطية" in config.carrier_rules[0].labels

    def test_connector_sections(self, config):
        assert config.receiving.source_type == "QC_UAE"
        assert config.transfer.source_type == "SHIP_UAE_EG"
        assert config.transfer.destination_warehouse == "TAN-GH"
        assert config.sales.source_type == "SALE_EG"
        assert "delivered" in config.sales.delivered_exact

    def test_ledger_and_snapshot_policy(self, config):
        assert config.ledger.lock_name == "INV_LEDGER_WRITE"
        assert config.ledger.lock_timeout_seconds == 25
        assert config.ledger.write_chunk_size == 500
        assert config.snapshot.keep_zero_rows is False
        assert config.snapshot.zero_value_tolerance == Decimal("0.05")

    def test_checksum_is_stable(self, config):
        again = parse_config(load_yaml_file(DEFAULT_CONFIG_PATH))
        assert again.checksum == config.checksum
        assert len(config.checksum) == 64

    def test_unknown_group_lookup(self, config):
        with pytest.raises(KeyError):
            config.group("KSA")


class TestLoadFromFile:
    def test_minimal_file(self, tmp_path):
        path = tmp_path / "inventory.yaml"
        path.write_text(yaml.safe_dump(MINIMAL), encoding="utf-8")

        config = load_config(path)

        assert config.currency == "USD"
        assert config.group("A").members == ("A-1", "A-2")
        assert config.transfer.destination_warehouse == "A-1"
        assert config.carrier_rules == ()
        assert config.ledger.write_chunk_size == 500

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")


class TestValidation:
    def test_missing_currency(self):
        doc = _doc()
        del doc["currency"]
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(doc)
        assert exc_info.value.key == "currency"

    def test_missing_groups(self):
        with pytest.raises(ConfigurationError):
            parse_config(_doc(warehouse_groups={}))

    def test_group_without_members_or_prefixes(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(_doc(warehouse_groups={"A": {}}))
        assert exc_info.value.key == "warehouse_groups.A"

    def test_dangling_group_reference(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(_doc(sales={"warehouse_group": "EG"}))
        assert exc_info.value.key == "sales.warehouse_group"

    def test_carrier_rule_without_labels(self):
        with pytest.raises(ConfigurationError):
            parse_config(_doc(carrier_rules=[{"warehouse": "A-1", "labels": []}]))

    def test_carrier_rule_without_warehouse(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(_doc(carrier_rules=[{"labels": ["x"]}]))
        assert exc_info.value.key == "carrier_rules[0].warehouse"

    def test_non_positive_chunk(self):
        with pytest.raises(ConfigurationError):
            parse_config(_doc(ledger={"write_chunk_size": 0}))

    def test_bad_tolerance(self):
        with pytest.raises(ConfigurationError):
            parse_config(_doc(snapshot={"zero_value_tolerance": "lots"}))
