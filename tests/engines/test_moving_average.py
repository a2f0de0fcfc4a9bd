"""
Tests for the moving weighted-average snapshot projection.

    IN 10 @ 100, IN 10 @ 120, OUT 5  ->  on_hand 15, avg 110, total 1650
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from stock_engines.valuation import (
    PositionAccumulator,
    SnapshotView,
    project_all,
    project_ledger,
)
from stock_kernel.domain.ledger_record import LedgerRecord, MovementType


def _move(kind, qty, unit_cost=0, warehouse="UAE-KOR", sku="ABC-1", day=5, source_id=None, variant=""):
    return LedgerRecord.movement(
        kind,
        Decimal(str(qty)),
        txn_date=date(2024, 1, day),
        source_type="TEST",
        source_id=source_id or f"{kind}-{qty}-{day}",
        sku=sku,
        warehouse=warehouse,
        unit_cost=Decimal(str(unit_cost)),
        variant=variant,
        product_name="Widget",
    )


@pytest.fixture
def keep_zero_config(config):
    return replace(config, snapshot=replace(config.snapshot, keep_zero_rows=True))


class TestWeightedAverage:
    def test_two_receipts_then_issue(self, config):
        entries = [
            _move(MovementType.IN, 10, 100, day=1),
            _move(MovementType.IN, 10, 120, day=2),
            _move(MovementType.OUT, 5, day=3),
        ]
        (row,) = project_ledger(entries, config, "UAE")
        assert row.on_hand == Decimal("15")
        assert row.avg_cost == Decimal("110.0000")
        assert row.total_cost == Decimal("1650.0000")
        assert row.available == Decimal("15")
        assert row.product_name == "Widget"

    def test_issue_does_not_move_average(self):
        position = PositionAccumulator(sku="ABC-1", warehouse="UAE-KOR")
        position.apply(_move(MovementType.IN, 4, 25))
        position.apply(_move(MovementType.OUT, 1))
        assert position.avg_cost == Decimal("25")
        assert position.total_cost == Decimal("75")

    def test_variants_are_separate_positions(self, config):
        entries = [
            _move(MovementType.IN, 1, 10, variant="Red"),
            _move(MovementType.IN, 2, 10, variant="Blue"),
        ]
        rows = project_ledger(entries, config, "UAE")
        assert sorted((r.variant, r.on_hand) for r in rows) == [
            ("Blue", Decimal("2")),
            ("Red", Decimal("1")),
        ]


class TestOvership:
    def test_overship_clamps_to_zero(self, keep_zero_config, captured_logs):
        entries = [_move(MovementType.IN, 5, 10), _move(MovementType.OUT, 8)]
        (row,) = project_ledger(entries, keep_zero_config, "UAE")
        assert row.on_hand == Decimal("0")
        assert row.total_cost == Decimal("0.0000")
        # Last average kept while empty
        assert row.avg_cost == Decimal("10.0000")
        assert any(r["message"] == "snapshot_overship" for r in captured_logs())

    def test_zero_rows_suppressed_by_default(self, config):
        entries = [_move(MovementType.IN, 5, 10), _move(MovementType.OUT, 5)]
        assert project_ledger(entries, config, "UAE") == []

    def test_apply_reports_overship(self):
        position = PositionAccumulator(sku="ABC-1", warehouse="UAE-KOR")
        assert position.apply(_move(MovementType.OUT, 1)) is True
        # Running position stays signed; only the emitted row is clamped
        assert position.on_hand == Decimal("-1")
        assert position.to_row("UAE").on_hand == Decimal("0")

    def test_issue_before_receipt_conserves_quantity(self, config):
        entries = [
            _move(MovementType.OUT, 5, warehouse="TAN-GH", day=1),
            _move(MovementType.IN, 10, 40, warehouse="TAN-GH", day=2),
        ]
        (row,) = project_all(entries, config)["EG"]
        assert row.on_hand == Decimal("5")
        assert row.avg_cost == Decimal("40.0000")
        assert row.total_cost == Decimal("200.0000")

    def test_receipt_after_overship_values_remainder_at_its_cost(self, config):
        entries = [
            _move(MovementType.IN, 5, 10, day=1),
            _move(MovementType.OUT, 8, day=2),
            _move(MovementType.IN, 10, 20, day=3),
        ]
        (row,) = project_ledger(entries, config, "UAE")
        assert row.on_hand == Decimal("7")
        assert row.avg_cost == Decimal("20.0000")
        assert row.total_cost == Decimal("140.0000")

    def test_still_short_at_end_is_suppressed(self, config, captured_logs):
        entries = [_move(MovementType.IN, 2, 10, day=1), _move(MovementType.OUT, 3, day=2)]
        assert project_ledger(entries, config, "UAE") == []
        assert any(r["message"] == "snapshot_short_position" for r in captured_logs())


class TestStoredTotalCost:
    def test_receipt_total_cost_overrides_unit_cost(self, config):
        receipt = LedgerRecord.movement(
            MovementType.IN,
            Decimal("4"),
            txn_date=date(2024, 1, 5),
            source_type="LEGACY",
            source_id="L-1",
            sku="ABC-1",
            warehouse="UAE-KOR",
            unit_cost=Decimal("25"),
            total_cost=Decimal("120"),
        )
        (row,) = project_ledger([receipt], config, "UAE")
        assert row.total_cost == Decimal("120.0000")
        assert row.avg_cost == Decimal("30.0000")

    def test_zero_total_cost_falls_back_to_unit_cost(self):
        position = PositionAccumulator(sku="ABC-1", warehouse="UAE-KOR")
        position.apply(_move(MovementType.IN, 3, 7))
        assert position.total_cost == Decimal("21")


class TestLastMovement:
    def test_latest_date_wins(self, config):
        entries = [
            _move(MovementType.IN, 1, 10, day=9, source_id="late"),
            _move(MovementType.IN, 1, 10, day=2, source_id="early"),
        ]
        (row,) = project_ledger(entries, config, "UAE")
        assert row.last_txn_date == date(2024, 1, 9)
        assert row.last_source_id == "late"

    def test_equal_dates_resolve_to_later_insertion(self, config):
        entries = [
            _move(MovementType.IN, 1, 10, day=4, source_id="first"),
            _move(MovementType.IN, 2, 10, day=4, source_id="second"),
        ]
        (row,) = project_ledger(entries, config, "UAE")
        assert row.last_source_id == "second"
        assert row.last_source_type == "TEST"


class TestGroupPartitions:
    def test_rows_land_in_their_group(self, config):
        entries = [
            _move(MovementType.IN, 3, 10, warehouse="UAE-KOR"),
            _move(MovementType.IN, 2, 12, warehouse="TAN-GH"),
        ]
        groups = project_all(entries, config)
        assert set(groups) == {"UAE", "EG"}
        assert [r.warehouse for r in groups["UAE"]] == ["UAE-KOR"]
        assert [r.warehouse for r in groups["EG"]] == ["TAN-GH"]

    def test_ungrouped_warehouse_left_out(self, config, captured_logs):
        groups = project_all([_move(MovementType.IN, 1, 1, warehouse="XYZ")], config)
        assert groups == {"UAE": [], "EG": []}
        assert any(r["message"] == "snapshot_ungrouped_warehouse" for r in captured_logs())

    def test_unknown_group_raises(self, config):
        with pytest.raises(KeyError):
            project_ledger([], config, "KSA")

    def test_projection_is_deterministic(self, config):
        entries = [
            _move(MovementType.IN, 7, 3, day=1),
            _move(MovementType.OUT, 2, day=2),
            _move(MovementType.IN, 1, 9, day=3),
        ]
        assert project_all(entries, config) == project_all(list(entries), config)


class TestSnapshotView:
    def test_lookups(self, config):
        view = SnapshotView.from_groups(
            project_all(
                [
                    _move(MovementType.IN, 3, 10, warehouse="UAE-KOR"),
                    _move(MovementType.IN, 1, 0, warehouse="UAE-DXB"),
                    _move(MovementType.IN, 2, 12, warehouse="TAN-GH"),
                ],
                config,
            )
        )
        assert view.warehouses_for("ABC-1", "UAE") == ["UAE-KOR", "UAE-DXB"]
        assert view.warehouses_for("ABC-1") == ["UAE-KOR", "UAE-DXB", "TAN-GH"]
        assert view.avg_cost("ABC-1", "uae kor") == Decimal("10.0000")
        # Zero-cost positions give no usable average
        assert view.avg_cost("ABC-1", "UAE-DXB") is None
        assert view.avg_cost("NOPE", "UAE-KOR") is None
        assert view.position("ABC-1", "TAN-GH").on_hand == Decimal("2")
