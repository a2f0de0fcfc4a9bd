"""
Receiving connector: accepted QC quantities become IN movements.

Every test goes through SyncRunner so that lock, transaction and snapshot
rebuild are exercised the way the CLI uses them.
"""

from datetime import date
from decimal import Decimal

import pytest

from stock_kernel.domain.ledger_record import LedgerRecord, MovementType
from stock_kernel.models.sources import InboundShipment, PurchaseLine, ReceivingLine
from stock_services.connectors.receiving import accepted_quantity
from stock_services.ledger_store import LedgerStore


@pytest.fixture
def append_ledger(session_factory):
    def _append(*records):
        with session_factory() as s:
            LedgerStore(s).append(list(records))
            s.commit()

    return _append


class TestAcceptedQuantity:
    def test_qty_ok_wins(self):
        line = ReceivingLine(line_id="QC-1", qty_received=Decimal("12"), qty_ok=Decimal("9"))
        assert accepted_quantity(line) == Decimal("9")

    def test_received_minus_defective(self):
        line = ReceivingLine(
            line_id="QC-1", qty_received=Decimal("12"), qty_defective=Decimal("2")
        )
        assert accepted_quantity(line) == Decimal("10")

    def test_never_negative(self):
        line = ReceivingLine(
            line_id="QC-1", qty_received=Decimal("1"), qty_defective=Decimal("3")
        )
        assert accepted_quantity(line) == Decimal("0")


class TestReceivingRerun:
    """A QC line posts exactly once no matter how often the sync runs."""

    @pytest.fixture(autouse=True)
    def _source(self, seed):
        seed(
            ReceivingLine(
                line_id="QC-1",
                row_number=2,
                order_id="PO-1",
                sku="ABC-1",
                qty_received=Decimal("12"),
                qty_defective=Decimal("2"),
                carrier="Attia",
                qc_date=date(2024, 1, 5),
            ),
            PurchaseLine(order_id="PO-1", sku="ABC-1", unit_landed_cost=Decimal("100")),
        )

    def test_first_run_posts_one_in(self, runner, read_ledger):
        result = runner.run("receiving")

        summary = result.summaries[0]
        assert summary.posted == 1
        assert summary.candidates == 1
        [entry] = read_ledger()
        assert entry.type == "IN"
        assert entry.source_type == "QC_UAE"
        assert entry.source_id == "QC-1"
        assert entry.warehouse == "UAE-ATTIA"
        assert entry.qty_in == Decimal("10")
        assert entry.unit_cost == Decimal("100")
        assert entry.total_cost == Decimal("1000")
        assert entry.batch_code == "PO-1||ABC-1"
        assert entry.currency == "EGP"
        assert entry.notes == "QC QC-1; row 2"
        assert entry.txn_id.startswith("TXN-")

    def test_second_run_posts_nothing(self, runner, read_ledger):
        runner.run("receiving")
        second = runner.run("receiving").summaries[0]

        assert second.posted == 0
        assert second.duplicates == 1
        assert len(read_ledger()) == 1

    def test_snapshot_after_receipt(self, runner, read_snapshots):
        runner.run("receiving")
        [row] = read_snapshots("UAE")
        assert row.sku == "ABC-1"
        assert row.warehouse == "UAE-ATTIA"
        assert row.on_hand == Decimal("10")
        assert row.avg_cost == Decimal("100")
        assert row.last_source_id == "QC-1"
        assert read_snapshots("EG") == []


class TestReceivingCost:
    def test_batch_code_match_uses_net_price(self, seed, runner, read_ledger):
        seed(
            ReceivingLine(
                line_id="QC-1",
                sku="ABC-1",
                batch_code="B-9",
                qty_ok=Decimal("4"),
                warehouse="uae_kor",
                qc_date=date(2024, 1, 5),
            ),
            PurchaseLine(order_id="PO-X", sku="ABC-1", batch_code="B-9", net_unit_price=Decimal("80")),
        )
        runner.run("receiving")

        [entry] = read_ledger()
        assert entry.warehouse == "UAE-KOR"
        assert entry.unit_cost == Decimal("80")

    def test_unresolved_cost_posts_at_zero(self, seed, runner, read_ledger):
        seed(
            ReceivingLine(
                line_id="QC-1",
                sku="ABC-1",
                qty_ok=Decimal("4"),
                warehouse="UAE-KOR",
                qc_date=date(2024, 1, 5),
            )
        )
        runner.run("receiving")

        [entry] = read_ledger()
        assert entry.unit_cost == Decimal("0")
        assert "cost unresolved" in entry.notes

    def test_missing_qc_date_uses_clock(self, seed, runner, read_ledger):
        seed(ReceivingLine(line_id="QC-1", sku="ABC-1", qty_ok=Decimal("1"), warehouse="UAE-KOR"))
        runner.run("receiving")

        assert read_ledger()[0].txn_date == date(2024, 3, 1)


class TestReceivingEligibility:
    def test_shipment_in_transit_waits(self, seed, runner, read_ledger, session_factory):
        seed(
            InboundShipment(shipment_id="CN-1", status="in transit"),
            ReceivingLine(
                line_id="QC-1",
                shipment_id="CN-1",
                sku="ABC-1",
                qty_ok=Decimal("5"),
                warehouse="UAE-KOR",
            ),
        )
        summary = runner.run("receiving").summaries[0]
        assert summary.ineligible == 1
        assert read_ledger() == []

        with session_factory() as s:
            shipment = s.query(InboundShipment).filter_by(shipment_id="CN-1").one()
            shipment.arrival_date = date(2024, 2, 1)
            s.commit()

        summary = runner.run("receiving").summaries[0]
        assert summary.posted == 1

    def test_arrived_status_is_enough(self, seed, runner):
        seed(
            InboundShipment(shipment_id="CN-1", status="Arrived"),
            ReceivingLine(
                line_id="QC-1",
                shipment_id="CN-1",
                sku="ABC-1",
                qty_ok=Decimal("5"),
                warehouse="UAE-KOR",
            ),
        )
        assert runner.run("receiving").summaries[0].posted == 1

    def test_unknown_shipment_is_ineligible(self, seed, runner):
        seed(
            ReceivingLine(
                line_id="QC-1",
                shipment_id="CN-404",
                sku="ABC-1",
                qty_ok=Decimal("5"),
                warehouse="UAE-KOR",
            )
        )
        assert runner.run("receiving").summaries[0].ineligible == 1

    def test_zero_accepted_is_ineligible(self, seed, runner):
        seed(ReceivingLine(line_id="QC-1", sku="ABC-1", qty_ok=Decimal("0"), warehouse="UAE-KOR"))
        summary = runner.run("receiving").summaries[0]
        assert summary.ineligible == 1
        assert summary.posted == 0

    def test_unresolved_warehouse_is_skipped(self, seed, runner, read_ledger):
        seed(
            ReceivingLine(line_id="QC-1", sku="ABC-1", qty_ok=Decimal("3")),
            ReceivingLine(line_id="QC-2", sku="XYZ-9", qty_ok=Decimal("3"), carrier="الكور"),
        )
        summary = runner.run("receiving").summaries[0]

        assert summary.posted == 1
        [skipped] = summary.skipped
        assert skipped.row_key == "QC-1"
        assert skipped.code == "UNRESOLVED_WAREHOUSE"
        assert read_ledger()[0].warehouse == "UAE-KOR"


class TestLegacyPostings:
    def test_row_note_posting_suppresses_repost(self, seed, runner, read_ledger, append_ledger):
        append_ledger(
            LedgerRecord.movement(
                MovementType.IN,
                Decimal("10"),
                txn_date=date(2023, 12, 1),
                source_type="QC_UAE",
                source_id="",
                sku="ABC-1",
                warehouse="UAE-ATTIA",
                notes="QC import; row 7",
            )
        )
        seed(
            ReceivingLine(
                line_id="QC-7",
                row_number=7,
                sku="ABC-1",
                qty_ok=Decimal("10"),
                warehouse="UAE-ATTIA",
            )
        )
        summary = runner.run("receiving").summaries[0]

        assert summary.posted == 0
        assert summary.duplicates == 1
        assert len(read_ledger()) == 1

    def test_source_id_posting_suppresses_repost(self, seed, runner, read_ledger, append_ledger):
        # Same QC line, posted earlier with a different cost
        append_ledger(
            LedgerRecord.movement(
                MovementType.IN,
                Decimal("10"),
                txn_date=date(2023, 12, 1),
                source_type="QC_UAE",
                source_id="QC-7",
                sku="ABC-1",
                warehouse="UAE-ATTIA",
                unit_cost=Decimal("55"),
            )
        )
        seed(ReceivingLine(line_id="QC-7", sku="ABC-1", qty_ok=Decimal("10"), warehouse="UAE-ATTIA"))

        summary = runner.run("receiving").summaries[0]
        assert summary.duplicates == 1
        assert len(read_ledger()) == 1
