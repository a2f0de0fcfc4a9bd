"""
ReceivingConnector -- posts accepted QC quantities as IN movements.

Source: ``receiving_lines`` (one QC inspection line per SKU received at a
UAE warehouse), with ``inbound_shipments`` for eligibility and
``purchase_lines`` for cost.

Rules:
    qty      = qty_ok when recorded, else max(0, received - defective)
    eligible = qty > 0 and (no shipment id, or the shipment has an arrival
               date or an arrived status)
    source   = the QC line id; batch code defaults to ``order||sku``
    cost     = purchase unit landed cost, else net unit price, matched by
               batch code first and order+SKU second; zero when unresolved
               (noted on the row)
    keys     = TXN_ID, SOURCE_ID, LEGACY_ROW_NOTE
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from stock_config.schema import ReceivingSettings
from stock_kernel.domain.ledger_record import ZERO, LedgerRecord, MovementType, quantize_cost
from stock_kernel.exceptions import IntegrityError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.sources import InboundShipment, PurchaseLine, ReceivingLine
from stock_kernel.utils.codes import clean_text
from stock_kernel.utils.idempotency import LEGACY_ROW_NOTE, SOURCE_ID, TXN_ID, run_row_key
from stock_services.connectors.base import SummaryBuilder, SyncContext, SyncSummary

logger = get_logger("services.connectors.receiving")

KEY_STRATEGIES = (TXN_ID, SOURCE_ID, LEGACY_ROW_NOTE)


def accepted_quantity(line: ReceivingLine) -> Decimal:
    """Units that passed QC."""
    if line.qty_ok is not None:
        return Decimal(line.qty_ok)
    return max(ZERO, Decimal(line.qty_received or ZERO) - Decimal(line.qty_defective or ZERO))


class _PurchaseCosts:
    """Unit cost lookup over purchase lines (first match wins)."""

    def __init__(self, lines: list[PurchaseLine]):
        self._by_batch: dict[str, PurchaseLine] = {}
        self._by_order_sku: dict[tuple[str, str], PurchaseLine] = {}
        for line in lines:
            batch = clean_text(line.batch_code)
            if batch:
                self._by_batch.setdefault(batch, line)
            self._by_order_sku.setdefault(
                (clean_text(line.order_id), clean_text(line.sku)), line
            )

    @staticmethod
    def _unit_cost(line: PurchaseLine | None) -> Decimal | None:
        if line is None:
            return None
        for value in (line.unit_landed_cost, line.net_unit_price):
            if value is not None and Decimal(value) > ZERO:
                return Decimal(value)
        return None

    def lookup(self, batch_code: str, order_id: str, sku: str) -> Decimal | None:
        cost = self._unit_cost(self._by_batch.get(batch_code)) if batch_code else None
        if cost is None:
            cost = self._unit_cost(self._by_order_sku.get((order_id, sku)))
        return cost


class ReceivingConnector:
    """QC lines at UAE warehouses -> IN movements."""

    name = "receiving"

    def __init__(self, settings: ReceivingSettings):
        self._settings = settings

    @property
    def source_type(self) -> str:
        return self._settings.source_type

    def _is_arrived(self, shipment: InboundShipment | None) -> bool:
        if shipment is None:
            return False
        if shipment.arrival_date is not None:
            return True
        return clean_text(shipment.status).lower() in self._settings.arrived_statuses

    def sync(self, ctx: SyncContext) -> SyncSummary:
        summary = SummaryBuilder(self.name)
        session = ctx.session
        lines = list(
            session.scalars(
                select(ReceivingLine).order_by(ReceivingLine.row_number, ReceivingLine.line_id)
            )
        )
        shipments = {
            s.shipment_id: s for s in session.scalars(select(InboundShipment))
        }
        costs = _PurchaseCosts(list(session.scalars(select(PurchaseLine))))
        index = ctx.new_index(self.source_type, KEY_STRATEGIES)

        candidates: list[LedgerRecord] = []
        for line in lines:
            row_key = run_row_key(line.line_id)
            if not index.first_sighting(row_key):
                continue
            try:
                record = self._build(ctx, line, shipments, costs)
            except (ValidationError, IntegrityError) as exc:
                summary.skip(row_key, exc)
                continue
            if record is None:
                summary.ineligible += 1
                continue
            candidates.append(record)

        ctx.post(candidates, index, summary)
        result = summary.build()
        logger.info("connector_finished", extra=result.as_dict())
        return result

    def _build(
        self,
        ctx: SyncContext,
        line: ReceivingLine,
        shipments: dict[str, InboundShipment],
        costs: _PurchaseCosts,
    ) -> LedgerRecord | None:
        qty = accepted_quantity(line)
        if qty <= ZERO:
            return None
        shipment_id = clean_text(line.shipment_id)
        if shipment_id and not self._is_arrived(shipments.get(shipment_id)):
            logger.debug(
                "receiving_not_arrived",
                extra={"line_id": line.line_id, "shipment_id": shipment_id},
            )
            return None

        sku = clean_text(line.sku)
        order_id = clean_text(line.order_id)
        group = self._settings.warehouse_group
        resolution = ctx.resolver.resolve(
            sku,
            explicit=line.warehouse,
            carrier=line.carrier,
            history=ctx.snapshots.warehouses_for(sku, group),
        )

        batch_code = clean_text(line.batch_code) or (f"{order_id}||{sku}" if order_id else "")
        unit_cost = costs.lookup(batch_code, order_id, sku)
        notes = [f"QC {line.line_id}"]
        if line.row_number is not None:
            notes.append(f"row {line.row_number}")
        if unit_cost is None:
            notes.append("cost unresolved")
            logger.warning(
                "receiving_cost_unresolved",
                extra={"line_id": line.line_id, "sku": sku, "batch_code": batch_code},
            )

        return LedgerRecord.movement(
            MovementType.IN,
            qty,
            txn_date=line.qc_date or ctx.clock.today(),
            source_type=self.source_type,
            source_id=line.line_id,
            sku=sku,
            warehouse=resolution.warehouse,
            unit_cost=quantize_cost(unit_cost or ZERO),
            currency=ctx.config.currency,
            batch_code=batch_code,
            product_name=clean_text(line.product_name),
            variant=clean_text(line.variant),
            notes="; ".join(notes),
            source_row=line.row_number,
        )
