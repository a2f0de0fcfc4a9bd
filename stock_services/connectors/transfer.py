"""
TransferConnector -- posts UAE -> EG transfer deltas as OUT/IN pairs.

Source: ``transfer_lines``.  Each line carries a cumulative shipped ``qty``
and a persisted ``qty_synced`` counter; only ``delta = qty - qty_synced`` is
posted, and ``qty_synced`` is set to ``qty`` in the same transaction as the
ledger append.

Per posted delta:
    OUT  origin warehouse (explicit > courier label > SKU history in the
         origin group), at the origin snapshot average cost, on ship date
    IN   destination warehouse (TAN-GH), at landed cost
         = origin cost + total extras / qty, on arrival date else ship date

    total extras = Total Cost when set, else ship cost + customs + other
    source_id    = "<shipment>/<box id or line id>@<qty>"

The cumulative target in source_id makes a retry after a crash rebuild
the same txn ids, and keeps two deltas posted on the same day apart.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select

from stock_config.schema import TransferSettings
from stock_engines.valuation import SnapshotRow
from stock_kernel.domain.ledger_record import ZERO, LedgerRecord, MovementType, quantize_cost
from stock_kernel.exceptions import (
    IntegrityError,
    InvalidLedgerRecordError,
    SyncIntegrityError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.sources import TransferLine
from stock_kernel.utils.codes import clean_text
from stock_kernel.utils.hashing import canonical_number
from stock_kernel.utils.idempotency import SOURCE_ID, TXN_ID, run_row_key
from stock_services.connectors.base import SummaryBuilder, SyncContext, SyncSummary

logger = get_logger("services.connectors.transfer")

KEY_STRATEGIES = (TXN_ID, SOURCE_ID)


def total_extras(line: TransferLine) -> Decimal:
    if line.total_cost is not None and Decimal(line.total_cost) > ZERO:
        return Decimal(line.total_cost)
    return (
        Decimal(line.ship_cost or ZERO)
        + Decimal(line.customs or ZERO)
        + Decimal(line.other_fees or ZERO)
    )


def transfer_source_id(line: TransferLine) -> str:
    discriminator = clean_text(line.box_id) or clean_text(line.line_id)
    return f"{clean_text(line.shipment_id)}/{discriminator}@{canonical_number(line.qty)}"


class TransferConnector:
    """Transfer lines -> OUT at origin + IN at destination, delta only."""

    name = "transfer"

    def __init__(self, settings: TransferSettings):
        self._settings = settings

    @property
    def source_type(self) -> str:
        return self._settings.source_type

    def sync(self, ctx: SyncContext) -> SyncSummary:
        summary = SummaryBuilder(self.name)
        lines = list(
            ctx.session.scalars(
                select(TransferLine).order_by(
                    TransferLine.shipment_id, TransferLine.box_id, TransferLine.line_id
                )
            )
        )
        index = ctx.new_index(self.source_type, KEY_STRATEGIES)

        candidates: list[LedgerRecord] = []
        synced: list[TransferLine] = []
        for line in lines:
            row_key = run_row_key(line.line_id)
            if not index.first_sighting(row_key):
                continue
            try:
                pair = self._build(ctx, line, summary)
            except (ValidationError, IntegrityError) as exc:
                summary.skip(row_key, exc)
                continue
            if pair is None:
                continue
            candidates.extend(pair)
            synced.append(line)

        # Posted or already in the ledger, either way the delta is accounted for
        ctx.post(candidates, index, summary)
        for line in synced:
            previous = line.qty_synced
            line.qty_synced = line.qty
            logger.debug(
                "qty_synced_updated",
                extra={"line_id": line.line_id, "from": previous, "to": line.qty},
            )
        ctx.session.flush()

        result = summary.build()
        logger.info("connector_finished", extra=result.as_dict())
        return result

    def _build(
        self,
        ctx: SyncContext,
        line: TransferLine,
        summary: SummaryBuilder,
    ) -> tuple[LedgerRecord, LedgerRecord] | None:
        shipment_id = clean_text(line.shipment_id)
        sku = clean_text(line.sku)
        qty = Decimal(line.qty or ZERO)
        if not shipment_id:
            raise InvalidLedgerRecordError("missing shipment id", sku, line.line_id)
        if not sku:
            raise InvalidLedgerRecordError("missing SKU", sku, line.line_id)
        if qty <= ZERO:
            summary.ineligible += 1
            return None

        qty_synced = Decimal(line.qty_synced or ZERO)
        delta = qty - qty_synced
        if delta == ZERO:
            summary.unchanged += 1
            return None
        if delta < ZERO:
            logger.error(
                "negative_sync_delta",
                extra={"line_id": line.line_id, "qty": qty, "qty_synced": qty_synced},
            )
            raise SyncIntegrityError(line.line_id, qty, qty_synced)

        group = self._settings.origin_group
        resolution = ctx.resolver.resolve(
            sku,
            explicit=line.origin_warehouse,
            carrier=line.courier,
            history=ctx.snapshots.warehouses_for(sku, group),
        )
        origin = resolution.warehouse
        info: SnapshotRow | None = ctx.snapshots.position(sku, origin)

        base_cost = info.avg_cost if info is not None else ZERO
        landed_cost = quantize_cost(base_cost + total_extras(line) / qty)
        product_name = (info.product_name if info else "") or clean_text(line.product_name)
        variant = (info.variant if info else "") or clean_text(line.variant)
        if info is not None and info.last_source_id:
            batch_code = f"{info.last_source_id}||{sku}"
        else:
            batch_code = f"{shipment_id}||{sku}"

        ship_date: date = line.ship_date or ctx.clock.today()
        source_id = transfer_source_id(line)
        destination = self._settings.destination_warehouse
        common = dict(
            source_type=self.source_type,
            source_id=source_id,
            sku=sku,
            currency=ctx.config.currency,
            batch_code=batch_code,
            product_name=product_name,
            variant=variant,
        )
        out_record = LedgerRecord.movement(
            MovementType.OUT,
            delta,
            txn_date=ship_date,
            warehouse=origin,
            unit_cost=quantize_cost(base_cost),
            notes=f"UAE->EG OUT ({origin}), delta={canonical_number(delta)}",
            **common,
        )
        in_record = LedgerRecord.movement(
            MovementType.IN,
            delta,
            txn_date=line.arrival_date or ship_date,
            warehouse=destination,
            unit_cost=landed_cost,
            notes=(
                f"UAE->EG IN ({destination}), delta={canonical_number(delta)}, "
                f"landed_cost={landed_cost:.2f}"
            ),
            **common,
        )

        self._backfill(ctx, line, origin, product_name, variant)
        return out_record, in_record

    @staticmethod
    def _backfill(
        ctx: SyncContext,
        line: TransferLine,
        origin: str,
        product_name: str,
        variant: str,
    ) -> None:
        """Fill empty descriptive columns of the line from what was resolved."""
        if not clean_text(line.origin_warehouse):
            line.origin_warehouse = origin
        if not clean_text(line.product_name) and product_name:
            line.product_name = product_name
        if not clean_text(line.variant) and variant:
            line.variant = variant
        if not clean_text(line.courier):
            label = ctx.resolver.carrier_label_for(origin)
            if label:
                line.courier = label
