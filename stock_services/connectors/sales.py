"""
SalesConnector -- posts delivered sales as OUT movements from EG warehouses.

Source: ``sales_lines``.  Delivered rows are aggregated per
(order, sku, warehouse); the ledger already holds some quantity for each
key, and only the positive remainder is posted.  Re-running after a partial
post, or after the sheet gained a duplicate row for the same order+SKU,
converges on the aggregated quantity without double posting.

Rules:
    delivered = status in delivered_exact, or containing one of
                delivered_contains, AND a delivered date
    warehouse = explicit > courier label > SKU history in the EG snapshot;
                must belong to the sales warehouse group
    cost      = EG snapshot average, else catalog default cost, else zero
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from stock_config.schema import SalesSettings
from stock_kernel.domain.ledger_record import ZERO, LedgerRecord, MovementType, quantize_cost
from stock_kernel.exceptions import (
    IntegrityError,
    InvalidLedgerRecordError,
    UnresolvedWarehouseError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.sources import CatalogItem, SalesLine
from stock_kernel.utils.codes import clean_text, normalize_sku
from stock_kernel.utils.hashing import canonical_number
from stock_kernel.utils.idempotency import TXN_ID, run_row_key
from stock_services.connectors.base import SummaryBuilder, SyncContext, SyncSummary

logger = get_logger("services.connectors.sales")

KEY_STRATEGIES = (TXN_ID,)

SalesKey = tuple[str, str, str]


@dataclass
class _Aggregate:
    qty: Decimal
    delivered_date: date
    unit_price: Decimal
    product_name: str
    variant: str


def is_delivered(status: str, settings: SalesSettings) -> bool:
    text = clean_text(status).lower()
    if not text:
        return False
    if text in settings.delivered_exact:
        return True
    return any(token in text for token in settings.delivered_contains)


class SalesConnector:
    """Delivered sales -> OUT remainders."""

    name = "sales"

    def __init__(self, settings: SalesSettings):
        self._settings = settings

    @property
    def source_type(self) -> str:
        return self._settings.source_type

    def sync(self, ctx: SyncContext) -> SyncSummary:
        summary = SummaryBuilder(self.name)
        session = ctx.session
        rows = list(
            session.scalars(select(SalesLine).order_by(SalesLine.row_number, SalesLine.id))
        )
        catalog_costs = {
            normalize_sku(item.sku): Decimal(item.default_cost or ZERO)
            for item in session.scalars(select(CatalogItem))
        }
        index = ctx.new_index(self.source_type, KEY_STRATEGIES)

        aggregates: dict[SalesKey, _Aggregate] = {}
        for row in rows:
            row_key = run_row_key(row.order_id, row.sku, row.row_number or row.id)
            if not index.first_sighting(row_key):
                continue
            try:
                self._aggregate(ctx, row, aggregates, summary)
            except (ValidationError, IntegrityError) as exc:
                summary.skip(row_key, exc)

        posted = ctx.store.posted_qty_out(self.source_type)
        candidates: list[LedgerRecord] = []
        for key, agg in aggregates.items():
            order_id, sku, warehouse = key
            remainder = agg.qty - posted.get(key, ZERO)
            if remainder <= ZERO:
                summary.unchanged += 1
                continue
            try:
                candidates.append(
                    self._record(ctx, key, agg, remainder, catalog_costs)
                )
            except ValidationError as exc:
                summary.skip(run_row_key(order_id, sku, warehouse), exc)

        ctx.post(candidates, index, summary)
        result = summary.build()
        logger.info("connector_finished", extra=result.as_dict())
        return result

    def _aggregate(
        self,
        ctx: SyncContext,
        row: SalesLine,
        aggregates: dict[SalesKey, _Aggregate],
        summary: SummaryBuilder,
    ) -> None:
        if not is_delivered(row.order_status, self._settings) or row.delivered_date is None:
            summary.ineligible += 1
            return
        order_id = clean_text(row.order_id)
        sku = clean_text(row.sku)
        if not order_id:
            raise InvalidLedgerRecordError("missing order id", sku, order_id)
        if not sku:
            raise InvalidLedgerRecordError("missing SKU", sku, order_id)
        qty = Decimal(row.qty or ZERO)
        if qty <= ZERO:
            summary.ineligible += 1
            return

        group = self._settings.warehouse_group
        resolution = ctx.resolver.resolve(
            sku,
            explicit=row.warehouse,
            carrier=row.courier,
            history=ctx.snapshots.warehouses_for(sku, group),
        )
        if not ctx.resolver.in_group(resolution.warehouse, group):
            raise UnresolvedWarehouseError(
                sku, hint=f"{resolution.warehouse} is not in warehouse group {group}"
            )

        key = (order_id, sku, resolution.warehouse)
        agg = aggregates.get(key)
        if agg is None:
            aggregates[key] = _Aggregate(
                qty=qty,
                delivered_date=row.delivered_date,
                unit_price=Decimal(row.unit_price or ZERO),
                product_name=clean_text(row.product_name),
                variant=clean_text(row.variant),
            )
            return
        agg.qty += qty
        if row.delivered_date > agg.delivered_date:
            agg.delivered_date = row.delivered_date

    def _record(
        self,
        ctx: SyncContext,
        key: SalesKey,
        agg: _Aggregate,
        remainder: Decimal,
        catalog_costs: dict[str, Decimal],
    ) -> LedgerRecord:
        order_id, sku, warehouse = key
        unit_cost = ctx.snapshots.avg_cost(sku, warehouse)
        if unit_cost is None:
            unit_cost = catalog_costs.get(normalize_sku(sku), ZERO)
            logger.debug(
                "sales_cost_fallback",
                extra={"sku": sku, "warehouse": warehouse, "unit_cost": unit_cost},
            )
        return LedgerRecord.movement(
            MovementType.OUT,
            remainder,
            txn_date=agg.delivered_date,
            source_type=self.source_type,
            source_id=order_id,
            # The cumulative target keeps a later equal-sized remainder distinct
            batch_code=f"{order_id}@{canonical_number(agg.qty)}",
            sku=sku,
            warehouse=warehouse,
            unit_cost=quantize_cost(unit_cost),
            currency=ctx.config.currency,
            unit_price_orig=agg.unit_price,
            product_name=agg.product_name,
            variant=agg.variant,
            notes=f"{self.source_type} (delta={canonical_number(remainder)})",
        )
