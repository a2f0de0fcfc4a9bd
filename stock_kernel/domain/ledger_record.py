"""
LedgerRecord -- immutable stock movement value object.

Responsibility:
    The single in-memory representation of a movement on its way into the
    ledger.  Connectors build LedgerRecords; LedgerStore persists them as
    LedgerEntry rows.  Construction validates every ledger invariant and
    computes the deterministic txn id, so a record that exists is a record
    that may be appended.

Architecture position:
    Kernel > Domain -- pure, no I/O.

Invariants enforced:
    - Exactly one of qty_in / qty_out is positive, the other is zero.
    - ``type`` agrees with the populated side (IN -> qty_in, OUT -> qty_out).
    - sku and warehouse are non-empty; warehouse is a normalized code.
    - total_cost defaults to unit_cost * quantity.
    - txn_id is derived from the content (utils/hashing.make_txn_id) unless
      an id is supplied explicitly (legacy imports carrying their own id).

Failure modes:
    - InvalidLedgerRecordError on any invariant violation.  Nothing is ever
      partially written because the record never comes into existence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from stock_kernel.exceptions import InvalidLedgerRecordError
from stock_kernel.utils.codes import clean_text, normalize_warehouse_code
from stock_kernel.utils.hashing import make_txn_id

ZERO = Decimal("0")
# Unit and total costs are carried at four decimal places.
COST_QUANTUM = Decimal("0.0001")


def to_decimal(value: Any) -> Decimal:
    """Coerce numbers and numeric strings to Decimal; None/'' become zero."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_cost(value: Any) -> Decimal:
    return to_decimal(value).quantize(COST_QUANTUM)


class MovementType(str, Enum):
    """Direction of a stock movement."""

    IN = "IN"
    OUT = "OUT"


@dataclass(frozen=True, slots=True)
class LedgerRecord:
    """
    A validated stock movement.

    Use ``LedgerRecord.movement()`` to build one from a direction and a
    single quantity; the constructor takes the split qty_in / qty_out form
    stored in the ledger.
    """

    txn_date: date
    type: MovementType
    source_type: str
    source_id: str
    sku: str
    warehouse: str
    qty_in: Decimal = ZERO
    qty_out: Decimal = ZERO
    unit_cost: Decimal = ZERO
    total_cost: Decimal | None = None
    currency: str = ""
    unit_price_orig: Decimal = ZERO
    batch_code: str = ""
    product_name: str = ""
    variant: str = ""
    notes: str = ""
    txn_id: str = ""
    # Position of the originating source row, for the legacy key scheme only
    source_row: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sku", clean_text(self.sku))
        object.__setattr__(self, "warehouse", normalize_warehouse_code(self.warehouse))
        object.__setattr__(self, "source_type", clean_text(self.source_type))
        object.__setattr__(self, "source_id", clean_text(self.source_id))
        object.__setattr__(self, "batch_code", clean_text(self.batch_code))
        object.__setattr__(self, "currency", clean_text(self.currency).upper())
        if isinstance(self.txn_date, datetime):
            object.__setattr__(self, "txn_date", self.txn_date.date())

        try:
            movement_type = MovementType(self.type)
        except ValueError:
            raise InvalidLedgerRecordError(
                f"invalid type {self.type!r}", self.sku, self.source_id
            ) from None
        object.__setattr__(self, "type", movement_type)

        for name in ("qty_in", "qty_out", "unit_cost", "unit_price_orig"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

        if not self.sku:
            raise InvalidLedgerRecordError("missing SKU", self.sku, self.source_id)
        if not self.warehouse:
            raise InvalidLedgerRecordError("missing warehouse", self.sku, self.source_id)
        if not self.source_type:
            raise InvalidLedgerRecordError("missing source type", self.sku, self.source_id)
        if not isinstance(self.txn_date, date):
            raise InvalidLedgerRecordError("missing txn date", self.sku, self.source_id)
        if self.qty_in < ZERO or self.qty_out < ZERO:
            raise InvalidLedgerRecordError("negative quantity", self.sku, self.source_id)
        if (self.qty_in > ZERO) == (self.qty_out > ZERO):
            raise InvalidLedgerRecordError(
                "exactly one of qty_in/qty_out must be positive",
                self.sku,
                self.source_id,
            )
        if movement_type is MovementType.IN and self.qty_in <= ZERO:
            raise InvalidLedgerRecordError("IN movement without qty_in", self.sku, self.source_id)
        if movement_type is MovementType.OUT and self.qty_out <= ZERO:
            raise InvalidLedgerRecordError("OUT movement without qty_out", self.sku, self.source_id)

        if self.total_cost is None or to_decimal(self.total_cost) == ZERO:
            object.__setattr__(
                self, "total_cost", quantize_cost(self.unit_cost * self.quantity)
            )
        else:
            object.__setattr__(self, "total_cost", to_decimal(self.total_cost))

        if not self.txn_id:
            object.__setattr__(self, "txn_id", make_txn_id(self.fingerprint_fields()))

    @classmethod
    def movement(
        cls,
        movement_type: MovementType | str,
        qty: Any,
        **fields: Any,
    ) -> LedgerRecord:
        """
        Build a record from a direction and one quantity.

        Raises:
            InvalidLedgerRecordError: if qty is not positive or any other
                invariant fails.
        """
        quantity = to_decimal(qty)
        movement_type = MovementType(movement_type)
        if quantity <= ZERO:
            raise InvalidLedgerRecordError(
                f"non-positive quantity {quantity}",
                clean_text(fields.get("sku")),
                clean_text(fields.get("source_id")),
            )
        if movement_type is MovementType.IN:
            return cls(type=movement_type, qty_in=quantity, qty_out=ZERO, **fields)
        return cls(type=movement_type, qty_in=ZERO, qty_out=quantity, **fields)

    @property
    def quantity(self) -> Decimal:
        """The positive side of the movement."""
        return self.qty_in if self.qty_in > ZERO else self.qty_out

    @property
    def signed_quantity(self) -> Decimal:
        return self.qty_in - self.qty_out

    def fingerprint_fields(self) -> dict[str, Any]:
        """The fields hashed into the txn id."""
        return {
            "type": self.type.value,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "batch_code": self.batch_code,
            "sku": self.sku,
            "warehouse": self.warehouse,
            "qty_in": self.qty_in,
            "qty_out": self.qty_out,
            "unit_cost": self.unit_cost,
            "currency": self.currency,
            "unit_price_orig": self.unit_price_orig,
            "txn_date": self.txn_date,
        }
