"""Pure domain types for the stock kernel (no I/O)."""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.ledger_record import (
    COST_QUANTUM,
    ZERO,
    LedgerRecord,
    MovementType,
    quantize_cost,
    to_decimal,
)

__all__ = [
    "COST_QUANTUM",
    "Clock",
    "DeterministicClock",
    "LedgerRecord",
    "MovementType",
    "SystemClock",
    "ZERO",
    "quantize_cost",
    "to_decimal",
]
