"""
stock_engines.warehouse -- Warehouse resolution and group membership.

Responsibility:
    Map a free-form or partial warehouse reference on a source row to a
    canonical warehouse code, and map canonical codes to warehouse groups
    (the partitions used for snapshot tables).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Snapshot history is passed
    in by the caller as a plain sequence of codes.

Invariants enforced:
    - Priority: explicit field > carrier label > SKU history.  The first
      path that yields a non-empty code wins; later paths are not consulted.
    - No default warehouse: when every path is empty the resolver raises
      UnresolvedWarehouseError instead of guessing, because on-hand and cost
      are only correct when the destination is correct.
    - Group membership is explicit list first, then configured prefix, so
      a new code such as ``UAE-SHJ`` joins UAE without a config change.

Failure modes:
    - UnresolvedWarehouseError when no path resolves.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from stock_config.schema import InventoryConfig
from stock_kernel.exceptions import UnresolvedWarehouseError
from stock_kernel.logging_config import get_logger
from stock_kernel.utils.codes import clean_text, normalize_warehouse_code

logger = get_logger("engines.warehouse")


class ResolutionSource(str, Enum):
    """Which path produced a warehouse code."""

    EXPLICIT = "explicit"
    CARRIER = "carrier"
    SKU_HISTORY = "sku_history"


@dataclass(frozen=True)
class WarehouseResolution:
    warehouse: str
    source: ResolutionSource


class WarehouseResolver:
    """
    Resolves warehouses using the configured carrier rules and groups.

    Contract:
        ``resolve`` never returns an empty code; ``group_of`` returns None
        for codes that belong to no group.
    """

    def __init__(self, config: InventoryConfig):
        self._rules = config.carrier_rules
        self._groups = config.warehouse_groups

    def resolve(
        self,
        sku: str,
        explicit: str | None = None,
        carrier: str | None = None,
        history: Sequence[str] = (),
    ) -> WarehouseResolution:
        """
        Resolve the warehouse of one movement.

        Args:
            sku: SKU of the movement (used in error reporting).
            explicit: the row's own warehouse field.
            carrier: free-text carrier/office label on the row.
            history: warehouses already holding this SKU in the current
                snapshot, in snapshot order; the first one is used.

        Raises:
            UnresolvedWarehouseError: if no path yields a code.
        """
        code = normalize_warehouse_code(explicit)
        if code:
            return WarehouseResolution(code, ResolutionSource.EXPLICIT)

        code = self.match_carrier(carrier)
        if code:
            return WarehouseResolution(code, ResolutionSource.CARRIER)

        for candidate in history:
            code = normalize_warehouse_code(candidate)
            if code:
                return WarehouseResolution(code, ResolutionSource.SKU_HISTORY)

        logger.warning(
            "warehouse_unresolved",
            extra={"sku": sku, "carrier": clean_text(carrier)},
        )
        raise UnresolvedWarehouseError(sku, hint=clean_text(carrier))

    def match_carrier(self, label: str | None) -> str:
        """Return the warehouse whose rule matches ``label`` ('' if none)."""
        text = clean_text(label).lower()
        if not text:
            return ""
        for rule in self._rules:
            if any(token in text for token in rule.labels):
                return rule.warehouse
        return ""

    def carrier_label_for(self, warehouse: str) -> str:
        """
        Reverse mapping used to back-fill an empty carrier column.

        Returns the first label of the rule for ``warehouse`` in title case
        when it is plain ASCII (``Attia``), else ''.
        """
        code = normalize_warehouse_code(warehouse)
        for rule in self._rules:
            if rule.warehouse != code:
                continue
            for label in rule.labels:
                if label.isascii() and normalize_warehouse_code(label) != code:
                    return label.title()
        return ""

    def group_of(self, warehouse: str) -> str | None:
        """Group name for a warehouse code: member list first, then prefix."""
        code = normalize_warehouse_code(warehouse)
        if not code:
            return None
        for group in self._groups:
            if code in group.members:
                return group.name
        for group in self._groups:
            if any(code.startswith(prefix) for prefix in group.prefixes):
                return group.name
        return None

    def in_group(self, warehouse: str, group: str) -> bool:
        return self.group_of(warehouse) == group
