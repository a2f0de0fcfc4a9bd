"""
InventoryConfig schema.

The configuration is data only: warehouse vocabulary, status vocabularies,
lock and chunking limits, and snapshot policy.  YAML files are parsed into
these frozen types by the loader and passed explicitly to every component;
nothing reads configuration from global state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Ledger and snapshot policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerSettings:
    """Ledger write limits and lock parameters."""

    lock_name: str = "INV_LEDGER_WRITE"
    lock_timeout_seconds: float = 25.0
    lock_poll_interval_seconds: float = 0.2
    write_chunk_size: int = 500


@dataclass(frozen=True)
class SnapshotSettings:
    """Snapshot projection policy."""

    keep_zero_rows: bool = False
    zero_value_tolerance: Decimal = Decimal("0.05")


# ---------------------------------------------------------------------------
# Warehouses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WarehouseGroup:
    """A named partition of warehouse codes (one snapshot table each)."""

    name: str
    members: tuple[str, ...]
    prefixes: tuple[str, ...] = ()


@dataclass(frozen=True)
class CarrierRule:
    """Free-text carrier/office labels that identify one warehouse."""

    warehouse: str
    labels: tuple[str, ...]


# ---------------------------------------------------------------------------
# Connectors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReceivingSettings:
    source_type: str = "QC_UAE"
    warehouse_group: str = "UAE"
    arrived_statuses: tuple[str, ...] = ("arrived", "delivered", "received")


@dataclass(frozen=True)
class TransferSettings:
    source_type: str = "SHIP_UAE_EG"
    origin_group: str = "UAE"
    destination_warehouse: str = "TAN-GH"


@dataclass(frozen=True)
class SalesSettings:
    source_type: str = "SALE_EG"
    warehouse_group: str = "EG"
    delivered_exact: tuple[str, ...] = ("delivered",)
    delivered_contains: tuple[str, ...] = ("deliv",)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InventoryConfig:
    """Root configuration object."""

    currency: str
    warehouse_groups: tuple[WarehouseGroup, ...]
    carrier_rules: tuple[CarrierRule, ...] = ()
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    snapshot: SnapshotSettings = field(default_factory=SnapshotSettings)
    receiving: ReceivingSettings = field(default_factory=ReceivingSettings)
    transfer: TransferSettings = field(default_factory=TransferSettings)
    sales: SalesSettings = field(default_factory=SalesSettings)
    checksum: str = ""

    def group(self, name: str) -> WarehouseGroup:
        """Look up a warehouse group by name (KeyError if unknown)."""
        for group in self.warehouse_groups:
            if group.name == name:
                return group
        raise KeyError(name)

    @property
    def group_names(self) -> tuple[str, ...]:
        return tuple(g.name for g in self.warehouse_groups)
