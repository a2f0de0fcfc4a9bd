"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads the inventory YAML file and parses it into the frozen dataclasses of
``stock_config.schema``.  Callers normally go through
``stock_config.load_config()``.

Architecture position
---------------------
**Config layer**.  Depends on ``stock_kernel`` only for the exception type,
the hashing helper and code normalization.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Warehouse codes in the file are normalized exactly like ledger codes, so
  ``uae_attia`` in YAML matches ``UAE-ATTIA`` in the ledger.
* Groups referenced by connector sections must exist.
* ``checksum`` is a deterministic SHA-256 of the parsed document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or invalid keys -> ``ConfigurationError`` naming the key.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    CarrierRule,
    InventoryConfig,
    LedgerSettings,
    ReceivingSettings,
    SalesSettings,
    SnapshotSettings,
    TransferSettings,
    WarehouseGroup,
)
from stock_kernel.exceptions import ConfigurationError
from stock_kernel.utils.codes import normalize_warehouse_code
from stock_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _require(data: dict[str, Any], key: str, where: str) -> Any:
    if key not in data or data[key] is None:
        raise ConfigurationError(f"{where}.{key}" if where else key, "missing required key")
    return data[key]


def _as_tuple(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(key, f"expected a list, got {type(value).__name__}")
    return tuple(str(v) for v in value)


def _as_decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ConfigurationError(key, f"not a number: {value!r}") from None


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    """Parse the ``ledger`` section."""
    defaults = LedgerSettings()
    chunk = int(data.get("write_chunk_size", defaults.write_chunk_size))
    if chunk <= 0:
        raise ConfigurationError("ledger.write_chunk_size", "must be positive")
    timeout = float(data.get("lock_timeout_seconds", defaults.lock_timeout_seconds))
    if timeout <= 0:
        raise ConfigurationError("ledger.lock_timeout_seconds", "must be positive")
    return LedgerSettings(
        lock_name=str(data.get("lock_name", defaults.lock_name)),
        lock_timeout_seconds=timeout,
        lock_poll_interval_seconds=float(
            data.get("lock_poll_interval_seconds", defaults.lock_poll_interval_seconds)
        ),
        write_chunk_size=chunk,
    )


def parse_snapshot(data: dict[str, Any]) -> SnapshotSettings:
    """Parse the ``snapshot`` section."""
    defaults = SnapshotSettings()
    return SnapshotSettings(
        keep_zero_rows=bool(data.get("keep_zero_rows", defaults.keep_zero_rows)),
        zero_value_tolerance=_as_decimal(
            data.get("zero_value_tolerance", defaults.zero_value_tolerance),
            "snapshot.zero_value_tolerance",
        ),
    )


def parse_warehouse_groups(data: dict[str, Any]) -> tuple[WarehouseGroup, ...]:
    """
    Parse ``warehouse_groups`` (mapping of group name to members/prefixes).

    Preconditions:
        At least one group is defined.
    """
    if not isinstance(data, dict) or not data:
        raise ConfigurationError("warehouse_groups", "at least one group is required")
    groups = []
    for name, body in data.items():
        body = body or {}
        members = tuple(
            normalize_warehouse_code(m)
            for m in _as_tuple(body.get("members"), f"warehouse_groups.{name}.members")
        )
        prefixes = tuple(
            p.strip().upper()
            for p in _as_tuple(body.get("prefixes"), f"warehouse_groups.{name}.prefixes")
        )
        if not members and not prefixes:
            raise ConfigurationError(
                f"warehouse_groups.{name}", "needs members or prefixes"
            )
        groups.append(WarehouseGroup(name=str(name), members=members, prefixes=prefixes))
    return tuple(groups)


def parse_carrier_rules(data: list[dict[str, Any]] | None) -> tuple[CarrierRule, ...]:
    """Parse ``carrier_rules`` (ordered; first match wins)."""
    rules = []
    for i, item in enumerate(data or []):
        where = f"carrier_rules[{i}]"
        warehouse = normalize_warehouse_code(_require(item, "warehouse", where))
        labels = tuple(
            label.strip().lower()
            for label in _as_tuple(_require(item, "labels", where), f"{where}.labels")
            if label.strip()
        )
        if not labels:
            raise ConfigurationError(f"{where}.labels", "must not be empty")
        rules.append(CarrierRule(warehouse=warehouse, labels=labels))
    return tuple(rules)


def parse_receiving(data: dict[str, Any]) -> ReceivingSettings:
    defaults = ReceivingSettings()
    return ReceivingSettings(
        source_type=str(data.get("source_type", defaults.source_type)),
        warehouse_group=str(data.get("warehouse_group", defaults.warehouse_group)),
        arrived_statuses=tuple(
            s.strip().lower()
            for s in _as_tuple(
                data.get("arrived_statuses", defaults.arrived_statuses),
                "receiving.arrived_statuses",
            )
        ),
    )


def parse_transfer(data: dict[str, Any]) -> TransferSettings:
    defaults = TransferSettings()
    return TransferSettings(
        source_type=str(data.get("source_type", defaults.source_type)),
        origin_group=str(data.get("origin_group", defaults.origin_group)),
        destination_warehouse=normalize_warehouse_code(
            data.get("destination_warehouse", defaults.destination_warehouse)
        ),
    )


def parse_sales(data: dict[str, Any]) -> SalesSettings:
    defaults = SalesSettings()
    return SalesSettings(
        source_type=str(data.get("source_type", defaults.source_type)),
        warehouse_group=str(data.get("warehouse_group", defaults.warehouse_group)),
        delivered_exact=tuple(
            s.strip().lower()
            for s in _as_tuple(
                data.get("delivered_exact", defaults.delivered_exact),
                "sales.delivered_exact",
            )
        ),
        delivered_contains=tuple(
            s.strip().lower()
            for s in _as_tuple(
                data.get("delivered_contains", defaults.delivered_contains),
                "sales.delivered_contains",
            )
        ),
    )


def parse_config(data: dict[str, Any]) -> InventoryConfig:
    """
    Parse a whole configuration document.

    Postconditions:
        Every group named by a connector section exists.

    Raises:
        ConfigurationError: on missing keys or dangling group references.
    """
    groups = parse_warehouse_groups(_require(data, "warehouse_groups", ""))
    config = InventoryConfig(
        currency=str(_require(data, "currency", "")).strip().upper(),
        warehouse_groups=groups,
        carrier_rules=parse_carrier_rules(data.get("carrier_rules")),
        ledger=parse_ledger(data.get("ledger") or {}),
        snapshot=parse_snapshot(data.get("snapshot") or {}),
        receiving=parse_receiving(data.get("receiving") or {}),
        transfer=parse_transfer(data.get("transfer") or {}),
        sales=parse_sales(data.get("sales") or {}),
        checksum=compute_checksum(data),
    )

    names = set(config.group_names)
    for key, group in (
        ("receiving.warehouse_group", config.receiving.warehouse_group),
        ("transfer.origin_group", config.transfer.origin_group),
        ("sales.warehouse_group", config.sales.warehouse_group),
    ):
        if group not in names:
            raise ConfigurationError(key, f"unknown warehouse group {group!r}")
    return config


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed configuration document."""
    return hash_payload(data)
