"""
stock_config -- single public entrypoint for inventory configuration.

Responsibility:
    ``load_config()`` returns an immutable ``InventoryConfig``.  It is called
    once at process start (CLI, tests) and the result is passed explicitly
    into every engine, service and connector.

Architecture position:
    Configuration -- sits above ``stock_kernel`` and below
    ``stock_engines`` / ``stock_services``.  The kernel never imports it.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``ConfigurationError`` -- missing keys or dangling group references.
"""

from __future__ import annotations

from pathlib import Path

from stock_config.loader import load_yaml_file, parse_config
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
from stock_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "inventory.yaml"


def load_config(path: Path | str | None = None) -> InventoryConfig:
    """
    Load the inventory configuration.

    Args:
        path: YAML file to load.  Defaults to the bundled
            ``defaults/inventory.yaml``.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(config_path))
    _logger.info(
        "config_loaded",
        extra={
            "config_path": str(config_path),
            "checksum": config.checksum,
            "warehouse_groups": list(config.group_names),
        },
    )
    return config


__all__ = [
    "CarrierRule",
    "DEFAULT_CONFIG_PATH",
    "InventoryConfig",
    "LedgerSettings",
    "ReceivingSettings",
    "SalesSettings",
    "SnapshotSettings",
    "TransferSettings",
    "WarehouseGroup",
    "load_config",
]
