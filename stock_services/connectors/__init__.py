"""
Reconciliation connectors and their fixed registry.

Each connector is registered here under its run name; there is no dynamic
discovery.  ``build_connector`` instantiates one with its settings section
from the configuration.
"""

from __future__ import annotations

from collections.abc import Callable

from stock_config.schema import InventoryConfig
from stock_kernel.exceptions import UnknownConnectorError
from stock_services.connectors.base import (
    Connector,
    PostingOutcome,
    SkippedRow,
    SummaryBuilder,
    SyncContext,
    SyncSummary,
)
from stock_services.connectors.receiving import ReceivingConnector
from stock_services.connectors.sales import SalesConnector
from stock_services.connectors.transfer import TransferConnector

CONNECTORS: dict[str, Callable[[InventoryConfig], Connector]] = {
    "receiving": lambda config: ReceivingConnector(config.receiving),
    "transfer": lambda config: TransferConnector(config.transfer),
    "sales": lambda config: SalesConnector(config.sales),
}

# Order used by "sync all": stock must arrive in UAE before it moves to EG
# and before EG can sell it.
RUN_ORDER: tuple[str, ...] = ("receiving", "transfer", "sales")


def build_connector(name: str, config: InventoryConfig) -> Connector:
    """
    Instantiate a registered connector.

    Raises:
        UnknownConnectorError: if ``name`` is not registered.
    """
    try:
        factory = CONNECTORS[name]
    except KeyError:
        raise UnknownConnectorError(name, sorted(CONNECTORS)) from None
    return factory(config)


__all__ = [
    "CONNECTORS",
    "Connector",
    "PostingOutcome",
    "RUN_ORDER",
    "ReceivingConnector",
    "SalesConnector",
    "SkippedRow",
    "SummaryBuilder",
    "SyncContext",
    "SyncSummary",
    "TransferConnector",
    "build_connector",
]
