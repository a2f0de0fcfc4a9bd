"""ORM models for the stock kernel."""

from stock_kernel.models.error_log import ErrorLogEntry
from stock_kernel.models.ledger import LedgerEntry
from stock_kernel.models.snapshot import WarehouseSnapshot
from stock_kernel.models.sources import (
    CatalogItem,
    InboundShipment,
    PurchaseLine,
    ReceivingLine,
    SalesLine,
    TransferLine,
)

__all__ = [
    "CatalogItem",
    "ErrorLogEntry",
    "InboundShipment",
    "LedgerEntry",
    "PurchaseLine",
    "ReceivingLine",
    "SalesLine",
    "TransferLine",
    "WarehouseSnapshot",
]
