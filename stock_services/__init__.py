"""
stock_services -- imperative shell of the inventory ledger.

Ledger persistence, idempotency, the ledger write lock, snapshot
persistence, the reconciliation connectors and the runner that ties them
together under one lock and one transaction per run.
"""

from stock_services.idempotency import IdempotencyIndex
from stock_services.ledger_store import AppendResult, LedgerStore
from stock_services.lock_service import LedgerLock
from stock_services.snapshot_service import SnapshotService
from stock_services.sync_runner import RunResult, SyncRunner

__all__ = [
    "AppendResult",
    "IdempotencyIndex",
    "LedgerLock",
    "LedgerStore",
    "RunResult",
    "SnapshotService",
    "SyncRunner",
]
