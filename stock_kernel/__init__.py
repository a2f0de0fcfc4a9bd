"""
Stock Kernel

An append-only inventory ledger with:
- Deterministic, content-derived transaction ids
- Idempotent re-runnable connectors
- Lock-guarded appends
- Snapshot projection by replay
"""

__version__ = "0.1.0"
