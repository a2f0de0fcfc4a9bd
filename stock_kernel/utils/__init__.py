"""Utility modules for the stock kernel."""

from stock_kernel.utils.codes import clean_text, normalize_sku, normalize_warehouse_code
from stock_kernel.utils.hashing import canonicalize_json, hash_payload, make_txn_id
from stock_kernel.utils.idempotency import (
    LEGACY_ROW_NOTE,
    SOURCE_ID,
    TXN_ID,
    KeyStrategy,
    run_row_key,
)

__all__ = [
    "KeyStrategy",
    "LEGACY_ROW_NOTE",
    "SOURCE_ID",
    "TXN_ID",
    "canonicalize_json",
    "clean_text",
    "hash_payload",
    "make_txn_id",
    "normalize_sku",
    "normalize_warehouse_code",
    "run_row_key",
]
