"""
Idempotency key derivation strategies.

A connector decides whether a candidate movement was already posted by
deriving one or more keys from it and looking them up in key sets built
from the ledger.  Each way of deriving keys is a ``KeyStrategy``; a
connector declares an ordered tuple of strategies and a candidate counts as
posted when ANY strategy finds its key.

    TXN_ID           content fingerprint (every connector)
    SOURCE_ID        legacy coarse key: direction + correlation id, no content
    LEGACY_ROW_NOTE  legacy QC postings that carried "row N" in their notes

Dropping a legacy scheme is removing it from the connector's tuple.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from stock_kernel.utils.codes import clean_text

_ROW_NOTE = re.compile(r"row\s+(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class KeyStrategy:
    """
    One key derivation scheme.

    ``candidate_key`` derives the key of a LedgerRecord about to be posted;
    ``ledger_key`` derives the key of a stored ledger row.  Either may return
    None when the scheme does not apply to that record or row.
    """

    name: str
    candidate_key: Callable[[Any], str | None]
    ledger_key: Callable[[Any], str | None]


def _type_value(obj: Any) -> str:
    value = getattr(obj, "type", "")
    return str(getattr(value, "value", value))


def _txn_id_key(obj: Any) -> str | None:
    return clean_text(obj.txn_id) or None


def _source_id_key(obj: Any) -> str | None:
    source_id = clean_text(obj.source_id)
    if not source_id:
        return None
    return f"{_type_value(obj)}:{source_id}"


def _candidate_row_key(record: Any) -> str | None:
    if record.source_row is None:
        return None
    return f"row:{record.source_row}"


def _ledger_row_note_key(entry: Any) -> str | None:
    # Rows written with a line id never used the row-number scheme.
    if clean_text(entry.source_id):
        return None
    match = _ROW_NOTE.search(entry.notes or "")
    if not match:
        return None
    row_number = int(match.group(1))
    return f"row:{row_number}" if row_number else None


TXN_ID = KeyStrategy("txn_id", _txn_id_key, _txn_id_key)
SOURCE_ID = KeyStrategy("source_id", _source_id_key, _source_id_key)
LEGACY_ROW_NOTE = KeyStrategy("legacy_row_note", _candidate_row_key, _ledger_row_note_key)


def run_row_key(*parts: Any) -> str:
    """
    Key of one input row within a run ("seen" set).

    Format: part1||part2||...
    """
    return "||".join(clean_text(p) for p in parts)
