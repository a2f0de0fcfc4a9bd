"""
Deterministic hashing utilities.

All hashing in the stock kernel must be deterministic and reproducible.
The txn id fingerprint in particular is recomputed by every connector run
and compared with stored ledger rows, so two runs over the same business
content MUST produce the same string, byte for byte.
"""

import hashlib
import json
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

TXN_ID_PREFIX = "TXN-"
TXN_ID_HEX_LENGTH = 12

# Order matters: changing it changes every txn id.
TXN_ID_FIELDS: tuple[str, ...] = (
    "type",
    "source_type",
    "source_id",
    "batch_code",
    "sku",
    "warehouse",
    "qty_in",
    "qty_out",
    "unit_cost",
    "currency",
    "unit_price_orig",
    "txn_date",
)

_NUMERIC_FIELDS = frozenset({"qty_in", "qty_out", "unit_cost", "unit_price_orig"})


def _json_serializer(obj: Any) -> Any:
    """Serialize Decimal, dates and UUIDs for canonical JSON."""
    if isinstance(obj, Decimal):
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, no whitespace, special types handled consistently.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
        ensure_ascii=False,
    )


def hash_payload(payload: dict) -> str:
    """Compute the hex SHA-256 of a payload's canonical JSON."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def canonical_number(value: Any) -> str:
    """
    Render a quantity or amount in its shortest plain form.

    ``10``, ``10.0`` and ``Decimal("10.000")`` all give ``"10"``;
    ``Decimal("0.50")`` gives ``"0.5"``.  Missing values count as zero.
    Exponent notation is never produced.
    """
    if value is None or value == "":
        return "0"
    d = value if isinstance(value, Decimal) else Decimal(str(value))
    if d == d.to_integral_value():
        return str(int(d))
    return format(d.normalize(), "f")


def canonical_day(value: Any) -> str:
    """Truncate a date or datetime to ``YYYY-MM-DD``; anything else is empty."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return ""


def txn_fingerprint(fields: Mapping[str, Any]) -> str:
    """
    Build the pipe-joined canonical string hashed into a txn id.

    Preconditions:
        ``fields`` maps the names in TXN_ID_FIELDS to values; missing keys
        are treated as empty (text) or zero (numbers).
    """
    parts: list[str] = []
    for name in TXN_ID_FIELDS:
        value = fields.get(name)
        if name in _NUMERIC_FIELDS:
            parts.append(canonical_number(value))
        elif name == "txn_date":
            parts.append(canonical_day(value))
        elif hasattr(value, "value"):
            # str-valued enums (MovementType)
            parts.append(str(value.value))
        else:
            parts.append("" if value is None else str(value))
    return "|".join(parts)


def make_txn_id(fields: Mapping[str, Any]) -> str:
    """
    Compute the deterministic txn id of a movement.

    Format: ``TXN-`` + first 12 hex chars of SHA-1(fingerprint), uppercased.

    Postconditions:
        Equal business content (same day) always yields the same id.
    """
    digest = hashlib.sha1(txn_fingerprint(fields).encode("utf-8")).hexdigest()
    return TXN_ID_PREFIX + digest[:TXN_ID_HEX_LENGTH].upper()
