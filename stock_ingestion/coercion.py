"""
Cell coercion: raw spreadsheet/CSV values to typed column values.

Pure functions, ZERO I/O.  CSV sources produce strings; XLSX sources produce
ints, floats, datetimes or strings.  Every coercer accepts all of those and
raises ValueError with a short reason when the value cannot be used; the
import service turns that into a RowValidationError for the row.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from stock_kernel.utils.codes import clean_text, normalize_warehouse_code

_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%d/%m/%Y", "%d-%m-%Y", "%m/%d/%Y")


class ColumnKind(str, Enum):
    """How a column's cells are interpreted."""

    TEXT = "text"
    CODE = "code"  # warehouse codes, normalized
    DECIMAL = "decimal"  # blank -> 0
    OPTIONAL_DECIMAL = "optional_decimal"  # blank -> None
    DATE = "date"  # blank -> None
    INTEGER = "integer"  # blank -> None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def coerce_decimal(value: Any) -> Decimal:
    """
    Parse a number; thousands separators and surrounding spaces are ignored.

    Raises:
        ValueError: if the value is not numeric.
    """
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    s = clean_text(value).replace(",", "").replace(" ", "")
    try:
        return Decimal(s)
    except (InvalidOperation, ValueError):
        raise ValueError(f"not a number: {value!r}") from None


def coerce_date(value: Any) -> date:
    """
    Parse a date cell.  Datetimes are truncated to their day.

    Raises:
        ValueError: if no known format matches.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = clean_text(value)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValueError(f"not a date: {value!r}") from None


def coerce_cell(value: Any, kind: ColumnKind) -> Any:
    """
    Coerce one cell according to its column kind.

    Blank cells give '' for text kinds, 0 for DECIMAL and None otherwise.
    """
    if kind is ColumnKind.TEXT:
        if isinstance(value, float) and value == int(value):
            value = int(value)
        return clean_text(value)
    if kind is ColumnKind.CODE:
        return normalize_warehouse_code(value)
    if _is_blank(value):
        return Decimal("0") if kind is ColumnKind.DECIMAL else None
    if kind in (ColumnKind.DECIMAL, ColumnKind.OPTIONAL_DECIMAL):
        return coerce_decimal(value)
    if kind is ColumnKind.DATE:
        return coerce_date(value)
    if kind is ColumnKind.INTEGER:
        number = coerce_decimal(value)
        if number != number.to_integral_value():
            raise ValueError(f"not an integer: {value!r}")
        return int(number)
    raise ValueError(f"unsupported column kind {kind!r}")
