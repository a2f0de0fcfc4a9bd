"""Normalization of warehouse codes, SKUs and free text."""

import re
from typing import Any

_SEPARATORS = re.compile(r"[\s_]+")
_HYPHEN_RUNS = re.compile(r"-{2,}")
_WHITESPACE = re.compile(r"\s+")


def clean_text(value: Any) -> str:
    """Strip a cell value to text; None becomes ''."""
    if value is None:
        return ""
    return str(value).strip()


def normalize_warehouse_code(value: Any) -> str:
    """
    Canonical warehouse code.

    Uppercase, whitespace/underscore runs become one hyphen, repeated
    hyphens collapse, leading/trailing hyphens are stripped.

        >>> normalize_warehouse_code(" uae_attia ")
        'UAE-ATTIA'
        >>> normalize_warehouse_code("eg -- cai")
        'EG-CAI'
    """
    code = clean_text(value).upper()
    code = _SEPARATORS.sub("-", code)
    code = _HYPHEN_RUNS.sub("-", code)
    return code.strip("-")


def normalize_sku(value: Any) -> str:
    """Catalog lookup form of a SKU: uppercase, no whitespace."""
    return _WHITESPACE.sub("", clean_text(value)).upper()
