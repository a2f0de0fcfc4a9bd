"""
XLSX source adapter for workbook exports of the ERP sheets.

Supports flexible layout:
  - sheet by index (0-based) or name
  - header row by index or auto-detect (first row containing at least two of
    the expected headers passed in ``header_keywords``)
  - skip_rows before header
  - normalizes cell values (strip, blank->empty string, whole floats->int)

Dates come back as ``datetime`` objects; coercion truncates them to days.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterator

import openpyxl

from stock_ingestion.adapters.base import SourceProbe

_MAX_ROWS = 100_000
_SAMPLE_SIZE = 5


def _normalize_header_cell(value: Any) -> str:
    """Normalize a cell value for use as a row key."""
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def _cell_value(row: Any, col_idx: int) -> Any:
    """Get a cell value from a values-only row (0-based column index)."""
    try:
        v = row[col_idx]
    except IndexError:
        return ""
    if v is None:
        return ""
    if isinstance(v, float) and v == int(v):
        return int(v)
    if isinstance(v, str):
        return v.strip()
    return v


def _column_count(row: Any) -> int:
    n = 0
    for c in range(len(row)):
        if _cell_value(row, c) != "":
            n = c + 1
    return max(n, 1)


def _detect_header_row(
    rows: list,
    keywords: frozenset[str],
    max_search: int = 15,
    min_keywords: int = 2,
) -> int:
    """Return 0-based index of the first row holding enough expected headers."""
    if not keywords:
        return 0
    for i, row in enumerate(rows[:max_search]):
        found = {
            _normalize_header_cell(_cell_value(row, c)).lower()
            for c in range(len(row))
        } & keywords
        if len(found) >= min_keywords:
            return i
    return 0


def _headers(header_row: Any, ncols: int) -> list[str]:
    headers: list[str] = []
    for c in range(ncols):
        key = _normalize_header_cell(_cell_value(header_row, c)) or f"Column_{c + 1}"
        base = key
        cnt = 0
        while key in headers:
            cnt += 1
            key = f"{base}_{cnt}"
        headers.append(key)
    return headers


class XlsxSourceAdapter:
    """
    Read .xlsx files as one dict per row.

    source options:
      sheet: 0-based sheet index (int) or sheet name (str). Default: active sheet.
      skip_rows: rows to skip at top of sheet before header/data. Default: 0.
      header_row: 0-based row index (after skip_rows) to use as header.
      header_keywords: expected header names; when header_row is omitted the
        first of the top 15 rows containing two of them is the header.
    """

    def _get_sheet(self, wb: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if sheet_ref is None:
            return wb.active
        if isinstance(sheet_ref, int):
            return wb.worksheets[sheet_ref]
        return wb[sheet_ref]

    def _header_index(self, rows: list, options: dict[str, Any]) -> int:
        header_row_idx = options.get("header_row")
        if header_row_idx is not None:
            return int(header_row_idx)
        keywords = frozenset(
            _normalize_header_cell(k).lower() for k in options.get("header_keywords", ())
        )
        return _detect_header_row(rows, keywords)

    def _rows(self, source_path: Path, options: dict[str, Any], max_row: int):
        wb = openpyxl.load_workbook(source_path, read_only=True, data_only=True)
        try:
            sheet = self._get_sheet(wb, options)
            skip_rows = int(options.get("skip_rows", 0))
            return list(sheet.iter_rows(min_row=1 + skip_rows, max_row=max_row, values_only=True))
        finally:
            wb.close()

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        rows = self._rows(source_path, options, _MAX_ROWS)
        if not rows:
            return
        hi = self._header_index(rows, options)
        ncols = _column_count(rows[hi])
        headers = _headers(rows[hi], ncols)
        for row in rows[hi + 1 :]:
            vals = [_cell_value(row, c) for c in range(ncols)]
            if not any(v != "" for v in vals):
                continue
            yield dict(zip(headers, vals))

    def probe(self, source_path: Path, options: dict[str, Any]) -> SourceProbe:
        rows = self._rows(source_path, options, _MAX_ROWS)
        if not rows:
            return SourceProbe(row_count=0, columns=(), sample_rows=())

        hi = self._header_index(rows, options)
        ncols = _column_count(rows[hi])
        headers = _headers(rows[hi], ncols)
        sample: list[dict[str, Any]] = []
        count = 0
        for row in rows[hi + 1 :]:
            vals = [_cell_value(row, c) for c in range(ncols)]
            if not any(v != "" for v in vals):
                continue
            count += 1
            if len(sample) < _SAMPLE_SIZE:
                sample.append(dict(zip(headers, vals)))
        return SourceProbe(
            row_count=count,
            columns=tuple(headers),
            sample_rows=tuple(sample),
        )
