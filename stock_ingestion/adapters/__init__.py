"""Source adapters for tabular inputs (file I/O only, no DB)."""

from stock_ingestion.adapters.base import SourceAdapter, SourceProbe
from stock_ingestion.adapters.csv_adapter import CsvSourceAdapter
from stock_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter

__all__ = [
    "SourceAdapter",
    "SourceProbe",
    "CsvSourceAdapter",
    "XlsxSourceAdapter",
]
