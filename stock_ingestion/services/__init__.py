"""Source import and table export services."""

from stock_ingestion.services.export_service import EXPORTABLE_TABLES, TableExportService
from stock_ingestion.services.import_service import (
    ImportResult,
    RowError,
    SourceImportService,
)

__all__ = [
    "EXPORTABLE_TABLES",
    "ImportResult",
    "RowError",
    "SourceImportService",
    "TableExportService",
]
