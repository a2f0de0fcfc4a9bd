"""
stock_ingestion -- tabular source files in and out of the stock database.

Provides header-addressed table contracts, CSV/XLSX adapters, the import
service that loads upstream tables (QC, purchases, shipments, transfers,
sales, catalog, legacy ledger) and the export service that writes the
ledger, snapshots and transfer lines back out.

Architecture:
    stock_ingestion/ is a top-level package. Nothing in kernel/, engines/
    or services/ imports from ingestion.
"""
