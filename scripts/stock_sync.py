#!/usr/bin/env python3
"""
Stock ledger command line: load source tables, run reconciliation connectors,
rebuild snapshots and export results.

Usage:
    python3 scripts/stock_sync.py [--db-url URL] [--config PATH] <command> ...

Examples:
    # Create the schema
    python3 scripts/stock_sync.py init-db

    # Load the upstream tables
    python3 scripts/stock_sync.py import receiving qc.xlsx --sheet "QC (UAE)"
    python3 scripts/stock_sync.py import transfers transfers.csv

    # Look at a file before importing it
    python3 scripts/stock_sync.py probe sales.csv

    # Post movements (one connector, or all in receiving -> transfer -> sales order)
    python3 scripts/stock_sync.py sync transfer
    python3 scripts/stock_sync.py sync all

    # Snapshots and exports
    python3 scripts/stock_sync.py rebuild-snapshots
    python3 scripts/stock_sync.py export snapshots snapshot_eg.csv --group EG
    python3 scripts/stock_sync.py export ledger ledger.xlsx

Environment:
    STOCK_DB_URL    default database URL (else sqlite:///stock.db)
    STOCK_CONFIG    default configuration file (else the packaged defaults)
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = os.environ.get("STOCK_DB_URL", "sqlite:///stock.db")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Inventory ledger: import sources, sync movements, rebuild snapshots.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--db-url",
        default=DB_URL,
        help=f"Database URL (default: {DB_URL!r}).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=os.environ.get("STOCK_CONFIG"),
        help="Inventory configuration YAML (default: packaged defaults).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Structured log level (default: INFO).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables.")

    p = sub.add_parser("probe", help="Row count, columns and sample rows of a source file.")
    p.add_argument("file", type=Path)
    p.add_argument("--sheet", default=None, help="XLSX sheet name.")

    p = sub.add_parser("import", help="Load a source file into its table.")
    p.add_argument(
        "table",
        choices=("receiving", "purchases", "inbound_shipments", "transfers", "sales", "catalog", "ledger"),
    )
    p.add_argument("file", type=Path)
    p.add_argument("--sheet", default=None, help="XLSX sheet name.")
    p.add_argument("--skip-rows", type=int, default=0, help="Rows above the header to skip.")
    p.add_argument("--delimiter", default=",", help="CSV delimiter (default: ',').")

    p = sub.add_parser("sync", help="Run a reconciliation connector.")
    p.add_argument("connector", help="receiving, transfer, sales or all")

    sub.add_parser("rebuild-snapshots", help="Rebuild every warehouse snapshot from the ledger.")

    p = sub.add_parser("export", help="Write ledger, snapshots or transfers to CSV/XLSX.")
    p.add_argument("table", choices=("ledger", "snapshots", "transfers"))
    p.add_argument("file", type=Path)
    p.add_argument("--group", default=None, help="Warehouse group (snapshots only).")

    return parser.parse_args(argv)


def _source_options(args: argparse.Namespace) -> dict:
    options: dict = {}
    if getattr(args, "sheet", None):
        options["sheet"] = args.sheet
    if getattr(args, "skip_rows", 0):
        options["skip_rows"] = args.skip_rows
    if getattr(args, "delimiter", ",") != ",":
        options["delimiter"] = args.delimiter
    return options


def _print_summary(summary) -> None:
    print(
        f"  {summary.connector}: candidates={summary.candidates} posted={summary.posted} "
        f"duplicates={summary.duplicates} unchanged={summary.unchanged} "
        f"ineligible={summary.ineligible} skipped={summary.skipped_count}"
    )
    for row in summary.skipped[:10]:
        print(f"    skipped {row.row_key}: [{row.code}] {row.message}")
    if len(summary.skipped) > 10:
        print(f"    ... and {len(summary.skipped) - 10} more skipped rows.")


def _cmd_import(args, engine, config) -> int:
    from stock_ingestion.services import SourceImportService
    from stock_kernel.db.engine import session_scope
    from stock_services import LedgerLock, SnapshotService

    source_path = args.file.resolve()
    if not source_path.is_file():
        print(f"ERROR: File not found: {source_path}", file=sys.stderr)
        return 1

    def _load():
        with session_scope() as session:
            result = SourceImportService(session, config).import_file(
                args.table, source_path, _source_options(args)
            )
            if args.table == "ledger":
                SnapshotService(session, config).rebuild_all()
            return result

    if args.table == "ledger":
        # Ledger appends follow the same lock-then-commit order as the connectors
        with LedgerLock.from_settings(engine, config.ledger).hold():
            result = _load()
    else:
        result = _load()

    print(
        f"Imported {result.rows_imported} of {result.rows_read} rows into {result.table}"
        + (f" ({result.duplicates} duplicates)" if result.duplicates else "")
    )
    for err in result.errors[:10]:
        print(f"  Row {err.row_number}: {err.message}")
    if len(result.errors) > 10:
        print(f"  ... and {len(result.errors) - 10} more rejected rows.")
    if result.unknown_headers:
        print(f"  Ignored columns: {list(result.unknown_headers)}")
    return 0


def _cmd_probe(args, config) -> int:
    from stock_ingestion.services import SourceImportService
    from stock_kernel.db.engine import get_session

    session = get_session()
    try:
        probe = SourceImportService(session, config).probe(args.file.resolve(), _source_options(args))
    finally:
        session.close()
    print(f"Rows: {probe.row_count}")
    print(f"Columns: {list(probe.columns)}")
    print("Sample (first 3):")
    for i, row in enumerate(probe.sample_rows[:3], 1):
        print(f"  {i}: {row}")
    return 0


def _cmd_sync(args, engine, config) -> int:
    from stock_kernel.db.engine import get_session_factory
    from stock_services import SyncRunner

    runner = SyncRunner(engine, get_session_factory(), config)
    names = None if args.connector == "all" else [args.connector]
    for result in runner.run_many(names):
        print(f"Run {result.run_id}:")
        for summary in result.summaries:
            _print_summary(summary)
        print(f"  snapshot rows: {result.snapshot_rows}")
    return 0


def _cmd_rebuild(engine, config) -> int:
    from stock_kernel.db.engine import get_session_factory
    from stock_services import SyncRunner

    rebuilt = SyncRunner(engine, get_session_factory(), config).rebuild_snapshots()
    for group, count in rebuilt.items():
        print(f"  {group}: {count} rows")
    return 0


def _cmd_export(args, config) -> int:
    from stock_ingestion.services import TableExportService
    from stock_kernel.db.engine import session_scope

    with session_scope() as session:
        count = TableExportService(session, config).export(args.table, args.file, args.group)
    print(f"Exported {count} rows to {args.file}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from stock_config import load_config
    from stock_kernel.db.engine import create_tables, init_engine_from_url
    from stock_kernel.db.immutability import register_immutability_listeners
    from stock_kernel.exceptions import StockKernelError
    from stock_kernel.logging_config import configure_logging

    configure_logging(level=getattr(logging, args.log_level))

    try:
        config = load_config(args.config)
    except StockKernelError as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    try:
        engine = init_engine_from_url(args.db_url)
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1
    register_immutability_listeners()

    try:
        if args.command == "init-db":
            create_tables()
            print(f"Tables created on {engine.url.render_as_string(hide_password=True)}")
            return 0
        if args.command == "probe":
            return _cmd_probe(args, config)
        if args.command == "import":
            return _cmd_import(args, engine, config)
        if args.command == "sync":
            return _cmd_sync(args, engine, config)
        if args.command == "rebuild-snapshots":
            return _cmd_rebuild(engine, config)
        if args.command == "export":
            return _cmd_export(args, config)
    except (StockKernelError, KeyError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 1


if __name__ == "__main__":
    sys.exit(main())
