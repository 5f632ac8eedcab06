#!/usr/bin/env python3
"""
Run the legacy fuel log pipeline over decoded spreadsheet rows.

The input is a JSON file holding a list of row objects keyed by the legacy
column headers (Planta, Almacen, Fecha, Tipo, Litros, ...).

Usage:
    python3 scripts/run_fuel_import.py --file rows.json [options]

Examples:
    # Preview only: parse, aggregate, validate and reconcile
    python3 scripts/run_fuel_import.py --file diesel_2023.json

    # Urea log with a custom threshold file, persisted to SQLite
    python3 scripts/run_fuel_import.py --file urea.json --product urea \\
        --config thresholds.yaml --db-url sqlite:///fuel.db --persist

    # Resolve a pending legacy code before processing
    python3 scripts/run_fuel_import.py --file rows.json --db-url sqlite:///fuel.db \\
        --map UNIT-77=asset-0077 --persist
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from uuid import UUID, uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Legacy fuel log import: parse -> aggregate -> resolve -> validate -> reconcile.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--file", required=True, type=Path, help="JSON file with the decoded rows.")
    parser.add_argument(
        "--product",
        choices=("diesel", "urea"),
        default="diesel",
        help="Product tracked by the log (default: diesel).",
    )
    parser.add_argument("--config", type=Path, default=None, help="Threshold YAML (default: packaged defaults).")
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: FUEL_DATABASE_URL env or in-memory SQLite).",
    )
    parser.add_argument(
        "--map",
        action="append",
        default=[],
        metavar="CODE=ASSET_ID",
        help="Resolve a legacy asset code before processing. Repeatable.",
    )
    parser.add_argument("--persist", action="store_true", help="Write transactions and batch summaries.")
    parser.add_argument(
        "--actor-id",
        default=None,
        help="Actor UUID for audit (default: FUEL_IMPORT_ACTOR_ID env or new UUID).",
    )
    parser.add_argument("--json", action="store_true", help="Print the preview as JSON.")
    return parser.parse_args()


def _print_batch(summary: dict) -> None:
    print(
        f"  {summary['plant_code']}/{summary['warehouse_number']} "
        f"[{summary['product_type']}] {summary['date_range']}"
    )
    counts = summary["counts"]
    print(
        f"    rows={summary['total_rows']} entries={counts['entry']} "
        f"consumptions={counts['consumption']} adjustments={counts['adjustment']} "
        f"unclassified={counts['unclassified']} rejected={counts['rejected']}"
    )
    print(
        f"    initial={summary['initial_inventory']} in={summary['total_litros_in']} "
        f"out={summary['total_litros_out']} computed={summary['final_inventory_computed']} "
        f"provided={summary['final_inventory_provided']}"
    )
    print(
        f"    discrepancy={summary['discrepancy']} status={summary['reconciliation_status']} "
        f"meter warnings={summary['validation_warnings']} errors={summary['validation_errors']}"
    )
    if summary["unmapped_assets"]:
        print(f"    unmapped: {', '.join(summary['unmapped_assets'])}")


def main() -> int:
    args = _parse_args()

    actor_id = UUID(args.actor_id) if args.actor_id else UUID(os.environ.get("FUEL_IMPORT_ACTOR_ID", str(uuid4())))
    source_path = args.file.resolve()
    if not source_path.is_file():
        print(f"ERROR: File not found: {source_path}", file=sys.stderr)
        return 1

    # Lazy imports so we fail fast on args first
    from fuel_config import get_active_config
    from fuel_kernel.db.engine import (
        create_tables,
        database_url_from_env,
        init_engine_from_url,
        session_scope,
    )
    from fuel_kernel.exceptions import FuelKernelError

    try:
        config = get_active_config(args.config)
    except (OSError, FuelKernelError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    try:
        rows = json.loads(source_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"ERROR: Cannot read rows: {e}", file=sys.stderr)
        return 1
    if not isinstance(rows, list):
        print("ERROR: Expected a JSON list of row objects.", file=sys.stderr)
        return 1

    mappings: dict[str, str] = {}
    for item in args.map:
        code, sep, asset_id = item.partition("=")
        if not sep:
            print(f"ERROR: --map expects CODE=ASSET_ID, got {item!r}", file=sys.stderr)
            return 1
        mappings[code] = asset_id

    init_engine_from_url(args.db_url or database_url_from_env())
    create_tables()
    try:
        with session_scope() as session:
            return _run(session, args, actor_id, config, rows, mappings, source_path)
    except FuelKernelError as e:
        print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
        return 1


def _run(session, args, actor_id, config, rows, mappings, source_path) -> int:
    from fuel_kernel.domain.transactions import ProductType
    from fuel_services import AssetMappingService, BatchImportService, ImportContext

    if mappings:
        AssetMappingService(session, actor_id).resolve_many(mappings)

    service = BatchImportService(session, config)
    context = ImportContext(
        actor_id=actor_id,
        product_type=ProductType(args.product),
        source_filename=source_path.name,
    )
    preview = service.prepare(rows, context)

    if args.json:
        print(json.dumps(preview.summary(), indent=2, default=str))
    else:
        print(f"Import {context.import_id}: {preview.parse_result.total_rows} rows")
        for batch in preview.batches:
            _print_batch(batch.summary())
        for diag in preview.diagnostics:
            print(f"  [{diag.severity.value}] {diag.code}: {diag.message}")
        if preview.unmapped_codes:
            print(f"Pending mappings: {', '.join(preview.unmapped_codes)}")

    if not args.persist:
        return 0

    result = service.process(preview)
    print(f"Persisted {len(result.batches)} batches, {result.transactions_written} transactions.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
