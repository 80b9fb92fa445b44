"""
Product import dry run: validate a local file and print the import report.

Nothing is written to the catalog.

Usage:
    # Report only, duplicates checked within the file
    python scripts/import_products.py data/produtos.csv

    # Check duplicates against the configured catalog, machine-readable output
    python scripts/import_products.py data/produtos.xlsx --catalog --json

    # Override the format when the extension is wrong
    python scripts/import_products.py export.txt --format delimited
"""

import argparse
import json
import os
import sys

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

from config.database import ConnectionError as CatalogConnectionError
from exceptions import AppError
from parsers.product_import_parser import (
    coerce_import_format,
    detect_import_format,
    validate_import_file,
)
from services.product_import_service import ImportPipelineResult, ProductImportService
from services.product_store import get_product_store


def _result_payload(result: ImportPipelineResult) -> dict:
    return {
        "format": result.table.source_format.value,
        "mapping": {h: f.value for h, f in result.mapped.mapping.items()},
        "unmapped_columns": result.mapped.unmapped_columns,
        "report": result.report.to_dict(),
        "outcomes": [o.to_dict() for o in result.outcomes],
        "duplicate_rows": result.duplicate_rows,
        "conflict_rows": result.conflict_rows,
        "ready_rows": result.ready_rows,
    }


def _print_result(path: str, result: ImportPipelineResult) -> None:
    report = result.report

    print("=" * 60)
    print(f"PRODUCT IMPORT: {os.path.basename(path)}")
    print("=" * 60)
    print(f"Format:     {result.table.source_format.value}")
    print(f"Columns:    {', '.join(f'{h} -> {f.value}' for h, f in result.mapped.mapping.items())}")
    if result.mapped.unmapped_columns:
        print(f"Unmapped:   {', '.join(result.mapped.unmapped_columns)}")
    print()
    print(report.summary)
    print(f"Duplicates: {len(result.duplicate_rows)}  Ready: {len(result.ready_rows)}")
    print(f"Estimated revenue: {report.estimated_revenue}  Total cost: {report.total_cost}")

    if report.top_errors:
        print()
        print("Top errors:")
        for error in report.top_errors:
            print(f"  {error.count:>5}x  {error.message}")

    invalid = [o for o in result.outcomes if not o.is_valid]
    if invalid:
        print()
        print("Invalid rows:")
        for outcome in invalid[:20]:
            print(f"  row {outcome.row_number}: {'; '.join(outcome.errors)}")
        if len(invalid) > 20:
            print(f"  ... and {len(invalid) - 20} more")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Validate a product import file and print its report."
    )
    parser.add_argument("file", help="CSV, Excel (.xlsx) or JSON file")
    parser.add_argument(
        "--format",
        choices=["delimited", "spreadsheet", "structured"],
        help="Container format (default: from the file extension)",
    )
    parser.add_argument(
        "--catalog",
        action="store_true",
        help="Check duplicates against the configured Supabase catalog",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON",
    )
    args = parser.parse_args(argv)

    try:
        with open(args.file, "rb") as f:
            content = f.read()

        if args.format:
            import_format = coerce_import_format(args.format)
        else:
            validate_import_file(os.path.basename(args.file), len(content))
            import_format = detect_import_format(args.file)

        store = get_product_store() if args.catalog else None
        result = ProductImportService(store=store).run(content, import_format)

    except AppError as e:
        print(json.dumps(e.to_dict(), indent=2, ensure_ascii=False), file=sys.stderr)
        return 1
    except CatalogConnectionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: cannot read {args.file}: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(_result_payload(result), indent=2, ensure_ascii=False, default=str))
    else:
        _print_result(args.file, result)

    return 0 if result.report.invalid == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
