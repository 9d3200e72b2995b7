"""
catalog_backend.verify_introspection — CLI for introspection directory checks.

Usage:
    python -m catalog_backend.verify_introspection --data-path data/
    python -m catalog_backend.verify_introspection --data-path data/ --catalog data/geocatalogo_records.json
    python -m catalog_backend.verify_introspection --data-path data/ --json
    python -m catalog_backend.verify_introspection --data-path data/ --quiet

Exit codes:
    0: Clean — every introspection file loaded (and the catalog, if given).
    1: Load warnings — one or more introspection files failed to load.
    2: Catalog unavailable — the --catalog file is missing or unparseable.

Output:
    Default: human-readable summary to stdout.
    --json: structured JSON report to stdout.
    --quiet: no output, only exit code.

With --catalog, every record is resolved against the store and the report
includes how many records found an introspection entry, per kind.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections import Counter
from pathlib import Path
from typing import Any, Optional

from catalog_backend.constants import DEFAULT_STORAGE_PREFIX
from catalog_backend.metadata_store import MetadataStore
from catalog_backend.records import CatalogUnavailableError, load_records
from catalog_backend.settings import DEFAULT_DATA_PATH

EXIT_OK = 0
EXIT_LOAD_WARNINGS = 1
EXIT_CATALOG_UNAVAILABLE = 2

EXIT_CODE_LABELS: dict[int, str] = {
    EXIT_OK: "CLEAN",
    EXIT_LOAD_WARNINGS: "LOAD_WARNINGS",
    EXIT_CATALOG_UNAVAILABLE: "CATALOG_UNAVAILABLE",
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="verify_introspection",
        description="Load an introspection directory and report per-category counts.",
    )
    parser.add_argument(
        "--data-path",
        type=str,
        default=str(DEFAULT_DATA_PATH),
        help="Introspection directory (default: <repo>/data).",
    )
    parser.add_argument(
        "--catalog",
        type=str,
        default=None,
        help="Catalog records file. When given, report lookup coverage.",
    )
    parser.add_argument(
        "--storage-prefix",
        type=str,
        default=DEFAULT_STORAGE_PREFIX,
        help=f"Bucket prefix stripped from storage paths (default: {DEFAULT_STORAGE_PREFIX}).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output structured JSON report.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all output. Exit code only.",
    )
    return parser


def _coverage(store: MetadataStore, catalog: Path) -> dict[str, Any]:
    records = load_records(catalog)
    by_kind: Counter[str] = Counter()
    for record in records:
        entry = store.lookup_record(record)
        if entry is not None:
            by_kind[entry.kind.value] += 1
    resolved = sum(by_kind.values())
    return {
        "records": len(records),
        "resolved": resolved,
        "unresolved": len(records) - resolved,
        "by_kind": dict(sorted(by_kind.items())),
    }


def build_report(
    data_path: Path,
    catalog: Optional[Path] = None,
    storage_prefix: str = DEFAULT_STORAGE_PREFIX,
) -> dict[str, Any]:
    store = MetadataStore.load(data_path, storage_prefix=storage_prefix)
    report: dict[str, Any] = {
        "data_path": str(data_path),
        "counts": store.category_counts(),
        "warnings": [w.to_dict() for w in store.warnings],
        "coverage": None,
        "catalog_error": None,
    }

    exit_code = EXIT_LOAD_WARNINGS if store.warnings else EXIT_OK
    if catalog is not None:
        try:
            report["coverage"] = _coverage(store, catalog)
        except CatalogUnavailableError as exc:
            report["catalog_error"] = exc.detail
            exit_code = EXIT_CATALOG_UNAVAILABLE

    report["exit_code"] = exit_code
    report["status"] = EXIT_CODE_LABELS[exit_code]
    return report


def main(argv: list[str] | None = None) -> int:
    """Run verification. Returns exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    report = build_report(
        data_path=Path(args.data_path),
        catalog=Path(args.catalog) if args.catalog else None,
        storage_prefix=args.storage_prefix,
    )
    exit_code: int = report["exit_code"]

    if args.quiet:
        return exit_code

    if args.json_output:
        print(json.dumps(report, indent=2, ensure_ascii=False))
        return exit_code

    print(f"Introspection: {report['data_path']}")
    print(f"Status:        {report['status']}")
    for category, count in report["counts"].items():
        print(f"  {category:<12} {count}")

    if report["warnings"]:
        print(f"\nWarnings ({len(report['warnings'])}):")
        for warning in report["warnings"]:
            print(f"  • {warning['category']}: {warning['reason']} ({warning['path']})")

    coverage = report["coverage"]
    if coverage is not None:
        print(f"\nCatalog: {coverage['resolved']}/{coverage['records']} records resolved")
        for kind, count in coverage["by_kind"].items():
            print(f"  {kind:<14} {count}")
    if report["catalog_error"]:
        print(f"\nCatalog error: {report['catalog_error']}")

    print(f"\nExit code: {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
