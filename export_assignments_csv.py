"""Export every [Assignment: ...] placeholder in the written catalog as an authoring-guidance CSV."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from control_catalog.assemble import CONTROLS_DIRNAME
from control_catalog.assignments import export_assignments_csv
from control_catalog.config import load_parsing_rules, load_settings


def configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export assignment placeholders with category guidance to CSV.")
    parser.add_argument(
        "--catalog-dir",
        type=Path,
        default=None,
        help="Catalog directory containing controls/ (defaults to CATALOG_DIR).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="CSV path (defaults to <catalog-dir>/assignments.csv).",
    )
    parser.add_argument(
        "--rules",
        type=Path,
        default=Path("config/parsing_rules.yaml"),
        help="YAML overrides; only assignment_categories is used here.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (use -v for debug logs).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    catalog_dir = args.catalog_dir or load_settings().catalog_dir
    output = args.output or catalog_dir / "assignments.csv"
    try:
        rules = load_parsing_rules(args.rules)
        export_assignments_csv(catalog_dir / CONTROLS_DIRNAME, output, rules.assignment_categories)
    except (FileNotFoundError, ValueError) as exc:
        logging.error("Assignment export failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
