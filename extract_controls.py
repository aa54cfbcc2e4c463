"""
Build the security control catalog from its published source.

Subcommands:
  download  fetch the source PDF and record its SHA-256 checksum
  pdf       extract the catalog from the downloaded PDF
  html      extract the catalog from the HTML page (page API or a saved copy)
  inspect   print grouped PDF lines for a page range
  publish   copy a written catalog into the static layout served to browsers
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import requests

from control_catalog.assemble import build_catalog, publish_catalog, write_catalog
from control_catalog.config import ensure_directories, load_parsing_rules, load_settings
from control_catalog.lines import group_pdf_lines
from control_catalog.loaders import download_pdf, read_pdf_fragments
from control_catalog.sources import CatalogSource, HtmlCatalogSource, PdfCatalogSource


def configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Extract, inspect and publish the security control catalog.")
    parser.add_argument(
        "--rules",
        type=Path,
        default=Path("config/parsing_rules.yaml"),
        help="YAML overrides for section headers, split-token fixes and assignment categories.",
    )
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=None,
        help="Catalog output directory (defaults to CATALOG_DIR).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (use -v for debug logs).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    download = sub.add_parser("download", help="Download the source PDF.")
    download.add_argument("--url", default=None, help="Override PDF_DOWNLOAD_URL.")
    download.add_argument("--dest", type=Path, default=None, help="Where to save the PDF.")

    pdf = sub.add_parser("pdf", help="Extract from the source PDF.")
    pdf.add_argument("--input", type=Path, default=None, help="Path to the PDF (defaults to SOURCE_DIR/annex-3a.pdf).")
    pdf.add_argument(
        "--start-marker",
        default=None,
        help="Text that marks the start of the control definitions (empty string disables).",
    )

    html = sub.add_parser("html", help="Extract from the HTML catalog page.")
    html.add_argument(
        "--input",
        type=Path,
        default=None,
        help="Saved page (.html, or .json page-API response) instead of fetching HTML_SOURCE_API_URL.",
    )
    html.add_argument(
        "--extracted-at",
        default=None,
        help="Fixed extraction timestamp for reproducible metadata.",
    )

    inspect = sub.add_parser("inspect", help="Print grouped PDF lines for a page range.")
    inspect.add_argument("start", type=int, nargs="?", default=1)
    inspect.add_argument("end", type=int, nargs="?", default=None)
    inspect.add_argument("--input", type=Path, default=None)

    publish = sub.add_parser("publish", help="Copy the written catalog into the publish directory.")
    publish.add_argument("--target", type=Path, default=None, help="Override PUBLISH_DIR.")

    return parser.parse_args(argv)


def run_extract(source: CatalogSource, out_dir: Path, extracted_at: Optional[str] = None) -> None:
    catalog = build_catalog(source, extracted_at=extracted_at)
    write_catalog(catalog, out_dir)


def run_inspect(pdf_path: Path, start: int, end: Optional[int]) -> None:
    last = end if end is not None else start
    pages = read_pdf_fragments(pdf_path, first_page=start, last_page=last)
    for page_number, fragments in enumerate(pages, start=start):
        print(f"\n--- Page {page_number} ---")
        for line in group_pdf_lines(fragments):
            print(line)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    settings = load_settings()
    out_dir = args.out_dir or settings.catalog_dir

    try:
        if args.command == "download":
            ensure_directories(settings)
            download_pdf(args.url or settings.pdf_download_url, args.dest or settings.source_pdf, settings.request_timeout)
        elif args.command == "inspect":
            run_inspect(args.input or settings.source_pdf, args.start, args.end)
        elif args.command == "publish":
            publish_catalog(out_dir, args.target or settings.publish_dir)
        else:
            rules = load_parsing_rules(args.rules)
            if args.command == "pdf":
                marker = settings.pdf_start_marker if args.start_marker is None else (args.start_marker or None)
                source: CatalogSource = PdfCatalogSource(
                    args.input or settings.source_pdf,
                    rules=rules,
                    start_marker=marker,
                    source_url=settings.pdf_download_url,
                )
                run_extract(source, out_dir)
            else:
                if args.input:
                    source = HtmlCatalogSource.from_file(args.input, source_url=settings.html_source_url, rules=rules)
                else:
                    source = HtmlCatalogSource.from_api(
                        settings.html_source_api_url,
                        source_url=settings.html_source_url,
                        rules=rules,
                        timeout=settings.request_timeout,
                    )
                run_extract(source, out_dir, extracted_at=args.extracted_at)
    except (FileNotFoundError, ValueError, RuntimeError, requests.RequestException) as exc:
        logging.error("%s failed: %s", args.command, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
