from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

from .enhancements import parse_enhancements
from .lines import HtmlBlock, element_text
from .related import resolve_related_controls
from .schema import (
    Catalog,
    ControlIndexItem,
    ControlRecord,
    Enhancement,
    family_of,
)
from .segment import SectionedControl, SectionItem, item_text
from .sources import CatalogSource
from .statement import parse_statement

INDEX_FILENAME = "controls-index.json"
METADATA_FILENAME = "catalog-metadata.json"
CONTROLS_DIRNAME = "controls"

PUBLISHED_INDEX_NAME = "index"
PUBLISHED_METADATA_NAME = "metadata.json"


def _joined(items: Iterable[SectionItem]) -> Optional[str]:
    text = " ".join(item_text(item) for item in items if item_text(item)).strip()
    return text or None


def _reference_entries(items: Iterable[SectionItem]) -> List[str]:
    entries: List[str] = []
    for item in items:
        if isinstance(item, HtmlBlock) and item.is_list:
            for li in item.element.find_all("li", recursive=False):
                text = element_text(li)
                if text:
                    entries.append(text)
            continue
        text = item_text(item)
        if text:
            entries.append(text)
    return entries


def build_record(sectioned: SectionedControl, source_type: str, source_url: Optional[str] = None) -> ControlRecord:
    statement, parts = parse_statement(sectioned.get("statement"))
    guidance = _joined(sectioned.get("supplemental_guidance"))
    enhancements = parse_enhancements(sectioned.get("enhancements"), sectioned.control_id)
    related = resolve_related_controls(
        guidance or "",
        [item_text(item) for item in sectioned.get("related_controls")],
    )

    return ControlRecord(
        control_id=sectioned.control_id,
        control_name=sectioned.control_name,
        statement=statement,
        statement_parts=parts,
        supplemental_guidance=guidance,
        enhancements=enhancements,
        related_controls=tuple(related),
        references=tuple(_reference_entries(sectioned.get("references"))),
        source_url=source_url,
        source_type=source_type,
    )


def build_keywords(control_name: str, enhancements: Sequence[Enhancement]) -> List[str]:
    """Control name plus every enhancement id and title, first occurrence kept."""

    keywords = {}
    if control_name:
        keywords[control_name] = None
    for enhancement in enhancements:
        if enhancement.enhancement_id:
            keywords[enhancement.enhancement_id] = None
        if enhancement.title:
            keywords[enhancement.title] = None
    return list(keywords)


def build_index_item(record: ControlRecord) -> ControlIndexItem:
    # Aliases are curated by hand after publication and never derived here.
    return ControlIndexItem(
        control_id=record.control_id,
        control_name=record.control_name,
        family_id=family_of(record.control_id),
        aliases=(),
        keywords=tuple(build_keywords(record.control_name, record.enhancements)),
    )


def build_catalog(source: CatalogSource, extracted_at: Optional[str] = None) -> Catalog:
    """
    Run the whole extraction for one source and return the catalog in memory.

    Nothing touches the filesystem here, so a failure anywhere in parsing
    leaves any previously written catalog untouched.
    """

    sectioned = source.sectioned_controls()
    records = [build_record(control, source.source_type, source.source_url) for control in sectioned]
    index = [build_index_item(record) for record in records]
    metadata = source.metadata(extracted_at=extracted_at)

    enhancement_total = sum(len(record.enhancements) for record in records)
    logging.info(
        "Built catalog",
        extra={"controls": len(records), "enhancements": enhancement_total, "source_type": source.source_type},
    )
    return Catalog(records=records, index=index, metadata=metadata)


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def write_json_atomic(path: Path, data: Any) -> None:
    """Write ``data`` to a temp file in the target directory, then rename it into place."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(dump_json(data))
        os.replace(tmp_name, path)
    except Exception:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_catalog(catalog: Catalog, out_dir: Path) -> Path:
    """
    Persist a catalog under ``out_dir``.

    Control records go first, then the metadata, then the index. Readers key
    off the index, so they never see an id whose record has not been written.
    Records left over from a previous build that are not in the new index are
    removed once the index is in place.
    """

    if not catalog.records:
        raise RuntimeError("Refusing to write an empty catalog.")

    controls_dir = out_dir / CONTROLS_DIRNAME
    controls_dir.mkdir(parents=True, exist_ok=True)

    for record in catalog.records:
        write_json_atomic(controls_dir / f"{record.control_id}.json", record.to_dict())

    if catalog.metadata is not None:
        write_json_atomic(out_dir / METADATA_FILENAME, catalog.metadata.to_dict())

    index_path = out_dir / INDEX_FILENAME
    write_json_atomic(index_path, [item.to_dict() for item in catalog.index])

    current = {f"{item.control_id}.json" for item in catalog.index}
    removed = 0
    for stale in controls_dir.glob("*.json"):
        if stale.name not in current:
            stale.unlink()
            removed += 1

    logging.info(
        "Wrote catalog",
        extra={"path": str(out_dir), "controls": len(catalog.records), "stale_removed": removed},
    )
    return index_path


def publish_catalog(catalog_dir: Path, target_dir: Path) -> int:
    """
    Copy a written catalog into the static layout the read API and browser use.

    The target receives ``index``, ``metadata.json`` (when present) and one
    ``<control_id>.json`` per record. Existing ``.json`` files in the target
    are cleared first. Returns the number of control files published.
    """

    index_path = catalog_dir / INDEX_FILENAME
    controls_dir = catalog_dir / CONTROLS_DIRNAME
    if not index_path.exists():
        raise FileNotFoundError(f"Catalog index not found: {index_path}")
    if not controls_dir.is_dir():
        raise FileNotFoundError(f"Catalog controls directory not found: {controls_dir}")

    target_dir.mkdir(parents=True, exist_ok=True)
    for existing in target_dir.glob("*.json"):
        existing.unlink()

    shutil.copyfile(index_path, target_dir / PUBLISHED_INDEX_NAME)
    metadata_path = catalog_dir / METADATA_FILENAME
    if metadata_path.exists():
        shutil.copyfile(metadata_path, target_dir / PUBLISHED_METADATA_NAME)

    published = 0
    for control_file in sorted(controls_dir.glob("*.json")):
        shutil.copyfile(control_file, target_dir / control_file.name)
        published += 1

    logging.info("Published catalog", extra={"target": str(target_dir), "controls": published})
    return published
