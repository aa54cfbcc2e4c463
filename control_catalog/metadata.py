from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

from .schema import CatalogMetadata, clean_text

MONTH_YEAR_RE = re.compile(
    r"\b(?:January|February|March|April|May|June|July|August|September|October|November|December)\s+\d{4}\b",
    re.IGNORECASE,
)
VERSION_RE = re.compile(r"\b(?:version|revision)\s*([0-9]+(?:\.[0-9]+)*)\b", re.IGNORECASE)
ANNEX_RE = re.compile(r"\bAnnex\s+([0-9]+[A-Z]?)\b", re.IGNORECASE)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first_group(*candidates: Optional[re.Match]) -> Optional[str]:
    for match in candidates:
        if match:
            return match.group(1)
    return None


def extract_catalog_metadata(
    page: Optional[Dict[str, Any]],
    body_html: str,
    source_url: Optional[str] = None,
    source_api_url: Optional[str] = None,
    extracted_at: Optional[str] = None,
) -> CatalogMetadata:
    """
    Derive catalog title, edition and revision from page metadata and prose.

    The title comes from the page record; the revision date is the first
    "Month YYYY" found in a paragraph, falling back to the whole body. Fields
    that cannot be determined stay ``None``.
    """

    page = page or {}
    soup = BeautifulSoup(body_html or "", "html.parser")
    all_text = clean_text(soup.get_text(" "))
    paragraphs = [text for text in (clean_text(p.get_text()) for p in soup.find_all("p")) if text]

    revision_date: Optional[str] = None
    for text in paragraphs:
        match = MONTH_YEAR_RE.search(text)
        if match:
            revision_date = match.group(0)
            break
    if revision_date is None:
        match = MONTH_YEAR_RE.search(all_text)
        revision_date = match.group(0) if match else None

    title = clean_text(str(page.get("title") or ""))
    revision_number = _first_group(VERSION_RE.search(title), VERSION_RE.search(all_text))
    annex = _first_group(ANNEX_RE.search(title), ANNEX_RE.search(all_text))

    return CatalogMetadata(
        catalog_title=title or None,
        catalog_edition=f"Annex {annex}" if annex else None,
        catalog_revision_number=revision_number,
        catalog_revision_date=revision_date,
        source_url=source_url,
        source_api_url=source_api_url,
        page_date_modified=page.get("date_modified"),
        page_date_created=page.get("date_created"),
        extracted_at=extracted_at or utc_timestamp(),
    )
