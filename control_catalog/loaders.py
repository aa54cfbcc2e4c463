from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests
from bs4 import BeautifulSoup
from pypdf import PdfReader

from .lines import PdfFragment


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    hasher = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def download_pdf(url: str, dest: Path, timeout: int = 60) -> str:
    """Download the source PDF, write ``<dest>.sha256`` next to it and return the digest."""

    logging.info("Downloading source PDF", extra={"url": url})
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    data = response.content

    digest = sha256_bytes(data)
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(data)
    checksum_path = dest.with_name(dest.name + ".sha256")
    checksum_path.write_text(f"{digest}  {dest}\n", encoding="utf-8")
    logging.info("Saved source PDF", extra={"path": str(dest), "sha256": digest})
    return digest


def _fragment_position(cm: Sequence[float], tm: Sequence[float]) -> Tuple[float, float]:
    # Text origin in user space: the text matrix translation mapped through the CTM.
    x = tm[4] * cm[0] + tm[5] * cm[2] + cm[4]
    y = tm[4] * cm[1] + tm[5] * cm[3] + cm[5]
    return x, y


def read_pdf_fragments(path: Path, first_page: int = 1, last_page: Optional[int] = None) -> List[List[PdfFragment]]:
    """Positioned text fragments per page (1-based, inclusive page range)."""

    if not path.exists():
        raise FileNotFoundError(f"Source PDF not found: {path}")

    reader = PdfReader(str(path))
    last = min(last_page or len(reader.pages), len(reader.pages))
    pages: List[List[PdfFragment]] = []
    for page_number in range(max(first_page, 1), last + 1):
        fragments: List[PdfFragment] = []

        def visitor(text, cm, tm, font_dict, font_size) -> None:
            if not text or not text.strip():
                return
            x, y = _fragment_position(cm, tm)
            fragments.append(PdfFragment(x=x, y=y, text=text))

        reader.pages[page_number - 1].extract_text(visitor_text=visitor)
        pages.append(fragments)
    logging.debug("Read PDF fragments", extra={"path": str(path), "pages": len(pages)})
    return pages


def _page_from_payload(payload: Any) -> Tuple[Dict[str, Any], str]:
    page = (payload.get("response") or {}).get("page") if isinstance(payload, dict) else None
    if not isinstance(page, dict):
        raise ValueError("Unexpected API response shape: page missing")
    body = page.get("body")
    body_html = body[0] if isinstance(body, list) and body else None
    if not isinstance(body_html, str) or not body_html:
        raise ValueError("Unexpected API response shape: page body missing")
    return page, body_html


def fetch_html_page(api_url: str, timeout: int = 60) -> Tuple[Dict[str, Any], str]:
    """Fetch the catalog page through the publisher's page API; returns ``(page, body_html)``."""

    logging.info("Fetching source HTML", extra={"url": api_url})
    response = requests.get(api_url, timeout=timeout)
    response.raise_for_status()
    return _page_from_payload(response.json())


def load_html_file(path: Path) -> Tuple[Dict[str, Any], str]:
    """
    Read a saved copy of the catalog page.

    ``.json`` files are treated as a saved page-API response; anything else as
    raw HTML, with the page title taken from ``<title>``.
    """

    if not path.exists():
        raise FileNotFoundError(f"Source HTML not found: {path}")
    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Failed to parse saved page JSON at {path}") from exc
        return _page_from_payload(payload)

    soup = BeautifulSoup(content, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else None
    return {"title": title}, content
