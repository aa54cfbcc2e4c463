from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .lines import group_pdf_pages, iter_html_blocks
from .loaders import fetch_html_page, load_html_file, read_pdf_fragments
from .metadata import extract_catalog_metadata
from .schema import CatalogMetadata, ParsingRules
from .segment import (
    DEFAULT_PDF_START_MARKER,
    ControlBlock,
    SectionedControl,
    segment_controls,
    split_html_controls,
    split_pdf_controls,
)


class CatalogSource(ABC):
    """A source document that can be cut into sectioned control blocks."""

    source_type: str = ""

    def __init__(self, rules: Optional[ParsingRules] = None, source_url: Optional[str] = None) -> None:
        self.rules = rules or ParsingRules()
        self.source_url = source_url

    @abstractmethod
    def control_blocks(self) -> List[ControlBlock]:
        raise NotImplementedError

    def sectioned_controls(self) -> List[SectionedControl]:
        blocks = self.control_blocks()
        logging.info("Found control headings", extra={"source_type": self.source_type, "controls": len(blocks)})
        return segment_controls(blocks, self.rules.section_headers)

    def metadata(self, extracted_at: Optional[str] = None) -> Optional[CatalogMetadata]:
        return None


class PdfCatalogSource(CatalogSource):
    source_type = "pdf"

    def __init__(
        self,
        path: Path,
        rules: Optional[ParsingRules] = None,
        start_marker: Optional[str] = DEFAULT_PDF_START_MARKER,
        source_url: Optional[str] = None,
    ) -> None:
        super().__init__(rules=rules, source_url=source_url)
        self.path = path
        self.start_marker = start_marker

    def lines(self) -> List[str]:
        pages = read_pdf_fragments(self.path)
        return group_pdf_pages(pages, self.rules.split_token_fixes)

    def control_blocks(self) -> List[ControlBlock]:
        return split_pdf_controls(self.lines(), self.start_marker)


class HtmlCatalogSource(CatalogSource):
    """
    The catalog published as a single HTML page.

    ``page`` is the page record returned by the publisher's page API (title and
    created/modified dates); it only feeds the catalog metadata.
    """

    source_type = "html"

    def __init__(
        self,
        body_html: str,
        page: Optional[Dict[str, Any]] = None,
        rules: Optional[ParsingRules] = None,
        source_url: Optional[str] = None,
        source_api_url: Optional[str] = None,
        heading_tags: Sequence[str] = ("h4",),
    ) -> None:
        super().__init__(rules=rules, source_url=source_url)
        self.body_html = body_html
        self.page = page or {}
        self.source_api_url = source_api_url
        self.heading_tags = tuple(heading_tags)

    @classmethod
    def from_api(
        cls,
        api_url: str,
        source_url: Optional[str] = None,
        rules: Optional[ParsingRules] = None,
        timeout: int = 60,
    ) -> "HtmlCatalogSource":
        page, body_html = fetch_html_page(api_url, timeout=timeout)
        return cls(body_html, page=page, rules=rules, source_url=source_url, source_api_url=api_url)

    @classmethod
    def from_file(
        cls,
        path: Path,
        source_url: Optional[str] = None,
        rules: Optional[ParsingRules] = None,
    ) -> "HtmlCatalogSource":
        page, body_html = load_html_file(path)
        return cls(body_html, page=page, rules=rules, source_url=source_url)

    def control_blocks(self) -> List[ControlBlock]:
        return split_html_controls(iter_html_blocks(self.body_html), self.heading_tags)

    def metadata(self, extracted_at: Optional[str] = None) -> Optional[CatalogMetadata]:
        return extract_catalog_metadata(
            self.page,
            self.body_html,
            source_url=self.source_url,
            source_api_url=self.source_api_url,
            extracted_at=extracted_at,
        )
