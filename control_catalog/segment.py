from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Set, Union

from .lines import HtmlBlock
from .schema import (
    DEFAULT_SECTION_HEADERS,
    HTML_CONTROL_HEADING_RE,
    PDF_CONTROL_HEADING_RE,
    SECTION_HEADER_RE,
    normalize_header,
)

SectionItem = Union[str, HtmlBlock]

DEFAULT_SECTION = "statement"
DEFAULT_PDF_START_MARKER = "3. Security Control Definitions"

TOC_DOTS_RE = re.compile(r"\.{2,}")
TOC_PAGE_RE = re.compile(r"\s\d{1,3}$")
HEADING_CONTINUATION_RE = re.compile(r"^[A-Z0-9\s/\-()|]+$")


@dataclass
class ControlBlock:
    """Body of one control between its heading and the next control heading."""

    control_id: str
    control_name: str
    items: List[SectionItem] = field(default_factory=list)


@dataclass
class SectionedControl:
    control_id: str
    control_name: str
    sections: Dict[str, List[SectionItem]] = field(default_factory=dict)

    def get(self, section: str) -> List[SectionItem]:
        return self.sections.get(section, [])


def item_text(item: SectionItem) -> str:
    return item if isinstance(item, str) else item.text


def is_toc_line(line: str) -> bool:
    return bool(TOC_DOTS_RE.search(line)) and bool(TOC_PAGE_RE.search(line))


def has_unbalanced_open_paren(text: str) -> bool:
    return text.count("(") > text.count(")")


def is_heading_continuation(line: str) -> bool:
    if not line or ":" in line:
        return False
    if PDF_CONTROL_HEADING_RE.match(line):
        return False
    return bool(HEADING_CONTINUATION_RE.match(line))


def _is_repeat(control_id: str, seen: Set[str], text: str) -> bool:
    if control_id in seen:
        logging.warning("Repeated control heading kept as body text", extra={"control_id": control_id, "text": text})
        return True
    seen.add(control_id)
    return False


def split_pdf_controls(lines: Sequence[str], start_marker: Optional[str] = None) -> List[ControlBlock]:
    """
    Split grouped PDF lines into control blocks.

    Lines are ignored until ``start_marker`` has been seen (when given) and
    until the first control heading. Table-of-contents lines are skipped
    everywhere. A heading that wrapped onto a second line is re-joined when the
    first half left a parenthesis open. A heading for an id already seen is
    wrapped prose that happens to start with a control id; it stays in the
    current block as body text.
    """

    controls: List[ControlBlock] = []
    current: Optional[ControlBlock] = None
    seen: Set[str] = set()
    started = start_marker is None

    for line in lines:
        if not started:
            if start_marker in line:
                started = True
            continue

        if is_toc_line(line):
            continue

        if (
            current is not None
            and not current.items
            and has_unbalanced_open_paren(current.control_name)
            and is_heading_continuation(line)
        ):
            current.control_name = re.sub(r"\s+", " ", f"{current.control_name} {line}").strip()
            continue

        match = PDF_CONTROL_HEADING_RE.match(line)
        if match and not _is_repeat(f"{match.group(1)}-{match.group(2)}", seen, line):
            current = ControlBlock(
                control_id=f"{match.group(1)}-{match.group(2)}",
                control_name=match.group(3).strip(),
            )
            controls.append(current)
            continue

        if current is not None:
            current.items.append(line)

    if start_marker is not None and not started:
        logging.warning("Start marker never found in PDF text", extra={"start_marker": start_marker})
    return controls


def split_html_controls(blocks: Sequence[HtmlBlock], heading_tags: Sequence[str] = ("h4",)) -> List[ControlBlock]:
    """Split HTML blocks into control blocks at headings such as ``<h4>AC-2 ACCOUNT MANAGEMENT</h4>``."""

    controls: List[ControlBlock] = []
    current: Optional[ControlBlock] = None
    seen: Set[str] = set()

    for block in blocks:
        if block.tag in heading_tags:
            match = HTML_CONTROL_HEADING_RE.match(block.text)
            if match and not _is_repeat(f"{match.group(1)}-{match.group(2)}", seen, block.text):
                current = ControlBlock(
                    control_id=f"{match.group(1)}-{match.group(2)}",
                    control_name=match.group(3).strip(),
                )
                controls.append(current)
                continue
        if current is not None:
            current.items.append(block)

    return controls


def match_section_header(text: str, headers: Mapping[str, str] = DEFAULT_SECTION_HEADERS):
    """Return ``(section, remainder)`` when ``text`` opens a recognized section, else ``None``."""

    match = SECTION_HEADER_RE.match(text)
    if not match:
        return None
    section = headers.get(normalize_header(match.group(1)))
    if section is None:
        return None
    return section, match.group(2).strip()


def partition_sections(
    control: ControlBlock,
    headers: Mapping[str, str] = DEFAULT_SECTION_HEADERS,
) -> SectionedControl:
    sectioned = SectionedControl(control_id=control.control_id, control_name=control.control_name)
    current: Optional[str] = None

    for item in control.items:
        # Lists never carry a section header; they belong to whatever section is open.
        if not (isinstance(item, HtmlBlock) and item.is_list):
            if not item_text(item):
                continue
            header = match_section_header(item_text(item), headers)
            if header is not None:
                current, remainder = header
                bucket = sectioned.sections.setdefault(current, [])
                if remainder:
                    bucket.append(remainder)
                continue

        if current is None:
            current = DEFAULT_SECTION
        sectioned.sections.setdefault(current, []).append(item)

    return sectioned


def segment_controls(
    controls: Sequence[ControlBlock],
    headers: Mapping[str, str] = DEFAULT_SECTION_HEADERS,
) -> List[SectionedControl]:
    if not controls:
        raise RuntimeError("No controls found. Check the parser or the source document version.")
    return [partition_sections(control, headers) for control in controls]
