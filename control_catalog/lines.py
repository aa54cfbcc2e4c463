"""
Line grouping for the two source formats.

PDF pages arrive as positioned text fragments and are stitched back into
visual lines. HTML pages are walked block by block; lists keep their element so
the statement and enhancement parsers can read the nesting directly.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from .schema import DEFAULT_SPLIT_TOKEN_FIXES, clean_text

BLOCK_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6", "p", "ol", "ul")
LIST_TAGS = ("ol", "ul")
# Children with these tags start a new visual line, so their text is space-separated.
SEPARATED_TAGS = BLOCK_TAGS + ("li", "br", "div", "tr", "td", "th")


@dataclass(frozen=True)
class PdfFragment:
    x: float
    y: float
    text: str


@dataclass(frozen=True)
class HtmlBlock:
    tag: str
    text: str
    element: Optional[Tag] = None

    @property
    def is_list(self) -> bool:
        return self.tag in LIST_TAGS

    @property
    def is_heading(self) -> bool:
        return len(self.tag) == 2 and self.tag[0] == "h" and self.tag[1].isdigit()


def repair_split_tokens(text: str, fixes: Sequence[Tuple[str, str]] = DEFAULT_SPLIT_TOKEN_FIXES) -> str:
    """Undo kerning splits such as "ARC HITECTURE" using a fixed replacement table."""

    repaired = text
    for pattern, replacement in fixes:
        repaired = re.sub(pattern, replacement, repaired)
    return repaired


def _line_key(y: float) -> int:
    # Round half up; round() would apply banker's rounding.
    return int(math.floor(y + 0.5))


def group_pdf_lines(
    fragments: Iterable[PdfFragment],
    fixes: Sequence[Tuple[str, str]] = DEFAULT_SPLIT_TOKEN_FIXES,
) -> List[str]:
    """Group one page's fragments into lines, top of page first and left to right within a line."""

    lines_by_y: Dict[int, List[PdfFragment]] = {}
    for fragment in fragments:
        if not isinstance(fragment.text, str):
            continue
        lines_by_y.setdefault(_line_key(fragment.y), []).append(fragment)

    lines: List[str] = []
    for key in sorted(lines_by_y, reverse=True):
        parts = sorted(lines_by_y[key], key=lambda frag: frag.x)
        joined = clean_text(" ".join(part.text for part in parts))
        if not joined:
            continue
        lines.append(repair_split_tokens(joined, fixes))
    return lines


def group_pdf_pages(
    pages: Iterable[Iterable[PdfFragment]],
    fixes: Sequence[Tuple[str, str]] = DEFAULT_SPLIT_TOKEN_FIXES,
) -> List[str]:
    all_lines: List[str] = []
    for fragments in pages:
        all_lines.extend(group_pdf_lines(fragments, fixes))
    return all_lines


def _inside_list(element: Tag) -> bool:
    return element.find_parent(LIST_TAGS) is not None


def node_text(element: Tag, exclude: Sequence[str] = ()) -> str:
    """Like ``get_text()``, but block-level children never run into their neighbours."""

    pieces: List[str] = []
    for child in element.children:
        if isinstance(child, Tag):
            if child.name in exclude:
                continue
            text = node_text(child)
            pieces.append(f" {text} " if child.name in SEPARATED_TAGS else text)
        elif isinstance(child, NavigableString) and not isinstance(child, Comment):
            pieces.append(str(child))
    return "".join(pieces)


def iter_html_blocks(markup: "str | BeautifulSoup | Tag") -> List[HtmlBlock]:
    """
    Flatten an HTML document into block-level items in document order.

    Blocks nested inside a list (paragraphs in a list item, sub-lists) are not
    emitted on their own; they stay reachable through the outer list's element.
    """

    root = BeautifulSoup(markup, "html.parser") if isinstance(markup, str) else markup
    blocks: List[HtmlBlock] = []
    for element in root.find_all(BLOCK_TAGS):
        if _inside_list(element):
            continue
        blocks.append(HtmlBlock(tag=element.name, text=clean_text(node_text(element)), element=element))
    return blocks


def element_text(element: Tag, exclude: Sequence[str] = ()) -> str:
    """Text of an element, optionally ignoring direct children with the given tags."""

    return clean_text(node_text(element, exclude))
