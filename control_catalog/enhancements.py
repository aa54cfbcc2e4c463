from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from bs4 import Tag

from .lines import HtmlBlock, element_text
from .schema import ENHANCEMENT_GUIDANCE_RE, ENHANCEMENT_HEADER_RE, Enhancement
from .segment import SectionItem
from .statement import list_value


class EnhancementMode(Enum):
    PREAMBLE = "preamble"
    STATEMENT = "statement"
    GUIDANCE = "guidance"


def enhancement_id(control_id: str, number: Union[int, str]) -> str:
    return f"{control_id}({int(number)})"


class EnhancementParser:
    """
    Turns a "Control Enhancements" section into ordered enhancement records.

    Each "(n) Title" header opens a new entry, including repeated numbers.
    Body lines go to the statement until an "Enhancement Supplemental
    Guidance" line switches the open entry to guidance.
    """

    def __init__(self, control_id: str) -> None:
        self.control_id = control_id
        self.mode = EnhancementMode.PREAMBLE
        self._entries: List[Dict[str, Any]] = []

    def open(self, number: Union[int, str], title: Optional[str], statement: str = "") -> None:
        self._entries.append(
            {
                "enhancement_id": enhancement_id(self.control_id, number),
                "title": (title or "").strip() or None,
                "statement": statement.strip(),
                "supplemental_guidance": None,
            }
        )
        self.mode = EnhancementMode.STATEMENT

    def _append(self, field_name: str, text: str) -> None:
        current = self._entries[-1]
        current[field_name] = f"{current[field_name] or ''} {text}".strip()

    def feed_body_line(self, line: str) -> None:
        line = line.strip()
        if not line or self.mode is EnhancementMode.PREAMBLE:
            return

        guidance = ENHANCEMENT_GUIDANCE_RE.match(line)
        if guidance:
            self.mode = EnhancementMode.GUIDANCE
            current = self._entries[-1]
            if current["supplemental_guidance"] is None:
                current["supplemental_guidance"] = ""
            if guidance.group(1).strip():
                self._append("supplemental_guidance", guidance.group(1))
            return

        if self.mode is EnhancementMode.GUIDANCE:
            self._append("supplemental_guidance", line)
        else:
            self._append("statement", line)

    def feed_line(self, line: str) -> None:
        header = ENHANCEMENT_HEADER_RE.match(line.strip())
        if header:
            self.open(header.group(1), header.group(2))
            return
        self.feed_body_line(line)

    def feed_list(self, element: Tag) -> None:
        for index, li in enumerate(element.find_all("li", recursive=False), start=1):
            header_raw = element_text(li, exclude=("p", "ol"))
            header = ENHANCEMENT_HEADER_RE.match(header_raw)
            number = header.group(1) if header else (list_value(li) or index)
            title = header.group(2).strip() if header else header_raw

            paragraphs = li.find_all("p", recursive=False)
            nested = li.find_all("ol", recursive=False)
            # A header without "|" and without body paragraphs is the full enhancement text.
            inline = bool(header_raw) and not paragraphs and not nested and "|" not in header_raw
            self.open(number, title, statement=title if inline else "")

            for sub_list in nested:
                for sub_li in sub_list.find_all("li", recursive=False):
                    self.feed_body_line(element_text(sub_li))
            for paragraph in paragraphs:
                self.feed_body_line(element_text(paragraph))

    def feed(self, item: SectionItem) -> None:
        if isinstance(item, HtmlBlock):
            if item.is_list and item.element is not None:
                self.feed_list(item.element)
            else:
                self.feed_line(item.text)
        else:
            self.feed_line(item)

    @property
    def enhancements(self) -> Tuple[Enhancement, ...]:
        return tuple(
            Enhancement(
                enhancement_id=entry["enhancement_id"],
                title=entry["title"],
                statement=entry["statement"],
                supplemental_guidance=entry["supplemental_guidance"] or None,
            )
            for entry in self._entries
        )


def parse_enhancements(items: Iterable[SectionItem], control_id: str) -> Tuple[Enhancement, ...]:
    parser = EnhancementParser(control_id)
    for item in items:
        parser.feed(item)
    return parser.enhancements
