from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bs4 import Tag

from .lines import HtmlBlock, element_text
from .schema import PART_RE, PDF_PART_RE, SUBPART_RE, StatementPart, StatementSubpart, ordinal_to_alpha
from .segment import SectionItem


class StatementState(Enum):
    NO_PART = "no_part"
    IN_PART = "in_part"
    IN_SUBPART = "in_subpart"


def list_value(li: Tag) -> Optional[int]:
    """The ``value`` attribute of a list item as an int, if it has a usable one."""

    raw = li.get("value")
    if raw is None:
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def strip_part_marker(text: str) -> Optional[Tuple[str, str]]:
    match = PART_RE.match(text) or SUBPART_RE.match(text)
    if match:
        return match.group(1), match.group(2).strip()
    return None


class StatementParser:
    """
    Builds the ordered part/subpart tree of a control statement.

    Line input (PDF) relies on "(A)" and "(a)" markers; list input (HTML)
    relies on list nesting, with marker text, then the ``value`` attribute,
    then the item ordinal deciding the id. Everything fed in also lands in the
    flat statement.
    """

    def __init__(self) -> None:
        self.state = StatementState.NO_PART
        self._parts: List[Dict[str, Any]] = []
        self._flat: List[str] = []
        self.orphaned: List[str] = []

    def open_part(self, part_id: str, text: str) -> None:
        self._parts.append({"id": part_id, "text": text.strip(), "subparts": []})
        self.state = StatementState.IN_PART

    def open_subpart(self, subpart_id: str, text: str) -> bool:
        if self.state is StatementState.NO_PART:
            self.orphaned.append(text)
            logging.debug("Subpart marker before any part; kept in flat statement only", extra={"subpart": subpart_id})
            return False
        self._parts[-1]["subparts"].append({"id": subpart_id, "text": text.strip()})
        self.state = StatementState.IN_SUBPART
        return True

    def continue_text(self, text: str) -> None:
        if self.state is StatementState.IN_SUBPART:
            target = self._parts[-1]["subparts"][-1]
        elif self.state is StatementState.IN_PART:
            target = self._parts[-1]
        else:
            return
        target["text"] = f"{target['text']} {text}".strip()

    def feed_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        self._flat.append(line)

        part_match = PDF_PART_RE.match(line)
        if part_match:
            self.open_part(part_match.group(1), part_match.group(2))
            return
        subpart_match = SUBPART_RE.match(line)
        if subpart_match:
            self.open_subpart(subpart_match.group(1), subpart_match.group(2))
            return
        self.continue_text(line)

    def feed_list(self, element: Tag) -> None:
        for index, li in enumerate(element.find_all("li", recursive=False), start=1):
            raw_text = element_text(li, exclude=("ol", "ul"))
            marker = strip_part_marker(raw_text)
            ordinal = list_value(li) or index
            part_id, text = marker if marker else (ordinal_to_alpha(ordinal), raw_text)
            self.open_part(part_id, text)
            if text:
                self._flat.append(text)

            for sub_list in li.find_all("ol", recursive=False):
                for sub_index, sub_li in enumerate(sub_list.find_all("li", recursive=False), start=1):
                    sub_raw = element_text(sub_li)
                    sub_marker = strip_part_marker(sub_raw)
                    sub_ordinal = list_value(sub_li) or sub_index
                    sub_id, sub_text = (
                        sub_marker if sub_marker else (ordinal_to_alpha(sub_ordinal, lower=True), sub_raw)
                    )
                    self.open_subpart(sub_id, sub_text)
                    if sub_text:
                        self._flat.append(sub_text)

    def feed(self, item: SectionItem) -> None:
        if isinstance(item, HtmlBlock):
            if item.is_list and item.element is not None:
                self.feed_list(item.element)
            else:
                self.feed_line(item.text)
        else:
            self.feed_line(item)

    @property
    def parts(self) -> Tuple[StatementPart, ...]:
        return tuple(
            StatementPart(
                id=part["id"],
                text=part["text"],
                subparts=tuple(StatementSubpart(id=sub["id"], text=sub["text"]) for sub in part["subparts"]),
            )
            for part in self._parts
        )

    @property
    def statement(self) -> Optional[str]:
        joined = " ".join(self._flat).strip()
        return joined or None


def parse_statement(items: Iterable[SectionItem]) -> Tuple[Optional[str], Tuple[StatementPart, ...]]:
    """Return ``(flat_statement, statement_parts)`` for a control's statement section."""

    parser = StatementParser()
    for item in items:
        parser.feed(item)
    return parser.statement, parser.parts
