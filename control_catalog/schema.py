from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

CONTROL_ID_RE = re.compile(r"^[A-Z]{2}-\d{1,3}$")

# Control headings, e.g. "AC - 2 ACCOUNT MANAGEMENT" (PDF) or "AC-2 ACCOUNT MANAGEMENT" (HTML).
PDF_CONTROL_HEADING_RE = re.compile(r"^([A-Z]{2})\s*-\s*(\d{1,3})\s+(.+)$")
HTML_CONTROL_HEADING_RE = re.compile(r"^([A-Z]{2})-(\d{1,3})\s+(.+)$")

# Two-letter part markers ("(AA)") only occur as explicit list-item text in HTML.
PART_RE = re.compile(r"^\(([A-Z]{1,2})\)\s*(.+)$")
PDF_PART_RE = re.compile(r"^\(([A-Z])\)\s*(.+)$")
SUBPART_RE = re.compile(r"^\(([a-z])\)\s*(.+)$")
ENHANCEMENT_HEADER_RE = re.compile(r"^\((\d+)\)\s*(.+)$")
ENHANCEMENT_GUIDANCE_RE = re.compile(r"^Enhancement Supplemental Guidance\s*:*\s*(.*)$", re.IGNORECASE)
SECTION_HEADER_RE = re.compile(r"^([A-Za-z][A-Za-z ]+):\s*(.*)$")


def clean_text(value: str) -> str:
    """Replace non-breaking spaces and collapse whitespace runs."""

    if not value:
        return ""
    return re.sub(r"\s+", " ", value.replace("\u00a0", " ")).strip()


def normalize_header(text: str) -> str:
    return re.sub(r"\s+", " ", text.lower()).strip()


def family_of(control_id: str) -> str:
    return control_id.split("-", 1)[0]


def ordinal_to_alpha(value: int, lower: bool = False) -> str:
    """
    Bijective base-26 mapping used for list items without an explicit marker.

    1 -> A, 26 -> Z, 27 -> AA, 28 -> AB. Non-positive values map to "".
    """

    base = ord("a") if lower else ord("A")
    n = value
    out = ""
    while n > 0:
        n -= 1
        out = chr(base + n % 26) + out
        n //= 26
    return out


########################
# LOOKUP TABLES
########################

DEFAULT_SECTION_HEADERS: Mapping[str, str] = {
    "control": "statement",
    "supplemental guidance": "supplemental_guidance",
    "control enhancements": "enhancements",
    "related controls": "related_controls",
    "references": "references",
}

DEFAULT_SPLIT_TOKEN_FIXES: Tuple[Tuple[str, str], ...] = (
    (r"\bARC HITECTURE\b", "ARCHITECTURE"),
    (r"\bMON ITOR\b", "MONITOR"),
)

# Ordered: the first category whose keyword appears in the topic wins.
DEFAULT_ASSIGNMENT_CATEGORIES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("cadence", ("frequency",)),
    ("time_window", ("time period", "timeframe", "period of time")),
    ("roles_responsibilities", ("personnel", "roles", "individuals")),
    ("threshold", ("number", "threshold", "limit")),
    ("conditions", ("condition", "criteria", "circumstances")),
    ("actions", ("action", "procedure", "step")),
    (
        "security_specification",
        ("security safeguard", "security control", "security function", "security attribute"),
    ),
    (
        "scope_inventory",
        ("component", "system", "device", "media", "account", "application", "service"),
    ),
    ("external_parties", ("external organization", "provider")),
    ("validation", ("test", "assessment")),
)


@dataclass(frozen=True)
class ParsingRules:
    """Immutable lookup tables shared by the segmenter, line grouper and assignment scan."""

    section_headers: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_SECTION_HEADERS))
    split_token_fixes: Tuple[Tuple[str, str], ...] = DEFAULT_SPLIT_TOKEN_FIXES
    assignment_categories: Tuple[Tuple[str, Tuple[str, ...]], ...] = DEFAULT_ASSIGNMENT_CATEGORIES

    @staticmethod
    def from_dict(data: Dict[str, Any], base: Optional["ParsingRules"] = None) -> "ParsingRules":
        base = base or ParsingRules()

        headers = dict(base.section_headers)
        for header, section in (data.get("section_headers") or {}).items():
            headers[normalize_header(str(header))] = str(section)

        fixes = base.split_token_fixes
        if data.get("split_token_fixes") is not None:
            fixes = tuple((str(entry["pattern"]), str(entry["replacement"])) for entry in data["split_token_fixes"])

        categories = base.assignment_categories
        if data.get("assignment_categories") is not None:
            categories = tuple(
                (str(entry["category"]), tuple(str(k).lower() for k in entry.get("keywords", [])))
                for entry in data["assignment_categories"]
            )

        return ParsingRules(section_headers=headers, split_token_fixes=fixes, assignment_categories=categories)


########################
# CATALOG RECORDS
########################


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass(frozen=True)
class StatementSubpart:
    id: str
    text: str


@dataclass(frozen=True)
class StatementPart:
    id: str
    text: str
    subparts: Tuple[StatementSubpart, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "subparts": [asdict(sub) for sub in self.subparts]}


@dataclass(frozen=True)
class Enhancement:
    enhancement_id: str
    title: Optional[str] = None
    statement: str = ""
    supplemental_guidance: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "enhancement_id": self.enhancement_id,
                "title": self.title,
                "statement": self.statement,
                "supplemental_guidance": self.supplemental_guidance,
            }
        )


@dataclass(frozen=True)
class ControlRecord:
    control_id: str
    control_name: str
    statement: Optional[str] = None
    statement_parts: Tuple[StatementPart, ...] = ()
    supplemental_guidance: Optional[str] = None
    enhancements: Tuple[Enhancement, ...] = ()
    related_controls: Tuple[str, ...] = ()
    references: Tuple[str, ...] = ()
    source_url: Optional[str] = None
    source_type: Optional[str] = None

    @property
    def family_id(self) -> str:
        return family_of(self.control_id)

    def to_dict(self) -> Dict[str, Any]:
        # Empty collections and None values are left out of the JSON.
        return _compact(
            {
                "control_id": self.control_id,
                "control_name": self.control_name,
                "family_id": self.family_id,
                "statement": self.statement,
                "statement_parts": [p.to_dict() for p in self.statement_parts] or None,
                "supplemental_guidance": self.supplemental_guidance,
                "enhancements": [e.to_dict() for e in self.enhancements] or None,
                "related_controls": list(self.related_controls) or None,
                "references": list(self.references) or None,
                "source_url": self.source_url,
                "source_type": self.source_type,
            }
        )


@dataclass(frozen=True)
class ControlIndexItem:
    control_id: str
    control_name: str
    family_id: str
    aliases: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "control_id": self.control_id,
            "control_name": self.control_name,
            "family_id": self.family_id,
            "aliases": list(self.aliases),
            "keywords": list(self.keywords),
        }


@dataclass(frozen=True)
class CatalogMetadata:
    catalog_title: Optional[str] = None
    catalog_edition: Optional[str] = None
    catalog_revision_number: Optional[str] = None
    catalog_revision_date: Optional[str] = None
    source_url: Optional[str] = None
    source_api_url: Optional[str] = None
    page_date_modified: Optional[str] = None
    page_date_created: Optional[str] = None
    extracted_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Catalog:
    """Everything one extraction run produces, held in memory until it is written."""

    records: List[ControlRecord]
    index: List[ControlIndexItem]
    metadata: Optional[CatalogMetadata] = None
