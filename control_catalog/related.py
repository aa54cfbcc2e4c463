from __future__ import annotations

import re
from typing import Iterable, List, Tuple

RELATED_CONTROLS_RE = re.compile(r"related controls\s*:\s*([^.]+)", re.IGNORECASE)
CONTROL_ID_TOKEN_RE = re.compile(r"\b([A-Z]{2})\s*-\s*(\d{1,3})\b")


def control_sort_key(control_id: str) -> Tuple[str, int]:
    family, _, number = control_id.partition("-")
    return family, int(number) if number.isdigit() else 0


def extract_related_controls(text: str) -> List[str]:
    """
    Control IDs named in the "Related controls:" clause of ``text``.

    Only the clause after the label (up to the first period) is scanned; prose
    elsewhere is ignored. IDs are normalized to ``XX-N`` and deduplicated.
    """

    if not text:
        return []
    match = RELATED_CONTROLS_RE.search(text)
    if not match:
        return []
    ids = {f"{family}-{number}": None for family, number in CONTROL_ID_TOKEN_RE.findall(match.group(1))}
    return list(ids)


def resolve_related_controls(guidance: str, related_section: Iterable[str] = ()) -> List[str]:
    """Union of IDs from guidance prose and a dedicated related-controls section, sorted."""

    found = set(extract_related_controls(guidance))
    section_text = " ".join(related_section).strip()
    if section_text:
        # The segmenter consumed the label, so put it back before scanning.
        found.update(extract_related_controls(f"Related controls: {section_text}"))
    return sorted(found, key=control_sort_key)
