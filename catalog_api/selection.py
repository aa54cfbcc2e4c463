from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

CONTROL_ID_IN_TEXT_RE = re.compile(r"\b[A-Z]{2}-\d{1,3}\b")
TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")

CONTEXT_ENHANCEMENT_LIMIT = 3


def tokenize(text: str) -> List[str]:
    return [token for token in TOKEN_SPLIT_RE.split(text.lower()) if token]


def extract_control_ids(text: str) -> List[str]:
    """Control-ID-shaped tokens such as ``AC-2`` in arbitrary text, upper-cased and deduplicated."""

    return list(dict.fromkeys(CONTROL_ID_IN_TEXT_RE.findall(text.upper())))


def _index_terms(item: Dict[str, Any]) -> List[str]:
    terms = [item.get("control_id"), item.get("control_name")]
    terms.extend(item.get("aliases") or [])
    terms.extend(item.get("keywords") or [])
    return [str(term) for term in terms if term]


def score_control(question: str, tokens: Set[str], item: Dict[str, Any]) -> int:
    # +3 for a whole term found in the question, +1 per term token the question shares.
    haystack = question.lower()
    score = 0
    for term in _index_terms(item):
        lowered = term.lower()
        if lowered and lowered in haystack:
            score += 3
        score += sum(1 for token in tokenize(lowered) if token in tokens)
    return score


def select_control_ids(
    question: str,
    control_ids: Optional[Iterable[str]],
    index: Sequence[Dict[str, Any]],
    limit: int = 6,
) -> List[str]:
    """
    Pick the controls a question is about.

    Caller-supplied IDs win when any of them exist in the index. Failing that,
    IDs written in the question are used. Otherwise every index entry is scored
    lexically and the best ``limit`` positive scores are kept, ties in index
    order. Returned IDs always use the index's casing.
    """

    canonical = {str(item.get("control_id", "")).upper(): item.get("control_id") for item in index}
    chosen: List[str] = []

    def add(control_id: str) -> None:
        found = canonical.get(control_id.strip().upper())
        if found and found not in chosen:
            chosen.append(found)

    for control_id in control_ids or []:
        add(control_id)
    if chosen:
        return chosen

    for control_id in extract_control_ids(question):
        add(control_id)
    if chosen:
        return chosen

    tokens = set(tokenize(question))
    scored = [(score_control(question, tokens, item), item) for item in index]
    ranked = sorted((entry for entry in scored if entry[0] > 0), key=lambda entry: -entry[0])
    return [item["control_id"] for _, item in ranked[:limit]]


def _part_lines(parts: Iterable[Any]) -> List[str]:
    lines: List[str] = []
    for part in parts:
        if not isinstance(part, dict):
            lines.append(f"- {part}")
            continue
        lines.append(f"- ({part.get('id', '')}) {part.get('text', '')}".rstrip())
        for sub in part.get("subparts") or []:
            lines.append(f"  - ({sub.get('id', '')}) {sub.get('text', '')}".rstrip())
    return lines


def build_control_context(control: Dict[str, Any]) -> str:
    """Compact prompt block for one control record."""

    lines = [f"Control {control.get('control_id', '')}: {control.get('control_name') or ''}".strip()]

    statement = (control.get("statement") or "").strip()
    if statement:
        lines.extend(["Statement:", statement])

    parts = control.get("statement_parts") or []
    if parts:
        lines.append("Statement parts:")
        lines.extend(_part_lines(parts))

    guidance = control.get("supplemental_guidance")
    if guidance:
        lines.extend(["Guidance:", str(guidance)])

    enhancements = (control.get("enhancements") or [])[:CONTEXT_ENHANCEMENT_LIMIT]
    if enhancements:
        lines.append("Enhancements (selected):")
        for enhancement in enhancements:
            if isinstance(enhancement, dict):
                text = " ".join(
                    value for value in (enhancement.get("enhancement_id"), enhancement.get("statement")) if value
                )
                lines.append(f"- {text}".strip())
            else:
                lines.append(f"- {enhancement}")

    return "\n".join(lines)
