from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Sequence, Set, Tuple

import pandas as pd

from .schema import DEFAULT_ASSIGNMENT_CATEGORIES

ASSIGNMENT_RE = re.compile(r"\[Assignment:[^\]]+\]", re.IGNORECASE)

SNIPPET_CONTEXT = 80
SNIPPET_FALLBACK = 220
GENERAL_CATEGORY = "general"

CSV_COLUMNS = [
    "control_id",
    "control_name",
    "enhancement_id",
    "enhancement_title",
    "assignment_placeholder",
    "assignment_topic",
    "category",
    "occurrence_count",
    "locations",
    "concise_guidance",
    "minimum_fields",
    "example_value",
    "source_excerpt",
]


@dataclass(frozen=True)
class CategoryGuidance:
    guidance: str
    minimum_fields: str
    example: str


CATEGORY_GUIDANCE: Dict[str, CategoryGuidance] = {
    "cadence": CategoryGuidance(
        "Set an explicit cadence and trigger events so the activity occurs on a predictable schedule.",
        "cadence|trigger|owner|evidence",
        "Quarterly and within 30 days of major system change; owner: IT Security Manager; evidence: review ticket.",
    ),
    "time_window": CategoryGuidance(
        "Specify exact duration and boundary conditions (start event, stop event, and exceptions).",
        "duration|start_trigger|end_trigger|exceptions|owner",
        "Within 24 hours of detection; exception for emergency outage approved by CISO.",
    ),
    "roles_responsibilities": CategoryGuidance(
        "Name accountable roles (not just teams), decision authority, and required approvals.",
        "primary_role|approver|backup_role|responsibilities",
        "System Owner requests, ISSO approves, IAM Admin executes, SOC verifies closure.",
    ),
    "threshold": CategoryGuidance(
        "Define a measurable threshold with unit, rationale, and escalation path.",
        "threshold_value|unit|rationale|escalation",
        "5 failed logins in 15 minutes triggers account lock and SOC alert.",
    ),
    "conditions": CategoryGuidance(
        "Document objective if/then criteria and data sources used to evaluate the condition.",
        "condition_logic|data_source|decision_owner",
        "If external connection is untrusted, require MFA and managed device posture check.",
    ),
    "actions": CategoryGuidance(
        "List concrete actions, responsible role, SLA, and completion evidence.",
        "action_steps|owner|sla|evidence",
        "Disable account, notify manager, create incident record, and verify lockout.",
    ),
    "security_specification": CategoryGuidance(
        "Define the control/safeguard set, required configuration baseline, and verification method.",
        "control_set|configuration_standard|owner|verification_method",
        "Apply CIS benchmark L1, enforce via GPO, validate weekly with compliance scan.",
    ),
    "scope_inventory": CategoryGuidance(
        "Enumerate in-scope assets/components with identifiers and include/exclude boundaries.",
        "asset_list|identifier_source|scope_boundaries|owner",
        "All internet-facing servers tagged ENV=prod in CMDB; excludes lab environment.",
    ),
    "external_parties": CategoryGuidance(
        "List external organizations, trust boundaries, contacts, and governing agreements.",
        "organization_name|service_scope|contact|agreement_reference",
        "MSSP ABC, SIEM monitoring scope, 24x7 SOC contact, contract section 4.2.",
    ),
    "validation": CategoryGuidance(
        "Define how testing/assessment is performed, pass criteria, and remediation workflow.",
        "method|frequency|pass_criteria|remediation_owner",
        "Monthly vuln scan; pass = no critical findings older than 14 days.",
    ),
}


def normalize_spaces(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def parse_assignment_topic(placeholder: str) -> str:
    """``[Assignment: organization-defined frequency]`` -> ``frequency``."""

    inner = placeholder.removeprefix("[").removesuffix("]")
    inner = re.sub(r"^Assignment:\s*", "", inner, flags=re.IGNORECASE).strip()
    return re.sub(r"^organization-defined\s*", "", inner, flags=re.IGNORECASE).strip()


def categorize_topic(
    topic: str,
    categories: Sequence[Tuple[str, Sequence[str]]] = DEFAULT_ASSIGNMENT_CATEGORIES,
) -> str:
    lowered = topic.lower()
    for category, keywords in categories:
        if any(keyword in lowered for keyword in keywords):
            return category
    return GENERAL_CATEGORY


def guidance_for_category(category: str, topic: str) -> CategoryGuidance:
    known = CATEGORY_GUIDANCE.get(category)
    if known is not None:
        return known
    return CategoryGuidance(
        f'Specify organization-specific values for "{topic}" in measurable terms. '
        "Capture owner, rationale, and evidence in policy/procedure artifacts.",
        "defined_value|owner|rationale|evidence",
        "Documented in control profile with approval date and evidence location.",
    )


def extract_snippet(text: str, placeholder: str) -> str:
    """Up to 80 characters either side of the placeholder, with ``...`` where text was cut."""

    flattened = normalize_spaces(text)
    if not flattened:
        return ""
    idx = flattened.lower().find(placeholder.lower())
    if idx == -1:
        return flattened[:SNIPPET_FALLBACK]

    start = max(0, idx - SNIPPET_CONTEXT)
    end = min(len(flattened), idx + len(placeholder) + SNIPPET_CONTEXT)
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(flattened) else ""
    return f"{prefix}{flattened[start:end]}{suffix}"


def walk(value: Any, path: str, on_string: Callable[[str, str], None]) -> None:
    """Visit every string in a JSON-like value with a dotted/indexed path such as ``statement_parts[0].text``."""

    if isinstance(value, str):
        on_string(path, value)
    elif isinstance(value, list):
        for index, item in enumerate(value):
            walk(item, f"{path}[{index}]", on_string)
    elif isinstance(value, dict):
        for key, item in value.items():
            walk(item, f"{path}.{key}" if path else key, on_string)


@dataclass
class AssignmentStats:
    count: int = 0
    locations: Set[str] = field(default_factory=set)
    snippet: str = ""


def collect_assignments_in_scope(scope: Any) -> Dict[str, AssignmentStats]:
    found: Dict[str, AssignmentStats] = {}

    def on_string(path: str, text: str) -> None:
        for raw in ASSIGNMENT_RE.findall(text):
            placeholder = normalize_spaces(raw)
            stats = found.setdefault(placeholder, AssignmentStats())
            stats.count += 1
            stats.locations.add(path or "root")
            if not stats.snippet:
                stats.snippet = extract_snippet(text, placeholder)

    walk(scope, "", on_string)
    return found


def _rows_for_scope(
    control: Dict[str, Any],
    scope: Any,
    enhancement: Dict[str, Any],
    categories: Sequence[Tuple[str, Sequence[str]]],
) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for placeholder, stats in collect_assignments_in_scope(scope).items():
        topic = parse_assignment_topic(placeholder)
        category = categorize_topic(topic, categories)
        guidance = guidance_for_category(category, topic)
        rows.append(
            {
                "control_id": control.get("control_id", ""),
                "control_name": control.get("control_name") or "",
                "enhancement_id": enhancement.get("enhancement_id") or "",
                "enhancement_title": enhancement.get("title") or "",
                "assignment_placeholder": placeholder,
                "assignment_topic": topic,
                "category": category,
                "occurrence_count": stats.count,
                "locations": "|".join(sorted(stats.locations)),
                "concise_guidance": guidance.guidance,
                "minimum_fields": guidance.minimum_fields,
                "example_value": guidance.example,
                "source_excerpt": stats.snippet,
            }
        )
    return rows


def build_rows_for_control(
    control: Dict[str, Any],
    categories: Sequence[Tuple[str, Sequence[str]]] = DEFAULT_ASSIGNMENT_CATEGORIES,
) -> List[Dict[str, Any]]:
    """
    One row per distinct placeholder in the control body, then per enhancement.

    The control scope covers every field except ``enhancements``; each
    enhancement is its own scope, so a placeholder repeated in two
    enhancements yields two rows.
    """

    enhancements = control.get("enhancements")
    if not isinstance(enhancements, list):
        enhancements = []
    control_scope = {key: value for key, value in control.items() if key != "enhancements"}

    rows = _rows_for_scope(control, control_scope, {}, categories)
    for enhancement in enhancements:
        if isinstance(enhancement, dict):
            rows.extend(_rows_for_scope(control, enhancement, enhancement, categories))
    return rows


def load_control_files(controls_dir: Path) -> List[Dict[str, Any]]:
    if not controls_dir.is_dir():
        raise FileNotFoundError(f"Controls directory not found: {controls_dir}")

    controls: List[Dict[str, Any]] = []
    for path in sorted(controls_dir.glob("*.json")):
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Failed to parse control record {path}") from exc
        if not isinstance(data, dict):
            continue
        data.setdefault("control_id", path.stem)
        controls.append(data)
    return controls


def build_assignment_rows(
    controls_dir: Path,
    categories: Sequence[Tuple[str, Sequence[str]]] = DEFAULT_ASSIGNMENT_CATEGORIES,
) -> pd.DataFrame:
    rows: List[Dict[str, Any]] = []
    for control in load_control_files(controls_dir):
        rows.extend(build_rows_for_control(control, categories))

    df = pd.DataFrame(rows, columns=CSV_COLUMNS)
    if df.empty:
        return df
    df = df.sort_values(["control_id", "enhancement_id", "assignment_placeholder"], kind="stable")
    return df.reset_index(drop=True)


def export_assignments_csv(
    controls_dir: Path,
    output_csv: Path,
    categories: Sequence[Tuple[str, Sequence[str]]] = DEFAULT_ASSIGNMENT_CATEGORIES,
) -> int:
    df = build_assignment_rows(controls_dir, categories)
    output_csv.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_csv, index=False)
    logging.info("Wrote assignment guidance rows", extra={"rows": len(df), "path": str(output_csv)})
    return len(df)
