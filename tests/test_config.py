from pathlib import Path

import pytest

from control_catalog.config import _parse_bool, _parse_int, _parse_list, load_parsing_rules, load_settings
from control_catalog.schema import DEFAULT_ASSIGNMENT_CATEGORIES, ParsingRules


def test_parse_helpers():
    assert _parse_bool("Yes", False) is True
    assert _parse_bool(None, True) is True
    assert _parse_int("abc", 6) == 6
    assert _parse_int("3", 6) == 3
    assert _parse_list(" a, ,b ") == ["a", "b"]
    assert _parse_list(None) == []


def test_load_settings_from_environment(monkeypatch):
    monkeypatch.setenv("CATALOG_DIR", "/tmp/catalog")
    monkeypatch.setenv("PDF_START_MARKER", "")
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.test, https://b.test")
    monkeypatch.setenv("CHAT_CONTROL_LIMIT", "4")
    monkeypatch.setenv("MODEL_DENYLIST_ENABLED", "true")
    monkeypatch.setenv("MODEL_DENYLIST_SUBSTRINGS", "qwen,deepseek")

    settings = load_settings()

    assert settings.catalog_dir == Path("/tmp/catalog")
    assert settings.pdf_start_marker is None
    assert settings.allowed_origins == ["https://a.test", "https://b.test"]
    assert settings.chat_control_limit == 4
    assert settings.model_denylist_enabled is True
    assert settings.model_denylist_substrings == ["qwen", "deepseek"]


def test_default_start_marker(monkeypatch):
    monkeypatch.delenv("PDF_START_MARKER", raising=False)
    assert load_settings().pdf_start_marker == "3. Security Control Definitions"


def test_missing_rules_file_uses_builtin_tables(tmp_path):
    rules = load_parsing_rules(tmp_path / "absent.yaml")
    assert rules == ParsingRules()
    assert rules.assignment_categories == DEFAULT_ASSIGNMENT_CATEGORIES


def test_rules_yaml_merges_over_defaults(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        "section_headers:\n"
        "  Enhancements: enhancements\n"
        "split_token_fixes:\n"
        "  - pattern: '\\bAUDIT ING\\b'\n"
        "    replacement: AUDITING\n",
        encoding="utf-8",
    )
    rules = load_parsing_rules(path)

    assert rules.section_headers["enhancements"] == "enhancements"
    assert rules.section_headers["supplemental guidance"] == "supplemental_guidance"
    assert rules.split_token_fixes == ((r"\bAUDIT ING\b", "AUDITING"),)
    assert rules.assignment_categories == DEFAULT_ASSIGNMENT_CATEGORIES


def test_invalid_rules_yaml(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("section_headers: [unclosed", encoding="utf-8")
    with pytest.raises(ValueError, match="Failed to parse"):
        load_parsing_rules(bad)

    not_mapping = tmp_path / "list.yaml"
    not_mapping.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError, match="must be a mapping"):
        load_parsing_rules(not_mapping)
