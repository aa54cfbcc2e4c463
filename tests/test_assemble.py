import json

import pytest

from control_catalog.assemble import (
    INDEX_FILENAME,
    METADATA_FILENAME,
    build_catalog,
    build_keywords,
    publish_catalog,
    write_catalog,
)
from control_catalog.lines import PdfFragment
from control_catalog.schema import CONTROL_ID_RE, Enhancement
from control_catalog.sources import HtmlCatalogSource, PdfCatalogSource


def _read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


def test_html_catalog_records(html_source):
    catalog = build_catalog(html_source, extracted_at="2024-01-01T00:00:00+00:00")
    records = {record.control_id: record for record in catalog.records}

    assert list(records) == ["AC-1", "AC-2"]

    ac1 = records["AC-1"]
    assert ac1.family_id == "AC"
    assert [part.id for part in ac1.statement_parts] == ["A", "B"]
    assert [sub.id for sub in ac1.statement_parts[0].subparts] == ["a", "b"]
    assert ac1.statement.startswith("The organization develops an access control policy that addresses:")
    assert ac1.related_controls == ("AC-2", "PM-9")
    assert ac1.references == ("None.",)
    assert ac1.enhancements == ()

    ac2 = records["AC-2"]
    assert ac2.related_controls == ("AC-3", "AC-10")
    assert ac2.enhancements[0].enhancement_id == "AC-2(1)"
    assert ac2.enhancements[0].title == "ACCOUNT MANAGEMENT | AUTOMATED SYSTEM ACCOUNT MANAGEMENT"
    assert ac2.enhancements[0].supplemental_guidance == "Automated mechanisms include email."
    assert ac2.enhancements[1].statement == "The organization audits account actions."
    assert ac2.source_type == "html"
    assert ac2.source_url == "https://example.test/annex-3a"


def test_index_is_consistent_with_records(html_source):
    catalog = build_catalog(html_source)

    assert [item.control_id for item in catalog.index] == [record.control_id for record in catalog.records]
    for item, record in zip(catalog.index, catalog.records):
        assert CONTROL_ID_RE.match(item.control_id)
        assert item.family_id == item.control_id.split("-")[0]
        assert item.control_name == record.control_name
        assert item.aliases == ()

    ac2 = catalog.index[1]
    assert ac2.keywords == (
        "ACCOUNT MANAGEMENT",
        "AC-2(1)",
        "ACCOUNT MANAGEMENT | AUTOMATED SYSTEM ACCOUNT MANAGEMENT",
        "AC-2(2)",
        "The organization audits account actions.",
    )


def test_build_keywords_skips_empty_values():
    keywords = build_keywords("NAME", [Enhancement(enhancement_id="XX-1(1)"), Enhancement(enhancement_id="XX-1(2)", title="NAME")])
    assert keywords == ["NAME", "XX-1(1)", "XX-1(2)"]


def test_write_catalog_layout_and_json_format(written_catalog):
    index = _read_json(written_catalog / INDEX_FILENAME)
    assert [item["control_id"] for item in index] == ["AC-1", "AC-2"]
    assert index[0]["aliases"] == []

    for item in index:
        record = _read_json(written_catalog / "controls" / f"{item['control_id']}.json")
        assert record["control_id"] == item["control_id"]
        assert record["control_name"] == item["control_name"]
        assert record["family_id"] == item["family_id"]

    ac1 = _read_json(written_catalog / "controls" / "AC-1.json")
    assert "enhancements" not in ac1

    raw = (written_catalog / "controls" / "AC-2.json").read_text(encoding="utf-8")
    assert raw.endswith("}\n")
    assert raw.startswith('{\n  "control_id": "AC-2"')

    metadata = _read_json(written_catalog / METADATA_FILENAME)
    assert metadata["catalog_edition"] == "Annex 3A"
    assert metadata["catalog_revision_date"] == "June 2023"
    assert metadata["extracted_at"] == "2024-01-01T00:00:00+00:00"

    assert not list(written_catalog.rglob("*.tmp"))


def test_rerun_with_fixed_timestamp_is_byte_identical(tmp_path, html_source):
    snapshots = []
    for _ in range(2):
        out_dir = tmp_path / "catalog"
        write_catalog(build_catalog(html_source, extracted_at="2024-01-01T00:00:00+00:00"), out_dir)
        snapshots.append({p.relative_to(out_dir): p.read_bytes() for p in sorted(out_dir.rglob("*.json"))})

    assert snapshots[0] == snapshots[1]


def test_non_ascii_text_is_preserved(tmp_path):
    source = HtmlCatalogSource("<h4>AC-2 GESTION DES COMPTES</h4><p>Control: L’organisation gère les comptes.</p>")
    write_catalog(build_catalog(source), tmp_path)
    raw = (tmp_path / "controls" / "AC-2.json").read_text(encoding="utf-8")
    assert "L’organisation gère les comptes." in raw


def test_stale_control_files_are_pruned(written_catalog):
    stale = written_catalog / "controls" / "ZZ-99.json"
    stale.write_text("{}\n", encoding="utf-8")

    source = HtmlCatalogSource("<h4>AC-2 ACCOUNT MANAGEMENT</h4><p>Control: Manage accounts.</p>")
    write_catalog(build_catalog(source), written_catalog)

    assert not stale.exists()
    assert not (written_catalog / "controls" / "AC-1.json").exists()
    assert (written_catalog / "controls" / "AC-2.json").exists()
    assert [item["control_id"] for item in _read_json(written_catalog / INDEX_FILENAME)] == ["AC-2"]


def test_zero_controls_writes_nothing(tmp_path):
    source = HtmlCatalogSource("<h2>Page moved</h2><p>The catalogue has a new home.</p>")
    out_dir = tmp_path / "catalog"

    with pytest.raises(RuntimeError):
        write_catalog(build_catalog(source), out_dir)

    assert not out_dir.exists()


def test_zero_controls_keeps_previous_catalog(written_catalog):
    before = (written_catalog / INDEX_FILENAME).read_bytes()
    with pytest.raises(RuntimeError):
        build_catalog(HtmlCatalogSource("<p>empty</p>"))
    assert (written_catalog / INDEX_FILENAME).read_bytes() == before


def test_pdf_source_end_to_end(tmp_path, monkeypatch):
    lines = [
        "Annex 3A",
        "3. Security Control Definitions",
        "AC - 2 ACCOUNT MANAGEMENT",
        "Control: The organization:",
        "(A) Identifies account types;",
        "(a) individual;",
        "(B) Monitors accounts.",
        "Supplemental Guidance: Accounts include guest accounts. Related controls: IA-2, AC-3.",
        "Control Enhancements:",
        "(1) ACCOUNT MANAGEMENT | AUTOMATED SYSTEM ACCOUNT MANAGEMENT",
        "The organization employs automated mechanisms.",
        "Enhancement Supplemental Guidance: Includes email.",
        "References: None.",
    ]
    page = [PdfFragment(x=10, y=800 - 20 * i, text=line) for i, line in enumerate(lines)]
    monkeypatch.setattr("control_catalog.sources.read_pdf_fragments", lambda path: [page])

    source = PdfCatalogSource(tmp_path / "annex-3a.pdf", source_url="https://example.test/annex-3a.pdf")
    catalog = build_catalog(source)
    write_catalog(catalog, tmp_path / "catalog")

    record = _read_json(tmp_path / "catalog" / "controls" / "AC-2.json")
    assert record["source_type"] == "pdf"
    assert record["statement"] == (
        "The organization: (A) Identifies account types; (a) individual; (B) Monitors accounts."
    )
    assert record["statement_parts"] == [
        {"id": "A", "text": "Identifies account types;", "subparts": [{"id": "a", "text": "individual;"}]},
        {"id": "B", "text": "Monitors accounts.", "subparts": []},
    ]
    assert record["related_controls"] == ["AC-3", "IA-2"]
    assert record["enhancements"] == [
        {
            "enhancement_id": "AC-2(1)",
            "title": "ACCOUNT MANAGEMENT | AUTOMATED SYSTEM ACCOUNT MANAGEMENT",
            "statement": "The organization employs automated mechanisms.",
            "supplemental_guidance": "Includes email.",
        }
    ]
    assert record["references"] == ["None."]
    assert not (tmp_path / "catalog" / METADATA_FILENAME).exists()


def test_repeated_pdf_heading_yields_one_record_per_id(tmp_path, monkeypatch):
    lines = [
        "AC - 2 ACCOUNT MANAGEMENT",
        "Control: Real body.",
        "SC - 7 BOUNDARY PROTECTION",
        "Supplemental Guidance: wrapped prose mentions",
        "AC - 2 for accounts.",
        "tail",
    ]
    page = [PdfFragment(x=10, y=800 - 20 * i, text=line) for i, line in enumerate(lines)]
    monkeypatch.setattr("control_catalog.sources.read_pdf_fragments", lambda path: [page])

    catalog = build_catalog(PdfCatalogSource(tmp_path / "annex-3a.pdf", start_marker=None))
    write_catalog(catalog, tmp_path / "catalog")

    index = _read_json(tmp_path / "catalog" / INDEX_FILENAME)
    assert [item["control_id"] for item in index] == ["AC-2", "SC-7"]
    for item in index:
        record = _read_json(tmp_path / "catalog" / "controls" / f"{item['control_id']}.json")
        assert record["control_name"] == item["control_name"]
    sc7 = _read_json(tmp_path / "catalog" / "controls" / "SC-7.json")
    assert sc7["supplemental_guidance"] == "wrapped prose mentions AC - 2 for accounts. tail"


def test_publish_catalog_layout(tmp_path, written_catalog):
    target = tmp_path / "public"
    target.mkdir()
    (target / "OLD-1.json").write_text("{}", encoding="utf-8")

    published = publish_catalog(written_catalog, target)

    assert published == 2
    assert not (target / "OLD-1.json").exists()
    assert _read_json(target / "index") == _read_json(written_catalog / INDEX_FILENAME)
    assert (target / "metadata.json").exists()
    assert sorted(p.name for p in target.glob("*.json")) == ["AC-1.json", "AC-2.json", "metadata.json"]


def test_publish_requires_written_catalog(tmp_path):
    with pytest.raises(FileNotFoundError):
        publish_catalog(tmp_path / "missing", tmp_path / "public")
