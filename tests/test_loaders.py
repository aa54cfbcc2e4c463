import hashlib
import json

import pytest

from control_catalog import loaders
from control_catalog.lines import group_pdf_lines
from control_catalog.loaders import download_pdf, load_html_file, read_pdf_fragments
from control_catalog.sources import HtmlCatalogSource


class FakeResponse:
    def __init__(self, content=b"", payload=None):
        self.content = content
        self._payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self._payload


def _api_payload(body_html):
    return {
        "response": {
            "page": {
                "title": "Annex 3A - Security control catalogue",
                "date_modified": "2023-06-01",
                "body": [body_html],
            }
        }
    }


def test_download_pdf_writes_file_and_checksum(tmp_path, monkeypatch):
    data = b"%PDF-1.7 fake"
    monkeypatch.setattr(loaders.requests, "get", lambda url, timeout: FakeResponse(content=data))

    dest = tmp_path / "source" / "annex-3a.pdf"
    digest = download_pdf("https://example.test/annex.pdf", dest)

    assert dest.read_bytes() == data
    assert digest == hashlib.sha256(data).hexdigest()
    checksum = (tmp_path / "source" / "annex-3a.pdf.sha256").read_text(encoding="utf-8")
    assert checksum.startswith(digest)


def _write_pdf(path, content):
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Resources << /Font << /F1 5 0 R >> >> /Contents 4 0 R >>",
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_offset = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(objects) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_offset)
    path.write_bytes(bytes(out))


def test_read_pdf_fragments_positions_group_into_lines(tmp_path):
    content = b"\n".join(
        [
            b"BT /F1 12 Tf 72 700 Td (AC - 2 ACCOUNT MANAGEMENT) Tj ET",
            b"BT /F1 12 Tf 72 680 Td (Control: Manage accounts.) Tj ET",
            b"BT /F1 12 Tf 72 660 Td (Second line) Tj 0 -20 Td (Third line) Tj ET",
        ]
    )
    path = tmp_path / "annex.pdf"
    _write_pdf(path, content)

    pages = read_pdf_fragments(path)

    assert len(pages) == 1
    assert group_pdf_lines(pages[0]) == [
        "AC - 2 ACCOUNT MANAGEMENT",
        "Control: Manage accounts.",
        "Second line",
        "Third line",
    ]


def test_read_pdf_fragments_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_pdf_fragments(tmp_path / "missing.pdf")


def test_from_api_builds_source_with_metadata(monkeypatch):
    body = "<p>June 2023</p><h4>AC-2 ACCOUNT MANAGEMENT</h4><p>Control: Manage accounts.</p>"
    monkeypatch.setattr(loaders.requests, "get", lambda url, timeout: FakeResponse(payload=_api_payload(body)))

    source = HtmlCatalogSource.from_api("https://example.test/api", source_url="https://example.test/page")

    assert [c.control_id for c in source.sectioned_controls()] == ["AC-2"]
    metadata = source.metadata(extracted_at="2024-01-01T00:00:00+00:00")
    assert metadata.source_api_url == "https://example.test/api"
    assert metadata.catalog_revision_date == "June 2023"
    assert metadata.page_date_modified == "2023-06-01"


def test_unexpected_api_envelope_is_fatal(monkeypatch):
    monkeypatch.setattr(loaders.requests, "get", lambda url, timeout: FakeResponse(payload={"response": {}}))
    with pytest.raises(ValueError, match="page missing"):
        HtmlCatalogSource.from_api("https://example.test/api")


def test_load_html_file_reads_saved_api_response(tmp_path):
    path = tmp_path / "page.json"
    path.write_text(json.dumps(_api_payload("<h4>AC-2 ACCOUNT MANAGEMENT</h4>")), encoding="utf-8")

    page, body = load_html_file(path)
    assert page["title"] == "Annex 3A - Security control catalogue"
    assert body == "<h4>AC-2 ACCOUNT MANAGEMENT</h4>"


def test_load_html_file_reads_raw_html(tmp_path):
    path = tmp_path / "page.html"
    path.write_text("<html><head><title>Annex 3A</title></head><body><p>x</p></body></html>", encoding="utf-8")

    page, body = load_html_file(path)
    assert page == {"title": "Annex 3A"}
    assert "<p>x</p>" in body


def test_load_html_file_rejects_body_less_payload(tmp_path):
    path = tmp_path / "page.json"
    path.write_text(json.dumps({"response": {"page": {"title": "x", "body": []}}}), encoding="utf-8")
    with pytest.raises(ValueError, match="body missing"):
        load_html_file(path)
