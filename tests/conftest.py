from pathlib import Path

import pytest

from control_catalog.assemble import build_catalog, write_catalog
from control_catalog.sources import HtmlCatalogSource

SOURCE_URL = "https://example.test/annex-3a"
EXTRACTED_AT = "2024-01-01T00:00:00+00:00"

ANNEX_HTML = """
<h2>Annex 3A</h2>
<p>Published: June 2023</p>
<h4>AC-1 ACCESS CONTROL POLICY AND PROCEDURES</h4>
<p>Control:</p>
<ol>
  <li>(A) The organization develops an access control policy that addresses:
    <ol>
      <li>(a) Purpose and scope; and</li>
      <li>(b) Procedures to facilitate implementation;</li>
    </ol>
  </li>
  <li>(B) The organization reviews the policy [Assignment: organization-defined frequency].</li>
</ol>
<p>Supplemental Guidance: This control addresses policy. Related controls: PM-9, AC-2.</p>
<p>References: None.</p>
<h4>AC-2 ACCOUNT MANAGEMENT</h4>
<p>Control:</p>
<ol>
  <li>(A) The organization identifies account types.</li>
</ol>
<p>Supplemental Guidance: Accounts include individual accounts. Related controls: AC-3, AC-10, AC-3.</p>
<p>Control Enhancements:</p>
<ol>
  <li>(1) ACCOUNT MANAGEMENT | AUTOMATED SYSTEM ACCOUNT MANAGEMENT
    <p>The organization employs automated mechanisms to support account management.</p>
    <p>Enhancement Supplemental Guidance: Automated mechanisms include email.</p>
  </li>
  <li>(2) The organization audits account actions.</li>
</ol>
<p>References: NIST SP 800-53.</p>
"""

ANNEX_PAGE = {
    "title": "Annex 3A - Security control catalogue (ITSG-33)",
    "date_modified": "2023-06-01",
    "date_created": "2014-12-01",
}


@pytest.fixture
def html_source() -> HtmlCatalogSource:
    return HtmlCatalogSource(ANNEX_HTML, page=ANNEX_PAGE, source_url=SOURCE_URL)


@pytest.fixture
def written_catalog(tmp_path: Path, html_source: HtmlCatalogSource) -> Path:
    out_dir = tmp_path / "catalog"
    write_catalog(build_catalog(html_source, extracted_at=EXTRACTED_AT), out_dir)
    return out_dir
