"""
Security control catalog extraction: source documents in, normalized control
records, index and metadata out.
"""

from .schema import (  # noqa: F401
    Catalog,
    CatalogMetadata,
    ControlIndexItem,
    ControlRecord,
    Enhancement,
    ParsingRules,
    StatementPart,
    StatementSubpart,
    family_of,
    ordinal_to_alpha,
)

from .sources import (  # noqa: F401
    CatalogSource,
    HtmlCatalogSource,
    PdfCatalogSource,
)

from .assemble import (  # noqa: F401
    build_catalog,
    build_record,
    publish_catalog,
    write_catalog,
)

from .assignments import build_assignment_rows, export_assignments_csv  # noqa: F401

__all__ = [
    "Catalog",
    "CatalogMetadata",
    "ControlIndexItem",
    "ControlRecord",
    "Enhancement",
    "ParsingRules",
    "StatementPart",
    "StatementSubpart",
    "family_of",
    "ordinal_to_alpha",
    "CatalogSource",
    "HtmlCatalogSource",
    "PdfCatalogSource",
    "build_catalog",
    "build_record",
    "publish_catalog",
    "write_catalog",
    "build_assignment_rows",
    "export_assignments_csv",
]
