from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import yaml
from dotenv import load_dotenv

from .schema import ParsingRules
from .segment import DEFAULT_PDF_START_MARKER

load_dotenv()

DEFAULT_PDF_DOWNLOAD_URL = "https://www.cyber.gc.ca/sites/default/files/cyber/publications/itsg33-ann3a-eng.pdf"
DEFAULT_HTML_SOURCE_URL = "https://www.cyber.gc.ca/en/guidance/annex-3a-security-control-catalogue-itsg-33"
DEFAULT_HTML_SOURCE_API_URL = (
    "https://www.cyber.gc.ca/api/cccs/page/v1/get?lang=en&url=/en/guidance/annex-3a-security-control-catalogue-itsg-33"
)


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_list(value: str | None) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    catalog_dir: Path
    source_dir: Path
    publish_dir: Path
    pdf_download_url: str
    html_source_url: str
    html_source_api_url: str
    pdf_start_marker: Optional[str]
    request_timeout: int
    data_prefix: str
    allowed_origins: List[str]
    ollama_host: str
    chat_model: str
    keep_alive: str
    chat_control_limit: int
    model_denylist_enabled: bool
    model_denylist_substrings: List[str]

    @property
    def source_pdf(self) -> Path:
        return self.source_dir / "annex-3a.pdf"


def load_settings() -> Settings:
    return Settings(
        catalog_dir=Path(os.getenv("CATALOG_DIR", "./data/controls")),
        source_dir=Path(os.getenv("SOURCE_DIR", "./data/source")),
        publish_dir=Path(os.getenv("PUBLISH_DIR", "./public/api/controls")),
        pdf_download_url=os.getenv("PDF_DOWNLOAD_URL", DEFAULT_PDF_DOWNLOAD_URL),
        html_source_url=os.getenv("HTML_SOURCE_URL", DEFAULT_HTML_SOURCE_URL),
        html_source_api_url=os.getenv("HTML_SOURCE_API_URL", DEFAULT_HTML_SOURCE_API_URL),
        # An empty PDF_START_MARKER disables the marker and starts at the first heading.
        pdf_start_marker=os.getenv("PDF_START_MARKER", DEFAULT_PDF_START_MARKER) or None,
        request_timeout=_parse_int(os.getenv("REQUEST_TIMEOUT"), 60),
        data_prefix=os.getenv("DATA_PREFIX", ""),
        allowed_origins=_parse_list(os.getenv("ALLOWED_ORIGINS", "*")) or ["*"],
        ollama_host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
        chat_model=os.getenv("CHAT_MODEL", "llama3"),
        keep_alive=os.getenv("KEEP_ALIVE", "5m"),
        chat_control_limit=_parse_int(os.getenv("CHAT_CONTROL_LIMIT"), 6),
        model_denylist_enabled=_parse_bool(os.getenv("MODEL_DENYLIST_ENABLED"), False),
        model_denylist_substrings=_parse_list(os.getenv("MODEL_DENYLIST_SUBSTRINGS", "")),
    )


def ensure_directories(settings: Settings) -> None:
    settings.catalog_dir.mkdir(parents=True, exist_ok=True)
    settings.source_dir.mkdir(parents=True, exist_ok=True)


def load_parsing_rules(path: Path = Path("config/parsing_rules.yaml")) -> ParsingRules:
    """Built-in lookup tables, with any overrides from a YAML file merged on top."""

    if not path.exists():
        return ParsingRules()
    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Failed to parse parsing rules YAML at {path}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Parsing rules YAML must be a mapping: {path}")
    return ParsingRules.from_dict(data)
