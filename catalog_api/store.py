from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

INDEX_KEY = "controls-index.json"
METADATA_KEY = "catalog-metadata.json"


def join_key(prefix: Optional[str], path: str) -> str:
    """``join_key("v1/", "/controls/AC-2.json")`` -> ``"v1/controls/AC-2.json"``."""

    clean_prefix = (prefix or "").rstrip("/")
    clean_path = path.lstrip("/")
    return f"{clean_prefix}/{clean_path}" if clean_prefix else clean_path


def control_key(control_id: str) -> str:
    return f"controls/{control_id}.json"


class CatalogStore(ABC):
    """Read-only access to a published catalog by object key."""

    @abstractmethod
    def get_text(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def get_json(self, key: str) -> Optional[Any]:
        text = self.get_text(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logging.warning("Malformed JSON in catalog store; treating as missing", extra={"key": key})
            return None


class FileCatalogStore(CatalogStore):
    def __init__(self, root: Path, prefix: str = "") -> None:
        self.root = root
        self.prefix = prefix

    def _path_for(self, key: str) -> Optional[Path]:
        root = self.root.resolve()
        path = (root / join_key(self.prefix, key)).resolve()
        if not path.is_relative_to(root):
            return None
        return path

    def get_text(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if path is None or not path.is_file():
            return None
        return path.read_text(encoding="utf-8")
