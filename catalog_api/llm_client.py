from __future__ import annotations

import json
import logging
from typing import Dict, Generator, List, Optional

import requests

from control_catalog.config import Settings


class OllamaClient:
    """Chat client for a local Ollama server, with an optional model-name denylist."""

    def __init__(
        self,
        host: str,
        keep_alive: str = "5m",
        denylist_enabled: bool = False,
        denylist_substrings: Optional[List[str]] = None,
        timeout: int = 300,
    ) -> None:
        self.host = host.rstrip("/")
        self.keep_alive = keep_alive
        self.denylist_enabled = denylist_enabled
        self.denylist_substrings = [s.lower() for s in (denylist_substrings or [])]
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "OllamaClient":
        return cls(
            host=settings.ollama_host,
            keep_alive=settings.keep_alive,
            denylist_enabled=settings.model_denylist_enabled,
            denylist_substrings=settings.model_denylist_substrings,
        )

    def check_model(self, model: str) -> None:
        if not self.denylist_enabled:
            return
        lowered = model.lower()
        for substring in self.denylist_substrings:
            if substring and substring in lowered:
                raise ValueError(f"Model '{model}' is blocked by denylist substring '{substring}'.")

    def chat_stream(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float = 0.0,
    ) -> Generator[str, None, None]:
        self.check_model(model)
        payload = {
            "model": model,
            "messages": messages,
            "stream": True,
            "keep_alive": self.keep_alive,
            "options": {"temperature": temperature},
        }
        with requests.post(f"{self.host}/api/chat", json=payload, stream=True, timeout=self.timeout) as response:
            response.raise_for_status()
            for line in response.iter_lines():
                if not line:
                    continue
                try:
                    event = json.loads(line.decode("utf-8"))
                except json.JSONDecodeError:
                    logging.debug("Skipping non-JSON line from Ollama stream")
                    continue
                content = (event.get("message") or {}).get("content")
                if content:
                    yield content

    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float = 0.0,
    ) -> str:
        return "".join(self.chat_stream(messages=messages, model=model, temperature=temperature))
