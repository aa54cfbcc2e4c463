from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from control_catalog.config import Settings, load_settings

from .llm_client import OllamaClient
from .selection import build_control_context, select_control_ids
from .store import INDEX_KEY, METADATA_KEY, CatalogStore, FileCatalogStore, control_key

INSUFFICIENT_ANSWER = "Insufficient information in the retrieved controls to answer this question."

SYSTEM_PROMPT = " ".join(
    [
        "You are an assistant answering questions about ITSG-33 controls.",
        "Use only the provided control text as authoritative requirements.",
        "If the context is insufficient, say so clearly.",
        "Label examples as illustrative and not authoritative.",
        "Cite control IDs in the response.",
    ]
)


class ChatRequest(BaseModel):
    question: Optional[str] = None
    control_ids: Optional[List[str]] = None


class Citation(BaseModel):
    control_id: str
    anchors: Optional[List[str]] = None


class ChatResponse(BaseModel):
    answer: str
    retrieved_controls: List[str]
    citations: List[Citation]


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _anchors(control: Dict[str, Any]) -> Optional[List[str]]:
    source_url = control.get("source_url")
    return [str(source_url)] if source_url else None


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[CatalogStore] = None,
    llm: Optional[OllamaClient] = None,
) -> FastAPI:
    settings = settings or load_settings()
    store = store or FileCatalogStore(settings.catalog_dir, settings.data_prefix)
    llm = llm or OllamaClient.from_settings(settings)

    app = FastAPI(title="Control Catalog API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(str(exc.detail).lower(), exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request, exc: RequestValidationError) -> JSONResponse:
        return error_response("invalid request body", 400)

    @app.get("/api/controls/index")
    def get_index():
        index = store.get_json(INDEX_KEY)
        if index is None:
            return error_response("controls-index.json not found", 404)
        return index

    @app.get("/api/controls/metadata.json")
    def get_metadata():
        metadata = store.get_json(METADATA_KEY)
        if metadata is None:
            return error_response("catalog-metadata.json not found", 404)
        return metadata

    @app.get("/api/controls/{control_id}")
    def get_control(control_id: str):
        control_id = control_id.strip().removesuffix(".json")
        if not control_id:
            return error_response("control id is required", 400)
        control = store.get_json(control_key(control_id))
        if control is None:
            return error_response("control not found", 404)
        return control

    @app.post("/api/chat", response_model=ChatResponse, response_model_exclude_none=True)
    def chat(payload: ChatRequest):
        question = (payload.question or "").strip()
        if not question:
            return error_response("question is required", 400)

        index = store.get_json(INDEX_KEY)
        if not isinstance(index, list):
            return error_response("controls-index not found", 500)

        control_ids = select_control_ids(question, payload.control_ids, index, limit=settings.chat_control_limit)
        controls = []
        for control_id in control_ids:
            control = store.get_json(control_key(control_id))
            if isinstance(control, dict):
                control.setdefault("control_id", control_id)
                controls.append(control)

        if not controls:
            return ChatResponse(answer=INSUFFICIENT_ANSWER, retrieved_controls=[], citations=[])

        if not settings.chat_model:
            return error_response("chat model is not configured", 500)

        context = "\n\n---\n\n".join(build_control_context(control) for control in controls)
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f"Question: {question}\n\nControl context:\n{context}"},
        ]
        logging.info(
            "Answering chat question",
            extra={"controls": [control.get("control_id") for control in controls], "model": settings.chat_model},
        )
        try:
            answer = llm.chat_completion(messages=messages, model=settings.chat_model)
        except ValueError as exc:
            return error_response(str(exc), 500)
        except requests.RequestException as exc:
            logging.error("Chat model request failed: %s", exc)
            return error_response("chat model request failed", 502)

        return ChatResponse(
            answer=answer,
            retrieved_controls=[control["control_id"] for control in controls],
            citations=[Citation(control_id=control["control_id"], anchors=_anchors(control)) for control in controls],
        )

    return app
