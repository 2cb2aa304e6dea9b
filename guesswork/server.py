"""FastAPI server for Guesswork.

The server is the only holder of the Gemini credential. Callers send the
conversation history and the current clue; they never send or receive
the key.
"""
from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Any, Dict, List

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from guesswork.audit import AuditLog
from guesswork.backend import Backend, GeminiBackend
from guesswork.clues import Clue
from guesswork.config import Config, get_config
from guesswork.errors import BackendError, BackendFailure, RateLimited
from guesswork.remote import PROCESS_TURN_PATH

logger = logging.getLogger(__name__)

router = APIRouter()


class BadRequest(ValueError):
    pass


def _projection_from_history(history: Any) -> List[Dict[str, str]]:
    if not isinstance(history, list):
        raise BadRequest("history must be a list")
    projection = []
    for entry in history:
        if not isinstance(entry, dict):
            raise BadRequest("history entries must be objects")
        parts = entry.get("parts") or []
        if not isinstance(parts, list):
            raise BadRequest("history parts must be a list")
        # Only text survives; media from earlier turns is never re-sent
        text = "".join(
            str(part.get("text", "")) for part in parts if isinstance(part, dict)
        )
        role = "user" if entry.get("role") == "user" else "model"
        projection.append({"role": role, "text": text})
    return projection


def _decode_media(value: Any, field: str) -> bytes:
    if value in (None, ""):
        return b""
    if not isinstance(value, str):
        raise BadRequest(f"input.{field} must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise BadRequest(f"input.{field} is not valid base64") from exc


def _clue_from_input(raw: Any) -> Clue:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise BadRequest("input must be an object")
    text = raw.get("text") or ""
    if not isinstance(text, str):
        raise BadRequest("input.text must be a string")
    return Clue(
        text=text,
        image=_decode_media(raw.get("image"), "image"),
        audio=_decode_media(raw.get("audio"), "audio"),
    )


def _status_for(error: BackendError) -> int:
    if isinstance(error, RateLimited):
        return 429
    if isinstance(error, BackendFailure) and error.status_code and error.status_code >= 400:
        return error.status_code
    return 500


def _redact(message: str, secret: str) -> str:
    if secret and secret in message:
        return message.replace(secret, "***")
    return message


@router.get("/health")
async def health():
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "service": "guesswork"}


@router.post(PROCESS_TURN_PATH)
async def process_turn(payload: dict, request: Request):
    state = request.app.state
    try:
        projection = _projection_from_history(payload.get("history") or [])
        clue = _clue_from_input(payload.get("input"))
        model = payload.get("modelName")
        if model is not None and not isinstance(model, str):
            raise BadRequest("modelName must be a string")
    except BadRequest as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)

    backend: Backend = state.backend
    audit: AuditLog | None = getattr(state, "audit", None)
    start = time.perf_counter()
    try:
        decision = await backend.request_decision(projection, clue, model or None)
    except BackendError as exc:
        duration_ms = (time.perf_counter() - start) * 1000
        if audit:
            audit.record_turn(
                model=model, modality=clue.modality, history_turns=len(projection),
                duration_ms=duration_ms, error=exc,
            )
        secret = state.config.api_key if getattr(state, "config", None) else ""
        message = _redact(exc.message, secret)
        logger.error("process-turn failed kind=%s: %s", exc.__class__.__name__, message)
        return JSONResponse({"error": message}, status_code=_status_for(exc))

    if audit:
        audit.record_turn(
            model=model, modality=clue.modality, history_turns=len(projection),
            duration_ms=(time.perf_counter() - start) * 1000,
        )
    return decision.to_dict()


def create_app(
    config: Config | None = None,
    backend: Backend | None = None,
    audit: AuditLog | None = None,
) -> FastAPI:
    app = FastAPI(title="Guesswork")
    app.include_router(router)
    app.state.config = config
    app.state.backend = backend
    app.state.audit = audit

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected request body on %s", request.url.path)
        return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)

    @app.on_event("startup")
    def _startup() -> None:
        if app.state.config is None:
            app.state.config = get_config()
        cfg = app.state.config
        if app.state.backend is None:
            # Fails fast with ConfigError when the key is missing
            app.state.backend = GeminiBackend.from_config(cfg)
        if app.state.audit is None and cfg.audit_path:
            app.state.audit = AuditLog(cfg.audit_path)
        logger.info("Guesswork server ready model=%s", cfg.default_model)

    return app


app = create_app()


def main():
    import uvicorn
    config = get_config()
    config.require_api_key()
    host = config.server.get("host", "127.0.0.1")
    port = int(config.server.get("port", 8099))
    uvicorn.run(create_app(config), host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
