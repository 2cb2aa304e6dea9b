"""Native Gemini API client for Guesswork."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

import httpx

logger = logging.getLogger(__name__)


@dataclass
class GeminiResult:
    """Result from a Gemini API call."""
    text: str = ""
    thoughts: List[str] = field(default_factory=list)
    ok: bool = True
    error: str | None = None
    status_code: int | None = None
    error_status: str | None = None
    duration_ms: float = 0.0
    usage: Dict[str, Any] | None = None


def _error_details(response: httpx.Response) -> tuple[str, str | None]:
    """Pull message and status out of a Gemini error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:500], None
    error = data.get("error") if isinstance(data, dict) else None
    if not isinstance(error, dict):
        return response.text[:500], None
    message = str(error.get("message") or "")
    status = error.get("status")
    for detail in error.get("details") or []:
        # RetryInfo carries the server's suggested delay
        if isinstance(detail, dict) and detail.get("retryDelay"):
            message = f"{message} (retryDelay: {detail['retryDelay']})"
    return message, str(status) if status else None


def _candidate_parts(candidate: Any) -> List[Dict[str, Any]] | None:
    """Dict parts of the first candidate, or None when it carries no content."""
    if not isinstance(candidate, dict):
        return None
    content = candidate.get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts") or []
    if not isinstance(parts, list):
        return None
    return [p for p in parts if isinstance(p, dict)]


class GeminiClient:
    """Native Gemini API client using httpx.

    The API key travels in the `x-goog-api-key` header so it never ends up
    in URLs, error strings or logs.
    """

    MODEL_MAP = {
        "3-pro": "gemini-3-pro-preview",
        "3-flash": "gemini-3-flash-preview",
        "2.5-pro": "gemini-2.5-pro",
        "2.5-flash": "gemini-2.5-flash",
        "2.0-flash": "gemini-2.0-flash",
    }

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def resolve_model(self, model: str) -> str:
        return self.MODEL_MAP.get(model, model)

    async def generate_content(
        self,
        contents: List[Dict[str, Any]],
        model: str,
        system: str | None = None,
        generation_config: Dict[str, Any] | None = None,
    ) -> GeminiResult:
        if not self.api_key:
            return GeminiResult(ok=False, error="GEMINI_API_KEY not set")

        model_id = self.resolve_model(model)
        url = f"{self.base_url}/models/{model_id}:generateContent"

        body: Dict[str, Any] = {"contents": contents}
        if generation_config:
            body["generationConfig"] = generation_config
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        logger.debug("Gemini request start model=%s turns=%d", model_id, len(contents))
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=body,
                    headers={"x-goog-api-key": self.api_key},
                )

            duration_ms = (time.perf_counter() - start) * 1000

            if response.status_code != 200:
                message, error_status = _error_details(response)
                return GeminiResult(
                    ok=False,
                    error=message or f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    error_status=error_status,
                    duration_ms=duration_ms,
                )

            data = response.json()
            if not isinstance(data, dict):
                return GeminiResult(
                    ok=False,
                    error="Response body is not a JSON object",
                    status_code=response.status_code,
                    duration_ms=duration_ms,
                )
            candidates = data.get("candidates") or []
            if not isinstance(candidates, list) or not candidates:
                feedback = data.get("promptFeedback")
                reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
                return GeminiResult(
                    ok=False,
                    error=f"Prompt blocked: {reason}" if reason else "No candidates in response",
                    status_code=response.status_code,
                    duration_ms=duration_ms,
                )

            parts = _candidate_parts(candidates[0])
            if parts is None:
                finish = candidates[0].get("finishReason") if isinstance(candidates[0], dict) else None
                return GeminiResult(
                    ok=False,
                    error=f"No content in response (finishReason: {finish})" if finish else "No content in response",
                    status_code=response.status_code,
                    duration_ms=duration_ms,
                )
            # Thought summaries come back as parts flagged with "thought": true
            thoughts = [p["text"] for p in parts if p.get("thought") and isinstance(p.get("text"), str)]
            text = "".join(
                p["text"] for p in parts if not p.get("thought") and isinstance(p.get("text"), str)
            )

            usage_meta = data.get("usageMetadata")
            if not isinstance(usage_meta, dict):
                usage_meta = {}
            usage = {
                "prompt_tokens": usage_meta.get("promptTokenCount", 0),
                "completion_tokens": usage_meta.get("candidatesTokenCount", 0),
                "thoughts_tokens": usage_meta.get("thoughtsTokenCount", 0),
                "total_tokens": usage_meta.get("totalTokenCount", 0),
            }

            return GeminiResult(
                text=text,
                thoughts=thoughts,
                ok=True,
                status_code=response.status_code,
                duration_ms=duration_ms,
                usage=usage,
            )

        except httpx.TimeoutException:
            duration_ms = (time.perf_counter() - start) * 1000
            return GeminiResult(
                ok=False,
                error=f"Gemini API timeout after {self.timeout:g}s",
                duration_ms=duration_ms,
            )
        except (httpx.HTTPError, ValueError) as e:
            duration_ms = (time.perf_counter() - start) * 1000
            return GeminiResult(
                ok=False,
                error=str(e) or e.__class__.__name__,
                duration_ms=duration_ms,
            )
