"""Backend adapter that goes through the Guesswork proxy endpoint.

Useful when the process running the game does not hold the Gemini key:
the server does, and this client only ever sends history and the clue.
"""
from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List

import httpx

from guesswork.backend import Decision, classify_failure
from guesswork.clues import Clue
from guesswork.errors import BackendFailure, MalformedResponse
from guesswork.history import contents_from_projection

logger = logging.getLogger(__name__)

PROCESS_TURN_PATH = "/api/gemini/process-turn"


def build_payload(
    projection: List[Dict[str, str]],
    clue: Clue,
    model: str | None = None,
) -> Dict[str, Any]:
    payload_input: Dict[str, str] = {}
    if clue.text:
        payload_input["text"] = clue.text
    if clue.image:
        payload_input["image"] = base64.b64encode(clue.image).decode("ascii")
    if clue.audio:
        payload_input["audio"] = base64.b64encode(clue.audio).decode("ascii")
    payload: Dict[str, Any] = {
        "history": contents_from_projection(projection),
        "input": payload_input,
    }
    if model:
        payload["modelName"] = model
    return payload


class RemoteBackend:
    """Client-side wrapper for the process-turn route."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def request_decision(
        self,
        projection: List[Dict[str, str]],
        clue: Clue,
        model: str | None = None,
    ) -> Decision:
        url = f"{self.base_url}{PROCESS_TURN_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=build_payload(projection, clue, model))
        except httpx.TimeoutException as exc:
            raise BackendFailure(f"Request to {url} timed out after {self.timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise BackendFailure(f"Request to {url} failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            if response.status_code != 200:
                raise classify_failure(response.status_code, response.text[:500]) from exc
            raise MalformedResponse("Server returned a non-JSON body") from exc

        if response.status_code != 200:
            message = data.get("error") if isinstance(data, dict) else None
            logger.warning("process-turn failed status=%s", response.status_code)
            raise classify_failure(response.status_code, message)
        if not isinstance(data, dict):
            raise MalformedResponse("Server returned JSON that is not an object")
        return Decision.from_dict(data)
