"""Backend adapter: history + clue in, structured decision out.

`request_decision` is one round trip. It never retries; a failed turn is
surfaced to the player, who decides whether to resubmit.
"""
from __future__ import annotations

import base64
import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from guesswork.clues import AudioPart, Clue, ImagePart, TextPart
from guesswork.config import Config
from guesswork.errors import BackendFailure, MalformedResponse, RateLimited
from guesswork.history import contents_from_projection
from guesswork.models.gemini import GeminiClient, GeminiResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """
You are the world's most advanced 20-Questions player.
A human player is thinking of an idea, object, or concept.
Your goal is to guess it as quickly and accurately as possible.

You will receive clues in text, voice recordings, or as image frames (video).
You MUST respond with a JSON object.

DO NOT reveal chain-of-thought.
Provide concise justification instead.

JSON structure:
{
  "question": "Your question to narrow down the concept",
  "guess": "Your official guess if confident, otherwise null",
  "isCorrectGuess": false,
  "reasoningSummary": "Brief explanation",
  "reasoningConfidence": 0.0 to 1.0,
  "giveUp": false
}

Set "isCorrectGuess" to true only once the player has confirmed your guess.
Set "giveUp" to true only if you cannot make any further progress.
""".strip()

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "question": {"type": "STRING"},
        "guess": {"type": "STRING"},
        "isCorrectGuess": {"type": "BOOLEAN"},
        "reasoningSummary": {"type": "STRING"},
        "reasoningConfidence": {"type": "NUMBER"},
        "giveUp": {"type": "BOOLEAN"},
    },
    "required": ["question", "isCorrectGuess", "reasoningConfidence"],
}

IMAGE_NOTE = "(User provided an image/video frame as a clue)"
AUDIO_NOTE = "(User provided a voice recording as a clue)"
EMPTY_NOTE = "(User provided a clue without any content)"

GENERIC_FAILURE = "Failed to process Gemini turn"
GENERIC_RETRY_HINT = "Please wait a moment and try again."

_RATE_LIMIT_MARKERS = ("resource_exhausted", "rate limit", "rate-limit", "quota", "too many requests")
_DURATION_RE = re.compile(
    r"(?:retry|try again|wait|retryDelay)[^0-9]{0,20}(\d+(?:\.\d+)?)\s*(ms|milliseconds?|s|sec|secs|seconds?|m|min|mins|minutes?)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Decision:
    """The backend's structured answer for one turn."""
    question: str = ""
    guess: Optional[str] = None
    is_correct_guess: bool = False
    reasoning_summary: str = ""
    reasoning_confidence: float = 0.0
    give_up: bool = False
    thought_process: str = ""

    @property
    def has_guess(self) -> bool:
        return bool(self.guess) and self.guess.strip().lower() != "null"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "guess": self.guess,
            "isCorrectGuess": self.is_correct_guess,
            "reasoningSummary": self.reasoning_summary,
            "reasoningConfidence": self.reasoning_confidence,
            "giveUp": self.give_up,
            "thoughtProcess": self.thought_process,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Decision":
        decision = _decision_fields(data)
        thought = data.get("thoughtProcess")
        return cls(
            **decision,
            thought_process=thought if isinstance(thought, str) and thought else decision["reasoning_summary"],
        )


class Backend(Protocol):
    async def request_decision(
        self,
        projection: List[Dict[str, str]],
        clue: Clue,
        model: str | None = None,
    ) -> Decision:
        ...


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def build_user_parts(clue: Clue) -> List[Dict[str, Any]]:
    parts: List[Dict[str, Any]] = []
    for part in clue.parts():
        if isinstance(part, TextPart):
            parts.append({"text": part.text})
        elif isinstance(part, ImagePart):
            parts.append({"inlineData": {"mimeType": part.mime_type, "data": _b64(part.data)}})
            parts.append({"text": IMAGE_NOTE})
        elif isinstance(part, AudioPart):
            parts.append({"inlineData": {"mimeType": part.mime_type, "data": _b64(part.data)}})
            parts.append({"text": AUDIO_NOTE})
        else:
            raise TypeError(f"Unsupported clue part: {part!r}")
    if not parts:
        parts.append({"text": EMPTY_NOTE})
    return parts


def build_contents(projection: List[Dict[str, str]], clue: Clue) -> List[Dict[str, Any]]:
    """Prior turns as text, then the current clue as the newest user message."""
    contents = contents_from_projection(projection)
    contents.append({"role": "user", "parts": build_user_parts(clue)})
    return contents


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _as_confidence(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def _decision_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    guess = data.get("guess")
    if guess is not None and not isinstance(guess, str):
        guess = str(guess)
    summary = data.get("reasoningSummary")
    question = data.get("question")
    return {
        "question": question if isinstance(question, str) else "",
        "guess": guess or None,
        "is_correct_guess": _as_bool(data.get("isCorrectGuess", False)),
        "reasoning_summary": summary if isinstance(summary, str) else "",
        "reasoning_confidence": _as_confidence(data.get("reasoningConfidence", 0)),
        "give_up": _as_bool(data.get("giveUp", False)),
    }


def parse_decision(text: str, thoughts: List[str] | None = None) -> Decision:
    """Turn the model's answer text into a Decision.

    Raises MalformedResponse when the text is not a JSON object.
    """
    try:
        data = json.loads(text or "")
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"Backend returned invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise MalformedResponse("Backend returned JSON that is not an object")
    fields = _decision_fields(data)
    thought_process = "".join(thoughts or []).strip()
    return Decision(**fields, thought_process=thought_process or fields["reasoning_summary"])


def parse_retry_hint(message: str | None) -> str:
    match = _DURATION_RE.search(message or "")
    if not match:
        return GENERIC_RETRY_HINT
    amount = float(match.group(1))
    unit = match.group(2).lower()
    if unit.startswith("ms") or unit.startswith("milli"):
        seconds = amount / 1000
    elif unit.startswith("m"):
        seconds = amount * 60
    else:
        seconds = amount
    seconds = max(1, math.ceil(seconds))
    if seconds >= 120:
        minutes = math.ceil(seconds / 60)
        return f"Please wait about {minutes} minutes and try again."
    unit_label = "second" if seconds == 1 else "seconds"
    return f"Please wait about {seconds} {unit_label} and try again."


def is_rate_limit(status_code: int | None, message: str | None, error_status: str | None = None) -> bool:
    if status_code == 429:
        return True
    haystack = f"{error_status or ''} {message or ''}".lower()
    return any(marker in haystack for marker in _RATE_LIMIT_MARKERS)


def classify_failure(
    status_code: int | None,
    message: str | None,
    error_status: str | None = None,
) -> RateLimited | BackendFailure:
    if is_rate_limit(status_code, message, error_status):
        hint = parse_retry_hint(message)
        return RateLimited(f"Rate limited by the reasoning backend. {hint}", retry_hint=hint)
    return BackendFailure(message or GENERIC_FAILURE, status_code=status_code)


class GeminiBackend:
    """Backend adapter talking to the Gemini REST API directly."""

    def __init__(
        self,
        client: GeminiClient,
        default_model: str = "gemini-3-pro-preview",
        thinking_budget: int = 32768,
    ) -> None:
        self.client = client
        self.default_model = default_model
        self.thinking_budget = thinking_budget

    @classmethod
    def from_config(cls, config: Config) -> "GeminiBackend":
        client = GeminiClient(
            api_key=config.require_api_key(),
            base_url=config.base_url,
            timeout=config.timeout_seconds,
        )
        return cls(client, default_model=config.default_model, thinking_budget=config.thinking_budget)

    def generation_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "responseMimeType": "application/json",
            "responseSchema": RESPONSE_SCHEMA,
        }
        if self.thinking_budget:
            config["thinkingConfig"] = {
                "thinkingBudget": self.thinking_budget,
                "includeThoughts": True,
            }
        return config

    async def request_decision(
        self,
        projection: List[Dict[str, str]],
        clue: Clue,
        model: str | None = None,
    ) -> Decision:
        model_name = model or self.default_model
        result: GeminiResult = await self.client.generate_content(
            build_contents(projection, clue),
            model=model_name,
            system=SYSTEM_PROMPT,
            generation_config=self.generation_config(),
        )
        if not result.ok:
            failure = classify_failure(result.status_code, result.error, result.error_status)
            logger.warning(
                "Gemini turn failed model=%s status=%s kind=%s",
                model_name, result.status_code, failure.__class__.__name__,
            )
            raise failure
        if not result.text.strip():
            # Thinking can use the whole output budget and leave no answer
            raise MalformedResponse("Backend returned no answer text")
        decision = parse_decision(result.text, result.thoughts)
        logger.debug("Gemini turn ok model=%s duration_ms=%.0f", model_name, result.duration_ms)
        return decision
