"""Append-only conversation log for one game."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

USER = "user"
ASSISTANT = "assistant"

# Backend role names
_BACKEND_ROLES = {USER: "user", ASSISTANT: "model"}


@dataclass(frozen=True)
class Turn:
    """A single entry in the transcript."""

    role: str  # user, assistant
    content: str
    modality: str = "text"  # text, voice, video
    timestamp: float = 0.0
    image: bytes | None = None  # replay only, never re-sent
    audio: bytes | None = None  # replay only, never re-sent
    reasoning: Optional[str] = None
    is_guess: bool = False
    is_error: bool = False
    is_rate_limited: bool = False

    @classmethod
    def user(cls, content: str, modality: str = "text", **kwargs: Any) -> "Turn":
        kwargs.setdefault("timestamp", time.time())
        return cls(role=USER, content=content, modality=modality, **kwargs)

    @classmethod
    def assistant(cls, content: str, **kwargs: Any) -> "Turn":
        kwargs.setdefault("timestamp", time.time())
        return cls(role=ASSISTANT, content=content, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "type": self.modality,
            "timestamp": self.timestamp,
        }
        if self.reasoning:
            payload["reasoning"] = self.reasoning
        if self.is_guess:
            payload["isGuess"] = True
        if self.is_error:
            payload["isError"] = True
        if self.is_rate_limited:
            payload["isRateLimited"] = True
        return payload


class ConversationHistory:
    """Ordered turn log. Turns are only ever appended.

    Both the transcript and the backend projection are derived from this
    log, so its insertion order is the only ordering there is.
    """

    def __init__(self) -> None:
        self._turns: List[Turn] = []

    def append(self, turn: Turn) -> Turn:
        self._turns.append(turn)
        return turn

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def user_turn_count(self) -> int:
        return sum(1 for turn in self._turns if turn.role == USER)

    def project_for_backend(self) -> List[Dict[str, str]]:
        """(role, text) pairs for the backend. Media is never included."""
        return [
            {"role": _BACKEND_ROLES.get(turn.role, "model"), "text": turn.content}
            for turn in self._turns
        ]


def contents_from_projection(projection: List[Dict[str, str]]) -> List[Dict[str, Any]]:
    return [
        {"role": entry["role"], "parts": [{"text": entry["text"]}]}
        for entry in projection
    ]
