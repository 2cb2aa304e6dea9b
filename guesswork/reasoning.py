"""Read-only view of the latest reasoning text and confidence."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

PLACEHOLDER = "Thinking process will appear here..."


def clamp_confidence(value: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return min(1.0, max(0.0, number))


@dataclass(frozen=True)
class ReasoningView:
    reasoning: str = ""
    confidence: float = 0.0

    def __post_init__(self) -> None:
        # Display-side clamp, independent of what the backend adapter let through
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))

    @property
    def is_empty(self) -> bool:
        return not self.reasoning.strip()

    @property
    def percent(self) -> int:
        return int(round(self.confidence * 100))

    def lines(self) -> List[str]:
        if self.is_empty:
            return []
        return self.reasoning.split("\n")

    def render(self, width: int = 20) -> str:
        filled = int(round(self.confidence * width))
        bar = "#" * filled + "-" * (width - filled)
        header = f"CONFIDENCE [{bar}] {self.percent}%"
        body = "\n".join(f"> {line}" for line in self.lines()) or PLACEHOLDER
        return f"{header}\n{body}"
