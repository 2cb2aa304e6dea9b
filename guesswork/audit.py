"""JSONL audit trail of turns served by the proxy endpoint."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List
import json
import time

from guesswork.errors import BackendError


@dataclass
class AuditLog:
    path: Path

    def record_turn(
        self,
        *,
        model: str | None,
        modality: str,
        history_turns: int,
        duration_ms: float,
        error: BackendError | None = None,
    ) -> None:
        data: Dict[str, Any] = {
            "model": model,
            "modality": modality,
            "history_turns": history_turns,
            "duration_ms": round(duration_ms, 1),
        }
        if error is not None:
            data["error_kind"] = error.__class__.__name__
        self._append("turn_failed" if error is not None else "turn_ok", data)

    def entries(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        lines = self.path.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]

    def _append(self, event: str, data: Dict[str, Any]) -> None:
        record = {"timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"), "event": event, **data}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record) + "\n")
