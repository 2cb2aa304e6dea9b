"""Configuration loader for Guesswork."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict
import os
import yaml

from guesswork.errors import ConfigError

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default.yaml"
USER_CONFIG_PATH = Path.home() / ".config" / "guesswork" / "config.yaml"

DEFAULT_MODEL = "gemini-3-pro-preview"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    default_path: Path | None = None,
    user_path: Path | None = None,
    environ: Dict[str, str] | None = None,
) -> Dict[str, Any]:
    default_path = default_path or DEFAULT_CONFIG_PATH
    user_path = user_path or USER_CONFIG_PATH
    env = os.environ if environ is None else environ

    data: Dict[str, Any] = {}
    if default_path.exists():
        data = yaml.safe_load(default_path.read_text()) or {}
    if user_path.exists():
        override = yaml.safe_load(user_path.read_text()) or {}
        data = _deep_merge(data, override)

    # Environment overrides - Server
    host = env.get("GUESSWORK_HOST")
    port = env.get("GUESSWORK_PORT")
    if host:
        data.setdefault("server", {})["host"] = host
    if port:
        try:
            data.setdefault("server", {})["port"] = int(port)
        except ValueError:
            pass

    # Environment overrides - Gemini
    model = env.get("GUESSWORK_MODEL")
    if model:
        data.setdefault("gemini", {})["model"] = model

    timeout = env.get("GUESSWORK_TIMEOUT")
    if timeout:
        try:
            data.setdefault("gemini", {})["timeout_seconds"] = float(timeout)
        except ValueError:
            pass

    # The secret is only ever taken from the environment, never from YAML on disk
    api_key = env.get("GEMINI_API_KEY") or env.get("API_KEY")
    if api_key:
        data["api_key"] = api_key

    # Environment overrides - Audit log
    audit_path = env.get("GUESSWORK_AUDIT_PATH")
    if audit_path:
        data.setdefault("audit", {})["path"] = audit_path

    return data


@dataclass
class Config:
    raw: Dict[str, Any]

    def __repr__(self) -> str:
        # Keep the key out of tracebacks and logs
        redacted = {k: v for k, v in self.raw.items() if k != "api_key"}
        return f"Config(raw={redacted!r})"

    @property
    def server(self) -> Dict[str, Any]:
        return self.raw.get("server", {})

    @property
    def gemini(self) -> Dict[str, Any]:
        return self.raw.get("gemini", {})

    @property
    def game(self) -> Dict[str, Any]:
        return self.raw.get("game", {})

    @property
    def audit(self) -> Dict[str, Any]:
        return self.raw.get("audit", {})

    @property
    def api_key(self) -> str:
        return str(self.raw.get("api_key") or "")

    @property
    def base_url(self) -> str:
        return str(self.gemini.get("base_url", "https://generativelanguage.googleapis.com/v1beta"))

    @property
    def default_model(self) -> str:
        return str(self.gemini.get("model") or DEFAULT_MODEL)

    @property
    def timeout_seconds(self) -> float:
        """Timeout for one backend round trip in seconds. Default 2 minutes."""
        return float(self.gemini.get("timeout_seconds", 120))

    @property
    def thinking_budget(self) -> int:
        return int(self.gemini.get("thinking_budget", 32768))

    @property
    def max_rounds(self) -> int:
        return int(self.game.get("max_rounds", 20))

    @property
    def audit_path(self) -> Path | None:
        path = self.audit.get("path")
        return Path(path).expanduser() if path else None

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigError("Missing GEMINI_API_KEY (or API_KEY) environment variable")
        return self.api_key


def get_config() -> Config:
    return Config(load_config())
