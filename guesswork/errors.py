"""Error types for Guesswork."""
from __future__ import annotations


class GuessworkError(Exception):
    """Base class for every failure raised by this package."""


class ConfigError(GuessworkError):
    """Configuration is missing or invalid at startup."""


class ClueError(GuessworkError):
    """A capture could not be turned into a clue. The clue is simply dropped."""


class CaptureNotReady(ClueError):
    """The capture surface reported zero dimensions for a still frame."""


class EmptyRecording(ClueError):
    """A voice recording finished without accumulating any bytes."""


class BackendError(GuessworkError):
    """A backend round trip failed. Shown to the player as an error turn."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MalformedResponse(BackendError):
    """The backend answered with something that is not a JSON decision."""


class RateLimited(BackendError):
    """The backend is throttling requests."""

    def __init__(self, message: str, retry_hint: str) -> None:
        super().__init__(message)
        self.retry_hint = retry_hint


class BackendFailure(BackendError):
    """Catch-all transport or upstream failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
