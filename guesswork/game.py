"""Turn orchestration for a single game of 20 Questions.

`GameSession` owns the game state and its transcript. Each clue goes through
`submit_clue`, which runs one backend round trip and applies the decision.
At most one round trip is outstanding at a time; submissions arriving in the
meantime are dropped, not queued. Every `start()` opens a new epoch so that
a response arriving after a restart is discarded instead of applied.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from guesswork.backend import Backend, Decision
from guesswork.clues import Clue
from guesswork.errors import BackendError, RateLimited
from guesswork.history import ConversationHistory, Turn
from guesswork.reasoning import ReasoningView

logger = logging.getLogger(__name__)

GREETING = (
    "I'm ready! Think of an idea, object, or concept. Give me a first clue - "
    "you can type it, say it, or even show me something through your camera."
)
INITIAL_REASONING = "Initializing deep reasoning game loop. Awaiting user context..."

VISUAL_CLUE_TEXT = "User shared a visual clue."
VOICE_CLUE_TEXT = "User shared a voice clue."

CONFIRM_YES = "Yes, you got it!"
CONFIRM_NO = "No, that's not it."


class GameStatus(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    WON = "won"
    LOST = "lost"


@dataclass
class GameState:
    status: GameStatus = GameStatus.IDLE
    rounds: int = 0
    history: ConversationHistory = field(default_factory=ConversationHistory)
    current_reasoning: str = ""
    last_guess: str = ""
    confidence: float = 0.0
    epoch: int = 0

    @property
    def finished(self) -> bool:
        return self.status in (GameStatus.WON, GameStatus.LOST)


def display_text(clue: Clue) -> str:
    if clue.text:
        return clue.text
    if clue.image:
        return VISUAL_CLUE_TEXT
    return VOICE_CLUE_TEXT


def assistant_text(decision: Decision) -> str:
    if decision.has_guess:
        return f"Is it a... {decision.guess}?"
    return decision.question


def error_turn(error: BackendError, timestamp: float) -> Turn:
    if isinstance(error, RateLimited):
        return Turn.assistant(
            f"I'm being rate limited right now. {error.retry_hint}",
            timestamp=timestamp,
            is_error=True,
            is_rate_limited=True,
        )
    return Turn.assistant(
        f"Sorry, I hit a snag: {error.message}",
        timestamp=timestamp,
        is_error=True,
    )


class GameSession:
    """State machine for one player's game.

    Args:
        backend: Anything with an async `request_decision`.
        model: Model selector passed through to the backend on every turn.
        max_rounds: Round count shown to the player. Not enforced.
        clock: Timestamp source for new turns.
    """

    def __init__(
        self,
        backend: Backend,
        model: str | None = None,
        max_rounds: int = 20,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend
        self.model = model
        self.max_rounds = max_rounds
        self.clock = clock
        self._state = GameState()
        self._in_flight = False

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def status(self) -> GameStatus:
        return self._state.status

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def reasoning(self) -> ReasoningView:
        return ReasoningView(self._state.current_reasoning, self._state.confidence)

    @property
    def awaiting_confirmation(self) -> bool:
        last = self._state.history.last()
        return bool(last and last.is_guess and self._state.status == GameStatus.PLAYING)

    def start(self) -> GameState:
        """Begin a new game from any state. Always succeeds."""
        history = ConversationHistory()
        history.append(Turn.assistant(GREETING, timestamp=self.clock()))
        self._state = GameState(
            status=GameStatus.PLAYING,
            rounds=0,
            history=history,
            current_reasoning=INITIAL_REASONING,
            last_guess="",
            confidence=0.0,
            epoch=self._state.epoch + 1,
        )
        # A request from the previous epoch may still be pending; its result is discarded
        self._in_flight = False
        logger.info("Game started epoch=%d", self._state.epoch)
        return self._state

    def can_submit(self) -> bool:
        return self._state.status == GameStatus.PLAYING and not self._in_flight

    async def submit_clue(self, clue: Clue) -> Turn | None:
        """Run one round. Returns the assistant turn, or None if the clue was dropped."""
        if not self.can_submit():
            logger.debug(
                "Clue rejected status=%s in_flight=%s", self._state.status.value, self._in_flight
            )
            return None

        state = self._state
        epoch = state.epoch
        projection = state.history.project_for_backend()
        state.history.append(
            Turn.user(
                display_text(clue),
                modality=clue.modality,
                timestamp=self.clock(),
                image=clue.image or None,
                audio=clue.audio or None,
            )
        )
        state.rounds += 1
        self._in_flight = True

        failure: BackendError | None = None
        try:
            decision = await self.backend.request_decision(projection, clue, self.model)
        except BackendError as exc:
            failure = exc
        finally:
            stale = self._is_stale(epoch)
            if not stale:
                self._in_flight = False

        if stale:
            logger.info("Discarding response from stale epoch=%d", epoch)
            return None
        if failure is not None:
            logger.warning("Turn failed round=%d: %s", state.rounds, failure.message)
            return state.history.append(error_turn(failure, self.clock()))
        return self._apply(decision)

    async def confirm_guess(self, correct: bool) -> Turn | None:
        return await self.submit_clue(Clue.from_text(CONFIRM_YES if correct else CONFIRM_NO))

    def _is_stale(self, epoch: int) -> bool:
        return self._state.epoch != epoch or self._state.status != GameStatus.PLAYING

    def _apply(self, decision: Decision) -> Turn:
        state = self._state
        turn = state.history.append(
            Turn.assistant(
                assistant_text(decision),
                timestamp=self.clock(),
                reasoning=decision.thought_process or decision.reasoning_summary or None,
                is_guess=decision.has_guess,
            )
        )
        state.current_reasoning = decision.thought_process or decision.reasoning_summary
        if decision.has_guess:
            state.last_guess = decision.guess or ""
        state.confidence = decision.reasoning_confidence
        if decision.is_correct_guess:
            state.status = GameStatus.WON
        elif decision.give_up:
            state.status = GameStatus.LOST
        logger.info(
            "Round %d applied status=%s confidence=%.2f guess=%s",
            state.rounds, state.status.value, state.confidence, decision.has_guess,
        )
        return turn
