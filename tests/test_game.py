"""Tests for the GameSession state machine."""
import asyncio
import unittest

from guesswork.backend import Decision
from guesswork.clues import Clue
from guesswork.errors import BackendFailure, MalformedResponse, RateLimited
from guesswork.game import (
    CONFIRM_NO,
    CONFIRM_YES,
    GREETING,
    VISUAL_CLUE_TEXT,
    VOICE_CLUE_TEXT,
    GameSession,
    GameStatus,
)


class ScriptedBackend:
    """Returns (or raises) the queued outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def request_decision(self, projection, clue, model=None):
        self.calls.append((projection, clue, model))
        outcome = self.outcomes.pop(0) if self.outcomes else Decision(question="Next?")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class GatedBackend:
    """Holds every request until the gate opens."""

    def __init__(self, decision=None):
        self.gate = asyncio.Event()
        self.decision = decision or Decision(question="Is it alive?")
        self.calls = 0

    async def request_decision(self, projection, clue, model=None):
        self.calls += 1
        await self.gate.wait()
        return self.decision


def _session(backend, model=None):
    ticks = iter(range(1, 10_000))
    return GameSession(backend, model=model, clock=lambda: float(next(ticks)))


class TestStart(unittest.TestCase):
    def test_new_session_is_idle(self):
        session = _session(ScriptedBackend())
        self.assertEqual(session.status, GameStatus.IDLE)

    def test_start_resets_everything(self):
        session = _session(ScriptedBackend())
        state = session.start()
        self.assertEqual(state.status, GameStatus.PLAYING)
        self.assertEqual(state.rounds, 0)
        self.assertEqual(len(state.history), 1)
        self.assertEqual(state.history[0].role, "assistant")
        self.assertEqual(state.history[0].content, GREETING)
        self.assertEqual(state.confidence, 0.0)
        self.assertEqual(state.epoch, 1)

    def test_start_from_terminal_state(self):
        backend = ScriptedBackend(Decision(guess="cat", is_correct_guess=True, reasoning_confidence=0.9))
        session = _session(backend)
        session.start()
        asyncio.run(session.submit_clue(Clue.from_text("meow")))
        self.assertEqual(session.status, GameStatus.WON)

        state = session.start()
        self.assertEqual(state.status, GameStatus.PLAYING)
        self.assertEqual(state.rounds, 0)
        self.assertEqual(len(state.history), 1)
        self.assertEqual(state.confidence, 0.0)
        self.assertEqual(state.last_guess, "")
        self.assertEqual(state.epoch, 2)


class TestSubmitClue(unittest.IsolatedAsyncioTestCase):
    async def test_rejected_before_start(self):
        backend = ScriptedBackend()
        session = _session(backend)
        self.assertIsNone(await session.submit_clue(Clue.from_text("cat")))
        self.assertEqual(backend.calls, [])
        self.assertEqual(session.state.rounds, 0)

    async def test_round_counter_tracks_accepted_clues(self):
        session = _session(ScriptedBackend())
        session.start()
        for n in range(1, 6):
            await session.submit_clue(Clue.from_text(f"clue {n}"))
            self.assertEqual(session.state.rounds, n)
            self.assertEqual(session.state.history.user_turn_count(), n)

    async def test_backend_sees_history_before_the_new_clue(self):
        backend = ScriptedBackend(Decision(question="Is it alive?"), Decision(question="Is it big?"))
        session = _session(backend, model="2.5-flash")
        session.start()
        await session.submit_clue(Clue.from_text("cat"))
        await session.submit_clue(Clue.from_text("yes"))

        first_projection, first_clue, model = backend.calls[0]
        self.assertEqual(first_projection, [{"role": "model", "text": GREETING}])
        self.assertEqual(first_clue.text, "cat")
        self.assertEqual(model, "2.5-flash")

        second_projection, _, _ = backend.calls[1]
        self.assertEqual(
            second_projection,
            [
                {"role": "model", "text": GREETING},
                {"role": "user", "text": "cat"},
                {"role": "model", "text": "Is it alive?"},
            ],
        )

    async def test_question_turn_keeps_playing(self):
        decision = Decision(question="Is it alive?", reasoning_summary="broad", reasoning_confidence=0.1)
        session = _session(ScriptedBackend(decision))
        session.start()
        turn = await session.submit_clue(Clue.from_text("cat"))

        self.assertEqual(session.status, GameStatus.PLAYING)
        self.assertEqual(turn.content, "Is it alive?")
        self.assertFalse(turn.is_guess)
        self.assertEqual(turn.reasoning, "broad")
        self.assertEqual(session.state.history.last(), turn)
        self.assertEqual(session.state.confidence, 0.1)

    async def test_guess_turn(self):
        decision = Decision(question="?", guess="cat", reasoning_confidence=0.7, thought_process="whiskers")
        session = _session(ScriptedBackend(decision))
        session.start()
        turn = await session.submit_clue(Clue.from_text("meows"))

        self.assertEqual(turn.content, "Is it a... cat?")
        self.assertTrue(turn.is_guess)
        self.assertTrue(session.awaiting_confirmation)
        self.assertEqual(session.state.last_guess, "cat")
        self.assertEqual(session.state.current_reasoning, "whiskers")
        self.assertEqual(session.status, GameStatus.PLAYING)

    async def test_null_guess_string_renders_question(self):
        session = _session(ScriptedBackend(Decision(question="Is it red?", guess="null")))
        session.start()
        turn = await session.submit_clue(Clue.from_text("fruit"))
        self.assertEqual(turn.content, "Is it red?")
        self.assertFalse(turn.is_guess)
        self.assertEqual(session.state.last_guess, "")

    async def test_last_guess_is_sticky(self):
        backend = ScriptedBackend(Decision(guess="cat"), Decision(question="Is it wild?"))
        session = _session(backend)
        session.start()
        await session.submit_clue(Clue.from_text("meows"))
        await session.confirm_guess(False)
        self.assertEqual(session.state.last_guess, "cat")
        self.assertEqual(backend.calls[1][1].text, CONFIRM_NO)

    async def test_correct_guess_wins(self):
        backend = ScriptedBackend(
            Decision(guess="cat"),
            Decision(guess="cat", is_correct_guess=True, reasoning_confidence=1.0),
        )
        session = _session(backend)
        session.start()
        await session.submit_clue(Clue.from_text("meows"))
        await session.confirm_guess(True)
        self.assertEqual(backend.calls[1][1].text, CONFIRM_YES)
        self.assertEqual(session.status, GameStatus.WON)
        self.assertEqual(session.state.last_guess, "cat")

    async def test_confirmation_text_alone_does_not_end_game(self):
        session = _session(ScriptedBackend(Decision(question="Hmm, is it a tiger?")))
        session.start()
        await session.submit_clue(Clue.from_text(CONFIRM_YES))
        self.assertEqual(session.status, GameStatus.PLAYING)

    async def test_give_up_loses(self):
        session = _session(ScriptedBackend(Decision(question="I give up.", give_up=True)))
        session.start()
        await session.submit_clue(Clue.from_text("qualia"))
        self.assertEqual(session.status, GameStatus.LOST)

    async def test_correct_guess_beats_give_up(self):
        session = _session(ScriptedBackend(Decision(guess="cat", is_correct_guess=True, give_up=True)))
        session.start()
        await session.submit_clue(Clue.from_text("meows"))
        self.assertEqual(session.status, GameStatus.WON)

    async def test_terminal_state_rejects_clues(self):
        backend = ScriptedBackend(Decision(give_up=True))
        session = _session(backend)
        session.start()
        await session.submit_clue(Clue.from_text("x"))
        history_len = len(session.state.history)

        self.assertIsNone(await session.submit_clue(Clue.from_text("y")))
        self.assertEqual(len(backend.calls), 1)
        self.assertEqual(session.state.rounds, 1)
        self.assertEqual(len(session.state.history), history_len)

    async def test_media_clue_display_text(self):
        session = _session(ScriptedBackend())
        session.start()
        await session.submit_clue(Clue(image=b"jpeg"))
        await session.submit_clue(Clue(audio=b"webm"))
        user_turns = [t for t in session.state.history if t.role == "user"]
        self.assertEqual(user_turns[0].content, VISUAL_CLUE_TEXT)
        self.assertEqual(user_turns[0].modality, "video")
        self.assertEqual(user_turns[0].image, b"jpeg")
        self.assertEqual(user_turns[1].content, VOICE_CLUE_TEXT)
        self.assertEqual(user_turns[1].modality, "voice")

    async def test_confidence_clamped_on_display(self):
        session = _session(ScriptedBackend(Decision(question="?", reasoning_confidence=1.4),
                                           Decision(question="?", reasoning_confidence=-0.2)))
        session.start()
        await session.submit_clue(Clue.from_text("a"))
        self.assertEqual(session.reasoning.confidence, 1.0)
        await session.submit_clue(Clue.from_text("b"))
        self.assertEqual(session.reasoning.confidence, 0.0)


class TestFailures(unittest.IsolatedAsyncioTestCase):
    async def test_malformed_response_appends_error_turn(self):
        session = _session(ScriptedBackend(MalformedResponse("Backend returned invalid JSON")))
        session.start()
        turn = await session.submit_clue(Clue.from_text("cat"))

        state = session.state
        self.assertTrue(turn.is_error)
        self.assertEqual(turn.role, "assistant")
        self.assertIn("invalid JSON", turn.content)
        self.assertEqual(state.status, GameStatus.PLAYING)
        self.assertEqual(state.rounds, 1)
        self.assertEqual([t.role for t in state.history], ["assistant", "user", "assistant"])
        self.assertEqual(state.confidence, 0.0)
        self.assertEqual(state.last_guess, "")
        self.assertFalse(session.in_flight)

    async def test_rate_limit_turn_carries_hint(self):
        error = RateLimited("Rate limited", retry_hint="Please wait about 5 seconds and try again.")
        session = _session(ScriptedBackend(error, Decision(question="Is it alive?")))
        session.start()
        turn = await session.submit_clue(Clue.from_text("cat"))
        self.assertTrue(turn.is_rate_limited)
        self.assertIn("Please wait about 5 seconds", turn.content)

        # The player retries by resubmitting
        retry = await session.submit_clue(Clue.from_text("cat"))
        self.assertEqual(retry.content, "Is it alive?")
        self.assertEqual(session.state.rounds, 2)

    async def test_backend_failure_keeps_status(self):
        session = _session(ScriptedBackend(BackendFailure("upstream down", status_code=503)))
        session.start()
        turn = await session.submit_clue(Clue.from_text("cat"))
        self.assertIn("upstream down", turn.content)
        self.assertFalse(turn.is_rate_limited)
        self.assertEqual(session.status, GameStatus.PLAYING)


class TestInFlightGuard(unittest.IsolatedAsyncioTestCase):
    async def test_second_submission_while_loading_is_dropped(self):
        backend = GatedBackend()
        session = _session(backend)
        session.start()

        first = asyncio.create_task(session.submit_clue(Clue.from_text("cat")))
        await asyncio.sleep(0)
        self.assertTrue(session.in_flight)

        self.assertIsNone(await session.submit_clue(Clue.from_text("dog")))
        self.assertEqual(session.state.rounds, 1)
        self.assertEqual(session.state.history.user_turn_count(), 1)
        self.assertEqual(backend.calls, 1)

        backend.gate.set()
        turn = await first
        self.assertEqual(turn.content, "Is it alive?")
        self.assertFalse(session.in_flight)
        self.assertEqual(len(session.state.history), 3)

    async def test_response_after_restart_is_discarded(self):
        backend = GatedBackend(Decision(guess="cat", is_correct_guess=True))
        session = _session(backend)
        session.start()

        pending = asyncio.create_task(session.submit_clue(Clue.from_text("cat")))
        await asyncio.sleep(0)
        session.start()
        self.assertFalse(session.in_flight)

        backend.gate.set()
        self.assertIsNone(await pending)
        state = session.state
        self.assertEqual(state.status, GameStatus.PLAYING)
        self.assertEqual(state.epoch, 2)
        self.assertEqual(len(state.history), 1)
        self.assertEqual(state.rounds, 0)
        self.assertEqual(state.last_guess, "")


if __name__ == "__main__":
    unittest.main()
