#!/usr/bin/env python3
"""
Guesswork Demo -- scripted games of 20 Questions against Gemini.

Run:
    python examples/demo.py

Requires GEMINI_API_KEY, or --remote pointing at a running guesswork server.
Each demo plays a fixed list of clues; when Gemini guesses, the demo answers
/yes if the guess names the secret and /no otherwise.
"""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Ensure guesswork is importable when running from the repo root.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from guesswork.backend import GeminiBackend
from guesswork.clues import Clue
from guesswork.config import get_config
from guesswork.game import GameSession, GameStatus
from guesswork.remote import RemoteBackend


DEMO_GAMES = [
    {
        "secret": "lighthouse",
        "clues": [
            "It is a building.",
            "You usually find it near the sea.",
            "It has a very bright light at the top.",
            "Ships rely on it at night.",
        ],
    },
    {
        "secret": "photosynthesis",
        "clues": [
            "It is a process, not an object.",
            "Plants do it.",
            "It needs sunlight.",
            "It produces oxygen.",
        ],
    },
]


async def play_demo(session: GameSession, game: dict) -> None:
    secret = game["secret"].lower()
    session.start()
    print(f"  [gemini] {session.state.history[0].content}")
    for clue_text in game["clues"]:
        if session.status != GameStatus.PLAYING:
            break
        print(f"  [you]    {clue_text}")
        turn = await session.submit_clue(Clue.from_text(clue_text))
        if turn is None:
            continue
        print(f"  [gemini] {turn.content}")
        while turn is not None and turn.is_guess and session.status == GameStatus.PLAYING:
            correct = secret in (session.state.last_guess or "").lower()
            print(f"  [you]    {'/yes' if correct else '/no'}")
            turn = await session.confirm_guess(correct)
            if turn is not None:
                print(f"  [gemini] {turn.content}")
            if not correct:
                break

    view = session.reasoning
    print(f"\n  Status: {session.status.value} after {session.state.rounds} rounds")
    print(f"  Confidence: {view.percent}%")


def run_demo(index: int | None = None, remote: str | None = None) -> None:
    """Run one or all demo games."""
    config = get_config()
    backend = RemoteBackend(remote) if remote else GeminiBackend.from_config(config)
    session = GameSession(backend, max_rounds=config.max_rounds)

    games = DEMO_GAMES if index is None else [DEMO_GAMES[index]]
    for i, game in enumerate(games):
        num = index if index is not None else i
        print(f"\n{'=' * 72}")
        print(f"  Demo {num + 1}: secret is '{game['secret']}'")
        print(f"{'=' * 72}\n")
        asyncio.run(play_demo(session, game))


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Play scripted 20 Questions games against Gemini.")
    parser.add_argument(
        "--game",
        "-g",
        type=int,
        choices=range(1, len(DEMO_GAMES) + 1),
        help="Run a specific demo game (1-%d)" % len(DEMO_GAMES),
    )
    parser.add_argument("--remote", default=None, help="Base URL of a running guesswork server")
    args = parser.parse_args()

    idx = (args.game - 1) if args.game else None
    run_demo(idx, args.remote)


if __name__ == "__main__":
    main()
