"""Command line interface for Guesswork."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, TextIO

from guesswork.backend import Backend, GeminiBackend
from guesswork.clues import Clue, encode_clue, frame_from_image, is_submittable
from guesswork.config import Config, get_config
from guesswork.errors import ClueError, ConfigError
from guesswork.game import GameSession, GameStatus
from guesswork.history import Turn
from guesswork.remote import RemoteBackend

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  <text>            send a text clue
  /image PATH       show an image file as a visual clue
  /voice PATH       send an audio file as a voice clue
  /yes, /no         answer a guess
  /reasoning        show the current reasoning and confidence
  /restart          start a new game
  /quit             leave"""


def _print(obj: Any) -> None:
    print(json.dumps(obj, indent=2))


def _build_backend(args: argparse.Namespace, config: Config) -> Backend:
    if getattr(args, "remote", None):
        return RemoteBackend(args.remote, timeout=config.timeout_seconds)
    return GeminiBackend.from_config(config)


def _format_turn(turn: Turn) -> str:
    speaker = "you" if turn.role == "user" else "gemini"
    line = f"[{speaker}] {turn.content}"
    if turn.is_guess:
        line += "  (answer with /yes or /no)"
    return line


def _clue_from_command(line: str) -> Clue | None:
    """Parse one line of player input. None means nothing to send."""
    command, _, arg = line.strip().partition(" ")
    if command == "/image":
        return encode_clue(frame=frame_from_image(Path(arg.strip()).read_bytes()))
    if command == "/voice":
        return encode_clue(recording=Path(arg.strip()).read_bytes())
    if not is_submittable(line):
        return None
    return Clue.from_text(line)


async def play(
    session: GameSession,
    read_line: Callable[[str], str],
    out: TextIO = sys.stdout,
) -> GameSession:
    """Interactive loop. Returns when the player quits or input ends."""

    def emit(text: str) -> None:
        print(text, file=out)

    session.start()
    emit(_format_turn(session.state.history[0]))
    while True:
        state = session.state
        prompt = f"round {state.rounds}/{session.max_rounds}> "
        try:
            line = await asyncio.to_thread(read_line, prompt)
        except EOFError:
            break
        command = line.strip()
        if command in ("/quit", "/exit"):
            break
        if command == "/help":
            emit(HELP_TEXT)
            continue
        if command == "/restart":
            session.start()
            emit(_format_turn(session.state.history[0]))
            continue
        if command == "/reasoning":
            emit(session.reasoning.render())
            continue
        if state.status != GameStatus.PLAYING:
            emit("The game is over. Type /restart to play again or /quit to leave.")
            continue

        if command in ("/yes", "/no"):
            turn = await session.confirm_guess(command == "/yes")
        else:
            try:
                clue = _clue_from_command(line)
            except ClueError as exc:
                # Unusable captures are dropped, the round is not spent
                logger.info("Clue dropped: %s", exc)
                emit(f"(clue dropped: {exc})")
                continue
            except OSError as exc:
                emit(f"(could not read file: {exc})")
                continue
            if clue is None:
                continue
            turn = await session.submit_clue(clue)

        if turn is not None:
            emit(_format_turn(turn))
        if session.status == GameStatus.WON:
            emit(f"Gemini won! It identified \"{session.state.last_guess}\" in {session.state.rounds} rounds.")
        elif session.status == GameStatus.LOST:
            emit("Gemini gave up. You stumped it!")
    return session


def cmd_play(args: argparse.Namespace) -> None:
    config = get_config()
    session = GameSession(
        _build_backend(args, config),
        model=args.model,
        max_rounds=config.max_rounds,
    )
    print(HELP_TEXT)
    asyncio.run(play(session, input))


def cmd_ask(args: argparse.Namespace) -> None:
    config = get_config()
    backend = _build_backend(args, config)
    frame = frame_from_image(Path(args.image).read_bytes()) if args.image else None
    recording = Path(args.voice).read_bytes() if args.voice else None
    clue = encode_clue(text=args.clue or "", frame=frame, recording=recording)
    session = GameSession(backend, model=args.model)
    session.start()
    turn = asyncio.run(session.submit_clue(clue))
    state = session.state
    _print({
        "status": state.status.value,
        "turn": turn.to_dict() if turn else None,
        "reasoning": session.reasoning.reasoning,
        "confidence": session.reasoning.confidence,
        "last_guess": state.last_guess,
    })


def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn
    from guesswork.server import create_app

    config = get_config()
    config.require_api_key()
    host = args.host or config.server.get("host", "127.0.0.1")
    port = int(args.port or config.server.get("port", 8099))
    uvicorn.run(create_app(config), host=host, port=port, reload=False)


def cmd_config(args: argparse.Namespace) -> None:
    config = get_config()
    raw = {k: v for k, v in config.raw.items() if k != "api_key"}
    raw["api_key_set"] = bool(config.api_key)
    _print(raw)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="guesswork")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    play_cmd = sub.add_parser("play", help="Play an interactive game in the terminal")
    play_cmd.add_argument("--model", default=None)
    play_cmd.add_argument("--remote", default=None, help="Base URL of a running guesswork server")

    ask = sub.add_parser("ask", help="Send one clue to a fresh game and print the decision")
    ask.add_argument("clue", nargs="?", default="")
    ask.add_argument("--image", default=None)
    ask.add_argument("--voice", default=None)
    ask.add_argument("--model", default=None)
    ask.add_argument("--remote", default=None)

    serve = sub.add_parser("serve", help="Run the process-turn proxy server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    sub.add_parser("config", help="Show the effective configuration")
    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.command == "play":
            cmd_play(args)
        elif args.command == "ask":
            cmd_ask(args)
        elif args.command == "serve":
            cmd_serve(args)
        elif args.command == "config":
            cmd_config(args)
        else:
            parser.print_help()
    except ConfigError as exc:
        print(f"guesswork: {exc}", file=sys.stderr)
        raise SystemExit(2)
    except ClueError as exc:
        print(f"guesswork: clue dropped: {exc}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
