"""Quest Generator: launcher. Serves the HTTP API or runs a terminal dialog."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


async def chat(mode: str) -> None:
    """Drive one session from stdin until EOF or /quit."""
    from quest_generator.config import build_llm, load_settings
    from quest_generator.export import dump_quests
    from quest_generator.pipeline import SessionError, SessionManager, display_text

    settings = load_settings()
    session = SessionManager(
        build_llm(settings),
        profile=settings.profile,
        player_name=settings.player_name,
        reply_timeout=settings.reply_timeout,
    )

    reply = await session.start(mode)
    print(f"\n{display_text(reply.content)}\n")
    while True:
        try:
            text = input("> ")
        except EOFError:
            break
        if text.strip() in ("/quit", "/exit"):
            break
        try:
            reply = await session.submit(text)
        except SessionError as e:
            print(f"! {e}")
            continue
        print(f"\n{display_text(reply.content)}\n")

        snap = session.snapshot()
        for failure in snap.failures:
            print(f"! quest #{failure.index + 1} rejected: {'; '.join(failure.errors)}")
        if snap.phase == "generated" and snap.quests:
            print(f"Generated {len(snap.quests)} quests ({snap.total_exp} EXP total):")
            print(dump_quests(snap.quests))
            print()


def main():
    parser = argparse.ArgumentParser(description="Quest Generator launcher")
    parser.add_argument("--chat", choices=["day", "week"], default=None,
                        help="Run an interactive terminal dialog instead of the server")
    parser.add_argument("--reload", action="store_true",
                        help="Restart the server on code changes")
    parser.add_argument("--log-level", default="info",
                        choices=["debug", "info", "warning", "error"],
                        help="Logging level (default: info)")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.chat:
        try:
            asyncio.run(chat(args.chat))
        except KeyboardInterrupt:
            print("\nShutting down...")
        sys.exit(0)

    print(f"Starting backend on http://localhost:{PORT} ...")
    uvicorn.run(
        "backend.app:app",
        host=HOST,
        port=int(PORT),
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
