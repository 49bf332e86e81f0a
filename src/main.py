"""Command-line entrypoint: route questions and print decisions as JSON.

Usage:
    python -m src.main "total tonnage for january"
    printf 'question one\\nquestion two\\n' | python -m src.main
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from src.app import create_app
from src.config.logging import configure_logging
from src.config.settings import load_settings
from src.sql.safety import QuerySafetyError

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="python -m src.main", description="Route mining operations questions.")
    parser.add_argument("question", nargs="*", help="question text (read from stdin lines when omitted)")
    parser.add_argument("--user", default="cli", help="user id for follow-up context")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Route each question in order, sharing follow-up context between them."""

    args = _parse_args(argv)
    load_dotenv()
    settings = load_settings()
    configure_logging(settings.log_level)

    app = create_app(settings)
    questions = [" ".join(args.question)] if args.question else [line.strip() for line in sys.stdin if line.strip()]

    status = 0
    for question in questions:
        try:
            decision = await app.pipeline.route_question(question, user_id=args.user)
        except QuerySafetyError as exc:
            logger.error("query rejected reason=%s", exc)
            print(json.dumps({"error": "query rejected", "reason": str(exc)}))
            status = 1
            continue
        print(decision.model_dump_json(exclude_none=True))
    return status


def run() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
