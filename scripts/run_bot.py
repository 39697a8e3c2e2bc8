#!/usr/bin/env python3
"""
Command-line entry point for the Grid news bot.

Reads configuration from the environment (and a .env file if present).

Usage:
    python scripts/run_bot.py run            # post now, then every UPDATE_FREQUENCY minutes;
                                             # questions typed on the console use the posted articles
    python scripts/run_bot.py once           # one fetch -> enhance -> post cycle
    python scripts/run_bot.py ask "What happened?"
    python scripts/run_bot.py image "a solar eclipse over the city"
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog
from dotenv import load_dotenv

from gridclient.config import Settings
from gridclient.errors import ConfigError
from gridclient.feeds import FeedReader
from newsbot.chat import ChatHandler, RecentArticles, image_reply
from newsbot.content import create_pipeline
from newsbot.cycle import NewsCycle
from newsbot.discord import DiscordWebhookPoster

logger = structlog.get_logger()


def configure_logging(verbose: bool):
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if verbose else logging.INFO),
    )


async def chat_console(handler: ChatHandler):
    """Answer lines typed on stdin until EOF, sharing the cycle's recent articles."""
    loop = asyncio.get_running_loop()
    print("Type a question (or 'generate an image of ...'); Ctrl-D to stop chatting.")
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            return
        for i, part in enumerate(await handler.handle_message(line, user_id="console")):
            print(part if i == 0 else f"(continued) {part}")


async def run_cycle(settings: Settings, forever: bool):
    pipeline = create_pipeline(settings)
    reader = FeedReader()
    poster = DiscordWebhookPoster(settings.discord_webhook_url)
    cycle = NewsCycle(pipeline, reader, poster, settings)

    try:
        if forever:
            if sys.stdin.isatty():
                handler = ChatHandler(pipeline, settings, cycle.recent)
                await asyncio.gather(cycle.run_forever(), chat_console(handler))
            else:
                await cycle.run_forever()
        else:
            post = await cycle.run_once()
            if post is None:
                print("No article posted.")
            else:
                print(f"✓ Posted: {post.title}")
    finally:
        await reader.close()
        await poster.close()
        await pipeline.close()


async def ask(settings: Settings, message: str):
    pipeline = create_pipeline(settings)
    try:
        handler = ChatHandler(pipeline, settings, RecentArticles())
        for i, part in enumerate(await handler.handle_message(message, user_id="cli")):
            print(part if i == 0 else f"(continued) {part}")
    finally:
        await pipeline.close()


async def image(settings: Settings, topic: str):
    pipeline = create_pipeline(settings)
    try:
        prompt = await pipeline.generate_image_prompt(topic)
        print(image_reply(topic, await pipeline.generate_image(topic, prompt)))
    finally:
        await pipeline.close()


def main():
    parser = argparse.ArgumentParser(description="AI Power Grid news bot")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Post on a schedule and answer questions typed on the console")
    sub.add_parser("once", help="Run a single news cycle")
    ask_parser = sub.add_parser("ask", help="Ask a question")
    ask_parser.add_argument("question")
    image_parser = sub.add_parser("image", help="Generate an image for a topic")
    image_parser.add_argument("topic")

    args = parser.parse_args()

    load_dotenv()
    configure_logging(args.verbose)
    settings = Settings.from_env()

    try:
        if args.command in ("run", "once"):
            asyncio.run(run_cycle(settings, forever=args.command == "run"))
        elif args.command == "ask":
            asyncio.run(ask(settings, args.question))
        elif args.command == "image":
            asyncio.run(image(settings, args.topic))
    except ConfigError as e:
        logger.error("config_error", error=str(e))
        print(f"✗ Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
