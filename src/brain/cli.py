"""
Console host for the router.

Loads .env, configures logging, validates configuration, then answers either
the messages given on the command line or lines read from stdin. Conversation
history is kept in memory for the session only.

Usage:
    dual-brain "what's on my calendar today?"
    dual-brain --interactive
"""

import asyncio
import sys
from typing import Iterable, List, Optional, TextIO

from shared.config import BrainConfig, load_env
from shared.logging_config import configure_logging

from .orchestrator import DualBrainOrchestrator
from .state import MediaResult, RouteResult, Turn

HISTORY_LIMIT = 20


def render(result: RouteResult) -> str:
    """Text shown on the console for a route result."""
    if isinstance(result, MediaResult):
        return result.message or ("[image payload]" if result.image_base64 else "[media payload]")
    return result


async def converse(
    brain: DualBrainOrchestrator,
    messages: Iterable[str],
    out: TextIO = sys.stdout
) -> List[Turn]:
    """Route each non-empty message in order and print the replies."""
    history: List[Turn] = []
    for raw in messages:
        message = raw.strip()
        if not message:
            continue
        reply = render(await brain.route(message, history))
        print(reply, file=out)
        history.extend([Turn(role="user", content=message), Turn(role="assistant", content=reply)])
        del history[:-HISTORY_LIMIT]
    return history


async def run(messages: Iterable[str], config: Optional[BrainConfig] = None) -> None:
    brain = DualBrainOrchestrator(config=config)
    try:
        await converse(brain, messages)
    finally:
        await brain.close()


def main(argv: Optional[List[str]] = None) -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Dual-brain message router")
    parser.add_argument("messages", nargs="*", help="Messages to route, in order")
    parser.add_argument("--interactive", action="store_true", help="Read messages from stdin")
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO)")

    args = parser.parse_args(argv)

    logger = configure_logging("dual-brain", args.log_level, stream=sys.stderr)
    load_env(args.env_file)
    config = BrainConfig()
    config.validate_or_exit("dual-brain")

    messages = sys.stdin if args.interactive or not args.messages else args.messages
    logger.info("cli_started", interactive=messages is sys.stdin)
    asyncio.run(run(messages, config))


if __name__ == "__main__":
    main()
