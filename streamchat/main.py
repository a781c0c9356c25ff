"""Command-line entry point: stream one chat completion and print the result.

Usage:
  streamchat "Say hi"
  streamchat "List three colors as JSON" --json
  streamchat "Think, then answer" --xml scratch answer --stream
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from streamchat.config import Config, get_config
from streamchat.core.errors import ChatError
from streamchat.core.logging_config import setup_logging
from streamchat.models.client import ChatClient
from streamchat.models.tags import pretty_response

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="streamchat", description="Stream a chat completion")
    parser.add_argument("prompt", help="User prompt")
    parser.add_argument("--config", default=None, help="YAML config path")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--json", action="store_true", help="Parse the answer as JSON")
    mode.add_argument("--xml", nargs="+", metavar="TAG", help="Extract these tags from the answer")
    parser.add_argument("--prefill", default="", help="Seed text for the assistant answer")
    parser.add_argument("--max-tokens", type=int, default=None)
    parser.add_argument("--temperature", type=float, default=None)
    parser.add_argument("--timeout", type=float, default=None, help="Overall seconds")
    parser.add_argument("--stream", action="store_true", help="Print progress snapshots to stderr")
    return parser


def format_result(result: Any) -> str:
    if isinstance(result, str):
        result = pretty_response(result)
        if isinstance(result, str):
            return result
    return json.dumps(result, indent=2, ensure_ascii=False)


def _print_progress(text: str, sequence: int | None) -> None:
    label = "final" if sequence is None else f"#{sequence}"
    print(f"--- {label} ---\n{text}", file=sys.stderr, flush=True)


async def run(args: argparse.Namespace, config: Config) -> Any:
    client = ChatClient.from_config(config)
    return await client.chat(
        args.prompt,
        prefill=args.prefill,
        max_tokens=args.max_tokens or config.chat.max_tokens,
        temperature=args.temperature if args.temperature is not None else config.chat.temperature,
        timeout=args.timeout,
        json=args.json,
        xml=args.xml,
        on_update=_print_progress if args.stream else None,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config(args.config)
    setup_logging(level=config.logging.level, use_json=config.logging.json_format)
    try:
        result = asyncio.run(run(args, config))
    except ChatError as e:
        logger.error("chat failed: %s", e)
        return 1
    print(format_result(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
