"""Command line entrypoint: ``agent-chat [--auto-approve] [--cwd DIR]``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from agent_chat import __version__
from agent_chat.log_utils import build_log_config, configure_logging
from agent_chat.server import serve
from agent_chat.settings import load_settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-chat",
        description="Bridge an editor to ACP agents over JSON-RPC on stdio.",
    )
    parser.add_argument(
        "--auto-approve",
        action="store_true",
        default=None,
        help="Approve agent permission requests without asking (prefers allow_always).",
    )
    parser.add_argument("--cwd", type=str, help="Working directory handed to new agent sessions.")
    parser.add_argument("--log-level", type=str, help="Log level name or number (overrides AGENT_CHAT_LOG_LEVEL).")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def main(argv: list[str]) -> int:
    args = build_parser().parse_args(argv[1:])
    configure_logging(build_log_config(level=args.log_level))
    settings = load_settings().with_overrides(auto_approve=args.auto_approve, cwd=args.cwd)
    logger.info("Starting agent-chat %s", __version__)
    return await serve(settings)


def run() -> None:
    try:
        raise SystemExit(asyncio.run(main(sys.argv)))
    except KeyboardInterrupt:
        raise SystemExit(130)
