"""Interactive client entry point: arguments, config, logging, and the session run."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from steer.client.line_source import create_line_source
from steer.client.session import Session, client_version
from steer.config import ConfigError, SteerConfig, has_api_key, load_config, load_environment, write_default_config
from steer.log_utils import build_log_config, configure_logging, log_event

logger = logging.getLogger(__name__)


async def run_client(config: SteerConfig) -> int:
    session = Session(config)
    line_source = create_line_source(session.input)
    reader = asyncio.create_task(line_source.run())

    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGTERM, session.input.request_exit)

    try:
        await session.start()
        return 0
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGTERM)
        await session.cleanup()
        reader.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reader


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="steer", description="Interactive agent client with mid-turn interrupts.")
    parser.add_argument("--config", type=str, help="Path to a JSON config file (default: steer.json lookup).")
    parser.add_argument("--init", action="store_true", help="Write a default steer.json to the current directory and exit.")
    parser.add_argument("--no-key-check", action="store_true", help="Skip the ANTHROPIC_API_KEY check.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {client_version()}")
    return parser


async def main(argv: list[str]) -> int:
    args = _build_parser().parse_args(argv[1:])

    if args.init:
        try:
            path = write_default_config()
        except ConfigError as exc:
            print(f"✗ {exc}", file=sys.stderr)
            return 1
        print(f"✓ Wrote {path}")
        return 0

    configure_logging(build_log_config())
    load_environment()

    if not args.no_key_check and not has_api_key():
        print("✗ ANTHROPIC_API_KEY is not set.", file=sys.stderr)
        print("  Export it or add it to a .env file, then run steer again.", file=sys.stderr)
        return 1

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 1

    log_event(logger, "client.start", version=client_version(), model=config.model)
    try:
        return await run_client(config)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Fatal error")
        print(f"✗ Fatal error: {exc}", file=sys.stderr)
        return 1


def cli() -> None:
    try:
        raise SystemExit(asyncio.run(main(sys.argv)))
    except KeyboardInterrupt:
        raise SystemExit(130)
