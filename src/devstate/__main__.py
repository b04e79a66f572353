"""Command-line entry point: ``python -m devstate`` or ``devstate``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

from devstate._logging import install_excepthook, log_uncaught, setup_logging
from devstate.agent import DeviceStateAgent
from devstate.config import AgentConfig
from devstate.exceptions import ConfigError
from devstate.sampler import TelemetrySampler

_LOG = logging.getLogger("devstate")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="devstate",
        description="Publish host telemetry to an MQTT broker and report broker connectivity.",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="KEY=VALUE file loaded into the environment (existing variables win).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: APP_LOG_LEVEL or INFO).",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Rotating log file (default: APP_LOG_FILE or app.log).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Print one telemetry snapshot as JSON and exit (no broker).",
    )
    return parser.parse_args(argv)


async def _run(config: AgentConfig) -> None:
    async with DeviceStateAgent(config) as agent:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            # Not available on Windows event loops; Ctrl+C then raises KeyboardInterrupt.
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(signum, agent.stop)
        await agent.run()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.env_file is not None:
        load_dotenv(args.env_file, override=False)

    try:
        config = AgentConfig.from_env()
    except ConfigError as exc:
        print(f"devstate: configuration error: {exc}", file=sys.stderr)
        return 2

    level = "DEBUG" if args.verbose else (args.log_level or config.log_level).upper()
    setup_logging(level, args.log_file or config.log_file)
    install_excepthook()

    if args.once:
        snapshot = TelemetrySampler(data_mount=config.data_mount).sample()
        print(snapshot.to_payload().decode("utf-8"))
        return 0

    try:
        asyncio.run(_run(config))
    except KeyboardInterrupt:
        _LOG.info("Interrupted.")
    except Exception as exc:
        log_uncaught(exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
