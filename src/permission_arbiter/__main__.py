"""
Replay an arbitration scenario against an in-memory runtime.

Usage:
    python -m permission_arbiter scenario.json
    python -m permission_arbiter scenario.json --focused --grace-period 1
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger

from .config import Config
from .engine import PermissionArbiter
from .simulation import HeadlessHost, RecordingRuntime, replay, summarize


def configure_logging(level: str, log_file: str | None = None) -> None:
    """Configure loguru with a console sink and an optional rotating file sink."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> | <level>{message}</level>",
        level=level,
    )
    if log_file:
        logger.add(
            log_file,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            level="DEBUG",
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="permission_arbiter",
        description="Replay a permission arbitration scenario and print the final state.",
    )
    parser.add_argument("scenario", type=Path, help="JSON file containing a list of steps")
    parser.add_argument(
        "--focused", action="store_true", help="Host starts out focused"
    )
    parser.add_argument("--cooldown", type=float, default=None, help="Group cooldown in seconds")
    parser.add_argument(
        "--grace-period", type=float, default=None, help="Group grace period in seconds"
    )
    parser.add_argument("--log-level", default=Config.LOG_LEVEL)
    parser.add_argument("--log-file", default=None)
    return parser


async def run_scenario(args: argparse.Namespace) -> dict:
    steps = json.loads(args.scenario.read_text(encoding="utf-8"))
    if not isinstance(steps, list):
        raise ValueError("Scenario must be a JSON list of steps")

    runtime = RecordingRuntime()
    host = HeadlessHost(focused=args.focused)
    arbiter = PermissionArbiter(
        runtime,
        host,
        cooldown_seconds=args.cooldown,
        grace_period_seconds=args.grace_period,
    )
    arbiter.attach()
    try:
        await replay(steps, arbiter, runtime)
        return summarize(arbiter, runtime, host)
    finally:
        await arbiter.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    try:
        Config.validate()
        summary = asyncio.run(run_scenario(args))
    except (OSError, ValueError, KeyError) as e:
        logger.error(f"Scenario failed: {e}")
        return 1

    print(json.dumps(summary, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
