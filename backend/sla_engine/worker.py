"""Standalone SLA breach notification worker.

Usage:

    python -m sla_engine.worker             # sweep every active tenant once and exit
    python -m sla_engine.worker --daemon    # keep running on a fixed tick

SLA_WORKER_MODE=daemon selects daemon mode without the flag.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from sla_engine.core.config import settings
from sla_engine.core.logging import setup_logging
from sla_engine.services.sla.breach_notifier import BreachNotifier

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="SLA breach notification worker")
    parser.add_argument("--daemon", action="store_true", help="Run continuously on the configured tick")
    parser.add_argument("--log-level", default="", help="Override LOG_LEVEL")
    return parser.parse_args(argv)


def use_daemon_mode(args: argparse.Namespace) -> bool:
    return bool(args.daemon) or settings.daemon_mode


def install_signal_handlers(notifier: BreachNotifier) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, notifier.request_shutdown)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers.
            logger.debug("Signal handler for %s not installed", sig)


async def run(daemon: bool, notifier: BreachNotifier | None = None) -> int:
    notifier = notifier or BreachNotifier()
    install_signal_handlers(notifier)
    if daemon:
        await notifier.run_daemon()
        return 0
    try:
        await notifier.run_once()
    finally:
        notifier.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level or settings.LOG_LEVEL)
    daemon = use_daemon_mode(args)
    logger.info(
        "SLA worker starting: mode=%s tenant_timeout=%ss tick=%ss",
        "daemon" if daemon else "once",
        settings.SLA_TENANT_TIMEOUT_SECONDS,
        settings.SLA_CHECK_INTERVAL_SECONDS,
    )
    try:
        return asyncio.run(run(daemon))
    except Exception:  # noqa: BLE001
        logger.exception("SLA worker failed")
        return 1


if __name__ == "__main__":
    sys.exit(main())
