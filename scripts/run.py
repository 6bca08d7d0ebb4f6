#!/usr/bin/env python3
"""Alerting service entrypoint — wires the AlertManager and runs its loops.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level, log a status line every minute
    python scripts/run.py --log-level DEBUG --status-interval 60
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from alerting.core.config import load_settings
from alerting.core.exceptions import AlertingError
from alerting.core.logging import setup_logging
from alerting.orchestrator.factory import create_alert_manager

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start the alert manager and run until interrupted."""
    try:
        settings = load_settings(args.config)
    except AlertingError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    setup_logging(level=args.log_level, settings=settings)

    if not settings.alerting.enabled:
        logger.error("alerting_disabled_in_config")
        print(
            "Alerting is disabled. Set alerting.enabled: true in config/settings.yaml.",
            file=sys.stderr,
        )
        return 1

    logger.info(
        "alerting_starting",
        service=settings.service.name,
        environment=settings.service.environment,
        health_url=settings.health_check.url,
        extra_rules=len(settings.rules),
    )

    manager = create_alert_manager(settings)
    await manager.initialize()

    def _log_status() -> None:
        stats = manager.get_statistics()
        logger.info(
            "alerting_status",
            active_alerts=stats.active_alerts,
            critical_alerts=stats.critical_alerts,
            open_incidents=stats.open_incidents,
            pending_escalations=len(manager.pending_escalations()),
        )

    if args.status_interval > 0:
        manager.scheduler.call_every(args.status_interval * 1000, _log_status, name="status")

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            logger.debug("signal_handler_unsupported", signal=sig.name)

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("alerting_shutting_down")
    stats = manager.get_statistics()
    await manager.shutdown()

    logger.info(
        "alerting_stopped",
        total_alerts=stats.total_alerts,
        active_alerts=stats.active_alerts,
        open_incidents=stats.open_incidents,
        mttr_ms=stats.mttr,
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the alert and incident management service.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--status-interval",
        type=int,
        default=300,
        help="Seconds between status log lines (0 disables)",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
