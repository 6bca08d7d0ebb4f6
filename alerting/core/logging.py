"""Structured logging setup using structlog.

Every event carries the ``service`` and ``environment`` of the running
alerting instance, so logs from several deployments can share one sink.
"""

from __future__ import annotations

import logging
import sys

import structlog

from alerting.core.config import Settings, get_settings

# Third-party loggers kept at WARNING unless running at DEBUG.
QUIET_LOGGERS = ("aiohttp", "httpx", "httpcore")


def setup_logging(
    level: str | None = None,
    fmt: str | None = None,
    settings: Settings | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level override (e.g. "DEBUG"). Uses config if None.
        fmt: Renderer format override ("json" or "console"). Uses config if None.
        settings: Settings to read defaults from. Uses the cached settings if None.
    """
    settings = settings or get_settings()
    log_level = logging.getLevelName((level or settings.logging.level).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO
    log_format = (fmt or settings.logging.format).lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: structlog.types.Processor
    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    quiet_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        service=settings.service.name,
        environment=settings.service.environment,
    )
