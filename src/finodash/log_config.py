"""Logging setup.

structlog formats, stdlib logging carries the output. Each context binds its
storage ``origin`` so lines from several tabs sharing one store can be told
apart.
"""

import logging

import structlog

from finodash.config import Settings

# Chatty below WARNING (pub/sub reconnects, selector debug)
QUIET_LOGGERS = ("redis", "asyncio")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(settings: Settings) -> None:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _renderer(settings.log_format),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(message)s")
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_context(origin: str, environment: str) -> None:
    structlog.contextvars.bind_contextvars(origin=origin, environment=environment)


def unbind_context() -> None:
    structlog.contextvars.unbind_contextvars("origin", "environment")
