"""Logging configuration utilities."""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

from .config import settings


def configure_logging(level: int | str | None = None, json_logs: Optional[bool] = None) -> None:
    """Configure structlog on top of stdlib logging.

    JSON output is used outside development so extraction warnings can be
    shipped as structured events.
    """

    log_level = level or (logging.DEBUG if settings.debug else logging.INFO)
    if json_logs is None:
        json_logs = settings.environment != "development"

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        stream=sys.stdout,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Create a structured logger."""

    return structlog.get_logger(name or "critcss")


@contextmanager
def extraction_context(**values: object) -> Iterator[None]:
    """Bind job/cache identifiers to every log event emitted inside the block."""

    tokens = structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
