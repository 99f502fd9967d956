import logging
import sys
from typing import Any

import structlog


def configure_logging(level: int | str = logging.INFO, *, json: bool | None = None) -> None:
    """Configure structlog/standard logging bridge.

    Logs go to stderr; stdout is reserved for the runtime's port handshake.
    """

    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    if json is None:
        json = not sys.stderr.isatty()
    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Bind contextual fields for downstream logs."""

    logger = structlog.get_logger()
    return logger.bind(**kwargs)


def bind_run_context(project: str, stack: str, dry_run: bool) -> None:
    """Attach program-run fields to every log line emitted in this context."""

    structlog.contextvars.bind_contextvars(project=project, stack=stack, dry_run=dry_run)


def clear_run_context() -> None:
    structlog.contextvars.clear_contextvars()
