import logging
import sys
from typing import Any

import structlog

from .settings import settings


def setup_logging() -> None:
    """Configure structured logging with structlog."""

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            (
                structlog.processors.CallsiteParameterAdder(
                    parameters=[structlog.processors.CallsiteParameter.FUNC_NAME]
                )
                if settings.debug
                else structlog.processors.CallsiteParameterAdder(parameters=[])
            ),
            structlog.processors.format_exc_info,
            # JSON for production, pretty printing for development
            (
                structlog.dev.ConsoleRenderer()
                if settings.debug
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def bind_run_context(runner_id: str, **context: Any) -> None:
    """Attach runner-level context to every log line of the current run."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(runner_id=runner_id, **context)
