"""
Structured logging configuration for evalloop.

Uses structlog for JSON or console output. Log lines go to stderr so the
CLI's tables on stdout stay clean.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from evalloop.core.config import get_settings


def setup_logging(
    level: str | None = None,
    json_format: bool | None = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON output format
    """
    settings = get_settings()
    level = (level or settings.logging.log_level).upper()
    json_format = json_format if json_format is not None else (
        settings.logging.log_format == "json"
    )
    numeric_level = getattr(logging, level, logging.INFO)

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
    )

    # Shared processors
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        # JSON format for production
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # Console format for development
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a bound structlog logger."""
    return structlog.get_logger(name)


class PassLogContext:
    """
    Context manager that scopes log lines to one evaluation pass.

    The pass context is bound on the returned logger and in structlog's
    contextvars, so suite and backend log lines emitted inside the block
    carry the pass number as well.

    Usage:
        with PassLogContext(logger, pass_number=1, backend="scripted") as log:
            ...
            log.log("Pass completed", passed=7)
    """

    def __init__(
        self,
        logger: structlog.BoundLogger,
        pass_number: int,
        **context: Any,
    ):
        self.pass_number = pass_number
        self.context = {"pass_number": pass_number, **context}
        self.logger = logger.bind(**self.context)
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "PassLogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            if exc_type:
                self.logger.error(
                    "Pass failed",
                    error=str(exc_val),
                    error_type=exc_type.__name__,
                )
        finally:
            structlog.contextvars.reset_contextvars(**self._tokens)

    def log(self, message: str, **kwargs: Any) -> None:
        """Log a message with the pass context."""
        self.logger.info(message, **kwargs)
