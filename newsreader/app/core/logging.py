"""
Structured logging configuration for the newsreader client.

This module sets up structlog on top of the standard library logger. Every
fetch pipeline run and bookmark write binds a correlation ID so that the
events of one operation can be followed through the log.
"""

from __future__ import annotations

import logging
import sys
import uuid
from typing import Any, Dict, Optional

import structlog
from structlog.types import EventDict, WrappedLogger


def add_correlation_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add a correlation ID to log events if not already present."""
    if "correlation_id" not in event_dict:
        event_dict["correlation_id"] = str(uuid.uuid4())
    return event_dict


def configure_logging(log_level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use JSON formatting (True for machines, False for terminals)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_correlation_id,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if json_format:
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer()
        ])
    else:
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, correlation_id: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance with optional correlation ID.

    Args:
        name: Logger name (typically __name__)
        correlation_id: Optional correlation ID for tracing one operation

    Returns:
        structlog.stdlib.BoundLogger: Configured logger instance
    """
    logger = structlog.get_logger(name)

    if correlation_id:
        logger = logger.bind(correlation_id=correlation_id)

    return logger


def with_correlation_id(correlation_id: str) -> structlog.stdlib.BoundLogger:
    """Create a logger bound with a specific correlation ID."""
    return structlog.get_logger().bind(correlation_id=correlation_id)


def generate_correlation_id() -> str:
    """Generate a new UUID-based correlation ID."""
    return str(uuid.uuid4())


def log_exception(logger: structlog.stdlib.BoundLogger, exception: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
    """
    Log an exception with its type, message and any extra context.

    Args:
        logger: Structured logger instance
        exception: Exception to log
        context: Additional context to include in log
    """
    log_context: Dict[str, Any] = {"exc_info": exception}
    if context:
        log_context.update(context)

    logger.error(
        "exception_occurred",
        exception_type=type(exception).__name__,
        exception_message=str(exception),
        **log_context
    )
