"""Logging configuration shared by all services.

Sets up structured JSON output on stdout with trace ID injection. Services
call configure_logging() once at startup.

Example:
    >>> from libs.common.logging.config import configure_logging
    >>> configure_logging(service_name="shipment-relay", log_level="INFO")
"""

import logging
import sys

from libs.common.logging.context import get_trace_id
from libs.common.logging.formatter import JSONFormatter


class TraceIDFilter(logging.Filter):
    """Logging filter that copies the current trace ID onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = get_trace_id()
        return True


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    include_context: bool = True,
) -> logging.Logger:
    """Configure structured JSON logging for a service.

    Replaces any handlers on the root logger with a single stdout handler
    using JSONFormatter and TraceIDFilter.

    Args:
        service_name: Name of the service (e.g., "shipment-relay")
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        include_context: Whether to include extra context fields in output

    Returns:
        Configured root logger instance

    Raises:
        ValueError: If log_level is invalid
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        JSONFormatter(service_name=service_name, include_context=include_context)
    )
    handler.addFilter(TraceIDFilter())

    root_logger.addHandler(handler)

    return root_logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance (root logger if name is None)."""
    return logging.getLogger(name)
