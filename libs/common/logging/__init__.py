"""Centralized structured logging library.

This package provides structured JSON logging with trace ID support
so that every log line emitted for one request or one dispatch cycle
can be correlated.

Usage:
    # At service startup
    from libs.common.logging import configure_logging
    configure_logging(service_name="shipment-relay", log_level="INFO")

    # Scoped trace IDs (e.g. one per dispatch cycle)
    from libs.common.logging import LogContext
    with LogContext(cycle_id):
        logger.info("Cycle started", extra={"num_events": 3})
"""

from libs.common.logging.config import (
    TraceIDFilter,
    configure_logging,
    get_logger,
)
from libs.common.logging.context import (
    TRACE_ID_HEADER,
    LogContext,
    clear_trace_id,
    generate_trace_id,
    get_trace_id,
    set_trace_id,
)
from libs.common.logging.formatter import JSONFormatter
from libs.common.logging.middleware import ASGITraceIDMiddleware, add_trace_id_middleware

__all__ = [
    # Configuration
    "configure_logging",
    "get_logger",
    "TraceIDFilter",
    # Trace ID management
    "generate_trace_id",
    "get_trace_id",
    "set_trace_id",
    "clear_trace_id",
    "LogContext",
    "TRACE_ID_HEADER",
    # Middleware
    "ASGITraceIDMiddleware",
    "add_trace_id_middleware",
    # Formatter (for advanced usage)
    "JSONFormatter",
]
