"""JSON log formatter for structured logging.

Every record becomes one JSON line. Fields passed through ``extra={...}``
are grouped under ``context``; values under credential-like keys are masked.

Example log output:
    {"timestamp": "2025-10-21T10:30:00.000Z", "level": "INFO",
     "service": "shipment-relay", "trace_id": "abc123-def456",
     "message": "Dispatch cycle completed",
     "context": {"num_drained": 3, "num_failures": 1},
     "source": {"logger": "apps.shipment_relay.dispatcher", "line": 264, "function": "run_cycle"}}
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

# Attributes every LogRecord carries; anything else arrived via ``extra``
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "trace_id"}

_SECRET_KEY_MARKERS = ("api_key", "apikey", "credential", "password", "secret", "token")
_MASK = "***"


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SECRET_KEY_MARKERS)


class JSONFormatter(logging.Formatter):
    """Formatter that renders log records as single-line JSON.

    Example:
        >>> handler = logging.StreamHandler()
        >>> handler.setFormatter(JSONFormatter(service_name="shipment-relay"))
        >>> logger.info("Queued shipments", extra={"queued": 2})
    """

    def __init__(self, service_name: str, include_context: bool = True) -> None:
        super().__init__()
        self.service_name = service_name
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "service": self.service_name,
            "trace_id": getattr(record, "trace_id", None),
            "message": record.getMessage(),
        }

        if self.include_context:
            context = self._context(record)
            if context:
                entry["context"] = context

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": self.formatException(record.exc_info),
            }

        entry["source"] = {
            "logger": record.name,
            "line": record.lineno,
            "function": record.funcName,
        }

        return json.dumps(entry, default=str)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        """ISO 8601 UTC with millisecond precision, e.g. ``2023-10-21T10:30:00.000Z``."""
        dt = datetime.fromtimestamp(record.created, tz=UTC)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    @staticmethod
    def _context(record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: _MASK if _is_secret_key(key) else value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        }
