"""Trace ID generation and context propagation.

Trace IDs are UUIDv4 strings stored in a context variable. The ingress
middleware sets one per HTTP request and the dispatcher sets one per cycle,
so every log line of a request or cycle can be grouped together.

Example:
    >>> set_trace_id(generate_trace_id())
    >>> get_trace_id() is not None
    True
"""

import contextvars
import uuid
from types import TracebackType

_trace_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("trace_id", default=None)

# HTTP header name for trace ID propagation
TRACE_ID_HEADER = "X-Trace-ID"


def generate_trace_id() -> str:
    """Generate a new unique trace ID (UUID v4 string)."""
    return str(uuid.uuid4())


def get_trace_id() -> str | None:
    """Get the current trace ID, or None if none is set."""
    return _trace_id_var.get()


def set_trace_id(trace_id: str) -> None:
    """Set the trace ID for the current context.

    Raises:
        ValueError: If trace_id is empty or None
    """
    if not trace_id:
        raise ValueError("Trace ID cannot be empty")
    _trace_id_var.set(trace_id)


def clear_trace_id() -> None:
    """Clear the trace ID from the current context."""
    _trace_id_var.set(None)


class LogContext:
    """Context manager for scoped trace ID management.

    Sets a trace ID for a block of code and restores the previous value
    when done.

    Example:
        >>> with LogContext("cycle-123") as trace_id:
        ...     get_trace_id() == trace_id
        True
    """

    def __init__(self, trace_id: str | None = None) -> None:
        self.trace_id = trace_id or generate_trace_id()
        self.previous_trace_id: str | None = None

    def __enter__(self) -> str:
        self.previous_trace_id = get_trace_id()
        set_trace_id(self.trace_id)
        return self.trace_id

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self.previous_trace_id is not None:
            set_trace_id(self.previous_trace_id)
        else:
            clear_trace_id()
