"""
Root conftest for all tests.

Keeps logging state from leaking between tests: configure_logging() replaces
root handlers and the trace ID lives in a context variable.
"""

import logging

import pytest

from libs.common.logging import clear_trace_id


@pytest.fixture(autouse=True)
def _reset_logging_state():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level

    yield

    clear_trace_id()
    root.handlers = handlers
    root.setLevel(level)
