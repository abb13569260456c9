import io
import json
import logging

import pytest
import structlog

from reqlog.logging import RequestContextFilter
from reqlog.logging import setup as logging_setup


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo global logging configuration made by a test"""
    root_logger = logging.getLogger()
    level = root_logger.level

    yield

    root_logger.handlers = [
        handler
        for handler in root_logger.handlers
        if not any(isinstance(f, RequestContextFilter) for f in handler.filters)
    ]
    root_logger.setLevel(level)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    logging_setup._provider = None


@pytest.fixture
def log_stream():
    return io.StringIO()


@pytest.fixture
def read_logs(log_stream):
    """Parse every JSON line written to log_stream so far"""

    def _read():
        return [json.loads(line) for line in log_stream.getvalue().splitlines() if line.strip()]

    return _read
