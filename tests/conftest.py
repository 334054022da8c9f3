"""Root test configuration: isolate ADFMARK_* settings and logger state per test"""

import logging
import os

import pytest

from adfmark.logging import LOGGER_NAME


@pytest.fixture(autouse=True)
def isolate_settings(monkeypatch):
    """Drop ADFMARK_* env vars so load_config sees only what a test sets."""
    for name in list(os.environ):
        if name.startswith("ADFMARK_"):
            monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def reset_logger():
    """Undo configure_logging so CLI runs do not leak handlers into later tests."""
    logger = logging.getLogger(LOGGER_NAME)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
