"""Tests for logging setup."""

import logging

import pytest

from content_sync.utils import setup_logging
from content_sync.utils.logging_config import ColoredFormatter


@pytest.fixture
def root_logger():
    """Root logger, restored after the test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Test setup_logging function."""

    def test_console_and_file_handlers(self, root_logger, tmp_path):
        """A log file gets its own rotating handler."""
        log_file = tmp_path / "logs" / "sync.log"

        setup_logging(log_level="DEBUG", log_file=log_file)
        logging.getLogger("content_sync.test").info("hello")

        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 2
        for handler in root_logger.handlers:
            handler.flush()
        assert "hello" in log_file.read_text()

    def test_third_party_loggers_quieted(self, root_logger):
        """Library loggers stay at WARNING."""
        setup_logging(log_level="DEBUG", console_output=False)

        assert root_logger.handlers == []
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("urllib3").level == logging.WARNING


class TestColoredFormatter:
    """Test ColoredFormatter class."""

    def test_levelname_restored(self):
        """Coloring does not leak into the record."""
        formatter = ColoredFormatter(fmt="%(levelname)s %(location)s %(message)s")
        record = logging.LogRecord(
            "content_sync", logging.WARNING, "sync.py", 12, "careful", None, None
        )

        output = formatter.format(record)

        assert "\033[33m" in output
        assert "sync.py:12" in output
        assert record.levelname == "WARNING"
