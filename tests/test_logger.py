"""Tests for logging setup."""

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from list_sync.utils.logger import JsonFormatter, setup_logging


@pytest.fixture
def restore_logger():
    """Put the package logger back the way the other tests expect it."""
    package_logger = logging.getLogger("list_sync")
    handlers = list(package_logger.handlers)
    level = package_logger.level
    propagate = package_logger.propagate
    yield package_logger
    for handler in package_logger.handlers:
        handler.close()
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate


class TestJsonFormatter:
    def test_includes_extra_fields(self) -> None:
        """Test that extra fields reach the JSON output."""
        record = logging.LogRecord(
            "list_sync.core.engine", logging.INFO, __file__, 1, "Sync of %s finished", ("Requests",), None
        )
        record.stats = {"inserts": 1}

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "Sync of Requests finished"
        assert data["level"] == "INFO"
        assert data["logger"] == "list_sync.core.engine"
        assert data["stats"] == {"inserts": 1}
        assert "args" not in data


class TestSetupLogging:
    def test_file_handler_and_level(self, tmp_path: Path, restore_logger: logging.Logger) -> None:
        """Test the rotating file handler and log level."""
        log_file = tmp_path / "logs" / "sync.log"
        setup_logging(level="DEBUG", log_file=log_file, format_style="simple")

        assert restore_logger.level == logging.DEBUG
        assert any(isinstance(h, RotatingFileHandler) for h in restore_logger.handlers)
        assert log_file.parent.is_dir()

        logging.getLogger("list_sync.test").debug("hello file")
        for handler in restore_logger.handlers:
            handler.flush()
        assert "hello file" in log_file.read_text()

    def test_json_format(self, restore_logger: logging.Logger) -> None:
        """Test json format and quieted botocore logging."""
        setup_logging(format_style="json")

        assert len(restore_logger.handlers) == 1
        assert isinstance(restore_logger.handlers[0].formatter, JsonFormatter)
        assert logging.getLogger("botocore").level == logging.WARNING
