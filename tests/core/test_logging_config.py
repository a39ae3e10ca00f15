"""Tests for canvasflow.core.logging_config module."""

import json
import logging

import pytest

from canvasflow.core import logging_config
from canvasflow.core.logging_config import JsonFormatter, configure_logging


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch):
    """Give each test a fresh, restorable root logger."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    monkeypatch.setattr(logging_config, "_configured", False)
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_explicit_level(self):
        configure_logging(level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG

    def test_noisy_loggers_quieted(self):
        configure_logging(level="DEBUG")
        assert logging.getLogger("aiohttp").level == logging.WARNING

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("CANVASFLOW_LOG_LEVEL", "ERROR")
        monkeypatch.setenv("CANVASFLOW_LOG_FORMAT", "json")

        configure_logging()

        root = logging.getLogger()
        assert root.level == logging.ERROR
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_configured_once(self):
        """Test later calls are ignored unless forced."""
        configure_logging(level="INFO")
        configure_logging(level="DEBUG")
        assert logging.getLogger().level == logging.INFO

        configure_logging(level="DEBUG", force=True)
        assert logging.getLogger().level == logging.DEBUG

    def test_file_handler(self, tmp_path):
        path = tmp_path / "run.log"
        configure_logging(level="INFO", file_path=str(path))

        logging.getLogger("canvasflow.test").info("written")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "written" in path.read_text()


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_format_with_extra(self):
        record = logging.LogRecord(
            "canvasflow.core.run", logging.DEBUG, __file__, 1, "run_finished: %s", ("x",), None
        )
        record.run_id = "abc"

        data = json.loads(JsonFormatter().format(record))

        assert data["level"] == "DEBUG"
        assert data["logger"] == "canvasflow.core.run"
        assert data["message"] == "run_finished: x"
        assert data["extra"] == {"run_id": "abc"}
