"""Centralized logging configuration for canvasflow.

Usage:
    from canvasflow.core.logging_config import configure_logging, get_logger

    # Configure once at application startup
    configure_logging(level="DEBUG", format="json")

    # Get loggers in modules
    logger = get_logger(__name__)

Environment Variables:
    CANVASFLOW_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    CANVASFLOW_LOG_FORMAT: Output format ("text" or "json")
    CANVASFLOW_LOG_FILE: Optional log file path
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Literal

TEXT_FORMAT = "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else was passed via extra=
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}

# Chatty third-party loggers kept at WARNING unless explicitly lowered
_NOISY_LOGGERS = ("aiohttp", "asyncio", "httpx", "openai")

_configured = False


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging.

    Outputs one JSON object per record:
    {
        "timestamp": "2026-01-04T10:12:00.123000",
        "level": "DEBUG",
        "logger": "canvasflow.core.run",
        "message": "run_finished: run_id=..., reason=complete",
        "extra": {...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str | None = None,
    format: Literal["text", "json"] | None = None,
    file_path: str | None = None,
    force: bool = False,
) -> None:
    """Configure logging for the application.

    Called once at startup (the CLI does this). Subsequent calls are
    ignored unless force=True. Explicit arguments win over environment
    variables.

    Args:
        level: Log level. Defaults to CANVASFLOW_LOG_LEVEL or "WARNING".
        format: Output format. Defaults to CANVASFLOW_LOG_FORMAT or "text".
        file_path: Optional file path. Defaults to CANVASFLOW_LOG_FILE.
        force: Force reconfiguration even if already configured.
    """
    global _configured
    if _configured and not force:
        return

    level = level or os.environ.get("CANVASFLOW_LOG_LEVEL", "WARNING")
    format = format or os.environ.get("CANVASFLOW_LOG_FORMAT", "text")  # type: ignore[assignment]
    file_path = file_path or os.environ.get("CANVASFLOW_LOG_FILE")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    if format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if root_logger.level < logging.WARNING:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name (typically __name__)."""
    return logging.getLogger(name)
