"""Structured logging configuration for recapbot.

Provides JSON-formatted logs for production and colored console
logs for local development.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone

from pythonjsonlogger import jsonlogger

from recapbot.config import settings


# ── Custom JSON Formatter ──


class RecapbotJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps every record with service metadata."""

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["environment"] = settings.environment
        log_record["service"] = "recapbot"

        if "timestamp" not in log_record:
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        log_record["level"] = record.levelname.lower()

        log_record.pop("asctime", None)
        log_record.pop("msecs", None)
        log_record.pop("relativeCreated", None)


# ── Console Formatter for Development ──


class ColorFormatter(logging.Formatter):
    """Colored console formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelcolor = self.COLORS.get(record.levelname, "")
        original = record.levelname
        record.levelname = f"{levelcolor}{record.levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


# ── Setup Logging ──


def setup_logging() -> logging.Logger:
    """Configure logging for the application.

    Returns:
        The root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if settings.environment == "production":
        handler.setFormatter(RecapbotJsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            timestamp=True,
        ))
    else:
        handler.setFormatter(ColorFormatter(
            fmt="%(asctime)s | %(name)-32s | %(levelname)-8s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    root_logger.addHandler(handler)

    # Set log levels for noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)

    return root_logger
