"""
Logging configuration for Reeltask.

Console output is colour-coded per level during development and switches to
one JSON object per line when LOG_JSON is set. Lifecycle changes are written
to the dedicated ``reeltask.audit`` logger with the acting user attached.
"""

import json
import logging
import sys
from typing import Any, Optional

from reeltask.config import get_settings


# ANSI color codes for terminal output
class Colors:
    GREY = "\x1b[38;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    GREEN = "\x1b[32;20m"
    RESET = "\x1b[0m"


LINE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Attributes copied from ``extra=`` into structured output
AUDIT_FIELDS = ("actor", "task_id", "project_id", "from_status", "to_status")


class ColoredFormatter(logging.Formatter):
    """Console formatter that colours the whole line by level."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GREY,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD_RED,
    }

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelno, Colors.GREY)
        formatter = logging.Formatter(color + LINE_FORMAT + Colors.RESET, datefmt="%Y-%m-%d %H:%M:%S")
        return formatter.format(record)


class JsonFormatter(logging.Formatter):
    """One JSON document per record, for log aggregation."""

    def format(self, record):
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in AUDIT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_record[field] = str(value)
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def setup_logging(
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Force JSON output on or off; defaults to the LOG_JSON setting
    """
    settings = get_settings()

    log_level = level or ("DEBUG" if settings.debug else "INFO")
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    use_json = settings.log_json if json_format is None else json_format

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(JsonFormatter() if use_json else ColoredFormatter())
    root_logger.addHandler(console_handler)

    # Silence noisy loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("arq").setLevel(logging.INFO)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.getLogger("reeltask").setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Usage:
        from reeltask.logging_config import get_logger
        logger = get_logger(__name__)
        logger.info("Something happened")
    """
    if not name.startswith("reeltask"):
        name = f"reeltask.{name}"
    return logging.getLogger(name)


def get_audit_logger() -> logging.Logger:
    """Logger receiving one INFO record per task lifecycle change."""
    return logging.getLogger("reeltask.audit")
