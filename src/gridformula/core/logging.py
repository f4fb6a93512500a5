"""
Logging configuration for gridformula.

The library only ever calls ``get_logger(__name__)``; hosts decide where the
records go. ``setup_logging`` is a convenience for hosts (and scripts) that
want either JSON lines for aggregation or colored console output.
"""

import logging
import sys
from typing import IO, Any

import orjson

# LogRecord attributes that are not caller-supplied ``extra=`` data
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def record_extra(record: logging.LogRecord) -> dict[str, Any]:
    """Fields attached to a record through ``extra=``."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record, serialized with orjson."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = record_extra(record)
        if extra:
            payload["extra"] = extra

        # Formula contexts can carry dates and other non-JSON values
        return orjson.dumps(payload, default=str).decode("utf-8")


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter that colors the level name."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)

        plain = record.levelname
        record.levelname = f"{color}{plain}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def build_formatter(json_logs: bool = False, log_format: str | None = None) -> logging.Formatter:
    if json_logs:
        return JSONFormatter()
    return ConsoleFormatter(log_format or DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    log_format: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """
    Route all log records to a single stream handler on the root logger.

    Existing root handlers are replaced, so calling this twice does not
    duplicate output.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Emit JSON lines instead of colored text
        log_format: Format string for console output
        stream: Destination stream (default: stdout)
    """
    level = log_level.upper()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(build_formatter(json_logs, log_format))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    get_logger(__name__).info(
        "Logging configured",
        extra={"log_level": level, "json_logs": json_logs},
    )


def get_logger(name: str) -> logging.Logger:
    """Module logger; use ``get_logger(__name__)``."""
    return logging.getLogger(name)


def configure_logging(settings: Any = None) -> None:
    """Set up logging from engine settings (``get_settings()`` by default)."""
    if settings is None:
        from gridformula.core.config import get_settings

        settings = get_settings()
    setup_logging(settings.log_level, settings.json_logs)
