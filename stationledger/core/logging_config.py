"""
Structured logging configuration.

Provides JSON-formatted logs for log aggregation, or human-readable
console output for local development.

Settings:
- LOG_FORMAT: "json" or "console"
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR
"""
import json
import logging
import logging.config
from datetime import datetime, timezone

from stationledger.core.config import Settings

_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName", "taskName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
    "message",
})


def get_logging_config(settings: Settings) -> dict:
    """
    Build a logging.config.dictConfig mapping.

    Args:
        settings: Service settings (LOG_LEVEL, LOG_FORMAT, DEBUG)

    Returns:
        dictConfig-compatible dict
    """
    log_level = "DEBUG" if settings.DEBUG else settings.LOG_LEVEL

    if settings.LOG_FORMAT == "json":
        formatters = {
            "json": {
                "()": "stationledger.core.logging_config.JsonFormatter",
            },
        }
        formatter = "json"
    else:
        formatters = {
            "verbose": {
                "format": "[{asctime}] {levelname} {name} {message}",
                "style": "{",
            },
        }
        formatter = "verbose"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": log_level,
            },
            "stationledger": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "handlers": ["console"],
                "level": "INFO" if settings.DEBUG else "WARNING",
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False,
            },
        },
    }


def configure_logging(settings: Settings) -> None:
    """Apply the logging configuration for the running process."""
    logging.config.dictConfig(get_logging_config(settings))


class JsonFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Outputs JSON lines with timestamp, level, logger, message, and any
    extra fields passed to the logger (tenant_key, voucher_number, ...).
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extras = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extras[key] = value
            except (TypeError, ValueError):
                extras[key] = str(value)

        if extras:
            log_entry["extra"] = extras

        return json.dumps(log_entry, default=str)
