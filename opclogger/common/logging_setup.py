"""
Structured Logging Setup

Consistent logging configuration across all services.
Uses JSON format for structured logs in production.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

# Standard LogRecord attributes that are not copied into the JSON payload
_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "service",
    "message", "taskName",
))


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds service name to all logs"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs.setdefault("extra", {})
        kwargs["extra"]["service"] = self.extra.get("service", "unknown")
        return msg, kwargs


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Set up structured logging for a service.

    Args:
        service_name: Name of the service (e.g., "scheduler", "session")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for dev)

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(f"opclogger.{service_name}")
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """
    Get a logger adapter with service context.

    Level and format come from OPCLOGGER_LOG_LEVEL / OPCLOGGER_LOG_FORMAT.

    Args:
        service_name: Name of the service

    Returns:
        Logger adapter with service name in all logs
    """
    log_level = os.environ.get("OPCLOGGER_LOG_LEVEL", "INFO")
    json_format = os.environ.get("OPCLOGGER_LOG_FORMAT", "json").lower() == "json"

    logger = setup_logging(service_name, log_level, json_format)
    return ServiceLoggerAdapter(logger, {"service": service_name})


def reconfigure_all(log_level: str, json_format: bool) -> None:
    """Re-apply level and format to every logger already handed out."""
    for name in list(logging.root.manager.loggerDict):
        if name.startswith("opclogger."):
            setup_logging(name[len("opclogger."):], log_level, json_format)


# Convenience loggers for common operations
def log_row_written(
    logger: logging.LoggerAdapter,
    filename: str,
    timestamp: str,
    field_count: int,
) -> None:
    """Log a CSV row append"""
    logger.info(
        f"Logged data at {timestamp}",
        extra={"file": filename, "fields": field_count},
    )


def log_ping(logger: logging.LoggerAdapter, count: int) -> None:
    """Log a successful keep-alive ping"""
    logger.info(
        f"(Ping {count}) Session keep-alive successful",
        extra={"ping_count": count},
    )


def log_tick_error(
    logger: logging.LoggerAdapter,
    task: str,
    error: BaseException,
    **context: Any,
) -> None:
    """Log a recovered per-tick failure with task and cause context"""
    cause = getattr(error, "cause", None) or error
    logger.error(
        f"Tick failed in task '{task}': {error}",
        extra={"task": task, "cause": repr(cause), **context},
    )
