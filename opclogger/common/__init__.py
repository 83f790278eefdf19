"""
Common Utilities

Shared modules used across all services:
- config.py - Configuration dataclasses and YAML loading
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Fixed-cadence scheduled loops
- timestamp.py - Hour buckets and row timestamps
"""

from .config import (
    PointConfig,
    RetryPolicy,
    KeepAliveSettings,
    SessionSettings,
    HealthSettings,
    LoggerConfig,
    load_logger_config,
    load_config_file,
    apply_env_overrides,
    validate_logger_config,
)
from .exceptions import (
    OpcLoggerError,
    ConfigError,
    EndpointConnectionError,
    ReadTimeoutError,
    TickError,
    FormatError,
    KeepAliveError,
    ShutdownError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    log_row_written,
    log_ping,
    log_tick_error,
)
from .scheduler import ScheduledLoop, SchedulerGroup
from .timestamp import BucketKey, truncate_to_hour

__all__ = [
    # Config
    "PointConfig",
    "RetryPolicy",
    "KeepAliveSettings",
    "SessionSettings",
    "HealthSettings",
    "LoggerConfig",
    "load_logger_config",
    "load_config_file",
    "apply_env_overrides",
    "validate_logger_config",
    # Exceptions
    "OpcLoggerError",
    "ConfigError",
    "EndpointConnectionError",
    "ReadTimeoutError",
    "TickError",
    "FormatError",
    "KeepAliveError",
    "ShutdownError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "log_row_written",
    "log_ping",
    "log_tick_error",
    # Scheduling
    "ScheduledLoop",
    "SchedulerGroup",
    # Timestamps
    "BucketKey",
    "truncate_to_hour",
]
