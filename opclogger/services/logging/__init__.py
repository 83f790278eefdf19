"""
Logging Service - Acquisition and CSV Output

Responsibilities:
- Run the logging and keep-alive tasks on independent cadences
- Format batch reads into fixed-precision CSV fields
- Write hourly CSV files with a header written exactly once
"""

from .buckets import LogBucketManager, Row
from .formatter import MISSING_VALUE, format_value, format_values
from .keepalive import KeepAliveMonitor, PingCounter
from .service import DataLoggerService, EXIT_OK, EXIT_STARTUP_FAILURE

__all__ = [
    "DataLoggerService",
    "EXIT_OK",
    "EXIT_STARTUP_FAILURE",
    "KeepAliveMonitor",
    "LogBucketManager",
    "MISSING_VALUE",
    "PingCounter",
    "Row",
    "format_value",
    "format_values",
]
