"""
Timestamp Utilities

Hour-bucket truncation and row timestamp rendering for the CSV logs.

Bucket keys and row timestamps are derived from the local wall clock at the
moment a logging tick starts. The same datetime is used for both, so a row
can never land in a bucket whose hour differs from its own timestamp.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, order=True)
class BucketKey:
    """Hour-granularity time partition (one CSV file per key)"""
    year: int
    month: int
    day: int
    hour: int

    @property
    def filename(self) -> str:
        """File name for this bucket, e.g. OPC_Log_2025-09-01_22.csv"""
        return f"OPC_Log_{self.year:04d}-{self.month:02d}-{self.day:02d}_{self.hour:02d}.csv"


def local_now() -> datetime:
    """Current local wall-clock time as a timezone-aware datetime."""
    return datetime.now().astimezone()


def truncate_to_hour(ts: datetime) -> BucketKey:
    """
    Truncate a timestamp to its hour bucket.

    Uses the datetime's own fields, so an aware local datetime yields the
    local hour and a UTC datetime yields the UTC hour.

    Examples:
        2025-09-01 22:47:15 -> BucketKey(2025, 9, 1, 22)
        2025-09-01 22:59:59 -> BucketKey(2025, 9, 1, 22)
        2025-09-01 23:00:00 -> BucketKey(2025, 9, 1, 23)
    """
    return BucketKey(ts.year, ts.month, ts.day, ts.hour)


def format_row_timestamp(ts: datetime) -> str:
    """24-hour 'YYYY-MM-DD HH:MM:SS' rendering of a timestamp."""
    return ts.strftime("%Y-%m-%d %H:%M:%S")


def epoch_seconds(ts: datetime) -> int:
    """Whole seconds since the Unix epoch (UTC), truncated."""
    return int(ts.timestamp() // 1)
