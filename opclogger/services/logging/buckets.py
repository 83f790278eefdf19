"""
Hourly CSV Log Buckets

One file per local-time hour, named OPC_Log_<YYYY>-<MM>-<DD>_<HH>.csv.
The header is written exactly once, when the file is created; rows are only
ever appended.

Single writer: only the logging task calls append_row(), so no locking is
done here. Adding a second writer requires serialising writes first.
"""

import csv
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Sequence

from opclogger.common.exceptions import FormatError
from opclogger.common.logging_setup import get_service_logger
from opclogger.common.timestamp import (
    BucketKey,
    epoch_seconds,
    format_row_timestamp,
    truncate_to_hour,
)

logger = get_service_logger("logging.buckets")

TIMESTAMP_COLUMNS = ("Timestamp (24hr datetime)", "Timestamp (epochtime UTC)")


@dataclass
class Row:
    """One CSV data row: tick timestamp plus one formatted field per point"""
    timestamp: datetime
    values: list[str]

    def to_fields(self) -> list[str]:
        return [
            format_row_timestamp(self.timestamp),
            str(epoch_seconds(self.timestamp)),
            *self.values,
        ]


class LogBucketManager:
    """
    Resolves hour buckets and writes their CSV files.

    Attributes:
        log_dir: Directory holding the bucket files
        header: Header fields (timestamp columns + point names)
        rows_written: Rows appended since start
        files_created: Bucket files created since start
    """

    def __init__(self, log_dir: Path, point_names: Sequence[str]):
        self.log_dir = Path(log_dir)
        self.point_names = list(point_names)
        self.header = [*TIMESTAMP_COLUMNS, *self.point_names]

        self.current_bucket: BucketKey | None = None
        self.rows_written = 0
        self.files_created = 0

    def resolve_bucket(self, now: datetime) -> BucketKey:
        """Truncate now to its hour bucket and remember it as current."""
        bucket = truncate_to_hour(now)
        if bucket != self.current_bucket:
            if self.current_bucket is not None:
                logger.info(
                    f"Hour changed, switching to {bucket.filename}",
                    extra={"previous": self.current_bucket.filename},
                )
            self.current_bucket = bucket
        return bucket

    def path_for(self, bucket: BucketKey) -> Path:
        return self.log_dir / bucket.filename

    def ensure_header(self, bucket: BucketKey) -> bool:
        """
        Create the bucket file with its header if it does not exist yet.

        Never touches an existing file, including one left by an earlier run.

        Returns:
            True if the file was created by this call
        """
        path = self.path_for(bucket)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        try:
            # "x" fails if the file exists, so the header is never rewritten
            with open(path, "x", newline="", encoding="utf-8") as f:
                csv.writer(f, lineterminator="\n").writerow(self.header)
        except FileExistsError:
            return False

        self.files_created += 1
        logger.info(f"Creating new log file: {path}", extra={"file": str(path)})
        return True

    def append_row(self, bucket: BucketKey, row: Row) -> None:
        """
        Append exactly one newline-terminated row to the bucket file.

        Raises:
            FormatError: row field count differs from the configured points
            OSError: the file could not be written
        """
        if len(row.values) != len(self.point_names):
            raise FormatError(
                "Row field count does not match configured points",
                len(self.point_names),
                len(row.values),
            )

        with open(self.path_for(bucket), "a", newline="", encoding="utf-8") as f:
            csv.writer(f, lineterminator="\n").writerow(row.to_fields())

        self.rows_written += 1

    def get_stats(self) -> dict:
        return {
            "log_dir": str(self.log_dir),
            "current_file": self.current_bucket.filename if self.current_bucket else None,
            "rows_written": self.rows_written,
            "files_created": self.files_created,
        }
