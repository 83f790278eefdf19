"""Tests for hourly bucket resolution and CSV file writing."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from opclogger.common.exceptions import FormatError
from opclogger.common.timestamp import BucketKey, truncate_to_hour
from opclogger.services.logging.buckets import LogBucketManager, Row

HEADER = (
    "Timestamp (24hr datetime),Timestamp (epochtime UTC),"
    "Tag1,Tag2,Tag3,Tag4,Tag5,Tag6,Tag7,Tag8,Tag9,Tag10\n"
)
NAMES = [f"Tag{i}" for i in range(1, 11)]


def _at(hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2025, 9, 1, hour, minute, second, tzinfo=timezone.utc)


def _values(base: float) -> list[str]:
    return [f"{base + i:.4f}" for i in range(10)]


def test_truncate_to_hour_and_filename() -> None:
    bucket = truncate_to_hour(_at(22, 47, 15))

    assert bucket == BucketKey(2025, 9, 1, 22)
    assert bucket.filename == "OPC_Log_2025-09-01_22.csv"
    assert truncate_to_hour(_at(22, 59, 59)) == bucket
    assert truncate_to_hour(_at(23)) != bucket


def test_filename_pads_single_digit_fields() -> None:
    bucket = truncate_to_hour(datetime(2026, 1, 2, 3, 4, 5))

    assert bucket.filename == "OPC_Log_2026-01-02_03.csv"


def test_header_written_once_for_many_ticks_in_same_hour(tmp_path) -> None:
    manager = LogBucketManager(tmp_path, NAMES)

    created = []
    for minute in range(0, 60, 10):
        now = _at(22, minute)
        bucket = manager.resolve_bucket(now)
        created.append(manager.ensure_header(bucket))
        manager.append_row(bucket, Row(now, _values(minute)))

    content = (tmp_path / "OPC_Log_2025-09-01_22.csv").read_text(encoding="utf-8")
    lines = content.splitlines()

    assert created == [True, False, False, False, False, False]
    assert content.count("Timestamp (24hr datetime)") == 1
    assert content.startswith(HEADER)
    assert len(lines) == 7
    assert manager.files_created == 1
    assert manager.rows_written == 6


def test_existing_file_is_never_overwritten(tmp_path) -> None:
    path = tmp_path / "OPC_Log_2025-09-01_22.csv"
    path.write_text("earlier run header\nearlier row\n", encoding="utf-8")
    manager = LogBucketManager(tmp_path, NAMES)

    bucket = manager.resolve_bucket(_at(22, 30))
    assert manager.ensure_header(bucket) is False
    manager.append_row(bucket, Row(_at(22, 30), _values(1)))

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[:2] == ["earlier run header", "earlier row"]
    assert lines[2].startswith("2025-09-01 22:30:00,")


def test_rows_are_newline_terminated_lf(tmp_path) -> None:
    manager = LogBucketManager(tmp_path, NAMES)
    bucket = manager.resolve_bucket(_at(22))
    manager.ensure_header(bucket)
    manager.append_row(bucket, Row(_at(22), _values(0)))

    raw = (tmp_path / bucket.filename).read_bytes()

    assert raw.endswith(b"\n")
    assert b"\r" not in raw


def test_hour_crossing_creates_second_file_with_own_header(tmp_path) -> None:
    manager = LogBucketManager(tmp_path, NAMES)

    first = manager.resolve_bucket(_at(22, 59, 30))
    manager.ensure_header(first)
    manager.append_row(first, Row(_at(22, 59, 30), _values(1)))

    second = manager.resolve_bucket(_at(23, 0, 30))
    manager.ensure_header(second)
    manager.append_row(second, Row(_at(23, 0, 30), _values(2)))

    old_lines = (tmp_path / "OPC_Log_2025-09-01_22.csv").read_text().splitlines()
    new_lines = (tmp_path / "OPC_Log_2025-09-01_23.csv").read_text().splitlines()

    assert first != second
    assert manager.current_bucket == second
    assert old_lines[0] + "\n" == HEADER
    assert new_lines[0] + "\n" == HEADER
    assert old_lines[1:] == ["2025-09-01 22:59:30,1756767570," + ",".join(_values(1))]
    assert new_lines[1:] == ["2025-09-01 23:00:30,1756767630," + ",".join(_values(2))]


def test_row_rendering() -> None:
    row = Row(_at(22, 47, 15), [f"{v:.4f}" for v in range(10, 101, 10)])

    assert ",".join(row.to_fields()) == (
        "2025-09-01 22:47:15,1756766835,"
        "10.0000,20.0000,30.0000,40.0000,50.0000,"
        "60.0000,70.0000,80.0000,90.0000,100.0000"
    )


def test_append_rejects_wrong_field_count(tmp_path) -> None:
    manager = LogBucketManager(tmp_path, NAMES)
    bucket = manager.resolve_bucket(_at(22))
    manager.ensure_header(bucket)

    with pytest.raises(FormatError):
        manager.append_row(bucket, Row(_at(22), ["1.0000"]))

    assert (tmp_path / bucket.filename).read_text(encoding="utf-8") == HEADER
    assert manager.rows_written == 0


def test_header_lists_configured_point_names(tmp_path) -> None:
    manager = LogBucketManager(tmp_path / "nested" / "dir", ["Flow", "Pressure"])
    bucket = manager.resolve_bucket(_at(8))

    manager.ensure_header(bucket)

    assert (tmp_path / "nested" / "dir" / bucket.filename).read_text(encoding="utf-8") == (
        "Timestamp (24hr datetime),Timestamp (epochtime UTC),Flow,Pressure\n"
    )
