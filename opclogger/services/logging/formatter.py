"""
Value Formatter

Turns one batch read into the CSV data fields for a row.
"""

import math
from typing import Sequence

from opclogger.common.config import PointConfig
from opclogger.common.exceptions import FormatError
from opclogger.services.session.client import ReadResult

MISSING_VALUE = "N/A"
DECIMALS = 4


def format_value(result: ReadResult | None) -> str:
    """Render one read result: 4 decimals, or N/A if it failed or is missing."""
    if result is None or not result.success or result.value is None:
        return MISSING_VALUE

    value = result.value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return MISSING_VALUE
    if not math.isfinite(value):
        return MISSING_VALUE

    return f"{value:.{DECIMALS}f}"


def format_values(points: Sequence[PointConfig], results: Sequence[ReadResult]) -> list[str]:
    """
    Format a batch result against the configured points.

    output[i] always corresponds to points[i] and len(output) == len(points).
    A result list shorter than the point list yields N/A for the tail;
    a longer one means results and points no longer line up.

    Raises:
        FormatError: more results than configured points
    """
    if len(results) > len(points):
        raise FormatError("Batch result longer than point list", len(points), len(results))

    fields = [format_value(result) for result in results]
    fields.extend(MISSING_VALUE for _ in range(len(points) - len(fields)))
    return fields
