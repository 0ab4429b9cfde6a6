"""
pms_engines.review_period -- Review-period range validation and date boundaries.

Responsibility:
    Validate the segment number for a review-period range (quarter, half,
    year) and compute the first and last instants of that segment.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock access.

Invariants enforced:
    - Quarterly accepts 1..4, bi-annual 1..2, annual exactly 1.
    - Boundaries are UTC: start at 00:00:00 on the first day of the first
      month of the segment, end at 23:59:59 on the last day of its last
      month (Q1 ends 31 March, H1 ends 30 June, the year ends 31 December).

Failure modes:
    - InvalidRangeValueError for an out-of-range segment number.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timezone

from pms_kernel.domain.review_period import ReviewPeriodRange
from pms_kernel.exceptions import InvalidRangeValueError


def validate_range_value(period_range: ReviewPeriodRange, value: int) -> None:
    """Raise InvalidRangeValueError unless ``value`` names a segment of ``period_range``."""
    period_range = ReviewPeriodRange(period_range)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRangeValueError(period_range, value, period_range.segments)
    if value < 1 or value > period_range.segments:
        raise InvalidRangeValueError(period_range, value, period_range.segments)


def period_start(year: int, period_range: ReviewPeriodRange, value: int) -> datetime:
    """First instant of segment ``value`` of ``year``."""
    validate_range_value(period_range, value)
    months = ReviewPeriodRange(period_range).months_per_segment
    month = (value - 1) * months + 1
    return datetime(year, month, 1, tzinfo=timezone.utc)


def period_end(year: int, period_range: ReviewPeriodRange, value: int) -> datetime:
    """Last second of segment ``value`` of ``year``."""
    validate_range_value(period_range, value)
    month = value * ReviewPeriodRange(period_range).months_per_segment
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, last_day, 23, 59, 59, tzinfo=timezone.utc)
