"""Review-period range types (``pms_kernel.domain.review_period``)."""

from __future__ import annotations

from enum import IntEnum


class ReviewPeriodRange(IntEnum):
    """How a year is divided into review periods."""

    QUARTERLY = 1
    BI_ANNUAL = 2
    ANNUAL = 3

    @property
    def segments(self) -> int:
        """Number of periods per year for this range."""
        return _SEGMENTS[self]

    @property
    def months_per_segment(self) -> int:
        return 12 // _SEGMENTS[self]


_SEGMENTS: dict[ReviewPeriodRange, int] = {
    ReviewPeriodRange.QUARTERLY: 4,
    ReviewPeriodRange.BI_ANNUAL: 2,
    ReviewPeriodRange.ANNUAL: 1,
}
