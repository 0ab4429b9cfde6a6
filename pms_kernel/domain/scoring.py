"""
Scoring domain types (``pms_kernel.domain.scoring``).

Pure value objects consumed and produced by ``pms_engines.scoring``.
All numeric fields are ``Decimal``; floats are never accepted.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class PerformanceGrade(str, Enum):
    """Performance bands, lowest first."""

    PROBATION = "Probation"
    DEVELOPING = "Developing"
    PROGRESSIVE = "Progressive"
    COMPETENT = "Competent"
    ACCOMPLISHED = "Accomplished"
    EXEMPLARY = "Exemplary"

    @property
    def rank(self) -> int:
        """1-based position in the ladder (Probation = 1)."""
        return list(PerformanceGrade).index(self) + 1


@dataclass(frozen=True)
class CategoryScore:
    """One category line-item for weighted aggregation.

    ``weight`` is a percentage (30 means 30%).
    """

    category_id: str
    score: Decimal
    weight: Decimal
    max_points: Decimal = Decimal("0")


@dataclass(frozen=True)
class ScoringResult:
    """Output of one period-score computation.  Immutable."""

    final_score: Decimal
    score_percentage: Decimal
    grade: PerformanceGrade
    is_under_performing: bool
    category_breakdown: tuple[CategoryScore, ...] = ()


@dataclass(frozen=True)
class CompetencyScoreResult:
    """Gap analysis for a single competency."""

    competency_id: str
    average_rating: Decimal
    expected_rating: Decimal
    gap: Decimal
    has_gap: bool
