"""
pms_engines.scoring -- Grade ladder, weighted category scores and period-score assembly.

Responsibility:
    Turn raw evaluation inputs (category scores, behavioural ratings,
    self/supervisor averages, HRD deductions) into period scores, score
    percentages and performance grades.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pms_kernel domain types, exceptions and logging.

Invariants enforced:
    - Decimal-only arithmetic: floats are refused with TypeError so that
      percentage arithmetic never drifts.
    - The grade ladder is left-closed / right-open; a percentage sitting on
      a boundary (30, 50, 66, 80, 90) maps to the higher band.
    - Category weights must sum to 100 within 0.01.  Imbalance is reported,
      never corrected.
    - A rating of exactly zero means "not rated" and is excluded from
      behavioural averages.
    - HRD deductions never drive a score below zero.
    - Division by a zero ``max_points`` yields 0%, never an exception.
    - Determinism: identical inputs always produce identical outputs.

Failure modes:
    - NoScoreDataError from ``calculate_weighted_category_score`` on an empty
      input.
    - WeightsNotBalancedError (carrying expected and actual totals) from
      ``validate_category_weights`` and the weighted score.
    - TypeError when a float is passed where a Decimal is expected.

Usage:
    from decimal import Decimal
    from pms_engines.scoring import calculate_period_score

    result = calculate_period_score(
        work_product_score=Decimal("40"),
        objective_score=Decimal("25"),
        competency_score=Decimal("15"),
        max_points=Decimal("100"),
        hrd_deduction=Decimal("5"),
    )
    result.grade  # PerformanceGrade.COMPETENT
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from pms_engines.tracer import traced_engine
from pms_kernel.domain.scoring import (
    CategoryScore,
    CompetencyScoreResult,
    PerformanceGrade,
    ScoringResult,
)
from pms_kernel.exceptions import NoScoreDataError, WeightsNotBalancedError
from pms_kernel.logging_config import get_logger

logger = get_logger("engines.scoring")

ZERO = Decimal("0")
HUNDRED = Decimal("100")
WEIGHT_TOLERANCE = Decimal("0.01")
UNDER_PERFORMANCE_CUTOFF = Decimal("50")

# Lower bound (inclusive) of each band above Probation, highest first.
GRADE_THRESHOLDS: tuple[tuple[Decimal, PerformanceGrade], ...] = (
    (Decimal("90"), PerformanceGrade.EXEMPLARY),
    (Decimal("80"), PerformanceGrade.ACCOMPLISHED),
    (Decimal("66"), PerformanceGrade.COMPETENT),
    (Decimal("50"), PerformanceGrade.PROGRESSIVE),
    (Decimal("30"), PerformanceGrade.DEVELOPING),
)


def _to_decimal(value: Decimal | int | str, name: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError(f"{name} must be Decimal, not float")
    if isinstance(value, bool):
        raise TypeError(f"{name} must be Decimal, not bool")
    if isinstance(value, (int, str)):
        return Decimal(value)
    raise TypeError(f"{name} must be Decimal, got {type(value).__name__}")


@traced_engine("scoring", "1.0", fingerprint_fields=("score_percentage",))
def determine_grade(score_percentage: Decimal) -> PerformanceGrade:
    """Map a score percentage onto the grade ladder.

    Total over all Decimals: anything below 30 (including negatives) is
    Probation, anything from 90 upwards is Exemplary.
    """
    pct = _to_decimal(score_percentage, "score_percentage")
    for lower_bound, grade in GRADE_THRESHOLDS:
        if pct >= lower_bound:
            return grade
    return PerformanceGrade.PROBATION


def calculate_work_product_outcome(
    timeliness: Decimal,
    quality: Decimal,
    output: Decimal,
) -> Decimal:
    """Sum of the three work-product evaluation dimensions."""
    return (
        _to_decimal(timeliness, "timeliness")
        + _to_decimal(quality, "quality")
        + _to_decimal(output, "output")
    )


def validate_category_weights(weights: Iterable[Decimal]) -> None:
    """Check that ``weights`` sum to 100 within 0.01.

    Raises:
        WeightsNotBalancedError: carrying the expected and actual totals.
    """
    total = sum((_to_decimal(w, "weight") for w in weights), ZERO)
    if abs(total - HUNDRED) > WEIGHT_TOLERANCE:
        logger.warning(
            "category_weights_not_balanced",
            extra={"expected_total": str(HUNDRED), "actual_total": str(total)},
        )
        raise WeightsNotBalancedError(
            expected_total=HUNDRED,
            actual_total=total,
            tolerance=WEIGHT_TOLERANCE,
        )


@traced_engine("scoring", "1.0", fingerprint_fields=("category_scores",))
def calculate_weighted_category_score(
    category_scores: Iterable[CategoryScore],
) -> Decimal:
    """
    Weighted sum across categories.

    Formula: sum(score x weight / 100)

    Preconditions:
        Weights are percentages summing to 100 (+/- 0.01).

    Raises:
        NoScoreDataError: if ``category_scores`` is empty.
        WeightsNotBalancedError: if the weights are out of tolerance.
    """
    category_scores = tuple(category_scores)
    if not category_scores:
        raise NoScoreDataError("weighted category score")

    validate_category_weights(cs.weight for cs in category_scores)

    total = ZERO
    for cs in category_scores:
        total += _to_decimal(cs.score, "score") * cs.weight / HUNDRED
    return total


def calculate_behavioral_review_average(ratings: Iterable[Decimal]) -> Decimal:
    """Mean of the non-zero ratings; zero when nothing was rated."""
    rated = [r for r in (_to_decimal(r, "rating") for r in ratings) if r != ZERO]
    if not rated:
        return ZERO
    return sum(rated, ZERO) / Decimal(len(rated))


def calculate_technical_weighted_score(
    self_average: Decimal,
    supervisor_average: Decimal,
    self_weight: Decimal,
    supervisor_weight: Decimal,
) -> Decimal:
    """Self/supervisor blend for technical reviews.

    The two weights are not required to sum to 100.
    """
    self_part = _to_decimal(self_average, "self_average") * _to_decimal(
        self_weight, "self_weight"
    ) / HUNDRED
    supervisor_part = _to_decimal(
        supervisor_average, "supervisor_average"
    ) * _to_decimal(supervisor_weight, "supervisor_weight") / HUNDRED
    return self_part + supervisor_part


def calculate_competency_gap(
    expected: Decimal,
    actual: Decimal,
) -> tuple[Decimal, bool]:
    """Shortfall of ``actual`` below ``expected``.

    Returns:
        (gap, has_gap) where gap = max(0, expected - actual).
    """
    diff = _to_decimal(expected, "expected") - _to_decimal(actual, "actual")
    if diff <= ZERO:
        return ZERO, False
    return diff, True


def apply_hrd_deduction(score: Decimal, deduction: Decimal) -> Decimal:
    """Subtract HRD-deducted points, floored at zero."""
    result = _to_decimal(score, "score") - _to_decimal(deduction, "deduction")
    if result < ZERO:
        return ZERO
    return result


def calculate_score_percentage(score: Decimal, max_points: Decimal) -> Decimal:
    """``score / max_points x 100``; zero when ``max_points`` is zero."""
    max_points = _to_decimal(max_points, "max_points")
    if max_points == ZERO:
        return ZERO
    return _to_decimal(score, "score") / max_points * HUNDRED


def calculate_competency_score(
    competency_id: str,
    ratings: Iterable[Decimal],
    expected_rating: Decimal,
) -> CompetencyScoreResult:
    """Average the ratings for one competency and measure its gap."""
    expected = _to_decimal(expected_rating, "expected_rating")
    average = calculate_behavioral_review_average(ratings)
    gap, has_gap = calculate_competency_gap(expected, average)
    return CompetencyScoreResult(
        competency_id=competency_id,
        average_rating=average,
        expected_rating=expected,
        gap=gap,
        has_gap=has_gap,
    )


@traced_engine(
    "scoring",
    "1.0",
    fingerprint_fields=(
        "work_product_score",
        "objective_score",
        "competency_score",
        "max_points",
        "hrd_deduction",
    ),
)
def calculate_period_score(
    work_product_score: Decimal,
    objective_score: Decimal,
    competency_score: Decimal,
    max_points: Decimal,
    hrd_deduction: Decimal = ZERO,
    category_scores: Sequence[CategoryScore] = (),
) -> ScoringResult:
    """
    Assemble the final period score.

    Formula:
        final      = work_product + objective + competency
        adjusted   = max(0, final - hrd_deduction)
        percentage = adjusted / max_points x 100   (0 when max_points is 0)
        grade      = determine_grade(percentage)

    Postconditions:
        ``final_score`` holds the adjusted score.  ``is_under_performing``
        is True when the percentage is below 50.  ``category_breakdown``
        is the given ``category_scores`` as a tuple.
    """
    final = (
        _to_decimal(work_product_score, "work_product_score")
        + _to_decimal(objective_score, "objective_score")
        + _to_decimal(competency_score, "competency_score")
    )
    adjusted = apply_hrd_deduction(final, hrd_deduction)
    percentage = calculate_score_percentage(adjusted, max_points)
    grade = determine_grade(percentage)
    under_performing = percentage < UNDER_PERFORMANCE_CUTOFF

    logger.debug(
        "period_score_calculated",
        extra={
            "final_score": str(adjusted),
            "score_percentage": str(percentage),
            "grade": grade.value,
            "is_under_performing": under_performing,
        },
    )

    return ScoringResult(
        final_score=adjusted,
        score_percentage=percentage,
        grade=grade,
        is_under_performing=under_performing,
        category_breakdown=tuple(category_scores),
    )
