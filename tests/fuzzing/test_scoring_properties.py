"""
Hypothesis property tests for the scoring engine.

Invariants checked over generated inputs:
- The grade ladder is monotonic and total
- HRD deductions never produce a negative score
- Behavioural averages ignore unrated (zero) entries
- Competency gaps are never negative
- Period scores agree with their own percentage and grade
- Repeated period-score calls return identical results
- Balanced category weights always aggregate within the score range
"""

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from pms_engines.scoring import (
    apply_hrd_deduction,
    calculate_behavioral_review_average,
    calculate_competency_gap,
    calculate_period_score,
    calculate_weighted_category_score,
    determine_grade,
)
from pms_kernel.domain.scoring import CategoryScore, PerformanceGrade

scores = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("1000"), places=2,
    allow_nan=False, allow_infinity=False,
)
percentages = st.decimals(
    min_value=Decimal("-100"), max_value=Decimal("200"), places=2,
    allow_nan=False, allow_infinity=False,
)
ratings = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("5"), places=1,
    allow_nan=False, allow_infinity=False,
)


class TestGradeProperties:

    @given(a=percentages, b=percentages)
    def test_monotonic(self, a, b):
        low, high = sorted((a, b))
        assert determine_grade(low).rank <= determine_grade(high).rank

    @given(pct=percentages)
    def test_total(self, pct):
        assert determine_grade(pct) in set(PerformanceGrade)


class TestDeductionProperties:

    @given(score=scores, deduction=scores)
    def test_never_negative(self, score, deduction):
        result = apply_hrd_deduction(score, deduction)
        assert result >= 0
        assert result <= score


class TestAverageProperties:

    @given(values=st.lists(ratings, max_size=20))
    def test_zeros_do_not_change_average(self, values):
        with_zeros = values + [Decimal("0")] * 3
        assert calculate_behavioral_review_average(with_zeros) == (
            calculate_behavioral_review_average(values)
        )

    @given(values=st.lists(ratings, min_size=1, max_size=20))
    def test_average_within_rated_range(self, values):
        rated = [v for v in values if v != 0]
        average = calculate_behavioral_review_average(values)
        if rated:
            assert min(rated) <= average <= max(rated)
        else:
            assert average == 0


class TestGapProperties:

    @given(expected=ratings, actual=ratings)
    def test_gap_never_negative(self, expected, actual):
        gap, has_gap = calculate_competency_gap(expected, actual)
        assert gap >= 0
        assert has_gap == (gap > 0)
        assert has_gap == (actual < expected)


class TestPeriodScoreProperties:

    @settings(max_examples=50)
    @given(
        wp=scores, obj=scores, comp=scores, deduction=scores,
        max_points=st.decimals(
            min_value=Decimal("1"), max_value=Decimal("3000"), places=0,
            allow_nan=False, allow_infinity=False,
        ),
    )
    def test_result_self_consistent(self, wp, obj, comp, deduction, max_points):
        result = calculate_period_score(wp, obj, comp, max_points, deduction)

        assert result.final_score >= 0
        assert result.grade == determine_grade(result.score_percentage)
        assert result.is_under_performing == (result.score_percentage < 50)

    @settings(max_examples=50)
    @given(
        wp=scores, obj=scores, comp=scores, deduction=scores,
        max_points=st.decimals(
            min_value=Decimal("0"), max_value=Decimal("3000"), places=2,
            allow_nan=False, allow_infinity=False,
        ),
    )
    def test_repeated_call_is_identical(self, wp, obj, comp, deduction, max_points):
        args = (wp, obj, comp, max_points, deduction)
        first = calculate_period_score(*args)
        second = calculate_period_score(*args)

        assert first == second
        # Equal Decimals can differ in exponent; compare the exact digits too
        assert first.final_score.as_tuple() == second.final_score.as_tuple()
        assert first.score_percentage.as_tuple() == second.score_percentage.as_tuple()


class TestWeightedScoreProperties:

    @given(
        category_scores=st.lists(scores, min_size=1, max_size=10),
    )
    def test_balanced_weights_stay_in_range(self, category_scores):
        # Equal integer weights with the remainder on the first category
        n = len(category_scores)
        base = Decimal(100 // n)
        weights = [base] * n
        weights[0] += Decimal(100) - base * n
        items = [
            CategoryScore(f"c{i}", score, weight)
            for i, (score, weight) in enumerate(zip(category_scores, weights))
        ]

        total = calculate_weighted_category_score(items)
        assert min(category_scores) <= total <= max(category_scores)
