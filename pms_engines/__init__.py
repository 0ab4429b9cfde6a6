"""
Module: pms_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for
    ``pms_services`` and for orchestrating services outside this library.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pms_kernel domain types, exceptions and logging.
    MUST NOT import pms_services or pms_config.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Transition times are
      passed in as ``now`` by the caller, which owns the Clock.
    - Decimal-only arithmetic for every score and percentage.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from pms_engines.scoring import calculate_period_score, determine_grade
    from pms_engines.workflow import WorkflowEngine, apply_approval
    from pms_engines.review_period import period_start, period_end
"""

from pms_kernel.logging_config import get_logger

logger = get_logger("engines")

from pms_engines.review_period import (  # noqa: E402
    period_end,
    period_start,
    validate_range_value,
)
from pms_engines.scoring import (  # noqa: E402
    apply_hrd_deduction,
    calculate_behavioral_review_average,
    calculate_competency_gap,
    calculate_competency_score,
    calculate_period_score,
    calculate_score_percentage,
    calculate_technical_weighted_score,
    calculate_weighted_category_score,
    calculate_work_product_outcome,
    determine_grade,
    validate_category_weights,
)
from pms_engines.tracer import traced_engine  # noqa: E402
from pms_engines.workflow import (  # noqa: E402
    STATUS_CHANGE_FIELDS,
    WorkflowEngine,
    apply_approval,
    apply_hrd_approval,
    apply_hrd_rejection,
    apply_line_manager_approval,
    apply_rejection,
    apply_resubmission,
    apply_return,
    apply_status_change,
    reset_workflow,
)

__all__ = [
    # Review periods
    "period_end",
    "period_start",
    "validate_range_value",
    # Scoring
    "apply_hrd_deduction",
    "calculate_behavioral_review_average",
    "calculate_competency_gap",
    "calculate_competency_score",
    "calculate_period_score",
    "calculate_score_percentage",
    "calculate_technical_weighted_score",
    "calculate_weighted_category_score",
    "calculate_work_product_outcome",
    "determine_grade",
    "validate_category_weights",
    # Tracing
    "traced_engine",
    # Workflow
    "STATUS_CHANGE_FIELDS",
    "WorkflowEngine",
    "apply_approval",
    "apply_hrd_approval",
    "apply_hrd_rejection",
    "apply_line_manager_approval",
    "apply_rejection",
    "apply_resubmission",
    "apply_return",
    "apply_status_change",
    "reset_workflow",
]
