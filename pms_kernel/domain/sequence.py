"""
Sequence domain types (``pms_kernel.domain.sequence``).

Sequence-type tags identify independent counter series; ``CodeFormat``
describes how a value from a series is rendered into a reference code.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class SequenceType(IntEnum):
    """Counter series tags.  Integer values are the persisted keys."""

    CATEGORY_DEFINITIONS = 1
    CATEGORY_MAPPING = 2
    PERFORMANCE_GRADE = 3
    REVIEW_PERIOD = 4
    OBJECTIVE = 5
    OBJECTIVE_PERIOD_MAPPING = 6
    WORK_PRODUCT = 7
    WORK_PRODUCT_ASSIGNMENT = 8
    WORK_PRODUCT_EVALUATION = 9
    FEEDBACK_REQUEST = 10
    FEEDBACK_RESPONSE = 11
    ENTERPRISE_PRIORITY = 12
    REVIEW_PERIOD_EXTENSION = 13
    JOB_GRADE_GROUP = 14
    GRIEVANCE = 15
    GRIEVANCE_COMMENT = 16
    PROJECT = 17
    PROJECT_MEMBER_ASSIGNMENT = 18
    PROJECT_MILESTONE = 19
    PROJECT_OBJECTIVE = 20
    COMMITTEE = 21
    COMMITTEE_MEMBER_ASSIGNMENT = 22
    COMMITTEE_OBJECTIVE = 23
    WORK_PRODUCT_DEFINITION = 24
    COMPETENCY_CATEGORY = 25
    COMPETENCY = 26
    COMPETENCY_REQUIREMENT = 27
    COMPETENCY_ASSESSMENT = 28
    COMPETENCY_DEVELOPMENT_PLAN = 29
    COMPETENCY_DEVELOPMENT_TASK = 30
    COMPETENCY_DEVELOPMENT_TASK_UPDATE = 31
    OBJECTIVE_OUTCOME_PERIOD_MAPPING = 32
    DEPT_OBJECTIVE = 33
    DEPT_OBJECTIVE_OUTCOME_PERIOD_MAPPING = 34
    REVIEW_PERIOD_360 = 35
    REVIEW_PERIOD_360_FEEDBACK = 36
    REVIEW_PERIOD_360_FEEDBACK_RESPONSE = 37
    CONFIG_ITEM = 38
    GLOBAL_SETTING = 39
    LINE_MANAGER_GRADING = 40
    LINE_MANAGER_OBJECTIVE_CATEGORY = 41
    REVIEW_PERIOD_STAFF_PERFORMANCE = 42
    NORMALIZATION = 43
    ORGANOGRAM_PERIOD_OBJECTIVE_OUTCOME_GRADE = 44
    PROJECT_WORK_PRODUCT_DEFINITION = 45
    COMMITTEE_WORK_PRODUCT_DEFINITION = 46
    SUSPENSION = 47
    AUDIT_LOG = 48
    STRATEGY = 49
    STRATEGIC_THEME = 50
    ENTERPRISE_OBJECTIVE = 51
    DIVISION_OBJECTIVE = 52
    OFFICE_OBJECTIVE = 53
    OBJECTIVE_CATEGORY = 54
    PMS_COMPETENCY = 55
    FEEDBACK_QUESTIONNAIRE = 56
    FEEDBACK_QUESTIONNAIRE_OPTION = 57
    EVALUATION_OPTION = 58
    DEPARTMENT_OBJECTIVE = 59

    @property
    def description(self) -> str:
        return f"SequenceNumberType_{int(self)}"


class ConcatPosition(str, Enum):
    """Where the concat string goes relative to the padded number."""

    BEFORE = "before"
    AFTER = "after"


@dataclass(frozen=True)
class CounterState:
    """Snapshot of one counter row.

    ``next_number`` is the number the *next* caller will receive, not the
    one most recently issued.
    """

    sequence_type: int
    next_number: int
    description: str = ""


@dataclass(frozen=True)
class CodeFormat:
    """Rendering rule for one sequence series."""

    digit_width: int
    concat: str = ""
    position: ConcatPosition = ConcatPosition.BEFORE
