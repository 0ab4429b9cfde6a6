"""
pms_services.lifecycles -- Per-record-type operation tables.

Responsibility:
    Declare, for each workflow record type, the closed map from
    ``OperationType`` to the engine step it triggers and the transition
    rule table (if any) that constrains its source statuses.

Architecture position:
    Services layer -- declarative data consumed by ``WorkflowExecutor``.
    No logic beyond lookup.

Invariants enforced:
    - An operation absent from a lifecycle's ``steps`` is unsupported for
      that record type.  Only the work-product lifecycle names a legacy
      fallback, and the executor honours it only when configured to.
    - ``STATUS_CHANGE`` steps name a target present in the engine's
      status-change table (checked by the test suite).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from pms_engines.workflow import BASE_RULES, HRD_RULES, REVIEW_PERIOD_RULES
from pms_kernel.domain.statuses import OperationType, Status
from pms_kernel.domain.workflow import TransitionRule


class StepKind(str, Enum):
    """Which engine transition an operation maps to."""

    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"
    RESUBMIT = "resubmit"
    STATUS_CHANGE = "status_change"
    TOUCH = "touch"  # edit without a status change; records updated_by only


@dataclass(frozen=True)
class LifecycleStep:
    kind: StepKind
    target: Status | None = None


def _status(target: Status) -> LifecycleStep:
    return LifecycleStep(StepKind.STATUS_CHANGE, target)


_APPROVE = LifecycleStep(StepKind.APPROVE)
_REJECT = LifecycleStep(StepKind.REJECT)
_RETURN = LifecycleStep(StepKind.RETURN)
_RESUBMIT = LifecycleStep(StepKind.RESUBMIT)
_TOUCH = LifecycleStep(StepKind.TOUCH)


@dataclass(frozen=True)
class Lifecycle:
    """
    The workflow of one record type.

    Contract:
        ``rules`` (when set) restrict every status-changing step to the
        transitions of that table.  ``two_level`` routes approvals and
        rejections through the line-manager and HRD levels.
        ``legacy_fallback`` is the operation unknown codes are treated as
        when the executor enables the legacy behaviour.
    """

    name: str
    steps: Mapping[OperationType, LifecycleStep]
    rules: tuple[TransitionRule, ...] | None = None
    two_level: bool = False
    legacy_fallback: OperationType | None = None
    authorized_operations: frozenset[OperationType] = field(
        default_factory=lambda: frozenset({OperationType.APPROVE, OperationType.REJECT})
    )

    def step_for(self, operation: OperationType) -> LifecycleStep | None:
        return self.steps.get(operation)

    @property
    def operations(self) -> frozenset[OperationType]:
        return frozenset(self.steps)


WORK_PRODUCT = Lifecycle(
    name="work_product",
    steps={
        OperationType.DRAFT: _status(Status.DRAFT),
        OperationType.ADD: _status(Status.PENDING_APPROVAL),
        OperationType.UPDATE: _TOUCH,
        OperationType.APPROVE: _APPROVE,
        OperationType.REJECT: _REJECT,
        OperationType.RETURN: _RETURN,
        OperationType.RE_SUBMIT: _RESUBMIT,
        OperationType.CLOSE: _status(Status.CLOSED),
        OperationType.PAUSE: _status(Status.PAUSED),
        OperationType.CANCEL: _status(Status.CANCELLED),
        OperationType.ACCEPT: _status(Status.AWAITING_EVALUATION),
        OperationType.COMPLETE: _status(Status.PENDING_ACCEPTANCE),
        OperationType.SUSPEND: _status(Status.SUSPENDED),
        OperationType.RESUME: _status(Status.ACTIVE),
    },
    legacy_fallback=OperationType.ADD,
)

WORK_PRODUCT_TASK = Lifecycle(
    name="work_product_task",
    steps={
        OperationType.ADD: _status(Status.ACTIVE),
        OperationType.UPDATE: _TOUCH,
        OperationType.COMPLETE: _status(Status.COMPLETED),
        OperationType.CANCEL: _status(Status.CANCELLED),
    },
)

_ASSIGNED_WORK_PRODUCT_STEPS: dict[OperationType, LifecycleStep] = {
    OperationType.ADD: _status(Status.PENDING_APPROVAL),
    OperationType.UPDATE: _TOUCH,
    OperationType.APPROVE: _APPROVE,
    OperationType.REJECT: _REJECT,
    OperationType.CANCEL: _status(Status.CANCELLED),
}

PROJECT_ASSIGNED_WORK_PRODUCT = Lifecycle(
    name="project_assigned_work_product",
    steps=_ASSIGNED_WORK_PRODUCT_STEPS,
)

COMMITTEE_ASSIGNED_WORK_PRODUCT = Lifecycle(
    name="committee_assigned_work_product",
    steps=_ASSIGNED_WORK_PRODUCT_STEPS,
)

REVIEW_PERIOD = Lifecycle(
    name="review_period",
    steps={
        OperationType.ADD: _status(Status.PENDING_APPROVAL),
        OperationType.COMMIT_DRAFT: _status(Status.PENDING_APPROVAL),
        OperationType.UPDATE: _TOUCH,
        OperationType.APPROVE: _APPROVE,
        OperationType.REJECT: _REJECT,
        OperationType.RETURN: _RETURN,
        OperationType.RE_SUBMIT: _RESUBMIT,
        OperationType.CLOSE: _status(Status.CLOSED),
        OperationType.CANCEL: _status(Status.CANCELLED),
    },
    rules=REVIEW_PERIOD_RULES,
)

OBJECTIVE = Lifecycle(
    name="objective",
    steps={
        OperationType.ADD: _status(Status.PENDING_APPROVAL),
        OperationType.COMMIT_DRAFT: _status(Status.PENDING_APPROVAL),
        OperationType.UPDATE: _TOUCH,
        OperationType.APPROVE: _APPROVE,
        OperationType.REJECT: _REJECT,
        OperationType.RETURN: _RETURN,
        OperationType.RE_SUBMIT: _RESUBMIT,
        OperationType.CANCEL: _status(Status.DEACTIVATED),
        OperationType.DELETE: _status(Status.DEACTIVATED),
        OperationType.CLOSE: _status(Status.CLOSED),
    },
    rules=BASE_RULES,
)

COMPETENCY_REVIEW = Lifecycle(
    name="competency_review",
    steps={
        OperationType.ADD: _status(Status.PENDING_APPROVAL),
        OperationType.COMMIT_DRAFT: _status(Status.PENDING_APPROVAL),
        OperationType.UPDATE: _TOUCH,
        OperationType.APPROVE: _APPROVE,
        OperationType.REJECT: _REJECT,
        OperationType.RETURN: _RETURN,
        OperationType.RE_SUBMIT: _RESUBMIT,
        OperationType.CLOSE: _status(Status.CLOSED),
    },
    rules=HRD_RULES,
    two_level=True,
)

ALL_LIFECYCLES: tuple[Lifecycle, ...] = (
    WORK_PRODUCT,
    WORK_PRODUCT_TASK,
    PROJECT_ASSIGNED_WORK_PRODUCT,
    COMMITTEE_ASSIGNED_WORK_PRODUCT,
    REVIEW_PERIOD,
    OBJECTIVE,
    COMPETENCY_REVIEW,
)
