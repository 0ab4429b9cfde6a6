"""
pms_engines.workflow -- Generic workflow state machine over any workflow record.

Responsibility:
    Compute the field set produced by each workflow transition (approval,
    rejection, return, two-level HRD approval, reset and the table-driven
    status changes) and validate transitions against a closed rule table.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock access.
    Records are reached through the ``WorkflowRecord`` protocol only; the
    current time is passed in as ``now``.  Callers persist the returned
    ``WorkflowUpdate``.

Invariants enforced:
    - Every update sets ``status`` and ``updated_by``.
    - At most one of ``is_approved`` / ``is_rejected`` is true after an
      update is applied.
    - ``is_active`` is false whenever the resulting status is Cancelled.
    - Audit attribution (approved_by, rejected_by, ...) is written only by
      the transition that produces the corresponding status.
    - ``STATUS_CHANGE_FIELDS`` is closed: every status is either mapped
      there or reserved for a dedicated transition.  An unmapped target is
      a data-integrity failure.

Failure modes:
    - RejectionReasonRequiredError: empty reason on a rejection.
    - AlreadyApprovedError / AlreadyRejectedError: repeated approval or
      rejection.  The record is left untouched.
    - InvalidTransitionError: source status does not permit the transition.
    - UnknownStatusError: the record carries a value outside ``Status``.
    - MissingStatusMappingError: the target has no status-change entry.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pms_engines.tracer import traced_engine
from pms_kernel.domain.statuses import (
    APPROVABLE_STATUSES,
    TERMINAL_STATUSES,
    OperationType,
    Status,
)
from pms_kernel.domain.workflow import (
    HrdWorkflowRecord,
    TransitionRule,
    WorkflowRecord,
    WorkflowUpdate,
)
from pms_kernel.exceptions import (
    AlreadyApprovedError,
    AlreadyRejectedError,
    InvalidTransitionError,
    MissingStatusMappingError,
    RejectionReasonRequiredError,
)
from pms_kernel.logging_config import get_logger

logger = get_logger("engines.workflow")


class _Now:
    """Placeholder in the status-change table for the transition time."""

    def __repr__(self) -> str:
        return "NOW"


NOW = _Now()


@dataclass(frozen=True)
class StatusFieldMapping:
    """Secondary fields a status change writes.

    ``sets`` values may be ``NOW``; ``comment_field`` names the attribute
    that receives the caller's comment, if any.
    """

    sets: dict[str, Any] = field(default_factory=dict)
    comment_field: str | None = None


# Target status -> secondary fields.  An empty mapping is deliberate: the
# status is written alone.
STATUS_CHANGE_FIELDS: dict[Status, StatusFieldMapping] = {
    Status.DRAFT: StatusFieldMapping(),
    Status.PENDING_APPROVAL: StatusFieldMapping(),
    Status.RETURNED: StatusFieldMapping(),
    Status.CANCELLED: StatusFieldMapping(sets={"is_active": False}),
    Status.CLOSED: StatusFieldMapping(),
    Status.PAUSED: StatusFieldMapping(),
    Status.SUSPENDED: StatusFieldMapping(),
    Status.AWAITING_EVALUATION: StatusFieldMapping(comment_field="acceptance_comment"),
    Status.COMPLETED: StatusFieldMapping(sets={"completion_date": NOW}),
    Status.PENDING_ACCEPTANCE: StatusFieldMapping(
        sets={"completion_date": NOW},
        comment_field="remark",
    ),
    Status.RE_EVALUATE: StatusFieldMapping(),
    Status.ACTIVE: StatusFieldMapping(sets={"is_active": True}),
    Status.DEACTIVATED: StatusFieldMapping(sets={"is_active": False}),
    Status.PENDING_HRD_APPROVAL: StatusFieldMapping(),
}

# Reachable only through apply_approval / apply_rejection (and their HRD forms).
DEDICATED_TRANSITION_TARGETS: frozenset[Status] = frozenset({
    Status.APPROVED_AND_ACTIVE,
    Status.REJECTED,
})


def _current_status(record: WorkflowRecord) -> Status:
    return Status.parse(record.status)


def _update(
    record: WorkflowRecord,
    from_status: Status,
    to_status: Status,
    actor_id: str,
    fields: dict[str, Any],
) -> WorkflowUpdate:
    fields = {"status": to_status, **fields, "updated_by": actor_id}
    logger.debug(
        "workflow_update_computed",
        extra={
            "entity_id": record.record_id,
            "from_status": from_status.value,
            "to_status": to_status.value,
            "actor_id": actor_id,
            "fields": sorted(fields),
        },
    )
    return WorkflowUpdate(
        entity_id=record.record_id,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        fields=fields,
    )


def _require_reason(record: WorkflowRecord, reason: str | None) -> str:
    if reason is None or not reason.strip():
        raise RejectionReasonRequiredError(record.record_id)
    return reason


# ---------------------------------------------------------------------------
# Approval and rejection
# ---------------------------------------------------------------------------


@traced_engine("workflow", "1.0", fingerprint_fields=("approved_by",))
def apply_approval(
    record: WorkflowRecord,
    approved_by: str,
    *,
    now: datetime,
) -> WorkflowUpdate:
    """
    Approve a record: status ApprovedAndActive, approved and active.

    Preconditions:
        Status is Draft, PendingApproval or Returned.  Authority has
        already been confirmed by the caller.

    Raises:
        AlreadyApprovedError: status is already ApprovedAndActive.
        InvalidTransitionError: any other source status.
    """
    current = _current_status(record)
    if current == Status.APPROVED_AND_ACTIVE:
        raise AlreadyApprovedError(record.record_id, current)
    if current not in APPROVABLE_STATUSES:
        raise InvalidTransitionError(
            current,
            Status.APPROVED_AND_ACTIVE,
            record.record_id,
            "approval requires Draft, PendingApproval or Returned",
        )

    return _update(record, current, Status.APPROVED_AND_ACTIVE, approved_by, {
        "is_approved": True,
        "is_rejected": False,
        "is_active": True,
        "approved_by": approved_by,
        "date_approved": now,
        "rejection_reason": None,
    })


@traced_engine("workflow", "1.0", fingerprint_fields=("rejected_by", "reason"))
def apply_rejection(
    record: WorkflowRecord,
    rejected_by: str,
    reason: str,
    *,
    now: datetime,
) -> WorkflowUpdate:
    """
    Reject a record with a mandatory reason.

    Valid from any non-terminal status.

    Raises:
        RejectionReasonRequiredError: ``reason`` is empty or blank.
        AlreadyRejectedError: status is already Rejected.
        InvalidTransitionError: status is Cancelled, Closed or Completed.
    """
    reason = _require_reason(record, reason)
    current = _current_status(record)
    if current == Status.REJECTED:
        raise AlreadyRejectedError(record.record_id, current)
    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            current, Status.REJECTED, record.record_id, "status is terminal"
        )

    return _update(record, current, Status.REJECTED, rejected_by, {
        "is_rejected": True,
        "is_approved": False,
        "is_active": False,
        "rejected_by": rejected_by,
        "rejection_reason": reason,
        "date_rejected": now,
    })


def apply_return(
    record: WorkflowRecord,
    returned_by: str,
    reason: str | None = None,
    *,
    now: datetime,
) -> WorkflowUpdate:
    """Send a record back to its submitter for revision.

    Unlike a rejection, a returned record is edited and re-submitted rather
    than replaced.  Approval and rejection flags are cleared; ``reason`` is
    kept in ``rejection_reason`` for the submitter.
    """
    current = _current_status(record)
    if current == Status.RETURNED or current in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            current, Status.RETURNED, record.record_id, "record cannot be returned"
        )
    return _update(record, current, Status.RETURNED, returned_by, {
        "is_approved": False,
        "is_rejected": False,
        "rejection_reason": reason,
    })


# ---------------------------------------------------------------------------
# Two-level (line manager + HRD) approval
# ---------------------------------------------------------------------------


def apply_line_manager_approval(
    record: HrdWorkflowRecord,
    approved_by: str,
    *,
    now: datetime,
) -> WorkflowUpdate:
    """First approval level: escalate to PendingHRDApproval.

    The line manager is recorded in ``approved_by``; the record is not yet
    approved until HRD signs off.
    """
    current = _current_status(record)
    if current in (Status.PENDING_HRD_APPROVAL, Status.APPROVED_AND_ACTIVE):
        raise AlreadyApprovedError(record.record_id, current)
    if current not in APPROVABLE_STATUSES:
        raise InvalidTransitionError(
            current,
            Status.PENDING_HRD_APPROVAL,
            record.record_id,
            "line-manager approval requires Draft, PendingApproval or Returned",
        )
    return _update(record, current, Status.PENDING_HRD_APPROVAL, approved_by, {
        "is_approved": False,
        "is_rejected": False,
        "approved_by": approved_by,
        "date_approved": now,
        "rejection_reason": None,
    })


def apply_hrd_approval(
    record: HrdWorkflowRecord,
    approved_by: str,
    *,
    now: datetime,
) -> WorkflowUpdate:
    """Second approval level: completes the chain with ApprovedAndActive."""
    current = _current_status(record)
    if current == Status.APPROVED_AND_ACTIVE:
        raise AlreadyApprovedError(record.record_id, current)
    if current != Status.PENDING_HRD_APPROVAL:
        raise InvalidTransitionError(
            current,
            Status.APPROVED_AND_ACTIVE,
            record.record_id,
            "HRD approval requires PendingHRDApproval",
        )
    return _update(record, current, Status.APPROVED_AND_ACTIVE, approved_by, {
        "is_approved": True,
        "is_rejected": False,
        "is_active": True,
        "hrd_is_approved": True,
        "hrd_approved_by": approved_by,
        "hrd_date_approved": now,
        "hrd_is_rejected": False,
        "hrd_rejection_reason": None,
    })


def apply_hrd_rejection(
    record: HrdWorkflowRecord,
    rejected_by: str,
    reason: str,
    *,
    now: datetime,
) -> WorkflowUpdate:
    """HRD-level rejection.  Requires a reason, like any rejection."""
    reason = _require_reason(record, reason)
    current = _current_status(record)
    if current == Status.REJECTED:
        raise AlreadyRejectedError(record.record_id, current)
    if current != Status.PENDING_HRD_APPROVAL:
        raise InvalidTransitionError(
            current,
            Status.REJECTED,
            record.record_id,
            "HRD rejection requires PendingHRDApproval",
        )
    return _update(record, current, Status.REJECTED, rejected_by, {
        "is_rejected": True,
        "is_approved": False,
        "is_active": False,
        "rejected_by": rejected_by,
        "rejection_reason": reason,
        "date_rejected": now,
        "hrd_is_rejected": True,
        "hrd_is_approved": False,
        "hrd_rejected_by": rejected_by,
        "hrd_rejection_reason": reason,
        "hrd_date_rejected": now,
    })


# ---------------------------------------------------------------------------
# Reset and table-driven status changes
# ---------------------------------------------------------------------------


def _reset_fields(record: WorkflowRecord) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "is_approved": False,
        "approved_by": None,
        "date_approved": None,
        "is_rejected": False,
        "rejected_by": None,
        "rejection_reason": None,
        "date_rejected": None,
    }
    if isinstance(record, HrdWorkflowRecord):
        fields.update({
            "hrd_is_approved": False,
            "hrd_approved_by": None,
            "hrd_date_approved": None,
            "hrd_is_rejected": False,
            "hrd_rejected_by": None,
            "hrd_rejection_reason": None,
            "hrd_date_rejected": None,
        })
    return fields


def reset_workflow(record: WorkflowRecord, actor_id: str) -> WorkflowUpdate:
    """Clear every approval and rejection field.  Status is unchanged."""
    current = _current_status(record)
    return _update(record, current, current, actor_id, _reset_fields(record))


def apply_resubmission(record: WorkflowRecord, actor_id: str) -> WorkflowUpdate:
    """Put a returned (or, where allowed, rejected) record back into PendingApproval.

    Prior approval and rejection attribution is cleared so the new round
    starts clean.  Which source statuses may re-submit is decided by the
    rule table of the caller's ``WorkflowEngine``.
    """
    current = _current_status(record)
    if current == Status.PENDING_APPROVAL:
        raise InvalidTransitionError(
            current, Status.PENDING_APPROVAL, record.record_id, "already submitted"
        )
    return _update(
        record, current, Status.PENDING_APPROVAL, actor_id, _reset_fields(record)
    )


@traced_engine("workflow", "1.0", fingerprint_fields=("target_status", "actor_id"))
def apply_status_change(
    record: WorkflowRecord,
    target_status: Status,
    actor_id: str,
    *,
    now: datetime,
    comment: str | None = None,
) -> WorkflowUpdate:
    """
    Move a record to ``target_status`` using the closed status-change table.

    Postconditions:
        The update holds ``status``, ``updated_by`` and exactly the
        secondary fields mapped for the target (``NOW`` replaced by
        ``now``; the comment written to the mapped comment field, when
        both exist).

    Raises:
        InvalidTransitionError: target is ApprovedAndActive or Rejected,
            which have dedicated transitions.
        MissingStatusMappingError: target has no table entry.
        UnknownStatusError: record or target outside the enumeration.
    """
    current = _current_status(record)
    target = Status.parse(target_status)

    if target in DEDICATED_TRANSITION_TARGETS:
        raise InvalidTransitionError(
            current,
            target,
            record.record_id,
            "use the dedicated approval or rejection transition",
        )

    mapping = STATUS_CHANGE_FIELDS.get(target)
    if mapping is None:
        logger.error(
            "workflow_status_mapping_missing",
            extra={"entity_id": record.record_id, "to_status": target.value},
        )
        raise MissingStatusMappingError(target)

    fields = {
        name: (now if value is NOW else value)
        for name, value in mapping.sets.items()
    }
    if mapping.comment_field is not None and comment is not None:
        fields[mapping.comment_field] = comment

    return _update(record, current, target, actor_id, fields)


# ---------------------------------------------------------------------------
# Transition rule tables
# ---------------------------------------------------------------------------

# Source statuses in table order.  Approval starts from the approvable
# statuses; rejection from any non-terminal one.
_APPROVAL_SOURCES: tuple[Status, ...] = tuple(
    s for s in Status if s in APPROVABLE_STATUSES
)
_REJECTION_SOURCES: tuple[Status, ...] = tuple(
    s for s in Status if s not in TERMINAL_STATUSES
)


def _approval_rules(to_status: Status) -> tuple[TransitionRule, ...]:
    return tuple(
        TransitionRule(s, to_status, OperationType.APPROVE) for s in _APPROVAL_SOURCES
    )


def _rejection_rules() -> tuple[TransitionRule, ...]:
    return tuple(
        TransitionRule(s, Status.REJECTED, OperationType.REJECT) for s in _REJECTION_SOURCES
    )


BASE_RULES: tuple[TransitionRule, ...] = (
    # Submission
    TransitionRule(Status.DRAFT, Status.PENDING_APPROVAL, OperationType.COMMIT_DRAFT),
    TransitionRule(Status.DRAFT, Status.PENDING_APPROVAL, OperationType.ADD),
    # Single-level approval
    *_approval_rules(Status.APPROVED_AND_ACTIVE),
    *_rejection_rules(),
    TransitionRule(Status.PENDING_APPROVAL, Status.RETURNED, OperationType.RETURN),
    TransitionRule(Status.RETURNED, Status.PENDING_APPROVAL, OperationType.RE_SUBMIT),
    # Deactivation and reactivation
    TransitionRule(Status.APPROVED_AND_ACTIVE, Status.DEACTIVATED, OperationType.CANCEL),
    TransitionRule(Status.APPROVED_AND_ACTIVE, Status.DEACTIVATED, OperationType.DELETE),
    TransitionRule(Status.DEACTIVATED, Status.APPROVED_AND_ACTIVE, OperationType.REACTIVATE),
    # Closure and completion
    TransitionRule(Status.APPROVED_AND_ACTIVE, Status.CLOSED, OperationType.CLOSE),
    TransitionRule(Status.ACTIVE, Status.CLOSED, OperationType.CLOSE),
    TransitionRule(Status.ACTIVE, Status.COMPLETED, OperationType.COMPLETE),
)

HRD_RULES: tuple[TransitionRule, ...] = (
    TransitionRule(Status.DRAFT, Status.PENDING_APPROVAL, OperationType.COMMIT_DRAFT),
    TransitionRule(Status.DRAFT, Status.PENDING_APPROVAL, OperationType.ADD),
    # Line-manager approval escalates to HRD
    *_approval_rules(Status.PENDING_HRD_APPROVAL),
    *_rejection_rules(),
    TransitionRule(Status.PENDING_APPROVAL, Status.RETURNED, OperationType.RETURN),
    TransitionRule(Status.PENDING_HRD_APPROVAL, Status.APPROVED_AND_ACTIVE, OperationType.APPROVE),
    TransitionRule(Status.RETURNED, Status.PENDING_APPROVAL, OperationType.RE_SUBMIT),
    TransitionRule(Status.APPROVED_AND_ACTIVE, Status.DEACTIVATED, OperationType.CANCEL),
    TransitionRule(Status.APPROVED_AND_ACTIVE, Status.DEACTIVATED, OperationType.DELETE),
    TransitionRule(Status.DEACTIVATED, Status.APPROVED_AND_ACTIVE, OperationType.REACTIVATE),
    TransitionRule(Status.APPROVED_AND_ACTIVE, Status.CLOSED, OperationType.CLOSE),
    TransitionRule(Status.ACTIVE, Status.CLOSED, OperationType.CLOSE),
    TransitionRule(Status.ACTIVE, Status.COMPLETED, OperationType.COMPLETE),
)

REVIEW_PERIOD_RULES: tuple[TransitionRule, ...] = (
    TransitionRule(Status.DRAFT, Status.PENDING_APPROVAL, OperationType.COMMIT_DRAFT),
    TransitionRule(Status.DRAFT, Status.PENDING_APPROVAL, OperationType.ADD),
    *_approval_rules(Status.APPROVED_AND_ACTIVE),
    *_rejection_rules(),
    TransitionRule(Status.PENDING_APPROVAL, Status.RETURNED, OperationType.RETURN),
    # Review periods may re-submit from Rejected as well as Returned
    TransitionRule(Status.RETURNED, Status.PENDING_APPROVAL, OperationType.RE_SUBMIT),
    TransitionRule(Status.REJECTED, Status.PENDING_APPROVAL, OperationType.RE_SUBMIT),
    TransitionRule(Status.APPROVED_AND_ACTIVE, Status.CLOSED, OperationType.CLOSE),
    TransitionRule(Status.ACTIVE, Status.APPROVED_AND_ACTIVE, OperationType.APPROVE),
    TransitionRule(Status.APPROVED_AND_ACTIVE, Status.CANCELLED, OperationType.CANCEL),
    TransitionRule(Status.ACTIVE, Status.CANCELLED, OperationType.CANCEL),
)

# Raising from a before-hook aborts the transition.
TransitionHook = Callable[[Any, Status, Status, str], None]


class WorkflowEngine:
    """
    Finite-state machine over a closed rule table.

    Contract:
        Only transitions listed in ``rules`` are permitted.  ``execute``
        validates, runs the before-hook, logs, then runs the after-hook.
        The engine holds no per-record state; instances are safe to share.

    Non-goals:
        Does not compute field updates (see the ``apply_*`` functions) and
        does not persist anything.
    """

    def __init__(
        self,
        name: str,
        rules: Iterable[TransitionRule],
        before_hook: TransitionHook | None = None,
        after_hook: TransitionHook | None = None,
    ) -> None:
        self.name = name
        self._rules: tuple[TransitionRule, ...] = tuple(rules)
        self._before_hook = before_hook
        self._after_hook = after_hook

    @classmethod
    def base(cls) -> WorkflowEngine:
        """Single-level (line manager) approval, used by most record types."""
        return cls("base", BASE_RULES)

    @classmethod
    def hrd(cls) -> WorkflowEngine:
        """Two-level approval: line manager, then HRD."""
        return cls("hrd", HRD_RULES)

    @classmethod
    def review_period(cls) -> WorkflowEngine:
        return cls("review_period", REVIEW_PERIOD_RULES)

    @property
    def rules(self) -> tuple[TransitionRule, ...]:
        return self._rules

    def validate_transition(
        self,
        from_status: Status,
        to_status: Status,
        entity_id: Any = None,
    ) -> None:
        """Raise InvalidTransitionError unless a rule allows ``from -> to``."""
        from_status = Status.parse(from_status)
        to_status = Status.parse(to_status)
        for rule in self._rules:
            if rule.from_status == from_status and rule.to_status == to_status:
                return
        raise InvalidTransitionError(
            from_status, to_status, entity_id, "no matching transition rule"
        )

    def can_transition(self, from_status: Status, to_status: Status) -> bool:
        try:
            self.validate_transition(from_status, to_status)
        except InvalidTransitionError:
            return False
        return True

    def valid_transitions(self, from_status: Status) -> tuple[TransitionRule, ...]:
        """All rules leaving ``from_status``, in table order."""
        from_status = Status.parse(from_status)
        return tuple(r for r in self._rules if r.from_status == from_status)

    def rule_for(
        self,
        from_status: Status,
        operation: OperationType,
    ) -> TransitionRule | None:
        """The first rule leaving ``from_status`` via ``operation``, if any."""
        from_status = Status.parse(from_status)
        for rule in self._rules:
            if rule.from_status == from_status and rule.operation == operation:
                return rule
        return None

    def execute(
        self,
        entity_id: Any,
        from_status: Status,
        to_status: Status,
        actor_id: str,
    ) -> None:
        """Validate and announce a transition, running the hooks around it.

        Raises:
            InvalidTransitionError: no rule allows the transition.  Hooks
                are not run.
            Any exception raised by a hook propagates unchanged; a
            before-hook failure means the transition did not happen.
        """
        log_extra = {
            "workflow": self.name,
            "entity_id": entity_id,
            "actor_id": actor_id,
            "from_status": Status.parse(from_status).value,
            "to_status": Status.parse(to_status).value,
        }
        try:
            self.validate_transition(from_status, to_status, entity_id)
        except InvalidTransitionError:
            logger.warning("workflow_transition_denied", extra=log_extra)
            raise

        if self._before_hook is not None:
            self._before_hook(entity_id, from_status, to_status, actor_id)

        logger.info("workflow_transition_executed", extra=log_extra)

        if self._after_hook is not None:
            self._after_hook(entity_id, from_status, to_status, actor_id)
