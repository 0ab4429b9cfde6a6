"""
pms_services.workflow_executor -- Operation dispatch for workflow records.

Responsibility:
    Turns an orchestrator's operation request ("Approve", "Pause", ...)
    on a record into a ``WorkflowUpdate``.  Thin coordinator -- resolves
    the operation through the record type's ``Lifecycle``, asks the
    injected ``AuthorizationProvider`` about approvals and rejections,
    delegates field computation to the pure workflow engine and source
    status checks to the lifecycle's rule table.

Architecture position:
    Services layer.  May import from pms_engines/ (pure engines),
    pms_kernel/ (domain, logging) and pms_config/ (WorkflowConfig).
    Never touches storage: callers persist the returned update.

Invariants enforced:
    - Unknown or unsupported operation codes raise
      UnsupportedOperationError.  The work-product fallback to Add applies
      only when ``WorkflowConfig.legacy_work_product_fallback`` is on.
    - The authorization answer is trusted as given; an explicit "no"
      raises UnauthorizedApproverError before any field is computed.
    - The transition time comes from the injected Clock.
    - Every dispatch emits one ``workflow_transition`` trace record,
      whatever its outcome.
    - Every log line emitted during a dispatch, engine lines included,
      carries the actor, record and lifecycle through ``LogContext``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from pms_config.schema import WorkflowConfig
from pms_engines.workflow import (
    TransitionHook,
    WorkflowEngine,
    apply_approval,
    apply_hrd_approval,
    apply_hrd_rejection,
    apply_line_manager_approval,
    apply_rejection,
    apply_resubmission,
    apply_return,
    apply_status_change,
)
from pms_kernel.domain.clock import Clock, SystemClock
from pms_kernel.domain.statuses import OperationType, Status
from pms_kernel.domain.workflow import WorkflowRecord, WorkflowUpdate
from pms_kernel.exceptions import (
    PmsKernelError,
    UnauthorizedApproverError,
    UnsupportedOperationError,
)
from pms_kernel.logging_config import LogContext, get_logger
from pms_services.lifecycles import Lifecycle, LifecycleStep, StepKind

logger = get_logger("services.workflow_executor")

# Trace message and outcome codes for structured logging
TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_UNSUPPORTED = "unsupported_operation"
OUTCOME_UNAUTHORIZED = "unauthorized"
OUTCOME_REJECTED = "rejected"


@runtime_checkable
class AuthorizationProvider(Protocol):
    """Answers whether ``actor_id`` may approve or reject ``record``."""

    def is_authorized(
        self,
        actor_id: str,
        record: WorkflowRecord,
        operation: OperationType,
    ) -> bool:
        ...


class StaticAuthorizationProvider:
    """AuthorizationProvider backed by a fixed set of approver ids.

    Can be replaced with an org-hierarchy or role-backed implementation.
    """

    def __init__(self, approvers: frozenset[str] | set[str] | None = None) -> None:
        self._approvers = frozenset(approvers or ())

    def is_authorized(
        self,
        actor_id: str,
        record: WorkflowRecord,
        operation: OperationType,
    ) -> bool:
        return actor_id in self._approvers


def _emit_workflow_trace(
    *,
    ts: str,
    lifecycle: str,
    action: str,
    entity_id: Any,
    from_state: str,
    outcome: str,
    reason: str,
    duration_ms: float,
    actor_id: str,
    to_state: str | None = None,
    outcome_sink: Callable[[dict], None] | None = None,
) -> None:
    """Emit a structured workflow transition record."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "ts": ts,
        "lifecycle": lifecycle,
        "action": action,
        "entity_id": str(entity_id),
        "actor_id": actor_id,
        "from_state": from_state,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    if to_state is not None:
        record["to_state"] = to_state
    logger.info("workflow_transition", extra=record)
    if outcome_sink is not None:
        outcome_sink({**record, "message": "workflow_transition"})


def _state_name(status: Any) -> str:
    return getattr(status, "value", None) or str(status)


class WorkflowExecutor:
    """Dispatches lifecycle operations to the workflow engine.

    Hooks, when given, run around every rule-checked transition (see
    ``WorkflowEngine.execute``); a before-hook that raises aborts the
    dispatch.
    """

    def __init__(
        self,
        authorization: AuthorizationProvider,
        clock: Clock | None = None,
        config: WorkflowConfig | None = None,
        before_hook: TransitionHook | None = None,
        after_hook: TransitionHook | None = None,
    ) -> None:
        self._authorization = authorization
        self._clock = clock or SystemClock()
        self._config = config or WorkflowConfig()
        self._before_hook = before_hook
        self._after_hook = after_hook
        self._engines: dict[str, WorkflowEngine] = {}

    def engine_for(self, lifecycle: Lifecycle) -> WorkflowEngine | None:
        """The rule-checking engine of a lifecycle, or None if it has no rule table."""
        if lifecycle.rules is None:
            return None
        engine = self._engines.get(lifecycle.name)
        if engine is None:
            engine = WorkflowEngine(
                lifecycle.name,
                lifecycle.rules,
                before_hook=self._before_hook,
                after_hook=self._after_hook,
            )
            self._engines[lifecycle.name] = engine
        return engine

    def dispatch(
        self,
        lifecycle: Lifecycle,
        record: WorkflowRecord,
        operation: OperationType | str,
        actor_id: str,
        *,
        reason: str | None = None,
        comment: str | None = None,
        outcome_sink: Callable[[dict], None] | None = None,
    ) -> WorkflowUpdate:
        """
        Apply ``operation`` to ``record`` and return the resulting update.

        Raises:
            UnsupportedOperationError: the code is unknown or not part of
                this lifecycle.
            UnauthorizedApproverError: the authorization provider refused.
            Any engine error (InvalidTransitionError,
            RejectionReasonRequiredError, AlreadyApprovedError, ...).
        """
        with LogContext.bind(
            actor_id=actor_id,
            entity_id=str(record.record_id),
            lifecycle=lifecycle.name,
        ):
            return self._dispatch(
                lifecycle, record, operation, actor_id, reason, comment, outcome_sink
            )

    def _dispatch(
        self,
        lifecycle: Lifecycle,
        record: WorkflowRecord,
        operation: OperationType | str,
        actor_id: str,
        reason: str | None,
        comment: str | None,
        outcome_sink: Callable[[dict], None] | None,
    ) -> WorkflowUpdate:
        t0 = time.monotonic()
        now = self._clock.now()
        from_state = _state_name(record.status)
        action = _state_name(operation)

        def trace(outcome: str, why: str, to_state: str | None = None) -> None:
            _emit_workflow_trace(
                ts=now.isoformat(),
                lifecycle=lifecycle.name,
                action=action,
                entity_id=record.record_id,
                from_state=from_state,
                outcome=outcome,
                reason=why,
                duration_ms=(time.monotonic() - t0) * 1000,
                actor_id=actor_id,
                to_state=to_state,
                outcome_sink=outcome_sink,
            )

        op, step = self._resolve(lifecycle, operation)
        if step is None:
            trace(OUTCOME_UNSUPPORTED, f"'{action}' is not defined for {lifecycle.name}")
            raise UnsupportedOperationError(
                operation, lifecycle.name, record.record_id, record.status
            )

        if op in lifecycle.authorized_operations and not self._authorization.is_authorized(
            actor_id, record, op
        ):
            trace(OUTCOME_UNAUTHORIZED, f"{actor_id} may not {op.value} this record")
            raise UnauthorizedApproverError(actor_id, record.record_id, record.status, op)

        try:
            update = self._compute(lifecycle, step, record, actor_id, now, reason, comment)
            engine = self.engine_for(lifecycle)
            if engine is not None and update.from_status != update.to_status:
                engine.execute(
                    record.record_id, update.from_status, update.to_status, actor_id
                )
        except Exception as exc:
            code = exc.code if isinstance(exc, PmsKernelError) else type(exc).__name__
            trace(OUTCOME_REJECTED, f"{code}: {exc}")
            raise

        trace(OUTCOME_SUCCESS, "", to_state=update.to_status.value)
        return update

    def _resolve(
        self,
        lifecycle: Lifecycle,
        operation: OperationType | str,
    ) -> tuple[OperationType | None, LifecycleStep | None]:
        op = OperationType.parse(operation)
        step = lifecycle.step_for(op) if op is not None else None
        if step is not None:
            return op, step

        if (
            self._config.legacy_work_product_fallback
            and lifecycle.legacy_fallback is not None
        ):
            logger.warning(
                "workflow_legacy_fallback",
                extra={
                    "lifecycle": lifecycle.name,
                    "requested_operation": _state_name(operation),
                    "fallback_operation": lifecycle.legacy_fallback.value,
                },
            )
            fallback = lifecycle.legacy_fallback
            return fallback, lifecycle.step_for(fallback)

        return op, None

    @staticmethod
    def _compute(
        lifecycle: Lifecycle,
        step: LifecycleStep,
        record: WorkflowRecord,
        actor_id: str,
        now: datetime,
        reason: str | None,
        comment: str | None,
    ) -> WorkflowUpdate:
        awaiting_hrd = (
            lifecycle.two_level
            and Status.parse(record.status) == Status.PENDING_HRD_APPROVAL
        )

        if step.kind == StepKind.APPROVE:
            if awaiting_hrd:
                return apply_hrd_approval(record, actor_id, now=now)
            if lifecycle.two_level:
                return apply_line_manager_approval(record, actor_id, now=now)
            return apply_approval(record, actor_id, now=now)

        if step.kind == StepKind.REJECT:
            if awaiting_hrd:
                return apply_hrd_rejection(record, actor_id, reason, now=now)
            return apply_rejection(record, actor_id, reason, now=now)

        if step.kind == StepKind.RETURN:
            return apply_return(record, actor_id, reason, now=now)

        if step.kind == StepKind.RESUBMIT:
            return apply_resubmission(record, actor_id)

        if step.kind == StepKind.STATUS_CHANGE:
            return apply_status_change(
                record, step.target, actor_id, now=now, comment=comment
            )

        if step.kind == StepKind.TOUCH:
            current = Status.parse(record.status)
            return WorkflowUpdate(
                entity_id=record.record_id,
                from_status=current,
                to_status=current,
                actor_id=actor_id,
                fields={"status": current, "updated_by": actor_id},
            )

        raise AssertionError(f"Unhandled lifecycle step kind: {step.kind!r}")
