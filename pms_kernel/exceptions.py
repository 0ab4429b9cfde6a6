"""
Typed Exception Hierarchy for the PMS Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Orchestrating services must decide, per failure, whether to fix the input,
retry later, or surface a conflict to the end user.  Parsing message strings
for that decision is fragile, so every failure here is:
  1. A TYPED exception class (catch by type, not message)
  2. Tagged with a CODE class attribute (machine-readable, API-safe)
  3. Carrying structured DATA as attributes (ids, expected vs. actual values,
     from/to status)

Messages are developer-facing.  The kernel never formats end-user text; the
caller builds its own message from the attributes.

Example:
    try:
        update = apply_rejection(record, actor, reason, now=clock.now())
    except AlreadyRejectedError as e:
        return conflict(code=e.code, entity=e.entity_id)
    except RejectionReasonRequiredError as e:
        return bad_request(code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PmsKernelError (base)
    |
    +-- ValidationError                 retryable = False
    |   +-- RejectionReasonRequiredError
    |   +-- WeightsNotBalancedError
    |   +-- NoScoreDataError
    |   +-- DigitWidthExceededError
    |   +-- InvalidRangeValueError
    |
    +-- WorkflowStateError              state conflicts
    |   +-- AlreadyApprovedError
    |   +-- AlreadyRejectedError
    |   +-- UnauthorizedApproverError
    |   +-- UnsupportedOperationError
    |   +-- InvalidTransitionError
    |
    +-- PersistenceError                retryable = True
    |   +-- SequenceCreateError
    |   +-- SequenceIncrementError
    |
    +-- DataIntegrityError              fatal
        +-- UnknownStatusError
        +-- MissingStatusMappingError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | REJECTION_REASON_REQUIRED   | Reject called with empty reason
                | WEIGHTS_NOT_BALANCED        | Category weights not 100 +/- 0.01
                | NO_SCORE_DATA               | Weighted score over an empty set
                | DIGIT_WIDTH_EXCEEDED        | Sequence outgrew its code width
                | INVALID_RANGE_VALUE         | Quarter/half/year value out of range
----------------|-----------------------------|-----------------------------------------
Workflow state  | ALREADY_APPROVED            | Approve on an approved record
                | ALREADY_REJECTED            | Reject on a rejected record
                | UNAUTHORIZED_APPROVER       | Authorization collaborator said no
                | UNSUPPORTED_OPERATION       | Operation not defined for record type
                | INVALID_WORKFLOW_TRANSITION | No rule allows from -> to
----------------|-----------------------------|-----------------------------------------
Persistence     | SEQUENCE_CREATE_FAILED      | Counter row insert failed
                | SEQUENCE_INCREMENT_FAILED   | Counter row update failed
----------------|-----------------------------|-----------------------------------------
Integrity       | UNKNOWN_STATUS              | Status value outside the enumeration
                | MISSING_STATUS_MAPPING      | Status has no status-change table entry

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Inherit from Exception, not ValueError/RuntimeError, so domain errors are
   catchable as a group and never confused with programming errors.

2. ``code`` and ``retryable`` are class attributes: static per type, readable
   without instantiation.

3. The kernel performs no retries.  ``retryable`` only tells the caller which
   failures are candidates for a retry with backoff.
"""

from typing import Any


class PmsKernelError(Exception):
    """
    Base exception for all PMS kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "PMS_KERNEL_ERROR"
    retryable: bool = False


def _status_name(status: Any) -> str:
    """Render a Status member (or raw value) for a message."""
    return getattr(status, "value", None) or str(status)


# =============================================================================
# Validation errors -- the caller must fix the input
# =============================================================================


class ValidationError(PmsKernelError):
    """Base exception for input validation failures."""

    code: str = "VALIDATION_ERROR"


class RejectionReasonRequiredError(ValidationError):
    """A rejection was requested without a reason."""

    code: str = "REJECTION_REASON_REQUIRED"

    def __init__(self, entity_id: Any = None):
        self.entity_id = entity_id
        super().__init__(f"Rejection reason is required (entity: {entity_id})")


class WeightsNotBalancedError(ValidationError):
    """Category weights do not sum to the expected total."""

    code: str = "WEIGHTS_NOT_BALANCED"

    def __init__(self, expected_total: Any, actual_total: Any, tolerance: Any):
        self.expected_total = expected_total
        self.actual_total = actual_total
        self.tolerance = tolerance
        super().__init__(
            f"Category weights sum to {actual_total}, expected "
            f"{expected_total} (tolerance {tolerance})"
        )


class NoScoreDataError(ValidationError):
    """A score aggregation was requested over no data."""

    code: str = "NO_SCORE_DATA"

    def __init__(self, calculation: str):
        self.calculation = calculation
        super().__init__(f"No score data available for {calculation}")


class DigitWidthExceededError(ValidationError):
    """A sequence value no longer fits its configured digit width."""

    code: str = "DIGIT_WIDTH_EXCEEDED"

    def __init__(self, value: int, digit_width: int, sequence_type: Any = None):
        self.value = value
        self.digit_width = digit_width
        self.sequence_type = sequence_type
        super().__init__(
            f"Sequence value {value} has {len(str(value))} digits, "
            f"exceeds width {digit_width} (sequence type: {sequence_type})"
        )


class InvalidRangeValueError(ValidationError):
    """Period value is out of range for the review-period range type."""

    code: str = "INVALID_RANGE_VALUE"

    def __init__(self, period_range: Any, value: int, max_value: int | None):
        self.period_range = period_range
        self.value = value
        self.max_value = max_value
        super().__init__(
            f"Range value {value} is invalid for {getattr(period_range, 'name', period_range)} "
            f"(max: {max_value})"
        )


# =============================================================================
# Workflow state conflicts
# =============================================================================


class WorkflowStateError(PmsKernelError):
    """
    Base exception for workflow state conflicts.

    Every subclass carries ``entity_id``, ``current_status`` and the
    attempted target so the caller can decide whether to retry with
    different input or surface the conflict.
    """

    code: str = "WORKFLOW_STATE_ERROR"


class AlreadyApprovedError(WorkflowStateError):
    """Record is already approved."""

    code: str = "ALREADY_APPROVED"

    def __init__(self, entity_id: Any, current_status: Any):
        self.entity_id = entity_id
        self.current_status = current_status
        self.attempted_status = current_status
        super().__init__(f"Record {entity_id} has already been approved")


class AlreadyRejectedError(WorkflowStateError):
    """Record is already rejected."""

    code: str = "ALREADY_REJECTED"

    def __init__(self, entity_id: Any, current_status: Any):
        self.entity_id = entity_id
        self.current_status = current_status
        self.attempted_status = current_status
        super().__init__(f"Record {entity_id} has already been rejected")


class UnauthorizedApproverError(WorkflowStateError):
    """Actor lacks authority to approve or reject the record."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(
        self,
        actor_id: Any,
        entity_id: Any,
        current_status: Any,
        operation: Any,
    ):
        self.actor_id = actor_id
        self.entity_id = entity_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Actor {actor_id} is not authorized to {_status_name(operation)} "
            f"record {entity_id}"
        )


class UnsupportedOperationError(WorkflowStateError):
    """Operation code is not defined for this record type."""

    code: str = "UNSUPPORTED_OPERATION"

    def __init__(
        self,
        operation: Any,
        record_type: str,
        entity_id: Any = None,
        current_status: Any = None,
    ):
        self.operation = operation
        self.record_type = record_type
        self.entity_id = entity_id
        self.current_status = current_status
        super().__init__(
            f"Unsupported operation {_status_name(operation)!s} for {record_type}"
        )


class InvalidTransitionError(WorkflowStateError):
    """No transition rule allows moving between the two statuses."""

    code: str = "INVALID_WORKFLOW_TRANSITION"

    def __init__(
        self,
        from_status: Any,
        to_status: Any,
        entity_id: Any = None,
        reason: str = "",
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.current_status = from_status
        self.entity_id = entity_id
        self.reason = reason
        msg = (
            f"Cannot transition from {_status_name(from_status)} "
            f"to {_status_name(to_status)}"
        )
        if entity_id is not None:
            msg += f" (entity: {entity_id})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


# =============================================================================
# Persistence errors -- candidates for caller-level retry
# =============================================================================


class PersistenceError(PmsKernelError):
    """Base exception for storage failures. The original error is ``__cause__``."""

    code: str = "PERSISTENCE_ERROR"
    retryable: bool = True


class SequenceCreateError(PersistenceError):
    """Creating a sequence counter row failed."""

    code: str = "SEQUENCE_CREATE_FAILED"

    def __init__(self, sequence_type: Any, detail: str = ""):
        self.sequence_type = sequence_type
        self.detail = detail
        super().__init__(
            f"Creating sequence counter for type {sequence_type} failed: {detail}"
        )


class SequenceIncrementError(PersistenceError):
    """Incrementing a sequence counter row failed."""

    code: str = "SEQUENCE_INCREMENT_FAILED"

    def __init__(self, sequence_type: Any, detail: str = ""):
        self.sequence_type = sequence_type
        self.detail = detail
        super().__init__(
            f"Incrementing sequence counter for type {sequence_type} failed: {detail}"
        )


# =============================================================================
# Data-integrity errors -- fatal, never coerced to a default
# =============================================================================


class DataIntegrityError(PmsKernelError):
    """Base exception for impossible values and schema drift."""

    code: str = "DATA_INTEGRITY_ERROR"


class UnknownStatusError(DataIntegrityError):
    """A status value outside the closed enumeration was encountered."""

    code: str = "UNKNOWN_STATUS"

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Unknown workflow status: {value!r}")


class MissingStatusMappingError(DataIntegrityError):
    """A status has no entry in the status-change field table."""

    code: str = "MISSING_STATUS_MAPPING"

    def __init__(self, status: Any):
        self.status = status
        super().__init__(
            f"No status-change mapping defined for {_status_name(status)}"
        )
