"""
Workflow statuses and operation codes (``pms_kernel.domain.statuses``).

Responsibility
--------------
The closed enumerations shared by every workflow record type: the record
``Status`` and the ``OperationType`` an orchestrator may request.  Parsing
from persisted or wire values is strict -- an unknown value is a data
integrity failure, never coerced to a default.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``Status.parse`` and ``OperationType.parse`` accept only members, their
  names/values, or (for ``Status``) the integer storage code.
* ``TERMINAL_STATUSES`` have no outgoing transitions except where a rule
  table explicitly re-opens them (review periods may re-submit from
  Rejected).
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pms_kernel.exceptions import UnknownStatusError


class Status(str, Enum):
    """Record lifecycle status.  Values are the persisted status names."""

    DRAFT = "Draft"
    PENDING_APPROVAL = "PendingApproval"
    APPROVED_AND_ACTIVE = "ApprovedAndActive"
    RETURNED = "Returned"
    REJECTED = "Rejected"
    AWAITING_EVALUATION = "AwaitingEvaluation"
    COMPLETED = "Completed"
    PAUSED = "Paused"
    CANCELLED = "Cancelled"
    DEACTIVATED = "Deactivated"
    CLOSED = "Closed"
    PENDING_ACCEPTANCE = "PendingAcceptance"
    ACTIVE = "Active"
    PENDING_HRD_APPROVAL = "PendingHRDApproval"
    SUSPENDED = "Suspended"
    RE_EVALUATE = "ReEvaluate"

    @property
    def storage_code(self) -> int:
        """Integer code used by legacy tables."""
        return _STATUS_CODES[self]

    @classmethod
    def parse(cls, value: Any) -> Status:
        """Resolve a member from a member, its value/name, or its storage code.

        Raises:
            UnknownStatusError: for anything outside the enumeration.
        """
        if isinstance(value, cls):
            return value
        # bool is an int subclass; True/False are never status codes
        if isinstance(value, int) and not isinstance(value, bool):
            member = _CODE_TO_STATUS.get(value)
            if member is None:
                raise UnknownStatusError(value)
            return member
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
            member = cls.__members__.get(value)
            if member is not None:
                return member
        raise UnknownStatusError(value)


_STATUS_CODES: dict[Status, int] = {
    Status.DRAFT: 1,
    Status.PENDING_APPROVAL: 2,
    Status.APPROVED_AND_ACTIVE: 3,
    Status.RETURNED: 4,
    Status.REJECTED: 5,
    Status.AWAITING_EVALUATION: 6,
    Status.COMPLETED: 7,
    Status.PAUSED: 8,
    # Legacy tables store Suspended under the Paused code.
    Status.SUSPENDED: 8,
    Status.CANCELLED: 9,
    Status.DEACTIVATED: 11,
    Status.CLOSED: 13,
    Status.PENDING_ACCEPTANCE: 14,
    Status.ACTIVE: 15,
    Status.PENDING_HRD_APPROVAL: 23,
    Status.RE_EVALUATE: 25,
}

# Code 8 reads back as Paused.  Codes with no member here (Breached,
# SuspensionPendingApproval, the grievance statuses, ...) are rejected.
_CODE_TO_STATUS: dict[int, Status] = {
    code: member for member, code in reversed(list(_STATUS_CODES.items()))
}

TERMINAL_STATUSES: frozenset[Status] = frozenset({
    Status.REJECTED,
    Status.CANCELLED,
    Status.CLOSED,
    Status.COMPLETED,
})

# Statuses from which a first-level approval may be granted.
APPROVABLE_STATUSES: frozenset[Status] = frozenset({
    Status.DRAFT,
    Status.PENDING_APPROVAL,
    Status.RETURNED,
})


class OperationType(str, Enum):
    """Operation codes an orchestrator may request on a workflow record."""

    ADD = "Add"
    UPDATE = "Update"
    DELETE = "Delete"
    DRAFT = "Draft"
    COMMIT_DRAFT = "CommitDraft"
    APPROVE = "Approve"
    REJECT = "Reject"
    CANCEL = "Cancel"
    COMPLETE = "Complete"
    PAUSE = "Pause"
    CLOSE = "Close"
    RE_SUBMIT = "ReSubmit"
    RETURN = "Return"
    ACCEPT = "Accept"
    RE_EVALUATE = "ReEvaluate"
    RE_INSTATE = "ReInstate"
    RESUME = "Resume"
    REACTIVATE = "Reactivate"
    SUSPEND = "Suspend"

    @classmethod
    def parse(cls, value: Any) -> OperationType | None:
        """Resolve an operation code, or None when the code is not recognized.

        Unrecognized codes are not a data-integrity failure: the lifecycle
        dispatcher decides how to report them.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                return cls.__members__.get(value)
        return None
