"""
Canonical workflow types (``pms_kernel.domain.workflow``).

Responsibility
--------------
The capability every workflow record exposes, the update set a transition
produces, and the transition-rule value object.  Used by every record type
(work products, review periods, objectives, tasks, competency reviews) so
that the state machine is defined once and reached through a protocol,
never through a shared base class.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* ``WorkflowUpdate.fields`` always contains ``status`` and ``updated_by``.
* At most one of ``is_approved`` / ``is_rejected`` is true after applying
  an update produced by the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from pms_kernel.domain.statuses import OperationType, Status


@runtime_checkable
class WorkflowRecord(Protocol):
    """Any entity whose lifecycle is governed by the shared status machine."""

    record_id: Any
    status: Any
    is_active: bool
    is_approved: bool
    is_rejected: bool
    approved_by: str | None
    date_approved: datetime | None
    rejected_by: str | None
    rejection_reason: str | None
    date_rejected: datetime | None
    updated_by: str | None


@runtime_checkable
class HrdWorkflowRecord(WorkflowRecord, Protocol):
    """A workflow record that also carries the second (HRD) approval level."""

    hrd_is_approved: bool
    hrd_approved_by: str | None
    hrd_date_approved: datetime | None
    hrd_is_rejected: bool
    hrd_rejected_by: str | None
    hrd_rejection_reason: str | None
    hrd_date_rejected: datetime | None


@dataclass(frozen=True)
class WorkflowUpdate:
    """The field set a transition produces.  Callers persist it.

    Contract: frozen; ``fields`` maps record attribute names to new values
    and always includes ``status``.
    """

    entity_id: Any
    from_status: Status
    to_status: Status
    actor_id: str
    fields: dict[str, Any] = field(default_factory=dict)

    def apply_to(self, record: Any) -> Any:
        """Set every field on ``record`` (in memory) and return it."""
        for name, value in self.fields.items():
            setattr(record, name, value)
        return record


@dataclass(frozen=True)
class TransitionRule:
    """A valid state transition and the operation that triggers it."""

    from_status: Status
    to_status: Status
    operation: OperationType
