"""
Tests for the workflow engine (pms_engines.workflow).

Covers:
- Approval, rejection and return field sets
- Two-level (line manager, then HRD) approval and HRD rejection
- Reset and resubmission
- The closed status-change table, including the statuses it writes alone
- WorkflowEngine rule checking and transition hooks
"""

from datetime import datetime, timezone

import pytest

from pms_engines.workflow import (
    BASE_RULES,
    DEDICATED_TRANSITION_TARGETS,
    HRD_RULES,
    REVIEW_PERIOD_RULES,
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
from pms_kernel.domain.statuses import OperationType, Status, TERMINAL_STATUSES
from pms_kernel.domain.workflow import HrdWorkflowRecord, WorkflowRecord
from pms_kernel.exceptions import (
    AlreadyApprovedError,
    AlreadyRejectedError,
    InvalidTransitionError,
    MissingStatusMappingError,
    RejectionReasonRequiredError,
    UnknownStatusError,
)

NOW = datetime(2024, 5, 2, 8, 0, 0, tzinfo=timezone.utc)


class TestProtocols:

    def test_fake_records_satisfy_protocols(self, make_record, make_hrd_record):
        assert isinstance(make_record(), WorkflowRecord)
        assert not isinstance(make_record(), HrdWorkflowRecord)
        assert isinstance(make_hrd_record(), HrdWorkflowRecord)


class TestApproval:

    @pytest.mark.parametrize(
        "status", [Status.DRAFT, Status.PENDING_APPROVAL, Status.RETURNED]
    )
    def test_approval_fields(self, make_record, status):
        record = make_record(status, rejection_reason="old reason")
        update = apply_approval(record, "mgr-1", now=NOW)

        assert update.from_status == status
        assert update.to_status == Status.APPROVED_AND_ACTIVE
        assert update.fields == {
            "status": Status.APPROVED_AND_ACTIVE,
            "is_approved": True,
            "is_rejected": False,
            "is_active": True,
            "approved_by": "mgr-1",
            "date_approved": NOW,
            "rejection_reason": None,
            "updated_by": "mgr-1",
        }

    def test_approval_applied_to_record(self, make_record):
        record = make_record(Status.PENDING_APPROVAL)
        apply_approval(record, "mgr-1", now=NOW).apply_to(record)

        assert record.status == Status.APPROVED_AND_ACTIVE
        assert record.is_approved and not record.is_rejected
        assert record.date_approved == NOW

    def test_double_approval_raises(self, make_record):
        record = make_record(Status.APPROVED_AND_ACTIVE, is_approved=True)
        with pytest.raises(AlreadyApprovedError) as exc_info:
            apply_approval(record, "mgr-1", now=NOW)
        assert exc_info.value.entity_id == record.record_id
        # Record untouched
        assert record.approved_by is None

    @pytest.mark.parametrize(
        "status", [Status.CANCELLED, Status.CLOSED, Status.REJECTED, Status.PAUSED]
    )
    def test_approval_from_other_status_raises(self, make_record, status):
        with pytest.raises(InvalidTransitionError):
            apply_approval(make_record(status), "mgr-1", now=NOW)

    def test_approval_accepts_storage_code(self, make_record):
        update = apply_approval(make_record(2), "mgr-1", now=NOW)
        assert update.from_status == Status.PENDING_APPROVAL

    def test_unknown_status_raises(self, make_record):
        with pytest.raises(UnknownStatusError):
            apply_approval(make_record("Archived"), "mgr-1", now=NOW)


class TestRejection:

    def test_rejection_fields(self, make_record):
        record = make_record(Status.PENDING_APPROVAL, is_approved=True)
        update = apply_rejection(record, "mgr-2", "Incomplete evidence", now=NOW)

        assert update.to_status == Status.REJECTED
        assert update.fields["is_rejected"] is True
        assert update.fields["is_approved"] is False
        assert update.fields["is_active"] is False
        assert update.fields["rejected_by"] == "mgr-2"
        assert update.fields["rejection_reason"] == "Incomplete evidence"
        assert update.fields["date_rejected"] == NOW
        assert update.fields["updated_by"] == "mgr-2"

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, make_record, reason):
        with pytest.raises(RejectionReasonRequiredError):
            apply_rejection(make_record(Status.PENDING_APPROVAL), "mgr-2", reason, now=NOW)

    def test_double_rejection_raises(self, make_record):
        with pytest.raises(AlreadyRejectedError):
            apply_rejection(make_record(Status.REJECTED), "mgr-2", "again", now=NOW)

    def test_second_rejection_keeps_first_audit_fields(self, make_record):
        record = make_record(Status.PENDING_APPROVAL)
        apply_rejection(record, "mgr-2", "Incomplete evidence", now=NOW).apply_to(record)

        later = datetime(2024, 5, 9, 8, 0, 0, tzinfo=timezone.utc)
        with pytest.raises(AlreadyRejectedError):
            apply_rejection(record, "mgr-3", "Still incomplete", now=later)

        assert record.status == Status.REJECTED
        assert record.rejected_by == "mgr-2"
        assert record.rejection_reason == "Incomplete evidence"
        assert record.date_rejected == NOW

    @pytest.mark.parametrize(
        "status", [Status.CANCELLED, Status.CLOSED, Status.COMPLETED]
    )
    def test_rejection_from_terminal_raises(self, make_record, status):
        with pytest.raises(InvalidTransitionError):
            apply_rejection(make_record(status), "mgr-2", "too late", now=NOW)

    def test_flags_never_both_true(self, make_record):
        record = make_record(Status.PENDING_APPROVAL)
        apply_approval(record, "mgr-1", now=NOW).apply_to(record)
        record.status = Status.PENDING_APPROVAL
        apply_rejection(record, "mgr-2", "changed mind", now=NOW).apply_to(record)

        assert record.is_rejected is True
        assert record.is_approved is False


class TestReturn:

    def test_return_fields(self, make_record):
        record = make_record(Status.PENDING_APPROVAL)
        update = apply_return(record, "mgr-1", "Add targets", now=NOW)

        assert update.to_status == Status.RETURNED
        assert update.fields["rejection_reason"] == "Add targets"
        assert update.fields["is_approved"] is False
        assert update.fields["is_rejected"] is False

    def test_return_twice_raises(self, make_record):
        with pytest.raises(InvalidTransitionError):
            apply_return(make_record(Status.RETURNED), "mgr-1", now=NOW)

    def test_return_from_terminal_raises(self, make_record):
        with pytest.raises(InvalidTransitionError):
            apply_return(make_record(Status.CLOSED), "mgr-1", now=NOW)


class TestTwoLevelApproval:

    def test_line_manager_escalates_to_hrd(self, make_hrd_record):
        record = make_hrd_record(Status.PENDING_APPROVAL)
        update = apply_line_manager_approval(record, "lm-1", now=NOW)

        assert update.to_status == Status.PENDING_HRD_APPROVAL
        assert update.fields["approved_by"] == "lm-1"
        assert update.fields["is_approved"] is False

    def test_hrd_approval_completes_chain(self, make_hrd_record):
        record = make_hrd_record(Status.PENDING_APPROVAL)
        apply_line_manager_approval(record, "lm-1", now=NOW).apply_to(record)
        apply_hrd_approval(record, "hrd-1", now=NOW).apply_to(record)

        assert record.status == Status.APPROVED_AND_ACTIVE
        assert record.is_approved is True
        assert record.is_active is True
        assert record.approved_by == "lm-1"
        assert record.hrd_is_approved is True
        assert record.hrd_approved_by == "hrd-1"
        assert record.hrd_date_approved == NOW

    def test_hrd_approval_requires_line_manager_first(self, make_hrd_record):
        with pytest.raises(InvalidTransitionError):
            apply_hrd_approval(make_hrd_record(Status.PENDING_APPROVAL), "hrd-1", now=NOW)

    def test_line_manager_cannot_approve_twice(self, make_hrd_record):
        with pytest.raises(AlreadyApprovedError):
            apply_line_manager_approval(
                make_hrd_record(Status.PENDING_HRD_APPROVAL), "lm-1", now=NOW
            )

    def test_hrd_rejection_sets_both_levels(self, make_hrd_record):
        record = make_hrd_record(Status.PENDING_HRD_APPROVAL)
        apply_hrd_rejection(record, "hrd-1", "Evidence missing", now=NOW).apply_to(record)

        assert record.status == Status.REJECTED
        assert record.is_rejected is True
        assert record.rejection_reason == "Evidence missing"
        assert record.hrd_is_rejected is True
        assert record.hrd_rejected_by == "hrd-1"
        assert record.hrd_date_rejected == NOW

    def test_hrd_rejection_requires_reason(self, make_hrd_record):
        with pytest.raises(RejectionReasonRequiredError):
            apply_hrd_rejection(make_hrd_record(Status.PENDING_HRD_APPROVAL), "hrd-1", " ", now=NOW)


class TestResetAndResubmission:

    def test_reset_clears_attribution_keeps_status(self, make_record):
        record = make_record(
            Status.RETURNED,
            is_approved=True,
            approved_by="mgr-1",
            date_approved=NOW,
            rejection_reason="fix it",
        )
        update = reset_workflow(record, "emp-1")
        update.apply_to(record)

        assert update.from_status == update.to_status == Status.RETURNED
        assert record.approved_by is None
        assert record.date_approved is None
        assert record.rejection_reason is None
        assert record.is_approved is False
        assert "hrd_is_approved" not in update.fields

    def test_reset_clears_hrd_fields(self, make_hrd_record):
        record = make_hrd_record(Status.DRAFT, hrd_is_approved=True, hrd_approved_by="hrd-1")
        reset_workflow(record, "emp-1").apply_to(record)

        assert record.hrd_is_approved is False
        assert record.hrd_approved_by is None

    def test_resubmission(self, make_record):
        record = make_record(Status.RETURNED, rejection_reason="fix it")
        update = apply_resubmission(record, "emp-1")

        assert update.to_status == Status.PENDING_APPROVAL
        assert update.fields["rejection_reason"] is None

    def test_resubmission_when_already_pending_raises(self, make_record):
        with pytest.raises(InvalidTransitionError):
            apply_resubmission(make_record(Status.PENDING_APPROVAL), "emp-1")


class TestStatusChangeTable:
    """The closed status-change table."""

    def test_every_status_is_mapped_or_dedicated(self):
        mapped = set(STATUS_CHANGE_FIELDS)
        assert mapped | DEDICATED_TRANSITION_TARGETS == set(Status)
        assert not mapped & DEDICATED_TRANSITION_TARGETS

    def test_cancel_deactivates(self, make_record):
        update = apply_status_change(
            make_record(Status.APPROVED_AND_ACTIVE, is_active=True),
            Status.CANCELLED,
            "emp-1",
            now=NOW,
        )
        assert update.fields == {
            "status": Status.CANCELLED,
            "is_active": False,
            "updated_by": "emp-1",
        }

    def test_completed_stamps_completion_date(self, make_record):
        update = apply_status_change(make_record(Status.ACTIVE), Status.COMPLETED, "emp-1", now=NOW)
        assert update.fields["completion_date"] == NOW

    def test_pending_acceptance_takes_remark(self, make_record):
        update = apply_status_change(
            make_record(Status.ACTIVE),
            Status.PENDING_ACCEPTANCE,
            "emp-1",
            now=NOW,
            comment="Delivered",
        )
        assert update.fields["completion_date"] == NOW
        assert update.fields["remark"] == "Delivered"

    def test_awaiting_evaluation_takes_acceptance_comment(self, make_record):
        update = apply_status_change(
            make_record(Status.PENDING_ACCEPTANCE),
            Status.AWAITING_EVALUATION,
            "sup-1",
            now=NOW,
            comment="Looks good",
        )
        assert update.fields["acceptance_comment"] == "Looks good"

    def test_comment_without_comment_field_is_ignored(self, make_record):
        update = apply_status_change(
            make_record(Status.ACTIVE), Status.PAUSED, "emp-1", now=NOW, comment="brb"
        )
        assert update.fields == {"status": Status.PAUSED, "updated_by": "emp-1"}

    @pytest.mark.parametrize(
        "target",
        [
            Status.DRAFT,
            Status.PENDING_APPROVAL,
            Status.RETURNED,
            Status.CLOSED,
            Status.PAUSED,
            Status.SUSPENDED,
            Status.RE_EVALUATE,
            Status.PENDING_HRD_APPROVAL,
        ],
    )
    def test_statuses_written_alone(self, make_record, target):
        """No secondary fields are defined for these targets."""
        update = apply_status_change(make_record(Status.ACTIVE), target, "emp-1", now=NOW)
        assert update.fields == {"status": target, "updated_by": "emp-1"}

    def test_active_and_deactivated(self, make_record):
        activate = apply_status_change(make_record(Status.PAUSED), Status.ACTIVE, "e", now=NOW)
        deactivate = apply_status_change(make_record(Status.ACTIVE), Status.DEACTIVATED, "e", now=NOW)
        assert activate.fields["is_active"] is True
        assert deactivate.fields["is_active"] is False

    @pytest.mark.parametrize("target", sorted(DEDICATED_TRANSITION_TARGETS))
    def test_dedicated_targets_refused(self, make_record, target):
        with pytest.raises(InvalidTransitionError):
            apply_status_change(make_record(Status.PENDING_APPROVAL), target, "emp-1", now=NOW)

    def test_missing_mapping_is_fatal(self, make_record, monkeypatch, captured_logs):
        monkeypatch.delitem(STATUS_CHANGE_FIELDS, Status.PAUSED)
        with pytest.raises(MissingStatusMappingError):
            apply_status_change(make_record(Status.ACTIVE), Status.PAUSED, "emp-1", now=NOW)
        assert any(
            r["message"] == "workflow_status_mapping_missing" for r in captured_logs()
        )

    def test_unknown_target_raises(self, make_record):
        with pytest.raises(UnknownStatusError):
            apply_status_change(make_record(Status.ACTIVE), "Archived", "emp-1", now=NOW)


class TestRuleTables:

    def test_base_rules_single_level(self):
        engine = WorkflowEngine.base()
        assert engine.can_transition(Status.PENDING_APPROVAL, Status.APPROVED_AND_ACTIVE)
        assert not engine.can_transition(Status.PENDING_APPROVAL, Status.PENDING_HRD_APPROVAL)
        assert not engine.can_transition(Status.REJECTED, Status.PENDING_APPROVAL)

    def test_hrd_rules_two_level(self):
        engine = WorkflowEngine.hrd()
        assert engine.can_transition(Status.PENDING_APPROVAL, Status.PENDING_HRD_APPROVAL)
        assert engine.can_transition(Status.PENDING_HRD_APPROVAL, Status.APPROVED_AND_ACTIVE)
        assert not engine.can_transition(Status.PENDING_APPROVAL, Status.APPROVED_AND_ACTIVE)

    def test_review_period_may_resubmit_after_rejection(self):
        engine = WorkflowEngine.review_period()
        assert engine.can_transition(Status.REJECTED, Status.PENDING_APPROVAL)
        assert engine.can_transition(Status.ACTIVE, Status.CANCELLED)

    @pytest.mark.parametrize(
        "engine",
        [WorkflowEngine.base(), WorkflowEngine.review_period()],
        ids=["base", "review_period"],
    )
    @pytest.mark.parametrize(
        "source", [Status.DRAFT, Status.PENDING_APPROVAL, Status.RETURNED]
    )
    def test_approval_from_every_approvable_status(self, engine, source):
        assert engine.can_transition(source, Status.APPROVED_AND_ACTIVE)

    @pytest.mark.parametrize(
        "source", [Status.DRAFT, Status.PENDING_APPROVAL, Status.RETURNED]
    )
    def test_hrd_line_manager_approval_sources(self, source):
        assert WorkflowEngine.hrd().can_transition(source, Status.PENDING_HRD_APPROVAL)

    @pytest.mark.parametrize(
        "engine",
        [WorkflowEngine.base(), WorkflowEngine.hrd(), WorkflowEngine.review_period()],
        ids=["base", "hrd", "review_period"],
    )
    def test_rejection_from_every_non_terminal_status(self, engine):
        for status in Status:
            expected = status not in TERMINAL_STATUSES
            assert engine.can_transition(status, Status.REJECTED) is expected, status

    def test_valid_transitions_in_table_order(self):
        engine = WorkflowEngine.base()
        targets = [r.to_status for r in engine.valid_transitions(Status.PENDING_APPROVAL)]
        assert targets == [Status.APPROVED_AND_ACTIVE, Status.REJECTED, Status.RETURNED]

    def test_rule_for_operation(self):
        engine = WorkflowEngine.base()
        rule = engine.rule_for(Status.APPROVED_AND_ACTIVE, OperationType.DELETE)
        assert rule.to_status == Status.DEACTIVATED
        assert engine.rule_for(Status.DRAFT, OperationType.CLOSE) is None

    @pytest.mark.parametrize("rules", [BASE_RULES, HRD_RULES])
    def test_terminal_statuses_have_no_exit(self, rules):
        for rule in rules:
            assert rule.from_status not in TERMINAL_STATUSES

    def test_validate_transition_message(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            WorkflowEngine.base().validate_transition(
                Status.CLOSED, Status.DRAFT, entity_id="wp-1"
            )
        assert "no matching transition rule" in str(exc_info.value)
        assert exc_info.value.entity_id == "wp-1"

    def test_rules_are_table_entries(self):
        assert WorkflowEngine.review_period().rules == REVIEW_PERIOD_RULES


class TestExecuteHooks:

    def test_hooks_run_around_transition(self, captured_logs):
        calls = []
        engine = WorkflowEngine(
            "objective",
            BASE_RULES,
            before_hook=lambda *args: calls.append(("before",) + args),
            after_hook=lambda *args: calls.append(("after",) + args),
        )
        engine.execute("obj-1", Status.PENDING_APPROVAL, Status.APPROVED_AND_ACTIVE, "mgr-1")

        assert [c[0] for c in calls] == ["before", "after"]
        assert calls[0][1:] == (
            "obj-1", Status.PENDING_APPROVAL, Status.APPROVED_AND_ACTIVE, "mgr-1",
        )
        executed = [r for r in captured_logs() if r["message"] == "workflow_transition_executed"]
        assert executed[0]["workflow"] == "objective"

    def test_invalid_transition_skips_hooks(self, captured_logs):
        calls = []
        engine = WorkflowEngine(
            "base", BASE_RULES, before_hook=lambda *args: calls.append(args)
        )

        with pytest.raises(InvalidTransitionError):
            engine.execute("obj-1", Status.DRAFT, Status.CLOSED, "mgr-1")

        assert calls == []
        assert any(r["message"] == "workflow_transition_denied" for r in captured_logs())

    def test_before_hook_failure_aborts(self):
        after = []

        def veto(*args):
            raise RuntimeError("vetoed")

        engine = WorkflowEngine(
            "base",
            BASE_RULES,
            before_hook=veto,
            after_hook=lambda *args: after.append(args),
        )

        with pytest.raises(RuntimeError, match="vetoed"):
            engine.execute("obj-1", Status.PENDING_APPROVAL, Status.REJECTED, "mgr-1")
        assert after == []
