"""Ticket state machine tests - no database involved"""
import pytest

from rmg_portal.engine import (
    TicketStateMachine, TransitionPayload, Audience, SYSTEM_ACTOR,
    available_events, check_closing_reason
)
from rmg_portal.domain.models import (
    HelpdeskTicket, RequesterInfo, ApprovalPlan, ApprovalLevelPlan
)
from rmg_portal.domain.enums import (
    TicketStatus, TicketEvent, ApprovalStatus, ApprovalDecision, ClosingReason,
    HighLevelCategory
)
from rmg_portal.domain.errors import InvalidStateError, PermissionDeniedError, ValidationError
from rmg_portal.utils.time import utc_now

from .conftest import approver_info


machine = TicketStateMachine()


def draft_ticket(requester) -> HelpdeskTicket:
    now = utc_now()
    return HelpdeskTicket(
        ticket_number="TKT0001",
        high_level_category=HighLevelCategory.IT,
        sub_category="Laptop Request",
        subject="New laptop",
        description="Current laptop battery no longer holds charge",
        requester=RequesterInfo(
            employee_id=requester.employee_id,
            name=requester.name,
            role=requester.role,
        ),
        created_at=now,
        updated_at=now,
    )


def plan_for(*approvers, queue="Hardware Team") -> ApprovalPlan:
    return ApprovalPlan(
        required=True,
        levels=[
            ApprovalLevelPlan(level=index, approvers=[approver_info(a)])
            for index, a in enumerate(approvers, start=1)
        ],
        specialist_queue=queue,
    )


def routed_ticket(requester) -> HelpdeskTicket:
    plan = ApprovalPlan(required=False, bypassed=True, specialist_queue="IT")
    return machine.apply(
        draft_ticket(requester), TicketEvent.SUBMIT, requester, TransitionPayload(plan=plan)
    ).ticket


def in_progress_ticket(requester, specialist) -> HelpdeskTicket:
    ticket = machine.apply(routed_ticket(requester), TicketEvent.ASSIGN, specialist).ticket
    return machine.apply(ticket, TicketEvent.START_WORK, specialist).ticket


def resolved_ticket(requester, specialist) -> HelpdeskTicket:
    ticket = in_progress_ticket(requester, specialist)
    return machine.apply(
        ticket, TicketEvent.RESOLVE, specialist, TransitionPayload(notes="Replaced battery")
    ).ticket


# =============================================================================
# Submission and approvals
# =============================================================================

def test_submit_with_single_level_waits_on_l1(requester, l1_approver):
    result = machine.apply(
        draft_ticket(requester), TicketEvent.SUBMIT, requester,
        TransitionPayload(plan=plan_for(l1_approver))
    )

    ticket = result.ticket
    assert ticket.status == TicketStatus.PENDING_APPROVAL_L1
    assert ticket.approval.status == ApprovalStatus.PENDING
    assert ticket.approval.current_level == 1
    assert [r.level for r in ticket.approval.levels] == [1]
    assert result.intents[0].audience == Audience.APPROVERS
    assert result.intents[0].level == 1


def test_single_level_approval_routes_to_specialist_queue(requester, l1_approver):
    ticket = machine.apply(
        draft_ticket(requester), TicketEvent.SUBMIT, requester,
        TransitionPayload(plan=plan_for(l1_approver))
    ).ticket

    result = machine.apply(
        ticket, TicketEvent.APPROVE, l1_approver,
        TransitionPayload(comments="Approved", specialist_queue="Hardware Team")
    )

    approved = result.ticket
    assert approved.status == TicketStatus.ROUTED
    assert approved.processing.specialist_queue == "Hardware Team"
    assert approved.approval.status == ApprovalStatus.APPROVED
    assert approved.approval.record(1).status == ApprovalDecision.APPROVED
    assert approved.approval.record(1).approver_id == l1_approver.employee_id
    assert approved.approval.record(2) is None
    assert {i.audience for i in result.intents} == {Audience.QUEUE, Audience.REQUESTER}
    assert result.history_entry.action == "L1_approved"


def test_two_level_chain_enters_l2_before_routing(requester, l1_approver, l2_approver):
    ticket = machine.apply(
        draft_ticket(requester), TicketEvent.SUBMIT, requester,
        TransitionPayload(plan=plan_for(l1_approver, l2_approver))
    ).ticket

    ticket = machine.apply(ticket, TicketEvent.APPROVE, l1_approver).ticket
    assert ticket.status == TicketStatus.PENDING_APPROVAL_L2
    assert ticket.approval.current_level == 2
    assert ticket.approval.record(2).status == ApprovalDecision.PENDING

    ticket = machine.apply(ticket, TicketEvent.APPROVE, l2_approver).ticket
    assert ticket.status == TicketStatus.ROUTED
    assert ticket.approval.all_levels_approved()
    # Falls back to the category when no queue is given
    assert ticket.processing.specialist_queue == "IT"


def test_reject_is_terminal(requester, l1_approver, l2_approver):
    ticket = machine.apply(
        draft_ticket(requester), TicketEvent.SUBMIT, requester,
        TransitionPayload(plan=plan_for(l1_approver, l2_approver))
    ).ticket

    rejected = machine.apply(
        ticket, TicketEvent.REJECT, l1_approver, TransitionPayload(comments="Not budgeted")
    ).ticket

    assert rejected.status == TicketStatus.REJECTED
    assert rejected.status.is_terminal
    assert rejected.approval.status == ApprovalStatus.REJECTED
    assert rejected.approval.record(1).status == ApprovalDecision.REJECTED
    assert rejected.approval.record(2) is None
    assert rejected.closed_at is not None
    assert available_events(TicketStatus.REJECTED) == []

    with pytest.raises(InvalidStateError):
        machine.apply(rejected, TicketEvent.APPROVE, l1_approver)


def test_only_designated_approver_can_decide(requester, l1_approver, l2_approver):
    ticket = machine.apply(
        draft_ticket(requester), TicketEvent.SUBMIT, requester,
        TransitionPayload(plan=plan_for(l1_approver, l2_approver))
    ).ticket

    with pytest.raises(PermissionDeniedError):
        machine.apply(ticket, TicketEvent.APPROVE, l2_approver)

    assert ticket.status == TicketStatus.PENDING_APPROVAL_L1


def test_submit_without_plan_is_rejected(requester):
    with pytest.raises(ValidationError):
        machine.apply(draft_ticket(requester), TicketEvent.SUBMIT, requester)


def test_submit_bypass_routes_directly(requester):
    ticket = routed_ticket(requester)

    assert ticket.status == TicketStatus.ROUTED
    assert ticket.approval.required is False
    assert ticket.approval.bypassed is True
    assert ticket.approval.status == ApprovalStatus.NOT_REQUIRED
    assert ticket.processing.routed_at is not None


def test_only_requester_can_submit(requester, specialist):
    with pytest.raises(PermissionDeniedError):
        machine.apply(
            draft_ticket(requester), TicketEvent.SUBMIT, specialist,
            TransitionPayload(plan=plan_for(specialist))
        )


# =============================================================================
# Fulfilment
# =============================================================================

def test_apply_does_not_mutate_input(requester):
    draft = draft_ticket(requester)
    plan = ApprovalPlan(required=False, specialist_queue="Service Desk")

    machine.apply(draft, TicketEvent.SUBMIT, requester, TransitionPayload(plan=plan))

    assert draft.status == TicketStatus.DRAFT
    assert draft.history == []


def test_history_grows_by_one_per_transition(requester, specialist):
    ticket = routed_ticket(requester)
    before = len(ticket.history)

    ticket = machine.apply(ticket, TicketEvent.ASSIGN, specialist).ticket
    assert len(ticket.history) == before + 1
    ticket = machine.apply(ticket, TicketEvent.START_WORK, specialist).ticket
    assert len(ticket.history) == before + 2

    last = ticket.history[-1]
    assert last.action == "work_started"
    assert last.previous_status == TicketStatus.ASSIGNED
    assert last.new_status == TicketStatus.IN_PROGRESS
    assert last.performed_by_id == specialist.employee_id


def test_specialist_claims_from_queue(requester, specialist):
    result = machine.apply(routed_ticket(requester), TicketEvent.ASSIGN, specialist)

    assert result.ticket.status == TicketStatus.ASSIGNED
    assert result.ticket.assignment.assigned_to_id == specialist.employee_id
    assert result.history_entry.details == "Claimed from queue"


def test_specialist_cannot_assign_someone_else(requester, specialist, other_specialist):
    with pytest.raises(PermissionDeniedError):
        machine.apply(
            routed_ticket(requester), TicketEvent.ASSIGN, specialist,
            TransitionPayload(assignee_id=other_specialist.employee_id, assignee_name=other_specialist.name)
        )


def test_admin_assigns_and_reassigns(requester, it_admin, specialist, other_specialist):
    ticket = machine.apply(
        routed_ticket(requester), TicketEvent.ASSIGN, it_admin,
        TransitionPayload(assignee_id=specialist.employee_id, assignee_name=specialist.name)
    ).ticket
    assert ticket.assignment.assigned_to_id == specialist.employee_id
    assert ticket.assignment.assigned_by_id == it_admin.employee_id

    with pytest.raises(ValidationError):
        machine.apply(
            ticket, TicketEvent.REASSIGN, it_admin,
            TransitionPayload(assignee_id=specialist.employee_id, assignee_name=specialist.name, reason="Load")
        )

    result = machine.apply(
        ticket, TicketEvent.REASSIGN, it_admin,
        TransitionPayload(assignee_id=other_specialist.employee_id, assignee_name=other_specialist.name,
                          reason="Load balancing")
    )
    assert result.new_status == TicketStatus.ASSIGNED
    assert result.ticket.assignment.assigned_to_id == other_specialist.employee_id
    assert result.ticket.assignment.previous_assignee_id == specialist.employee_id
    assert {i.audience for i in result.intents} == {Audience.ASSIGNEE, Audience.PREVIOUS_ASSIGNEE}


def test_pause_and_resume(requester, specialist):
    ticket = in_progress_ticket(requester, specialist)

    ticket = machine.apply(ticket, TicketEvent.PAUSE, specialist, TransitionPayload(reason="Awaiting part")).ticket
    assert ticket.status == TicketStatus.PAUSED

    ticket = machine.apply(ticket, TicketEvent.RESUME, specialist).ticket
    assert ticket.status == TicketStatus.IN_PROGRESS


def test_resolve_requires_notes(requester, specialist):
    ticket = in_progress_ticket(requester, specialist)

    with pytest.raises(ValidationError) as exc_info:
        machine.apply(ticket, TicketEvent.RESOLVE, specialist, TransitionPayload(notes="   "))

    assert exc_info.value.details["field"] == "notes"


def test_non_assignee_cannot_resolve(requester, specialist, other_specialist):
    ticket = in_progress_ticket(requester, specialist)

    with pytest.raises(PermissionDeniedError):
        machine.apply(ticket, TicketEvent.RESOLVE, other_specialist, TransitionPayload(notes="Done"))


# =============================================================================
# Closing
# =============================================================================

def test_close_sets_specialist_closing_reason(requester, specialist):
    ticket = machine.apply(resolved_ticket(requester, specialist), TicketEvent.CLOSE, specialist).ticket

    assert ticket.status == TicketStatus.CLOSED
    assert ticket.closing_reason == ClosingReason.IT_SPECIALIST_CLOSURE
    assert ticket.closed_by == specialist.name


def test_cancel_sets_user_cancellation(requester, l1_approver):
    ticket = machine.apply(
        draft_ticket(requester), TicketEvent.SUBMIT, requester,
        TransitionPayload(plan=plan_for(l1_approver))
    ).ticket

    result = machine.apply(ticket, TicketEvent.CANCEL, requester, TransitionPayload(reason="No longer needed"))

    assert result.ticket.status == TicketStatus.CANCELLED
    assert result.ticket.closing_reason == ClosingReason.USER_CANCELLATION
    assert result.intents[0].audience == Audience.APPROVERS


def test_cannot_cancel_once_work_started(requester, specialist):
    with pytest.raises(InvalidStateError):
        machine.apply(in_progress_ticket(requester, specialist), TicketEvent.CANCEL, requester)


def test_auto_close_reserved_for_system(requester, specialist):
    ticket = resolved_ticket(requester, specialist)

    with pytest.raises(PermissionDeniedError):
        machine.apply(ticket, TicketEvent.AUTO_CLOSE, specialist)

    closed = machine.apply(ticket, TicketEvent.AUTO_CLOSE, SYSTEM_ACTOR).ticket
    assert closed.status == TicketStatus.AUTO_CLOSED
    assert closed.closing_reason == ClosingReason.AUTO_CLOSED
    assert closed.status.is_terminal


def test_reopen_clears_closing_fields(requester, specialist):
    ticket = machine.apply(resolved_ticket(requester, specialist), TicketEvent.CLOSE, specialist).ticket

    with pytest.raises(ValidationError):
        machine.apply(ticket, TicketEvent.REOPEN, requester)

    reopened = machine.apply(
        ticket, TicketEvent.REOPEN, requester, TransitionPayload(reason="Battery failed again")
    ).ticket
    assert reopened.status == TicketStatus.IN_PROGRESS
    assert reopened.closing_reason is None
    assert reopened.closed_at is None


def test_check_closing_reason_detects_mismatch(requester):
    ticket = draft_ticket(requester)
    ticket.closing_reason = ClosingReason.AUTO_CLOSED

    with pytest.raises(ValidationError):
        check_closing_reason(ticket)


def test_available_events_match_transition_table():
    assert set(available_events(TicketStatus.ROUTED)) == {TicketEvent.ASSIGN, TicketEvent.CANCEL}
    assert set(available_events(TicketStatus.RESOLVED)) == {
        TicketEvent.CLOSE, TicketEvent.AUTO_CLOSE, TicketEvent.REOPEN
    }
    assert TicketEvent.APPROVE in available_events(TicketStatus.PENDING_APPROVAL_L2)
