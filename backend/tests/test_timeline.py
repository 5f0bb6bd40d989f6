"""Timeline projection tests"""
from rmg_portal.engine import TicketStateMachine, TransitionPayload, build_timeline, history_newest_first, StepState
from rmg_portal.domain.enums import TicketEvent

from .test_ticket_machine import draft_ticket, plan_for, resolved_ticket, routed_ticket


machine = TicketStateMachine()


def states(ticket):
    return {step.key: step.state for step in build_timeline(ticket)}


def test_draft_timeline_has_current_submission(requester):
    steps = build_timeline(draft_ticket(requester))

    assert steps[0].key == "submitted"
    assert steps[0].state == StepState.CURRENT
    assert all(step.state == StepState.UPCOMING for step in steps[1:])


def test_pending_l2_marks_l1_completed(requester, l1_approver, l2_approver):
    ticket = machine.apply(
        draft_ticket(requester), TicketEvent.SUBMIT, requester,
        TransitionPayload(plan=plan_for(l1_approver, l2_approver))
    ).ticket
    ticket = machine.apply(ticket, TicketEvent.APPROVE, l1_approver, TransitionPayload(comments="ok")).ticket

    by_key = {step.key: step for step in build_timeline(ticket)}
    assert by_key["approval_l1"].state == StepState.COMPLETED
    assert by_key["approval_l1"].actor == l1_approver.name
    assert by_key["approval_l1"].details == "ok"
    assert by_key["approval_l2"].state == StepState.CURRENT
    assert by_key["routed"].state == StepState.UPCOMING


def test_rejected_timeline_skips_remaining_steps(requester, l1_approver, l2_approver):
    ticket = machine.apply(
        draft_ticket(requester), TicketEvent.SUBMIT, requester,
        TransitionPayload(plan=plan_for(l1_approver, l2_approver))
    ).ticket
    ticket = machine.apply(ticket, TicketEvent.REJECT, l1_approver, TransitionPayload(comments="No")).ticket

    result = states(ticket)
    assert result["approval_l1"] == StepState.FAILED
    assert result["approval_l2"] == StepState.SKIPPED
    assert result["routed"] == StepState.SKIPPED
    assert result["rejected"] == StepState.FAILED


def test_cancelled_after_routing_keeps_routed_step(requester):
    ticket = machine.apply(
        routed_ticket(requester), TicketEvent.CANCEL, requester, TransitionPayload(reason="No longer needed")
    ).ticket

    by_key = {step.key: step for step in build_timeline(ticket)}
    assert by_key["routed"].state == StepState.COMPLETED
    assert by_key["routed"].timestamp == ticket.processing.routed_at
    assert by_key["assigned"].state == StepState.SKIPPED
    assert by_key["closed"].state == StepState.SKIPPED
    assert by_key["cancelled"].state == StepState.FAILED


def test_resolved_ticket_progress(requester, specialist):
    result = states(resolved_ticket(requester, specialist))

    assert result["routed"] == StepState.COMPLETED
    assert result["assigned"] == StepState.COMPLETED
    assert result["inprogress"] == StepState.COMPLETED
    assert result["resolved"] == StepState.CURRENT
    assert result["closed"] == StepState.UPCOMING


def test_closed_ticket_completes_track(requester, specialist):
    ticket = machine.apply(resolved_ticket(requester, specialist), TicketEvent.CLOSE, specialist).ticket

    steps = build_timeline(ticket)
    assert steps[-1].key == "closed"
    assert steps[-1].state == StepState.COMPLETED
    assert steps[-1].actor == specialist.name


def test_history_newest_first_leaves_stored_order(requester, specialist):
    ticket = resolved_ticket(requester, specialist)

    display = history_newest_first(ticket)

    assert display[0].action == "resolved"
    assert ticket.history[0].action == "submitted"
