"""Timeline Projection - Read-side view of a ticket's progress

The stepper shown to users is a pure function of the ticket document, so
it always agrees with what the state machine wrote.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from ..domain.models import HelpdeskTicket, HistoryEntry
from ..domain.enums import TicketStatus, ApprovalDecision


class StepState(str, Enum):
    COMPLETED = "completed"
    CURRENT = "current"
    UPCOMING = "upcoming"
    SKIPPED = "skipped"
    FAILED = "failed"


class TimelineStep(BaseModel):
    key: str
    label: str
    state: StepState
    timestamp: Optional[datetime] = None
    actor: Optional[str] = None
    details: Optional[str] = None


# Position of each work status on the post-approval track
_WORK_TRACK = [
    TicketStatus.ROUTED,
    TicketStatus.ASSIGNED,
    TicketStatus.IN_PROGRESS,
    TicketStatus.RESOLVED,
    TicketStatus.CLOSED,
]


def _work_position(status: TicketStatus) -> int:
    """Index on the work track reached by `status`, -1 before routing"""
    if status == TicketStatus.PAUSED:
        return _WORK_TRACK.index(TicketStatus.IN_PROGRESS)
    if status == TicketStatus.AUTO_CLOSED:
        return _WORK_TRACK.index(TicketStatus.CLOSED)
    if status in _WORK_TRACK:
        return _WORK_TRACK.index(status)
    return -1


def build_timeline(ticket: HelpdeskTicket) -> List[TimelineStep]:
    """
    Project a ticket onto the ordered steps of its lifecycle

    Steps: Submitted, one step per planned approval level, Routed,
    Assigned, In Progress, Resolved and Closed. Rejected and cancelled
    tickets keep the steps they reached and mark the rest as skipped.
    """
    status = ticket.status
    steps: List[TimelineStep] = []

    submitted = status != TicketStatus.DRAFT
    steps.append(TimelineStep(
        key="submitted",
        label="Submitted",
        state=StepState.COMPLETED if submitted else StepState.CURRENT,
        timestamp=ticket.created_at if submitted else None,
        actor=ticket.requester.name,
    ))

    halted = status in (TicketStatus.REJECTED, TicketStatus.CANCELLED)

    for level_plan in ticket.approval.plan:
        record = ticket.approval.record(level_plan.level)
        if record is None:
            state = StepState.SKIPPED if halted else StepState.UPCOMING
            steps.append(TimelineStep(key=f"approval_l{level_plan.level}", label=f"L{level_plan.level} Approval", state=state))
            continue
        if record.status == ApprovalDecision.APPROVED:
            state = StepState.COMPLETED
        elif record.status == ApprovalDecision.REJECTED:
            state = StepState.FAILED
        else:
            state = StepState.SKIPPED if halted else StepState.CURRENT
        steps.append(TimelineStep(
            key=f"approval_l{level_plan.level}",
            label=f"L{level_plan.level} Approval",
            state=state,
            timestamp=record.action_timestamp,
            actor=record.approver_name,
            details=record.comments,
        ))

    reached = _work_position(status)
    timestamps = {
        TicketStatus.ROUTED: ticket.processing.routed_at,
        TicketStatus.ASSIGNED: ticket.assignment.assigned_at,
        TicketStatus.IN_PROGRESS: ticket.processing.started_at,
        TicketStatus.RESOLVED: ticket.resolution.resolved_at,
        TicketStatus.CLOSED: ticket.closed_at,
    }
    actors = {
        TicketStatus.ASSIGNED: ticket.assignment.assigned_to_name,
        TicketStatus.RESOLVED: ticket.resolution.resolved_by,
        TicketStatus.CLOSED: ticket.closed_by,
    }
    labels = {
        TicketStatus.ROUTED: "Routed",
        TicketStatus.ASSIGNED: "Assigned",
        TicketStatus.IN_PROGRESS: "Paused" if status == TicketStatus.PAUSED else "In Progress",
        TicketStatus.RESOLVED: "Resolved",
        TicketStatus.CLOSED: "Auto-Closed" if status == TicketStatus.AUTO_CLOSED else "Closed",
    }

    for index, track_status in enumerate(_WORK_TRACK):
        if halted:
            # closed_at on a halted ticket records the halt, not a close
            reached_before_halt = track_status != TicketStatus.CLOSED and timestamps[track_status] is not None
            state = StepState.COMPLETED if reached_before_halt else StepState.SKIPPED
        elif index < reached or (index == reached and track_status == TicketStatus.CLOSED):
            state = StepState.COMPLETED
        elif index == reached:
            state = StepState.CURRENT
        else:
            state = StepState.UPCOMING
        steps.append(TimelineStep(
            key=track_status.value.lower(),
            label=labels[track_status],
            state=state,
            timestamp=timestamps[track_status] if state in (StepState.COMPLETED, StepState.CURRENT) else None,
            actor=actors.get(track_status) if state in (StepState.COMPLETED, StepState.CURRENT) else None,
        ))

    if status == TicketStatus.REJECTED:
        steps.append(TimelineStep(key="rejected", label="Rejected", state=StepState.FAILED, timestamp=ticket.closed_at))
    elif status == TicketStatus.CANCELLED:
        steps.append(TimelineStep(
            key="cancelled",
            label="Cancelled",
            state=StepState.FAILED,
            timestamp=ticket.closed_at,
            actor=ticket.closed_by,
            details=ticket.closing_note,
        ))

    return steps


def history_newest_first(ticket: HelpdeskTicket) -> List[HistoryEntry]:
    """History for display; the stored order is left untouched"""
    return list(reversed(ticket.history))
