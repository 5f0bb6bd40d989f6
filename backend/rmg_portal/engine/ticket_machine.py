"""Ticket State Machine - The single authoritative transition function

Every status change of a helpdesk ticket goes through
`TicketStateMachine.apply`. The machine:

1. Checks that the event is allowed from the ticket's current status
2. Checks that the actor may perform the event
3. Mutates a deep copy of the ticket (the input is never touched)
4. Appends exactly one history entry
5. Returns the notification intents the caller should deliver once the
   write has been committed

Persistence and notification delivery are the caller's job, so the
machine can be exercised without a database.
"""
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..domain.models import (
    HelpdeskTicket, ActorContext, ApprovalPlan, ApprovalState,
    ApprovalLevelRecord, HistoryEntry
)
from ..domain.enums import (
    TicketStatus, TicketEvent, ApprovalStatus, ApprovalDecision, ClosingReason,
    Role, PENDING_APPROVAL_STATUSES, CANCELLABLE_STATUSES, QUEUE_ADMIN_ROLES,
    SPECIALIST_ROLES
)
from ..domain.errors import InvalidStateError, PermissionDeniedError, ValidationError
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


SYSTEM_ACTOR = ActorContext(
    employee_id="system",
    name="System",
    role=Role.SUPER_ADMIN,
)


# Status each event may be applied from
ALLOWED_FROM: Dict[TicketEvent, FrozenSet[TicketStatus]] = {
    TicketEvent.SUBMIT: frozenset({TicketStatus.DRAFT, TicketStatus.SUBMITTED}),
    TicketEvent.APPROVE: PENDING_APPROVAL_STATUSES,
    TicketEvent.REJECT: PENDING_APPROVAL_STATUSES,
    TicketEvent.ASSIGN: frozenset({TicketStatus.ROUTED}),
    TicketEvent.REASSIGN: frozenset({
        TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS, TicketStatus.PAUSED,
    }),
    TicketEvent.START_WORK: frozenset({TicketStatus.ASSIGNED}),
    TicketEvent.PAUSE: frozenset({TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS}),
    TicketEvent.RESUME: frozenset({TicketStatus.PAUSED}),
    TicketEvent.RESOLVE: frozenset({TicketStatus.IN_PROGRESS}),
    TicketEvent.CLOSE: frozenset({TicketStatus.RESOLVED}),
    TicketEvent.AUTO_CLOSE: frozenset({TicketStatus.RESOLVED}),
    TicketEvent.CANCEL: CANCELLABLE_STATUSES,
    TicketEvent.REOPEN: frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED}),
}

# Closing reason each status must carry; every other status carries none
CLOSING_REASON_BY_STATUS: Dict[TicketStatus, ClosingReason] = {
    TicketStatus.CLOSED: ClosingReason.IT_SPECIALIST_CLOSURE,
    TicketStatus.CANCELLED: ClosingReason.USER_CANCELLATION,
    TicketStatus.AUTO_CLOSED: ClosingReason.AUTO_CLOSED,
}


def available_events(status: TicketStatus) -> List[TicketEvent]:
    """Events that may be applied to a ticket in `status`"""
    return [event for event, sources in ALLOWED_FROM.items() if status in sources]


def check_closing_reason(ticket: HelpdeskTicket) -> None:
    """Reject any status / closing reason mismatch"""
    expected = CLOSING_REASON_BY_STATUS.get(ticket.status)
    if ticket.closing_reason != expected:
        raise ValidationError(
            f"Status {ticket.status.value} requires closing reason "
            f"{expected.value if expected else 'none'}",
            details={
                "field": "closing_reason",
                "status": ticket.status.value,
                "closing_reason": ticket.closing_reason.value if ticket.closing_reason else None,
            }
        )


class Audience(str, Enum):
    """Who a notification intent is addressed to"""
    APPROVERS = "approvers"
    QUEUE = "queue"
    REQUESTER = "requester"
    ASSIGNEE = "assignee"
    PREVIOUS_ASSIGNEE = "previous_assignee"


class NotificationIntent(BaseModel):
    audience: Audience
    event: TicketEvent
    level: Optional[int] = None


class TransitionPayload(BaseModel):
    """Event specific input"""
    plan: Optional[ApprovalPlan] = None
    specialist_queue: Optional[str] = None
    comments: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = None


class Transition(BaseModel):
    """Outcome of applying one event"""
    ticket: HelpdeskTicket
    event: TicketEvent
    previous_status: TicketStatus
    new_status: TicketStatus
    history_entry: HistoryEntry
    intents: List[NotificationIntent] = Field(default_factory=list)


_Outcome = Tuple[TicketStatus, str, Optional[str], List[NotificationIntent]]


def _require(value: Optional[str], field: str, message: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(message, details={"field": field})
    return value.strip()


class TicketStateMachine:
    """
    Explicit helpdesk ticket state machine

    The same transition table backs the write path (`apply`) and the read
    side (`available_events`), so the UI never re-derives what is allowed.
    """

    def apply(
        self,
        ticket: HelpdeskTicket,
        event: TicketEvent,
        actor: ActorContext,
        payload: Optional[TransitionPayload] = None,
        now: Optional[datetime] = None
    ) -> Transition:
        """
        Apply `event` to `ticket`

        Raises:
            InvalidStateError: event not allowed from the current status
            PermissionDeniedError: actor may not perform the event
            ValidationError: required notes/reason/assignee missing
        """
        payload = payload or TransitionPayload()
        now = now or utc_now()
        previous_status = ticket.status

        if event not in ALLOWED_FROM:
            raise InvalidStateError(f"Event {event.value} cannot be applied to an existing ticket")
        if previous_status not in ALLOWED_FROM[event]:
            raise InvalidStateError(
                f"Cannot apply '{event.value}' to ticket {ticket.ticket_number} in status {previous_status.value}",
                details={
                    "ticket_number": ticket.ticket_number,
                    "status": previous_status.value,
                    "event": event.value,
                    "allowed_events": [e.value for e in available_events(previous_status)],
                }
            )

        updated = ticket.model_copy(deep=True)
        handler: Callable[..., _Outcome] = getattr(self, f"_on_{event.name.lower()}")
        new_status, action, details, intents = handler(updated, actor, payload, now)

        updated.status = new_status
        updated.closing_reason = CLOSING_REASON_BY_STATUS.get(new_status)
        check_closing_reason(updated)

        entry = HistoryEntry(
            action=action,
            performed_by=actor.name,
            performed_by_id=actor.employee_id,
            timestamp=now,
            details=details,
            previous_status=previous_status,
            new_status=new_status,
        )
        updated.history.append(entry)
        updated.updated_at = now

        logger.info(
            f"Ticket {ticket.ticket_number}: {previous_status.value} -> {new_status.value} ({action})",
            extra={
                "ticket_number": ticket.ticket_number,
                "action": action,
                "actor_id": actor.employee_id,
                "previous_status": previous_status.value,
                "status": new_status.value,
            }
        )

        return Transition(
            ticket=updated,
            event=event,
            previous_status=previous_status,
            new_status=new_status,
            history_entry=entry,
            intents=intents,
        )

    # =========================================================================
    # Permission helpers
    # =========================================================================

    @staticmethod
    def _is_requester(actor: ActorContext, ticket: HelpdeskTicket) -> bool:
        return actor.employee_id == ticket.requester.employee_id

    @staticmethod
    def _is_assignee(actor: ActorContext, ticket: HelpdeskTicket) -> bool:
        return (
            ticket.assignment.assigned_to_id is not None
            and actor.employee_id == ticket.assignment.assigned_to_id
        )

    @staticmethod
    def _can_dispatch(actor: ActorContext, ticket: HelpdeskTicket) -> bool:
        """Admin of the ticket's module, or a super admin"""
        return actor.role in (Role.SUPER_ADMIN, QUEUE_ADMIN_ROLES[ticket.high_level_category])

    def _require_worker(self, actor: ActorContext, ticket: HelpdeskTicket, verb: str) -> None:
        if not (self._is_assignee(actor, ticket) or self._can_dispatch(actor, ticket)):
            raise PermissionDeniedError(
                f"Only the assignee or a {ticket.high_level_category.value} admin can {verb} this ticket"
            )

    def _require_level_approver(self, actor: ActorContext, ticket: HelpdeskTicket, level: int) -> None:
        level_plan = ticket.approval.level_plan(level)
        if level_plan is None or not level_plan.is_approver(actor.employee_id):
            raise PermissionDeniedError(
                f"You are not an approver for level L{level} of ticket {ticket.ticket_number}",
                details={"ticket_number": ticket.ticket_number, "level": level}
            )

    # =========================================================================
    # Shared mutations
    # =========================================================================

    @staticmethod
    def _route(ticket: HelpdeskTicket, queue: Optional[str], now: datetime) -> None:
        ticket.processing.routed_at = now
        ticket.processing.specialist_queue = queue or ticket.high_level_category.value

    @staticmethod
    def _enter_level(ticket: HelpdeskTicket, level: int, now: datetime) -> TicketStatus:
        ticket.approval.current_level = level
        if ticket.approval.record(level) is None:
            ticket.approval.levels.append(ApprovalLevelRecord(level=level, entered_at=now))
        return TicketStatus.pending_approval(level)

    @staticmethod
    def _decide_level(
        ticket: HelpdeskTicket,
        level: int,
        decision: ApprovalDecision,
        actor: ActorContext,
        comments: Optional[str],
        now: datetime
    ) -> None:
        record = ticket.approval.record(level)
        if record is None:
            record = ApprovalLevelRecord(level=level, entered_at=now)
            ticket.approval.levels.append(record)
        record.status = decision
        record.approver_id = actor.employee_id
        record.approver_name = actor.name
        record.action_timestamp = now
        record.comments = comments

    # =========================================================================
    # Event handlers
    # =========================================================================

    def _on_submit(self, ticket, actor, payload, now) -> _Outcome:
        if not self._is_requester(actor, ticket):
            raise PermissionDeniedError("Only the requester can submit this ticket")
        plan = payload.plan
        if plan is None:
            raise ValidationError("An approval plan is required to submit", details={"field": "plan"})

        if plan.required and plan.levels:
            ticket.approval = ApprovalState(
                required=True,
                bypassed=False,
                status=ApprovalStatus.PENDING,
                plan=plan.levels,
            )
            first = plan.levels[0].level
            status = self._enter_level(ticket, first, now)
            return status, TicketEvent.SUBMIT.value, f"Submitted for L{first} approval", [
                NotificationIntent(audience=Audience.APPROVERS, event=TicketEvent.SUBMIT, level=first),
            ]

        ticket.approval = ApprovalState(
            required=False,
            bypassed=plan.bypassed,
            status=ApprovalStatus.NOT_REQUIRED,
        )
        self._route(ticket, plan.specialist_queue, now)
        return (
            TicketStatus.ROUTED,
            TicketEvent.SUBMIT.value,
            f"Submitted and routed to {ticket.processing.specialist_queue}",
            [NotificationIntent(audience=Audience.QUEUE, event=TicketEvent.SUBMIT)],
        )

    def _on_approve(self, ticket, actor, payload, now) -> _Outcome:
        level = ticket.status.approval_level
        self._require_level_approver(actor, ticket, level)
        self._decide_level(ticket, level, ApprovalDecision.APPROVED, actor, payload.comments, now)

        action = f"L{level}_approved"
        details = f"L{level} Approved by {actor.name}" + (f": {payload.comments}" if payload.comments else "")

        next_level = ticket.approval.next_level_after(level)
        if next_level is not None:
            status = self._enter_level(ticket, next_level, now)
            return status, action, details, [
                NotificationIntent(audience=Audience.APPROVERS, event=TicketEvent.APPROVE, level=next_level),
            ]

        ticket.approval.status = ApprovalStatus.APPROVED
        self._route(ticket, payload.specialist_queue, now)
        return TicketStatus.ROUTED, action, details, [
            NotificationIntent(audience=Audience.QUEUE, event=TicketEvent.APPROVE),
            NotificationIntent(audience=Audience.REQUESTER, event=TicketEvent.APPROVE),
        ]

    def _on_reject(self, ticket, actor, payload, now) -> _Outcome:
        level = ticket.status.approval_level
        self._require_level_approver(actor, ticket, level)
        comments = payload.comments or payload.reason
        self._decide_level(ticket, level, ApprovalDecision.REJECTED, actor, comments, now)
        ticket.approval.status = ApprovalStatus.REJECTED
        ticket.closed_at = now
        ticket.closed_by = actor.name

        details = f"L{level} Rejected by {actor.name}" + (f": {comments}" if comments else "")
        return TicketStatus.REJECTED, f"L{level}_rejected", details, [
            NotificationIntent(audience=Audience.REQUESTER, event=TicketEvent.REJECT, level=level),
        ]

    def _on_assign(self, ticket, actor, payload, now) -> _Outcome:
        claiming = payload.assignee_id is None or payload.assignee_id == actor.employee_id
        if claiming:
            if not (self._can_dispatch(actor, ticket) or actor.role == SPECIALIST_ROLES[ticket.high_level_category]):
                raise PermissionDeniedError(
                    f"Only {ticket.high_level_category.value} specialists can claim this ticket",
                    details={"required_roles": [SPECIALIST_ROLES[ticket.high_level_category].value]}
                )
            assignee_id, assignee_name = actor.employee_id, actor.name
        else:
            if not self._can_dispatch(actor, ticket):
                raise PermissionDeniedError(
                    f"Only a {ticket.high_level_category.value} admin can assign this ticket"
                )
            assignee_id = payload.assignee_id
            assignee_name = _require(payload.assignee_name, "assignee_name", "Assignee name is required")

        ticket.assignment.assigned_to_id = assignee_id
        ticket.assignment.assigned_to_name = assignee_name
        ticket.assignment.assigned_by_id = actor.employee_id
        ticket.assignment.assigned_by_name = actor.name
        ticket.assignment.assigned_at = now
        ticket.assignment.notes = payload.notes

        details = "Claimed from queue" if claiming else f"Assigned to {assignee_name}"
        return TicketStatus.ASSIGNED, TicketEvent.ASSIGN.value, details, [
            NotificationIntent(audience=Audience.ASSIGNEE, event=TicketEvent.ASSIGN),
            NotificationIntent(audience=Audience.REQUESTER, event=TicketEvent.ASSIGN),
        ]

    def _on_reassign(self, ticket, actor, payload, now) -> _Outcome:
        if not self._can_dispatch(actor, ticket):
            raise PermissionDeniedError(
                f"Only a {ticket.high_level_category.value} admin can reassign this ticket"
            )
        reason = _require(payload.reason, "reason", "A reason is required to reassign a ticket")
        assignee_id = _require(payload.assignee_id, "assignee_id", "New assignee is required")
        assignee_name = _require(payload.assignee_name, "assignee_name", "Assignee name is required")
        if assignee_id == ticket.assignment.assigned_to_id:
            raise ValidationError(
                "Ticket is already assigned to this person",
                details={"field": "assignee_id"}
            )

        ticket.assignment.previous_assignee_id = ticket.assignment.assigned_to_id
        ticket.assignment.previous_assignee_name = ticket.assignment.assigned_to_name
        ticket.assignment.assigned_to_id = assignee_id
        ticket.assignment.assigned_to_name = assignee_name
        ticket.assignment.assigned_by_id = actor.employee_id
        ticket.assignment.assigned_by_name = actor.name
        ticket.assignment.assigned_at = now
        ticket.assignment.notes = reason

        details = f"Reassigned from {ticket.assignment.previous_assignee_name} to {assignee_name}: {reason}"
        return ticket.status, TicketEvent.REASSIGN.value, details, [
            NotificationIntent(audience=Audience.ASSIGNEE, event=TicketEvent.REASSIGN),
            NotificationIntent(audience=Audience.PREVIOUS_ASSIGNEE, event=TicketEvent.REASSIGN),
        ]

    def _on_start_work(self, ticket, actor, payload, now) -> _Outcome:
        self._require_worker(actor, ticket, "start work on")
        if ticket.processing.started_at is None:
            ticket.processing.started_at = now
        return TicketStatus.IN_PROGRESS, TicketEvent.START_WORK.value, payload.notes, [
            NotificationIntent(audience=Audience.REQUESTER, event=TicketEvent.START_WORK),
        ]

    def _on_pause(self, ticket, actor, payload, now) -> _Outcome:
        self._require_worker(actor, ticket, "pause")
        return TicketStatus.PAUSED, TicketEvent.PAUSE.value, payload.reason, [
            NotificationIntent(audience=Audience.REQUESTER, event=TicketEvent.PAUSE),
        ]

    def _on_resume(self, ticket, actor, payload, now) -> _Outcome:
        self._require_worker(actor, ticket, "resume")
        return TicketStatus.IN_PROGRESS, TicketEvent.RESUME.value, payload.notes, [
            NotificationIntent(audience=Audience.REQUESTER, event=TicketEvent.RESUME),
        ]

    def _on_resolve(self, ticket, actor, payload, now) -> _Outcome:
        self._require_worker(actor, ticket, "resolve")
        notes = _require(payload.notes, "notes", "Resolution notes are required to resolve a ticket")
        ticket.resolution.notes = notes
        ticket.resolution.resolved_by = actor.name
        ticket.resolution.resolved_at = now
        return TicketStatus.RESOLVED, TicketEvent.RESOLVE.value, notes, [
            NotificationIntent(audience=Audience.REQUESTER, event=TicketEvent.RESOLVE),
        ]

    def _on_close(self, ticket, actor, payload, now) -> _Outcome:
        self._require_worker(actor, ticket, "close")
        ticket.closing_note = payload.notes
        ticket.closed_at = now
        ticket.closed_by = actor.name
        return TicketStatus.CLOSED, TicketEvent.CLOSE.value, payload.notes, [
            NotificationIntent(audience=Audience.REQUESTER, event=TicketEvent.CLOSE),
        ]

    def _on_auto_close(self, ticket, actor, payload, now) -> _Outcome:
        if actor.employee_id != SYSTEM_ACTOR.employee_id:
            raise PermissionDeniedError("Auto-close is reserved for the scheduler")
        ticket.closed_at = now
        ticket.closed_by = actor.name
        return TicketStatus.AUTO_CLOSED, TicketEvent.AUTO_CLOSE.value, payload.notes, [
            NotificationIntent(audience=Audience.REQUESTER, event=TicketEvent.AUTO_CLOSE),
        ]

    def _on_cancel(self, ticket, actor, payload, now) -> _Outcome:
        if not (self._is_requester(actor, ticket) or self._can_dispatch(actor, ticket)):
            raise PermissionDeniedError("Only the requester can cancel this ticket")
        intents = []
        level = ticket.status.approval_level
        if level:
            intents.append(NotificationIntent(audience=Audience.APPROVERS, event=TicketEvent.CANCEL, level=level))
        elif ticket.status == TicketStatus.ROUTED:
            intents.append(NotificationIntent(audience=Audience.QUEUE, event=TicketEvent.CANCEL))
        if not self._is_requester(actor, ticket):
            intents.append(NotificationIntent(audience=Audience.REQUESTER, event=TicketEvent.CANCEL))

        ticket.closing_note = payload.reason
        ticket.closed_at = now
        ticket.closed_by = actor.name
        return TicketStatus.CANCELLED, TicketEvent.CANCEL.value, payload.reason, intents

    def _on_reopen(self, ticket, actor, payload, now) -> _Outcome:
        if not self._is_requester(actor, ticket):
            raise PermissionDeniedError("Only the requester can reopen this ticket")
        reason = _require(payload.reason, "reason", "A reason is required to reopen a ticket")
        ticket.closing_note = None
        ticket.closed_at = None
        ticket.closed_by = None
        return TicketStatus.IN_PROGRESS, TicketEvent.REOPEN.value, reason, [
            NotificationIntent(audience=Audience.ASSIGNEE, event=TicketEvent.REOPEN),
        ]
