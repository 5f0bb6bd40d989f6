"""Ticket Service - Helpdesk ticket business logic

Reads a ticket, runs the event through the state machine, persists the
result with an optimistic version check and then fires the notifications
the transition asked for.
"""
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from ..domain.models import HelpdeskTicket, ActorContext, RequesterInfo, HistoryEntry
from ..domain.enums import (
    HighLevelCategory, TicketStatus, TicketEvent, Urgency, QUEUE_ADMIN_ROLES, SPECIALIST_ROLES, Role
)
from ..domain.errors import ConcurrencyError, PermissionDeniedError, ValidationError
from ..engine.ticket_machine import (
    TicketStateMachine, TransitionPayload, SYSTEM_ACTOR, available_events
)
from ..engine.timeline import build_timeline, history_newest_first, TimelineStep
from ..repositories.ticket_repo import TicketRepository
from ..repositories.counter_repo import CounterRepository
from ..config.settings import settings
from .category_config_service import CategoryConfigService
from .notification_service import NotificationService
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Statuses in which a ticket sits in a specialist queue
QUEUE_STATUSES = [
    TicketStatus.ROUTED, TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS, TicketStatus.PAUSED,
]
ACTIVE_WORK_STATUSES = [TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS, TicketStatus.PAUSED]


class TicketService:
    """Service for helpdesk ticket operations"""

    def __init__(self):
        self.ticket_repo = TicketRepository()
        self.counter_repo = CounterRepository()
        self.config_service = CategoryConfigService()
        self.notification_service = NotificationService()
        self.machine = TicketStateMachine()

    # =========================================================================
    # Creation & Numbering
    # =========================================================================

    def sync_ticket_counter(self) -> int:
        """Raise the counter to the highest ticket number in use"""
        highest = self.ticket_repo.max_ticket_number(settings.ticket_number_prefix)
        return self.counter_repo.raise_to(settings.ticket_counter_id, highest)

    def _insert_with_number(self, draft: HelpdeskTicket) -> HelpdeskTicket:
        """
        Allocate a ticket number and insert

        A duplicate number means the counter drifted behind the stored
        tickets: resync it and try once more before giving up.
        """
        for attempt in range(2):
            draft.ticket_number = self.counter_repo.next_ticket_number()
            try:
                return self.ticket_repo.create_ticket(draft)
            except DuplicateKeyError:
                logger.warning(
                    f"Ticket number {draft.ticket_number} already in use (attempt {attempt + 1})",
                    extra={"ticket_number": draft.ticket_number, "action": "ticket_number_collision"}
                )
                if attempt == 0:
                    self.sync_ticket_counter()

        raise ConcurrencyError(
            "Could not allocate a ticket number. Please retry.",
            details={"ticket_number": draft.ticket_number}
        )

    def create_ticket(
        self,
        high_level_category: HighLevelCategory,
        sub_category: str,
        subject: str,
        description: str,
        actor: ActorContext,
        urgency: Urgency = Urgency.MEDIUM,
        submit: bool = True
    ) -> HelpdeskTicket:
        """Create a ticket as Draft and, unless saving a draft, submit it"""
        if not subject.strip():
            raise ValidationError("Subject is required", details={"field": "subject"})
        if not description.strip():
            raise ValidationError("Description is required", details={"field": "description"})

        now = utc_now()
        draft = HelpdeskTicket(
            ticket_number="",
            high_level_category=high_level_category,
            sub_category=sub_category,
            subject=subject.strip(),
            description=description.strip(),
            urgency=urgency,
            requester=RequesterInfo(
                employee_id=actor.employee_id,
                name=actor.name,
                email=actor.email,
                department=actor.department,
                role=actor.role,
            ),
            status=TicketStatus.DRAFT,
            history=[HistoryEntry(
                action=TicketEvent.CREATE.value,
                performed_by=actor.name,
                performed_by_id=actor.employee_id,
                timestamp=now,
                details=f"{high_level_category.value} / {sub_category}",
                new_status=TicketStatus.DRAFT,
            )],
            created_at=now,
            updated_at=now,
        )

        ticket = self._insert_with_number(draft)
        logger.info(
            f"Ticket {ticket.ticket_number} created by {actor.employee_id}",
            extra={"ticket_number": ticket.ticket_number, "employee_id": actor.employee_id}
        )

        if submit:
            return self.submit_ticket(ticket.ticket_number, actor)
        return ticket

    # =========================================================================
    # Transitions
    # =========================================================================

    def _apply(
        self,
        ticket_number: str,
        event: TicketEvent,
        actor: ActorContext,
        payload: Optional[TransitionPayload] = None,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_number)
        if expected_version is not None and ticket.version != expected_version:
            raise ConcurrencyError(
                f"Ticket {ticket_number} was modified. Please refresh and try again.",
                details={"expected_version": expected_version, "current_version": ticket.version}
            )

        transition = self.machine.apply(ticket, event, actor, payload)
        saved = self.ticket_repo.save_ticket(transition.ticket, expected_version=ticket.version)

        self.notification_service.notify_ticket(saved, transition.intents, actor)
        return saved

    def submit_ticket(
        self,
        ticket_number: str,
        actor: ActorContext,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_number)
        plan = self.config_service.resolve_approval_plan(ticket.high_level_category, ticket.sub_category)
        return self._apply(
            ticket_number, TicketEvent.SUBMIT, actor,
            TransitionPayload(plan=plan), expected_version
        )

    def approve(
        self,
        ticket_number: str,
        actor: ActorContext,
        comments: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_number)
        queue = self.config_service.resolve_specialist_queue(ticket.high_level_category, ticket.sub_category)
        return self._apply(
            ticket_number, TicketEvent.APPROVE, actor,
            TransitionPayload(comments=comments, specialist_queue=queue), expected_version
        )

    def reject(
        self,
        ticket_number: str,
        actor: ActorContext,
        comments: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        return self._apply(
            ticket_number, TicketEvent.REJECT, actor,
            TransitionPayload(comments=comments), expected_version
        )

    def assign(
        self,
        ticket_number: str,
        actor: ActorContext,
        assignee_id: Optional[str] = None,
        assignee_name: Optional[str] = None,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        """Assign to a specialist; without an assignee the actor claims the ticket"""
        return self._apply(
            ticket_number, TicketEvent.ASSIGN, actor,
            TransitionPayload(assignee_id=assignee_id, assignee_name=assignee_name, notes=notes),
            expected_version
        )

    def reassign(
        self,
        ticket_number: str,
        actor: ActorContext,
        assignee_id: str,
        assignee_name: str,
        reason: str,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        return self._apply(
            ticket_number, TicketEvent.REASSIGN, actor,
            TransitionPayload(assignee_id=assignee_id, assignee_name=assignee_name, reason=reason),
            expected_version
        )

    def start_work(
        self,
        ticket_number: str,
        actor: ActorContext,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        return self._apply(
            ticket_number, TicketEvent.START_WORK, actor, TransitionPayload(notes=notes), expected_version
        )

    def pause(
        self,
        ticket_number: str,
        actor: ActorContext,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        return self._apply(
            ticket_number, TicketEvent.PAUSE, actor, TransitionPayload(reason=reason), expected_version
        )

    def resume(
        self,
        ticket_number: str,
        actor: ActorContext,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        return self._apply(
            ticket_number, TicketEvent.RESUME, actor, TransitionPayload(notes=notes), expected_version
        )

    def resolve(
        self,
        ticket_number: str,
        actor: ActorContext,
        notes: str,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        return self._apply(
            ticket_number, TicketEvent.RESOLVE, actor, TransitionPayload(notes=notes), expected_version
        )

    def close(
        self,
        ticket_number: str,
        actor: ActorContext,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        return self._apply(
            ticket_number, TicketEvent.CLOSE, actor, TransitionPayload(notes=notes), expected_version
        )

    def cancel(
        self,
        ticket_number: str,
        actor: ActorContext,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        return self._apply(
            ticket_number, TicketEvent.CANCEL, actor, TransitionPayload(reason=reason), expected_version
        )

    def reopen(
        self,
        ticket_number: str,
        actor: ActorContext,
        reason: str,
        expected_version: Optional[int] = None
    ) -> HelpdeskTicket:
        return self._apply(
            ticket_number, TicketEvent.REOPEN, actor, TransitionPayload(reason=reason), expected_version
        )

    def auto_close_stale(self, older_than_days: Optional[int] = None) -> List[str]:
        """
        Auto-close tickets resolved more than `older_than_days` ago

        Returns the ticket numbers that were closed. A ticket changed by
        someone else in the meantime is skipped and picked up next run.
        """
        days = older_than_days if older_than_days is not None else settings.auto_close_after_days
        cutoff = utc_now() - timedelta(days=days)
        closed = []
        for ticket in self.ticket_repo.list_resolved_before(cutoff):
            try:
                self._apply(
                    ticket.ticket_number, TicketEvent.AUTO_CLOSE, SYSTEM_ACTOR,
                    TransitionPayload(notes=f"No response within {days} days of resolution"),
                    expected_version=ticket.version
                )
                closed.append(ticket.ticket_number)
            except ConcurrencyError:
                logger.info(
                    f"Skipped auto-close of {ticket.ticket_number}: modified concurrently",
                    extra={"ticket_number": ticket.ticket_number}
                )
        if closed:
            logger.info(f"Auto-closed {len(closed)} tickets", extra={"action": TicketEvent.AUTO_CLOSE.value})
        return closed

    # =========================================================================
    # Reads
    # =========================================================================

    def get_ticket(self, ticket_number: str) -> HelpdeskTicket:
        return self.ticket_repo.get_ticket_or_raise(ticket_number)

    def get_ticket_view(self, ticket_number: str) -> Tuple[HelpdeskTicket, List[TimelineStep], List[HistoryEntry], List[TicketEvent]]:
        """Ticket plus its timeline, newest-first history and available events"""
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_number)
        return ticket, build_timeline(ticket), history_newest_first(ticket), available_events(ticket.status)

    def list_my_tickets(
        self,
        actor: ActorContext,
        statuses: Optional[List[TicketStatus]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[HelpdeskTicket]:
        return self.ticket_repo.list_tickets(
            requester_id=actor.employee_id, statuses=statuses, skip=skip, limit=limit
        )

    def list_queue(
        self,
        actor: ActorContext,
        category: HighLevelCategory,
        specialist_queue: Optional[str] = None,
        statuses: Optional[List[TicketStatus]] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[HelpdeskTicket]:
        """Tickets routed to a module's queues"""
        self._check_queue_access(actor, category)
        return self.ticket_repo.list_tickets(
            category=category,
            specialist_queue=specialist_queue,
            statuses=statuses or QUEUE_STATUSES,
            search=search,
            skip=skip,
            limit=limit,
        )

    @staticmethod
    def _check_queue_access(actor: ActorContext, category: HighLevelCategory) -> None:
        if actor.role not in (Role.SUPER_ADMIN, QUEUE_ADMIN_ROLES[category], SPECIALIST_ROLES[category]):
            raise PermissionDeniedError(f"You cannot view the {category.value} queue")

    def queue_stats(
        self,
        actor: ActorContext,
        category: HighLevelCategory,
        specialist_queue: Optional[str] = None
    ) -> Dict[str, int]:
        """Ticket count per queue status for a module's dashboard"""
        self._check_queue_access(actor, category)
        stats = {
            status.value: self.ticket_repo.count_tickets(
                category=category, statuses=[status], specialist_queue=specialist_queue
            )
            for status in QUEUE_STATUSES + [TicketStatus.RESOLVED]
        }
        stats["total"] = sum(stats.values())
        return stats

    def count_queue(
        self,
        actor: ActorContext,
        category: HighLevelCategory,
        specialist_queue: Optional[str] = None,
        statuses: Optional[List[TicketStatus]] = None,
        search: Optional[str] = None
    ) -> int:
        self._check_queue_access(actor, category)
        return self.ticket_repo.count_tickets(
            category=category,
            specialist_queue=specialist_queue,
            statuses=statuses or QUEUE_STATUSES,
            search=search,
        )

    def count_my_tickets(self, actor: ActorContext, statuses: Optional[List[TicketStatus]] = None) -> int:
        return self.ticket_repo.count_tickets(requester_id=actor.employee_id, statuses=statuses)

    def list_assigned(
        self,
        actor: ActorContext,
        statuses: Optional[List[TicketStatus]] = None
    ) -> List[HelpdeskTicket]:
        return self.ticket_repo.list_tickets(
            assigned_to_id=actor.employee_id, statuses=statuses or ACTIVE_WORK_STATUSES, limit=200
        )

    def list_pending_approvals(self, actor: ActorContext) -> List[HelpdeskTicket]:
        return self.ticket_repo.list_pending_approvals(actor.employee_id)

    def list_approval_history(self, actor: ActorContext) -> List[HelpdeskTicket]:
        return self.ticket_repo.list_decided_by(actor.employee_id)
