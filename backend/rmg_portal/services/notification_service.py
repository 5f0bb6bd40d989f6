"""Notification Service - Best-effort, role-scoped notifications

Notifications are written after the primary state change has been
committed. A failure here is logged and swallowed: it must never undo or
block a ticket, timesheet or leave transition.
"""
from typing import Any, Dict, List, Optional, Tuple

from ..domain.models import HelpdeskTicket, ActorContext, Notification
from ..domain.enums import (
    HighLevelCategory, NotificationType, Role, TicketEvent, QUEUE_ADMIN_ROLES, SPECIALIST_ROLES
)
from ..engine.ticket_machine import Audience, NotificationIntent
from ..repositories.notification_repo import NotificationRepository
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


APPROVER_URL = "/approver"
EMPLOYEE_HELPDESK_URL = "/helpdesk"
TIMESHEET_URL = "/timesheet"
LEAVE_URL = "/leave"

# Portal area of each helpdesk module's specialists and admins
QUEUE_URLS = {
    HighLevelCategory.IT: "/itadmin/tickets",
    HighLevelCategory.FACILITIES: "/facilities/tickets",
    HighLevelCategory.FINANCE: "/finance/tickets",
}

_EVENT_TYPES = {
    TicketEvent.SUBMIT: NotificationType.APPROVAL,
    TicketEvent.APPROVE: NotificationType.APPROVAL,
    TicketEvent.REJECT: NotificationType.REJECTION,
}

# (event, audience) -> (title, message template)
_TICKET_MESSAGES: Dict[Tuple[TicketEvent, Audience], Tuple[str, str]] = {
    (TicketEvent.SUBMIT, Audience.APPROVERS): (
        "Approval Required", "{number} from {requester} needs your L{level} approval: {subject}"),
    (TicketEvent.SUBMIT, Audience.QUEUE): (
        "New Ticket in Queue", "{number} ({sub_category}) was routed to {queue}"),
    (TicketEvent.APPROVE, Audience.APPROVERS): (
        "Approval Required", "{number} was approved by {actor} and needs your L{level} approval"),
    (TicketEvent.APPROVE, Audience.QUEUE): (
        "New Ticket in Queue", "{number} ({sub_category}) was approved and routed to {queue}"),
    (TicketEvent.APPROVE, Audience.REQUESTER): (
        "Ticket Approved", "Your ticket {number} has been approved and routed to {queue}"),
    (TicketEvent.REJECT, Audience.REQUESTER): (
        "Ticket Rejected", "Your ticket {number} was rejected at L{level} by {actor}"),
    (TicketEvent.ASSIGN, Audience.ASSIGNEE): (
        "Ticket Assigned", "{number} has been assigned to you: {subject}"),
    (TicketEvent.ASSIGN, Audience.REQUESTER): (
        "Ticket Assigned", "Your ticket {number} is now handled by {assignee}"),
    (TicketEvent.REASSIGN, Audience.ASSIGNEE): (
        "Ticket Reassigned", "{number} has been reassigned to you: {subject}"),
    (TicketEvent.REASSIGN, Audience.PREVIOUS_ASSIGNEE): (
        "Ticket Reassigned", "{number} has been reassigned to {assignee}"),
    (TicketEvent.START_WORK, Audience.REQUESTER): (
        "Work Started", "{assignee} started working on your ticket {number}"),
    (TicketEvent.PAUSE, Audience.REQUESTER): (
        "Ticket On Hold", "Work on your ticket {number} has been paused"),
    (TicketEvent.RESUME, Audience.REQUESTER): (
        "Ticket Resumed", "Work on your ticket {number} has resumed"),
    (TicketEvent.RESOLVE, Audience.REQUESTER): (
        "Ticket Resolved", "Your ticket {number} has been resolved"),
    (TicketEvent.CLOSE, Audience.REQUESTER): (
        "Ticket Closed", "Your ticket {number} has been closed"),
    (TicketEvent.AUTO_CLOSE, Audience.REQUESTER): (
        "Ticket Auto-Closed", "Your ticket {number} was closed automatically after resolution"),
    (TicketEvent.CANCEL, Audience.APPROVERS): (
        "Ticket Cancelled", "{number} awaiting your L{level} approval was cancelled"),
    (TicketEvent.CANCEL, Audience.QUEUE): (
        "Ticket Cancelled", "{number} was cancelled before assignment"),
    (TicketEvent.CANCEL, Audience.REQUESTER): (
        "Ticket Cancelled", "Your ticket {number} was cancelled by {actor}"),
    (TicketEvent.REOPEN, Audience.ASSIGNEE): (
        "Ticket Reopened", "{number} was reopened by {requester}"),
}


class NotificationService:
    """Service for writing and reading notifications"""

    def __init__(self):
        self.repo = NotificationRepository()

    # =========================================================================
    # Delivery
    # =========================================================================

    def notify(
        self,
        title: str,
        message: str,
        notification_type: NotificationType,
        role: str,
        user_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None
    ) -> Optional[Notification]:
        """
        Write one notification, best effort

        Returns the notification, or None when it could not be stored.
        """
        try:
            notification = Notification(
                notification_id=generate_notification_id(),
                title=title,
                message=message,
                type=notification_type,
                role=role,
                user_id=user_id,
                meta=meta or {},
                created_at=utc_now(),
            )
            return self.repo.create_notification(notification)
        except Exception as e:
            # Don't fail the main operation if a notification fails
            logger.warning(
                f"Failed to create notification '{title}': {e}",
                extra={"notification_role": role, "employee_id": user_id}
            )
            return None

    def notify_ticket(
        self,
        ticket: HelpdeskTicket,
        intents: List[NotificationIntent],
        actor: ActorContext
    ) -> List[Notification]:
        """Deliver the intents produced by a ticket transition"""
        delivered = []
        for intent in intents:
            try:
                recipients = self._ticket_recipients(ticket, intent)
                title, template = _TICKET_MESSAGES[(intent.event, intent.audience)]
            except Exception as e:
                logger.warning(
                    f"Could not resolve notification for {ticket.ticket_number}: {e}",
                    extra={"ticket_number": ticket.ticket_number, "action": intent.event.value}
                )
                continue

            message = template.format(
                number=ticket.ticket_number,
                subject=ticket.subject,
                sub_category=ticket.sub_category,
                requester=ticket.requester.name,
                actor=actor.name,
                level=intent.level,
                queue=ticket.processing.specialist_queue,
                assignee=ticket.assignment.assigned_to_name,
            )
            for role, user_id, action_url in recipients:
                notification = self.notify(
                    title=title,
                    message=message,
                    notification_type=_EVENT_TYPES.get(intent.event, NotificationType.TICKET),
                    role=role,
                    user_id=user_id,
                    meta={
                        "action_url": action_url,
                        "ticket_number": ticket.ticket_number,
                        "event": intent.event.value,
                        "status": ticket.status.value,
                    },
                )
                if notification:
                    delivered.append(notification)
        return delivered

    @staticmethod
    def _ticket_recipients(
        ticket: HelpdeskTicket,
        intent: NotificationIntent
    ) -> List[Tuple[str, Optional[str], str]]:
        """(role, user_id, action_url) per recipient of an intent"""
        category = ticket.high_level_category
        queue_url = QUEUE_URLS[category]

        if intent.audience == Audience.APPROVERS:
            level_plan = ticket.approval.level_plan(intent.level)
            if level_plan is None:
                return []
            role = Role.approver_for_level(intent.level).value
            return [(role, approver.employee_id, APPROVER_URL) for approver in level_plan.approvers]

        if intent.audience == Audience.QUEUE:
            return [(QUEUE_ADMIN_ROLES[category].value, None, queue_url)]

        if intent.audience == Audience.REQUESTER:
            role = (ticket.requester.role or Role.EMPLOYEE).value
            return [(role, ticket.requester.employee_id, EMPLOYEE_HELPDESK_URL)]

        if intent.audience == Audience.ASSIGNEE:
            if not ticket.assignment.assigned_to_id:
                return []
            return [(SPECIALIST_ROLES[category].value, ticket.assignment.assigned_to_id, queue_url)]

        if intent.audience == Audience.PREVIOUS_ASSIGNEE:
            if not ticket.assignment.previous_assignee_id:
                return []
            return [(SPECIALIST_ROLES[category].value, ticket.assignment.previous_assignee_id, queue_url)]

        return []

    def notify_employee(
        self,
        employee_id: str,
        title: str,
        message: str,
        notification_type: NotificationType,
        action_url: str,
        role: Role = Role.EMPLOYEE,
        **meta: Any
    ) -> Optional[Notification]:
        """Notify a single employee (timesheet and leave flows)"""
        return self.notify(
            title=title,
            message=message,
            notification_type=notification_type,
            role=role.value,
            user_id=employee_id,
            meta={"action_url": action_url, **meta},
        )

    # =========================================================================
    # Inbox
    # =========================================================================

    def list_for_user(
        self,
        actor: ActorContext,
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 50
    ) -> List[Notification]:
        return self.repo.list_for_user(actor.employee_id, actor.role.value, unread_only, skip, limit)

    def unread_count(self, actor: ActorContext) -> int:
        return self.repo.unread_count(actor.employee_id, actor.role.value)

    def mark_read(self, notification_id: str, actor: Optional[ActorContext] = None) -> Notification:
        """With an actor, only a notification that actor can see is touched"""
        if actor is None:
            return self.repo.mark_read(notification_id)
        return self.repo.mark_read(notification_id, actor.employee_id, actor.role.value)

    def mark_all_read(self, actor: ActorContext) -> int:
        return self.repo.mark_all_read(actor.employee_id, actor.role.value)

    def delete(self, notification_id: str, actor: Optional[ActorContext] = None) -> bool:
        if actor is None:
            return self.repo.delete_notification(notification_id)
        return self.repo.delete_notification(notification_id, actor.employee_id, actor.role.value)
