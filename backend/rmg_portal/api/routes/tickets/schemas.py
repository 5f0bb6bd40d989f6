"""
Ticket Schemas

Request and response models for helpdesk ticket endpoints.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ....domain.enums import HighLevelCategory, Urgency, TicketStatus, TicketEvent
from ....domain.models import HelpdeskTicket, HistoryEntry
from ....engine.timeline import TimelineStep


# =============================================================================
# Ticket CRUD Schemas
# =============================================================================

class CreateTicketRequest(BaseModel):
    """Request to create a new ticket"""
    high_level_category: HighLevelCategory
    sub_category: str = Field(..., min_length=1, max_length=200)
    subject: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=1, max_length=5000)
    urgency: Urgency = Urgency.MEDIUM
    save_as_draft: bool = Field(False, description="Keep the ticket in Draft instead of submitting")


class TicketSummary(BaseModel):
    """Row in a ticket list"""
    ticket_number: str
    high_level_category: HighLevelCategory
    sub_category: str
    subject: str
    urgency: Urgency
    status: TicketStatus
    requester_name: str
    assigned_to_name: Optional[str] = None
    specialist_queue: Optional[str] = None
    version: int
    created_at: str
    updated_at: str

    @classmethod
    def from_ticket(cls, ticket: HelpdeskTicket) -> "TicketSummary":
        return cls(
            ticket_number=ticket.ticket_number,
            high_level_category=ticket.high_level_category,
            sub_category=ticket.sub_category,
            subject=ticket.subject,
            urgency=ticket.urgency,
            status=ticket.status,
            requester_name=ticket.requester.name,
            assigned_to_name=ticket.assignment.assigned_to_name,
            specialist_queue=ticket.processing.specialist_queue,
            version=ticket.version,
            created_at=ticket.created_at.isoformat(),
            updated_at=ticket.updated_at.isoformat(),
        )


class TicketListResponse(BaseModel):
    """Response for ticket list"""
    items: List[TicketSummary]
    skip: int
    limit: int
    total: int


class TicketViewResponse(BaseModel):
    """Full ticket with its progress timeline and audit trail"""
    ticket: HelpdeskTicket
    timeline: List[TimelineStep]
    history: List[HistoryEntry]
    available_actions: List[TicketEvent]


class QueueStatsResponse(BaseModel):
    high_level_category: HighLevelCategory
    counts: Dict[str, int]


# =============================================================================
# Action Schemas
# =============================================================================

class VersionedRequest(BaseModel):
    """Base for actions; `version` guards against acting on a stale ticket"""
    version: Optional[int] = Field(None, ge=1)


class ApprovalRequest(VersionedRequest):
    """Request for approve/reject"""
    comments: Optional[str] = Field(None, max_length=2000)


class AssignRequest(VersionedRequest):
    """Assign to a specialist; omit the assignee to claim the ticket yourself"""
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=2000)


class ReassignRequest(VersionedRequest):
    assignee_id: str
    assignee_name: str = Field(..., min_length=1, max_length=200)
    reason: str = Field(..., max_length=2000)


class NotesRequest(VersionedRequest):
    notes: Optional[str] = Field(None, max_length=5000)


class ReasonRequest(VersionedRequest):
    reason: Optional[str] = Field(None, max_length=2000)


class ActionResponse(BaseModel):
    """Response after a ticket action"""
    ticket_number: str
    status: TicketStatus
    version: int
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_ticket(cls, ticket: HelpdeskTicket, message: str) -> "ActionResponse":
        details: Dict[str, Any] = {}
        if ticket.closing_reason:
            details["closing_reason"] = ticket.closing_reason.value
        if ticket.approval.current_level:
            details["approval_level"] = ticket.approval.current_level
        return cls(
            ticket_number=ticket.ticket_number,
            status=ticket.status,
            version=ticket.version,
            message=message,
            details=details,
        )
