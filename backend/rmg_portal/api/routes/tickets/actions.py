"""
Ticket Actions Routes

One endpoint per state machine event. Each accepts an optional `version`
and answers 409 when the ticket changed underneath the caller.
"""

from fastapi import APIRouter, Depends, HTTPException

from ...deps import get_current_actor_dep, get_correlation_id_dep
from ....domain.models import ActorContext
from ....domain.errors import DomainError
from ....services.ticket_service import TicketService
from ....utils.logger import get_logger
from .schemas import (
    VersionedRequest, ApprovalRequest, AssignRequest, ReassignRequest,
    NotesRequest, ReasonRequest, ActionResponse
)

logger = get_logger(__name__)
router = APIRouter()


@router.post("/{ticket_number}/submit", response_model=ActionResponse)
async def submit(
    ticket_number: str,
    request: VersionedRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Submit a draft ticket"""
    try:
        ticket = TicketService().submit_ticket(ticket_number, actor, expected_version=request.version)
        return ActionResponse.from_ticket(ticket, "Ticket submitted")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_number}/approve", response_model=ActionResponse)
async def approve(
    ticket_number: str,
    request: ApprovalRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Approve the current approval level.

    Only an approver configured for the current level can approve. The
    last enabled level routes the ticket to its specialist queue.
    """
    try:
        ticket = TicketService().approve(
            ticket_number, actor, comments=request.comments, expected_version=request.version
        )
        return ActionResponse.from_ticket(ticket, "Approved")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_number}/reject", response_model=ActionResponse)
async def reject(
    ticket_number: str,
    request: ApprovalRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Reject at the current approval level. Rejection is final."""
    try:
        ticket = TicketService().reject(
            ticket_number, actor, comments=request.comments, expected_version=request.version
        )
        return ActionResponse.from_ticket(ticket, "Rejected")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_number}/assign", response_model=ActionResponse)
async def assign(
    ticket_number: str,
    request: AssignRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Assign a routed ticket to a specialist, or claim it"""
    try:
        ticket = TicketService().assign(
            ticket_number,
            actor,
            assignee_id=request.assignee_id,
            assignee_name=request.assignee_name,
            notes=request.notes,
            expected_version=request.version
        )
        return ActionResponse.from_ticket(ticket, f"Assigned to {ticket.assignment.assigned_to_name}")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_number}/reassign", response_model=ActionResponse)
async def reassign(
    ticket_number: str,
    request: ReassignRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        ticket = TicketService().reassign(
            ticket_number,
            actor,
            assignee_id=request.assignee_id,
            assignee_name=request.assignee_name,
            reason=request.reason,
            expected_version=request.version
        )
        return ActionResponse.from_ticket(ticket, f"Reassigned to {ticket.assignment.assigned_to_name}")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_number}/start", response_model=ActionResponse)
async def start_work(
    ticket_number: str,
    request: NotesRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        ticket = TicketService().start_work(
            ticket_number, actor, notes=request.notes, expected_version=request.version
        )
        return ActionResponse.from_ticket(ticket, "Work started")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_number}/pause", response_model=ActionResponse)
async def pause(
    ticket_number: str,
    request: ReasonRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        ticket = TicketService().pause(
            ticket_number, actor, reason=request.reason, expected_version=request.version
        )
        return ActionResponse.from_ticket(ticket, "Work paused")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_number}/resume", response_model=ActionResponse)
async def resume(
    ticket_number: str,
    request: NotesRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        ticket = TicketService().resume(
            ticket_number, actor, notes=request.notes, expected_version=request.version
        )
        return ActionResponse.from_ticket(ticket, "Work resumed")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_number}/resolve", response_model=ActionResponse)
async def resolve(
    ticket_number: str,
    request: NotesRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Mark the work done. Resolution notes are required."""
    try:
        ticket = TicketService().resolve(
            ticket_number, actor, notes=request.notes, expected_version=request.version
        )
        return ActionResponse.from_ticket(ticket, "Ticket resolved")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_number}/close", response_model=ActionResponse)
async def close(
    ticket_number: str,
    request: NotesRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        ticket = TicketService().close(
            ticket_number, actor, notes=request.notes, expected_version=request.version
        )
        return ActionResponse.from_ticket(ticket, "Ticket closed")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_number}/cancel", response_model=ActionResponse)
async def cancel(
    ticket_number: str,
    request: ReasonRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Withdraw a ticket before work has started on it"""
    try:
        ticket = TicketService().cancel(
            ticket_number, actor, reason=request.reason, expected_version=request.version
        )
        return ActionResponse.from_ticket(ticket, "Ticket cancelled")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_number}/reopen", response_model=ActionResponse)
async def reopen(
    ticket_number: str,
    request: ReasonRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Requester reopens a resolved or closed ticket; a reason is required"""
    try:
        ticket = TicketService().reopen(
            ticket_number, actor, reason=request.reason, expected_version=request.version
        )
        return ActionResponse.from_ticket(ticket, "Ticket reopened")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
