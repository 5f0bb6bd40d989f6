"""
Ticket CRUD Routes

Create, read and list helpdesk tickets.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...deps import get_current_actor_dep, get_correlation_id_dep
from ....domain.models import ActorContext
from ....domain.enums import TicketStatus, HighLevelCategory
from ....domain.errors import DomainError, ValidationError
from ....services.ticket_service import TicketService
from ....utils.logger import get_logger
from .schemas import (
    CreateTicketRequest, ActionResponse, TicketSummary, TicketListResponse,
    TicketViewResponse, QueueStatsResponse
)

logger = get_logger(__name__)
router = APIRouter()


def parse_statuses(statuses: Optional[str]) -> Optional[List[TicketStatus]]:
    """Comma-separated status filter -> list of TicketStatus"""
    if not statuses:
        return None
    parsed = []
    for value in statuses.split(","):
        value = value.strip()
        if not value:
            continue
        try:
            parsed.append(TicketStatus(value))
        except ValueError:
            raise ValidationError(f"Unknown status '{value}'", details={"field": "statuses"})
    return parsed or None


@router.post("/", response_model=ActionResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    request: CreateTicketRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Create a helpdesk ticket

    The ticket is submitted straight away unless `save_as_draft` is set.
    Submission decides between the approval chain and direct routing.
    """
    try:
        ticket = TicketService().create_ticket(
            high_level_category=request.high_level_category,
            sub_category=request.sub_category,
            subject=request.subject,
            description=request.description,
            urgency=request.urgency,
            actor=actor,
            submit=not request.save_as_draft
        )
        return ActionResponse.from_ticket(ticket, f"Ticket {ticket.ticket_number} created")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/", response_model=TicketListResponse)
async def list_my_tickets(
    statuses: Optional[str] = Query(None, description="Filter by statuses (comma-separated)"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Tickets raised by the current user, newest first"""
    try:
        service = TicketService()
        status_filter = parse_statuses(statuses)
        tickets = service.list_my_tickets(actor, statuses=status_filter, skip=skip, limit=limit)
        return TicketListResponse(
            items=[TicketSummary.from_ticket(t) for t in tickets],
            skip=skip,
            limit=limit,
            total=service.count_my_tickets(actor, statuses=status_filter)
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/assigned", response_model=List[TicketSummary])
async def list_assigned(
    statuses: Optional[str] = Query(None, description="Filter by statuses (comma-separated)"),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Tickets assigned to the current specialist"""
    try:
        tickets = TicketService().list_assigned(actor, statuses=parse_statuses(statuses))
        return [TicketSummary.from_ticket(t) for t in tickets]

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/queue/{category}", response_model=TicketListResponse)
async def list_queue(
    category: HighLevelCategory,
    specialist_queue: Optional[str] = Query(None),
    statuses: Optional[str] = Query(None, description="Filter by statuses (comma-separated)"),
    q: Optional[str] = Query(None, description="Search ticket number, subject or description"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Routed tickets of a module, for its admins and specialists"""
    try:
        service = TicketService()
        status_filter = parse_statuses(statuses)
        tickets = service.list_queue(
            actor,
            category,
            specialist_queue=specialist_queue,
            statuses=status_filter,
            search=q,
            skip=skip,
            limit=limit
        )
        return TicketListResponse(
            items=[TicketSummary.from_ticket(t) for t in tickets],
            skip=skip,
            limit=limit,
            total=service.count_queue(
                actor, category, specialist_queue=specialist_queue, statuses=status_filter, search=q
            )
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/queue/{category}/stats", response_model=QueueStatsResponse)
async def queue_stats(
    category: HighLevelCategory,
    specialist_queue: Optional[str] = Query(None),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        counts = TicketService().queue_stats(actor, category, specialist_queue=specialist_queue)
        return QueueStatsResponse(high_level_category=category, counts=counts)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{ticket_number}", response_model=TicketViewResponse)
async def get_ticket(
    ticket_number: str,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """
    Ticket detail with its progress timeline

    History is returned newest first; the stored audit trail stays in
    chronological order.
    """
    try:
        ticket, timeline, history, actions = TicketService().get_ticket_view(ticket_number)
        return TicketViewResponse(
            ticket=ticket,
            timeline=timeline,
            history=history,
            available_actions=actions
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
