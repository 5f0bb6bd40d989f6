"""Approver Inbox API - Tickets waiting on the current user's decision"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_current_actor_dep
from ...domain.models import ActorContext
from ...domain.errors import DomainError
from ...services.ticket_service import TicketService
from .tickets.schemas import TicketSummary

router = APIRouter()


@router.get("/pending", response_model=List[TicketSummary])
async def list_pending_approvals(
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Tickets whose current approval level lists the user as an approver"""
    try:
        tickets = TicketService().list_pending_approvals(actor)
        return [TicketSummary.from_ticket(t) for t in tickets]

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/history", response_model=List[TicketSummary])
async def list_approval_history(
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Tickets the user has already approved or rejected"""
    try:
        tickets = TicketService().list_approval_history(actor)
        return [TicketSummary.from_ticket(t) for t in tickets]

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
