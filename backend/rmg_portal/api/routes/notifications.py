"""User Notifications API - In-app notification bell endpoints"""
from typing import List
from fastapi import APIRouter, Depends, Query, HTTPException
from pydantic import BaseModel

from ..deps import get_current_actor_dep
from ...domain.models import ActorContext, Notification
from ...domain.errors import DomainError
from ...services.notification_service import NotificationService

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================

class NotificationListResponse(BaseModel):
    """List of notifications with metadata"""
    items: List[Notification]
    unread_count: int


class UnreadCountResponse(BaseModel):
    """Just the unread count"""
    unread_count: int


class MarkReadResponse(BaseModel):
    """Response after marking notifications read"""
    success: bool
    marked_count: int


class DeleteResponse(BaseModel):
    success: bool


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=NotificationListResponse)
async def get_notifications(
    unread_only: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """
    Notifications addressed to the user, to the user's role or to everyone

    Newest first.
    """
    service = NotificationService()
    return NotificationListResponse(
        items=service.list_for_user(actor, unread_only=unread_only, skip=skip, limit=limit),
        unread_count=service.unread_count(actor)
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(actor: ActorContext = Depends(get_current_actor_dep)):
    """Lightweight endpoint for polling the badge"""
    return UnreadCountResponse(unread_count=NotificationService().unread_count(actor))


@router.post("/mark-all-read", response_model=MarkReadResponse)
async def mark_all_read(actor: ActorContext = Depends(get_current_actor_dep)):
    count = NotificationService().mark_all_read(actor)
    return MarkReadResponse(success=True, marked_count=count)


@router.post("/{notification_id}/read", response_model=Notification)
async def mark_read(
    notification_id: str,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        return NotificationService().mark_read(notification_id, actor)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("/{notification_id}", response_model=DeleteResponse)
async def delete_notification(
    notification_id: str,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    deleted = NotificationService().delete(notification_id, actor)
    return DeleteResponse(success=deleted)
