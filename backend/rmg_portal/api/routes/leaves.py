"""Leave API - Applications, manager decisions and balances"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..deps import get_current_actor_dep
from ...domain.models import ActorContext, LeaveRequest, LeaveBalance
from ...domain.enums import LeaveType, LeaveStatus
from ...domain.errors import DomainError, PermissionDeniedError
from ...services.leave_service import LeaveService, LEAVE_ADMIN_ROLES

router = APIRouter()


class ApplyLeaveRequest(BaseModel):
    leave_type: LeaveType
    start_date: str
    end_date: str
    reason: str = Field(..., max_length=2000)
    half_day: bool = False


class DecisionRequest(BaseModel):
    comment: Optional[str] = Field(None, max_length=2000)


class RejectLeaveRequest(BaseModel):
    reason: str = Field(..., max_length=2000)


@router.post("", response_model=LeaveRequest, status_code=status.HTTP_201_CREATED)
async def apply_leave(
    request: ApplyLeaveRequest,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Apply for leave; the balance is checked now and deducted on approval"""
    try:
        return LeaveService().apply(
            actor,
            request.leave_type,
            request.start_date,
            request.end_date,
            request.reason,
            half_day=request.half_day
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("", response_model=List[LeaveRequest])
async def list_my_leaves(
    status_filter: Optional[LeaveStatus] = Query(None, alias="status"),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    return LeaveService().list_for_employee(actor.employee_id, status=status_filter)


@router.get("/pending", response_model=List[LeaveRequest])
async def list_pending(actor: ActorContext = Depends(get_current_actor_dep)):
    """Requests waiting on the current user as reporting manager (all of them for HR)"""
    return LeaveService().list_pending_for_manager(actor)


@router.get("/balance", response_model=LeaveBalance)
async def get_balance(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    employee_id: Optional[str] = Query(None, description="HR only: another employee's balance"),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        target = employee_id or actor.employee_id
        if target != actor.employee_id and actor.role not in LEAVE_ADMIN_ROLES:
            raise PermissionDeniedError("You can only view your own leave balance")
        return LeaveService().get_balance(target, year)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{leave_id}/approve", response_model=LeaveRequest)
async def approve_leave(
    leave_id: str,
    request: DecisionRequest,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        return LeaveService().approve(actor, leave_id, comment=request.comment)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{leave_id}/reject", response_model=LeaveRequest)
async def reject_leave(
    leave_id: str,
    request: RejectLeaveRequest,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        return LeaveService().reject(actor, leave_id, request.reason)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{leave_id}/cancel", response_model=LeaveRequest)
async def cancel_leave(
    leave_id: str,
    request: DecisionRequest,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Withdraw a pending or approved request; approved days return to the balance"""
    try:
        return LeaveService().cancel(actor, leave_id, reason=request.comment)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
