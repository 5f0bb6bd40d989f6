"""Timesheet API - Weekly entry for employees, day-level approval for managers"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..deps import get_current_actor_dep
from ...domain.models import ActorContext, TimesheetRow, ProjectRef
from ...domain.errors import DomainError
from ...services.timesheet_service import TimesheetService, RowInput, RevisionItem, WeekView
from ...utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Request / Response Models
# =============================================================================

class SubmitWeekRequest(BaseModel):
    week_start_date: str
    rows: List[RowInput] = Field(..., min_length=1)
    submit: bool = Field(True, description="False saves the week as a draft")


class ApprovalScope(BaseModel):
    """Approval actions always name one (project, employee, week)"""
    project_id: str
    employee_id: str
    week_start_date: str


class ApproveDaysRequest(ApprovalScope):
    day_indices: List[int] = Field(..., description="0 = Monday ... 6 = Sunday")


class RevisionRequest(ApprovalScope):
    reverts: List[RevisionItem]


class ReminderRequest(BaseModel):
    employee_id: str
    week_start_date: str


class RegisterProjectRequest(BaseModel):
    manager_id: str
    project_name: Optional[str] = None


class UpdatedCountResponse(BaseModel):
    updated_count: int


class ReminderResponse(BaseModel):
    sent: bool


# =============================================================================
# Employee endpoints
# =============================================================================

@router.post("/submit", response_model=List[TimesheetRow])
async def submit_week(
    request: SubmitWeekRequest,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """
    Save or submit the current user's rows for a week

    Edited cells and cells sent back for revision return to pending;
    untouched approved cells keep their approval.
    """
    try:
        return TimesheetService().submit_week(
            actor, request.week_start_date, request.rows, submit=request.submit
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/week", response_model=WeekView)
async def get_my_week(
    week_start_date: str = Query(...),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        return TimesheetService().get_week(actor.employee_id, week_start_date)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/recall", response_model=UpdatedCountResponse)
async def recall_week(
    week_start_date: str = Query(...),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Pull submitted rows back to draft while none of their days is approved"""
    try:
        return UpdatedCountResponse(updated_count=TimesheetService().recall_week(actor, week_start_date))

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("/rows/{row_id}", status_code=204)
async def delete_row(
    row_id: str,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        TimesheetService().delete_row(actor, row_id)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


# =============================================================================
# Manager endpoints
# =============================================================================

@router.get("/approvals", response_model=List[TimesheetRow])
async def get_approval_view(
    week_start_date: str = Query(...),
    employee_id: Optional[str] = Query(None),
    project_id: Optional[str] = Query(None),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Submitted rows on the projects the current user manages"""
    try:
        return TimesheetService().get_approval_view(
            actor, week_start_date, employee_id=employee_id, project_id=project_id
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/approve-week", response_model=UpdatedCountResponse)
async def approve_week(
    request: ApprovalScope,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Approve every pending day of the scope; repeating the call changes nothing"""
    try:
        updated = TimesheetService().approve_week(
            actor, request.project_id, request.employee_id, request.week_start_date
        )
        return UpdatedCountResponse(updated_count=updated)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/approve-days", response_model=UpdatedCountResponse)
async def approve_days(
    request: ApproveDaysRequest,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        updated = TimesheetService().approve_days(
            actor, request.project_id, request.employee_id, request.week_start_date, request.day_indices
        )
        return UpdatedCountResponse(updated_count=updated)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/request-revision", response_model=UpdatedCountResponse)
async def request_revision(
    request: RevisionRequest,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Send days back to the employee; every day needs a reason"""
    try:
        updated = TimesheetService().request_revision(
            actor, request.project_id, request.employee_id, request.week_start_date, request.reverts
        )
        return UpdatedCountResponse(updated_count=updated)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/remind", response_model=ReminderResponse)
async def send_reminder(
    request: ReminderRequest,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        sent = TimesheetService().send_reminder(actor, request.employee_id, request.week_start_date)
        return ReminderResponse(sent=sent)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/projects/{project_id}", response_model=ProjectRef)
async def register_project(
    project_id: str,
    request: RegisterProjectRequest,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Set the manager who approves timesheets booked on a project"""
    try:
        return TimesheetService().register_project(
            actor, project_id, request.manager_id, project_name=request.project_name
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
