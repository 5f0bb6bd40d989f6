"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional
from pydantic import BaseModel, BeforeValidator, Field, EmailStr, ConfigDict, field_validator, model_validator

from .enums import (
    HighLevelCategory, TicketStatus, Urgency, ApprovalStatus, ApprovalDecision,
    ClosingReason, Role, NotificationType, TimesheetStatus, DayApprovalStatus,
    LeaveType, LeaveStatus, MAX_APPROVAL_LEVELS
)
from ..utils.time import DAYS_IN_WEEK, to_iso_date

# Calendar dates are stored as "YYYY-MM-DD" strings
IsoDate = Annotated[str, BeforeValidator(to_iso_date)]


# ============================================================================
# Identity
# ============================================================================

class ActorContext(BaseModel):
    """Acting user as supplied by the identity provider"""
    model_config = ConfigDict(extra="forbid")

    employee_id: str = Field(..., description="Employee ID of the acting user")
    name: str = Field(..., description="Display name")
    email: Optional[str] = None
    department: Optional[str] = None
    role: Role


class RequesterInfo(BaseModel):
    """Snapshot of the requester at submission time"""
    employee_id: str
    name: str
    email: Optional[str] = None
    department: Optional[str] = None
    role: Optional[Role] = None


# ============================================================================
# Category Configuration
# ============================================================================

class ApproverInfo(BaseModel):
    """Approver designated for a level"""
    employee_id: str
    name: str
    email: Optional[str] = None
    designation: str = ""


class ApprovalLevelConfig(BaseModel):
    """One approval level of a sub-category"""
    level: int = Field(..., ge=1, le=MAX_APPROVAL_LEVELS)
    enabled: bool = False
    approvers: List[ApproverInfo] = Field(default_factory=list)


class SubCategoryConfig(BaseModel):
    """Approval and routing configuration per (category, sub-category)"""
    config_id: str
    high_level_category: HighLevelCategory
    sub_category: str = Field(..., min_length=1, max_length=100)
    requires_approval: bool = False
    is_active: bool = True
    specialist_queue: str
    processing_queue: Optional[str] = None
    order: int = 999
    approval_levels: List[ApprovalLevelConfig] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _normalise_legacy_approval_config(cls, data: Any) -> Any:
        """Accept the legacy {l1, l2, l3} shape and turn it into an ordered list"""
        if isinstance(data, dict) and "approval_config" in data and not data.get("approval_levels"):
            data = dict(data)
            legacy = data.pop("approval_config") or {}
            levels = []
            for level in range(1, MAX_APPROVAL_LEVELS + 1):
                entry = legacy.get(f"l{level}")
                if entry:
                    levels.append({"level": level, **entry})
            data["approval_levels"] = levels
        return data

    @field_validator("approval_levels")
    @classmethod
    def _sorted_levels(cls, levels: List[ApprovalLevelConfig]) -> List[ApprovalLevelConfig]:
        return sorted(levels, key=lambda lvl: lvl.level)

    def enabled_levels(self) -> List[ApprovalLevelConfig]:
        """Enabled levels with at least one approver, lowest first"""
        return [lvl for lvl in self.approval_levels if lvl.enabled and lvl.approvers]

    def approval_problems(self) -> List[str]:
        """Human readable list of approval configuration defects"""
        problems = []
        seen = set()
        for lvl in self.approval_levels:
            if lvl.level in seen:
                problems.append(f"Level L{lvl.level} is configured more than once")
            seen.add(lvl.level)
            if lvl.enabled and not lvl.approvers:
                problems.append(f"Level L{lvl.level} is enabled but has no approvers")
        if self.requires_approval and not self.enabled_levels():
            problems.append("Approval is required but no level is enabled with approvers")
        return problems


class ApprovalLevelPlan(BaseModel):
    """Approval level copied onto a ticket at submission"""
    level: int
    approvers: List[ApproverInfo] = Field(default_factory=list)

    def is_approver(self, employee_id: str) -> bool:
        return any(a.employee_id == employee_id for a in self.approvers)


class ApprovalPlan(BaseModel):
    """Result of looking up a category's approval requirement"""
    required: bool
    bypassed: bool = False
    levels: List[ApprovalLevelPlan] = Field(default_factory=list)
    specialist_queue: str
    config_id: Optional[str] = None


# ============================================================================
# Helpdesk Ticket
# ============================================================================

class ApprovalLevelRecord(BaseModel):
    """Decision record for an approval level that has been reached"""
    level: int
    status: ApprovalDecision = ApprovalDecision.PENDING
    entered_at: datetime
    approver_id: Optional[str] = None
    approver_name: Optional[str] = None
    action_timestamp: Optional[datetime] = None
    comments: Optional[str] = None


class ApprovalState(BaseModel):
    """Approval sub-document of a ticket"""
    required: bool = False
    bypassed: bool = False
    status: ApprovalStatus = ApprovalStatus.NOT_REQUIRED
    current_level: int = Field(0, ge=0, le=MAX_APPROVAL_LEVELS)
    plan: List[ApprovalLevelPlan] = Field(default_factory=list)
    levels: List[ApprovalLevelRecord] = Field(default_factory=list)

    def level_plan(self, level: int) -> Optional[ApprovalLevelPlan]:
        return next((p for p in self.plan if p.level == level), None)

    def record(self, level: int) -> Optional[ApprovalLevelRecord]:
        return next((r for r in self.levels if r.level == level), None)

    def next_level_after(self, level: int) -> Optional[int]:
        """Next planned level above `level`, None when it is the last one"""
        higher = [p.level for p in self.plan if p.level > level]
        return min(higher) if higher else None

    def all_levels_approved(self) -> bool:
        for plan in self.plan:
            rec = self.record(plan.level)
            if rec is None or rec.status != ApprovalDecision.APPROVED:
                return False
        return True


class AssignmentInfo(BaseModel):
    assigned_to_id: Optional[str] = None
    assigned_to_name: Optional[str] = None
    assigned_by_id: Optional[str] = None
    assigned_by_name: Optional[str] = None
    assigned_at: Optional[datetime] = None
    notes: Optional[str] = None
    previous_assignee_id: Optional[str] = None
    previous_assignee_name: Optional[str] = None


class ProcessingInfo(BaseModel):
    routed_at: Optional[datetime] = None
    specialist_queue: Optional[str] = None
    started_at: Optional[datetime] = None


class ResolutionInfo(BaseModel):
    notes: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None


class HistoryEntry(BaseModel):
    """One entry of the append-only ticket history"""
    action: str
    performed_by: str
    performed_by_id: Optional[str] = None
    timestamp: datetime
    details: Optional[str] = None
    previous_status: Optional[TicketStatus] = None
    new_status: Optional[TicketStatus] = None


class HelpdeskTicket(BaseModel):
    """Helpdesk ticket document"""
    model_config = ConfigDict(extra="ignore")

    ticket_number: str
    high_level_category: HighLevelCategory
    sub_category: str
    subject: str
    description: str
    urgency: Urgency = Urgency.MEDIUM
    requester: RequesterInfo
    status: TicketStatus = TicketStatus.DRAFT
    approval: ApprovalState = Field(default_factory=ApprovalState)
    assignment: AssignmentInfo = Field(default_factory=AssignmentInfo)
    processing: ProcessingInfo = Field(default_factory=ProcessingInfo)
    resolution: ResolutionInfo = Field(default_factory=ResolutionInfo)
    closing_reason: Optional[ClosingReason] = None
    closing_note: Optional[str] = None
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    history: List[HistoryEntry] = Field(default_factory=list)
    version: int = 1
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Notifications
# ============================================================================

class Notification(BaseModel):
    """Role-scoped in-app notification"""
    notification_id: str
    title: str
    message: str
    type: NotificationType
    role: str = Field(..., description="Recipient role, or 'all'")
    user_id: Optional[str] = Field(None, description="Recipient employee ID; None targets the whole role")
    is_read: bool = False
    read_at: Optional[datetime] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


# ============================================================================
# Timesheets
# ============================================================================

class DayCell(BaseModel):
    """Hours booked on one day of a timesheet row"""
    hours: str = Field(..., description="Duration as H:MM")
    comment: Optional[str] = None
    approval_status: DayApprovalStatus = DayApprovalStatus.PENDING
    rejected_reason: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None


class TimesheetRow(BaseModel):
    """One (project, activity) row of an employee's week"""
    row_id: str
    employee_id: str
    employee_name: str
    week_start_date: IsoDate
    project_id: str
    project_name: Optional[str] = None
    activity_id: str
    activity_name: Optional[str] = None
    billable: bool = True
    days: List[Optional[DayCell]] = Field(default_factory=lambda: [None] * DAYS_IN_WEEK)
    status: TimesheetStatus = TimesheetStatus.SUBMITTED
    submitted_at: Optional[datetime] = None
    version: int = 1
    created_at: datetime
    updated_at: datetime

    @field_validator("days")
    @classmethod
    def _seven_days(cls, days: List[Optional[DayCell]]) -> List[Optional[DayCell]]:
        if len(days) != DAYS_IN_WEEK:
            raise ValueError(f"days must hold exactly {DAYS_IN_WEEK} entries")
        return days


class ProjectRef(BaseModel):
    """Project ownership used to authorise timesheet approvals"""
    model_config = ConfigDict(extra="ignore")

    project_id: str
    project_name: Optional[str] = None
    manager_id: Optional[str] = None


# ============================================================================
# Employees
# ============================================================================

class Employee(BaseModel):
    model_config = ConfigDict(extra="ignore")

    employee_id: str
    name: str
    email: EmailStr
    department: Optional[str] = None
    designation: Optional[str] = None
    role: Role
    reporting_manager_id: Optional[str] = None
    has_login_access: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ============================================================================
# Leaves
# ============================================================================

class LeaveRequest(BaseModel):
    leave_id: str
    employee_id: str
    employee_name: str
    manager_id: Optional[str] = None
    leave_type: LeaveType
    start_date: IsoDate
    end_date: IsoDate
    days: float
    reason: str
    status: LeaveStatus = LeaveStatus.PENDING
    approver_id: Optional[str] = None
    decided_at: Optional[datetime] = None
    decision_comment: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class LeaveBalance(BaseModel):
    employee_id: str
    year: int
    allocations: Dict[str, float] = Field(default_factory=dict)
    used: Dict[str, float] = Field(default_factory=dict)

    def remaining(self, leave_type: LeaveType) -> float:
        key = leave_type.value
        return self.allocations.get(key, 0) - self.used.get(key, 0)
