"""Domain Enumerations - All status and type definitions"""
from enum import Enum


MAX_APPROVAL_LEVELS = 3


class HighLevelCategory(str, Enum):
    """Helpdesk module a ticket belongs to"""
    IT = "IT"
    FACILITIES = "Facilities"
    FINANCE = "Finance"


class TicketStatus(str, Enum):
    """Helpdesk ticket status"""
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    PENDING_APPROVAL_L1 = "PendingApprovalL1"
    PENDING_APPROVAL_L2 = "PendingApprovalL2"
    PENDING_APPROVAL_L3 = "PendingApprovalL3"
    ROUTED = "Routed"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "InProgress"
    PAUSED = "Paused"
    RESOLVED = "Resolved"
    CLOSED = "Closed"
    AUTO_CLOSED = "AutoClosed"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"

    @classmethod
    def pending_approval(cls, level: int) -> "TicketStatus":
        """Pending status for an approval level (1-based)"""
        return cls(f"PendingApprovalL{level}")

    @property
    def approval_level(self) -> int:
        """Approval level this status waits on, 0 when not pending approval"""
        if self.value.startswith("PendingApprovalL"):
            return int(self.value[len("PendingApprovalL"):])
        return 0

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    TicketStatus.AUTO_CLOSED,
    TicketStatus.REJECTED,
    TicketStatus.CANCELLED,
})

PENDING_APPROVAL_STATUSES = frozenset(
    TicketStatus.pending_approval(level) for level in range(1, MAX_APPROVAL_LEVELS + 1)
)

# Statuses from which the requester may still withdraw the ticket
CANCELLABLE_STATUSES = frozenset({
    TicketStatus.DRAFT,
    TicketStatus.SUBMITTED,
    TicketStatus.ROUTED,
}) | PENDING_APPROVAL_STATUSES


class TicketEvent(str, Enum):
    """Events accepted by the ticket state machine"""
    CREATE = "created"
    SUBMIT = "submitted"
    APPROVE = "approved"
    REJECT = "rejected"
    ASSIGN = "assigned"
    REASSIGN = "reassigned"
    START_WORK = "work_started"
    PAUSE = "paused"
    RESUME = "resumed"
    RESOLVE = "resolved"
    CLOSE = "closed"
    AUTO_CLOSE = "auto_closed"
    CANCEL = "cancelled"
    REOPEN = "reopened"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ApprovalStatus(str, Enum):
    """Overall approval outcome of a ticket"""
    NOT_REQUIRED = "NotRequired"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ApprovalDecision(str, Enum):
    """Outcome of a single approval level"""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ClosingReason(str, Enum):
    """Why a ticket left the active workflow"""
    IT_SPECIALIST_CLOSURE = "IT Specialist Closure"
    USER_CANCELLATION = "User Cancellation"
    AUTO_CLOSED = "Auto-Closed"


class Role(str, Enum):
    """Portal roles"""
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    HR = "HR"
    RMG = "RMG"
    IT_ADMIN = "IT_ADMIN"
    IT_EMPLOYEE = "IT_EMPLOYEE"
    L1_APPROVER = "L1_APPROVER"
    L2_APPROVER = "L2_APPROVER"
    L3_APPROVER = "L3_APPROVER"
    SUPER_ADMIN = "SUPER_ADMIN"
    FINANCE_ADMIN = "FINANCE_ADMIN"
    FACILITIES_ADMIN = "FACILITIES_ADMIN"

    @classmethod
    def approver_for_level(cls, level: int) -> "Role":
        return cls(f"L{level}_APPROVER")


APPROVER_ROLES = frozenset({Role.L1_APPROVER, Role.L2_APPROVER, Role.L3_APPROVER})

# Admin role that owns each helpdesk module's queue
QUEUE_ADMIN_ROLES = {
    HighLevelCategory.IT: Role.IT_ADMIN,
    HighLevelCategory.FACILITIES: Role.FACILITIES_ADMIN,
    HighLevelCategory.FINANCE: Role.FINANCE_ADMIN,
}

# Role of the people who work tickets for each module
SPECIALIST_ROLES = {
    HighLevelCategory.IT: Role.IT_EMPLOYEE,
    HighLevelCategory.FACILITIES: Role.FACILITIES_ADMIN,
    HighLevelCategory.FINANCE: Role.FINANCE_ADMIN,
}

SUPERVISOR_ROLES = frozenset({
    Role.IT_ADMIN, Role.FACILITIES_ADMIN, Role.FINANCE_ADMIN, Role.SUPER_ADMIN,
})


class NotificationType(str, Enum):
    """Notification categories shown in the bell"""
    TICKET = "ticket"
    APPROVAL = "approval"
    REJECTION = "rejection"
    REMINDER = "reminder"
    LEAVE = "leave"
    SYSTEM = "system"


class TimesheetStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"


class DayApprovalStatus(str, Enum):
    """Approval state of one timesheet day cell"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"


class LeaveType(str, Enum):
    CASUAL = "casual"
    SICK = "sick"
    EARNED = "earned"
    UNPAID = "unpaid"


class LeaveStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
