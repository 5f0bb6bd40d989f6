"""Leave Service - Leave requests against yearly balances"""
from typing import List, Optional

from ..domain.models import ActorContext, LeaveRequest, LeaveBalance
from ..domain.enums import LeaveType, LeaveStatus, NotificationType, Role
from ..domain.errors import (
    ValidationError, PermissionDeniedError, InvalidStateError, InsufficientLeaveBalanceError
)
from ..repositories.leave_repo import LeaveRepository
from ..repositories.employee_repo import EmployeeRepository
from ..config.settings import settings
from .notification_service import NotificationService, LEAVE_URL
from ..utils.idgen import generate_leave_id
from ..utils.time import utc_now, parse_date, inclusive_days
from ..utils.logger import get_logger

logger = get_logger(__name__)

LEAVE_ADMIN_ROLES = (Role.HR, Role.SUPER_ADMIN)


class LeaveService:
    """Service for leave requests"""

    def __init__(self):
        self.repo = LeaveRepository()
        self.employee_repo = EmployeeRepository()
        self.notification_service = NotificationService()

    def get_balance(self, employee_id: str, year: Optional[int] = None) -> LeaveBalance:
        year = year or utc_now().year
        return self.repo.get_or_create_balance(employee_id, year, settings.default_leave_allocations)

    def apply(
        self,
        actor: ActorContext,
        leave_type: LeaveType,
        start_date: str,
        end_date: str,
        reason: str,
        half_day: bool = False
    ) -> LeaveRequest:
        """Apply for leave; the balance is checked now and consumed on approval"""
        try:
            start, end = parse_date(start_date), parse_date(end_date)
        except (ValueError, OverflowError):
            raise ValidationError("Invalid leave dates", details={"field": "start_date"})
        if end < start:
            raise ValidationError("End date cannot be before start date", details={"field": "end_date"})
        if start.year != end.year:
            raise ValidationError(
                "A leave request cannot span two calendar years",
                details={"field": "end_date"}
            )
        if not reason or not reason.strip():
            raise ValidationError("A reason is required", details={"field": "reason"})

        days = inclusive_days(start, end)
        if half_day:
            if days != 1:
                raise ValidationError("Half-day leave must be a single day", details={"field": "half_day"})
            days = 0.5

        balance = self.get_balance(actor.employee_id, start.year)
        if balance.remaining(leave_type) < days:
            raise InsufficientLeaveBalanceError(
                f"Insufficient {leave_type.value} leave balance",
                details={"requested": days, "remaining": balance.remaining(leave_type)}
            )

        employee = self.employee_repo.get_employee(actor.employee_id)
        manager_id = employee.reporting_manager_id if employee else None

        now = utc_now()
        leave = self.repo.create_request(LeaveRequest(
            leave_id=generate_leave_id(),
            employee_id=actor.employee_id,
            employee_name=actor.name,
            manager_id=manager_id,
            leave_type=leave_type,
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            days=days,
            reason=reason.strip(),
            created_at=now,
            updated_at=now,
        ))

        if manager_id:
            self.notification_service.notify_employee(
                manager_id,
                "Leave Request",
                f"{actor.name} applied for {days:g} day(s) of {leave_type.value} leave from {leave.start_date}",
                NotificationType.LEAVE,
                LEAVE_URL,
                role=Role.MANAGER,
                leave_id=leave.leave_id,
            )
        else:
            logger.warning(
                f"Leave {leave.leave_id} has no reporting manager; HR must decide it",
                extra={"leave_id": leave.leave_id, "employee_id": actor.employee_id}
            )
        return leave

    def _check_approver(self, actor: ActorContext, leave: LeaveRequest) -> None:
        if actor.employee_id == leave.employee_id:
            raise PermissionDeniedError("You cannot decide your own leave request")
        if actor.employee_id != leave.manager_id and actor.role not in LEAVE_ADMIN_ROLES:
            raise PermissionDeniedError("Only the reporting manager or HR can decide this leave request")

    def approve(self, actor: ActorContext, leave_id: str, comment: Optional[str] = None) -> LeaveRequest:
        leave = self.repo.get_request_or_raise(leave_id)
        self._check_approver(actor, leave)
        if leave.status != LeaveStatus.PENDING:
            raise InvalidStateError(f"Leave request is already {leave.status.value}")

        year = parse_date(leave.start_date).year
        self.get_balance(leave.employee_id, year)
        if self.repo.consume(leave.employee_id, year, leave.leave_type, leave.days) is None:
            raise InsufficientLeaveBalanceError(
                f"Insufficient {leave.leave_type.value} leave balance",
                details={"requested": leave.days}
            )

        try:
            approved = self.repo.transition_request(leave_id, LeaveStatus.PENDING, {
                "status": LeaveStatus.APPROVED.value,
                "approver_id": actor.employee_id,
                "decided_at": utc_now(),
                "decision_comment": comment,
            })
        except Exception:
            self.repo.restore(leave.employee_id, year, leave.leave_type, leave.days)
            raise

        logger.info(f"Leave {leave_id} approved", extra={"leave_id": leave_id, "actor_id": actor.employee_id})
        self.notification_service.notify_employee(
            leave.employee_id,
            "Leave Approved",
            f"Your {leave.leave_type.value} leave from {leave.start_date} to {leave.end_date} was approved",
            NotificationType.LEAVE,
            LEAVE_URL,
            leave_id=leave_id,
        )
        return approved

    def reject(self, actor: ActorContext, leave_id: str, reason: str) -> LeaveRequest:
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to reject leave", details={"field": "reason"})
        leave = self.repo.get_request_or_raise(leave_id)
        self._check_approver(actor, leave)
        if leave.status != LeaveStatus.PENDING:
            raise InvalidStateError(f"Leave request is already {leave.status.value}")

        rejected = self.repo.transition_request(leave_id, LeaveStatus.PENDING, {
            "status": LeaveStatus.REJECTED.value,
            "approver_id": actor.employee_id,
            "decided_at": utc_now(),
            "decision_comment": reason.strip(),
        })
        self.notification_service.notify_employee(
            leave.employee_id,
            "Leave Rejected",
            f"Your {leave.leave_type.value} leave from {leave.start_date} was rejected: {reason.strip()}",
            NotificationType.REJECTION,
            LEAVE_URL,
            leave_id=leave_id,
        )
        return rejected

    def cancel(self, actor: ActorContext, leave_id: str, reason: Optional[str] = None) -> LeaveRequest:
        """Withdraw a pending or approved request; approved days go back to the balance"""
        leave = self.repo.get_request_or_raise(leave_id)
        if leave.employee_id != actor.employee_id and actor.role not in LEAVE_ADMIN_ROLES:
            raise PermissionDeniedError("You can only cancel your own leave requests")
        if leave.status not in (LeaveStatus.PENDING, LeaveStatus.APPROVED):
            raise InvalidStateError(f"Leave request is already {leave.status.value}")

        cancelled = self.repo.transition_request(leave_id, leave.status, {
            "status": LeaveStatus.CANCELLED.value,
            "decision_comment": reason,
        })
        if leave.status == LeaveStatus.APPROVED:
            self.repo.restore(leave.employee_id, parse_date(leave.start_date).year, leave.leave_type, leave.days)

        if leave.manager_id and actor.employee_id != leave.manager_id:
            self.notification_service.notify_employee(
                leave.manager_id,
                "Leave Cancelled",
                f"{leave.employee_name} cancelled leave from {leave.start_date} to {leave.end_date}",
                NotificationType.LEAVE,
                LEAVE_URL,
                role=Role.MANAGER,
                leave_id=leave_id,
            )
        return cancelled

    def list_for_employee(self, employee_id: str, status: Optional[LeaveStatus] = None) -> List[LeaveRequest]:
        return self.repo.list_requests(employee_id=employee_id, status=status)

    def list_pending_for_manager(self, actor: ActorContext) -> List[LeaveRequest]:
        if actor.role in LEAVE_ADMIN_ROLES:
            return self.repo.list_requests(status=LeaveStatus.PENDING)
        return self.repo.list_requests(manager_id=actor.employee_id, status=LeaveStatus.PENDING)
