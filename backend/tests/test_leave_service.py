"""Leave request tests"""
import pytest

from rmg_portal.services.leave_service import LeaveService
from rmg_portal.services.employee_service import EmployeeService
from rmg_portal.domain.enums import LeaveType, LeaveStatus, Role
from rmg_portal.domain.errors import (
    InsufficientLeaveBalanceError, InvalidStateError, PermissionDeniedError, ValidationError
)


@pytest.fixture
def directory(requester, project_manager):
    """EMP001 reports to PM001"""
    employees = EmployeeService()
    employees.create_employee(project_manager.employee_id, project_manager.name,
                              project_manager.email, Role.MANAGER)
    employees.create_employee(requester.employee_id, requester.name, requester.email, Role.EMPLOYEE,
                              reporting_manager_id=project_manager.employee_id)


def apply_casual(service, actor, start="2024-03-04", end="2024-03-05", **kwargs):
    return service.apply(actor, LeaveType.CASUAL, start, end, "Family function", **kwargs)


def test_apply_routes_to_reporting_manager(mongo_db, directory, requester, project_manager):
    leave = apply_casual(LeaveService(), requester)

    assert leave.status == LeaveStatus.PENDING
    assert leave.days == 2
    assert leave.manager_id == project_manager.employee_id
    doc = mongo_db["notifications"].find_one({"user_id": project_manager.employee_id})
    assert doc["meta"]["leave_id"] == leave.leave_id


def test_balance_created_from_default_allocations(requester):
    balance = LeaveService().get_balance(requester.employee_id, 2024)

    assert balance.allocations["casual"] == 12
    assert balance.remaining(LeaveType.SICK) == 8
    assert balance.used == {}


def test_approval_consumes_balance(directory, requester, project_manager):
    service = LeaveService()
    leave = apply_casual(service, requester)

    approved = service.approve(project_manager, leave.leave_id, comment="Enjoy")

    assert approved.status == LeaveStatus.APPROVED
    assert approved.approver_id == project_manager.employee_id
    assert service.get_balance(requester.employee_id, 2024).remaining(LeaveType.CASUAL) == 10

    with pytest.raises(InvalidStateError):
        service.approve(project_manager, leave.leave_id)


def test_insufficient_balance_on_apply(directory, requester):
    with pytest.raises(InsufficientLeaveBalanceError):
        apply_casual(LeaveService(), requester, start="2024-03-01", end="2024-03-13")


def test_balance_checked_again_on_approval(directory, requester, project_manager):
    service = LeaveService()
    first = apply_casual(service, requester, start="2024-03-01", end="2024-03-08")
    second = apply_casual(service, requester, start="2024-04-01", end="2024-04-08")

    service.approve(project_manager, first.leave_id)
    with pytest.raises(InsufficientLeaveBalanceError):
        service.approve(project_manager, second.leave_id)

    assert service.repo.get_request(second.leave_id).status == LeaveStatus.PENDING
    assert service.get_balance(requester.employee_id, 2024).used["casual"] == 8


def test_cancel_approved_leave_restores_balance(directory, requester, project_manager):
    service = LeaveService()
    leave = apply_casual(service, requester)
    service.approve(project_manager, leave.leave_id)

    cancelled = service.cancel(requester, leave.leave_id, reason="Plans changed")

    assert cancelled.status == LeaveStatus.CANCELLED
    assert service.get_balance(requester.employee_id, 2024).remaining(LeaveType.CASUAL) == 12


def test_leave_cannot_span_years(directory, requester):
    with pytest.raises(ValidationError) as exc_info:
        apply_casual(LeaveService(), requester, start="2024-12-30", end="2025-01-02")

    assert exc_info.value.details["field"] == "end_date"


def test_end_before_start_rejected(directory, requester):
    with pytest.raises(ValidationError):
        apply_casual(LeaveService(), requester, start="2024-03-05", end="2024-03-04")


def test_half_day(directory, requester):
    service = LeaveService()

    leave = apply_casual(service, requester, start="2024-03-04", end="2024-03-04", half_day=True)
    assert leave.days == 0.5

    with pytest.raises(ValidationError):
        apply_casual(service, requester, half_day=True)


def test_only_manager_or_hr_decides(directory, requester, specialist, hr_user):
    service = LeaveService()
    leave = apply_casual(service, requester)

    with pytest.raises(PermissionDeniedError):
        service.approve(requester, leave.leave_id)
    with pytest.raises(PermissionDeniedError):
        service.approve(specialist, leave.leave_id)

    with pytest.raises(ValidationError):
        service.reject(hr_user, leave.leave_id, reason="")
    rejected = service.reject(hr_user, leave.leave_id, reason="Release week")
    assert rejected.status == LeaveStatus.REJECTED
    assert rejected.decision_comment == "Release week"


def test_pending_lists(directory, requester, project_manager, hr_user):
    service = LeaveService()
    leave = apply_casual(service, requester)

    assert [item.leave_id for item in service.list_pending_for_manager(project_manager)] == [leave.leave_id]
    assert [item.leave_id for item in service.list_pending_for_manager(hr_user)] == [leave.leave_id]
    assert service.list_for_employee(requester.employee_id, status=LeaveStatus.APPROVED) == []
