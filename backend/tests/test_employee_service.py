"""Employee directory tests"""
import pytest

from rmg_portal.services.employee_service import EmployeeService
from rmg_portal.domain.enums import Role
from rmg_portal.domain.errors import (
    AlreadyExistsError, EmployeeNotFoundError, HierarchyValidationError, ValidationError
)


@pytest.fixture
def service():
    service = EmployeeService()
    service.create_employee("CEO1", "Chief", "ceo1@example.com", Role.SUPER_ADMIN)
    service.create_employee("MGR1", "Manager", "mgr1@example.com", Role.MANAGER, reporting_manager_id="CEO1")
    service.create_employee("EMP1", "Engineer", "emp1@example.com", Role.EMPLOYEE,
                            department="Engineering", reporting_manager_id="MGR1")
    return service


def test_role_is_mandatory():
    with pytest.raises(ValidationError) as exc_info:
        EmployeeService().create_employee("EMP9", "No Role", "emp9@example.com", None)

    assert exc_info.value.details["field"] == "role"


def test_unknown_manager_refused(service):
    with pytest.raises(HierarchyValidationError):
        service.create_employee("EMP2", "New", "emp2@example.com", Role.EMPLOYEE, reporting_manager_id="NOPE")


def test_duplicate_employee_refused(service):
    with pytest.raises(AlreadyExistsError):
        service.create_employee("EMP1", "Again", "again@example.com", Role.EMPLOYEE)


def test_cycle_refused_on_update(service):
    with pytest.raises(HierarchyValidationError):
        service.update_employee("CEO1", {"reporting_manager_id": "EMP1"})

    assert service.get_employee("CEO1").reporting_manager_id is None


def test_update_and_direct_reports(service):
    service.create_employee("EMP2", "Analyst", "emp2@example.com", Role.EMPLOYEE, reporting_manager_id="CEO1")

    moved = service.update_employee("EMP2", {"reporting_manager_id": "MGR1", "designation": "Analyst II"})

    assert moved.reporting_manager_id == "MGR1"
    assert moved.designation == "Analyst II"
    assert [e.employee_id for e in service.list_direct_reports("MGR1")] == ["EMP1", "EMP2"]


def test_update_rejects_unknown_fields_and_role_removal(service):
    with pytest.raises(ValidationError):
        service.update_employee("EMP1", {"employee_id": "EMP100"})
    with pytest.raises(ValidationError):
        service.update_employee("EMP1", {"role": None})


def test_deactivate_hides_employee(service):
    service.deactivate_employee("EMP1")

    assert [e.employee_id for e in service.list_employees()] == ["CEO1", "MGR1"]
    assert service.get_employee("EMP1").has_login_access is False


def test_unknown_employee(service):
    with pytest.raises(EmployeeNotFoundError):
        service.get_employee("GHOST")


def test_audit_reports_broken_records(mongo_db, service):
    mongo_db["employees"].insert_one({
        "_id": "EMP7", "employee_id": "EMP7", "name": "Orphan", "email": "emp7@example.com",
        "role": "EMPLOYEE", "reporting_manager_id": "LEFT", "is_active": True,
    })

    report = service.audit_hierarchy()

    assert report.total_employees == 4
    assert report.without_manager == ["CEO1"]
    assert [d.employee_id for d in report.dangling_references] == ["EMP7"]
    assert report.cycles == []
