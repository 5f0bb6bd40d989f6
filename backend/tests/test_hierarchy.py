"""Reporting hierarchy tests"""
import pytest

from rmg_portal.engine import audit_hierarchy, validate_manager_assignment
from rmg_portal.domain.models import Employee
from rmg_portal.domain.enums import Role
from rmg_portal.domain.errors import HierarchyValidationError


def employee(employee_id, manager_id=None):
    return Employee(
        employee_id=employee_id,
        name=employee_id,
        email=f"{employee_id.lower()}@example.com",
        role=Role.EMPLOYEE,
        reporting_manager_id=manager_id,
    )


MANAGERS = {"CEO": None, "VP1": "CEO", "MGR1": "VP1", "EMP1": "MGR1"}


def test_valid_assignment_passes():
    validate_manager_assignment("EMP2", "MGR1", MANAGERS)
    validate_manager_assignment("EMP2", None, MANAGERS)


def test_self_reference_rejected():
    with pytest.raises(HierarchyValidationError):
        validate_manager_assignment("EMP1", "EMP1", MANAGERS)


def test_missing_manager_rejected():
    with pytest.raises(HierarchyValidationError) as exc_info:
        validate_manager_assignment("EMP1", "GHOST", MANAGERS)

    assert exc_info.value.details["reporting_manager_id"] == "GHOST"


def test_cycle_rejected_with_chain():
    with pytest.raises(HierarchyValidationError) as exc_info:
        validate_manager_assignment("VP1", "EMP1", MANAGERS)

    assert exc_info.value.details["chain"] == ["VP1", "EMP1", "MGR1", "VP1"]


def test_audit_of_healthy_tree():
    report = audit_hierarchy([employee(e, m) for e, m in MANAGERS.items()])

    assert report.is_healthy
    assert report.total_employees == 4
    assert report.without_manager == ["CEO"]


def test_audit_finds_dangling_reference_and_cycle():
    report = audit_hierarchy([
        employee("CEO"),
        employee("A", "B"),
        employee("B", "C"),
        employee("C", "A"),
        employee("D", "GONE"),
    ])

    assert not report.is_healthy
    assert [(d.employee_id, d.reporting_manager_id) for d in report.dangling_references] == [("D", "GONE")]
    # Reported once regardless of the starting employee
    assert report.cycles == [["A", "B", "C"]]
