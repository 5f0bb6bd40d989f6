"""Reporting Hierarchy - Manager graph audit and write-time validation"""
from typing import Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, Field

from ..domain.models import Employee
from ..domain.errors import HierarchyValidationError


class DanglingReference(BaseModel):
    employee_id: str
    reporting_manager_id: str


class HierarchyReport(BaseModel):
    """Read-only audit of the reporting tree"""
    total_employees: int = 0
    without_manager: List[str] = Field(default_factory=list)
    dangling_references: List[DanglingReference] = Field(default_factory=list)
    cycles: List[List[str]] = Field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return not self.dangling_references and not self.cycles


def _canonical(cycle: List[str]) -> tuple:
    """Rotation-independent key so each cycle is reported once"""
    start = cycle.index(min(cycle))
    return tuple(cycle[start:] + cycle[:start])


def audit_hierarchy(employees: Iterable[Employee]) -> HierarchyReport:
    """
    Detect employees without a manager, managers that do not exist and
    cycles in the manager graph

    Each employee's chain is walked with a visited set; meeting an identity
    already on the current path closes a cycle.
    """
    managers: Dict[str, Optional[str]] = {e.employee_id: e.reporting_manager_id for e in employees}
    report = HierarchyReport(total_employees=len(managers))
    seen_cycles = set()

    for employee_id, manager_id in managers.items():
        if not manager_id:
            report.without_manager.append(employee_id)
        elif manager_id not in managers:
            report.dangling_references.append(
                DanglingReference(employee_id=employee_id, reporting_manager_id=manager_id)
            )

        path: List[str] = []
        visited = set()
        current: Optional[str] = employee_id
        while current and current in managers:
            if current in visited:
                cycle = path[path.index(current):]
                key = _canonical(cycle)
                if key not in seen_cycles:
                    seen_cycles.add(key)
                    report.cycles.append(list(key))
                break
            visited.add(current)
            path.append(current)
            current = managers[current]

    return report


def validate_manager_assignment(
    employee_id: str,
    manager_id: Optional[str],
    managers: Mapping[str, Optional[str]]
) -> None:
    """
    Reject a reporting manager that would break the tree

    `managers` maps every existing employee ID to its current manager ID.

    Raises:
        HierarchyValidationError: manager missing, self-reference, or the
            manager's chain leads back to the employee
    """
    if not manager_id:
        return
    if manager_id == employee_id:
        raise HierarchyValidationError(
            "An employee cannot report to themselves",
            details={"field": "reporting_manager_id", "employee_id": employee_id}
        )
    if manager_id not in managers:
        raise HierarchyValidationError(
            f"Reporting manager {manager_id} does not exist",
            details={"field": "reporting_manager_id", "reporting_manager_id": manager_id}
        )

    chain = [employee_id, manager_id]
    visited = {manager_id}
    current = managers.get(manager_id)
    while current:
        chain.append(current)
        if current == employee_id:
            raise HierarchyValidationError(
                "Reporting manager assignment would create a cycle",
                details={"field": "reporting_manager_id", "chain": chain}
            )
        if current in visited:
            # Pre-existing cycle elsewhere in the chain
            break
        visited.add(current)
        current = managers.get(current)
