"""Employee Service - Directory maintenance with hierarchy enforcement"""
from typing import Any, Dict, List, Optional
from pymongo.errors import DuplicateKeyError

from ..domain.models import Employee
from ..domain.enums import Role
from ..domain.errors import AlreadyExistsError, ValidationError
from ..engine.hierarchy import audit_hierarchy, validate_manager_assignment, HierarchyReport
from ..repositories.employee_repo import EmployeeRepository
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

_UPDATABLE_FIELDS = {
    "name", "email", "department", "designation", "role",
    "reporting_manager_id", "has_login_access", "is_active",
}


class EmployeeService:
    """Service for employees and the reporting hierarchy"""

    def __init__(self):
        self.repo = EmployeeRepository()

    def create_employee(
        self,
        employee_id: str,
        name: str,
        email: str,
        role: Optional[Role],
        department: Optional[str] = None,
        designation: Optional[str] = None,
        reporting_manager_id: Optional[str] = None,
        has_login_access: bool = False
    ) -> Employee:
        """Create an employee; role is mandatory and the manager must keep the tree acyclic"""
        if role is None:
            raise ValidationError("Role is required", details={"field": "role"})

        validate_manager_assignment(employee_id, reporting_manager_id, self.repo.manager_map())

        now = utc_now()
        employee = Employee(
            employee_id=employee_id,
            name=name,
            email=email,
            department=department,
            designation=designation,
            role=role,
            reporting_manager_id=reporting_manager_id or None,
            has_login_access=has_login_access,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        try:
            return self.repo.create_employee(employee)
        except DuplicateKeyError:
            raise AlreadyExistsError(
                f"Employee {employee_id} already exists",
                details={"employee_id": employee_id}
            )

    def get_employee(self, employee_id: str) -> Employee:
        return self.repo.get_employee_or_raise(employee_id)

    def list_employees(
        self,
        role: Optional[Role] = None,
        department: Optional[str] = None,
        active_only: bool = True,
        skip: int = 0,
        limit: int = 100
    ) -> List[Employee]:
        return self.repo.list_employees(
            role=role, department=department, active_only=active_only, skip=skip, limit=limit
        )

    def list_direct_reports(self, manager_id: str) -> List[Employee]:
        self.repo.get_employee_or_raise(manager_id)
        return self.repo.list_employees(manager_id=manager_id)

    def update_employee(self, employee_id: str, updates: Dict[str, Any]) -> Employee:
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)}
            )
        if "role" in updates and updates["role"] is None:
            raise ValidationError("Role cannot be removed", details={"field": "role"})

        current = self.repo.get_employee_or_raise(employee_id)
        if "reporting_manager_id" in updates:
            manager_id = updates["reporting_manager_id"] or None
            updates["reporting_manager_id"] = manager_id
            if manager_id != current.reporting_manager_id:
                validate_manager_assignment(employee_id, manager_id, self.repo.manager_map())

        # Validate the merged record before writing
        merged = Employee.model_validate({**current.model_dump(), **updates})

        return self.repo.update_employee(employee_id, merged.model_dump(include=set(updates)))

    def deactivate_employee(self, employee_id: str) -> Employee:
        employee = self.repo.update_employee(employee_id, {"is_active": False, "has_login_access": False})
        reports = self.repo.list_employees(manager_id=employee_id)
        if reports:
            logger.warning(
                f"Deactivated employee {employee_id} still has {len(reports)} direct report(s)",
                extra={"employee_id": employee_id}
            )
        return employee

    def audit_hierarchy(self) -> HierarchyReport:
        """Read-only report of missing managers, dangling references and cycles"""
        report = audit_hierarchy(self.repo.all_employees())
        logger.info(
            f"Hierarchy audit: {len(report.cycles)} cycle(s), {len(report.dangling_references)} dangling reference(s)",
            extra={"action": "hierarchy_audit"}
        )
        return report
