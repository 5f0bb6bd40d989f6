"""Employee Repository - Directory records and the reporting graph"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import Employee
from ..domain.enums import Role
from ..domain.errors import EmployeeNotFoundError
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class EmployeeRepository:
    """Repository for employees"""

    def __init__(self):
        self._employees: Collection = get_collection("employees")

    @staticmethod
    def _to_model(doc: Dict[str, Any]) -> Employee:
        doc.pop("_id", None)
        return Employee.model_validate(doc)

    def create_employee(self, employee: Employee) -> Employee:
        """
        Insert an employee

        Raises:
            pymongo.errors.DuplicateKeyError: employee ID already exists
        """
        doc = employee.model_dump()
        doc["_id"] = employee.employee_id
        self._employees.insert_one(doc)
        logger.info(f"Created employee {employee.employee_id}", extra={"employee_id": employee.employee_id})
        return employee

    def get_employee(self, employee_id: str) -> Optional[Employee]:
        doc = self._employees.find_one({"employee_id": employee_id})
        return self._to_model(doc) if doc else None

    def get_employee_or_raise(self, employee_id: str) -> Employee:
        employee = self.get_employee(employee_id)
        if not employee:
            raise EmployeeNotFoundError(
                f"Employee {employee_id} not found",
                details={"employee_id": employee_id}
            )
        return employee

    def list_employees(
        self,
        role: Optional[Role] = None,
        department: Optional[str] = None,
        manager_id: Optional[str] = None,
        active_only: bool = True,
        skip: int = 0,
        limit: int = 100
    ) -> List[Employee]:
        query: Dict[str, Any] = {}
        if role:
            query["role"] = role.value
        if department:
            query["department"] = department
        if manager_id:
            query["reporting_manager_id"] = manager_id
        if active_only:
            query["is_active"] = True
        cursor = self._employees.find(query).sort("employee_id", ASCENDING).skip(skip).limit(limit)
        return [self._to_model(doc) for doc in cursor]

    def all_employees(self) -> List[Employee]:
        """Every employee record, active or not"""
        return [self._to_model(doc) for doc in self._employees.find({})]

    def manager_map(self) -> Dict[str, Optional[str]]:
        """employee_id -> reporting_manager_id for every employee"""
        cursor = self._employees.find({}, {"employee_id": 1, "reporting_manager_id": 1})
        return {doc["employee_id"]: doc.get("reporting_manager_id") for doc in cursor}

    def update_employee(self, employee_id: str, updates: Dict[str, Any]) -> Employee:
        updates["updated_at"] = utc_now()
        result = self._employees.find_one_and_update(
            {"employee_id": employee_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise EmployeeNotFoundError(f"Employee {employee_id} not found", details={"employee_id": employee_id})
        logger.info(f"Updated employee {employee_id}", extra={"employee_id": employee_id})
        return self._to_model(result)
