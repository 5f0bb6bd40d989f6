"""Timesheet Repository - Weekly (project, activity) rows and project ownership"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import TimesheetRow, ProjectRef
from ..domain.enums import TimesheetStatus
from ..domain.errors import ConcurrencyError, NotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TimesheetRepository:
    """Repository for timesheet rows, one document per (employee, week, project, activity)"""

    def __init__(self):
        self._rows: Collection = get_collection("timesheet_rows")
        self._projects: Collection = get_collection("projects")

    @staticmethod
    def _to_model(doc: Dict[str, Any]) -> TimesheetRow:
        doc.pop("_id", None)
        return TimesheetRow.model_validate(doc)

    # =========================================================================
    # Rows
    # =========================================================================

    def insert_row(self, row: TimesheetRow) -> TimesheetRow:
        """
        Insert a new row

        Raises:
            pymongo.errors.DuplicateKeyError: row key already exists
        """
        doc = row.model_dump()
        doc["_id"] = row.row_id
        self._rows.insert_one(doc)
        return row

    def get_row(self, row_id: str) -> Optional[TimesheetRow]:
        doc = self._rows.find_one({"row_id": row_id})
        return self._to_model(doc) if doc else None

    def get_row_or_raise(self, row_id: str) -> TimesheetRow:
        row = self.get_row(row_id)
        if not row:
            raise NotFoundError(f"Timesheet row {row_id} not found", details={"row_id": row_id})
        return row

    def find_rows(
        self,
        employee_id: str,
        week_start_date: str,
        project_id: Optional[str] = None,
        status: Optional[TimesheetStatus] = None
    ) -> List[TimesheetRow]:
        """Rows of one employee's week, optionally narrowed to a project"""
        query: Dict[str, Any] = {"employee_id": employee_id, "week_start_date": week_start_date}
        if project_id:
            query["project_id"] = project_id
        if status:
            query["status"] = status.value
        cursor = self._rows.find(query).sort([("project_id", ASCENDING), ("activity_id", ASCENDING)])
        return [self._to_model(doc) for doc in cursor]

    def find_rows_for_projects(
        self,
        project_ids: List[str],
        week_start_date: str,
        status: Optional[TimesheetStatus] = TimesheetStatus.SUBMITTED
    ) -> List[TimesheetRow]:
        """Rows booked on any of `project_ids` in a week"""
        if not project_ids:
            return []
        query: Dict[str, Any] = {"project_id": {"$in": project_ids}, "week_start_date": week_start_date}
        if status:
            query["status"] = status.value
        cursor = self._rows.find(query).sort([("employee_id", ASCENDING), ("project_id", ASCENDING)])
        return [self._to_model(doc) for doc in cursor]

    def save_row(self, row: TimesheetRow, expected_version: int) -> TimesheetRow:
        """Replace a row if nobody else changed it since `expected_version`"""
        doc = row.model_dump()
        doc["version"] = expected_version + 1

        result = self._rows.find_one_and_update(
            {"row_id": row.row_id, "version": expected_version},
            {"$set": doc},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            if self._rows.find_one({"row_id": row.row_id}, {"_id": 1}):
                raise ConcurrencyError(
                    f"Timesheet row {row.row_id} was modified. Please refresh and try again.",
                    details={"row_id": row.row_id, "expected_version": expected_version}
                )
            raise NotFoundError(f"Timesheet row {row.row_id} not found")
        return self._to_model(result)

    def delete_row(self, row_id: str) -> bool:
        result = self._rows.delete_one({"row_id": row_id})
        return result.deleted_count > 0

    def remove_inserted_row(self, row: TimesheetRow) -> bool:
        """Delete a row only while it is still the version that was inserted"""
        result = self._rows.delete_one({"row_id": row.row_id, "version": row.version})
        return result.deleted_count > 0

    def restore_row(self, previous: TimesheetRow, written_version: int) -> bool:
        """
        Put `previous` back over the version we wrote

        The version keeps moving forward so readers holding the written
        version still see a conflict.
        """
        doc = previous.model_dump()
        doc["version"] = written_version + 1
        result = self._rows.update_one(
            {"row_id": previous.row_id, "version": written_version},
            {"$set": doc}
        )
        return result.modified_count > 0

    # =========================================================================
    # Projects
    # =========================================================================

    def upsert_project(self, project: ProjectRef) -> ProjectRef:
        """Create or replace the ownership record of a project"""
        result = self._projects.find_one_and_update(
            {"project_id": project.project_id},
            {"$set": project.model_dump()},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        result.pop("_id", None)
        return ProjectRef.model_validate(result)

    def get_project(self, project_id: str) -> Optional[ProjectRef]:
        doc = self._projects.find_one({"project_id": project_id})
        if doc:
            doc.pop("_id", None)
            return ProjectRef.model_validate(doc)
        return None

    def list_projects_managed_by(self, manager_id: str) -> List[ProjectRef]:
        projects = []
        for doc in self._projects.find({"manager_id": manager_id}):
            doc.pop("_id", None)
            projects.append(ProjectRef.model_validate(doc))
        return projects
