"""Timesheet Service - Weekly submission and day-level approval

Approval actions are always scoped to (manager, project, employee, week)
and touch only the day cells they name. Each row is written with an
optimistic version check; on conflict the row is re-read and the action
re-applied a bounded number of times.
"""
import re
from typing import Callable, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from ..domain.models import ActorContext, TimesheetRow, DayCell, ProjectRef
from ..domain.enums import (
    TimesheetStatus, DayApprovalStatus, NotificationType, Role
)
from ..domain.errors import (
    ValidationError, PermissionDeniedError, ConcurrencyError, InvalidStateError, NotFoundError
)
from ..repositories.timesheet_repo import TimesheetRepository
from ..config.settings import settings
from .notification_service import NotificationService, TIMESHEET_URL
from ..utils.idgen import generate_timesheet_row_id
from ..utils.time import DAYS_IN_WEEK, utc_now, parse_date, to_iso_date, week_dates
from ..utils.logger import get_logger

logger = get_logger(__name__)

_HOURS_PATTERN = re.compile(r"^(\d{1,2}):([0-5]\d)$")
MINUTES_PER_DAY = 24 * 60


def hours_to_minutes(hours: str) -> int:
    """'7:30' -> 450"""
    match = _HOURS_PATTERN.match(hours.strip())
    if not match:
        raise ValidationError(f"Invalid duration '{hours}', expected H:MM", details={"field": "hours"})
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_hours(minutes: int) -> str:
    return f"{minutes // 60}:{minutes % 60:02d}"


# ============================================================================
# Inputs
# ============================================================================

class DayInput(BaseModel):
    hours: str
    comment: Optional[str] = None


class RowInput(BaseModel):
    project_id: str
    project_name: Optional[str] = None
    activity_id: str
    activity_name: Optional[str] = None
    billable: bool = True
    days: List[Optional[DayInput]] = Field(..., min_length=DAYS_IN_WEEK, max_length=DAYS_IN_WEEK)


class RevisionItem(BaseModel):
    activity_id: str
    day_index: int
    reason: Optional[str] = None


class WeekView(BaseModel):
    employee_id: str
    week_start_date: str
    dates: List[str]
    rows: List[TimesheetRow]
    day_totals: List[str]
    total_hours: str


# Statuses an approval may move away from
_APPROVABLE = {
    DayApprovalStatus.PENDING,
    DayApprovalStatus.REVISION_REQUESTED,
}


class TimesheetService:
    """Service for timesheet submission and approval"""

    def __init__(self):
        self.repo = TimesheetRepository()
        self.notification_service = NotificationService()

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _week_start(week_start_date: str) -> str:
        try:
            week = parse_date(week_start_date)
        except (ValueError, OverflowError):
            raise ValidationError(
                f"Invalid week start date '{week_start_date}'",
                details={"field": "week_start_date"}
            )
        if week.weekday() != 0:
            raise ValidationError(
                "Week start date must be a Monday",
                details={"field": "week_start_date", "week_start_date": week.isoformat()}
            )
        return week.isoformat()

    def _check_project_manager(self, actor: ActorContext, project_id: str) -> Optional[ProjectRef]:
        """The actor must manage the project when the project is known"""
        project = self.repo.get_project(project_id)
        if project is None:
            logger.warning(
                f"Project {project_id} not found; approval by {actor.employee_id} not verified",
                extra={"project_id": project_id, "actor_id": actor.employee_id}
            )
            return None
        if project.manager_id != actor.employee_id and actor.role != Role.SUPER_ADMIN:
            raise PermissionDeniedError(
                f"You are not the manager of project {project_id}",
                details={"project_id": project_id}
            )
        return project

    def register_project(
        self,
        actor: ActorContext,
        project_id: str,
        manager_id: str,
        project_name: Optional[str] = None
    ) -> ProjectRef:
        """Record who manages a project; only RMG and super admins maintain this"""
        if actor.role not in (Role.RMG, Role.SUPER_ADMIN):
            raise PermissionDeniedError("Only RMG can assign project managers")
        if not manager_id or not manager_id.strip():
            raise ValidationError("Project manager is required", details={"field": "manager_id"})
        project = self.repo.upsert_project(ProjectRef(
            project_id=project_id,
            project_name=project_name,
            manager_id=manager_id.strip(),
        ))
        logger.info(
            f"Project {project_id} managed by {project.manager_id}",
            extra={"project_id": project_id, "actor_id": actor.employee_id}
        )
        return project

    def _write_row(self, row: TimesheetRow, mutate: Callable[[TimesheetRow], int]) -> int:
        """
        Apply `mutate` to a copy of the row and save it

        `mutate` returns how many cells it changed; nothing is written when
        that is zero.
        """
        for _ in range(max(1, settings.timesheet_write_retries)):
            candidate = row.model_copy(deep=True)
            changed = mutate(candidate)
            if changed == 0:
                return 0
            candidate.updated_at = utc_now()
            try:
                self.repo.save_row(candidate, expected_version=row.version)
                return changed
            except ConcurrencyError:
                logger.info(
                    f"Timesheet row {row.row_id} changed concurrently; retrying",
                    extra={"employee_id": row.employee_id, "project_id": row.project_id}
                )
                fresh = self.repo.get_row(row.row_id)
                # Recalled or deleted in the meantime
                if fresh is None or fresh.status != TimesheetStatus.SUBMITTED:
                    return 0
                row = fresh

        raise ConcurrencyError(
            "Timesheet was modified by someone else. Please retry.",
            details={"row_id": row.row_id}
        )

    def _apply_to_scope(
        self,
        actor: ActorContext,
        project_id: str,
        employee_id: str,
        week_start_date: str,
        mutate: Callable[[TimesheetRow], int],
        action: str
    ) -> int:
        week = self._week_start(week_start_date)
        self._check_project_manager(actor, project_id)

        rows = self.repo.find_rows(employee_id, week, project_id=project_id, status=TimesheetStatus.SUBMITTED)
        updated = sum(self._write_row(row, mutate) for row in rows)

        logger.info(
            f"Timesheet {action}: {updated} day(s) updated",
            extra={
                "action": action,
                "actor_id": actor.employee_id,
                "employee_id": employee_id,
                "project_id": project_id,
                "week_start_date": week,
                "updated_count": updated,
            }
        )
        return updated

    # =========================================================================
    # Approval
    # =========================================================================

    def approve_week(
        self,
        actor: ActorContext,
        project_id: str,
        employee_id: str,
        week_start_date: str
    ) -> int:
        """Approve every not-yet-approved day of the scope. Returns days changed."""
        updated = self._approve(actor, project_id, employee_id, week_start_date, None, "approve_week")
        if updated:
            self.notification_service.notify_employee(
                employee_id,
                "Timesheet Approved",
                f"Your timesheet for the week of {to_iso_date(week_start_date)} ({project_id}) was approved",
                NotificationType.APPROVAL,
                TIMESHEET_URL,
                project_id=project_id,
                week_start_date=to_iso_date(week_start_date),
            )
        return updated

    def approve_days(
        self,
        actor: ActorContext,
        project_id: str,
        employee_id: str,
        week_start_date: str,
        day_indices: List[int]
    ) -> int:
        """Approve only the listed day indices (0 = Monday)"""
        if not day_indices:
            raise ValidationError("At least one day must be selected", details={"field": "day_indices"})
        invalid = [i for i in day_indices if not 0 <= i < DAYS_IN_WEEK]
        if invalid:
            raise ValidationError(
                f"Day indices must be between 0 and {DAYS_IN_WEEK - 1}",
                details={"field": "day_indices", "invalid": invalid}
            )

        updated = self._approve(actor, project_id, employee_id, week_start_date, set(day_indices), "approve_days")
        if updated:
            self.notification_service.notify_employee(
                employee_id,
                "Timesheet Days Approved",
                f"{updated} day(s) of your timesheet for {to_iso_date(week_start_date)} were approved",
                NotificationType.APPROVAL,
                TIMESHEET_URL,
                project_id=project_id,
                week_start_date=to_iso_date(week_start_date),
            )
        return updated

    def _approve(
        self,
        actor: ActorContext,
        project_id: str,
        employee_id: str,
        week_start_date: str,
        day_indices: Optional[Set[int]],
        action: str
    ) -> int:
        def mutate(row: TimesheetRow) -> int:
            now = utc_now()
            changed = 0
            for index, cell in enumerate(row.days):
                if cell is None or (day_indices is not None and index not in day_indices):
                    continue
                if cell.approval_status not in _APPROVABLE:
                    continue
                cell.approval_status = DayApprovalStatus.APPROVED
                cell.rejected_reason = None
                cell.approved_by = actor.employee_id
                cell.approved_at = now
                changed += 1
            return changed

        return self._apply_to_scope(actor, project_id, employee_id, week_start_date, mutate, action)

    def request_revision(
        self,
        actor: ActorContext,
        project_id: str,
        employee_id: str,
        week_start_date: str,
        reverts: List[RevisionItem]
    ) -> int:
        """
        Send listed days back to the employee with a reason each

        Every item is validated before anything is written, so one missing
        reason leaves the whole timesheet untouched.
        """
        if not reverts:
            raise ValidationError("At least one day must be selected", details={"field": "reverts"})

        targets: Dict[str, Dict[int, str]] = {}
        for position, item in enumerate(reverts):
            if not item.reason or not item.reason.strip():
                raise ValidationError(
                    f"A reason is required for day {item.day_index} of activity {item.activity_id}",
                    details={"field": f"reverts[{position}].reason", "day_index": item.day_index}
                )
            if not 0 <= item.day_index < DAYS_IN_WEEK:
                raise ValidationError(
                    f"Day index {item.day_index} is out of range",
                    details={"field": f"reverts[{position}].day_index"}
                )
            targets.setdefault(item.activity_id, {})[item.day_index] = item.reason.strip()

        def mutate(row: TimesheetRow) -> int:
            changed = 0
            for index, reason in targets.get(row.activity_id, {}).items():
                cell = row.days[index]
                if cell is None:
                    continue
                if cell.approval_status == DayApprovalStatus.REVISION_REQUESTED and cell.rejected_reason == reason:
                    continue
                cell.approval_status = DayApprovalStatus.REVISION_REQUESTED
                cell.rejected_reason = reason
                cell.approved_by = None
                cell.approved_at = None
                changed += 1
            return changed

        updated = self._apply_to_scope(actor, project_id, employee_id, week_start_date, mutate, "request_revision")
        if updated:
            self.notification_service.notify_employee(
                employee_id,
                "Timesheet Revision Requested",
                f"{actor.name} asked you to revise {updated} day(s) of your timesheet for {to_iso_date(week_start_date)}",
                NotificationType.REJECTION,
                TIMESHEET_URL,
                project_id=project_id,
                week_start_date=to_iso_date(week_start_date),
            )
        return updated

    # =========================================================================
    # Submission
    # =========================================================================

    @staticmethod
    def _validate_rows(entries: List[RowInput]) -> None:
        seen = set()
        totals = [0] * DAYS_IN_WEEK
        for position, entry in enumerate(entries):
            key = (entry.project_id, entry.activity_id)
            if key in seen:
                raise ValidationError(
                    f"Duplicate row for project {entry.project_id} / activity {entry.activity_id}",
                    details={"field": f"rows[{position}]"}
                )
            seen.add(key)
            for index, day in enumerate(entry.days):
                if day is not None:
                    totals[index] += hours_to_minutes(day.hours)
        over = [i for i, total in enumerate(totals) if total > MINUTES_PER_DAY]
        if over:
            raise ValidationError(
                "A day cannot exceed 24 hours",
                details={"field": "days", "day_indices": over}
            )

    @staticmethod
    def _merge_days(existing: Optional[TimesheetRow], entry: RowInput) -> List[Optional[DayCell]]:
        """New cells; unchanged cells keep their approval, edited or revised ones restart at pending"""
        merged: List[Optional[DayCell]] = []
        for index, day in enumerate(entry.days):
            previous = existing.days[index] if existing else None
            if day is None:
                merged.append(None)
                continue
            unchanged = (
                previous is not None
                and hours_to_minutes(previous.hours) == hours_to_minutes(day.hours)
                and (previous.comment or None) == (day.comment or None)
                and previous.approval_status != DayApprovalStatus.REVISION_REQUESTED
            )
            if unchanged:
                merged.append(previous)
            else:
                merged.append(DayCell(hours=day.hours.strip(), comment=day.comment))
        return merged

    def submit_week(
        self,
        actor: ActorContext,
        week_start_date: str,
        entries: List[RowInput],
        submit: bool = True
    ) -> List[TimesheetRow]:
        """
        Save (draft) or submit the actor's rows for a week

        All rows are written or none: when a row fails, the rows already
        written by this call are put back the way they were.
        """
        week = self._week_start(week_start_date)
        self._validate_rows(entries)
        status = TimesheetStatus.SUBMITTED if submit else TimesheetStatus.DRAFT
        now = utc_now()

        existing = {(r.project_id, r.activity_id): r for r in self.repo.find_rows(actor.employee_id, week)}
        saved: List[TimesheetRow] = []
        # (row as it was before this call or None when inserted, row as written)
        written: List[Tuple[Optional[TimesheetRow], TimesheetRow]] = []
        try:
            for entry in entries:
                current = existing.get((entry.project_id, entry.activity_id))
                if current is None:
                    row = self.repo.insert_row(TimesheetRow(
                        row_id=generate_timesheet_row_id(),
                        employee_id=actor.employee_id,
                        employee_name=actor.name,
                        week_start_date=week,
                        project_id=entry.project_id,
                        project_name=entry.project_name,
                        activity_id=entry.activity_id,
                        activity_name=entry.activity_name,
                        billable=entry.billable,
                        days=self._merge_days(None, entry),
                        status=status,
                        submitted_at=now if submit else None,
                        created_at=now,
                        updated_at=now,
                    ))
                else:
                    updated = current.model_copy(deep=True)
                    updated.project_name = entry.project_name or current.project_name
                    updated.activity_name = entry.activity_name or current.activity_name
                    updated.billable = entry.billable
                    updated.days = self._merge_days(current, entry)
                    updated.status = status
                    updated.submitted_at = now if submit else current.submitted_at
                    updated.updated_at = now
                    row = self.repo.save_row(updated, expected_version=current.version)
                written.append((current, row))
                saved.append(row)
        except (ConcurrencyError, NotFoundError, DuplicateKeyError) as e:
            self._undo_writes(actor, week, written)
            if isinstance(e, DuplicateKeyError):
                raise ConcurrencyError(
                    "Timesheet was modified by someone else. Please retry.",
                    details={"week_start_date": week}
                )
            raise

        logger.info(
            f"Timesheet {'submitted' if submit else 'saved'} for week {week}: {len(saved)} row(s)",
            extra={"employee_id": actor.employee_id, "week_start_date": week, "action": status.value}
        )

        if submit:
            self._notify_managers(actor, week, {row.project_id for row in saved})
        return saved

    def _undo_writes(
        self,
        actor: ActorContext,
        week: str,
        written: List[Tuple[Optional[TimesheetRow], TimesheetRow]]
    ) -> None:
        """Roll back rows written by a failed submission, newest first"""
        for previous, row in reversed(written):
            if previous is None:
                undone = self.repo.remove_inserted_row(row)
            else:
                undone = self.repo.restore_row(previous, written_version=row.version)
            if not undone:
                logger.error(
                    f"Could not roll back timesheet row {row.row_id}; it changed again meanwhile",
                    extra={"employee_id": actor.employee_id, "week_start_date": week,
                           "project_id": row.project_id}
                )

    def _notify_managers(self, actor: ActorContext, week: str, project_ids: Set[str]) -> None:
        for project_id in sorted(project_ids):
            project = self.repo.get_project(project_id)
            if project is None or not project.manager_id:
                continue
            self.notification_service.notify_employee(
                project.manager_id,
                "Timesheet Submitted",
                f"{actor.name} submitted a timesheet for the week of {week} ({project.project_name or project_id})",
                NotificationType.APPROVAL,
                TIMESHEET_URL,
                role=Role.MANAGER,
                submitted_by=actor.employee_id,
                project_id=project_id,
                week_start_date=week,
            )

    def recall_week(self, actor: ActorContext, week_start_date: str) -> int:
        """Move submitted rows with no approved day back to draft"""
        week = self._week_start(week_start_date)
        recalled = 0
        for row in self.repo.find_rows(actor.employee_id, week, status=TimesheetStatus.SUBMITTED):
            if any(c is not None and c.approval_status == DayApprovalStatus.APPROVED for c in row.days):
                continue
            updated = row.model_copy(deep=True)
            updated.status = TimesheetStatus.DRAFT
            updated.updated_at = utc_now()
            self.repo.save_row(updated, expected_version=row.version)
            recalled += 1
        return recalled

    def delete_row(self, actor: ActorContext, row_id: str) -> None:
        row = self.repo.get_row_or_raise(row_id)
        if row.employee_id != actor.employee_id:
            raise PermissionDeniedError("You can only delete your own timesheet rows")
        if any(c is not None and c.approval_status == DayApprovalStatus.APPROVED for c in row.days):
            raise InvalidStateError(
                "Rows with approved days cannot be deleted",
                details={"row_id": row_id}
            )
        if not self.repo.delete_row(row_id):
            raise NotFoundError(f"Timesheet row {row_id} not found")

    # =========================================================================
    # Reads
    # =========================================================================

    def get_week(self, employee_id: str, week_start_date: str) -> WeekView:
        week = self._week_start(week_start_date)
        rows = self.repo.find_rows(employee_id, week)
        totals = [0] * DAYS_IN_WEEK
        for row in rows:
            for index, cell in enumerate(row.days):
                if cell is not None:
                    totals[index] += hours_to_minutes(cell.hours)
        return WeekView(
            employee_id=employee_id,
            week_start_date=week,
            dates=week_dates(week),
            rows=rows,
            day_totals=[minutes_to_hours(t) for t in totals],
            total_hours=minutes_to_hours(sum(totals)),
        )

    def get_approval_view(
        self,
        actor: ActorContext,
        week_start_date: str,
        employee_id: Optional[str] = None,
        project_id: Optional[str] = None
    ) -> List[TimesheetRow]:
        """Submitted rows on projects the actor manages"""
        week = self._week_start(week_start_date)
        project_ids = [p.project_id for p in self.repo.list_projects_managed_by(actor.employee_id)]
        if project_id:
            project_ids = [p for p in project_ids if p == project_id]
        rows = self.repo.find_rows_for_projects(project_ids, week)
        if employee_id:
            rows = [r for r in rows if r.employee_id == employee_id]
        return rows

    def send_reminder(self, actor: ActorContext, employee_id: str, week_start_date: str) -> bool:
        week = self._week_start(week_start_date)
        notification = self.notification_service.notify_employee(
            employee_id,
            "Timesheet Reminder",
            f"{actor.name} reminded you to submit your timesheet for the week of {week}",
            NotificationType.REMINDER,
            TIMESHEET_URL,
            week_start_date=week,
        )
        return notification is not None
