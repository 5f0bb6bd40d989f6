"""Timesheet submission and approval tests"""
import pytest

from rmg_portal.services.timesheet_service import (
    TimesheetService, RowInput, DayInput, RevisionItem, hours_to_minutes, minutes_to_hours
)
from rmg_portal.domain.enums import DayApprovalStatus, Role, TimesheetStatus
from rmg_portal.domain.errors import (
    ConcurrencyError, InvalidStateError, PermissionDeniedError, ValidationError
)

from .conftest import make_actor

WEEK = "2024-01-01"  # a Monday


def row(project_id="PRJ1", activity_id="DEV", hours=("8:00", "8:00", None, None, None, None, None)):
    return RowInput(
        project_id=project_id,
        project_name="Portal Revamp",
        activity_id=activity_id,
        activity_name="Development",
        days=[DayInput(hours=h) if h else None for h in hours],
    )


@pytest.fixture
def service(rmg_user, project_manager):
    service = TimesheetService()
    service.register_project(rmg_user, "PRJ1", project_manager.employee_id, project_name="Portal Revamp")
    return service


def statuses(service, employee_id):
    rows = service.get_week(employee_id, WEEK).rows
    return [cell.approval_status if cell else None for cell in rows[0].days]


def test_duration_helpers():
    assert hours_to_minutes("7:30") == 450
    assert minutes_to_hours(450) == "7:30"
    with pytest.raises(ValidationError):
        hours_to_minutes("7.5")


def test_submit_week_and_read_back(service, requester):
    saved = service.submit_week(requester, WEEK, [row()])

    assert len(saved) == 1
    assert saved[0].status == TimesheetStatus.SUBMITTED
    view = service.get_week(requester.employee_id, WEEK)
    assert view.dates[0] == "2024-01-01"
    assert view.dates[-1] == "2024-01-07"
    assert view.day_totals[:3] == ["8:00", "8:00", "0:00"]
    assert view.total_hours == "16:00"


def test_submission_notifies_project_manager(mongo_db, service, requester, project_manager):
    service.submit_week(requester, WEEK, [row()])

    docs = list(mongo_db["notifications"].find({"user_id": project_manager.employee_id}))
    assert len(docs) == 1
    assert docs[0]["role"] == Role.MANAGER.value
    assert docs[0]["meta"]["submitted_by"] == requester.employee_id


def test_week_must_start_on_monday(service, requester):
    with pytest.raises(ValidationError) as exc_info:
        service.submit_week(requester, "2024-01-02", [row()])

    assert exc_info.value.details["field"] == "week_start_date"


def test_day_cannot_exceed_24_hours(service, requester):
    with pytest.raises(ValidationError):
        service.submit_week(requester, WEEK, [
            row(activity_id="DEV", hours=("16:00",) + (None,) * 6),
            row(activity_id="QA", hours=("9:00",) + (None,) * 6),
        ])


def test_duplicate_rows_refused(service, requester):
    with pytest.raises(ValidationError):
        service.submit_week(requester, WEEK, [row(), row()])


def test_approve_week_is_idempotent(service, requester, project_manager):
    service.submit_week(requester, WEEK, [row()])

    assert service.approve_week(project_manager, "PRJ1", requester.employee_id, WEEK) == 2
    assert service.approve_week(project_manager, "PRJ1", requester.employee_id, WEEK) == 0
    assert statuses(service, requester.employee_id)[:3] == [
        DayApprovalStatus.APPROVED, DayApprovalStatus.APPROVED, None
    ]


def test_approve_days_touches_only_named_days(service, requester, project_manager):
    service.submit_week(requester, WEEK, [row()])

    assert service.approve_days(project_manager, "PRJ1", requester.employee_id, WEEK, [1]) == 1

    assert statuses(service, requester.employee_id)[:2] == [
        DayApprovalStatus.PENDING, DayApprovalStatus.APPROVED
    ]
    with pytest.raises(ValidationError):
        service.approve_days(project_manager, "PRJ1", requester.employee_id, WEEK, [7])


def test_other_manager_cannot_approve(service, requester):
    intruder = make_actor("PM002", "Other Manager", Role.MANAGER)
    service.submit_week(requester, WEEK, [row()])

    with pytest.raises(PermissionDeniedError):
        service.approve_week(intruder, "PRJ1", requester.employee_id, WEEK)


def test_unknown_scope_updates_nothing(service, requester, project_manager):
    service.submit_week(requester, WEEK, [row()])

    assert service.approve_week(project_manager, "PRJ-UNKNOWN", requester.employee_id, WEEK) == 0
    assert service.approve_week(project_manager, "PRJ1", "EMP404", WEEK) == 0


def test_revision_requires_every_reason(service, requester, project_manager):
    service.submit_week(requester, WEEK, [row()])

    with pytest.raises(ValidationError):
        service.request_revision(project_manager, "PRJ1", requester.employee_id, WEEK, [
            RevisionItem(activity_id="DEV", day_index=0, reason="Too many hours"),
            RevisionItem(activity_id="DEV", day_index=1, reason=" "),
        ])

    assert statuses(service, requester.employee_id)[:2] == [
        DayApprovalStatus.PENDING, DayApprovalStatus.PENDING
    ]


def test_revision_and_resubmission(service, requester, project_manager):
    service.submit_week(requester, WEEK, [row()])
    service.approve_days(project_manager, "PRJ1", requester.employee_id, WEEK, [0])

    updated = service.request_revision(project_manager, "PRJ1", requester.employee_id, WEEK, [
        RevisionItem(activity_id="DEV", day_index=1, reason="Split across projects"),
    ])
    assert updated == 1
    cell = service.get_week(requester.employee_id, WEEK).rows[0].days[1]
    assert cell.approval_status == DayApprovalStatus.REVISION_REQUESTED
    assert cell.rejected_reason == "Split across projects"

    # Same hours: approved Monday stays approved, revised Tuesday restarts
    service.submit_week(requester, WEEK, [row(hours=("8:00", "6:00", None, None, None, None, None))])

    assert statuses(service, requester.employee_id)[:2] == [
        DayApprovalStatus.APPROVED, DayApprovalStatus.PENDING
    ]


def test_approval_view_lists_managed_projects(service, requester, project_manager):
    service.submit_week(requester, WEEK, [row(), row(project_id="PRJ2")])

    rows = service.get_approval_view(project_manager, WEEK)

    assert [r.project_id for r in rows] == ["PRJ1"]
    assert service.get_approval_view(project_manager, WEEK, employee_id="EMP404") == []


def test_recall_skips_rows_with_approved_days(service, requester, project_manager):
    service.submit_week(requester, WEEK, [row(), row(project_id="PRJ2")])
    service.approve_week(project_manager, "PRJ1", requester.employee_id, WEEK)

    assert service.recall_week(requester, WEEK) == 1


def test_failed_submission_leaves_week_untouched(monkeypatch, service, requester):
    service.submit_week(requester, WEEK, [row(), row(project_id="PRJ2")], submit=False)
    original = service.repo.save_row
    calls = []

    def conflict_on_second_save(updated, expected_version):
        calls.append(updated.project_id)
        if len(calls) == 2:
            raise ConcurrencyError("changed elsewhere")
        return original(updated, expected_version)

    monkeypatch.setattr(service.repo, "save_row", conflict_on_second_save)

    with pytest.raises(ConcurrencyError):
        service.submit_week(requester, WEEK, [row(), row(project_id="PRJ3"), row(project_id="PRJ2")])

    rows = service.get_week(requester.employee_id, WEEK).rows
    assert calls == ["PRJ1", "PRJ2"]
    assert sorted((r.project_id, r.status) for r in rows) == [
        ("PRJ1", TimesheetStatus.DRAFT), ("PRJ2", TimesheetStatus.DRAFT)
    ]


def test_approval_retry_stops_when_row_was_recalled(monkeypatch, service, requester, project_manager):
    service.submit_week(requester, WEEK, [row()])
    original = service.repo.save_row
    recalled = []

    def recall_then_conflict(updated, expected_version):
        if not recalled:
            recalled.append(updated.row_id)
            service.recall_week(requester, WEEK)
            raise ConcurrencyError("changed elsewhere")
        return original(updated, expected_version)

    monkeypatch.setattr(service.repo, "save_row", recall_then_conflict)

    assert service.approve_week(project_manager, "PRJ1", requester.employee_id, WEEK) == 0
    saved = service.get_week(requester.employee_id, WEEK).rows[0]
    assert saved.status == TimesheetStatus.DRAFT
    assert statuses(service, requester.employee_id)[:2] == [DayApprovalStatus.PENDING] * 2

def test_delete_row_rules(service, requester, project_manager):
    saved = service.submit_week(requester, WEEK, [row(), row(project_id="PRJ2")])
    service.approve_week(project_manager, "PRJ1", requester.employee_id, WEEK)
    approved_row = next(r for r in saved if r.project_id == "PRJ1")
    open_row = next(r for r in saved if r.project_id == "PRJ2")

    with pytest.raises(PermissionDeniedError):
        service.delete_row(project_manager, open_row.row_id)
    with pytest.raises(InvalidStateError):
        service.delete_row(requester, approved_row.row_id)

    service.delete_row(requester, open_row.row_id)
    assert len(service.get_week(requester.employee_id, WEEK).rows) == 1


def test_only_rmg_registers_projects(requester):
    with pytest.raises(PermissionDeniedError):
        TimesheetService().register_project(requester, "PRJ9", "PM001")


def test_reminder(mongo_db, service, project_manager, requester):
    assert service.send_reminder(project_manager, requester.employee_id, WEEK) is True

    doc = mongo_db["notifications"].find_one({"user_id": requester.employee_id})
    assert doc["type"] == "reminder"
