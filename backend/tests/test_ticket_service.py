"""Ticket service tests against the in-memory database"""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import mongomock
import pytest

from rmg_portal.services.ticket_service import TicketService
from rmg_portal.repositories.counter_repo import CounterRepository
from rmg_portal.domain.enums import (
    HighLevelCategory, TicketStatus, ApprovalStatus, ClosingReason, TicketEvent
)
from rmg_portal.domain.errors import (
    ConcurrencyError, InvalidStateError, PermissionDeniedError, TicketNotFoundError, ValidationError
)
from rmg_portal.utils.idgen import parse_ticket_number
from rmg_portal.utils.time import utc_now


def create(service, actor, sub_category, submit=True):
    return service.create_ticket(
        high_level_category=HighLevelCategory.IT,
        sub_category=sub_category,
        subject="Request",
        description="Please help",
        actor=actor,
        submit=submit,
    )


def work_to_resolved(service, ticket_number, specialist):
    service.assign(ticket_number, specialist)
    service.start_work(ticket_number, specialist)
    return service.resolve(ticket_number, specialist, notes="Done")


# =============================================================================
# Numbering
# =============================================================================

def test_ticket_numbers_continue_from_counter(mongo_db, requester, no_approval_config):
    mongo_db["counters"].insert_one({"_id": "ticketNumber", "sequence": 42})
    service = TicketService()

    first = create(service, requester, "Password Reset")
    second = create(service, requester, "Password Reset")

    assert first.ticket_number == "TKT0043"
    assert second.ticket_number == "TKT0044"


def test_counter_drift_is_recovered(mongo_db, requester):
    mongo_db["helpdesk_tickets"].insert_one({"_id": "TKT0001", "ticket_number": "TKT0001"})
    service = TicketService()

    ticket = create(service, requester, "Password Reset", submit=False)

    assert ticket.ticket_number == "TKT0002"
    assert CounterRepository().current_sequence("ticketNumber") == 2


def test_sync_ticket_counter_never_moves_down(mongo_db):
    mongo_db["counters"].insert_one({"_id": "ticketNumber", "sequence": 10})
    mongo_db["helpdesk_tickets"].insert_one({"_id": "TKT0004", "ticket_number": "TKT0004"})

    assert TicketService().sync_ticket_counter() == 10


def test_parallel_submissions_get_unique_consecutive_numbers(monkeypatch, requester):
    # mongomock runs find_one_and_update as a separate read and write; the
    # server applies it to the document atomically
    lock = threading.Lock()
    unlocked = mongomock.Collection.find_one_and_update

    def atomic(self, *args, **kwargs):
        with lock:
            return unlocked(self, *args, **kwargs)

    monkeypatch.setattr(mongomock.Collection, "find_one_and_update", atomic)
    service = TicketService()

    with ThreadPoolExecutor(max_workers=8) as pool:
        tickets = list(pool.map(lambda _: create(service, requester, "Password Reset"), range(20)))

    numbers = [parse_ticket_number(t.ticket_number) for t in tickets]
    assert len(set(numbers)) == 20
    assert sorted(numbers) == list(range(1, 21))


# =============================================================================
# Creation and approvals
# =============================================================================

def test_draft_is_not_submitted(requester, l1_only_config):
    ticket = create(TicketService(), requester, "Laptop Request", submit=False)

    assert ticket.status == TicketStatus.DRAFT
    assert [h.action for h in ticket.history] == ["created"]


def test_blank_subject_rejected(requester):
    with pytest.raises(ValidationError):
        TicketService().create_ticket(HighLevelCategory.IT, "Laptop Request", "  ", "desc", requester)


def test_single_level_flow_routes_to_configured_queue(requester, l1_approver, l1_only_config):
    service = TicketService()
    ticket = create(service, requester, "Laptop Request")
    assert ticket.status == TicketStatus.PENDING_APPROVAL_L1

    assert [t.ticket_number for t in service.list_pending_approvals(l1_approver)] == [ticket.ticket_number]

    approved = service.approve(ticket.ticket_number, l1_approver, comments="ok")

    assert approved.status == TicketStatus.ROUTED
    assert approved.processing.specialist_queue == "Hardware Team"
    assert approved.approval.status == ApprovalStatus.APPROVED
    assert approved.approval.record(2) is None
    assert approved.version == ticket.version + 1
    assert service.list_pending_approvals(l1_approver) == []
    assert [t.ticket_number for t in service.list_approval_history(l1_approver)] == [ticket.ticket_number]


def test_two_level_flow(requester, l1_approver, l2_approver, two_level_config):
    service = TicketService()
    ticket = create(service, requester, "Software License")

    assert service.list_pending_approvals(l2_approver) == []
    ticket = service.approve(ticket.ticket_number, l1_approver)
    assert ticket.status == TicketStatus.PENDING_APPROVAL_L2
    assert len(service.list_pending_approvals(l2_approver)) == 1

    ticket = service.approve(ticket.ticket_number, l2_approver)
    assert ticket.status == TicketStatus.ROUTED
    assert ticket.processing.specialist_queue == "Software Team"


def test_unconfigured_subcategory_bypasses_approval(requester):
    ticket = create(TicketService(), requester, "Something Unusual")

    assert ticket.status == TicketStatus.ROUTED
    assert ticket.approval.bypassed is True
    assert ticket.processing.specialist_queue == "IT"


def test_rejection_is_final(requester, l1_approver, two_level_config):
    service = TicketService()
    ticket = create(service, requester, "Software License")

    rejected = service.reject(ticket.ticket_number, l1_approver, comments="Use the free tier")

    assert rejected.status == TicketStatus.REJECTED
    assert rejected.approval.record(2) is None
    with pytest.raises(InvalidStateError):
        service.approve(ticket.ticket_number, l1_approver)


def test_stale_version_is_refused(requester, l1_approver, l1_only_config):
    service = TicketService()
    ticket = create(service, requester, "Laptop Request")

    with pytest.raises(ConcurrencyError):
        service.approve(ticket.ticket_number, l1_approver, expected_version=ticket.version - 1)

    assert service.get_ticket(ticket.ticket_number).status == TicketStatus.PENDING_APPROVAL_L1


def test_unknown_ticket(requester):
    with pytest.raises(TicketNotFoundError):
        TicketService().cancel("TKT9999", requester)


# =============================================================================
# Fulfilment
# =============================================================================

def test_full_fulfilment_flow(requester, specialist, no_approval_config):
    service = TicketService()
    ticket = create(service, requester, "Password Reset")
    assert ticket.processing.specialist_queue == "Service Desk"

    resolved = work_to_resolved(service, ticket.ticket_number, specialist)
    assert resolved.status == TicketStatus.RESOLVED
    assert resolved.resolution.notes == "Done"

    closed = service.close(ticket.ticket_number, specialist, notes="Confirmed with user")
    assert closed.status == TicketStatus.CLOSED
    assert closed.closing_reason == ClosingReason.IT_SPECIALIST_CLOSURE

    actions = [h.action for h in closed.history]
    assert actions == ["created", "submitted", "assigned", "work_started", "resolved", "closed"]


def test_get_ticket_view(requester, specialist, no_approval_config):
    service = TicketService()
    ticket = create(service, requester, "Password Reset")
    service.assign(ticket.ticket_number, specialist)

    stored, timeline, history, events = service.get_ticket_view(ticket.ticket_number)

    assert stored.status == TicketStatus.ASSIGNED
    assert history[0].action == "assigned"
    assert {s.key for s in timeline} >= {"submitted", "routed", "assigned"}
    assert TicketEvent.START_WORK in events


def test_queue_listing_and_stats(requester, specialist, it_admin, no_approval_config):
    service = TicketService()
    first = create(service, requester, "Password Reset")
    create(service, requester, "Password Reset")
    service.assign(first.ticket_number, specialist)

    queue = service.list_queue(it_admin, HighLevelCategory.IT, specialist_queue="Service Desk")
    assert len(queue) == 2
    assert service.count_queue(it_admin, HighLevelCategory.IT, statuses=[TicketStatus.ROUTED]) == 1

    stats = service.queue_stats(it_admin, HighLevelCategory.IT)
    assert stats[TicketStatus.ROUTED.value] == 1
    assert stats[TicketStatus.ASSIGNED.value] == 1
    assert stats["total"] == 2

    assert [t.ticket_number for t in service.list_assigned(specialist)] == [first.ticket_number]


def test_queue_hidden_from_requesters(requester):
    with pytest.raises(PermissionDeniedError):
        TicketService().list_queue(requester, HighLevelCategory.IT)


def test_specialists_work_only_their_own_module(requester, specialist):
    service = TicketService()
    finance = service.create_ticket(
        high_level_category=HighLevelCategory.FINANCE,
        sub_category="Reimbursement",
        subject="Travel claim",
        description="Client visit",
        actor=requester,
    )
    assert finance.status == TicketStatus.ROUTED

    with pytest.raises(PermissionDeniedError) as exc_info:
        service.assign(finance.ticket_number, specialist)
    with pytest.raises(PermissionDeniedError):
        service.list_queue(specialist, HighLevelCategory.FINANCE)

    assert exc_info.value.details["required_roles"] == ["FINANCE_ADMIN"]
    assert service.get_ticket(finance.ticket_number).status == TicketStatus.ROUTED


def test_my_tickets_search_by_status(requester, no_approval_config):
    service = TicketService()
    create(service, requester, "Password Reset")
    create(service, requester, "Password Reset", submit=False)

    assert service.count_my_tickets(requester) == 2
    drafts = service.list_my_tickets(requester, statuses=[TicketStatus.DRAFT])
    assert len(drafts) == 1


# =============================================================================
# Auto-close
# =============================================================================

def test_auto_close_resolved_tickets(requester, specialist, no_approval_config):
    service = TicketService()
    ticket = create(service, requester, "Password Reset")
    work_to_resolved(service, ticket.ticket_number, specialist)

    assert service.auto_close_stale(older_than_days=5) == []

    closed = service.auto_close_stale(older_than_days=0)

    assert closed == [ticket.ticket_number]
    stored = service.get_ticket(ticket.ticket_number)
    assert stored.status == TicketStatus.AUTO_CLOSED
    assert stored.closing_reason == ClosingReason.AUTO_CLOSED
    assert stored.history[-1].performed_by_id == "system"


def test_auto_close_uses_resolution_time(mongo_db, requester, specialist, no_approval_config):
    service = TicketService()
    ticket = create(service, requester, "Password Reset")
    work_to_resolved(service, ticket.ticket_number, specialist)
    mongo_db["helpdesk_tickets"].update_one(
        {"ticket_number": ticket.ticket_number},
        {"$set": {"resolution.resolved_at": utc_now() - timedelta(days=10)}}
    )

    assert service.auto_close_stale(older_than_days=7) == [ticket.ticket_number]


# =============================================================================
# Notifications
# =============================================================================

def test_transitions_notify_the_right_audience(mongo_db, requester, l1_approver, it_admin, l1_only_config):
    service = TicketService()
    ticket = create(service, requester, "Laptop Request")

    approver_docs = list(mongo_db["notifications"].find({"user_id": l1_approver.employee_id}))
    assert len(approver_docs) == 1
    assert approver_docs[0]["role"] == "L1_APPROVER"
    assert approver_docs[0]["meta"]["action_url"] == "/approver"

    service.approve(ticket.ticket_number, l1_approver)

    queue_docs = list(mongo_db["notifications"].find({"role": "IT_ADMIN", "user_id": None}))
    assert len(queue_docs) == 1
    requester_docs = list(mongo_db["notifications"].find({"user_id": requester.employee_id}))
    assert requester_docs[0]["meta"]["action_url"] == "/helpdesk"


def test_notification_failure_does_not_block_transition(monkeypatch, requester, l1_approver, l1_only_config):
    service = TicketService()

    def broken(notification):
        raise RuntimeError("notification store unavailable")

    monkeypatch.setattr(service.notification_service.repo, "create_notification", broken)

    ticket = create(service, requester, "Laptop Request")
    approved = service.approve(ticket.ticket_number, l1_approver)

    assert approved.status == TicketStatus.ROUTED
