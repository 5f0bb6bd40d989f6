"""Ticket Repository - Data access for helpdesk tickets"""
import re
from typing import Any, Dict, List, Optional
from datetime import datetime
from pymongo.collection import Collection
from pymongo import DESCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import HelpdeskTicket
from ..domain.enums import TicketStatus, HighLevelCategory, PENDING_APPROVAL_STATUSES
from ..domain.errors import TicketNotFoundError, ConcurrencyError
from ..utils.idgen import parse_ticket_number
from ..utils.time import ensure_utc
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TicketRepository:
    """Repository for helpdesk ticket operations"""

    def __init__(self):
        self._tickets: Collection = get_collection("helpdesk_tickets")

    @staticmethod
    def _to_model(doc: Dict[str, Any]) -> HelpdeskTicket:
        doc.pop("_id", None)
        return HelpdeskTicket.model_validate(doc)

    # =========================================================================
    # Ticket CRUD
    # =========================================================================

    def create_ticket(self, ticket: HelpdeskTicket) -> HelpdeskTicket:
        """
        Insert a new ticket

        Raises:
            pymongo.errors.DuplicateKeyError: ticket number already taken
        """
        # Don't use mode="json" - it converts datetime to strings, breaking MongoDB sorting
        doc = ticket.model_dump()
        doc["_id"] = ticket.ticket_number

        self._tickets.insert_one(doc)
        logger.info(
            f"Created ticket: {ticket.ticket_number}",
            extra={"ticket_number": ticket.ticket_number, "status": ticket.status.value}
        )
        return ticket

    def get_ticket(self, ticket_number: str) -> Optional[HelpdeskTicket]:
        """Get ticket by number"""
        doc = self._tickets.find_one({"ticket_number": ticket_number})
        if doc:
            return self._to_model(doc)
        return None

    def get_ticket_or_raise(self, ticket_number: str) -> HelpdeskTicket:
        """Get ticket by number or raise error"""
        ticket = self.get_ticket(ticket_number)
        if not ticket:
            raise TicketNotFoundError(
                f"Ticket {ticket_number} not found",
                details={"ticket_number": ticket_number}
            )
        return ticket

    def save_ticket(self, ticket: HelpdeskTicket, expected_version: int) -> HelpdeskTicket:
        """
        Replace the stored ticket with optimistic concurrency

        The write only lands when the stored version still equals
        `expected_version`; the saved ticket carries version + 1.
        """
        doc = ticket.model_dump()
        doc["version"] = expected_version + 1

        result = self._tickets.find_one_and_update(
            {"ticket_number": ticket.ticket_number, "version": expected_version},
            {"$set": doc},
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            exists = self._tickets.find_one({"ticket_number": ticket.ticket_number}, {"version": 1})
            if exists:
                raise ConcurrencyError(
                    f"Ticket {ticket.ticket_number} was modified. Please refresh and try again.",
                    details={
                        "ticket_number": ticket.ticket_number,
                        "expected_version": expected_version,
                        "current_version": exists.get("version"),
                    }
                )
            raise TicketNotFoundError(f"Ticket {ticket.ticket_number} not found")

        logger.debug(
            f"Saved ticket: {ticket.ticket_number} v{doc['version']}",
            extra={"ticket_number": ticket.ticket_number}
        )
        return self._to_model(result)

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def _build_query(
        requester_id: Optional[str] = None,
        category: Optional[HighLevelCategory] = None,
        statuses: Optional[List[TicketStatus]] = None,
        specialist_queue: Optional[str] = None,
        assigned_to_id: Optional[str] = None,
        search: Optional[str] = None
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if requester_id:
            query["requester.employee_id"] = requester_id
        if category:
            query["high_level_category"] = category.value
        if statuses:
            query["status"] = {"$in": [s.value for s in statuses]}
        if specialist_queue:
            query["processing.specialist_queue"] = specialist_queue
        if assigned_to_id:
            query["assignment.assigned_to_id"] = assigned_to_id
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [
                {"ticket_number": pattern},
                {"subject": pattern},
                {"description": pattern},
            ]
        return query

    def list_tickets(
        self,
        requester_id: Optional[str] = None,
        category: Optional[HighLevelCategory] = None,
        statuses: Optional[List[TicketStatus]] = None,
        specialist_queue: Optional[str] = None,
        assigned_to_id: Optional[str] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[HelpdeskTicket]:
        """List tickets with filters, newest first"""
        query = self._build_query(requester_id, category, statuses, specialist_queue, assigned_to_id, search)
        cursor = self._tickets.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
        return [self._to_model(doc) for doc in cursor]

    def count_tickets(
        self,
        requester_id: Optional[str] = None,
        category: Optional[HighLevelCategory] = None,
        statuses: Optional[List[TicketStatus]] = None,
        specialist_queue: Optional[str] = None,
        assigned_to_id: Optional[str] = None,
        search: Optional[str] = None
    ) -> int:
        query = self._build_query(requester_id, category, statuses, specialist_queue, assigned_to_id, search)
        return self._tickets.count_documents(query)

    def list_pending_approvals(self, approver_id: str) -> List[HelpdeskTicket]:
        """Tickets currently waiting on a level where `approver_id` is an approver"""
        cursor = self._tickets.find({
            "status": {"$in": [s.value for s in PENDING_APPROVAL_STATUSES]},
            "approval.plan.approvers.employee_id": approver_id,
        }).sort("created_at", DESCENDING)

        pending = []
        for doc in cursor:
            ticket = self._to_model(doc)
            level_plan = ticket.approval.level_plan(ticket.status.approval_level)
            if level_plan and level_plan.is_approver(approver_id):
                pending.append(ticket)
        return pending

    def list_decided_by(self, approver_id: str, limit: int = 100) -> List[HelpdeskTicket]:
        """Tickets on which `approver_id` already recorded a decision"""
        cursor = self._tickets.find({
            "approval.levels.approver_id": approver_id,
        }).sort("updated_at", DESCENDING).limit(limit)
        return [self._to_model(doc) for doc in cursor]

    def list_resolved_before(self, cutoff: datetime) -> List[HelpdeskTicket]:
        """Resolved tickets whose resolution is older than `cutoff`"""
        cursor = self._tickets.find({"status": TicketStatus.RESOLVED.value})
        cutoff = ensure_utc(cutoff)
        stale = []
        for doc in cursor:
            ticket = self._to_model(doc)
            resolved_at = ensure_utc(ticket.resolution.resolved_at or ticket.updated_at)
            if resolved_at <= cutoff:
                stale.append(ticket)
        return stale

    def max_ticket_number(self, prefix: str) -> int:
        """Highest numeric suffix among stored ticket numbers, 0 if none"""
        cursor = self._tickets.find(
            {"ticket_number": {"$regex": f"^{re.escape(prefix)}\\d+$"}},
            {"ticket_number": 1}
        )
        highest = 0
        for doc in cursor:
            number = parse_ticket_number(doc["ticket_number"], prefix)
            if number is not None and number > highest:
                highest = number
        return highest
