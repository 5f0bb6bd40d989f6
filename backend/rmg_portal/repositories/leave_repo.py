"""Leave Repository - Leave requests and yearly balances"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection
from ..domain.models import LeaveRequest, LeaveBalance
from ..domain.enums import LeaveStatus, LeaveType
from ..domain.errors import LeaveNotFoundError, ConcurrencyError
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class LeaveRepository:
    """Repository for leave requests and balances"""

    def __init__(self):
        self._requests: Collection = get_collection("leave_requests")
        self._balances: Collection = get_collection("leave_balances")

    # =========================================================================
    # Requests
    # =========================================================================

    def create_request(self, leave: LeaveRequest) -> LeaveRequest:
        doc = leave.model_dump()
        doc["_id"] = leave.leave_id
        self._requests.insert_one(doc)
        logger.info(
            f"Created leave request {leave.leave_id}",
            extra={"leave_id": leave.leave_id, "employee_id": leave.employee_id}
        )
        return leave

    def get_request(self, leave_id: str) -> Optional[LeaveRequest]:
        doc = self._requests.find_one({"leave_id": leave_id})
        if doc:
            doc.pop("_id", None)
            return LeaveRequest.model_validate(doc)
        return None

    def get_request_or_raise(self, leave_id: str) -> LeaveRequest:
        leave = self.get_request(leave_id)
        if not leave:
            raise LeaveNotFoundError(f"Leave request {leave_id} not found", details={"leave_id": leave_id})
        return leave

    def transition_request(
        self,
        leave_id: str,
        from_status: LeaveStatus,
        updates: Dict[str, Any]
    ) -> LeaveRequest:
        """Update a request only while it is still in `from_status`"""
        updates["updated_at"] = utc_now()
        result = self._requests.find_one_and_update(
            {"leave_id": leave_id, "status": from_status.value},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            self.get_request_or_raise(leave_id)
            raise ConcurrencyError(
                f"Leave request {leave_id} is no longer {from_status.value}. Please refresh and try again.",
                details={"leave_id": leave_id}
            )
        result.pop("_id", None)
        return LeaveRequest.model_validate(result)

    def list_requests(
        self,
        employee_id: Optional[str] = None,
        manager_id: Optional[str] = None,
        status: Optional[LeaveStatus] = None,
        limit: int = 100
    ) -> List[LeaveRequest]:
        query: Dict[str, Any] = {}
        if employee_id:
            query["employee_id"] = employee_id
        if manager_id:
            query["manager_id"] = manager_id
        if status:
            query["status"] = status.value
        cursor = self._requests.find(query).sort("start_date", DESCENDING).limit(limit)
        requests = []
        for doc in cursor:
            doc.pop("_id", None)
            requests.append(LeaveRequest.model_validate(doc))
        return requests

    # =========================================================================
    # Balances
    # =========================================================================

    def get_or_create_balance(self, employee_id: str, year: int, allocations: Dict[str, float]) -> LeaveBalance:
        """Balance for (employee, year), created from `allocations` on first use"""
        doc = self._balances.find_one({"employee_id": employee_id, "year": year})
        if doc is None:
            balance = LeaveBalance(employee_id=employee_id, year=year, allocations=dict(allocations), used={})
            try:
                self._balances.insert_one(balance.model_dump())
            except DuplicateKeyError:
                # Created concurrently by another request
                pass
            doc = self._balances.find_one({"employee_id": employee_id, "year": year})
        doc.pop("_id", None)
        return LeaveBalance.model_validate(doc)

    def consume(self, employee_id: str, year: int, leave_type: LeaveType, days: float) -> Optional[LeaveBalance]:
        """
        Atomically add `days` to the used amount when enough remains

        Returns None when the balance would go negative.
        """
        key = leave_type.value
        balance = self._balances.find_one({"employee_id": employee_id, "year": year})
        if balance is None:
            return None
        allocated = balance.get("allocations", {}).get(key, 0)
        used = balance.get("used", {}).get(key, 0)
        if used + days > allocated:
            return None

        # Guard on the used value we read so two approvals cannot overspend
        used_filter: Dict[str, Any] = {f"used.{key}": used} if key in balance.get("used", {}) else {f"used.{key}": {"$exists": False}}
        result = self._balances.find_one_and_update(
            {"employee_id": employee_id, "year": year, **used_filter},
            {"$inc": {f"used.{key}": days}},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise ConcurrencyError(
                "Leave balance changed while approving. Please retry.",
                details={"employee_id": employee_id, "year": year}
            )
        result.pop("_id", None)
        return LeaveBalance.model_validate(result)

    def restore(self, employee_id: str, year: int, leave_type: LeaveType, days: float) -> None:
        self._balances.update_one(
            {"employee_id": employee_id, "year": year},
            {"$inc": {f"used.{leave_type.value}": -days}}
        )
