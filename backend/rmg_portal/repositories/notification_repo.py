"""Notification Repository - Data access for the notification bell"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import DESCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import Notification
from ..domain.errors import NotFoundError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)

BROADCAST_ROLE = "all"


class NotificationRepository:
    """
    Repository for role-scoped notifications

    A notification is addressed either to one employee (`user_id`) or to
    everybody holding `role` (`user_id` is None). Role "all" reaches every
    user.
    """

    def __init__(self):
        self._notifications: Collection = get_collection("notifications")

    @staticmethod
    def _visible_to(user_id: Optional[str], role: Optional[str]) -> Dict[str, Any]:
        conditions: List[Dict[str, Any]] = []
        if user_id:
            conditions.append({"user_id": user_id})
        roles = [BROADCAST_ROLE] + ([role] if role else [])
        conditions.append({"user_id": None, "role": {"$in": roles}})
        return {"$or": conditions}

    def create_notification(self, notification: Notification) -> Notification:
        """Create a notification"""
        doc = notification.model_dump()
        doc["_id"] = notification.notification_id

        self._notifications.insert_one(doc)
        logger.info(
            f"Created notification: {notification.title}",
            extra={
                "notification_role": notification.role,
                "employee_id": notification.user_id,
                "ticket_number": notification.meta.get("ticket_number"),
            }
        )
        return notification

    def list_for_user(
        self,
        user_id: Optional[str],
        role: Optional[str],
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 50
    ) -> List[Notification]:
        """Notifications visible to a user, newest first"""
        query = self._visible_to(user_id, role)
        if unread_only:
            query["is_read"] = False

        cursor = self._notifications.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
        notifications = []
        for doc in cursor:
            doc.pop("_id", None)
            notifications.append(Notification.model_validate(doc))
        return notifications

    def unread_count(self, user_id: Optional[str], role: Optional[str]) -> int:
        query = self._visible_to(user_id, role)
        query["is_read"] = False
        return self._notifications.count_documents(query)

    def _one(self, notification_id: str, user_id: Optional[str], role: Optional[str]) -> Dict[str, Any]:
        """Filter for one notification, limited to what the user can see when given"""
        query: Dict[str, Any] = {"notification_id": notification_id}
        if user_id or role:
            query.update(self._visible_to(user_id, role))
        return query

    def mark_read(
        self,
        notification_id: str,
        user_id: Optional[str] = None,
        role: Optional[str] = None
    ) -> Notification:
        result = self._notifications.find_one_and_update(
            self._one(notification_id, user_id, role),
            {"$set": {"is_read": True, "read_at": utc_now()}},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        result.pop("_id", None)
        return Notification.model_validate(result)

    def mark_all_read(self, user_id: Optional[str], role: Optional[str]) -> int:
        """Mark every visible unread notification as read. Returns count updated."""
        query = self._visible_to(user_id, role)
        query["is_read"] = False
        result = self._notifications.update_many(
            query,
            {"$set": {"is_read": True, "read_at": utc_now()}}
        )
        logger.info(f"Marked {result.modified_count} notifications as read", extra={"employee_id": user_id})
        return result.modified_count

    def delete_notification(
        self,
        notification_id: str,
        user_id: Optional[str] = None,
        role: Optional[str] = None
    ) -> bool:
        """Returns True if a notification was deleted"""
        result = self._notifications.delete_one(self._one(notification_id, user_id, role))
        return result.deleted_count > 0
