"""
MongoDB access shared by every repository

One process-wide client is created on first use. Repositories only ever
call get_collection(), so tests can swap `_client`/`_database` for an
in-memory database without touching repository code.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None

IndexKeys = Union[str, List[Tuple[str, int]]]

# collection -> [(keys, unique)]
INDEXES: Dict[str, Sequence[Tuple[IndexKeys, bool]]] = {
    "helpdesk_tickets": [
        ("ticket_number", True),
        ([("requester.employee_id", ASCENDING), ("created_at", DESCENDING)], False),
        ([("processing.specialist_queue", ASCENDING), ("status", ASCENDING)], False),
        ([("assignment.assigned_to_id", ASCENDING), ("status", ASCENDING)], False),
        ([("approval.plan.approvers.employee_id", ASCENDING), ("status", ASCENDING)], False),
        ([("status", ASCENDING), ("resolution.resolved_at", ASCENDING)], False),
    ],
    "subcategory_configs": [
        ("config_id", True),
        ([("high_level_category", ASCENDING), ("sub_category", ASCENDING)], True),
    ],
    "timesheet_rows": [
        ("row_id", True),
        ([("employee_id", ASCENDING), ("week_start_date", ASCENDING),
          ("project_id", ASCENDING), ("activity_id", ASCENDING)], True),
        ([("project_id", ASCENDING), ("week_start_date", ASCENDING)], False),
    ],
    "projects": [
        ("project_id", True),
    ],
    "employees": [
        ("employee_id", True),
        ("reporting_manager_id", False),
    ],
    "leave_requests": [
        ("leave_id", True),
        ([("employee_id", ASCENDING), ("start_date", DESCENDING)], False),
        ([("manager_id", ASCENDING), ("status", ASCENDING)], False),
    ],
    "leave_balances": [
        # One balance document per employee and calendar year
        ([("employee_id", ASCENDING), ("year", ASCENDING)], True),
    ],
    "notifications": [
        ("notification_id", True),
        ([("user_id", ASCENDING), ("is_read", ASCENDING), ("created_at", DESCENDING)], False),
        ([("role", ASCENDING), ("created_at", DESCENDING)], False),
    ],
}


def get_client() -> PyMongoClient:
    global _client
    if _client is None:
        client = PyMongoClient(
            settings.mongo_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        try:
            client.admin.command("ping")
        except ConnectionFailure as e:
            logger.error(f"Cannot reach MongoDB at {settings.mongo_uri}: {e}")
            raise
        logger.info(f"Connected to MongoDB at {settings.mongo_uri}")
        _client = client
    return _client


def get_database() -> Database:
    global _database
    if _database is None:
        _database = get_client()[settings.mongo_db]
    return _database


def get_collection(name: str) -> Collection:
    return get_database()[name]


def close_connection() -> None:
    global _client, _database
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _database = None


def create_indexes() -> None:
    """Ensure every index in INDEXES exists; safe to run on each startup"""
    db = get_database()
    for collection, specs in INDEXES.items():
        for keys, unique in specs:
            db[collection].create_index(keys, unique=unique)
    logger.info(f"Indexes ensured on {len(INDEXES)} collections")


def health_check() -> Dict[str, Any]:
    """Ping the database; never raises"""
    try:
        get_database().command("ping")
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {"status": "unhealthy", "database": settings.mongo_db, "error": str(e)}
    return {"status": "healthy", "database": settings.mongo_db}
