"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection, create_indexes, health_check
from .ticket_repo import TicketRepository
from .counter_repo import CounterRepository
from .category_config_repo import CategoryConfigRepository
from .notification_repo import NotificationRepository
from .timesheet_repo import TimesheetRepository
from .employee_repo import EmployeeRepository
from .leave_repo import LeaveRepository

__all__ = [
    "get_database",
    "get_collection",
    "create_indexes",
    "health_check",
    "TicketRepository",
    "CounterRepository",
    "CategoryConfigRepository",
    "NotificationRepository",
    "TimesheetRepository",
    "EmployeeRepository",
    "LeaveRepository",
]
