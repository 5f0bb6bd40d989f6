"""Service modules - Business logic layer"""
from .ticket_service import TicketService
from .category_config_service import CategoryConfigService
from .notification_service import NotificationService
from .timesheet_service import TimesheetService
from .employee_service import EmployeeService
from .leave_service import LeaveService

__all__ = [
    "TicketService",
    "CategoryConfigService",
    "NotificationService",
    "TimesheetService",
    "EmployeeService",
    "LeaveService",
]
