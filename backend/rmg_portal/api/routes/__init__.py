"""API Routes module"""
from fastapi import APIRouter

from .tickets import router as tickets_router
from .approvals import router as approvals_router
from .categories import router as categories_router
from .timesheets import router as timesheets_router
from .employees import router as employees_router
from .leaves import router as leaves_router
from .notifications import router as notifications_router

# Main API router
api_router = APIRouter()

api_router.include_router(tickets_router, prefix="/tickets", tags=["Helpdesk Tickets"])
api_router.include_router(approvals_router, prefix="/approvals", tags=["Approvals"])
api_router.include_router(categories_router, prefix="/categories", tags=["Category Configuration"])
api_router.include_router(timesheets_router, prefix="/timesheets", tags=["Timesheets"])
api_router.include_router(employees_router, prefix="/employees", tags=["Employees"])
api_router.include_router(leaves_router, prefix="/leaves", tags=["Leaves"])
api_router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])

__all__ = ["api_router"]
