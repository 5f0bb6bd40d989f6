"""
Ticket Routes Module

- crud.py: Create, list, queue and detail endpoints
- actions.py: State machine actions (approve, assign, resolve, ...)
"""

from fastapi import APIRouter

from .crud import router as crud_router
from .actions import router as actions_router

router = APIRouter()

# Fixed paths such as /assigned and /queue/... live in crud_router and must
# be registered before the /{ticket_number} routes
router.include_router(crud_router)
router.include_router(actions_router)

__all__ = ["router"]
