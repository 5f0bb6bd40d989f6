"""Workflow Engine - Ticket state machine and read-side projections"""
from .ticket_machine import (
    TicketStateMachine, Transition, TransitionPayload, NotificationIntent,
    Audience, SYSTEM_ACTOR, available_events, check_closing_reason
)
from .timeline import build_timeline, history_newest_first, TimelineStep, StepState
from .hierarchy import audit_hierarchy, validate_manager_assignment, HierarchyReport

__all__ = [
    "TicketStateMachine",
    "Transition",
    "TransitionPayload",
    "NotificationIntent",
    "Audience",
    "SYSTEM_ACTOR",
    "available_events",
    "check_closing_reason",
    "build_timeline",
    "history_newest_first",
    "TimelineStep",
    "StepState",
    "audit_hierarchy",
    "validate_manager_assignment",
    "HierarchyReport",
]
