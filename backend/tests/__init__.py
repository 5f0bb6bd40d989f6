"""
Test Suite

Tests for the RMG portal backend.

Structure:
    tests/
    ├── conftest.py                   # Pytest fixtures (mongomock database, actors, configs)
    ├── test_ticket_machine.py        # State machine transitions
    ├── test_timeline.py              # Approval timeline projection
    ├── test_hierarchy.py             # Reporting-chain validation
    ├── test_*_service.py             # Service layer against mongomock
    ├── test_notifications.py         # Notification inbox
    └── test_api.py                   # HTTP routes and error envelope

To run tests:
    pytest backend/tests/
"""
