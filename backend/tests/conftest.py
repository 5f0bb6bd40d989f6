"""
Pytest Configuration and Fixtures

Every test runs against a fresh in-memory mongomock database that replaces
the application's MongoDB handle, so services and repositories are
exercised unchanged.
"""

import os
import tempfile

# Settings are read once at import time
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOGS_PATH", os.path.join(tempfile.gettempdir(), "rmg_portal_test_logs"))
os.environ.setdefault("LOG_LEVEL", "WARNING")

import mongomock
import pytest

from rmg_portal.repositories import mongo_client
from rmg_portal.domain.models import ActorContext, ApproverInfo, ApprovalLevelConfig
from rmg_portal.domain.enums import Role, HighLevelCategory
from rmg_portal.services.category_config_service import CategoryConfigService


@pytest.fixture(autouse=True)
def mongo_db(monkeypatch):
    """Fresh mongomock database with the production indexes"""
    client = mongomock.MongoClient(tz_aware=True)
    database = client["rmg_portal_test"]
    monkeypatch.setattr(mongo_client, "_client", client)
    monkeypatch.setattr(mongo_client, "_database", database)
    mongo_client.create_indexes()
    yield database
    client.close()


# =============================================================================
# Actors
# =============================================================================

def make_actor(employee_id: str, name: str, role: Role, department: str = "Engineering") -> ActorContext:
    return ActorContext(
        employee_id=employee_id,
        name=name,
        email=f"{employee_id.lower()}@example.com",
        department=department,
        role=role,
    )


@pytest.fixture
def requester():
    return make_actor("EMP001", "Asha Rao", Role.EMPLOYEE)


@pytest.fixture
def l1_approver():
    return make_actor("MGR001", "Vikram Shah", Role.L1_APPROVER)


@pytest.fixture
def l2_approver():
    return make_actor("DIR001", "Meera Iyer", Role.L2_APPROVER)


@pytest.fixture
def it_admin():
    return make_actor("ITA001", "Ravi Kumar", Role.IT_ADMIN, department="IT")


@pytest.fixture
def specialist():
    return make_actor("ITS001", "Neha Joshi", Role.IT_EMPLOYEE, department="IT")


@pytest.fixture
def other_specialist():
    return make_actor("ITS002", "Arjun Mehta", Role.IT_EMPLOYEE, department="IT")


@pytest.fixture
def project_manager():
    return make_actor("PM001", "Kiran Patel", Role.MANAGER)


@pytest.fixture
def rmg_user():
    return make_actor("RMG001", "Divya Nair", Role.RMG)


@pytest.fixture
def hr_user():
    return make_actor("HR001", "Sunita Das", Role.HR, department="HR")


# =============================================================================
# Category configuration
# =============================================================================

def approver_info(actor: ActorContext) -> ApproverInfo:
    return ApproverInfo(employee_id=actor.employee_id, name=actor.name, email=actor.email)


@pytest.fixture
def l1_only_config(l1_approver):
    """IT / Laptop Request: L1 enabled, L2 and L3 disabled"""
    return CategoryConfigService().create_config(
        high_level_category=HighLevelCategory.IT,
        sub_category="Laptop Request",
        specialist_queue="Hardware Team",
        requires_approval=True,
        approval_levels=[
            ApprovalLevelConfig(level=1, enabled=True, approvers=[approver_info(l1_approver)]),
            ApprovalLevelConfig(level=2, enabled=False),
            ApprovalLevelConfig(level=3, enabled=False),
        ],
    )


@pytest.fixture
def two_level_config(l1_approver, l2_approver):
    """IT / Software License: L1 then L2"""
    return CategoryConfigService().create_config(
        high_level_category=HighLevelCategory.IT,
        sub_category="Software License",
        specialist_queue="Software Team",
        requires_approval=True,
        approval_levels=[
            ApprovalLevelConfig(level=1, enabled=True, approvers=[approver_info(l1_approver)]),
            ApprovalLevelConfig(level=2, enabled=True, approvers=[approver_info(l2_approver)]),
        ],
    )


@pytest.fixture
def no_approval_config():
    """IT / Password Reset: routed straight to the service desk"""
    return CategoryConfigService().create_config(
        high_level_category=HighLevelCategory.IT,
        sub_category="Password Reset",
        specialist_queue="Service Desk",
        requires_approval=False,
    )
