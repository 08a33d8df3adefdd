"""Shared fixtures: a small user directory, a pinned clock and in-memory stores."""

from datetime import datetime, timedelta, timezone

import pytest

from themis_workflow.core.clock import FixedClock
from themis_workflow.models import (
    Actor,
    ChangeRequest,
    ChangeRequestStatus,
    ChangeRequestType,
    Project,
    ProjectStatus,
    UserRole,
)
from themis_workflow.services import (
    InMemoryEntityStore,
    InMemoryKeyValueStore,
    NotificationStore,
    StaticIdentityProvider,
)

ENGINEERING = "dept-eng"
OPERATIONS = "dept-ops"

# Wednesday
NOW = datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)


# =============================================================================
# ACTORS
# =============================================================================


@pytest.fixture
def manager() -> Actor:
    return Actor("u-pm", UserRole.PROJECT_MANAGER, ENGINEERING, "Pat", "Manager")


@pytest.fixture
def sub_pmo() -> Actor:
    return Actor("u-sub", UserRole.SUB_PMO, ENGINEERING, "Sam", "Sub")


@pytest.fixture
def other_sub_pmo() -> Actor:
    return Actor("u-sub-ops", UserRole.SUB_PMO, OPERATIONS, "Olive", "Ops")


@pytest.fixture
def main_pmo() -> Actor:
    return Actor("u-main", UserRole.MAIN_PMO, None, "Max", "Main")


@pytest.fixture
def director() -> Actor:
    return Actor("u-dir", UserRole.DEPARTMENT_DIRECTOR, ENGINEERING, "Dana", "Director")


@pytest.fixture
def other_director() -> Actor:
    return Actor("u-dir-ops", UserRole.DEPARTMENT_DIRECTOR, OPERATIONS, "Drew", "Ops")


@pytest.fixture
def executive() -> Actor:
    return Actor("u-exec", UserRole.EXECUTIVE, None, "Eve", "Exec")


@pytest.fixture
def admin() -> Actor:
    return Actor("u-admin", UserRole.ADMIN, None, "Ada", "Admin")


@pytest.fixture
def team_lead() -> Actor:
    return Actor("u-lead", UserRole.TEAM_LEAD, ENGINEERING, "Lee", "Lead")


@pytest.fixture
def directory(
    manager, sub_pmo, other_sub_pmo, main_pmo, director, other_director, executive, admin, team_lead
) -> list[Actor]:
    return [
        manager, sub_pmo, other_sub_pmo, main_pmo, director,
        other_director, executive, admin, team_lead,
    ]


# =============================================================================
# TIME
# =============================================================================


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


# =============================================================================
# ENTITIES
# =============================================================================


@pytest.fixture
def project(manager) -> Project:
    return Project(
        id="p-1",
        name="Data Platform",
        status=ProjectStatus.PENDING_SUB_PMO,
        department_id=ENGINEERING,
        manager=manager,
        start_date=NOW - timedelta(days=30),
        end_date=NOW + timedelta(days=60),
        budget=20000.0,
    )


@pytest.fixture
def active_project(project) -> Project:
    return Project(
        id="p-2",
        name="Billing Revamp",
        status=ProjectStatus.IN_PROGRESS,
        department_id=ENGINEERING,
        manager=project.manager,
        end_date=NOW + timedelta(days=10),
        budget=10000.0,
    )


@pytest.fixture
def budget_request(manager, active_project) -> ChangeRequest:
    return ChangeRequest(
        id="cr-1",
        project_id=active_project.id,
        title="Increase budget",
        type=ChangeRequestType.BUDGET,
        status=ChangeRequestStatus.PENDING_SUB_PMO,
        department_id=ENGINEERING,
        requested_by=manager,
        new_budget=50000.0,
        created_at=NOW - timedelta(days=1),
    )


# =============================================================================
# COLLABORATORS
# =============================================================================


@pytest.fixture
def entity_store(project, active_project, budget_request) -> InMemoryEntityStore:
    return InMemoryEntityStore([project, active_project, budget_request])


@pytest.fixture
def identity(directory) -> StaticIdentityProvider:
    return StaticIdentityProvider(directory)


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def notification_store(kv) -> NotificationStore:
    return NotificationStore(kv)
