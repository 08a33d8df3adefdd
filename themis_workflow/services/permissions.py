"""Permission policy: pure predicates over roles and department membership.

None of these functions touch state. Department scoping for Sub-PMO edits
is the caller's job (it supplies the candidate set); the predicates only
answer for the role.
"""

from ..models import Actor, ApprovalStage, UserRole

CREATOR_ROLES = frozenset({
    UserRole.ADMIN,
    UserRole.PROJECT_MANAGER,
    UserRole.MAIN_PMO,
    UserRole.SUB_PMO,
})

CHANGE_REQUESTER_ROLES = frozenset({
    UserRole.ADMIN,
    UserRole.PROJECT_MANAGER,
    UserRole.MAIN_PMO,
    UserRole.SUB_PMO,
    UserRole.TEAM_LEAD,
})

# Roles that review at each queue, independent of department
SUB_PMO_QUEUE_ROLES = frozenset({UserRole.MAIN_PMO, UserRole.ADMIN})
MAIN_PMO_QUEUE_ROLES = frozenset({UserRole.MAIN_PMO, UserRole.ADMIN})

ALL_PROJECTS_VIEWER_ROLES = frozenset({
    UserRole.ADMIN,
    UserRole.MAIN_PMO,
    UserRole.EXECUTIVE,
})

DEPARTMENT_VIEWER_ROLES = frozenset({
    UserRole.ADMIN,
    UserRole.MAIN_PMO,
    UserRole.SUB_PMO,
    UserRole.DEPARTMENT_DIRECTOR,
    UserRole.EXECUTIVE,
})


def can_create(role: UserRole | None) -> bool:
    return role in CREATOR_ROLES


def can_edit(role: UserRole | None, is_own: bool) -> bool:
    if role in (UserRole.ADMIN, UserRole.MAIN_PMO):
        return True
    if role == UserRole.SUB_PMO:
        return True
    if role == UserRole.PROJECT_MANAGER:
        return is_own
    return False


def can_approve(role: UserRole | None, is_own: bool = False) -> bool:
    if role in (UserRole.ADMIN, UserRole.MAIN_PMO):
        return True
    if role == UserRole.SUB_PMO:
        return not is_own
    # Executives are view-only
    return False


def can_request_changes(role: UserRole | None) -> bool:
    return role in CHANGE_REQUESTER_ROLES


def same_department(actor: Actor | None, target_department_id: str | None) -> bool:
    """Exact department id match; departments do not inherit from each other."""
    if actor is None or actor.department_id is None or target_department_id is None:
        return False
    return actor.department_id == target_department_id


def can_view_all_projects(role: UserRole | None) -> bool:
    return role in ALL_PROJECTS_VIEWER_ROLES


def can_view_department_projects(role: UserRole | None) -> bool:
    return role in DEPARTMENT_VIEWER_ROLES


def can_take_action(
    stage: ApprovalStage | None,
    role: UserRole | None,
    is_same_department: bool,
) -> bool:
    """Whether ``role`` may act on an item sitting in a reviewer queue."""
    if role is None or role == UserRole.EXECUTIVE:
        return False
    if stage == ApprovalStage.PENDING_SUB_PMO:
        return (role == UserRole.SUB_PMO and is_same_department) or role in SUB_PMO_QUEUE_ROLES
    if stage == ApprovalStage.PENDING_MAIN_PMO:
        return role in MAIN_PMO_QUEUE_ROLES
    return False


def capabilities(
    actor: Actor,
    owner_id: str | None = None,
    department_id: str | None = None,
) -> dict[str, bool]:
    """Summarise every predicate for one actor, optionally against one entity."""
    is_own = owner_id is not None and owner_id == actor.id
    return {
        "can_create": can_create(actor.role),
        "can_edit": can_edit(actor.role, is_own),
        "can_approve": can_approve(actor.role, is_own),
        "can_request_changes": can_request_changes(actor.role),
        "can_view_all_projects": can_view_all_projects(actor.role),
        "can_view_department_projects": can_view_department_projects(actor.role),
        "same_department": same_department(actor, department_id),
    }
