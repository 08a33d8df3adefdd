"""
Approval Status Machine: the two-tier Sub-PMO / Main-PMO review flow.

Transition table (unified stages):

    DRAFT               (any actor, any action)      -> PENDING_SUB_PMO
    PENDING_SUB_PMO     APPROVE / REJECT / REQUEST_CHANGES
                        by same-department SUB_PMO, MAIN_PMO or ADMIN
                                                      -> APPROVED_BY_SUB_PMO / REJECTED_BY_SUB_PMO / CHANGES_REQUESTED
    APPROVED_BY_SUB_PMO (any actor, any action)      -> PENDING_MAIN_PMO
    PENDING_MAIN_PMO    APPROVE / REJECT / REQUEST_CHANGES
                        by MAIN_PMO or ADMIN          -> APPROVED / REJECTED / CHANGES_REQUESTED
    CHANGES_REQUESTED   SUBMIT                        -> PENDING_SUB_PMO

EXECUTIVE is denied everywhere. APPROVED, REJECTED and REJECTED_BY_SUB_PMO
are terminal. Everything else is Denied.

The DRAFT and APPROVED_BY_SUB_PMO edges carry no role guard. Whether that
is a deliberate system-driven advance or a missing check is unresolved;
the table keeps them ungated.
"""

from dataclasses import dataclass, field
from enum import Enum

from ..models import ApprovalAction, ApprovalStage, EntityKind, UserRole
from .permissions import can_take_action
from .statuses import EntityStatus, from_stage, kind_of, to_stage


class DenialReason(str, Enum):
    """Internal diagnostic for a Denied outcome."""
    NOT_PERMITTED = "not_permitted"
    NO_SUCH_TRANSITION = "no_such_transition"


@dataclass(frozen=True)
class Denied:
    """The single refusal outcome of the transition table.

    All Denied values compare equal; ``reason`` is only a diagnostic.
    """
    reason: DenialReason = field(default=DenialReason.NO_SUCH_TRANSITION, compare=False)

    def __bool__(self) -> bool:
        return False


DENIED = Denied()

# Ungated edges: apply whoever acts and whatever the action
_AUTO_ADVANCE: dict[ApprovalStage, ApprovalStage] = {
    ApprovalStage.DRAFT: ApprovalStage.PENDING_SUB_PMO,
    ApprovalStage.APPROVED_BY_SUB_PMO: ApprovalStage.PENDING_MAIN_PMO,
}

# Reviewer queues: guarded by permissions.can_take_action
_REVIEW_EDGES: dict[ApprovalStage, dict[ApprovalAction, ApprovalStage]] = {
    ApprovalStage.PENDING_SUB_PMO: {
        ApprovalAction.APPROVE: ApprovalStage.APPROVED_BY_SUB_PMO,
        ApprovalAction.REJECT: ApprovalStage.REJECTED_BY_SUB_PMO,
        ApprovalAction.REQUEST_CHANGES: ApprovalStage.CHANGES_REQUESTED,
    },
    ApprovalStage.PENDING_MAIN_PMO: {
        ApprovalAction.APPROVE: ApprovalStage.APPROVED,
        ApprovalAction.REJECT: ApprovalStage.REJECTED,
        ApprovalAction.REQUEST_CHANGES: ApprovalStage.CHANGES_REQUESTED,
    },
}

_RESUBMIT_EDGES: dict[ApprovalStage, dict[ApprovalAction, ApprovalStage]] = {
    ApprovalStage.CHANGES_REQUESTED: {
        ApprovalAction.SUBMIT: ApprovalStage.PENDING_SUB_PMO,
    },
}


def compute_next_status(
    current: ApprovalStage,
    actor_role: UserRole | None,
    action: ApprovalAction,
    same_department: bool,
) -> ApprovalStage | Denied:
    """Next stage for ``current`` under (role, action, department match), or Denied.

    Pure and deterministic.
    """
    if actor_role is None or actor_role == UserRole.EXECUTIVE:
        return Denied(DenialReason.NOT_PERMITTED)

    if current in _AUTO_ADVANCE:
        return _AUTO_ADVANCE[current]

    if current in _REVIEW_EDGES:
        edges = _REVIEW_EDGES[current]
        if action not in edges:
            return Denied(DenialReason.NO_SUCH_TRANSITION)
        if not can_take_action(current, actor_role, same_department):
            return Denied(DenialReason.NOT_PERMITTED)
        return edges[action]

    next_stage = _RESUBMIT_EDGES.get(current, {}).get(action)
    if next_stage is None:
        return Denied(DenialReason.NO_SUCH_TRANSITION)
    return next_stage


class ApprovalStatusMachine:
    """The transition table bound to one entity kind's status vocabulary."""

    def __init__(self, kind: EntityKind):
        self.kind = kind

    def compute_next_status(
        self,
        current_status: EntityStatus,
        actor_role: UserRole | None,
        action: ApprovalAction,
        same_department: bool,
    ) -> EntityStatus | Denied:
        if kind_of(current_status) != self.kind:
            raise TypeError(
                f"{type(current_status).__name__} is not a {self.kind.value} status"
            )

        if actor_role is None or actor_role == UserRole.EXECUTIVE:
            return Denied(DenialReason.NOT_PERMITTED)

        stage = to_stage(current_status)
        if stage is None:
            # Outside the approval flow (delivery lifecycle, withdrawn)
            return Denied(DenialReason.NO_SUCH_TRANSITION)

        outcome = compute_next_status(stage, actor_role, action, same_department)
        if isinstance(outcome, Denied):
            return outcome
        return from_stage(outcome, self.kind)


project_machine = ApprovalStatusMachine(EntityKind.PROJECT)
change_request_machine = ApprovalStatusMachine(EntityKind.CHANGE_REQUEST)
