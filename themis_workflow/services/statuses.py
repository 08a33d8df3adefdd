"""Status vocabularies and the explicit mapping between them.

Projects and change requests spell their approval statuses the same way
but keep distinct enums. Each entity status maps to exactly one
``ApprovalStage`` (or to ``None`` when the status lives outside the
approval flow), and every stage maps back to exactly one status per
entity kind. The tables are checked for totality at import time.
"""

from enum import Enum

from ..models import ApprovalStage, ChangeRequestStatus, EntityKind, ProjectStatus

EntityStatus = ProjectStatus | ChangeRequestStatus


PROJECT_STAGES: dict[ProjectStatus, ApprovalStage | None] = {
    ProjectStatus.DRAFT: ApprovalStage.DRAFT,
    ProjectStatus.PENDING_SUB_PMO: ApprovalStage.PENDING_SUB_PMO,
    ProjectStatus.APPROVED_BY_SUB_PMO: ApprovalStage.APPROVED_BY_SUB_PMO,
    ProjectStatus.PENDING_MAIN_PMO: ApprovalStage.PENDING_MAIN_PMO,
    ProjectStatus.APPROVED: ApprovalStage.APPROVED,
    ProjectStatus.REJECTED: ApprovalStage.REJECTED,
    ProjectStatus.REJECTED_BY_SUB_PMO: ApprovalStage.REJECTED_BY_SUB_PMO,
    ProjectStatus.CHANGES_REQUESTED: ApprovalStage.CHANGES_REQUESTED,
    ProjectStatus.PLANNING: None,
    ProjectStatus.IN_PROGRESS: None,
    ProjectStatus.ON_HOLD: None,
    ProjectStatus.COMPLETED: None,
    ProjectStatus.CANCELLED: None,
}

CHANGE_REQUEST_STAGES: dict[ChangeRequestStatus, ApprovalStage | None] = {
    ChangeRequestStatus.DRAFT: ApprovalStage.DRAFT,
    ChangeRequestStatus.PENDING_SUB_PMO: ApprovalStage.PENDING_SUB_PMO,
    ChangeRequestStatus.APPROVED_BY_SUB_PMO: ApprovalStage.APPROVED_BY_SUB_PMO,
    ChangeRequestStatus.PENDING_MAIN_PMO: ApprovalStage.PENDING_MAIN_PMO,
    ChangeRequestStatus.APPROVED: ApprovalStage.APPROVED,
    ChangeRequestStatus.REJECTED: ApprovalStage.REJECTED,
    ChangeRequestStatus.REJECTED_BY_SUB_PMO: ApprovalStage.REJECTED_BY_SUB_PMO,
    ChangeRequestStatus.CHANGES_REQUESTED: ApprovalStage.CHANGES_REQUESTED,
    ChangeRequestStatus.WITHDRAWN: None,
}

TERMINAL_STAGES = frozenset({
    ApprovalStage.APPROVED,
    ApprovalStage.REJECTED,
    ApprovalStage.REJECTED_BY_SUB_PMO,
})


def _check_total(table: dict, enum_cls: type[Enum]) -> None:
    missing = set(enum_cls) - set(table)
    if missing:
        names = ", ".join(sorted(m.name for m in missing))
        raise RuntimeError(f"{enum_cls.__name__} has unmapped members: {names}")


def _invert(table: dict, kind: EntityKind) -> dict:
    inverse = {}
    for status, stage in table.items():
        if stage is None:
            continue
        if stage in inverse:
            raise RuntimeError(f"{stage.name} maps to two {kind.value} statuses")
        inverse[stage] = status
    _check_total(inverse, ApprovalStage)
    return inverse


_check_total(PROJECT_STAGES, ProjectStatus)
_check_total(CHANGE_REQUEST_STAGES, ChangeRequestStatus)

STAGE_TO_PROJECT: dict[ApprovalStage, ProjectStatus] = _invert(PROJECT_STAGES, EntityKind.PROJECT)
STAGE_TO_CHANGE_REQUEST: dict[ApprovalStage, ChangeRequestStatus] = _invert(
    CHANGE_REQUEST_STAGES, EntityKind.CHANGE_REQUEST
)


def kind_of(status: EntityStatus) -> EntityKind:
    if isinstance(status, ProjectStatus):
        return EntityKind.PROJECT
    if isinstance(status, ChangeRequestStatus):
        return EntityKind.CHANGE_REQUEST
    raise TypeError(f"Not an entity status: {status!r}")


def to_stage(status: EntityStatus) -> ApprovalStage | None:
    """Approval stage of an entity status, ``None`` if outside the approval flow."""
    if isinstance(status, ProjectStatus):
        return PROJECT_STAGES[status]
    if isinstance(status, ChangeRequestStatus):
        return CHANGE_REQUEST_STAGES[status]
    raise TypeError(f"Not an entity status: {status!r}")


def from_stage(stage: ApprovalStage, kind: EntityKind) -> EntityStatus:
    if kind == EntityKind.PROJECT:
        return STAGE_TO_PROJECT[stage]
    return STAGE_TO_CHANGE_REQUEST[stage]


def translate(status: EntityStatus, kind: EntityKind) -> EntityStatus:
    """Map a status into the other entity's vocabulary.

    Raises ValueError for statuses with no counterpart (e.g. a project's
    IN_PROGRESS, a change request's WITHDRAWN).
    """
    if kind_of(status) == kind:
        return status
    stage = to_stage(status)
    if stage is None:
        raise ValueError(f"{status.value} has no {kind.value} equivalent")
    return from_stage(stage, kind)


def is_terminal(status: EntityStatus) -> bool:
    return to_stage(status) in TERMINAL_STAGES
