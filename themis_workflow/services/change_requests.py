"""
Change Request Lifecycle: creation, withdrawal and apply effects.

A change request runs through the same approval table as a project (see
``status_machine.change_request_machine``). Once it is APPROVED its
type-specific effect is applied to the project exactly once:

    SCHEDULE  -> project.end_date = new_end_date
    BUDGET    -> project.budget   = new_budget
    STATUS    -> project.status   = new_status
    CLOSURE   -> project.status   = COMPLETED
    SCOPE, RESOURCE, OTHER -> no project mutation

``implemented`` / ``implemented_at`` record the apply; a second apply is an
ApplyConflict and leaves the project untouched.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, ValidationError

from ..core.clock import Clock, SystemClock
from ..models import (
    Actor,
    ApprovalAction,
    ChangeRequest,
    ChangeRequestStatus,
    ChangeRequestType,
    EntityKind,
    Project,
    ProjectStatus,
    ReviewRecord,
)
from .collaborators import EntityStore
from .errors import (
    ApplyConflict,
    AuthorizationDenied,
    InvalidTransition,
    NotFound,
    OperationResult,
    PersistenceFailed,
    ValidationFailed,
)
from .permissions import MAIN_PMO_QUEUE_ROLES, can_request_changes
from .statuses import is_terminal

logger = logging.getLogger(__name__)


# Payload field each type needs before it can be applied
REQUIRED_PAYLOAD: dict[ChangeRequestType, str] = {
    ChangeRequestType.SCHEDULE: "new_end_date",
    ChangeRequestType.BUDGET: "new_budget",
    ChangeRequestType.STATUS: "new_status",
}


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass(frozen=True)
class AppliedChange:
    """Result of applying a change request: both records after the apply."""
    project: Project
    change_request: ChangeRequest
    project_patch: dict[str, Any]


# =============================================================================
# PURE OPERATIONS
# =============================================================================


class ChangeRequestPayload(BaseModel):
    """Type-specific fields a change request may carry."""

    model_config = ConfigDict(extra="forbid")

    new_end_date: AwareDatetime | None = None
    new_budget: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    new_status: ProjectStatus | None = None
    scope_changes: str | None = None
    resource_changes: str | None = None
    closure_justification: str | None = None


def describe_validation_error(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


def validate_payload(cr_type: ChangeRequestType, payload: dict[str, Any]) -> OperationResult:
    """Check ``payload`` against ``cr_type``; data is the coerced field dict."""
    try:
        parsed = ChangeRequestPayload.model_validate(payload)
    except ValidationError as e:
        return OperationResult.fail(ValidationFailed(describe_validation_error(e)))

    required = REQUIRED_PAYLOAD.get(cr_type)
    if required is not None and getattr(parsed, required) is None:
        return OperationResult.fail(
            ValidationFailed(f"{cr_type.value} change requests require {required}")
        )

    return OperationResult.ok(parsed.model_dump(exclude_unset=True))


def create_change_request(
    project: Project,
    requester: Actor,
    cr_type: ChangeRequestType,
    title: str,
    now: datetime,
    description: str = "",
    **payload,
) -> OperationResult:
    """Build a new change request, already queued for Sub-PMO review."""
    if not can_request_changes(requester.role):
        return OperationResult.fail(
            AuthorizationDenied(f"{requester.role.value} may not request changes")
        )

    if not title or not title.strip():
        return OperationResult.fail(ValidationFailed("title is required"))

    checked = validate_payload(cr_type, payload)
    if not checked.success:
        return checked

    change_request = ChangeRequest(
        id=str(uuid4()),
        project_id=project.id,
        title=title.strip(),
        type=cr_type,
        status=ChangeRequestStatus.PENDING_SUB_PMO,
        department_id=project.department_id,
        requested_by=requester,
        description=description,
        created_at=now,
        **checked.data,
    )

    return OperationResult.ok(change_request)


def withdraw_change_request(
    change_request: ChangeRequest,
    actor: Actor,
    now: datetime,
    comments: str = "",
) -> OperationResult:
    """Requester pulls a change request that is still under review."""
    if actor.id != change_request.requested_by.id:
        return OperationResult.fail(
            AuthorizationDenied("Only the requester can withdraw a change request")
        )

    status = change_request.status
    if status == ChangeRequestStatus.WITHDRAWN or is_terminal(status):
        return OperationResult.fail(
            InvalidTransition(f"Cannot withdraw a change request in {status.value}")
        )

    record = ReviewRecord.create(
        actor,
        ApprovalAction.WITHDRAW,
        comments,
        now,
        from_status=status.value,
        to_status=ChangeRequestStatus.WITHDRAWN.value,
    )
    return OperationResult.ok(
        replace(
            change_request,
            status=ChangeRequestStatus.WITHDRAWN,
            review_history=(record,) + change_request.review_history,
        )
    )


def project_patch_for(change_request: ChangeRequest) -> dict[str, Any]:
    """Project fields the change request's type mutates."""
    cr_type = change_request.type
    if cr_type == ChangeRequestType.SCHEDULE:
        return {"end_date": change_request.new_end_date}
    if cr_type == ChangeRequestType.BUDGET:
        return {"budget": change_request.new_budget}
    if cr_type == ChangeRequestType.STATUS:
        return {"status": change_request.new_status}
    if cr_type == ChangeRequestType.CLOSURE:
        return {"status": ProjectStatus.COMPLETED}
    # SCOPE / RESOURCE / OTHER have no defined project effect
    return {}


def apply_change_request(
    change_request: ChangeRequest,
    project: Project,
    now: datetime,
) -> OperationResult:
    """Compute the project and change request after applying ``change_request``.

    Nothing is written; the caller persists ``AppliedChange`` as one unit.
    """
    if change_request.status != ChangeRequestStatus.APPROVED:
        return OperationResult.fail(
            InvalidTransition(
                f"Change request is {change_request.status.value}, only APPROVED requests can be applied"
            )
        )

    if change_request.implemented:
        return OperationResult.fail(
            ApplyConflict(f"Change request {change_request.id} was already applied")
        )

    if change_request.project_id != project.id:
        return OperationResult.fail(
            ValidationFailed(
                f"Change request {change_request.id} belongs to project {change_request.project_id}"
            )
        )

    checked = validate_payload(
        change_request.type,
        {
            "new_end_date": change_request.new_end_date,
            "new_budget": change_request.new_budget,
            "new_status": change_request.new_status,
        },
    )
    if not checked.success:
        return checked

    patch = project_patch_for(change_request)
    return OperationResult.ok(
        AppliedChange(
            project=replace(project, **patch),
            change_request=replace(change_request, implemented=True, implemented_at=now),
            project_patch=patch,
        )
    )


# =============================================================================
# CHANGE REQUEST SERVICE
# =============================================================================


class ChangeRequestService:
    """
    Store-backed change request operations.

    The entity store has no transactions, so multi-record writes are made
    all-or-nothing by compensation: the project is written first and put
    back if the change request write fails.
    """

    def __init__(self, store: EntityStore, clock: Clock | None = None):
        self.store = store
        self.clock = clock or SystemClock()

    def _get(self, kind: EntityKind, entity_id: str):
        result = self.store.get(kind, entity_id)
        if not result.success or result.data is None:
            return None
        return result.data

    def create(
        self,
        project_id: str,
        requester: Actor,
        cr_type: ChangeRequestType,
        title: str,
        description: str = "",
        **payload,
    ) -> OperationResult:
        project = self._get(EntityKind.PROJECT, project_id)
        if project is None:
            return OperationResult.fail(NotFound(f"Project {project_id} not found"))

        result = create_change_request(
            project, requester, cr_type, title, self.clock.now(), description, **payload
        )
        if not result.success:
            return result

        stored = self.store.add(result.data)
        if not stored.success:
            return OperationResult.fail(PersistenceFailed(stored.error))

        logger.info(
            f"Change request {result.data.id} ({cr_type.value}) created for project {project_id} "
            f"by {requester.id}"
        )
        return OperationResult.ok(stored.data)

    def withdraw(self, change_request_id: str, actor: Actor, comments: str = "") -> OperationResult:
        change_request = self._get(EntityKind.CHANGE_REQUEST, change_request_id)
        if change_request is None:
            return OperationResult.fail(NotFound(f"Change request {change_request_id} not found"))

        result = withdraw_change_request(change_request, actor, self.clock.now(), comments)
        if not result.success:
            logger.warning(f"Withdraw of {change_request_id} by {actor.id} refused: {result.error.detail}")
            return result

        withdrawn = result.data
        stored = self.store.update(
            EntityKind.CHANGE_REQUEST,
            change_request_id,
            {"status": withdrawn.status, "review_history": withdrawn.review_history},
        )
        if not stored.success:
            return OperationResult.fail(PersistenceFailed(stored.error))

        logger.info(f"Change request {change_request_id} withdrawn by {actor.id}")
        return OperationResult.ok(stored.data)

    def apply(self, change_request_id: str, actor: Actor | None = None) -> OperationResult:
        """Apply an APPROVED change request to its project.

        ``actor`` None means a system call; otherwise a final-tier reviewer
        (Main-PMO or Admin) is required.
        """
        if actor is not None and actor.role not in MAIN_PMO_QUEUE_ROLES:
            return OperationResult.fail(
                AuthorizationDenied(f"{actor.role.value} may not apply change requests")
            )

        change_request = self._get(EntityKind.CHANGE_REQUEST, change_request_id)
        if change_request is None:
            return OperationResult.fail(NotFound(f"Change request {change_request_id} not found"))

        return self.commit(change_request, {})

    def commit(self, change_request: ChangeRequest, cr_patch: dict[str, Any]) -> OperationResult:
        """Write ``cr_patch`` and the apply effect as one unit.

        ``cr_patch`` is applied to ``change_request`` before the apply is
        computed, so an approval patch that moves the request to APPROVED is
        committed together with its effect.
        """
        pending = replace(change_request, **cr_patch)
        project = self._get(EntityKind.PROJECT, pending.project_id)
        if project is None:
            return OperationResult.fail(NotFound(f"Project {pending.project_id} not found"))

        result = apply_change_request(pending, project, self.clock.now())
        if not result.success:
            if isinstance(result.error, ApplyConflict):
                logger.warning(f"Apply refused for {change_request.id}: already implemented")
            return result
        applied: AppliedChange = result.data

        if applied.project_patch:
            written = self.store.update(EntityKind.PROJECT, project.id, applied.project_patch)
            if not written.success:
                logger.error(f"Apply of {change_request.id} failed writing project {project.id}: {written.error}")
                return OperationResult.fail(PersistenceFailed(written.error))

        final_patch = dict(cr_patch)
        final_patch.update(implemented=True, implemented_at=applied.change_request.implemented_at)
        written = self.store.update(EntityKind.CHANGE_REQUEST, change_request.id, final_patch)
        if not written.success:
            self._rollback_project(project, applied.project_patch)
            return OperationResult.fail(PersistenceFailed(written.error))

        logger.info(
            f"Applied change request {change_request.id} ({change_request.type.value}) "
            f"to project {project.id}"
        )
        return OperationResult.ok(
            AppliedChange(
                project=replace(project, **applied.project_patch),
                change_request=written.data,
                project_patch=applied.project_patch,
            )
        )

    def _rollback_project(self, project: Project, patch: dict[str, Any]) -> None:
        if not patch:
            return
        original = {name: getattr(project, name) for name in patch}
        restored = self.store.update(EntityKind.PROJECT, project.id, original)
        if restored.success:
            logger.error(f"Rolled back project {project.id} after failed change request write")
        else:
            logger.error(f"Rollback of project {project.id} failed: {restored.error}")
