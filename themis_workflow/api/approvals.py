"""API routes for approval transitions and change request operations."""

from fastapi import APIRouter, Query

from ..core.dependencies import ActiveActorDep, ContextDep
from ..models import EntityKind
from ..schemas import (
    ApplyResponse,
    CapabilitiesResponse,
    TransitionRequest,
    TransitionResponse,
    WithdrawRequest,
)
from ..services import OperationResult, TransitionOutcome
from ..services.permissions import capabilities

router = APIRouter(tags=["approvals"])


# =============================================================================
# HELPERS
# =============================================================================


def unwrap(result: OperationResult):
    """Return the result's data or raise its error for the exception handler."""
    if not result.success:
        raise result.error
    return result.data


def outcome_to_response(outcome: TransitionOutcome) -> TransitionResponse:
    return TransitionResponse(
        from_status=outcome.from_status,
        to_status=outcome.to_status,
        review=outcome.review.to_dict(),
        entity=outcome.entity.to_dict(),
        applied=outcome.applied,
    )


# =============================================================================
# TRANSITIONS
# =============================================================================


@router.post(
    "/projects/{project_id}/transitions",
    response_model=TransitionResponse,
    response_model_by_alias=True,
)
def transition_project(
    project_id: str,
    data: TransitionRequest,
    context: ContextDep,
    actor: ActiveActorDep,
) -> TransitionResponse:
    result = context.approvals.transition(
        EntityKind.PROJECT, project_id, actor, data.action, data.comments
    )
    return outcome_to_response(unwrap(result))


@router.post(
    "/change-requests/{change_request_id}/transitions",
    response_model=TransitionResponse,
    response_model_by_alias=True,
)
def transition_change_request(
    change_request_id: str,
    data: TransitionRequest,
    context: ContextDep,
    actor: ActiveActorDep,
) -> TransitionResponse:
    result = context.approvals.transition(
        EntityKind.CHANGE_REQUEST, change_request_id, actor, data.action, data.comments
    )
    return outcome_to_response(unwrap(result))


# =============================================================================
# CHANGE REQUESTS
# =============================================================================


@router.post(
    "/change-requests/{change_request_id}/apply",
    response_model=ApplyResponse,
    response_model_by_alias=True,
)
def apply_change_request(
    change_request_id: str,
    context: ContextDep,
    actor: ActiveActorDep,
) -> ApplyResponse:
    """Apply an approved change request that was not applied on approval."""
    applied = unwrap(context.change_requests.apply(change_request_id, actor))
    return ApplyResponse(
        project=applied.project.to_dict(),
        change_request=applied.change_request.to_dict(),
    )


@router.post("/change-requests/{change_request_id}/withdraw")
def withdraw_change_request(
    change_request_id: str,
    data: WithdrawRequest,
    context: ContextDep,
    actor: ActiveActorDep,
) -> dict:
    withdrawn = unwrap(context.change_requests.withdraw(change_request_id, actor, data.comments))
    return withdrawn.to_dict()


# =============================================================================
# CAPABILITIES
# =============================================================================


@router.get("/me/capabilities", response_model=CapabilitiesResponse, response_model_by_alias=True)
def my_capabilities(
    context: ContextDep,
    actor: ActiveActorDep,
    owner_id: str | None = Query(default=None, alias="ownerId"),
    department_id: str | None = Query(default=None, alias="departmentId"),
) -> CapabilitiesResponse:
    """What the caller may do, optionally against one entity's owner and department."""
    return CapabilitiesResponse(
        actor_id=actor.id,
        role=actor.role.value,
        **capabilities(actor, owner_id=owner_id, department_id=department_id),
    )
