"""Approval workflow request/response schemas."""

from typing import Any

from pydantic import Field

from ..models import ApprovalAction
from .base import WorkflowBaseModel


class TransitionRequest(WorkflowBaseModel):
    """Request to move a project or change request through review."""

    action: ApprovalAction
    comments: str = Field(default="", max_length=5000)


class WithdrawRequest(WorkflowBaseModel):
    comments: str = Field(default="", max_length=5000)


class TransitionResponse(WorkflowBaseModel):
    from_status: str = Field(alias="fromStatus")
    to_status: str = Field(alias="toStatus")
    review: dict[str, Any]
    entity: dict[str, Any]
    applied: bool = False


class ApplyResponse(WorkflowBaseModel):
    project: dict[str, Any]
    change_request: dict[str, Any] = Field(alias="changeRequest")


class CapabilitiesResponse(WorkflowBaseModel):
    actor_id: str = Field(alias="actorId")
    role: str
    can_create: bool = Field(alias="canCreate")
    can_edit: bool = Field(alias="canEdit")
    can_approve: bool = Field(alias="canApprove")
    can_request_changes: bool = Field(alias="canRequestChanges")
    can_view_all_projects: bool = Field(alias="canViewAllProjects")
    can_view_department_projects: bool = Field(alias="canViewDepartmentProjects")
    same_department: bool = Field(alias="sameDepartment")


class SessionResponse(WorkflowBaseModel):
    active: bool
    changed: bool
