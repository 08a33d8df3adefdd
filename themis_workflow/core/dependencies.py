"""FastAPI dependencies: wired services and the current actor."""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from ..jobs.notification_poller import NotificationPoller
from ..models import Actor, UserRole
from ..services.approvals import ApprovalService
from ..services.change_requests import ChangeRequestService
from ..services.collaborators import EntityStore, IdentityProvider
from ..services.notification_store import NotificationStore
from .clock import Clock

logger = logging.getLogger(__name__)


@dataclass
class WorkflowContext:
    """Services wired by the application factory, kept on ``app.state``."""
    entity_store: EntityStore
    identity: IdentityProvider
    clock: Clock
    notifications: NotificationStore
    approvals: ApprovalService
    change_requests: ChangeRequestService
    poller: NotificationPoller


def get_context(request: Request) -> WorkflowContext:
    return request.app.state.workflow


def get_current_actor(
    context: Annotated[WorkflowContext, Depends(get_context)],
    x_actor_id: Annotated[str | None, Header()] = None,
) -> Actor:
    """Resolve the caller from the ``X-Actor-Id`` header.

    Authentication happens upstream; this only looks the id up.
    """
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated. Set X-Actor-Id header.",
        )

    actor = context.identity.get_actor(x_actor_id)
    if actor is None:
        logger.warning(f"Unknown actor id in request: {x_actor_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
        )
    return actor


def require_assigned_role(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    """Reject users whose registration is still awaiting a role."""
    if actor.role == UserRole.PENDING:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account is awaiting role assignment",
        )
    return actor


# Type aliases for cleaner dependency injection
ContextDep = Annotated[WorkflowContext, Depends(get_context)]
CurrentActorDep = Annotated[Actor, Depends(get_current_actor)]
ActiveActorDep = Annotated[Actor, Depends(require_assigned_role)]
