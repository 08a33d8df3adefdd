"""API routes for the current user's notifications."""

from fastapi import APIRouter, HTTPException, status

from ..core.dependencies import ContextDep, CurrentActorDep
from ..schemas import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _get_own(context, actor, notification_id: str):
    notification = context.notifications.get(notification_id)
    # Other users' notifications are reported as missing
    if notification is None or notification.user_id != actor.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return notification


@router.get("", response_model=NotificationListResponse, response_model_by_alias=True)
def list_notifications(context: ContextDep, actor: CurrentActorDep) -> NotificationListResponse:
    """List the caller's notifications in the order they were created."""
    items = [
        NotificationResponse.from_notification(n)
        for n in context.notifications.get_for_user(actor.id)
    ]
    return NotificationListResponse(
        items=items,
        unread_count=sum(1 for n in items if not n.is_read),
    )


@router.get("/unread-count", response_model=UnreadCountResponse, response_model_by_alias=True)
def unread_count(context: ContextDep, actor: CurrentActorDep) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=context.notifications.unread_count(actor.id))


@router.post("/read-all", response_model=MarkAllReadResponse)
def mark_all_read(context: ContextDep, actor: CurrentActorDep) -> MarkAllReadResponse:
    return MarkAllReadResponse(updated=context.notifications.mark_all_read(actor.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse, response_model_by_alias=True)
def mark_read(notification_id: str, context: ContextDep, actor: CurrentActorDep) -> NotificationResponse:
    _get_own(context, actor, notification_id)
    context.notifications.mark_read(notification_id)
    return NotificationResponse.from_notification(context.notifications.get(notification_id))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def dismiss(notification_id: str, context: ContextDep, actor: CurrentActorDep) -> None:
    _get_own(context, actor, notification_id)
    context.notifications.dismiss(notification_id)
