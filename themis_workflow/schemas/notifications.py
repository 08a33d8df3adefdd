"""Notification schemas. Field names follow the camelCase wire shape."""

from datetime import datetime

from pydantic import Field

from ..models import Notification, NotificationType
from .base import WorkflowBaseModel


class NotificationResponse(WorkflowBaseModel):
    id: str
    user_id: str = Field(alias="userId")
    type: NotificationType
    title: str
    message: str
    related_item_id: str | None = Field(default=None, alias="relatedItemId")
    related_item_type: str | None = Field(default=None, alias="relatedItemType")
    is_read: bool = Field(alias="isRead")
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        return cls.model_validate(notification.to_dict())


class NotificationListResponse(WorkflowBaseModel):
    items: list[NotificationResponse]
    unread_count: int = Field(alias="unreadCount")


class UnreadCountResponse(WorkflowBaseModel):
    unread_count: int = Field(alias="unreadCount")


class MarkAllReadResponse(WorkflowBaseModel):
    updated: int
