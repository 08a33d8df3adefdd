"""Pydantic schemas for API request/response validation."""

from .base import ErrorDetail, ErrorResponse, WorkflowBaseModel
from .notifications import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from .workflow import (
    ApplyResponse,
    CapabilitiesResponse,
    SessionResponse,
    TransitionRequest,
    TransitionResponse,
    WithdrawRequest,
)

__all__ = [
    # Base
    "WorkflowBaseModel",
    "ErrorDetail",
    "ErrorResponse",
    # Notifications
    "NotificationResponse",
    "NotificationListResponse",
    "UnreadCountResponse",
    "MarkAllReadResponse",
    # Workflow
    "TransitionRequest",
    "WithdrawRequest",
    "TransitionResponse",
    "ApplyResponse",
    "CapabilitiesResponse",
    "SessionResponse",
]
