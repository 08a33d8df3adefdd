"""Domain records and storage models for Themis workflow."""

from .models import (
    # Enums
    ApprovalAction,
    ApprovalStage,
    AssignmentStatus,
    ChangeRequestStatus,
    ChangeRequestType,
    EntityKind,
    MeetingStatus,
    NotificationType,
    ProjectStatus,
    TaskStatus,
    UserRole,
    # Actors
    Actor,
    Department,
    # Review history
    ReviewerSnapshot,
    ReviewRecord,
    # Approvables
    ChangeRequest,
    Project,
    # Calendar & work items
    Assignment,
    Meeting,
    Task,
    WeeklyUpdate,
    # Notifications
    Notification,
    # Helpers
    format_datetime,
    parse_datetime,
)
from .storage import Base, KeyValueEntry

__all__ = [
    # Enums
    "ApprovalAction",
    "ApprovalStage",
    "AssignmentStatus",
    "ChangeRequestStatus",
    "ChangeRequestType",
    "EntityKind",
    "MeetingStatus",
    "NotificationType",
    "ProjectStatus",
    "TaskStatus",
    "UserRole",
    # Actors
    "Actor",
    "Department",
    # Review history
    "ReviewerSnapshot",
    "ReviewRecord",
    # Approvables
    "ChangeRequest",
    "Project",
    # Calendar & work items
    "Assignment",
    "Meeting",
    "Task",
    "WeeklyUpdate",
    # Notifications
    "Notification",
    # Helpers
    "format_datetime",
    "parse_datetime",
    # Storage
    "Base",
    "KeyValueEntry",
]
