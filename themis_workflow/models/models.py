"""Domain records for the approval workflow and notification engine.

Entities are immutable snapshots supplied by the external entity store.
Every mutation produces a new record through ``dataclasses.replace`` so a
transition can be computed in full before anything is written.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Any
from uuid import uuid4


# =============================================================================
# ENUMS
# =============================================================================


class UserRole(str, PyEnum):
    PROJECT_MANAGER = "PROJECT_MANAGER"
    SUB_PMO = "SUB_PMO"
    MAIN_PMO = "MAIN_PMO"
    DEPARTMENT_DIRECTOR = "DEPARTMENT_DIRECTOR"
    EXECUTIVE = "EXECUTIVE"
    ADMIN = "ADMIN"
    TEAM_LEAD = "TEAM_LEAD"
    PENDING = "PENDING"  # Registered, role not yet assigned


class ApprovalStage(str, PyEnum):
    """Unified approval vocabulary shared by every approvable entity."""
    DRAFT = "DRAFT"
    PENDING_SUB_PMO = "PENDING_SUB_PMO"
    APPROVED_BY_SUB_PMO = "APPROVED_BY_SUB_PMO"
    PENDING_MAIN_PMO = "PENDING_MAIN_PMO"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REJECTED_BY_SUB_PMO = "REJECTED_BY_SUB_PMO"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"


class ProjectStatus(str, PyEnum):
    # Approval flow
    DRAFT = "DRAFT"
    PENDING_SUB_PMO = "PENDING_SUB_PMO"
    APPROVED_BY_SUB_PMO = "APPROVED_BY_SUB_PMO"
    PENDING_MAIN_PMO = "PENDING_MAIN_PMO"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REJECTED_BY_SUB_PMO = "REJECTED_BY_SUB_PMO"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    # Delivery lifecycle
    PLANNING = "PLANNING"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ChangeRequestStatus(str, PyEnum):
    DRAFT = "DRAFT"
    PENDING_SUB_PMO = "PENDING_SUB_PMO"
    APPROVED_BY_SUB_PMO = "APPROVED_BY_SUB_PMO"
    PENDING_MAIN_PMO = "PENDING_MAIN_PMO"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REJECTED_BY_SUB_PMO = "REJECTED_BY_SUB_PMO"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    WITHDRAWN = "WITHDRAWN"


class ChangeRequestType(str, PyEnum):
    SCHEDULE = "SCHEDULE"
    BUDGET = "BUDGET"
    SCOPE = "SCOPE"
    RESOURCE = "RESOURCE"
    STATUS = "STATUS"
    CLOSURE = "CLOSURE"
    OTHER = "OTHER"


class ApprovalAction(str, PyEnum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REQUEST_CHANGES = "REQUEST_CHANGES"
    SUBMIT = "SUBMIT"
    WITHDRAW = "WITHDRAW"  # Requester pulls a change request; never a table action


class EntityKind(str, PyEnum):
    PROJECT = "project"
    CHANGE_REQUEST = "change_request"


class NotificationType(str, PyEnum):
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_DUE_SOON = "TASK_DUE_SOON"
    TASK_OVERDUE = "TASK_OVERDUE"
    APPROVAL_NEEDED = "APPROVAL_NEEDED"
    CHANGE_REQUEST_APPROVED = "CHANGE_REQUEST_APPROVED"
    CHANGE_REQUEST_REJECTED = "CHANGE_REQUEST_REJECTED"
    UPDATE_DUE = "UPDATE_DUE"
    GENERAL = "GENERAL"


class TaskStatus(str, PyEnum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    DONE = "DONE"


class AssignmentStatus(str, PyEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class MeetingStatus(str, PyEnum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# =============================================================================
# HELPERS
# =============================================================================


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (or pass through a datetime) as an aware UTC value."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# =============================================================================
# ACTORS
# =============================================================================


@dataclass(frozen=True)
class Department:
    id: str
    name: str


@dataclass(frozen=True)
class Actor:
    """A user as seen by the workflow: identity, role and home department."""
    id: str
    role: UserRole
    department_id: str | None = None
    first_name: str = ""
    last_name: str = ""

    @property
    def name(self) -> str:
        full = f"{self.first_name} {self.last_name}".strip()
        return full or self.id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role.value,
            "departmentId": self.department_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Actor":
        department = data.get("department")
        department_id = data.get("departmentId")
        if department_id is None and isinstance(department, dict):
            department_id = department.get("id")
        return cls(
            id=str(data["id"]),
            role=UserRole(data.get("role", UserRole.PENDING.value)),
            department_id=department_id,
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
        )


def _optional_actor(data: dict | None) -> Actor | None:
    return Actor.from_dict(data) if data else None


# =============================================================================
# REVIEW HISTORY
# =============================================================================


@dataclass(frozen=True)
class ReviewerSnapshot:
    """Reviewer identity frozen at the time of the review."""
    id: str
    name: str
    role: UserRole

    @classmethod
    def of(cls, actor: Actor) -> "ReviewerSnapshot":
        return cls(id=actor.id, name=actor.name, role=actor.role)


@dataclass(frozen=True)
class ReviewRecord:
    id: str
    action: ApprovalAction
    comments: str
    timestamp: datetime
    reviewer: ReviewerSnapshot
    from_status: str | None = None
    to_status: str | None = None

    @classmethod
    def create(
        cls,
        actor: Actor,
        action: ApprovalAction,
        comments: str,
        timestamp: datetime,
        from_status: str | None = None,
        to_status: str | None = None,
    ) -> "ReviewRecord":
        return cls(
            id=str(uuid4()),
            action=action,
            comments=comments,
            timestamp=timestamp,
            reviewer=ReviewerSnapshot.of(actor),
            from_status=from_status,
            to_status=to_status,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action.value,
            "comments": self.comments,
            "timestamp": format_datetime(self.timestamp),
            "reviewer": {
                "id": self.reviewer.id,
                "name": self.reviewer.name,
                "role": self.reviewer.role.value,
            },
            "fromStatus": self.from_status,
            "toStatus": self.to_status,
        }


# =============================================================================
# APPROVABLE ENTITIES
# =============================================================================


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    status: ProjectStatus
    department_id: str | None
    manager: Actor | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    budget: float | None = None
    description: str = ""
    review_history: tuple[ReviewRecord, ...] = ()  # Newest first

    kind = EntityKind.PROJECT

    @property
    def owner(self) -> Actor | None:
        return self.manager

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "departmentId": self.department_id,
            "projectManager": self.manager.to_dict() if self.manager else None,
            "startDate": format_datetime(self.start_date),
            "endDate": format_datetime(self.end_date),
            "budget": self.budget,
            "description": self.description,
            "reviewHistory": [r.to_dict() for r in self.review_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        department = data.get("department")
        department_id = data.get("departmentId")
        if department_id is None and isinstance(department, dict):
            department_id = department.get("id")
        budget = data.get("budget")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            status=ProjectStatus(data.get("status", ProjectStatus.DRAFT.value)),
            department_id=department_id,
            manager=_optional_actor(data.get("projectManager")),
            start_date=parse_datetime(data.get("startDate")),
            end_date=parse_datetime(data.get("endDate")),
            budget=float(budget) if budget is not None else None,
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class ChangeRequest:
    id: str
    project_id: str
    title: str
    type: ChangeRequestType
    status: ChangeRequestStatus
    department_id: str | None
    requested_by: Actor
    description: str = ""
    # Type-specific payload
    new_end_date: datetime | None = None
    new_budget: float | None = None
    new_status: ProjectStatus | None = None
    scope_changes: str | None = None
    resource_changes: str | None = None
    closure_justification: str | None = None
    # Implementation tracking
    implemented: bool = False
    implemented_at: datetime | None = None
    # Review outcome
    approved_by: ReviewerSnapshot | None = None
    approved_at: datetime | None = None
    rejected_by: ReviewerSnapshot | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    changes_requested: str | None = None
    created_at: datetime | None = None
    review_history: tuple[ReviewRecord, ...] = ()  # Newest first

    kind = EntityKind.CHANGE_REQUEST

    @property
    def owner(self) -> Actor:
        return self.requested_by

    def to_dict(self) -> dict:
        def reviewer(snapshot: ReviewerSnapshot | None) -> dict | None:
            if snapshot is None:
                return None
            return {"id": snapshot.id, "name": snapshot.name, "role": snapshot.role.value}

        return {
            "id": self.id,
            "projectId": self.project_id,
            "title": self.title,
            "type": self.type.value,
            "status": self.status.value,
            "departmentId": self.department_id,
            "requestedBy": self.requested_by.to_dict(),
            "description": self.description,
            "newEndDate": format_datetime(self.new_end_date),
            "newBudget": self.new_budget,
            "newStatus": self.new_status.value if self.new_status else None,
            "scopeChanges": self.scope_changes,
            "resourceChanges": self.resource_changes,
            "closureJustification": self.closure_justification,
            "implemented": self.implemented,
            "implementedAt": format_datetime(self.implemented_at),
            "approvedBy": reviewer(self.approved_by),
            "approvedAt": format_datetime(self.approved_at),
            "rejectedBy": reviewer(self.rejected_by),
            "rejectedAt": format_datetime(self.rejected_at),
            "rejectionReason": self.rejection_reason,
            "changesRequested": self.changes_requested,
            "createdAt": format_datetime(self.created_at),
            "reviewHistory": [r.to_dict() for r in self.review_history],
        }


# =============================================================================
# CALENDAR & WORK ITEMS
# =============================================================================


@dataclass(frozen=True)
class Task:
    id: str
    project_id: str
    title: str
    status: TaskStatus
    assignee: Actor | None = None
    assigned_by: Actor | None = None
    due_date: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        return cls(
            id=str(data["id"]),
            project_id=str(data.get("projectId", "")),
            title=data.get("title", ""),
            status=TaskStatus(data.get("status", TaskStatus.TODO.value)),
            assignee=_optional_actor(data.get("assignee")),
            assigned_by=_optional_actor(data.get("assignedBy")),
            due_date=parse_datetime(data.get("dueDate")),
        )


@dataclass(frozen=True)
class Assignment:
    id: str
    title: str
    status: AssignmentStatus
    assigned_to: Actor | None
    assigned_by: Actor | None = None
    due_date: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Assignment":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            status=AssignmentStatus(data.get("status", AssignmentStatus.PENDING.value)),
            assigned_to=_optional_actor(data.get("assignedTo")),
            assigned_by=_optional_actor(data.get("assignedBy")),
            due_date=parse_datetime(data.get("dueDate")),
        )


@dataclass(frozen=True)
class Meeting:
    id: str
    title: str
    start_time: datetime
    status: MeetingStatus
    organizer: Actor | None = None
    attendees: tuple[Actor, ...] = ()
    end_time: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Meeting":
        attendees = data.get("attendees") or data.get("participants") or []
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            start_time=parse_datetime(data["startTime"]),
            end_time=parse_datetime(data.get("endTime")),
            status=MeetingStatus(data.get("status", MeetingStatus.SCHEDULED.value)),
            organizer=_optional_actor(data.get("organizer")),
            attendees=tuple(Actor.from_dict(a) for a in attendees),
        )


@dataclass(frozen=True)
class WeeklyUpdate:
    """A project manager's weekly status report, keyed by ISO week."""
    id: str
    project_id: str
    week_number: int
    week_year: int
    submitted_by_id: str | None = None
    submitted_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "WeeklyUpdate":
        submitted_by = data.get("submittedBy")
        return cls(
            id=str(data["id"]),
            project_id=str(data["projectId"]),
            week_number=int(data["weekNumber"]),
            week_year=int(data["weekYear"]),
            submitted_by_id=submitted_by.get("id") if isinstance(submitted_by, dict) else submitted_by,
            submitted_at=parse_datetime(data.get("submittedAt")),
        )


# =============================================================================
# NOTIFICATIONS
# =============================================================================


@dataclass(frozen=True)
class Notification:
    """A notification record. Only ``is_read`` ever changes, via replacement."""
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    created_at: datetime
    related_item_id: str | None = None
    related_item_type: str | None = None
    is_read: bool = False
    # Internal idempotency key (rule, entity, window); never part of the wire shape
    dedupe_key: str | None = field(default=None, compare=False)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "isRead": self.is_read,
            "createdAt": format_datetime(self.created_at),
        }
        if self.related_item_id:
            data["relatedItemId"] = self.related_item_id
        if self.related_item_type:
            data["relatedItemType"] = self.related_item_type
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Notification":
        return cls(
            id=data["id"],
            user_id=data["userId"],
            type=NotificationType(data["type"]),
            title=data.get("title", ""),
            message=data.get("message", ""),
            created_at=parse_datetime(data["createdAt"]),
            related_item_id=data.get("relatedItemId") or None,
            related_item_type=data.get("relatedItemType") or None,
            is_read=bool(data.get("isRead", False)),
        )
