"""
Notification Rule Engine: calendar and lifecycle alerts.

Every rule is a pure function of an entity snapshot and ``now``; rules are
independent and the engine output is their concatenation.

Event rules (called when something happens):
1. New assignment            -> assignee
2. Completion                -> original assigner
3. Approval required         -> approvers whose queue the item entered
4. Approval outcome          -> requester

Scheduled rules (called by the poller every tick):
5. Weekly update deadline    -> each project manager, on the update weekday
6. Missed weekly update      -> escalation chain, after the deadline day
7. Project overdue           -> escalation chain
8. Meeting reminder          -> attendees (+ organizer), (0, 15] minutes before
9. Assignment due reminder   -> assignee, (0, 1] hours before
10. Project deadline reminder -> manager + Sub-PMO / Main-PMO / Director, (23, 24] hours before

Time-windowed rules carry no "last fired" memory: polling more often than
the window width emits the same notification on every tick inside the
window. Each notification is stamped with a ``dedupe_key`` (rule, entity,
window anchor); the engine drops repeats only when deduplication is
switched on.
"""

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import uuid4

from ..models import (
    Actor,
    Assignment,
    AssignmentStatus,
    Meeting,
    MeetingStatus,
    Notification,
    NotificationType,
    Project,
    ProjectStatus,
    Task,
    TaskStatus,
    WeeklyUpdate,
)
from .escalation import EscalationResolver, escalation_resolver

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class RuleEngineConfig:
    """Configuration for rule windows and emission behaviour."""

    # Day of week the weekly update is due (Monday=0 ... Sunday=6)
    weekly_update_weekday: int = 3

    # Meeting reminder window, minutes before start
    meeting_reminder_minutes: int = 15

    # Assignment reminder window, hours before due
    assignment_reminder_hours: int = 1

    # Project deadline reminder fires in (hours - window, hours] before end date
    deadline_reminder_hours: int = 24
    deadline_reminder_window_hours: int = 1

    # Drop notifications already emitted for the same (rule, entity, window)
    deduplicate: bool = False

    @classmethod
    def from_settings(cls, settings) -> "RuleEngineConfig":
        return cls(
            weekly_update_weekday=settings.weekly_update_weekday,
            meeting_reminder_minutes=settings.meeting_reminder_minutes,
            assignment_reminder_hours=settings.assignment_reminder_hours,
            deadline_reminder_hours=settings.deadline_reminder_hours,
            deadline_reminder_window_hours=settings.deadline_reminder_window_hours,
            deduplicate=settings.deduplicate_notifications,
        )


DEFAULT_CONFIG = RuleEngineConfig()


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class RuleSnapshot:
    """Everything the scheduled rules look at during one tick."""
    projects: list[Project] = field(default_factory=list)
    users: list[Actor] = field(default_factory=list)
    meetings: list[Meeting] = field(default_factory=list)
    assignments: list[Assignment] = field(default_factory=list)
    weekly_updates: list[WeeklyUpdate] = field(default_factory=list)


@dataclass
class NotificationBatch:
    """Output of one evaluation pass."""
    notifications: list[Notification] = field(default_factory=list)
    rules_evaluated: int = 0
    errors: list[str] = field(default_factory=list)


def create_notification(
    user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    now: datetime,
    related_item_id: str | None = None,
    related_item_type: str | None = None,
    dedupe_key: str | None = None,
) -> Notification:
    return Notification(
        id=f"notification-{uuid4().hex}",
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        created_at=now,
        related_item_id=related_item_id,
        related_item_type=related_item_type,
        is_read=False,
        dedupe_key=dedupe_key,
    )


def _iso_week_key(now: datetime) -> str:
    iso = now.isocalendar()
    return f"{iso.year}-W{iso.week:02d}"


def _ordinal(day: int) -> str:
    if 11 <= day % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def _format_date(value: datetime) -> str:
    return f"{value:%b} {_ordinal(value.day)}, {value.year}"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


# =============================================================================
# EVENT RULES
# =============================================================================


def new_assignment(item: Task | Assignment, now: datetime) -> list[Notification]:
    """Notify the assignee as soon as a task or assignment is given to them."""
    if isinstance(item, Task):
        assignee, item_type = item.assignee, "Task"
    else:
        assignee, item_type = item.assigned_to, "Assignment"

    if assignee is None:
        return []

    by = f" by {item.assigned_by.name}" if item.assigned_by else ""
    return [
        create_notification(
            assignee.id,
            NotificationType.TASK_ASSIGNED,
            f"New {item_type} assigned to you",
            f"{item.title} has been assigned to you{by}",
            now,
            related_item_id=item.id,
            related_item_type=item_type,
            dedupe_key=f"new_assignment:{item.id}:{assignee.id}",
        )
    ]


def completion_notification(
    item: Task | Assignment,
    previous_status: TaskStatus | AssignmentStatus,
    now: datetime,
) -> list[Notification]:
    """Tell whoever assigned the work that it has just been completed."""
    if isinstance(item, Task):
        assignee, item_type, done = item.assignee, "Task", TaskStatus.DONE
    else:
        assignee, item_type, done = item.assigned_to, "Assignment", AssignmentStatus.COMPLETED

    if assignee is None or item.assigned_by is None:
        return []
    if previous_status == done or item.status != done:
        return []

    return [
        create_notification(
            item.assigned_by.id,
            NotificationType.TASK_ASSIGNED,
            f"{item_type} completed",
            f"{item.title} has been completed by {assignee.name}",
            now,
            related_item_id=item.id,
            related_item_type=item_type,
            dedupe_key=f"completion:{item.id}",
        )
    ]


def approval_required(
    item_id: str,
    item_type: str,
    item_title: str,
    approvers: Iterable[Actor],
    now: datetime,
    queue_entry_id: str | None = None,
) -> list[Notification]:
    """Notify every approver whose queue the item has just entered."""
    return [
        create_notification(
            approver.id,
            NotificationType.APPROVAL_NEEDED,
            f"Approval required: {item_title}",
            f'Your approval is required for {item_type}: "{item_title}"',
            now,
            related_item_id=item_id,
            related_item_type=item_type,
            dedupe_key=f"approval_required:{item_id}:{queue_entry_id or ''}",
        )
        for approver in approvers
    ]


def approval_outcome(
    item_id: str,
    item_type: str,
    item_title: str,
    approved: bool,
    approver_name: str,
    requester_id: str,
    now: datetime,
    decision_id: str | None = None,
) -> list[Notification]:
    """Tell the requester how their request was decided."""
    outcome = "approved" if approved else "rejected"
    notification_type = (
        NotificationType.CHANGE_REQUEST_APPROVED
        if approved
        else NotificationType.CHANGE_REQUEST_REJECTED
    )
    return [
        create_notification(
            requester_id,
            notification_type,
            f"{item_type} {outcome}",
            f'Your {item_type} "{item_title}" has been {outcome} by {approver_name}',
            now,
            related_item_id=item_id,
            related_item_type=item_type,
            dedupe_key=f"approval_outcome:{item_id}:{decision_id or outcome}",
        )
    ]


# =============================================================================
# SCHEDULED RULES
# =============================================================================


def weekly_update_deadline(
    projects: Iterable[Project],
    now: datetime,
    config: RuleEngineConfig = DEFAULT_CONFIG,
) -> list[Notification]:
    """On the update weekday, one reminder per project manager."""
    if now.weekday() != config.weekly_update_weekday:
        return []

    by_manager: dict[str, list[str]] = {}
    for project in projects:
        if project.manager is None:
            continue
        by_manager.setdefault(project.manager.id, []).append(project.id)

    week = _iso_week_key(now)
    notifications = []
    for manager_id, project_ids in by_manager.items():
        notifications.append(
            create_notification(
                manager_id,
                NotificationType.UPDATE_DUE,
                "Weekly update due today",
                f"You have {_plural(len(project_ids), 'project')} that require weekly updates "
                f"to be submitted by the end of today.",
                now,
                dedupe_key=f"weekly_update_deadline:{manager_id}:{week}",
            )
        )
    return notifications


def weekly_deadline_closes_at(now: datetime, config: RuleEngineConfig = DEFAULT_CONFIG) -> datetime:
    """End of the update weekday in ``now``'s ISO week."""
    week_start = (now - timedelta(days=now.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)
    return week_start + timedelta(days=config.weekly_update_weekday + 1)


def missed_weekly_update(
    project: Project,
    weekly_updates: Iterable[WeeklyUpdate],
    users: Iterable[Actor],
    now: datetime,
    config: RuleEngineConfig = DEFAULT_CONFIG,
    resolver: EscalationResolver = escalation_resolver,
) -> list[Notification]:
    """Escalate a project with no update for this ISO week once the deadline day is over."""
    if now < weekly_deadline_closes_at(now, config):
        return []

    iso = now.isocalendar()
    has_update = any(
        u.project_id == project.id and u.week_number == iso.week and u.week_year == iso.year
        for u in weekly_updates
    )
    if has_update:
        return []

    manager = project.manager
    if manager is None or project.department_id is None:
        return []

    title = f"Missed weekly update for {project.name}"
    message = (
        f"Project Manager {manager.name} did not submit the required weekly update "
        f'for project "{project.name}"'
    )
    key = f"missed_weekly_update:{project.id}:{_iso_week_key(now)}"
    return [
        create_notification(
            user.id, NotificationType.UPDATE_DUE, title, message, now,
            related_item_id=project.id, related_item_type="project", dedupe_key=key,
        )
        for user in resolver.resolve_chain(project.department_id, users)
    ]


def project_overdue(
    project: Project,
    users: Iterable[Actor],
    now: datetime,
    resolver: EscalationResolver = escalation_resolver,
) -> list[Notification]:
    """Escalate a project past its end date that is not completed."""
    if project.end_date is None or not now > project.end_date:
        return []
    if project.status == ProjectStatus.COMPLETED:
        return []

    if project.manager is None or project.department_id is None:
        return []

    title = f"Project overdue: {project.name}"
    message = (
        f'Project "{project.name}" is overdue. The due date was '
        f"{_format_date(project.end_date)} and the project is still not completed."
    )
    key = f"project_overdue:{project.id}:{now.date().isoformat()}"
    return [
        create_notification(
            user.id, NotificationType.TASK_OVERDUE, title, message, now,
            related_item_id=project.id, related_item_type="project", dedupe_key=key,
        )
        for user in resolver.resolve_chain(project.department_id, users)
    ]


def meeting_reminder(
    meeting: Meeting,
    now: datetime,
    config: RuleEngineConfig = DEFAULT_CONFIG,
) -> list[Notification]:
    """Remind attendees, and an absent organizer, shortly before a meeting."""
    if meeting.status != MeetingStatus.SCHEDULED:
        return []

    remaining = meeting.start_time - now
    if not timedelta(0) < remaining <= timedelta(minutes=config.meeting_reminder_minutes):
        return []

    minutes = math.ceil(remaining.total_seconds() / 60)
    title = f"Meeting reminder: {meeting.title}"
    key = f"meeting_reminder:{meeting.id}:{meeting.start_time.isoformat()}"

    notifications = [
        create_notification(
            attendee.id, NotificationType.GENERAL, title,
            f'You have a meeting "{meeting.title}" starting in {minutes} minutes',
            now, related_item_id=meeting.id, related_item_type="meeting", dedupe_key=key,
        )
        for attendee in meeting.attendees
    ]

    organizer = meeting.organizer
    if organizer is not None and all(a.id != organizer.id for a in meeting.attendees):
        notifications.append(
            create_notification(
                organizer.id, NotificationType.GENERAL, title,
                f'The meeting "{meeting.title}" that you organized is starting in {minutes} minutes',
                now, related_item_id=meeting.id, related_item_type="meeting", dedupe_key=key,
            )
        )
    return notifications


ACTIVE_ASSIGNMENT_STATUSES = frozenset({
    AssignmentStatus.PENDING,
    AssignmentStatus.IN_PROGRESS,
    AssignmentStatus.ACCEPTED,
})


def assignment_due_reminder(
    assignment: Assignment,
    now: datetime,
    config: RuleEngineConfig = DEFAULT_CONFIG,
) -> list[Notification]:
    """Remind the assignee shortly before an active assignment is due."""
    if assignment.status not in ACTIVE_ASSIGNMENT_STATUSES:
        return []
    if assignment.due_date is None or assignment.assigned_to is None:
        return []

    remaining = assignment.due_date - now
    if not timedelta(0) < remaining <= timedelta(hours=config.assignment_reminder_hours):
        return []

    minutes = math.ceil(remaining.total_seconds() / 60)
    return [
        create_notification(
            assignment.assigned_to.id,
            NotificationType.TASK_DUE_SOON,
            f"Assignment due soon: {assignment.title}",
            f'Your assignment "{assignment.title}" is due in {minutes} minutes',
            now,
            related_item_id=assignment.id,
            related_item_type="assignment",
            dedupe_key=f"assignment_due_reminder:{assignment.id}:{assignment.due_date.isoformat()}",
        )
    ]


CLOSED_PROJECT_STATUSES = frozenset({ProjectStatus.COMPLETED, ProjectStatus.CANCELLED})


def project_deadline_reminder(
    project: Project,
    users: Iterable[Actor],
    now: datetime,
    config: RuleEngineConfig = DEFAULT_CONFIG,
    resolver: EscalationResolver = escalation_resolver,
) -> list[Notification]:
    """A day ahead of the end date, warn the manager and the PMO chain (no executives)."""
    if project.status in CLOSED_PROJECT_STATUSES or project.end_date is None:
        return []

    upper = timedelta(hours=config.deadline_reminder_hours)
    lower = upper - timedelta(hours=config.deadline_reminder_window_hours)
    remaining = project.end_date - now
    if not lower < remaining <= upper:
        return []

    manager = project.manager
    if manager is None or project.department_id is None:
        return []

    title = f"Project deadline approaching: {project.name}"
    message = f'Project "{project.name}" is due in {config.deadline_reminder_hours} hours'
    key = f"project_deadline_reminder:{project.id}:{project.end_date.isoformat()}"
    recipients = [manager] + resolver.resolve_deadline_stakeholders(project.department_id, users)
    return [
        create_notification(
            user.id, NotificationType.TASK_DUE_SOON, title, message, now,
            related_item_id=project.id, related_item_type="project", dedupe_key=key,
        )
        for user in recipients
    ]


# =============================================================================
# RULE REGISTRY
# =============================================================================


@dataclass(frozen=True)
class ScheduledRule:
    """A scheduled rule and the snapshot collections it reads."""
    rule_id: str
    requires: tuple[str, ...]
    evaluate: Callable[["NotificationRuleEngine", RuleSnapshot, datetime], list[Notification]]


def _each(items, fn) -> list[Notification]:
    notifications: list[Notification] = []
    for item in items:
        notifications.extend(fn(item))
    return notifications


SCHEDULED_RULES: tuple[ScheduledRule, ...] = (
    ScheduledRule(
        "weekly_update_deadline",
        ("projects",),
        lambda engine, snap, now: weekly_update_deadline(snap.projects, now, engine.config),
    ),
    ScheduledRule(
        "missed_weekly_update",
        ("projects", "weekly_updates", "users"),
        lambda engine, snap, now: _each(
            snap.projects,
            lambda p: missed_weekly_update(
                p, snap.weekly_updates, snap.users, now, engine.config, engine.resolver
            ),
        ),
    ),
    ScheduledRule(
        "project_overdue",
        ("projects", "users"),
        lambda engine, snap, now: _each(
            snap.projects, lambda p: project_overdue(p, snap.users, now, engine.resolver)
        ),
    ),
    ScheduledRule(
        "meeting_reminder",
        ("meetings",),
        lambda engine, snap, now: _each(
            snap.meetings, lambda m: meeting_reminder(m, now, engine.config)
        ),
    ),
    ScheduledRule(
        "assignment_due_reminder",
        ("assignments",),
        lambda engine, snap, now: _each(
            snap.assignments, lambda a: assignment_due_reminder(a, now, engine.config)
        ),
    ),
    ScheduledRule(
        "project_deadline_reminder",
        ("projects", "users"),
        lambda engine, snap, now: _each(
            snap.projects,
            lambda p: project_deadline_reminder(p, snap.users, now, engine.config, engine.resolver),
        ),
    ),
)


# =============================================================================
# RULE ENGINE
# =============================================================================


class NotificationRuleEngine:
    """
    Runs the scheduled rules over a snapshot and the event rules on demand.

    Configuration is injected at construction; the engine holds no module
    level state. With ``config.deduplicate`` set and a ``sent_keys`` ledger
    supplied, notifications whose (dedupe_key, user) pair was already
    emitted are dropped and new pairs are recorded.
    """

    def __init__(
        self,
        config: RuleEngineConfig = DEFAULT_CONFIG,
        rules: Iterable[ScheduledRule] = SCHEDULED_RULES,
        resolver: EscalationResolver = escalation_resolver,
        sent_keys=None,
    ):
        self.config = config
        self.rules = tuple(rules)
        self.resolver = resolver
        self._sent_keys = sent_keys

    # =========================================================================
    # SCHEDULED EVALUATION
    # =========================================================================

    def evaluate_rule(self, rule: ScheduledRule, snapshot: RuleSnapshot, now: datetime) -> list[Notification]:
        return rule.evaluate(self, snapshot, now)

    def evaluate(
        self,
        snapshot: RuleSnapshot,
        now: datetime,
        skip: Iterable[str] = (),
    ) -> list[Notification]:
        """Concatenate every scheduled rule's output, skipping ``skip`` rule ids."""
        return self.run(snapshot, now, skip).notifications

    def run(
        self,
        snapshot: RuleSnapshot,
        now: datetime,
        skip: Iterable[str] = (),
    ) -> NotificationBatch:
        """Like ``evaluate`` but also reports which rules ran and which failed.

        A failing rule is logged and contributes nothing for this call.
        """
        skipped = set(skip)
        batch = NotificationBatch()
        for rule in self.rules:
            if rule.rule_id in skipped:
                continue
            try:
                batch.notifications.extend(self.evaluate_rule(rule, snapshot, now))
                batch.rules_evaluated += 1
            except Exception as e:
                logger.error(f"Notification rule {rule.rule_id} failed: {e}")
                batch.errors.append(f"{rule.rule_id}: {e}")
        batch.notifications = self.filter_duplicates(batch.notifications)
        return batch

    # =========================================================================
    # EVENT RULES
    # =========================================================================

    def on_assignment(self, item: Task | Assignment, now: datetime) -> list[Notification]:
        return self.filter_duplicates(new_assignment(item, now))

    def on_completion(
        self,
        item: Task | Assignment,
        previous_status: TaskStatus | AssignmentStatus,
        now: datetime,
    ) -> list[Notification]:
        return self.filter_duplicates(completion_notification(item, previous_status, now))

    def on_approval_required(self, *args, **kwargs) -> list[Notification]:
        return self.filter_duplicates(approval_required(*args, **kwargs))

    def on_approval_outcome(self, *args, **kwargs) -> list[Notification]:
        return self.filter_duplicates(approval_outcome(*args, **kwargs))

    # =========================================================================
    # DEDUPLICATION
    # =========================================================================

    def filter_duplicates(self, notifications: list[Notification]) -> list[Notification]:
        if not self.config.deduplicate or self._sent_keys is None:
            return notifications

        fresh: list[Notification] = []
        new_keys: list[str] = []
        for notification in notifications:
            if notification.dedupe_key is None:
                fresh.append(notification)
                continue
            key = f"{notification.dedupe_key}|{notification.user_id}"
            if key in new_keys or self._sent_keys.contains(key):
                logger.debug(f"Suppressed duplicate notification {key}")
                continue
            new_keys.append(key)
            fresh.append(notification)

        if new_keys:
            self._sent_keys.add_many(new_keys)
        return fresh

