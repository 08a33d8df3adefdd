"""
Tests for the Notification Rule Engine.

These tests verify:
1. Each rule's firing condition, boundaries included
2. Recipients, types and messages
3. Duplicate emission across ticks, and deduplication when enabled
4. A failing rule does not stop the others
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from themis_workflow.models import (
    Assignment,
    AssignmentStatus,
    Meeting,
    MeetingStatus,
    NotificationType,
    ProjectStatus,
    Task,
    TaskStatus,
    WeeklyUpdate,
)
from themis_workflow.services import (
    InMemoryKeyValueStore,
    NotificationRuleEngine,
    RuleEngineConfig,
    RuleSnapshot,
    ScheduledRule,
    SentKeyLedger,
)
from themis_workflow.services.notification_rules import (
    assignment_due_reminder,
    completion_notification,
    meeting_reminder,
    missed_weekly_update,
    new_assignment,
    project_deadline_reminder,
    project_overdue,
    weekly_update_deadline,
)

THURSDAY = datetime(2025, 3, 13, 9, 0, tzinfo=timezone.utc)
FRIDAY = datetime(2025, 3, 14, 8, 0, tzinfo=timezone.utc)


def recipients(notifications) -> list[str]:
    return [n.user_id for n in notifications]


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def meeting(manager, sub_pmo, now) -> Meeting:
    return Meeting(
        id="m-1",
        title="Sprint review",
        start_time=now + timedelta(minutes=15),
        status=MeetingStatus.SCHEDULED,
        organizer=manager,
        attendees=(sub_pmo,),
    )


@pytest.fixture
def assignment(manager, team_lead, now) -> Assignment:
    return Assignment(
        id="a-1",
        title="Write migration plan",
        status=AssignmentStatus.IN_PROGRESS,
        assigned_to=team_lead,
        assigned_by=manager,
        due_date=now + timedelta(hours=1),
    )


# =============================================================================
# TEST: EVENT RULES
# =============================================================================


class TestEventRules:
    def test_new_task_assignment(self, manager, team_lead, now):
        task = Task("t-1", "p-1", "Set up CI", TaskStatus.TODO, assignee=team_lead, assigned_by=manager)
        [notification] = new_assignment(task, now)
        assert notification.user_id == team_lead.id
        assert notification.type == NotificationType.TASK_ASSIGNED
        assert notification.message == "Set up CI has been assigned to you by Pat Manager"

    def test_unassigned_item_is_silent(self, now):
        task = Task("t-1", "p-1", "Set up CI", TaskStatus.TODO)
        assert new_assignment(task, now) == []

    def test_completion_goes_to_assigner(self, manager, team_lead, now):
        task = Task("t-1", "p-1", "Set up CI", TaskStatus.DONE, assignee=team_lead, assigned_by=manager)
        [notification] = completion_notification(task, TaskStatus.REVIEW, now)
        assert notification.user_id == manager.id
        assert notification.type == NotificationType.TASK_ASSIGNED
        assert notification.message == "Set up CI has been completed by Lee Lead"

    def test_completion_only_on_entering_done(self, manager, team_lead, now):
        task = Task("t-1", "p-1", "Set up CI", TaskStatus.DONE, assignee=team_lead, assigned_by=manager)
        assert completion_notification(task, TaskStatus.DONE, now) == []
        still_open = replace(task, status=TaskStatus.REVIEW)
        assert completion_notification(still_open, TaskStatus.TODO, now) == []

    def test_assignment_completion(self, assignment, now):
        done = replace(assignment, status=AssignmentStatus.COMPLETED)
        assert recipients(completion_notification(done, AssignmentStatus.IN_PROGRESS, now)) == ["u-pm"]


# =============================================================================
# TEST: WEEKLY UPDATES
# =============================================================================


class TestWeeklyUpdateDeadline:
    def test_one_reminder_per_manager(self, project, active_project):
        notifications = weekly_update_deadline([project, active_project], THURSDAY)
        assert recipients(notifications) == ["u-pm"]
        assert notifications[0].type == NotificationType.UPDATE_DUE
        assert notifications[0].message == (
            "You have 2 projects that require weekly updates to be submitted by the end of today."
        )

    def test_only_on_update_weekday(self, project, now):
        assert weekly_update_deadline([project], now) == []

    def test_configurable_weekday(self, project, now):
        config = RuleEngineConfig(weekly_update_weekday=now.weekday())
        assert len(weekly_update_deadline([project], now, config)) == 1


class TestMissedWeeklyUpdate:
    def test_escalates_after_deadline_day(self, project, directory):
        notifications = missed_weekly_update(project, [], directory, FRIDAY)
        assert recipients(notifications) == ["u-sub", "u-main", "u-dir", "u-exec"]
        assert notifications[0].type == NotificationType.UPDATE_DUE
        assert notifications[0].title == "Missed weekly update for Data Platform"
        assert notifications[0].message == (
            'Project Manager Pat Manager did not submit the required weekly update '
            'for project "Data Platform"'
        )

    def test_not_before_deadline_day_ends(self, project, directory):
        last_minute = datetime(2025, 3, 13, 23, 59, 59, tzinfo=timezone.utc)
        assert missed_weekly_update(project, [], directory, last_minute) == []

    def test_update_for_this_week_suppresses(self, project, directory):
        iso = FRIDAY.isocalendar()
        update = WeeklyUpdate("w-1", project.id, iso.week, iso.year)
        assert missed_weekly_update(project, [update], directory, FRIDAY) == []

    def test_update_for_another_week_does_not_count(self, project, directory):
        iso = FRIDAY.isocalendar()
        update = WeeklyUpdate("w-1", project.id, iso.week - 1, iso.year)
        assert len(missed_weekly_update(project, [update], directory, FRIDAY)) == 4

    def test_needs_manager_and_department(self, project, directory):
        assert missed_weekly_update(replace(project, manager=None), [], directory, FRIDAY) == []
        assert missed_weekly_update(replace(project, department_id=None), [], directory, FRIDAY) == []


# =============================================================================
# TEST: OVERDUE
# =============================================================================


class TestProjectOverdue:
    def test_overdue_project_escalates(self, active_project, directory, now):
        late = replace(active_project, end_date=now - timedelta(days=1))
        notifications = project_overdue(late, directory, now)
        assert recipients(notifications) == ["u-sub", "u-main", "u-dir", "u-exec"]
        assert all(n.type == NotificationType.TASK_OVERDUE for n in notifications)
        assert notifications[0].title == "Project overdue: Billing Revamp"
        assert "Mar 11th, 2025" in notifications[0].message

    def test_completed_project_is_not_overdue(self, active_project, directory, now):
        done = replace(active_project, end_date=now - timedelta(days=1), status=ProjectStatus.COMPLETED)
        assert project_overdue(done, directory, now) == []

    def test_end_date_itself_is_not_overdue(self, active_project, directory, now):
        assert project_overdue(replace(active_project, end_date=now), directory, now) == []


# =============================================================================
# TEST: MEETINGS
# =============================================================================


class TestMeetingReminder:
    def test_fires_at_fifteen_minutes(self, meeting, now):
        notifications = meeting_reminder(meeting, now)
        assert recipients(notifications) == ["u-sub", "u-pm"]
        assert notifications[0].message == 'You have a meeting "Sprint review" starting in 15 minutes'
        assert notifications[1].message == (
            'The meeting "Sprint review" that you organized is starting in 15 minutes'
        )
        assert all(n.type == NotificationType.GENERAL for n in notifications)

    def test_silent_one_second_outside_window(self, meeting, now):
        early = replace(meeting, start_time=now + timedelta(minutes=15, seconds=1))
        assert meeting_reminder(early, now) == []

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(minutes=-5)])
    def test_silent_at_or_after_start(self, meeting, now, offset):
        assert meeting_reminder(replace(meeting, start_time=now + offset), now) == []

    def test_rounds_minutes_up(self, meeting, now):
        soon = replace(meeting, start_time=now + timedelta(minutes=4, seconds=10))
        assert "starting in 5 minutes" in meeting_reminder(soon, now)[0].message

    def test_cancelled_meeting_is_silent(self, meeting, now):
        assert meeting_reminder(replace(meeting, status=MeetingStatus.CANCELLED), now) == []

    def test_attending_organizer_is_notified_once(self, meeting, manager, sub_pmo, now):
        both = replace(meeting, attendees=(sub_pmo, manager))
        assert recipients(meeting_reminder(both, now)) == ["u-sub", "u-pm"]


# =============================================================================
# TEST: ASSIGNMENTS
# =============================================================================


class TestAssignmentDueReminder:
    def test_fires_at_one_hour(self, assignment, now):
        [notification] = assignment_due_reminder(assignment, now)
        assert notification.user_id == "u-lead"
        assert notification.type == NotificationType.TASK_DUE_SOON
        assert notification.message == 'Your assignment "Write migration plan" is due in 60 minutes'

    def test_silent_one_second_outside_window(self, assignment, now):
        later = replace(assignment, due_date=now + timedelta(hours=1, seconds=1))
        assert assignment_due_reminder(later, now) == []

    def test_silent_once_due(self, assignment, now):
        assert assignment_due_reminder(replace(assignment, due_date=now), now) == []

    @pytest.mark.parametrize("status", [AssignmentStatus.PENDING, AssignmentStatus.ACCEPTED])
    def test_open_statuses(self, assignment, now, status):
        assert len(assignment_due_reminder(replace(assignment, status=status), now)) == 1

    @pytest.mark.parametrize("status", [AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED])
    def test_closed_statuses(self, assignment, now, status):
        assert assignment_due_reminder(replace(assignment, status=status), now) == []


# =============================================================================
# TEST: PROJECT DEADLINES
# =============================================================================


class TestProjectDeadlineReminder:
    def test_one_notification_per_stakeholder(self, active_project, directory, now):
        project = replace(active_project, end_date=now + timedelta(hours=23, minutes=30))
        notifications = project_deadline_reminder(project, directory, now)

        assert recipients(notifications) == ["u-pm", "u-sub", "u-main", "u-dir"]
        assert "u-exec" not in recipients(notifications)
        assert all(n.type == NotificationType.TASK_DUE_SOON for n in notifications)
        assert notifications[0].message == 'Project "Billing Revamp" is due in 24 hours'

    def test_window_bounds(self, active_project, directory, now):
        at_24 = replace(active_project, end_date=now + timedelta(hours=24))
        at_23 = replace(active_project, end_date=now + timedelta(hours=23))
        assert len(project_deadline_reminder(at_24, directory, now)) == 4
        assert project_deadline_reminder(at_23, directory, now) == []

    @pytest.mark.parametrize("status", [ProjectStatus.COMPLETED, ProjectStatus.CANCELLED])
    def test_closed_projects(self, active_project, directory, now, status):
        project = replace(active_project, status=status, end_date=now + timedelta(hours=23, minutes=30))
        assert project_deadline_reminder(project, directory, now) == []


# =============================================================================
# TEST: ENGINE
# =============================================================================


class TestRuleEngine:
    """Concatenation, failure isolation and deduplication."""

    @pytest.fixture
    def snapshot(self, directory, meeting, assignment) -> RuleSnapshot:
        return RuleSnapshot(users=directory, meetings=[meeting], assignments=[assignment])

    def test_concatenates_rule_outputs(self, snapshot, now):
        notifications = NotificationRuleEngine().evaluate(snapshot, now)
        assert sorted(recipients(notifications)) == ["u-lead", "u-pm", "u-sub"]

    def test_repeated_ticks_emit_duplicates(self, snapshot, now):
        engine = NotificationRuleEngine()
        first = engine.evaluate(snapshot, now)
        second = engine.evaluate(snapshot, now + timedelta(minutes=1))
        assert len(first) == len(second) == 3

    def test_deduplication_when_enabled(self, snapshot, now):
        ledger = SentKeyLedger(InMemoryKeyValueStore())
        engine = NotificationRuleEngine(RuleEngineConfig(deduplicate=True), sent_keys=ledger)

        assert len(engine.evaluate(snapshot, now)) == 3
        assert engine.evaluate(snapshot, now + timedelta(minutes=1)) == []

    def test_dedupe_ledger_survives_engine_restart(self, snapshot, now):
        kv = InMemoryKeyValueStore()
        config = RuleEngineConfig(deduplicate=True)
        NotificationRuleEngine(config, sent_keys=SentKeyLedger(kv)).evaluate(snapshot, now)

        restarted = NotificationRuleEngine(config, sent_keys=SentKeyLedger(kv))
        assert restarted.evaluate(snapshot, now) == []

    def test_failing_rule_is_isolated(self, snapshot, now):
        def explode(engine, snap, at):
            raise RuntimeError("boom")

        engine = NotificationRuleEngine(
            rules=[ScheduledRule("broken", (), explode), *NotificationRuleEngine().rules]
        )
        batch = engine.run(snapshot, now)
        assert len(batch.notifications) == 3
        assert batch.errors == ["broken: boom"]

    def test_skip_rules(self, snapshot, now):
        notifications = NotificationRuleEngine().evaluate(snapshot, now, skip=["meeting_reminder"])
        assert recipients(notifications) == ["u-lead"]
