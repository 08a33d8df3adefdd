"""
Tests for the Approval Service.

These tests verify:
1. Transitions write status and review record together
2. Denials are split into "not allowed" and "not valid now"
3. Review side fields on change requests
4. Approver queues and approval notifications
"""

from dataclasses import replace

import pytest

from themis_workflow.models import (
    ApprovalAction,
    ChangeRequestStatus,
    EntityKind,
    NotificationType,
    ProjectStatus,
)
from themis_workflow.services import (
    ApprovalService,
    AuthorizationDenied,
    InvalidTransition,
    NotFound,
    NotificationRuleEngine,
    ValidationFailed,
    pending_queue,
)


@pytest.fixture
def approvals(entity_store, identity, clock) -> ApprovalService:
    return ApprovalService(entity_store, identity, clock)


@pytest.fixture
def notifying_approvals(entity_store, identity, clock, notification_store) -> ApprovalService:
    return ApprovalService(
        entity_store,
        identity,
        clock,
        notifications=notification_store,
        rule_engine=NotificationRuleEngine(),
    )


# =============================================================================
# TEST: TRANSITIONS
# =============================================================================


class TestTransition:
    def test_approval_appends_review_record(self, approvals, entity_store, sub_pmo, project, clock):
        result = approvals.transition(EntityKind.PROJECT, project.id, sub_pmo, ApprovalAction.APPROVE, "ok")

        assert result.success
        stored = entity_store.get(EntityKind.PROJECT, project.id).data
        assert stored.status == ProjectStatus.APPROVED_BY_SUB_PMO
        record = stored.review_history[0]
        assert record.action == ApprovalAction.APPROVE
        assert record.reviewer.id == sub_pmo.id
        assert record.reviewer.role == sub_pmo.role
        assert record.timestamp == clock.now()
        assert record.from_status == "PENDING_SUB_PMO"
        assert record.to_status == "APPROVED_BY_SUB_PMO"

    def test_one_transition_per_call(self, approvals, sub_pmo, project):
        result = approvals.transition(EntityKind.PROJECT, project.id, sub_pmo, ApprovalAction.APPROVE, "ok")
        assert result.data.to_status == "APPROVED_BY_SUB_PMO"

    def test_history_is_newest_first(self, approvals, entity_store, sub_pmo, main_pmo, project):
        approvals.transition(EntityKind.PROJECT, project.id, sub_pmo, ApprovalAction.APPROVE, "first")
        approvals.transition(EntityKind.PROJECT, project.id, main_pmo, ApprovalAction.SUBMIT, "second")

        history = entity_store.get(EntityKind.PROJECT, project.id).data.review_history
        assert [r.comments for r in history] == ["second", "first"]

    def test_unknown_entity(self, approvals, admin):
        result = approvals.transition(EntityKind.PROJECT, "nope", admin, ApprovalAction.APPROVE)
        assert isinstance(result.error, NotFound)

    def test_no_actor(self, approvals, project):
        result = approvals.transition(EntityKind.PROJECT, project.id, None, ApprovalAction.APPROVE)
        assert isinstance(result.error, AuthorizationDenied)

    def test_wrong_department_is_not_permitted(self, approvals, entity_store, other_sub_pmo, project):
        result = approvals.transition(
            EntityKind.PROJECT, project.id, other_sub_pmo, ApprovalAction.APPROVE, "ok"
        )
        assert isinstance(result.error, AuthorizationDenied)
        assert entity_store.get(EntityKind.PROJECT, project.id).data == project

    def test_executive_is_not_permitted(self, approvals, executive, project):
        result = approvals.transition(EntityKind.PROJECT, project.id, executive, ApprovalAction.APPROVE)
        assert isinstance(result.error, AuthorizationDenied)

    def test_missing_edge_is_invalid(self, approvals, admin, project):
        result = approvals.transition(EntityKind.PROJECT, project.id, admin, ApprovalAction.SUBMIT)
        assert isinstance(result.error, InvalidTransition)

    def test_withdraw_is_not_a_transition(self, approvals, manager, budget_request):
        result = approvals.transition(
            EntityKind.CHANGE_REQUEST, budget_request.id, manager, ApprovalAction.WITHDRAW
        )
        assert isinstance(result.error, InvalidTransition)

    @pytest.mark.parametrize("action", [ApprovalAction.REJECT, ApprovalAction.REQUEST_CHANGES])
    def test_reason_required(self, approvals, entity_store, sub_pmo, project, action):
        result = approvals.transition(EntityKind.PROJECT, project.id, sub_pmo, action, "   ")
        assert isinstance(result.error, ValidationFailed)
        assert entity_store.get(EntityKind.PROJECT, project.id).data.status == ProjectStatus.PENDING_SUB_PMO

    def test_denial_wins_over_missing_reason(self, approvals, executive, project):
        result = approvals.transition(EntityKind.PROJECT, project.id, executive, ApprovalAction.REJECT, "")
        assert isinstance(result.error, AuthorizationDenied)


class TestReviewSideFields:
    """Change requests remember who decided and why."""

    def test_rejection_reason(self, approvals, entity_store, sub_pmo, budget_request, clock):
        approvals.transition(
            EntityKind.CHANGE_REQUEST, budget_request.id, sub_pmo, ApprovalAction.REJECT, "Too costly"
        )
        cr = entity_store.get(EntityKind.CHANGE_REQUEST, budget_request.id).data
        assert cr.status == ChangeRequestStatus.REJECTED_BY_SUB_PMO
        assert cr.rejection_reason == "Too costly"
        assert cr.rejected_by.id == sub_pmo.id
        assert cr.rejected_at == clock.now()

    def test_changes_requested_text(self, approvals, entity_store, sub_pmo, budget_request):
        approvals.transition(
            EntityKind.CHANGE_REQUEST, budget_request.id, sub_pmo,
            ApprovalAction.REQUEST_CHANGES, "Split the budget by quarter",
        )
        cr = entity_store.get(EntityKind.CHANGE_REQUEST, budget_request.id).data
        assert cr.status == ChangeRequestStatus.CHANGES_REQUESTED
        assert cr.changes_requested == "Split the budget by quarter"


# =============================================================================
# TEST: QUEUES
# =============================================================================


class TestPendingQueue:
    def test_sub_pmo_sees_own_department(self, sub_pmo, other_sub_pmo, project, budget_request):
        assert pending_queue(sub_pmo, [project, budget_request]) == [project, budget_request]
        assert pending_queue(other_sub_pmo, [project, budget_request]) == []

    def test_main_pmo_sees_second_tier(self, main_pmo, project):
        second = replace(project, id="p-9", status=ProjectStatus.PENDING_MAIN_PMO)
        advanced = replace(project, id="p-10", status=ProjectStatus.APPROVED_BY_SUB_PMO)
        assert pending_queue(main_pmo, [project, second, advanced]) == [second, advanced]

    def test_admin_sees_everything_pending(self, admin, project, active_project):
        second = replace(project, id="p-9", status=ProjectStatus.PENDING_MAIN_PMO)
        assert pending_queue(admin, [project, active_project, second]) == [project, second]

    def test_other_roles_have_no_queue(self, manager, executive, project):
        assert pending_queue(manager, [project]) == []
        assert pending_queue(executive, [project]) == []

    def test_pending_for_reads_store(self, approvals, sub_pmo, project):
        assert approvals.pending_for(sub_pmo, EntityKind.PROJECT) == [project]


# =============================================================================
# TEST: NOTIFICATIONS
# =============================================================================


class TestApprovalNotifications:
    def test_second_tier_queue_notifies_main_pmo(
        self, notifying_approvals, notification_store, sub_pmo, main_pmo, project
    ):
        notifying_approvals.transition(EntityKind.PROJECT, project.id, sub_pmo, ApprovalAction.APPROVE, "ok")

        received = notification_store.get_for_user(main_pmo.id)
        assert len(received) == 1
        assert received[0].type == NotificationType.APPROVAL_NEEDED
        assert received[0].title == "Approval required: Data Platform"
        assert received[0].related_item_id == project.id

    def test_advance_to_main_pmo_does_not_repeat_notice(
        self, notifying_approvals, entity_store, notification_store, sub_pmo, main_pmo, project
    ):
        notifying_approvals.transition(EntityKind.PROJECT, project.id, sub_pmo, ApprovalAction.APPROVE, "ok")
        notifying_approvals.transition(EntityKind.PROJECT, project.id, main_pmo, ApprovalAction.SUBMIT)

        assert entity_store.get(EntityKind.PROJECT, project.id).data.status == ProjectStatus.PENDING_MAIN_PMO
        received = notification_store.get_for_user(main_pmo.id)
        assert [n.type for n in received] == [NotificationType.APPROVAL_NEEDED]

    def test_resubmission_notifies_department_sub_pmo(
        self, notifying_approvals, entity_store, notification_store,
        manager, sub_pmo, other_sub_pmo, project,
    ):
        entity_store.update(EntityKind.PROJECT, project.id, {"status": ProjectStatus.CHANGES_REQUESTED})

        notifying_approvals.transition(EntityKind.PROJECT, project.id, manager, ApprovalAction.SUBMIT)

        assert len(notification_store.get_for_user(sub_pmo.id)) == 1
        assert notification_store.get_for_user(other_sub_pmo.id) == []

    def test_decision_notifies_requester(
        self, notifying_approvals, notification_store, sub_pmo, manager, budget_request
    ):
        notifying_approvals.transition(
            EntityKind.CHANGE_REQUEST, budget_request.id, sub_pmo, ApprovalAction.REJECT, "No"
        )

        received = notification_store.get_for_user(manager.id)
        assert len(received) == 1
        assert received[0].type == NotificationType.CHANGE_REQUEST_REJECTED
        assert received[0].message == (
            'Your Change Request "Increase budget" has been rejected by Sam Sub'
        )

    def test_approval_notifies_requester(
        self, notifying_approvals, entity_store, notification_store, main_pmo, manager, budget_request
    ):
        entity_store.update(
            EntityKind.CHANGE_REQUEST, budget_request.id, {"status": ChangeRequestStatus.PENDING_MAIN_PMO}
        )
        notifying_approvals.transition(
            EntityKind.CHANGE_REQUEST, budget_request.id, main_pmo, ApprovalAction.APPROVE
        )

        received = notification_store.get_for_user(manager.id)
        assert [n.type for n in received] == [NotificationType.CHANGE_REQUEST_APPROVED]

    def test_denied_transition_notifies_nobody(
        self, notifying_approvals, kv, executive, project
    ):
        notifying_approvals.transition(EntityKind.PROJECT, project.id, executive, ApprovalAction.APPROVE)
        assert kv.get("app_notifications") is None
