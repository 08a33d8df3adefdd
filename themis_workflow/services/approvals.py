"""
Approval Service: runs approval transitions against the entity store.

Each call performs exactly one transition from the table in
``status_machine``. The new status and the review record are written in a
single patch; for a change request reaching APPROVED the project effect
is committed in the same unit (see ``ChangeRequestService.commit``).

Denied outcomes are split for the caller: NOT_PERMITTED becomes
AuthorizationDenied, NO_SUCH_TRANSITION becomes InvalidTransition.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ..core.clock import Clock, SystemClock
from ..models import (
    Actor,
    ApprovalAction,
    ApprovalStage,
    ChangeRequest,
    ChangeRequestStatus,
    EntityKind,
    Project,
    ReviewerSnapshot,
    ReviewRecord,
    UserRole,
)
from .change_requests import ChangeRequestService
from .collaborators import EntityStore, IdentityProvider
from .errors import (
    AuthorizationDenied,
    InvalidTransition,
    NotFound,
    OperationResult,
    PersistenceFailed,
    ValidationFailed,
)
from .escalation import EscalationResolver, escalation_resolver
from .notification_rules import NotificationRuleEngine
from .notification_store import NotificationStore
from .permissions import same_department
from .status_machine import (
    ApprovalStatusMachine,
    DenialReason,
    Denied,
    change_request_machine,
    project_machine,
)
from .statuses import to_stage

logger = logging.getLogger(__name__)


MACHINES: dict[EntityKind, ApprovalStatusMachine] = {
    EntityKind.PROJECT: project_machine,
    EntityKind.CHANGE_REQUEST: change_request_machine,
}

ITEM_LABELS = {
    EntityKind.PROJECT: "Project",
    EntityKind.CHANGE_REQUEST: "Change Request",
}

# Actions that must explain themselves
COMMENT_REQUIRED = frozenset({ApprovalAction.REJECT, ApprovalAction.REQUEST_CHANGES})

# Stages that place an item in a reviewer queue
QUEUE_STAGES = frozenset({
    ApprovalStage.PENDING_SUB_PMO,
    ApprovalStage.APPROVED_BY_SUB_PMO,
    ApprovalStage.PENDING_MAIN_PMO,
})

# One Main-PMO queue entry spans both stages; moving between them is not news
MAIN_PMO_QUEUE_STAGES = frozenset({
    ApprovalStage.APPROVED_BY_SUB_PMO,
    ApprovalStage.PENDING_MAIN_PMO,
})

DECISION_STAGES = frozenset({
    ApprovalStage.APPROVED,
    ApprovalStage.REJECTED,
    ApprovalStage.REJECTED_BY_SUB_PMO,
})


@dataclass(frozen=True)
class TransitionOutcome:
    entity: Project | ChangeRequest
    from_status: str
    to_status: str
    review: ReviewRecord
    applied: bool = False


def item_title(entity: Project | ChangeRequest) -> str:
    return entity.name if isinstance(entity, Project) else entity.title


def pending_queue(actor: Actor, items: Iterable[Project | ChangeRequest]) -> list:
    """Items waiting on ``actor``'s review, in input order.

    Sub-PMO: own department, PENDING_SUB_PMO. Main-PMO: PENDING_MAIN_PMO and
    APPROVED_BY_SUB_PMO. Admin: every pending item.
    """
    if actor.role == UserRole.SUB_PMO:
        stages = {ApprovalStage.PENDING_SUB_PMO}
    elif actor.role == UserRole.MAIN_PMO:
        stages = set(MAIN_PMO_QUEUE_STAGES)
    elif actor.role == UserRole.ADMIN:
        stages = set(QUEUE_STAGES)
    else:
        return []

    queue = []
    for item in items:
        if to_stage(item.status) not in stages:
            continue
        if actor.role == UserRole.SUB_PMO and not same_department(actor, item.department_id):
            continue
        queue.append(item)
    return queue


class ApprovalService:
    """
    Store-backed approval workflow for projects and change requests.

    Notifications are optional: without a store and engine the service
    only moves statuses.
    """

    def __init__(
        self,
        store: EntityStore,
        identity: IdentityProvider,
        clock: Clock | None = None,
        change_requests: ChangeRequestService | None = None,
        notifications: NotificationStore | None = None,
        rule_engine: NotificationRuleEngine | None = None,
        resolver: EscalationResolver = escalation_resolver,
    ):
        self.store = store
        self.identity = identity
        self.clock = clock or SystemClock()
        self.change_requests = change_requests or ChangeRequestService(store, self.clock)
        self.notifications = notifications
        self.rule_engine = rule_engine
        self.resolver = resolver

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def transition(
        self,
        kind: EntityKind,
        entity_id: str,
        actor: Actor | None,
        action: ApprovalAction,
        comments: str = "",
    ) -> OperationResult:
        if actor is None:
            return OperationResult.fail(AuthorizationDenied("No active user"))

        fetched = self.store.get(kind, entity_id)
        if not fetched.success or fetched.data is None:
            return OperationResult.fail(NotFound(f"{ITEM_LABELS[kind]} {entity_id} not found"))
        entity = fetched.data

        if action == ApprovalAction.WITHDRAW:
            return OperationResult.fail(
                InvalidTransition("Withdrawal is a separate operation on change requests")
            )

        is_same_department = same_department(actor, entity.department_id)
        outcome = MACHINES[kind].compute_next_status(
            entity.status, actor.role, action, is_same_department
        )
        if isinstance(outcome, Denied):
            logger.warning(
                f"Denied {action.value} on {kind.value} {entity_id} ({entity.status.value}) "
                f"by {actor.id} [{actor.role.value}]: {outcome.reason.value}"
            )
            if outcome.reason == DenialReason.NOT_PERMITTED:
                return OperationResult.fail(
                    AuthorizationDenied(f"{actor.role.value} may not {action.value} this item now")
                )
            return OperationResult.fail(
                InvalidTransition(f"No {action.value} transition from {entity.status.value}")
            )

        comments = (comments or "").strip()
        if action in COMMENT_REQUIRED and not comments:
            return OperationResult.fail(ValidationFailed(f"{action.value} requires comments"))

        now = self.clock.now()
        record = ReviewRecord.create(
            actor, action, comments, now,
            from_status=entity.status.value, to_status=outcome.value,
        )
        patch: dict[str, Any] = {
            "status": outcome,
            "review_history": (record,) + entity.review_history,
        }
        if kind == EntityKind.CHANGE_REQUEST:
            patch.update(self._review_side_fields(actor, action, comments, outcome, now))

        applied = False
        if kind == EntityKind.CHANGE_REQUEST and outcome == ChangeRequestStatus.APPROVED:
            committed = self.change_requests.commit(entity, patch)
            if committed.success:
                updated, applied = committed.data.change_request, True
            elif isinstance(committed.error, PersistenceFailed):
                return committed
            else:
                # The approval stands; the effect can be applied later
                logger.warning(
                    f"Change request {entity_id} approved but not applied: {committed.error.detail}"
                )
                written = self.store.update(kind, entity_id, patch)
                if not written.success:
                    return OperationResult.fail(PersistenceFailed(written.error))
                updated = written.data
        else:
            written = self.store.update(kind, entity_id, patch)
            if not written.success:
                return OperationResult.fail(PersistenceFailed(written.error))
            updated = written.data

        logger.info(
            f"{kind.value} {entity_id}: {entity.status.value} -> {outcome.value} "
            f"by {actor.id} ({action.value})"
        )
        self._notify(kind, updated, actor, record, previous=to_stage(entity.status))

        return OperationResult.ok(
            TransitionOutcome(
                entity=updated,
                from_status=entity.status.value,
                to_status=outcome.value,
                review=record,
                applied=applied,
            )
        )

    def _review_side_fields(self, actor, action, comments, outcome, now) -> dict[str, Any]:
        snapshot = ReviewerSnapshot.of(actor)
        if outcome == ChangeRequestStatus.APPROVED:
            return {"approved_by": snapshot, "approved_at": now}
        if action == ApprovalAction.REJECT:
            return {"rejected_by": snapshot, "rejected_at": now, "rejection_reason": comments}
        if action == ApprovalAction.REQUEST_CHANGES:
            return {"changes_requested": comments}
        return {}

    # =========================================================================
    # QUEUES
    # =========================================================================

    def pending_for(self, actor: Actor, kind: EntityKind) -> list:
        listed = self.store.list(kind)
        if not listed.success:
            logger.error(f"Could not list {kind.value} items: {listed.error}")
            return []
        return pending_queue(actor, listed.data or [])

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    def _notify(
        self,
        kind: EntityKind,
        entity,
        actor: Actor,
        record: ReviewRecord,
        previous: ApprovalStage | None = None,
    ) -> None:
        if self.notifications is None or self.rule_engine is None:
            return

        stage = to_stage(entity.status)
        now = self.clock.now()
        label = ITEM_LABELS[kind]
        title = item_title(entity)
        emitted = []

        requeued = stage in MAIN_PMO_QUEUE_STAGES and previous in MAIN_PMO_QUEUE_STAGES
        if stage in QUEUE_STAGES and not requeued:
            approvers = self.resolver.resolve_approvers(
                stage, entity.department_id, self.identity.list_actors()
            )
            emitted += self.rule_engine.on_approval_required(
                entity.id, label, title, approvers, now, queue_entry_id=record.id
            )
        elif stage in DECISION_STAGES and entity.owner is not None:
            emitted += self.rule_engine.on_approval_outcome(
                entity.id, label, title, stage == ApprovalStage.APPROVED,
                actor.name, entity.owner.id, now, decision_id=record.id,
            )

        if not emitted:
            return
        try:
            self.notifications.append_many(emitted)
        except Exception as e:
            logger.error(f"Failed to store approval notifications for {entity.id}: {e}")
