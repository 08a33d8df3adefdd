"""Approval workflow and notification engine services."""

from .approvals import ApprovalService, TransitionOutcome, pending_queue
from .change_requests import (
    AppliedChange,
    ChangeRequestService,
    apply_change_request,
    create_change_request,
    withdraw_change_request,
)
from .collaborators import (
    EntityStore,
    IdentityProvider,
    InMemoryEntityStore,
    StaticIdentityProvider,
    StoreResult,
)
from .errors import (
    ApplyConflict,
    AuthorizationDenied,
    InvalidTransition,
    NotFound,
    OperationResult,
    PersistenceFailed,
    ValidationFailed,
    WorkflowError,
)
from .escalation import EscalationResolver, escalation_resolver, resolve_chain
from .notification_rules import (
    DEFAULT_CONFIG,
    NotificationRuleEngine,
    RuleEngineConfig,
    RuleSnapshot,
    ScheduledRule,
)
from .notification_store import NotificationStore, SentKeyLedger
from .status_machine import (
    DENIED,
    ApprovalStatusMachine,
    DenialReason,
    Denied,
    change_request_machine,
    compute_next_status,
    project_machine,
)
from .storage import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore

__all__ = [
    # Approvals
    "ApprovalService",
    "TransitionOutcome",
    "pending_queue",
    # Change requests
    "AppliedChange",
    "ChangeRequestService",
    "apply_change_request",
    "create_change_request",
    "withdraw_change_request",
    # Collaborators
    "EntityStore",
    "IdentityProvider",
    "InMemoryEntityStore",
    "StaticIdentityProvider",
    "StoreResult",
    # Errors
    "WorkflowError",
    "AuthorizationDenied",
    "InvalidTransition",
    "ValidationFailed",
    "ApplyConflict",
    "NotFound",
    "PersistenceFailed",
    "OperationResult",
    # Escalation
    "EscalationResolver",
    "escalation_resolver",
    "resolve_chain",
    # Notification rules
    "DEFAULT_CONFIG",
    "NotificationRuleEngine",
    "RuleEngineConfig",
    "RuleSnapshot",
    "ScheduledRule",
    # Notification store
    "NotificationStore",
    "SentKeyLedger",
    # Status machine
    "DENIED",
    "ApprovalStatusMachine",
    "DenialReason",
    "Denied",
    "change_request_machine",
    "compute_next_status",
    "project_machine",
    # Storage
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SqlKeyValueStore",
]
