"""Error taxonomy and the tagged result returned by workflow operations.

Transition and apply operations never raise these errors; they return an
``OperationResult`` carrying one, and the caller decides how to surface it.
"""

from dataclasses import dataclass
from typing import Any


# =============================================================================
# EXCEPTIONS
# =============================================================================


class WorkflowError(Exception):
    """Base exception for workflow operations."""

    code = "workflow_error"
    user_message = "The request could not be completed."

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.user_message)
        self.detail = detail or self.user_message


class AuthorizationDenied(WorkflowError):
    """Actor lacks the capability for the requested action in the current state."""

    code = "authorization_denied"
    user_message = "You do not have permission to perform this action."


class InvalidTransition(WorkflowError):
    """No transition edge exists for (status, action), whoever asks."""

    code = "invalid_transition"
    user_message = "This action is not valid for the item in its current state."


class ValidationFailed(WorkflowError):
    """A required field is missing or malformed."""

    code = "validation_failed"
    user_message = "Some required information is missing or invalid."


class ApplyConflict(WorkflowError):
    """The change request has already been implemented."""

    code = "apply_conflict"
    user_message = "This change request has already been applied."


class NotFound(WorkflowError):
    """Referenced entity id does not exist."""

    code = "not_found"
    user_message = "The requested item does not exist."


class PersistenceFailed(WorkflowError):
    """The entity store refused a write; earlier writes were rolled back."""

    code = "persistence_failed"
    user_message = "The change could not be saved. Please try again."


# =============================================================================
# RESULT
# =============================================================================


@dataclass(frozen=True)
class OperationResult:
    """Tri-state outcome: ``success`` with ``data``, or failure with ``error``."""
    success: bool
    data: Any = None
    error: WorkflowError | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: WorkflowError) -> "OperationResult":
        return cls(success=False, error=error)

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error else None
