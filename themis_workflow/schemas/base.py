"""Base schema and the error envelope shared by every endpoint."""

from pydantic import BaseModel, ConfigDict

from ..services.errors import WorkflowError


class WorkflowBaseModel(BaseModel):
    """Accepts field names or camelCase aliases; enums serialize as their wire strings."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )


# =============================================================================
# ERROR RESPONSES
# =============================================================================


class ErrorDetail(WorkflowBaseModel):
    message: str
    code: str


class ErrorResponse(WorkflowBaseModel):
    """``error`` is a stable machine code; ``message`` is safe to show users."""

    error: str
    message: str
    details: list[ErrorDetail] = []

    @classmethod
    def from_error(cls, exc: WorkflowError) -> "ErrorResponse":
        return cls(
            error=exc.code,
            message=exc.user_message,
            details=[ErrorDetail(message=exc.detail, code=exc.code)],
        )
