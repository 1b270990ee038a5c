"""Structured errors for the model runtime."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from templator_schemas.base import BaseSchema
from templator_schemas.exit_codes import resolve_exit_code
from templator_schemas.responses import ErrorDetails, ErrorResponse


class LlmErrorCode(StrEnum):
    """Error codes for model calls."""

    MISSING_API_KEY = "missing_api_key"
    REQUEST_FAILED = "request_failed"


class LlmErrorDetails(BaseSchema):
    """Context for a failed model call."""

    model_id: str | None = Field(None, description="Model identifier")
    base_url: str | None = Field(None, description="Endpoint base URL")
    env_var: str | None = Field(None, description="API key environment variable")
    reason: str | None = Field(None, description="Underlying error type")


class LlmErrorInfo(BaseSchema):
    """Structured model error data."""

    code: LlmErrorCode = Field(..., description="Model error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: LlmErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert to the standard error response schema.

        Returns:
            ErrorResponse: API error response payload.
        """
        details = None
        if self.details is not None:
            details = ErrorDetails(
                field=self.details.env_var or self.details.model_id,
                provided=self.details.reason,
            )
        code = f"llm.{self.code}"
        return ErrorResponse(
            code=code,
            message=self.message,
            details=details,
            exit_code=int(resolve_exit_code(code)),
        )


class LlmError(Exception):
    """Raised when the model endpoint cannot be used."""

    def __init__(self, info: LlmErrorInfo) -> None:
        """Initialize the error.

        Args:
            info: Structured error information.
        """
        super().__init__(info.message)
        self.info = info
