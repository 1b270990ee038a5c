"""Protocol definitions and errors for log persistence."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from templator_schemas.base import BaseSchema
from templator_schemas.exit_codes import resolve_exit_code
from templator_schemas.logs import LogEntry
from templator_schemas.primitives import PipelineId
from templator_schemas.responses import ErrorDetails, ErrorResponse


class StorageErrorCode(StrEnum):
    """Categorized error codes for storage operations."""

    IO_ERROR = "io_error"
    SERIALIZATION_ERROR = "serialization_error"


class StorageErrorDetails(BaseSchema):
    """Detailed storage error context."""

    operation: str | None = Field(None, description="Storage operation name")
    pipeline_id: PipelineId | None = Field(None, description="Run identifier")
    path: str | None = Field(None, description="Filesystem path")
    reason: str | None = Field(None, description="Additional error context")


class StorageErrorInfo(BaseSchema):
    """Structured storage error data."""

    code: StorageErrorCode = Field(..., description="Storage error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: StorageErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert storage error info to the standard error response schema.

        Returns:
            ErrorResponse: API error response payload.
        """
        details = None
        if self.details is not None:
            details = ErrorDetails(
                field=self.details.operation,
                provided=self.details.path or self.details.reason,
            )
        code = f"storage.{self.code}"
        return ErrorResponse(
            code=code,
            message=self.message,
            details=details,
            exit_code=int(resolve_exit_code(code)),
        )


class StorageError(Exception):
    """Raised when a storage operation fails."""

    def __init__(self, info: StorageErrorInfo) -> None:
        """Initialize the storage error.

        Args:
            info: Structured storage error information.
        """
        super().__init__(info.message)
        self.info = info


@runtime_checkable
class LogStoreProtocol(Protocol):
    """Protocol for JSONL log storage."""

    async def append_log(self, entry: LogEntry) -> None:
        """Append a single log entry."""
        raise NotImplementedError

    async def append_logs(self, entries: list[LogEntry]) -> None:
        """Append multiple log entries in order."""
        raise NotImplementedError

    def log_path(self, pipeline_id: PipelineId | None) -> str:
        """Return where logs for a run are written."""
        raise NotImplementedError
