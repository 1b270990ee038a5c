"""CLI exit code taxonomy and error-to-exit-code registry.

Exit code ranges:
- 0: Success
- 10-19: Client/input errors (config, request validation)
- 20-29: Domain/processing errors (phases, storage)
- 30-39: External service errors (model endpoint)
- 40: Cancelled runs
- 99: Unexpected runtime errors
"""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """CLI exit codes by failure category."""

    SUCCESS = 0
    CONFIG_ERROR = 10
    VALIDATION_ERROR = 11
    PHASE_ERROR = 20
    STORAGE_ERROR = 23
    CONNECTION_ERROR = 30
    CANCELLED = 40
    RUNTIME_ERROR = 99


# Domain codes carry a prefix ("pipeline.", "storage.") to avoid collisions;
# CLI-level codes are stored bare.
ERROR_CODE_TO_EXIT_CODE: dict[str, ExitCode] = {
    "config_error": ExitCode.CONFIG_ERROR,
    "validation_error": ExitCode.VALIDATION_ERROR,
    "runtime_error": ExitCode.RUNTIME_ERROR,
    "pipeline.invalid_request": ExitCode.VALIDATION_ERROR,
    "pipeline.phase_validation_failed": ExitCode.PHASE_ERROR,
    "pipeline.phase_exhausted": ExitCode.PHASE_ERROR,
    "pipeline.cancelled": ExitCode.CANCELLED,
    "pipeline.unexpected_error": ExitCode.RUNTIME_ERROR,
    "storage.io_error": ExitCode.STORAGE_ERROR,
    "storage.serialization_error": ExitCode.STORAGE_ERROR,
    "llm.missing_api_key": ExitCode.CONFIG_ERROR,
    "llm.request_failed": ExitCode.CONNECTION_ERROR,
}


def resolve_exit_code(error_code: str) -> ExitCode:
    """Map an error code string to its exit code.

    Args:
        error_code: Qualified error code (e.g. ``pipeline.cancelled``).

    Returns:
        ExitCode: Registered exit code, or RUNTIME_ERROR for unknown codes.
    """
    return ERROR_CODE_TO_EXIT_CODE.get(error_code, ExitCode.RUNTIME_ERROR)
