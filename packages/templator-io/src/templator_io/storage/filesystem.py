"""Filesystem-backed JSONL log storage."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Sequence
from pathlib import Path

from templator_core.ports.storage import (
    LogStoreProtocol,
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)
from templator_schemas.base import BaseSchema
from templator_schemas.logs import LogEntry
from templator_schemas.primitives import PipelineId

UNASSIGNED_LOG_NAME = "_unassigned"
_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_stem(pipeline_id: str | None) -> str:
    """File stem for a pipeline id; rejected requests without one share a file."""
    if not pipeline_id:
        return UNASSIGNED_LOG_NAME
    cleaned = _UNSAFE_NAME_CHARS.sub("_", pipeline_id).strip("._")
    return cleaned or UNASSIGNED_LOG_NAME


class FileSystemLogStore(LogStoreProtocol):
    """JSONL log store writing one file per pipeline run."""

    def __init__(self, logs_dir: str) -> None:
        """Initialize the log store."""
        self._logs_dir = Path(logs_dir)

    def log_path(self, pipeline_id: PipelineId | None) -> str:
        """Return the log file path for a run."""
        return str(self._logs_dir / f"{safe_file_stem(pipeline_id)}.jsonl")

    async def append_log(self, entry: LogEntry) -> None:
        """Append a single log entry.

        Raises:
            StorageError: If the log entry cannot be written.
        """
        await self.append_logs([entry])

    async def append_logs(self, entries: list[LogEntry]) -> None:
        """Append log entries, grouped by run, preserving order.

        Raises:
            StorageError: If the log entries cannot be written.
        """
        grouped: dict[str | None, list[LogEntry]] = {}
        for entry in entries:
            grouped.setdefault(entry.pipeline_id, []).append(entry)
        for pipeline_id, group in grouped.items():
            path = Path(self.log_path(pipeline_id))
            try:
                await asyncio.to_thread(append_jsonl, path, group)
            except OSError as exc:
                raise StorageError(
                    StorageErrorInfo(
                        code=StorageErrorCode.IO_ERROR,
                        message=str(exc),
                        details=StorageErrorDetails(
                            operation="append_logs",
                            pipeline_id=pipeline_id,
                            path=str(path),
                        ),
                    )
                ) from exc


def append_jsonl(
    path: Path, payloads: Sequence[BaseSchema], *, exclude_none: bool = False
) -> None:
    """Append models to a JSONL file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as handle:
        for payload in payloads:
            handle.write(payload.model_dump_json(exclude_none=exclude_none) + "\n")
