"""Progress sink adapters for streaming updates."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from pathlib import Path

from templator_core.ports.orchestrator import ProgressSinkProtocol
from templator_core.ports.storage import (
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)
from templator_io.storage.filesystem import append_jsonl, safe_file_stem
from templator_schemas.progress import ProgressUpdate


class FileSystemProgressSink(ProgressSinkProtocol):
    """Progress sink appending JSONL updates to one file per run."""

    def __init__(self, progress_dir: str) -> None:
        """Initialize the progress sink with a directory."""
        self._progress_dir = Path(progress_dir)

    def progress_path(self, pipeline_id: str) -> Path:
        """Return the progress file for a run."""
        return self._progress_dir / f"{safe_file_stem(pipeline_id)}.jsonl"

    async def emit_progress(self, update: ProgressUpdate) -> None:
        """Append a progress update to the run's JSONL file.

        Raises:
            StorageError: If the update cannot be written.
        """
        path = self.progress_path(update.pipeline_id)
        try:
            await asyncio.to_thread(append_jsonl, path, [update], exclude_none=True)
        except OSError as exc:
            raise StorageError(
                StorageErrorInfo(
                    code=StorageErrorCode.IO_ERROR,
                    message=str(exc),
                    details=StorageErrorDetails(
                        operation="emit_progress",
                        pipeline_id=update.pipeline_id,
                        path=str(path),
                    ),
                )
            ) from exc


class InMemoryProgressSink(ProgressSinkProtocol):
    """Progress sink that stores updates in memory."""

    def __init__(self) -> None:
        """Initialize the in-memory progress sink."""
        self._updates: list[ProgressUpdate] = []

    @property
    def updates(self) -> list[ProgressUpdate]:
        """Return a copy of stored progress updates."""
        return list(self._updates)

    def for_pipeline(self, pipeline_id: str) -> list[ProgressUpdate]:
        """Stored updates for one run, in emission order."""
        return [u for u in self._updates if u.pipeline_id == pipeline_id]

    async def emit_progress(self, update: ProgressUpdate) -> None:
        """Store a progress update in memory."""
        self._updates.append(update)


class CompositeProgressSink(ProgressSinkProtocol):
    """Progress sink that forwards updates to multiple sinks."""

    def __init__(self, sinks: Iterable[ProgressSinkProtocol]) -> None:
        """Initialize the composite progress sink."""
        self._sinks = list(sinks)

    async def emit_progress(self, update: ProgressUpdate) -> None:
        """Forward progress updates to each sink."""
        for sink in self._sinks:
            await sink.emit_progress(update)
