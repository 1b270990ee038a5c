"""Unit tests for filesystem log storage."""

import asyncio
import json
from pathlib import Path

import pytest

from templator_core.ports.storage import StorageError, StorageErrorCode
from templator_io.storage.filesystem import (
    UNASSIGNED_LOG_NAME,
    FileSystemLogStore,
    safe_file_stem,
)
from templator_schemas.logs import LogEntry
from templator_schemas.primitives import LogLevel


def _entry(event: str, pipeline_id: str | None = "run-1") -> LogEntry:
    return LogEntry(
        timestamp="2026-01-26T12:00:00Z",
        level=LogLevel.INFO,
        event=event,
        pipeline_id=pipeline_id,
        message=f"{event} happened",
    )


@pytest.mark.parametrize(
    ("pipeline_id", "expected"),
    [
        ("run-1", "run-1"),
        ("team/run 7", "team_run_7"),
        ("../escape", "escape"),
        (None, UNASSIGNED_LOG_NAME),
        ("", UNASSIGNED_LOG_NAME),
        ("...", UNASSIGNED_LOG_NAME),
    ],
)
def test_safe_file_stem(pipeline_id: str | None, expected: str) -> None:
    """Run ids become safe file stems."""
    assert safe_file_stem(pipeline_id) == expected


def test_log_store_appends_jsonl_per_run(tmp_path: Path) -> None:
    """Entries land in one file per run, in order."""
    store = FileSystemLogStore(str(tmp_path / "logs"))

    asyncio.run(store.append_log(_entry("run_started")))
    asyncio.run(
        store.append_logs([
            _entry("phase_started"),
            _entry("run_rejected", pipeline_id=None),
            _entry("run_completed"),
        ])
    )

    run_lines = Path(store.log_path("run-1")).read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["event"] for line in run_lines] == [
        "run_started",
        "phase_started",
        "run_completed",
    ]
    unassigned = Path(store.log_path(None))
    assert unassigned.name == f"{UNASSIGNED_LOG_NAME}.jsonl"
    assert json.loads(unassigned.read_text(encoding="utf-8"))["event"] == (
        "run_rejected"
    )


def test_log_store_wraps_os_errors(tmp_path: Path) -> None:
    """Filesystem failures surface as storage errors."""
    blocker = tmp_path / "logs"
    blocker.write_text("not a directory", encoding="utf-8")
    store = FileSystemLogStore(str(blocker))

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(store.append_log(_entry("run_started")))

    info = excinfo.value.info
    assert info.code == StorageErrorCode.IO_ERROR
    assert info.details is not None
    assert info.details.operation == "append_logs"
    assert info.details.pipeline_id == "run-1"
    response = info.to_error_response()
    assert response.code == "storage.io_error"
    assert response.exit_code == 23
