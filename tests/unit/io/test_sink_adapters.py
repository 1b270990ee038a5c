"""Unit tests for log/progress sink adapters."""

import asyncio
import io
import json
from pathlib import Path

import pytest

from templator_core.ports.orchestrator import LogSinkProtocol
from templator_io.storage import (
    CompositeLogSink,
    CompositeProgressSink,
    ConsoleLogSink,
    FileSystemProgressSink,
    InMemoryProgressSink,
    NoopLogSink,
    StorageLogSink,
    build_log_sink,
)
from templator_io.storage.filesystem import FileSystemLogStore
from templator_schemas.config import LoggingConfig, LogSinkConfig
from templator_schemas.events import PhaseEvent
from templator_schemas.logs import LogEntry
from templator_schemas.primitives import LogLevel, LogSinkType, PhaseName, RunStatus
from templator_schemas.progress import ProgressSnapshot, ProgressUpdate

TIMESTAMP = "2026-01-26T12:00:00Z"


class _StubLogSink(LogSinkProtocol):
    def __init__(self) -> None:
        self.entries: list[LogEntry] = []

    async def emit_log(self, entry: LogEntry) -> None:
        self.entries.append(entry)


def _entry(level: LogLevel = LogLevel.INFO) -> LogEntry:
    return LogEntry(
        timestamp=TIMESTAMP,
        level=level,
        event="phase_started",
        pipeline_id="run-1",
        phase=PhaseName.GENERATION,
        message="Phase started",
    )


def _update(pipeline_id: str = "run-1") -> ProgressUpdate:
    snapshot = ProgressSnapshot(
        pipeline_id=pipeline_id,
        status=RunStatus.RUNNING,
        current_phase=PhaseName.GENERATION,
        current_phase_index=1,
        percent_complete=10.0,
        started_at=TIMESTAMP,
        updated_at=TIMESTAMP,
    )
    return ProgressUpdate(
        pipeline_id=pipeline_id,
        event=PhaseEvent.STARTED,
        timestamp=TIMESTAMP,
        phase=PhaseName.GENERATION,
        snapshot=snapshot,
    )


def test_console_log_sink_writes_jsonl() -> None:
    """Console sink writes one JSON object per line."""
    stream = io.StringIO()
    sink = ConsoleLogSink(stream=stream)

    asyncio.run(sink.emit_log(_entry()))

    payload = json.loads(stream.getvalue())
    assert payload["event"] == "phase_started"
    assert payload["phase"] == "generation"
    assert payload["data"] is None


def test_console_log_sink_filters_below_min_level() -> None:
    """Entries under the minimum level are dropped."""
    stream = io.StringIO()
    sink = ConsoleLogSink(stream=stream, min_level=LogLevel.WARN)

    asyncio.run(sink.emit_log(_entry(LogLevel.INFO)))
    asyncio.run(sink.emit_log(_entry(LogLevel.ERROR)))

    lines = stream.getvalue().splitlines()
    assert [json.loads(line)["level"] for line in lines] == ["error"]


def test_storage_log_sink_persists_entries(tmp_path: Path) -> None:
    """Storage sink writes through the log store."""
    store = FileSystemLogStore(str(tmp_path))
    asyncio.run(StorageLogSink(store).emit_log(_entry()))

    content = Path(store.log_path("run-1")).read_text(encoding="utf-8")
    assert json.loads(content)["message"] == "Phase started"


def test_composite_and_noop_log_sinks() -> None:
    """Composite sink fans out; noop sink drops entries."""
    first, second = _StubLogSink(), _StubLogSink()
    sink = CompositeLogSink([first, NoopLogSink(), second])

    asyncio.run(sink.emit_log(_entry()))

    assert len(first.entries) == 1
    assert len(second.entries) == 1


def test_build_log_sink_single_sink_is_returned_directly(tmp_path: Path) -> None:
    """A single configured sink is not wrapped."""
    store = FileSystemLogStore(str(tmp_path))
    sink = build_log_sink(LoggingConfig(), store)
    assert isinstance(sink, StorageLogSink)


def test_build_log_sink_combines_configured_sinks(tmp_path: Path) -> None:
    """Several sinks become a composite that writes to each."""
    store = FileSystemLogStore(str(tmp_path))
    stream = io.StringIO()
    config = LoggingConfig(
        sinks=[
            LogSinkConfig(type=LogSinkType.FILE),
            LogSinkConfig(type=LogSinkType.CONSOLE),
        ]
    )

    sink = build_log_sink(config, store, stream=stream)
    asyncio.run(sink.emit_log(_entry()))

    assert isinstance(sink, CompositeLogSink)
    assert Path(store.log_path("run-1")).exists()
    assert "phase_started" in stream.getvalue()


def test_logging_config_rejects_duplicate_sinks() -> None:
    """Each sink type may appear once."""
    with pytest.raises(ValueError, match="duplicates"):
        LoggingConfig(
            sinks=[
                LogSinkConfig(type=LogSinkType.NOOP),
                LogSinkConfig(type=LogSinkType.NOOP),
            ]
        )


def test_filesystem_progress_sink_appends_updates(tmp_path: Path) -> None:
    """Progress updates are appended as JSONL without null fields."""
    sink = FileSystemProgressSink(str(tmp_path / "progress"))

    asyncio.run(sink.emit_progress(_update()))
    asyncio.run(sink.emit_progress(_update()))

    lines = sink.progress_path("run-1").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    payload = json.loads(lines[0])
    assert payload["event"] == "phase_started"
    assert payload["snapshot"]["current_phase"] == "generation"
    assert "message" not in payload


def test_in_memory_and_composite_progress_sinks() -> None:
    """Composite progress sink forwards to every sink in order."""
    first, second = InMemoryProgressSink(), InMemoryProgressSink()
    sink = CompositeProgressSink([first, second])

    asyncio.run(sink.emit_progress(_update("run-1")))
    asyncio.run(sink.emit_progress(_update("run-2")))

    assert [u.pipeline_id for u in first.updates] == ["run-1", "run-2"]
    assert [u.pipeline_id for u in second.for_pipeline("run-2")] == ["run-2"]
    first.updates.clear()
    assert len(first.updates) == 2
