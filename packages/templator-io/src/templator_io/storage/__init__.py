"""Storage adapters for logs and progress."""

from templator_io.storage.filesystem import FileSystemLogStore
from templator_io.storage.log_sink import (
    CompositeLogSink,
    ConsoleLogSink,
    NoopLogSink,
    StorageLogSink,
    build_log_sink,
)
from templator_io.storage.progress_sink import (
    CompositeProgressSink,
    FileSystemProgressSink,
    InMemoryProgressSink,
)

__all__ = [
    "CompositeLogSink",
    "CompositeProgressSink",
    "ConsoleLogSink",
    "FileSystemLogStore",
    "FileSystemProgressSink",
    "InMemoryProgressSink",
    "NoopLogSink",
    "StorageLogSink",
    "build_log_sink",
]
