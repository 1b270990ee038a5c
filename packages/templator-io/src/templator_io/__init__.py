"""templator-io: Ingest, storage and packaging adapters for templator."""

from templator_io.ingest import detect_mime_type, load_design_upload
from templator_io.packaging import ZipModulePackager
from templator_io.storage import (
    CompositeLogSink,
    CompositeProgressSink,
    ConsoleLogSink,
    FileSystemLogStore,
    FileSystemProgressSink,
    InMemoryProgressSink,
    NoopLogSink,
    StorageLogSink,
    build_log_sink,
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
    "ZipModulePackager",
    "build_log_sink",
    "detect_mime_type",
    "load_design_upload",
]
