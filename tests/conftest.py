"""Common pytest configuration."""

from pathlib import Path

import coverage
import pytest

from tests.helpers.builders import RecordingLogSink, png_bytes


def pytest_sessionfinish(session: object, exitstatus: int) -> None:
    """Ensure coverage data connections are closed to avoid ResourceWarnings."""
    cov = coverage.Coverage.current()
    if cov is None:
        return

    data = cov.get_data()
    close = getattr(data, "close", None)
    if callable(close):
        close()


@pytest.fixture
def design_png() -> bytes:
    """Noise PNG design image.

    Returns:
        bytes: PNG bytes.
    """
    return png_bytes(96, 160)


@pytest.fixture
def design_file(tmp_path: Path, design_png: bytes) -> Path:
    """Design image written to disk.

    Returns:
        Path: Path to the PNG file.
    """
    path = tmp_path / "design.png"
    path.write_bytes(design_png)
    return path


@pytest.fixture
def log_sink() -> RecordingLogSink:
    """In-memory log sink.

    Returns:
        RecordingLogSink: Empty sink.
    """
    return RecordingLogSink()
