"""Load design images from disk into pipeline payloads."""

from __future__ import annotations

import asyncio
import mimetypes
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from templator_core.ports.storage import (
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)
from templator_schemas.pipeline import DesignUpload

DEFAULT_MIME_TYPE = "application/octet-stream"


async def load_design_upload(path: str | Path) -> DesignUpload:
    """Read a design image file.

    Args:
        path: Image file on disk.

    Returns:
        DesignUpload: Raw bytes with the file name and detected mime type.

    Raises:
        StorageError: If the file cannot be read.
    """
    return await asyncio.to_thread(_load_design_sync, Path(path))


def detect_mime_type(path: Path) -> str:
    """Mime type from the image header, then the extension."""
    try:
        with Image.open(path) as image:
            detected = Image.MIME.get(image.format or "")
    except (UnidentifiedImageError, OSError):
        detected = None
    if detected:
        return detected
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or DEFAULT_MIME_TYPE


def _load_design_sync(path: Path) -> DesignUpload:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise StorageError(
            StorageErrorInfo(
                code=StorageErrorCode.IO_ERROR,
                message=f"Cannot read design file: {exc.strerror or exc}",
                details=StorageErrorDetails(
                    operation="load_design", path=str(path), reason=type(exc).__name__
                ),
            )
        ) from exc
    return DesignUpload(
        data=data, file_name=path.name, mime_type=detect_mime_type(path)
    )
