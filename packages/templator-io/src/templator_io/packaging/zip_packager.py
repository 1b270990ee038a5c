"""Zip archive storage for finished modules."""

from __future__ import annotations

import asyncio
import zipfile
from pathlib import Path

from templator_core.ports.services import PackagingServiceProtocol
from templator_core.ports.storage import (
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)
from templator_schemas.phases import ModuleMetadata, PackageReceipt
from templator_schemas.primitives import ExportFormat


class ZipModulePackager(PackagingServiceProtocol):
    """Write each module as ``<output_dir>/<module_id>.<format>.zip``."""

    def __init__(self, output_dir: str) -> None:
        """Initialize the packager with its output directory."""
        self._output_dir = Path(output_dir)

    def archive_path(self, module_id: str, export_format: ExportFormat) -> Path:
        """Return the archive path for a module."""
        return self._output_dir / f"{module_id}.{ExportFormat(export_format)}.zip"

    async def package_module(
        self,
        module_id: str,
        files: dict[str, str],
        metadata: ModuleMetadata,
        export_format: ExportFormat,
    ) -> PackageReceipt:
        """Write the module archive.

        Returns:
            PackageReceipt: Archive location and size.

        Raises:
            StorageError: If the archive cannot be written.
        """
        path = self.archive_path(module_id, export_format)
        try:
            size = await asyncio.to_thread(_write_archive, path, files)
        except OSError as exc:
            raise StorageError(
                StorageErrorInfo(
                    code=StorageErrorCode.IO_ERROR,
                    message=str(exc),
                    details=StorageErrorDetails(
                        operation="package_module",
                        path=str(path),
                        reason=metadata.name,
                    ),
                )
            ) from exc
        return PackageReceipt(package_id=module_id, location=str(path), size_bytes=size)


def _write_archive(path: Path, files: dict[str, str]) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with zipfile.ZipFile(tmp_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name in sorted(files):
            archive.writestr(name, files[name])
    tmp_path.replace(path)
    return path.stat().st_size
