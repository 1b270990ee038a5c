"""Module packaging adapters."""

from templator_io.packaging.zip_packager import ZipModulePackager

__all__ = ["ZipModulePackager"]
