"""Design ingest helpers."""

from templator_io.ingest.design_loader import detect_mime_type, load_design_upload

__all__ = ["detect_mime_type", "load_design_upload"]
