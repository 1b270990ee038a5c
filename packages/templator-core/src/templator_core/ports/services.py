"""Protocols for the collaborators the concrete phases delegate to."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from templator_schemas.phases import (
    GeneratedSection,
    ModuleMetadata,
    PackageReceipt,
    SectionValidation,
    ValidatedSection,
)
from templator_schemas.primitives import ExportFormat, SectionType
from templator_schemas.services import (
    CorrectionResult,
    RefinementResult,
    SectionDraft,
    SectionGenerationRequest,
)


@runtime_checkable
class GenerationServiceProtocol(Protocol):
    """Generative-content service producing markup for a section image."""

    async def generate_section(
        self, request: SectionGenerationRequest
    ) -> SectionDraft:
        """Generate markup and editable fields for one section."""
        raise NotImplementedError


@runtime_checkable
class ValidationServiceProtocol(Protocol):
    """Service judging generated markup against the export format rules."""

    async def validate_section(self, section: GeneratedSection) -> SectionValidation:
        """Validate one generated section."""
        raise NotImplementedError


@runtime_checkable
class RefinementServiceProtocol(Protocol):
    """Service iteratively improving a section toward a quality target."""

    async def refine_section(
        self, section: ValidatedSection, *, target_quality: float
    ) -> RefinementResult:
        """Refine one validated section."""
        raise NotImplementedError


@runtime_checkable
class ErrorCorrectionServiceProtocol(Protocol):
    """Service fixing validation errors in a section."""

    async def correct_section(self, section: ValidatedSection) -> CorrectionResult:
        """Correct the validation errors of one section."""
        raise NotImplementedError


@runtime_checkable
class PackagingServiceProtocol(Protocol):
    """Service storing a finished module."""

    async def package_module(
        self,
        module_id: str,
        files: dict[str, str],
        metadata: ModuleMetadata,
        export_format: ExportFormat,
    ) -> PackageReceipt:
        """Store the module files and return where they went."""
        raise NotImplementedError


@runtime_checkable
class SectionRegeneratorProtocol(Protocol):
    """Phase able to regenerate a single section outside a pipeline run."""

    async def regenerate_section(
        self,
        section_id: str,
        *,
        image_data_url: str | None = None,
        custom_prompt: str | None = None,
        name: str | None = None,
        section_type: SectionType = SectionType.CONTENT,
        model_id: str | None = None,
    ) -> GeneratedSection:
        """Generate fresh markup for one section."""
        raise NotImplementedError
