"""Generation, refinement and correction services backed by a model."""

from __future__ import annotations

from pydantic import Field

from templator_core.ports.services import (
    ErrorCorrectionServiceProtocol,
    GenerationServiceProtocol,
    RefinementServiceProtocol,
)
from templator_llm.openai_runtime import OpenAICompatibleRuntime
from templator_llm.prompts import (
    CORRECTION_INSTRUCTIONS,
    GENERATION_INSTRUCTIONS,
    REFINEMENT_INSTRUCTIONS,
    findings_prompt,
    generation_prompt,
)
from templator_schemas.base import BaseSchema
from templator_schemas.phases import EditableField, ValidatedSection
from templator_schemas.primitives import Score
from templator_schemas.services import (
    CorrectionResult,
    RefinementResult,
    SectionDraft,
    SectionGenerationRequest,
)


class RefinedMarkup(BaseSchema):
    """Structured output of one refinement pass."""

    html: str = Field(..., min_length=1, description="Improved markup")
    editable_fields: list[EditableField] = Field(
        default_factory=list, description="Editable fields"
    )
    estimated_quality: Score = Field(..., description="Self-assessed quality")
    notes: list[str] = Field(default_factory=list, description="Changes made")


class LlmGenerationService(GenerationServiceProtocol):
    """Generate section markup from the section screenshot."""

    def __init__(self, runtime: OpenAICompatibleRuntime) -> None:
        """Initialize the service with a model runtime."""
        self._runtime = runtime

    async def generate_section(
        self, request: SectionGenerationRequest
    ) -> SectionDraft:
        """Generate markup and editable fields for one section.

        Returns:
            SectionDraft: Model output tagged with the model used.
        """
        model_id = request.model_id or self._runtime.endpoint.model_id
        draft = await self._runtime.run_structured(
            generation_prompt(
                request.section_name, request.section_type, request.hints
            ),
            output_type=SectionDraft,
            instructions=GENERATION_INSTRUCTIONS,
            model_id=model_id,
            image_data_url=request.image_data_url,
        )
        return draft.model_copy(update={"model_id": draft.model_id or model_id})


class LlmRefinementService(RefinementServiceProtocol):
    """Refine a section in passes until the model reports the target quality."""

    def __init__(
        self, runtime: OpenAICompatibleRuntime, *, max_iterations: int = 2
    ) -> None:
        """Initialize the service.

        Args:
            runtime: Model runtime.
            max_iterations: Refinement passes allowed per section.

        Raises:
            ValueError: If max_iterations is not positive.
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be positive")
        self._runtime = runtime
        self._max_iterations = max_iterations

    async def refine_section(
        self, section: ValidatedSection, *, target_quality: float
    ) -> RefinementResult:
        """Run refinement passes on one section.

        Returns:
            RefinementResult: Final markup, passes used and estimated gain.
        """
        html, fields = section.html, list(section.editable_fields)
        findings = [finding.message for finding in section.validation.findings]
        estimate = section.quality_score
        notes: list[str] = []
        iterations = 0
        while iterations < self._max_iterations and estimate < target_quality:
            refined = await self._runtime.run_structured(
                findings_prompt(html, findings, target=target_quality),
                output_type=RefinedMarkup,
                instructions=REFINEMENT_INSTRUCTIONS,
                model_id=section.model_id,
            )
            iterations += 1
            html = refined.html
            fields = list(refined.editable_fields) or fields
            notes.extend(refined.notes)
            estimate = max(estimate, refined.estimated_quality)
            # Later passes polish the refined markup rather than old findings
            findings = []
        return RefinementResult(
            html=html,
            editable_fields=fields,
            iterations=iterations,
            quality_gain=max(0.0, estimate - section.quality_score),
            notes=notes,
        )


class LlmErrorCorrectionService(ErrorCorrectionServiceProtocol):
    """Ask the model to fix a section's validation errors."""

    def __init__(self, runtime: OpenAICompatibleRuntime) -> None:
        """Initialize the service with a model runtime."""
        self._runtime = runtime

    async def correct_section(self, section: ValidatedSection) -> CorrectionResult:
        """Correct the error findings of one section.

        Returns:
            CorrectionResult: Corrected markup and the corrections applied.
        """
        errors = [finding.message for finding in section.validation.errors]
        return await self._runtime.run_structured(
            findings_prompt(section.html, errors, target=None),
            output_type=CorrectionResult,
            instructions=CORRECTION_INSTRUCTIONS,
            model_id=section.model_id,
        )
