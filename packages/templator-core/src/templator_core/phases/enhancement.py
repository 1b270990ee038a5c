"""Enhancement: correct validation errors and refine weak sections."""

from __future__ import annotations

from templator_core.fanout import FanOutPool
from templator_core.phases.base import BasePhase, clamp_score, mean_score
from templator_core.ports.errors import CancellationError, PhaseValidationError
from templator_core.ports.phase import PhaseContext
from templator_core.ports.services import (
    ErrorCorrectionServiceProtocol,
    RefinementServiceProtocol,
)
from templator_schemas.events import SectionEvent
from templator_schemas.phases import (
    EditableField,
    EnhancedSection,
    EnhancedSections,
    Enhancement,
    EnhancementSummary,
    ValidatedSection,
    ValidatedSections,
)
from templator_schemas.pipeline import RequestOptions
from templator_schemas.primitives import (
    EnhancementType,
    JsonValue,
    LogLevel,
    PhaseName,
)

CORRECTION_IMPACT = 5.0
MULTI_ENHANCEMENT_BONUS = 5.0


def unchanged(section: ValidatedSection) -> EnhancedSection:
    """Enhanced view of a section that received no improvements."""
    return enhanced(section, section.html, list(section.editable_fields), [], 0)


def enhanced(
    section: ValidatedSection,
    html: str,
    fields: list[EditableField],
    enhancements: list[Enhancement],
    iterations: int,
) -> EnhancedSection:
    """Build the enhanced section and its final quality.

    Returns:
        EnhancedSection: Section with final markup, fields and quality.
    """
    final = section.quality_score + sum(e.impact for e in enhancements)
    if len(enhancements) > 2:
        final += MULTI_ENHANCEMENT_BONUS
    return EnhancedSection.model_validate(
        {
            **section.model_dump(),
            "enhancements": [e.model_dump() for e in enhancements],
            "final_html": html,
            "final_fields": [f.model_dump() for f in fields],
            "final_quality": clamp_score(final),
            "iterations_used": iterations,
        },
        strict=False,
    )


class EnhancementPhase(BasePhase[ValidatedSections, EnhancedSections]):
    """Fix validation errors and refine sections below the quality bar.

    Corrections run for sections with error findings; refinement runs for
    sections whose quality is under the request threshold. A section whose
    services fail is carried over unchanged.
    """

    name = PhaseName.ENHANCEMENT

    def __init__(
        self,
        refiner: RefinementServiceProtocol,
        corrector: ErrorCorrectionServiceProtocol,
    ) -> None:
        """Initialize the phase.

        Args:
            refiner: Iterative refinement service.
            corrector: Validation error correction service.
        """
        self._refiner = refiner
        self._corrector = corrector

    def is_enabled(self, options: RequestOptions) -> bool:
        """Run only when the request asks for enhancement.

        Returns:
            bool: Whether the phase runs.
        """
        return options.enable_enhancement

    def validate_input(
        self, payload: ValidatedSections, context: PhaseContext
    ) -> None:
        """Require at least one validated section.

        Raises:
            PhaseValidationError: If there is nothing to enhance.
        """
        if not payload.sections:
            raise PhaseValidationError(
                "At least one validated section is required",
                phase=self.name,
                field="sections",
                reason="empty",
            )

    async def execute(
        self, payload: ValidatedSections, context: PhaseContext
    ) -> EnhancedSections:
        """Enhance every section concurrently.

        Returns:
            EnhancedSections: Enhanced sections with before/after summaries.
        """
        threshold = context.quality_threshold

        async def _enhance(section: ValidatedSection) -> EnhancedSection:
            result = await self._enhance_section(section, threshold, context)
            if result.enhancements:
                await context.log(
                    SectionEvent.ENHANCED,
                    f"Section {section.section_id} enhanced",
                    data={
                        "section_id": section.section_id,
                        "applied": len(result.enhancements),
                        "final_quality": result.final_quality,
                    },
                )
            return result

        def _keep(section: ValidatedSection, exc: Exception) -> EnhancedSection:
            return unchanged(section)

        pool = FanOutPool(context.max_parallel)
        outcomes = await pool.gather(payload.sections, _enhance, _keep, context)
        for outcome in outcomes:
            if outcome.fell_back:
                await context.log(
                    SectionEvent.FALLBACK,
                    f"Section {outcome.value.section_id} kept unenhanced",
                    level=LogLevel.WARN,
                    data={
                        "section_id": outcome.value.section_id,
                        "error": outcome.error,
                    },
                )
        return self._collect([outcome.value for outcome in outcomes])

    def calculate_quality_score(self, output: EnhancedSections) -> float:
        """Mean final section quality.

        Returns:
            float: Score on a 0-100 scale.
        """
        return output.final_quality

    def get_warnings(self, output: EnhancedSections) -> list[str]:
        """Flag sections that stayed weak.

        Returns:
            list[str]: Warning messages.
        """
        warnings: list[str] = []
        if output.final_quality < 75:
            warnings.append(
                f"Final quality {output.final_quality:.1f} is below target"
            )
        flat = [s for s in output.summaries if s.improvement <= 0]
        if flat:
            warnings.append(f"{len(flat)} section(s) showed no improvement")
        low = [s for s in output.sections if s.final_quality < 60]
        if low:
            warnings.append(f"{len(low)} section(s) still below 60 quality")
        if output.iterations_performed == 0:
            warnings.append("No refinement iterations were performed")
        return warnings

    def get_metadata(self, output: EnhancedSections) -> dict[str, JsonValue]:
        """Describe the enhancement pass.

        Returns:
            dict[str, JsonValue]: Metadata entries.
        """
        return {
            "sections": len(output.sections),
            "enhancements": sum(len(s.enhancements) for s in output.sections),
            "iterations": output.iterations_performed,
        }

    def create_fallback_result(self, context: PhaseContext) -> EnhancedSections:
        """Carry every validated section over unchanged.

        Returns:
            EnhancedSections: Unenhanced sections.
        """
        payload = context.payload
        sections = payload.sections if isinstance(payload, ValidatedSections) else []
        return self._collect([unchanged(section) for section in sections])

    async def _enhance_section(
        self, section: ValidatedSection, threshold: float, context: PhaseContext
    ) -> EnhancedSection:
        html, fields = section.html, list(section.editable_fields)
        applied: list[Enhancement] = []
        iterations = 0
        if section.validation.errors:
            corrected = await self._corrector.correct_section(section)
            html = corrected.html
            fields = list(corrected.editable_fields) or fields
            descriptions = corrected.corrections or ["Validation errors corrected"]
            applied.extend(
                Enhancement(
                    enhancement_type=EnhancementType.CORRECTION,
                    description=description,
                    impact=CORRECTION_IMPACT,
                )
                for description in descriptions
            )
        context.checkpoint()
        if section.quality_score < threshold:
            current = section.model_copy(
                update={"html": html, "editable_fields": fields}
            )
            try:
                refined = await self._refiner.refine_section(
                    current, target_quality=threshold
                )
            except CancellationError:
                raise
            except Exception as exc:
                if not applied:
                    raise
                # Corrections already applied survive a failed refinement.
                await context.log(
                    SectionEvent.FALLBACK,
                    f"Section {section.section_id} kept corrections only",
                    level=LogLevel.WARN,
                    data={
                        "section_id": section.section_id,
                        "error": str(exc) or type(exc).__name__,
                    },
                )
                return enhanced(section, html, fields, applied, iterations)
            html = refined.html
            fields = list(refined.editable_fields) or fields
            iterations = refined.iterations
            applied.append(
                Enhancement(
                    enhancement_type=EnhancementType.REFINEMENT,
                    description="; ".join(refined.notes)
                    or f"Refined over {refined.iterations} iteration(s)",
                    impact=refined.quality_gain,
                )
            )
        return enhanced(section, html, fields, applied, iterations)

    def _collect(self, sections: list[EnhancedSection]) -> EnhancedSections:
        summaries = [
            EnhancementSummary(
                section_id=section.section_id,
                applied=len(section.enhancements),
                quality_before=section.quality_score,
                quality_after=section.final_quality,
            )
            for section in sections
        ]
        return EnhancedSections(
            sections=sections,
            summaries=summaries,
            final_quality=mean_score([s.final_quality for s in sections]),
            iterations_performed=sum(s.iterations_used for s in sections),
        )
