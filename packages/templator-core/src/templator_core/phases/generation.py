"""Generation: produce markup and editable fields for every section."""

from __future__ import annotations

from templator_core.fanout import FanOutPool
from templator_core.phases.base import (
    BasePhase,
    clamp_score,
    mean_score,
    placeholder_markup,
)
from templator_core.ports.errors import PhaseExecutionError, PhaseValidationError
from templator_core.ports.phase import PhaseContext
from templator_core.ports.services import GenerationServiceProtocol
from templator_schemas.events import SectionEvent
from templator_schemas.phases import (
    DesignSection,
    EditableField,
    GeneratedSection,
    GeneratedSections,
    ProcessedInput,
    QualityIssue,
)
from templator_schemas.primitives import (
    FieldType,
    IssueCategory,
    IssueSeverity,
    JsonValue,
    LogLevel,
    PhaseName,
    SectionType,
)
from templator_schemas.services import SectionDraft, SectionGenerationRequest

PLACEHOLDER_QUALITY = 30.0
FALLBACK_QUALITY = 40.0


def score_markup(
    html: str, fields: list[EditableField], confidence: float | None
) -> float:
    """Heuristic quality of generated markup.

    Returns:
        float: Score on a 0-100 scale.
    """
    score = 50.0
    if "class=" in html:
        score += 15
    if "aria-" in html:
        score += 10
    if "alt=" in html:
        score += 5
    if len(fields) >= 3:
        score += 10
    if len(fields) >= 5:
        score += 5
    if confidence is not None:
        score *= confidence
    return clamp_score(score)


def markup_issues(html: str, fields: list[EditableField]) -> list[QualityIssue]:
    """Soft issues visible in generated markup.

    Returns:
        list[QualityIssue]: Issues found.
    """
    issues: list[QualityIssue] = []
    if "class=" not in html:
        issues.append(
            QualityIssue(
                severity=IssueSeverity.WARNING,
                category=IssueCategory.STYLING,
                message="No utility classes found in markup",
                suggestion="Style elements with utility classes",
            )
        )
    if "aria-" not in html:
        issues.append(
            QualityIssue(
                severity=IssueSeverity.INFO,
                category=IssueCategory.ACCESSIBILITY,
                message="No ARIA attributes found",
                suggestion="Label landmarks and controls with aria attributes",
            )
        )
    if len(fields) < 2:
        issues.append(
            QualityIssue(
                severity=IssueSeverity.WARNING,
                category=IssueCategory.EDITABILITY,
                message="Few editable fields defined",
                suggestion="Expose headings, copy and images as editable fields",
            )
        )
    return issues


def placeholder_section(
    section_id: str,
    name: str,
    section_type: SectionType | str,
    *,
    quality: float,
    reason: str,
) -> GeneratedSection:
    """Generated-section substitute with a single editable heading."""
    heading = EditableField(
        field_id=f"{section_id}_heading",
        label=f"{name} heading",
        field_type=FieldType.TEXT,
        selector=f'[data-section-id="{section_id}"] h2',
        default_value=name,
    )
    return GeneratedSection(
        section_id=section_id,
        name=name,
        section_type=SectionType(section_type),
        html=placeholder_markup(
            section_id, name, "Content for this section could not be generated."
        ),
        editable_fields=[heading],
        quality_score=quality,
        issues=[
            QualityIssue(
                severity=IssueSeverity.ERROR,
                category=IssueCategory.GENERATION,
                message=f"Generation failed: {reason}",
                suggestion="Regenerate this section",
            )
        ],
        fallback_used=True,
    )


class GenerationPhase(BasePhase[ProcessedInput, GeneratedSections]):
    """Generate section markup through the generative-content service.

    Sections are generated concurrently. A failing section is replaced by a
    placeholder while its siblings continue; the phase fails only when every
    section failed.
    """

    name = PhaseName.GENERATION

    def __init__(
        self,
        service: GenerationServiceProtocol,
        *,
        default_model_id: str | None = None,
    ) -> None:
        """Initialize the phase.

        Args:
            service: Generative-content service.
            default_model_id: Model used when the request does not pick one.
        """
        self._service = service
        self._default_model_id = default_model_id

    def validate_input(self, payload: ProcessedInput, context: PhaseContext) -> None:
        """Require at least one section with an image.

        Raises:
            PhaseValidationError: If there is nothing to generate.
        """
        if not payload.sections:
            raise PhaseValidationError(
                "At least one design section is required",
                phase=self.name,
                field="sections",
                reason="empty",
            )

    async def execute(
        self, payload: ProcessedInput, context: PhaseContext
    ) -> GeneratedSections:
        """Generate every section.

        Returns:
            GeneratedSections: Generated sections with their mean quality.

        Raises:
            PhaseExecutionError: If every section failed.
        """
        model_id = context.options.model_id or self._default_model_id
        hints = list(payload.complexity.processing_hints)

        async def _generate(section: DesignSection) -> GeneratedSection:
            draft = await self._service.generate_section(
                SectionGenerationRequest(
                    section_id=section.section_id,
                    section_name=section.name,
                    section_type=SectionType(section.section_type),
                    image_data_url=section.image_data_url,
                    model_id=model_id,
                    hints=hints,
                )
            )
            return self._from_draft(
                section.section_id,
                section.name,
                SectionType(section.section_type),
                draft,
                model_id,
            )

        def _placeholder(section: DesignSection, exc: Exception) -> GeneratedSection:
            return placeholder_section(
                section.section_id,
                section.name,
                section.section_type,
                quality=PLACEHOLDER_QUALITY,
                reason=str(exc) or type(exc).__name__,
            )

        pool = FanOutPool(context.max_parallel)
        outcomes = await pool.gather(payload.sections, _generate, _placeholder, context)
        failed = [outcome for outcome in outcomes if outcome.fell_back]
        if len(failed) == len(outcomes):
            raise PhaseExecutionError(
                f"All {len(outcomes)} sections failed to generate: {failed[0].error}",
                phase=self.name,
                reason="all_sections_failed",
            )
        for outcome in failed:
            await context.log(
                SectionEvent.FALLBACK,
                f"Section {outcome.value.section_id} replaced by placeholder",
                level=LogLevel.WARN,
                data={"section_id": outcome.value.section_id, "error": outcome.error},
            )
        sections = [outcome.value for outcome in outcomes]
        return GeneratedSections(
            sections=sections,
            overall_quality=mean_score([s.quality_score for s in sections]),
            model_id=model_id,
        )

    def calculate_quality_score(self, output: GeneratedSections) -> float:
        """Mean section quality.

        Returns:
            float: Score on a 0-100 scale.
        """
        return output.overall_quality

    def get_warnings(self, output: GeneratedSections) -> list[str]:
        """Flag weak or substituted sections.

        Returns:
            list[str]: Warning messages.
        """
        warnings: list[str] = []
        if output.overall_quality < 60:
            warnings.append(
                f"Low overall generation quality: {output.overall_quality:.1f}"
            )
        with_issues = [s for s in output.sections if s.issues]
        if with_issues:
            warnings.append(f"{len(with_issues)} section(s) have quality issues")
        low = [s for s in output.sections if s.quality_score < 50]
        if low:
            warnings.append(f"{len(low)} section(s) scored below 50")
        placeholders = [s for s in output.sections if s.fallback_used]
        if placeholders:
            warnings.append(f"{len(placeholders)} section(s) use placeholder markup")
        return warnings

    def get_metadata(self, output: GeneratedSections) -> dict[str, JsonValue]:
        """Describe the generated sections.

        Returns:
            dict[str, JsonValue]: Metadata entries.
        """
        return {
            "sections": len(output.sections),
            "placeholders": sum(1 for s in output.sections if s.fallback_used),
            "model_id": output.model_id,
        }

    def create_fallback_result(self, context: PhaseContext) -> GeneratedSections:
        """Placeholder markup for every known section.

        Returns:
            GeneratedSections: Placeholder sections.
        """
        payload = context.payload
        if isinstance(payload, ProcessedInput) and payload.sections:
            sources = [
                (section.section_id, section.name, section.section_type)
                for section in payload.sections
            ]
        else:
            sources = [("section_1", "Main Section", SectionType.CONTENT)]
        sections = [
            placeholder_section(
                section_id,
                name,
                section_type,
                quality=FALLBACK_QUALITY,
                reason="generation unavailable",
            )
            for section_id, name, section_type in sources
        ]
        return GeneratedSections(sections=sections, overall_quality=FALLBACK_QUALITY)

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
        """Generate fresh markup for one section outside a pipeline run.

        The custom prompt is passed to the service as an extra hint. Without
        an image, or when the service fails, the placeholder section is
        returned instead.

        Returns:
            GeneratedSection: Regenerated section keeping ``section_id``.
        """
        name = name or f"Regenerated Section {section_id}"
        model_id = model_id or self._default_model_id
        if not image_data_url:
            return placeholder_section(
                section_id,
                name,
                section_type,
                quality=PLACEHOLDER_QUALITY,
                reason="no design image supplied",
            )
        prompt = (custom_prompt or "").strip()
        hints = [prompt] if prompt else []
        try:
            draft = await self._service.generate_section(
                SectionGenerationRequest(
                    section_id=section_id,
                    section_name=name,
                    section_type=section_type,
                    image_data_url=image_data_url,
                    model_id=model_id,
                    hints=hints,
                )
            )
        except Exception as exc:
            return placeholder_section(
                section_id,
                name,
                section_type,
                quality=PLACEHOLDER_QUALITY,
                reason=str(exc) or type(exc).__name__,
            )
        return self._from_draft(section_id, name, section_type, draft, model_id)

    def _from_draft(
        self,
        section_id: str,
        name: str,
        section_type: SectionType,
        draft: SectionDraft,
        model_id: str | None,
    ) -> GeneratedSection:
        fields = list(draft.editable_fields)
        return GeneratedSection(
            section_id=section_id,
            name=name,
            section_type=section_type,
            html=draft.html,
            editable_fields=fields,
            quality_score=score_markup(draft.html, fields, draft.confidence),
            issues=markup_issues(draft.html, fields),
            model_id=draft.model_id or model_id,
            confidence=draft.confidence,
        )
