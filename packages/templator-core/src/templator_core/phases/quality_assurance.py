"""Quality assurance: validate generated sections and compute metrics."""

from __future__ import annotations

import re

from templator_core.fanout import FanOutPool
from templator_core.phases.base import BasePhase, clamp_score, mean_score
from templator_core.ports.errors import PhaseExecutionError, PhaseValidationError
from templator_core.ports.phase import PhaseContext
from templator_core.ports.services import ValidationServiceProtocol
from templator_schemas.phases import (
    GeneratedSection,
    GeneratedSections,
    QualityMetrics,
    SectionMetrics,
    SectionValidation,
    ValidatedSection,
    ValidatedSections,
    ValidationFinding,
    ValidationSummary,
)
from templator_schemas.primitives import (
    ComplianceLevel,
    IssueCategory,
    IssueSeverity,
    JsonValue,
    PhaseName,
)

FALLBACK_QUALITY = 50.0
_SEMANTIC_ROOT = re.compile(
    r"^\s*<(section|header|footer|nav|main|article|aside)\b", re.IGNORECASE
)
_METRIC_WEIGHTS = {
    "html_structure": 0.3,
    "accessibility": 0.3,
    "styling": 0.2,
    "compliance": 0.2,
}


def section_metrics(
    section: GeneratedSection, validation: SectionValidation
) -> SectionMetrics:
    """Per-section metrics derived from markup and validation findings.

    Returns:
        SectionMetrics: Scores on a 0-100 scale.
    """
    by_category: dict[str, list[ValidationFinding]] = {}
    for finding in validation.findings:
        by_category.setdefault(IssueCategory(finding.category), []).append(finding)
    markup_errors = [
        f
        for f in by_category.get(IssueCategory.MARKUP, [])
        if f.severity == IssueSeverity.ERROR
    ]
    structure = 100.0 if _SEMANTIC_ROOT.match(section.html) else 60.0
    structure -= 10 * len(markup_errors)
    accessibility = 100.0 - 15 * len(by_category.get(IssueCategory.ACCESSIBILITY, []))
    styling = 100.0 if 'class="' in section.html else 40.0
    styling -= 10 * len(by_category.get(IssueCategory.STYLING, []))
    size = len(section.html)
    if size <= 20_000:
        performance = 100.0
    elif size <= 50_000:
        performance = 80.0
    else:
        performance = 60.0
    return SectionMetrics(
        html_structure=clamp_score(structure),
        accessibility=clamp_score(accessibility),
        styling=clamp_score(styling),
        compliance=clamp_score(validation.compliance_score),
        editability=clamp_score(40.0 + 15 * len(section.editable_fields)),
        performance=performance,
    )


def overall_score(metrics: SectionMetrics | QualityMetrics) -> float:
    """Weighted blend of structure, accessibility, styling and compliance."""
    return clamp_score(
        sum(getattr(metrics, name) * weight for name, weight in _METRIC_WEIGHTS.items())
    )


def compliance_level(score: float) -> ComplianceLevel:
    """Map an overall score to its compliance band."""
    if score >= 90:
        return ComplianceLevel.EXCELLENT
    if score >= 75:
        return ComplianceLevel.GOOD
    if score >= 60:
        return ComplianceLevel.FAIR
    return ComplianceLevel.POOR


def validated(
    section: GeneratedSection, validation: SectionValidation
) -> ValidatedSection:
    """Attach a validation verdict and metrics to a generated section."""
    metrics = section_metrics(section, validation)
    return ValidatedSection.model_validate(
        {
            **section.model_dump(),
            "validation": validation.model_dump(),
            "metrics": metrics.model_dump(),
        },
        strict=False,
    )


def unavailable_validation(reason: str) -> SectionValidation:
    """Verdict recorded for a section the validator could not judge."""
    return SectionValidation(
        is_valid=False,
        findings=[
            ValidationFinding(
                severity=IssueSeverity.ERROR,
                category=IssueCategory.MARKUP,
                check_name="validation_unavailable",
                message=f"Validation failed: {reason}",
                suggestion="Re-run validation for this section",
            )
        ],
        compliance_score=0.0,
    )


class QualityAssurancePhase(BasePhase[GeneratedSections, ValidatedSections]):
    """Validate every generated section and aggregate the quality metrics."""

    name = PhaseName.QUALITY_ASSURANCE

    def __init__(self, validator: ValidationServiceProtocol) -> None:
        """Initialize the phase.

        Args:
            validator: Export-format validation service.
        """
        self._validator = validator

    def validate_input(
        self, payload: GeneratedSections, context: PhaseContext
    ) -> None:
        """Require at least one generated section.

        Raises:
            PhaseValidationError: If there is nothing to validate.
        """
        if not payload.sections:
            raise PhaseValidationError(
                "At least one generated section is required",
                phase=self.name,
                field="sections",
                reason="empty",
            )

    async def execute(
        self, payload: GeneratedSections, context: PhaseContext
    ) -> ValidatedSections:
        """Validate sections concurrently and summarize the results.

        Returns:
            ValidatedSections: Sections with verdicts, metrics and summary.

        Raises:
            PhaseExecutionError: If no section could be validated.
        """

        async def _validate(section: GeneratedSection) -> ValidatedSection:
            return validated(section, await self._validator.validate_section(section))

        def _unavailable(section: GeneratedSection, exc: Exception) -> ValidatedSection:
            return validated(
                section, unavailable_validation(str(exc) or type(exc).__name__)
            )

        pool = FanOutPool(context.max_parallel)
        outcomes = await pool.gather(payload.sections, _validate, _unavailable, context)
        failed = [outcome for outcome in outcomes if outcome.fell_back]
        if len(failed) == len(outcomes):
            raise PhaseExecutionError(
                f"All {len(outcomes)} sections failed validation: {failed[0].error}",
                phase=self.name,
                reason="all_sections_failed",
            )
        return self._summarize([outcome.value for outcome in outcomes])

    def calculate_quality_score(self, output: ValidatedSections) -> float:
        """Weighted overall metric.

        Returns:
            float: Score on a 0-100 scale.
        """
        return output.metrics.overall

    def get_warnings(self, output: ValidatedSections) -> list[str]:
        """Flag failed validation and weak metrics.

        Returns:
            list[str]: Warning messages.
        """
        warnings: list[str] = []
        summary, metrics = output.summary, output.metrics
        if not summary.is_valid:
            warnings.append("One or more sections failed validation")
        if summary.critical_errors:
            warnings.append(f"{summary.critical_errors} critical error(s) found")
        if metrics.overall < 70:
            warnings.append(f"Low overall quality score: {metrics.overall:.1f}")
        if metrics.accessibility < 80:
            warnings.append(
                f"Accessibility needs improvement: {metrics.accessibility:.1f}"
            )
        if metrics.compliance < 85:
            warnings.append(f"Format compliance is low: {metrics.compliance:.1f}")
        return warnings

    def get_metadata(self, output: ValidatedSections) -> dict[str, JsonValue]:
        """Describe the verdict.

        Returns:
            dict[str, JsonValue]: Metadata entries.
        """
        return {
            "sections": len(output.sections),
            "compliance_level": output.summary.compliance_level,
            "critical_errors": output.summary.critical_errors,
            "recommendations": len(output.recommendations),
        }

    def create_fallback_result(self, context: PhaseContext) -> ValidatedSections:
        """Pass sections through with a neutral, unverified verdict.

        Returns:
            ValidatedSections: Sections marked as not validated.
        """
        payload = context.payload
        sections = payload.sections if isinstance(payload, GeneratedSections) else []
        neutral = SectionValidation(
            is_valid=True,
            findings=[
                ValidationFinding(
                    severity=IssueSeverity.WARNING,
                    category=IssueCategory.MARKUP,
                    check_name="validation_skipped",
                    message="Section was not validated",
                    suggestion="Validate the module before publishing",
                )
            ],
            compliance_score=FALLBACK_QUALITY,
        )
        return self._summarize([validated(section, neutral) for section in sections])

    def _summarize(self, sections: list[ValidatedSection]) -> ValidatedSections:
        findings = [f for s in sections for f in s.validation.findings]

        def _average(name: str) -> float:
            return mean_score(
                [getattr(s.metrics, name) for s in sections], FALLBACK_QUALITY
            )

        averages = {name: _average(name) for name in SectionMetrics.model_fields}
        overall = overall_score(SectionMetrics(**averages))
        recommendations: list[str] = []
        for finding in findings:
            if finding.suggestion and finding.suggestion not in recommendations:
                recommendations.append(finding.suggestion)
        return ValidatedSections(
            sections=sections,
            summary=ValidationSummary(
                is_valid=all(s.validation.is_valid for s in sections),
                critical_errors=sum(
                    1 for f in findings if f.severity == IssueSeverity.ERROR
                ),
                warnings=sum(
                    1 for f in findings if f.severity == IssueSeverity.WARNING
                ),
                suggestions=sum(
                    1 for f in findings if f.severity == IssueSeverity.INFO
                ),
                compliance_level=compliance_level(overall),
            ),
            metrics=QualityMetrics(overall=overall, **averages),
            recommendations=recommendations,
        )
