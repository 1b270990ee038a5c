"""Phase input and output payload schemas."""

from __future__ import annotations

from pydantic import Field

from templator_schemas.base import BaseSchema
from templator_schemas.primitives import (
    ComplexityLevel,
    ComplianceLevel,
    EnhancementType,
    ExportFormat,
    FieldId,
    FieldType,
    IssueCategory,
    IssueSeverity,
    Score,
    SectionId,
    SectionType,
    Timestamp,
)


class SectionBounds(BaseSchema):
    """Pixel rectangle a section occupies in the source design."""

    x: int = Field(..., ge=0, description="Left edge")
    y: int = Field(..., ge=0, description="Top edge")
    width: int = Field(..., ge=0, description="Width in pixels")
    height: int = Field(..., ge=0, description="Height in pixels")


class DesignComplexity(BaseSchema):
    """Size-based estimate of how much work a design needs."""

    size_kb: float = Field(..., ge=0, description="Image size in kilobytes")
    level: ComplexityLevel = Field(..., description="Complexity bucket")
    recommended_sections: int = Field(..., ge=1, description="Sections to slice")
    processing_hints: list[str] = Field(
        default_factory=list, description="Notes for generation prompts"
    )


class DesignSection(BaseSchema):
    """A candidate section sliced out of the design."""

    section_id: SectionId = Field(..., description="Section identifier")
    name: str = Field(..., min_length=1, description="Display name")
    section_type: SectionType = Field(..., description="Layout role")
    image_data_url: str = Field(..., min_length=1, description="Section image")
    bounds: SectionBounds | None = Field(None, description="Crop rectangle")
    complexity: int = Field(1, ge=1, le=5, description="Relative complexity")


class ProcessedInput(BaseSchema):
    """Output of input processing."""

    image_data_url: str = Field(..., min_length=1, description="Full design image")
    file_name: str = Field(..., min_length=1, description="Original file name")
    mime_type: str = Field(..., min_length=1, description="Image mime type")
    size_bytes: int = Field(..., ge=0, description="Image size in bytes")
    width: int | None = Field(None, ge=1, description="Image width if decodable")
    height: int | None = Field(None, ge=1, description="Image height if decodable")
    complexity: DesignComplexity = Field(..., description="Complexity estimate")
    sections: list[DesignSection] = Field(..., description="Sliced sections")


class EditableField(BaseSchema):
    """A module field an editor can change without touching markup."""

    field_id: FieldId = Field(..., description="Field identifier")
    label: str = Field(..., min_length=1, description="Editor label")
    field_type: FieldType = Field(FieldType.TEXT, description="Field kind")
    selector: str | None = Field(None, description="CSS selector of the target")
    default_value: str = Field("", description="Initial value")
    required: bool = Field(False, description="Editor must provide a value")


class QualityIssue(BaseSchema):
    """Soft problem found in a generated section."""

    severity: IssueSeverity = Field(..., description="Issue severity")
    category: IssueCategory = Field(..., description="Issue category")
    message: str = Field(..., min_length=1, description="Issue description")
    suggestion: str | None = Field(None, description="How to fix it")


class GeneratedSection(BaseSchema):
    """HTML and fields produced for one section."""

    section_id: SectionId = Field(..., description="Section identifier")
    name: str = Field(..., min_length=1, description="Display name")
    section_type: SectionType = Field(..., description="Layout role")
    html: str = Field(..., description="Section markup")
    editable_fields: list[EditableField] = Field(
        default_factory=list, description="Editable fields"
    )
    quality_score: Score = Field(..., description="Section quality")
    issues: list[QualityIssue] = Field(default_factory=list, description="Issues")
    model_id: str | None = Field(None, description="Model that produced the section")
    confidence: float | None = Field(None, ge=0, le=1, description="Model confidence")
    fallback_used: bool = Field(False, description="Placeholder substituted")


class GeneratedSections(BaseSchema):
    """Output of generation."""

    sections: list[GeneratedSection] = Field(..., description="Generated sections")
    overall_quality: Score = Field(..., description="Mean section quality")
    model_id: str | None = Field(None, description="Model used")


class ValidationFinding(BaseSchema):
    """Single validation message for a section."""

    severity: IssueSeverity = Field(..., description="Finding severity")
    category: IssueCategory = Field(..., description="Finding category")
    check_name: str = Field(..., min_length=1, description="Check that raised it")
    message: str = Field(..., min_length=1, description="Finding description")
    suggestion: str | None = Field(None, description="How to fix it")


class SectionValidation(BaseSchema):
    """Validation service verdict for a section."""

    is_valid: bool = Field(..., description="No error findings")
    findings: list[ValidationFinding] = Field(
        default_factory=list, description="All findings"
    )
    compliance_score: Score = Field(..., description="Format compliance score")

    @property
    def errors(self) -> list[ValidationFinding]:
        """Error-severity findings."""
        return [f for f in self.findings if f.severity == IssueSeverity.ERROR]

    @property
    def warnings(self) -> list[ValidationFinding]:
        """Warning-severity findings."""
        return [f for f in self.findings if f.severity == IssueSeverity.WARNING]


class SectionMetrics(BaseSchema):
    """Per-section quality metrics computed after validation."""

    html_structure: Score = Field(..., description="Markup structure score")
    accessibility: Score = Field(..., description="Accessibility score")
    styling: Score = Field(..., description="Utility-class styling score")
    compliance: Score = Field(..., description="Export-format compliance score")
    editability: Score = Field(..., description="Editable field coverage score")
    performance: Score = Field(..., description="Markup weight score")


class ValidatedSection(GeneratedSection):
    """Generated section with its validation verdict."""

    validation: SectionValidation = Field(..., description="Validation verdict")
    metrics: SectionMetrics = Field(..., description="Quality metrics")


class QualityMetrics(BaseSchema):
    """Metrics averaged across sections."""

    overall: Score = Field(..., description="Weighted overall score")
    html_structure: Score = Field(..., description="Markup structure score")
    accessibility: Score = Field(..., description="Accessibility score")
    styling: Score = Field(..., description="Styling score")
    compliance: Score = Field(..., description="Compliance score")
    editability: Score = Field(..., description="Editability score")
    performance: Score = Field(..., description="Performance score")


class ValidationSummary(BaseSchema):
    """Aggregate verdict for all sections."""

    is_valid: bool = Field(..., description="Every section is valid")
    critical_errors: int = Field(..., ge=0, description="Error findings")
    warnings: int = Field(..., ge=0, description="Warning findings")
    suggestions: int = Field(..., ge=0, description="Info findings")
    compliance_level: ComplianceLevel = Field(..., description="Compliance band")


class ValidatedSections(BaseSchema):
    """Output of quality assurance."""

    sections: list[ValidatedSection] = Field(..., description="Validated sections")
    summary: ValidationSummary = Field(..., description="Aggregate verdict")
    metrics: QualityMetrics = Field(..., description="Aggregate metrics")
    recommendations: list[str] = Field(
        default_factory=list, description="De-duplicated fix suggestions"
    )


class Enhancement(BaseSchema):
    """One improvement applied to a section."""

    enhancement_type: EnhancementType = Field(..., description="Improvement kind")
    description: str = Field(..., min_length=1, description="What changed")
    impact: float = Field(..., ge=0, description="Quality points gained")


class EnhancedSection(ValidatedSection):
    """Validated section after corrections and refinement."""

    enhancements: list[Enhancement] = Field(
        default_factory=list, description="Applied improvements"
    )
    final_html: str = Field(..., description="Markup after enhancement")
    final_fields: list[EditableField] = Field(
        default_factory=list, description="Fields after enhancement"
    )
    final_quality: Score = Field(..., description="Quality after enhancement")
    iterations_used: int = Field(0, ge=0, description="Refinement passes used")


class EnhancementSummary(BaseSchema):
    """Before/after quality for one section."""

    section_id: SectionId = Field(..., description="Section identifier")
    applied: int = Field(..., ge=0, description="Improvements applied")
    quality_before: Score = Field(..., description="Quality before enhancement")
    quality_after: Score = Field(..., description="Quality after enhancement")

    @property
    def improvement(self) -> float:
        """Quality points gained."""
        return self.quality_after - self.quality_before


class EnhancedSections(BaseSchema):
    """Output of enhancement."""

    sections: list[EnhancedSection] = Field(..., description="Enhanced sections")
    summaries: list[EnhancementSummary] = Field(
        default_factory=list, description="Per-section before/after"
    )
    final_quality: Score = Field(..., description="Mean final quality")
    iterations_performed: int = Field(0, ge=0, description="Total refinement passes")


class PackagedField(EditableField):
    """Editable field with the section it came from."""

    section_id: SectionId = Field(..., description="Owning section")
    section_name: str = Field(..., min_length=1, description="Owning section name")


class ModuleMetadata(BaseSchema):
    """Descriptive metadata shipped with a module."""

    name: str = Field(..., min_length=1, description="Module name")
    version: str = Field("1.0.0", min_length=1, description="Module version")
    description: str = Field(..., min_length=1, description="Module description")
    author: str = Field("templator", min_length=1, description="Module author")
    created_at: Timestamp = Field(..., description="Creation timestamp")
    total_sections: int = Field(..., ge=0, description="Sections in the module")
    average_quality: Score = Field(..., description="Mean section quality")
    models_used: list[str] = Field(default_factory=list, description="Models used")


class PackageReceipt(BaseSchema):
    """Where the packaging service stored the module."""

    package_id: str = Field(..., min_length=1, description="Package identifier")
    location: str = Field(..., min_length=1, description="Storage location")
    size_bytes: int = Field(..., ge=0, description="Stored size")


class PackagedModule(BaseSchema):
    """Output of packaging, the final pipeline output."""

    module_id: str = Field(..., min_length=1, description="Module identifier")
    export_format: ExportFormat = Field(..., description="Module format")
    html: str = Field(..., min_length=1, description="Combined module markup")
    fields: list[PackagedField] = Field(
        default_factory=list, description="De-duplicated editable fields"
    )
    files: dict[str, str] = Field(..., description="Module file contents by name")
    metadata: ModuleMetadata = Field(..., description="Module metadata")
    receipt: PackageReceipt = Field(..., description="Packaging service receipt")
