"""Request and response payloads exchanged with phase collaborators."""

from __future__ import annotations

from pydantic import Field

from templator_schemas.base import BaseSchema
from templator_schemas.phases import EditableField
from templator_schemas.primitives import SectionType


class SectionGenerationRequest(BaseSchema):
    """Inputs for generating one section."""

    section_id: str = Field(..., min_length=1, description="Section identifier")
    section_name: str = Field(..., min_length=1, description="Section display name")
    section_type: SectionType = Field(..., description="Layout role")
    image_data_url: str = Field(..., min_length=1, description="Section image")
    model_id: str | None = Field(None, description="Model override")
    hints: list[str] = Field(default_factory=list, description="Processing hints")


class SectionDraft(BaseSchema):
    """Markup returned by the generative service for a section."""

    html: str = Field(..., min_length=1, description="Section markup")
    editable_fields: list[EditableField] = Field(
        default_factory=list, description="Editable fields"
    )
    confidence: float = Field(0.8, ge=0, le=1, description="Model confidence")
    model_id: str | None = Field(None, description="Model that produced it")


class RefinementResult(BaseSchema):
    """Outcome of iterative refinement of a section."""

    html: str = Field(..., min_length=1, description="Refined markup")
    editable_fields: list[EditableField] = Field(
        default_factory=list, description="Refined fields"
    )
    iterations: int = Field(..., ge=0, description="Refinement passes used")
    quality_gain: float = Field(0.0, ge=0, description="Estimated quality gain")
    notes: list[str] = Field(default_factory=list, description="What was changed")


class CorrectionResult(BaseSchema):
    """Outcome of error correction on a section."""

    html: str = Field(..., min_length=1, description="Corrected markup")
    editable_fields: list[EditableField] = Field(
        default_factory=list, description="Corrected fields"
    )
    corrections: list[str] = Field(
        default_factory=list, description="Corrections applied"
    )
