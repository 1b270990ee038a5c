"""Input processing: validate the design image and slice it into sections."""

from __future__ import annotations

import asyncio
import base64
import binascii
import re
from dataclasses import dataclass, field
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from templator_core.phases.base import BasePhase, clamp_score
from templator_core.ports.errors import PhaseValidationError
from templator_core.ports.phase import PhaseContext
from templator_schemas.pipeline import MAX_DESIGN_BYTES, DesignDataUrl, DesignUpload
from templator_schemas.phases import (
    DesignComplexity,
    DesignSection,
    ProcessedInput,
    SectionBounds,
)
from templator_schemas.primitives import (
    MIME_IMAGE_PREFIX,
    ComplexityLevel,
    JsonValue,
    PhaseName,
    SectionType,
)

MIN_DESIGN_BYTES = 1024
# 1x1 transparent PNG used when no design bytes are available at all.
BLANK_PNG_DATA_URL = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNk"
    "YAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)

_DATA_URL_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.S
)

_SECTION_LAYOUT: tuple[tuple[SectionType, str], ...] = (
    (SectionType.HEADER, "Header"),
    (SectionType.HERO, "Hero Section"),
    (SectionType.CONTENT, "Main Content"),
    (SectionType.FEATURES, "Features"),
    (SectionType.FOOTER, "Footer"),
    (SectionType.NAVIGATION, "Navigation"),
    (SectionType.SIDEBAR, "Sidebar"),
)
_LEVEL_COMPLEXITY = {
    ComplexityLevel.LOW: 1,
    ComplexityLevel.MEDIUM: 2,
    ComplexityLevel.HIGH: 3,
}
_LEVEL_BONUS = {
    ComplexityLevel.LOW: 5.0,
    ComplexityLevel.MEDIUM: 10.0,
    ComplexityLevel.HIGH: 15.0,
}

type DesignInput = DesignUpload | DesignDataUrl


@dataclass(slots=True)
class DesignSlices:
    """Decoded image size and the data URL of each vertical slice."""

    width: int | None = None
    height: int | None = None
    slices: list[tuple[SectionBounds, str]] = field(default_factory=list)


def to_data_url(data: bytes, mime_type: str) -> str:
    """Encode bytes as a base64 data URL."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_design(payload: DesignInput) -> tuple[bytes, str]:
    """Return raw bytes and mime type for either design payload kind.

    Raises:
        PhaseValidationError: If a data URL is malformed.
    """
    if isinstance(payload, DesignUpload):
        return payload.data, payload.mime_type.lower()
    match = _DATA_URL_PATTERN.match(payload.data_url)
    if match is None:
        raise PhaseValidationError(
            "Design data URL is malformed",
            phase=PhaseName.INPUT_PROCESSING,
            field="data_url",
            reason="malformed_data_url",
        )
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PhaseValidationError(
            "Design data URL is not valid base64",
            phase=PhaseName.INPUT_PROCESSING,
            field="data_url",
            reason="invalid_base64",
        ) from exc
    return data, match.group("mime").lower()


def estimate_complexity(size_bytes: int, mime_type: str) -> DesignComplexity:
    """Size-based complexity estimate.

    Returns:
        DesignComplexity: Bucket, recommended section count and hints.
    """
    size_kb = size_bytes / 1024
    if size_kb > 500:
        level, sections = ComplexityLevel.HIGH, 6
    elif size_kb > 200:
        level, sections = ComplexityLevel.MEDIUM, 4
    elif size_kb > 100:
        level, sections = ComplexityLevel.MEDIUM, 3
    else:
        level, sections = ComplexityLevel.LOW, 2
    hints: list[str] = []
    if mime_type.endswith("png"):
        hints.append("Lossless source: preserve crisp text and icon edges")
    elif mime_type.endswith(("jpeg", "jpg")):
        hints.append("Photographic source: expect gradients and imagery")
    if level == ComplexityLevel.HIGH:
        hints.append("Dense layout: prefer grid utilities over nested flex rows")
    return DesignComplexity(
        size_kb=round(size_kb, 2),
        level=level,
        recommended_sections=sections,
        processing_hints=hints,
    )


def slice_design(data: bytes, count: int) -> DesignSlices:
    """Cut the design into ``count`` full-width horizontal bands.

    Returns an empty slice list when the bytes cannot be decoded.
    """
    try:
        with Image.open(BytesIO(data)) as image:
            image.load()
            width, height = image.size
            band = max(1, height // count)
            result = DesignSlices(width=width, height=height)
            for index in range(count):
                top = min(index * band, height - 1)
                bottom = height if index == count - 1 else min(top + band, height)
                crop = image.crop((0, top, width, bottom))
                if crop.mode not in {"RGB", "RGBA", "L"}:
                    crop = crop.convert("RGBA")
                buffer = BytesIO()
                crop.save(buffer, format="PNG")
                bounds = SectionBounds(x=0, y=top, width=width, height=bottom - top)
                result.slices.append(
                    (bounds, to_data_url(buffer.getvalue(), "image/png"))
                )
            return result
    except (UnidentifiedImageError, OSError, ValueError):
        return DesignSlices()


class InputProcessingPhase(BasePhase[DesignInput, ProcessedInput]):
    """Validate the uploaded design, estimate complexity and slice sections."""

    name = PhaseName.INPUT_PROCESSING

    def validate_input(self, payload: DesignInput, context: PhaseContext) -> None:
        """Check the design bytes, name, mime type and size.

        Raises:
            PhaseValidationError: If the design cannot be processed.
        """
        data, mime_type = decode_design(payload)
        if not data:
            raise self._invalid("Design image is empty", "data", "empty")
        if not payload.file_name:
            raise self._invalid("Design file name is required", "file_name", "missing")
        if not mime_type.startswith(MIME_IMAGE_PREFIX):
            raise self._invalid(
                f"Unsupported mime type {mime_type!r}; expected an image",
                "mime_type",
                "unsupported_type",
            )
        if len(data) < MIN_DESIGN_BYTES:
            raise self._invalid(
                f"Design image is too small ({len(data)} bytes)", "data", "too_small"
            )
        if len(data) > MAX_DESIGN_BYTES:
            raise self._invalid(
                f"Design image exceeds {MAX_DESIGN_BYTES // (1024 * 1024)}MB",
                "data",
                "too_large",
            )

    async def execute(
        self, payload: DesignInput, context: PhaseContext
    ) -> ProcessedInput:
        """Encode the design and slice it into candidate sections.

        Returns:
            ProcessedInput: Encoded design with its sections.
        """
        data, mime_type = decode_design(payload)
        complexity = estimate_complexity(len(data), mime_type)
        context.checkpoint()
        sliced = await asyncio.to_thread(
            slice_design, data, complexity.recommended_sections
        )
        full_url = to_data_url(data, mime_type)
        if not sliced.slices:
            await context.log(
                "design_not_decodable",
                "Design could not be decoded; sections reuse the full image",
            )
        sections = [
            self._build_section(index, complexity, full_url, sliced)
            for index in range(complexity.recommended_sections)
        ]
        return ProcessedInput(
            image_data_url=full_url,
            file_name=payload.file_name,
            mime_type=mime_type,
            size_bytes=len(data),
            width=sliced.width,
            height=sliced.height,
            complexity=complexity,
            sections=sections,
        )

    def calculate_quality_score(self, output: ProcessedInput) -> float:
        """Score how promising the input is for generation.

        Returns:
            float: Score on a 0-100 scale.
        """
        score = 70.0
        if output.size_bytes > 100 * 1024:
            score += 10
        if output.mime_type.endswith("png"):
            score += 5
        score += _LEVEL_BONUS[ComplexityLevel(output.complexity.level)]
        if len(output.sections) >= 3:
            score += 10
        if len(output.sections) >= 5:
            score += 5
        return clamp_score(score)

    def get_warnings(self, output: ProcessedInput) -> list[str]:
        """Flag inputs likely to produce weak generations.

        Returns:
            list[str]: Warning messages.
        """
        warnings: list[str] = []
        if output.size_bytes < 50 * 1024:
            warnings.append("Small image size may reduce generation accuracy")
        if output.size_bytes > 5 * 1024 * 1024:
            warnings.append("Large image size may slow down processing")
        if len(output.sections) < 2:
            warnings.append("Few sections detected; the design may be simple")
        if output.complexity.level == ComplexityLevel.LOW:
            warnings.append("Low complexity design; consider adding more detail")
        if output.width is None:
            warnings.append("Image could not be decoded; sections use the full design")
        return warnings

    def get_metadata(self, output: ProcessedInput) -> dict[str, JsonValue]:
        """Describe the processed input.

        Returns:
            dict[str, JsonValue]: Metadata entries.
        """
        return {
            "size_bytes": output.size_bytes,
            "mime_type": output.mime_type,
            "sections": len(output.sections),
            "complexity": output.complexity.level,
        }

    def create_fallback_result(self, context: PhaseContext) -> ProcessedInput:
        """Treat the whole design as a single section.

        Returns:
            ProcessedInput: Single-section substitute.
        """
        payload = context.payload
        data_url, file_name = BLANK_PNG_DATA_URL, "design"
        mime_type, size = "image/png", 0
        if isinstance(payload, DesignUpload | DesignDataUrl):
            file_name = payload.file_name or file_name
            if isinstance(payload, DesignUpload):
                mime_type = payload.mime_type or mime_type
                size = len(payload.data)
                if payload.data:
                    data_url = to_data_url(payload.data, mime_type)
            elif payload.data_url:
                data_url = payload.data_url
        section = DesignSection(
            section_id="section_1",
            name="Main Section",
            section_type=SectionType.CONTENT,
            image_data_url=data_url,
            complexity=1,
        )
        return ProcessedInput(
            image_data_url=data_url,
            file_name=file_name,
            mime_type=mime_type,
            size_bytes=size,
            complexity=DesignComplexity(
                size_kb=round(size / 1024, 2),
                level=ComplexityLevel.LOW,
                recommended_sections=1,
            ),
            sections=[section],
        )

    def _build_section(
        self,
        index: int,
        complexity: DesignComplexity,
        full_url: str,
        sliced: DesignSlices,
    ) -> DesignSection:
        section_type, name = _SECTION_LAYOUT[index % len(_SECTION_LAYOUT)]
        bounds, image_url = (
            sliced.slices[index] if index < len(sliced.slices) else (None, full_url)
        )
        weight = _LEVEL_COMPLEXITY[ComplexityLevel(complexity.level)]
        if section_type in {SectionType.HERO, SectionType.FEATURES}:
            weight += 1
        return DesignSection(
            section_id=f"section_{index + 1}",
            name=name,
            section_type=section_type,
            image_data_url=image_url,
            bounds=bounds,
            complexity=min(weight, 5),
        )

    def _invalid(
        self, message: str, field_name: str, reason: str
    ) -> PhaseValidationError:
        return PhaseValidationError(
            message, phase=self.name, field=field_name, reason=reason
        )
