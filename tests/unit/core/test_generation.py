"""Unit tests for the generation phase."""

from __future__ import annotations

import pytest

from templator_core.phases.generation import (
    FALLBACK_QUALITY,
    PLACEHOLDER_QUALITY,
    GenerationPhase,
    markup_issues,
    score_markup,
)
from templator_core.ports.errors import PhaseExecutionError, PhaseValidationError
from templator_schemas.phases import DesignComplexity, DesignSection, ProcessedInput
from templator_schemas.pipeline import RequestOptions
from templator_schemas.primitives import ComplexityLevel, PhaseName, SectionType
from templator_schemas.services import SectionDraft, SectionGenerationRequest
from tests.helpers.builders import GOOD_HTML, RecordingLogSink, make_context, make_field

_PHASE = PhaseName.GENERATION
_IMAGE = "data:image/png;base64,AAAA"


def _processed(count: int = 2) -> ProcessedInput:
    return ProcessedInput(
        image_data_url=_IMAGE,
        file_name="design.png",
        mime_type="image/png",
        size_bytes=4096,
        complexity=DesignComplexity(
            size_kb=4.0,
            level=ComplexityLevel.LOW,
            recommended_sections=max(count, 1),
            processing_hints=["Lossless source: preserve crisp text and icon edges"],
        ),
        sections=[
            DesignSection(
                section_id=f"section_{index}",
                name=f"Part {index}",
                section_type=SectionType.CONTENT,
                image_data_url=_IMAGE,
            )
            for index in range(1, count + 1)
        ],
    )


class _FakeGenerator:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.requests: list[SectionGenerationRequest] = []

    async def generate_section(
        self, request: SectionGenerationRequest
    ) -> SectionDraft:
        self.requests.append(request)
        if request.section_id in self.failing:
            raise RuntimeError(f"model refused {request.section_id}")
        return SectionDraft(
            html=GOOD_HTML, editable_fields=[make_field()], confidence=0.8
        )


@pytest.mark.unit
class TestScoring:
    """Tests for markup heuristics."""

    def test_score_rewards_classes_aria_alt_and_fields(self) -> None:
        """Each signal adds points before the confidence factor."""
        fields = [make_field(f"f{index}") for index in range(5)]
        assert score_markup(GOOD_HTML, fields, None) == 95.0
        assert score_markup(GOOD_HTML, [], 0.5) == 40.0
        assert score_markup("<div>plain</div>", [], None) == 50.0

    def test_issues_for_bare_markup(self) -> None:
        """Bare markup lacks styling, aria and fields."""
        messages = [issue.message for issue in markup_issues("<div></div>", [])]
        assert messages == [
            "No utility classes found in markup",
            "No ARIA attributes found",
            "Few editable fields defined",
        ]
        assert markup_issues(GOOD_HTML, [make_field("a"), make_field("b")]) == []


@pytest.mark.unit
def test_validate_requires_sections() -> None:
    """An input without sections is rejected."""
    with pytest.raises(PhaseValidationError):
        GenerationPhase(_FakeGenerator()).validate_input(
            _processed(0), make_context(_PHASE)
        )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_execute_generates_every_section() -> None:
    """Each section is generated with the requested model and hints."""
    generator = _FakeGenerator()
    phase = GenerationPhase(generator, default_model_id="default-model")
    context = make_context(_PHASE, options=RequestOptions(model_id="picked-model"))

    output = await phase.execute(_processed(3), context)

    assert [s.section_id for s in output.sections] == [
        "section_1",
        "section_2",
        "section_3",
    ]
    assert output.model_id == "picked-model"
    assert {request.model_id for request in generator.requests} == {"picked-model"}
    assert generator.requests[0].hints[0].startswith("Lossless source")
    assert output.sections[0].quality_score == 64.0
    assert output.overall_quality == 64.0
    assert not any(s.fallback_used for s in output.sections)
    assert phase.calculate_quality_score(output) == 64.0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_default_model_is_used_without_override() -> None:
    """Requests without a model use the deployment default."""
    phase = GenerationPhase(_FakeGenerator(), default_model_id="default-model")

    output = await phase.execute(_processed(1), make_context(_PHASE))

    assert output.model_id == "default-model"
    assert output.sections[0].model_id == "default-model"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_section_becomes_placeholder() -> None:
    """One failing section is substituted and logged."""
    sink = RecordingLogSink()
    phase = GenerationPhase(_FakeGenerator({"section_2"}))

    output = await phase.execute(_processed(2), make_context(_PHASE, log_sink=sink))

    placeholder = output.sections[1]
    assert placeholder.fallback_used
    assert placeholder.quality_score == PLACEHOLDER_QUALITY
    assert placeholder.editable_fields[0].field_id == "section_2_heading"
    assert 'data-section-id="section_2"' in placeholder.html
    assert placeholder.issues[0].message == "Generation failed: model refused section_2"
    assert sink.events() == ["section_fallback"]
    assert sink.entries[0].data == {
        "section_id": "section_2",
        "error": "model refused section_2",
    }
    warnings = phase.get_warnings(output)
    assert "1 section(s) use placeholder markup" in warnings
    assert phase.get_metadata(output)["placeholders"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_all_sections_failing_fails_the_phase() -> None:
    """The phase fails only when nothing could be generated."""
    phase = GenerationPhase(_FakeGenerator({"section_1", "section_2"}))

    with pytest.raises(PhaseExecutionError) as excinfo:
        await phase.execute(_processed(2), make_context(_PHASE))

    assert excinfo.value.retryable
    assert excinfo.value.info.details is not None
    assert excinfo.value.info.details.reason == "all_sections_failed"


@pytest.mark.unit
class TestFallback:
    """Tests for the whole-phase fallback."""

    def test_placeholders_follow_known_sections(self) -> None:
        """Every processed section gets a placeholder."""
        phase = GenerationPhase(_FakeGenerator())
        output = phase.create_fallback_result(
            make_context(_PHASE, payload=_processed(3))
        )

        assert len(output.sections) == 3
        assert output.overall_quality == FALLBACK_QUALITY
        assert all(s.fallback_used for s in output.sections)

    def test_without_payload_a_single_placeholder_is_made(self) -> None:
        """Unknown inputs fall back to one main section."""
        output = GenerationPhase(_FakeGenerator()).create_fallback_result(
            make_context(_PHASE)
        )

        assert [s.section_id for s in output.sections] == ["section_1"]
        assert output.sections[0].name == "Main Section"


@pytest.mark.unit
class TestRegenerateSection:
    """Tests for standalone section regeneration."""

    @pytest.mark.asyncio
    async def test_custom_prompt_becomes_the_only_hint(self) -> None:
        """The prompt reaches the service and the id is kept."""
        generator = _FakeGenerator()
        phase = GenerationPhase(generator, default_model_id="gpt-default")

        section = await phase.regenerate_section(
            "hero",
            image_data_url=_IMAGE,
            custom_prompt="  Use a dark theme  ",
            section_type=SectionType.HERO,
        )

        request = generator.requests[0]
        assert request.hints == ["Use a dark theme"]
        assert request.section_name == "Regenerated Section hero"
        assert request.model_id == "gpt-default"
        assert section.section_id == "hero"
        assert section.section_type == SectionType.HERO
        assert section.html == GOOD_HTML
        assert section.quality_score == 64.0
        assert section.model_id == "gpt-default"
        assert not section.fallback_used

    @pytest.mark.asyncio
    async def test_service_failure_returns_placeholder(self) -> None:
        """A failing service yields the placeholder section."""
        phase = GenerationPhase(_FakeGenerator({"hero"}))

        section = await phase.regenerate_section(
            "hero", image_data_url=_IMAGE, name="Hero"
        )

        assert section.fallback_used
        assert section.name == "Hero"
        assert section.quality_score == PLACEHOLDER_QUALITY
        assert section.issues[0].message == "Generation failed: model refused hero"
        assert [f.field_id for f in section.editable_fields] == ["hero_heading"]

    @pytest.mark.asyncio
    async def test_missing_image_skips_the_service(self) -> None:
        """Without an image there is nothing to send to the model."""
        generator = _FakeGenerator()
        phase = GenerationPhase(generator)

        section = await phase.regenerate_section("footer", custom_prompt="Darker")

        assert generator.requests == []
        assert section.fallback_used
        assert section.issues[0].message == (
            "Generation failed: no design image supplied"
        )
