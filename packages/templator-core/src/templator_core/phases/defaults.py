"""Assemble the standard five-phase pipeline."""

from __future__ import annotations

from templator_core.phases.enhancement import EnhancementPhase
from templator_core.phases.generation import GenerationPhase
from templator_core.phases.input_processing import InputProcessingPhase
from templator_core.phases.packaging import PackagingPhase
from templator_core.phases.quality_assurance import QualityAssurancePhase
from templator_core.ports.phase import PhaseProtocol
from templator_core.ports.services import (
    ErrorCorrectionServiceProtocol,
    GenerationServiceProtocol,
    PackagingServiceProtocol,
    RefinementServiceProtocol,
    ValidationServiceProtocol,
)
from templator_core.qa.runner import DeterministicValidationService


def build_default_phases(
    *,
    generator: GenerationServiceProtocol,
    refiner: RefinementServiceProtocol,
    corrector: ErrorCorrectionServiceProtocol,
    packager: PackagingServiceProtocol,
    validator: ValidationServiceProtocol | None = None,
    default_model_id: str | None = None,
    author: str = "templator",
) -> list[PhaseProtocol]:
    """Build the phases in pipeline order.

    Args:
        generator: Generative-content service.
        refiner: Refinement service.
        corrector: Error correction service.
        packager: Module storage service.
        validator: Validation service; the deterministic checks when omitted.
        default_model_id: Model used when a request does not pick one.
        author: Author recorded in module metadata.

    Returns:
        list[PhaseProtocol]: Input processing through packaging.
    """
    return [
        InputProcessingPhase(),
        GenerationPhase(generator, default_model_id=default_model_id),
        QualityAssurancePhase(validator or DeterministicValidationService()),
        EnhancementPhase(refiner, corrector),
        PackagingPhase(packager, author=author),
    ]
