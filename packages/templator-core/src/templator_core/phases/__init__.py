"""Concrete pipeline phases."""

from templator_core.phases.base import BasePhase
from templator_core.phases.defaults import build_default_phases
from templator_core.phases.enhancement import EnhancementPhase
from templator_core.phases.generation import GenerationPhase
from templator_core.phases.input_processing import InputProcessingPhase
from templator_core.phases.packaging import PackagingPhase
from templator_core.phases.quality_assurance import QualityAssurancePhase

__all__ = [
    "BasePhase",
    "EnhancementPhase",
    "GenerationPhase",
    "InputProcessingPhase",
    "PackagingPhase",
    "QualityAssurancePhase",
    "build_default_phases",
]
