"""Deterministic markup checks used by the quality assurance phase."""

from templator_core.qa.protocol import SectionCheck
from templator_core.qa.registry import CheckRegistry, get_default_registry
from templator_core.qa.runner import (
    DEFAULT_CHECK_SEVERITIES,
    DeterministicCheckRunner,
    DeterministicValidationService,
)

__all__ = [
    "DEFAULT_CHECK_SEVERITIES",
    "CheckRegistry",
    "DeterministicCheckRunner",
    "DeterministicValidationService",
    "SectionCheck",
    "get_default_registry",
]
