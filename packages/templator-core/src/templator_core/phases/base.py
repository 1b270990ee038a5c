"""Shared base class and scoring helpers for the concrete phases."""

from __future__ import annotations

import html
from abc import ABC, abstractmethod
from statistics import fmean
from typing import ClassVar

from templator_core.ports.phase import PhaseContext
from templator_schemas.base import BaseSchema
from templator_schemas.pipeline import RequestOptions
from templator_schemas.primitives import JsonValue, PhaseName


def clamp_score(value: float) -> float:
    """Clamp a score into [0, 100], rounded to one decimal."""
    return round(max(0.0, min(100.0, value)), 1)


def mean_score(values: list[float], default: float = 0.0) -> float:
    """Mean of scores clamped into [0, 100], or ``default`` when empty."""
    if not values:
        return default
    return clamp_score(fmean(values))


def placeholder_markup(section_id: str, name: str, note: str) -> str:
    """Minimal accessible markup standing in for a section."""
    label = html.escape(name, quote=True)
    return (
        f'<section class="templator-placeholder py-12 px-4" '
        f'data-section-id="{html.escape(section_id, quote=True)}" '
        f'aria-label="{label}">'
        f'<h2 class="text-2xl font-semibold">{label}</h2>'
        f'<p class="text-base">{html.escape(note)}</p>'
        "</section>"
    )


class BasePhase[InputT: BaseSchema, OutputT: BaseSchema](ABC):
    """Base implementation of the phase contract.

    Subclasses provide validation, execution, scoring and the fallback;
    warnings and metadata default to empty.
    """

    name: ClassVar[PhaseName]

    def is_enabled(self, options: RequestOptions) -> bool:
        """Phases run unless a subclass says otherwise."""
        return True

    @abstractmethod
    def validate_input(self, payload: InputT, context: PhaseContext) -> None:
        """Reject structurally invalid input."""

    @abstractmethod
    async def execute(self, payload: InputT, context: PhaseContext) -> OutputT:
        """Transform the payload into the phase output."""

    @abstractmethod
    def calculate_quality_score(self, output: OutputT) -> float:
        """Quality score of the output on a 0-100 scale."""

    def get_warnings(self, output: OutputT) -> list[str]:
        """Soft problems in the output."""
        return []

    def get_metadata(self, output: OutputT) -> dict[str, JsonValue]:
        """Metadata describing the output."""
        return {}

    @abstractmethod
    def create_fallback_result(self, context: PhaseContext) -> OutputT:
        """Minimal schema-valid substitute output."""
