"""Protocol for deterministic section checks."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from templator_schemas.phases import GeneratedSection, ValidationFinding
from templator_schemas.primitives import IssueCategory, IssueSeverity, JsonValue


@runtime_checkable
class SectionCheck(Protocol):
    """Protocol for deterministic markup checks.

    Deterministic checks catch problems visible without model reasoning,
    such as empty markup, images without alt text or fields that point at
    nothing.
    """

    @property
    def check_name(self) -> str:
        """Unique identifier for this check."""
        ...

    @property
    def category(self) -> IssueCategory:
        """Category for findings from this check."""
        ...

    def configure(self, parameters: dict[str, JsonValue] | None) -> None:
        """Configure the check with parameters from config.

        Raises:
            ValueError: If parameters are invalid.
        """
        ...

    def check_section(
        self, section: GeneratedSection, severity: IssueSeverity
    ) -> list[ValidationFinding]:
        """Run the check on one section.

        Returns:
            list[ValidationFinding]: Findings (empty if the section passes).
        """
        ...
