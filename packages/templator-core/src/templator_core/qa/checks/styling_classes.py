"""Utility-class styling check implementation."""

from __future__ import annotations

import re

from templator_schemas.phases import GeneratedSection, ValidationFinding
from templator_schemas.primitives import IssueCategory, IssueSeverity, JsonValue

_CLASS_PATTERN = re.compile(r'\bclass\s*=\s*["\']([^"\']*)["\']')


class StylingClassesCheck:
    """Check that markup is styled with enough utility classes.

    Parameters:
        min_classes: Minimum distinct class names expected (default: 1).
    """

    check_name = "styling_classes"
    category = IssueCategory.STYLING

    def __init__(self) -> None:
        """Initialize with the default threshold."""
        self._min_classes = 1

    def configure(self, parameters: dict[str, JsonValue] | None) -> None:
        """Configure the check.

        Args:
            parameters: Optional ``min_classes`` override.

        Raises:
            ValueError: If min_classes is not a positive integer.
        """
        if not parameters or "min_classes" not in parameters:
            return
        value = parameters["min_classes"]
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ValueError("min_classes must be a positive integer")
        self._min_classes = value

    def check_section(
        self, section: GeneratedSection, severity: IssueSeverity
    ) -> list[ValidationFinding]:
        """Count distinct class names in the markup.

        Returns:
            list[ValidationFinding]: One finding if too few classes are used.
        """
        classes = {
            name
            for match in _CLASS_PATTERN.finditer(section.html)
            for name in match.group(1).split()
        }
        if len(classes) >= self._min_classes:
            return []
        return [
            ValidationFinding(
                severity=severity,
                category=self.category,
                check_name=self.check_name,
                message=(
                    f"Markup uses {len(classes)} class name(s); "
                    f"expected at least {self._min_classes}"
                ),
                suggestion="Style elements with utility classes",
            )
        ]
