"""Empty markup check implementation."""

from __future__ import annotations

import re

from templator_schemas.phases import GeneratedSection, ValidationFinding
from templator_schemas.primitives import IssueCategory, IssueSeverity, JsonValue

_TAG_PATTERN = re.compile(r"<[a-zA-Z][^>]*>")


class EmptyMarkupCheck:
    """Check for sections whose markup is blank or has no elements.

    Parameters:
        None required.
    """

    check_name = "empty_markup"
    category = IssueCategory.MARKUP

    def configure(self, parameters: dict[str, JsonValue] | None) -> None:
        """Configure the check.

        Args:
            parameters: Not used for this check.
        """
        # No configuration needed

    def check_section(
        self, section: GeneratedSection, severity: IssueSeverity
    ) -> list[ValidationFinding]:
        """Check that the markup contains at least one element.

        Returns:
            list[ValidationFinding]: One finding if the markup is empty.
        """
        if section.html.strip() and _TAG_PATTERN.search(section.html):
            return []
        return [
            ValidationFinding(
                severity=severity,
                category=self.category,
                check_name=self.check_name,
                message="Section markup is empty or contains no elements",
                suggestion="Regenerate the section markup",
            )
        ]
