"""ARIA labelling check implementation."""

from __future__ import annotations

from templator_schemas.phases import GeneratedSection, ValidationFinding
from templator_schemas.primitives import IssueCategory, IssueSeverity, JsonValue


class AriaAttributesCheck:
    """Check that section markup labels itself for assistive technology."""

    check_name = "aria_attributes"
    category = IssueCategory.ACCESSIBILITY

    def configure(self, parameters: dict[str, JsonValue] | None) -> None:
        """Configure the check.

        Args:
            parameters: Not used for this check.
        """
        # No configuration needed

    def check_section(
        self, section: GeneratedSection, severity: IssueSeverity
    ) -> list[ValidationFinding]:
        """Look for aria attributes or a role.

        Returns:
            list[ValidationFinding]: One finding if none are present.
        """
        markup = section.html.lower()
        if "aria-" in markup or "role=" in markup:
            return []
        return [
            ValidationFinding(
                severity=severity,
                category=self.category,
                check_name=self.check_name,
                message="No ARIA attributes or roles found",
                suggestion="Add aria-label or role attributes to landmarks",
            )
        ]
