"""Image alt text check implementation."""

from __future__ import annotations

import re

from templator_schemas.phases import GeneratedSection, ValidationFinding
from templator_schemas.primitives import IssueCategory, IssueSeverity, JsonValue

_IMG_PATTERN = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_ALT_PATTERN = re.compile(r"\balt\s*=", re.IGNORECASE)


class ImageAltCheck:
    """Check that every image carries alt text."""

    check_name = "image_alt"
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
        """Report images without an alt attribute.

        Returns:
            list[ValidationFinding]: One finding per section with missing alt.
        """
        missing = [
            tag
            for tag in _IMG_PATTERN.findall(section.html)
            if not _ALT_PATTERN.search(tag)
        ]
        if not missing:
            return []
        return [
            ValidationFinding(
                severity=severity,
                category=self.category,
                check_name=self.check_name,
                message=f"{len(missing)} image(s) without alt text",
                suggestion="Describe every image with an alt attribute",
            )
        ]
