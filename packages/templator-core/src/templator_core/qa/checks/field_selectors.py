"""Editable field selector check implementation."""

from __future__ import annotations

import re

from templator_schemas.phases import GeneratedSection, ValidationFinding
from templator_schemas.primitives import IssueCategory, IssueSeverity, JsonValue

_SIMPLE_TOKEN = re.compile(r"([#.]?)([A-Za-z][\w-]*)$")


def _selector_matches(selector: str, markup: str) -> bool:
    # Only the last simple token is checked: tag, .class or #id.
    last = selector.strip().split()[-1] if selector.strip() else ""
    match = _SIMPLE_TOKEN.search(last)
    if match is None:
        return True
    prefix, token = match.groups()
    if prefix == "#":
        pattern = rf'\bid\s*=\s*["\']{re.escape(token)}["\']'
        return re.search(pattern, markup) is not None
    if prefix == ".":
        pattern = rf'class\s*=\s*["\'][^"\']*\b{re.escape(token)}\b'
        return re.search(pattern, markup) is not None
    return re.search(rf"<{re.escape(token)}\b", markup, re.IGNORECASE) is not None


class FieldSelectorCheck:
    """Check that editable fields target elements present in the markup."""

    check_name = "field_selectors"
    category = IssueCategory.EDITABILITY

    def configure(self, parameters: dict[str, JsonValue] | None) -> None:
        """Configure the check.

        Args:
            parameters: Not used for this check.
        """
        # No configuration needed

    def check_section(
        self, section: GeneratedSection, severity: IssueSeverity
    ) -> list[ValidationFinding]:
        """Report fields without a selector or whose selector matches nothing.

        Returns:
            list[ValidationFinding]: One finding per offending field.
        """
        findings: list[ValidationFinding] = []
        for field in section.editable_fields:
            if field.selector and _selector_matches(field.selector, section.html):
                continue
            problem = "has no selector" if not field.selector else "matches nothing"
            findings.append(
                ValidationFinding(
                    severity=severity,
                    category=self.category,
                    check_name=self.check_name,
                    message=f"Field {field.field_id} {problem}",
                    suggestion="Point each field at an element in the markup",
                )
            )
        return findings
