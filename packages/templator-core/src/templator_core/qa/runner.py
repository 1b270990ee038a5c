"""Deterministic section check runner and validation service."""

from __future__ import annotations

from templator_core.qa.protocol import SectionCheck
from templator_core.qa.registry import CheckRegistry, get_default_registry
from templator_schemas.phases import (
    GeneratedSection,
    SectionValidation,
    ValidationFinding,
)
from templator_schemas.primitives import IssueSeverity, JsonValue

DEFAULT_CHECK_SEVERITIES: dict[str, IssueSeverity] = {
    "empty_markup": IssueSeverity.ERROR,
    "image_alt": IssueSeverity.ERROR,
    "styling_classes": IssueSeverity.WARNING,
    "field_selectors": IssueSeverity.WARNING,
    "aria_attributes": IssueSeverity.INFO,
}
_SEVERITY_PENALTY = {
    IssueSeverity.ERROR: 25.0,
    IssueSeverity.WARNING: 10.0,
    IssueSeverity.INFO: 2.0,
}


class DeterministicCheckRunner:
    """Run a configured set of checks against sections."""

    def __init__(self, registry: CheckRegistry | None = None) -> None:
        """Initialize the runner.

        Args:
            registry: Check registry to use, the built-in one when omitted.
        """
        self._registry = registry or get_default_registry()
        self._checks: list[tuple[SectionCheck, IssueSeverity]] = []

    def configure_check(
        self,
        check_name: str,
        severity: IssueSeverity | str,
        parameters: dict[str, JsonValue] | None = None,
    ) -> None:
        """Configure and add a check to the runner.

        Args:
            check_name: Name of the check to add.
            severity: Severity for findings from this check.
            parameters: Check-specific parameters.
        """
        check = self._registry.create(check_name)
        check.configure(parameters)
        # Config may hand over plain strings because of use_enum_values
        if isinstance(severity, str):
            severity = IssueSeverity(severity)
        self._checks.append((check, severity))

    def run_checks(self, section: GeneratedSection) -> list[ValidationFinding]:
        """Run every configured check on a section.

        Returns:
            list[ValidationFinding]: Findings in check order.
        """
        findings: list[ValidationFinding] = []
        for check, severity in self._checks:
            findings.extend(check.check_section(section, severity))
        return findings


class DeterministicValidationService:
    """Validation service backed by deterministic checks."""

    def __init__(self, runner: DeterministicCheckRunner | None = None) -> None:
        """Initialize the service.

        Args:
            runner: Configured runner; all built-in checks at their default
                severities when omitted.
        """
        if runner is None:
            runner = DeterministicCheckRunner()
            for name, severity in DEFAULT_CHECK_SEVERITIES.items():
                runner.configure_check(name, severity)
        self._runner = runner

    async def validate_section(self, section: GeneratedSection) -> SectionValidation:
        """Validate one section.

        Returns:
            SectionValidation: Verdict with findings and a compliance score.
        """
        findings = self._runner.run_checks(section)
        penalty = sum(
            _SEVERITY_PENALTY[IssueSeverity(finding.severity)] for finding in findings
        )
        return SectionValidation(
            is_valid=not any(f.severity == IssueSeverity.ERROR for f in findings),
            findings=findings,
            compliance_score=max(0.0, 100.0 - penalty),
        )
