"""Registry for deterministic section checks."""

from __future__ import annotations

from collections.abc import Callable

from templator_core.qa.checks.aria_attributes import AriaAttributesCheck
from templator_core.qa.checks.empty_markup import EmptyMarkupCheck
from templator_core.qa.checks.field_selectors import FieldSelectorCheck
from templator_core.qa.checks.image_alt import ImageAltCheck
from templator_core.qa.checks.styling_classes import StylingClassesCheck
from templator_core.qa.protocol import SectionCheck

type CheckFactory = Callable[[], SectionCheck]


class CheckRegistry:
    """Mapping of check names to factories, so config can pick checks by name."""

    def __init__(self) -> None:
        """Initialize an empty check registry."""
        self._factories: dict[str, CheckFactory] = {}

    def register(self, name: str, factory: CheckFactory) -> None:
        """Register a check factory.

        Raises:
            ValueError: If a check with this name is already registered.
        """
        if name in self._factories:
            raise ValueError(f"Check already registered: {name}")
        self._factories[name] = factory

    def create(self, name: str) -> SectionCheck:
        """Create a check instance by name.

        Raises:
            ValueError: If the check name is not registered.
        """
        factory = self._factories.get(name)
        if factory is None:
            raise ValueError(f"Unknown check: {name}")
        return factory()

    def list_checks(self) -> list[str]:
        """Sorted list of registered check names."""
        return sorted(self._factories.keys())


def get_default_registry() -> CheckRegistry:
    """Get the default check registry with all built-in checks.

    Returns:
        CheckRegistry: Registry with every standard check.
    """
    registry = CheckRegistry()
    registry.register("empty_markup", EmptyMarkupCheck)
    registry.register("styling_classes", StylingClassesCheck)
    registry.register("aria_attributes", AriaAttributesCheck)
    registry.register("image_alt", ImageAltCheck)
    registry.register("field_selectors", FieldSelectorCheck)
    return registry
