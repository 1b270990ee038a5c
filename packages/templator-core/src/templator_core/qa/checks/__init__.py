"""Built-in deterministic section checks."""

from templator_core.qa.checks.aria_attributes import AriaAttributesCheck
from templator_core.qa.checks.empty_markup import EmptyMarkupCheck
from templator_core.qa.checks.field_selectors import FieldSelectorCheck
from templator_core.qa.checks.image_alt import ImageAltCheck
from templator_core.qa.checks.styling_classes import StylingClassesCheck

__all__ = [
    "AriaAttributesCheck",
    "EmptyMarkupCheck",
    "FieldSelectorCheck",
    "ImageAltCheck",
    "StylingClassesCheck",
]
