"""Instructions sent to the model for each collaborator."""

GENERATION_INSTRUCTIONS = """\
You convert a screenshot of one section of a web page design into markup for
an editable content-management module.

Return semantic HTML for the section only: start with a single <section>,
<header>, <footer> or <nav> root element, style it with Tailwind utility
classes, give every image an alt attribute and label landmarks with aria
attributes. List the editable fields (headings, copy, images, links, buttons)
with a CSS selector that matches the element inside your markup. Report your
confidence in the result between 0 and 1.
"""

REFINEMENT_INSTRUCTIONS = """\
You improve existing section markup for an editable content-management module.
Keep the layout and content, fix the listed findings, tighten accessibility and
styling and keep every editable field selector pointing at an element in the
markup. Estimate the quality of your result on a 0-100 scale and list what you
changed.
"""

CORRECTION_INSTRUCTIONS = """\
You fix validation errors in section markup for an editable content-management
module. Change only what is needed to resolve each listed error, keep editable
field selectors valid and list each correction you made.
"""


def generation_prompt(section_name: str, section_type: str, hints: list[str]) -> str:
    """User prompt for generating one section."""
    lines = [f"Section: {section_name} ({section_type})."]
    if hints:
        lines.append("Notes about the design:")
        lines.extend(f"- {hint}" for hint in hints)
    return "\n".join(lines)


def findings_prompt(html: str, findings: list[str], *, target: float | None) -> str:
    """User prompt carrying markup and the findings to address."""
    lines = ["Current markup:", html, "", "Findings:"]
    lines.extend(f"- {finding}" for finding in findings or ["none reported"])
    if target is not None:
        lines.extend(["", f"Target quality: {target:.0f}"])
    return "\n".join(lines)
