"""Packaging: assemble the final module and hand it to storage."""

from __future__ import annotations

import html
import json
import re

from templator_core.phases.base import BasePhase, clamp_score, mean_score
from templator_core.phases.enhancement import unchanged
from templator_core.ports.errors import PhaseValidationError
from templator_core.ports.phase import PhaseContext
from templator_core.ports.services import PackagingServiceProtocol
from templator_schemas.phases import (
    EnhancedSection,
    EnhancedSections,
    ModuleMetadata,
    PackagedField,
    PackagedModule,
    PackageReceipt,
    ValidatedSections,
)
from templator_schemas.primitives import ExportFormat, JsonValue, PhaseName

MODULE_FILES = ("module.html", "fields.json", "meta.json", "README.md")
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]+")
MAX_FIELD_ID_LENGTH = 160

type PackagingInput = EnhancedSections | ValidatedSections


def module_id_for(pipeline_id: str) -> str:
    """Filesystem-safe module identifier for a run."""
    cleaned = _UNSAFE_ID_CHARS.sub("_", pipeline_id).strip("_")
    return f"module_{cleaned or 'unnamed'}"


def as_enhanced(payload: PackagingInput) -> list[EnhancedSection]:
    """Enhanced sections, converting validated-only input when needed."""
    if isinstance(payload, EnhancedSections):
        return list(payload.sections)
    return [unchanged(section) for section in payload.sections]


def combine_markup(
    module_id: str, sections: list[EnhancedSection], export_format: ExportFormat
) -> str:
    """Join section markup into one module document.

    HubSpot modules are a fragment wrapped in a module container; plain HTML
    exports are a standalone document.
    """
    body = "\n".join(
        f'<!-- section: {html.escape(section.name)} -->\n{section.final_html}'
        for section in sections
    )
    container = (
        f'<div class="templator-module" data-module-id="{module_id}">\n'
        f"{body}\n</div>"
    )
    if export_format == ExportFormat.HUBSPOT:
        return container
    return (
        "<!DOCTYPE html>\n<html lang=\"en\">\n<head>\n"
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"<title>{module_id}</title>\n</head>\n<body>\n{container}\n</body>\n</html>"
    )


def dedupe_fields(sections: list[EnhancedSection]) -> list[PackagedField]:
    """Flatten section fields, suffixing repeated ids with _1, _2, ...

    Returns:
        list[PackagedField]: Fields with unique ids in section order.
    """
    seen: dict[str, int] = {}
    taken: set[str] = set()
    packaged: list[PackagedField] = []
    for section in sections:
        for field in section.final_fields:
            field_id = field.field_id
            if field_id in taken:
                count = seen.get(field.field_id, 0)
                while field_id in taken:
                    count += 1
                    suffix = f"_{count}"
                    stem = field.field_id[: MAX_FIELD_ID_LENGTH - len(suffix)]
                    field_id = f"{stem}{suffix}"
                seen[field.field_id] = count
            taken.add(field_id)
            packaged.append(
                PackagedField.model_validate(
                    {
                        **field.model_dump(),
                        "field_id": field_id,
                        "section_id": section.section_id,
                        "section_name": section.name,
                    },
                    strict=False,
                )
            )
    return packaged


def readme_for(metadata: ModuleMetadata, fields: list[PackagedField]) -> str:
    """Human-readable summary of the module."""
    lines = [
        f"# {metadata.name}",
        "",
        metadata.description,
        "",
        f"- Version: {metadata.version}",
        f"- Author: {metadata.author}",
        f"- Sections: {metadata.total_sections}",
        f"- Average quality: {metadata.average_quality:.1f}",
        "",
        "## Editable fields",
        "",
    ]
    lines.extend(
        f"- `{field.field_id}` ({field.field_type}): {field.label}"
        for field in fields
    )
    if not fields:
        lines.append("_None_")
    return "\n".join(lines) + "\n"


class PackagingPhase(BasePhase[PackagingInput, PackagedModule]):
    """Combine sections into the deliverable module and store it."""

    name = PhaseName.PACKAGING

    def __init__(
        self, packager: PackagingServiceProtocol, *, author: str = "templator"
    ) -> None:
        """Initialize the phase.

        Args:
            packager: Service storing the finished module.
            author: Author recorded in module metadata.
        """
        self._packager = packager
        self._author = author

    def validate_input(self, payload: PackagingInput, context: PhaseContext) -> None:
        """Require at least one section.

        Raises:
            PhaseValidationError: If there is nothing to package.
        """
        if not payload.sections:
            raise PhaseValidationError(
                "At least one section is required to build a module",
                phase=self.name,
                field="sections",
                reason="empty",
            )

    async def execute(
        self, payload: PackagingInput, context: PhaseContext
    ) -> PackagedModule:
        """Build the module files and store them.

        Returns:
            PackagedModule: The stored module.
        """
        module = self._assemble(as_enhanced(payload), context)
        context.checkpoint()
        receipt = await self._packager.package_module(
            module.module_id,
            module.files,
            module.metadata,
            ExportFormat(module.export_format),
        )
        return module.model_copy(update={"receipt": receipt})

    def calculate_quality_score(self, output: PackagedModule) -> float:
        """Score packaging completeness.

        Returns:
            float: Score on a 0-100 scale.
        """
        score = 80.0
        if output.metadata.total_sections >= 3:
            score += 10
        if output.metadata.average_quality >= 80:
            score += 10
        if output.export_format == ExportFormat.HUBSPOT:
            score += 5
        return clamp_score(score)

    def get_warnings(self, output: PackagedModule) -> list[str]:
        """Flag thin or weak modules.

        Returns:
            list[str]: Warning messages.
        """
        warnings: list[str] = []
        if not output.fields:
            warnings.append("Module has no editable fields")
        if output.metadata.average_quality < 70:
            warnings.append(
                f"Module average quality is low: {output.metadata.average_quality:.1f}"
            )
        if output.receipt.location.startswith("memory://"):
            warnings.append("Module was not written to storage")
        return warnings

    def get_metadata(self, output: PackagedModule) -> dict[str, JsonValue]:
        """Describe the stored module.

        Returns:
            dict[str, JsonValue]: Metadata entries.
        """
        return {
            "module_id": output.module_id,
            "fields": len(output.fields),
            "files": sorted(output.files),
            "location": output.receipt.location,
            "size_bytes": output.receipt.size_bytes,
        }

    def create_fallback_result(self, context: PhaseContext) -> PackagedModule:
        """Assemble the module in memory without storing it.

        Returns:
            PackagedModule: Unstored module.
        """
        payload = context.payload
        sections = (
            as_enhanced(payload)
            if isinstance(payload, EnhancedSections | ValidatedSections)
            else []
        )
        return self._assemble(sections, context)

    def _assemble(
        self, sections: list[EnhancedSection], context: PhaseContext
    ) -> PackagedModule:
        export_format = ExportFormat(context.options.export_format)
        module_id = module_id_for(context.pipeline_id)
        fields = dedupe_fields(sections)
        metadata = ModuleMetadata(
            name=f"Templator module {module_id}",
            description=(
                f"{export_format.value} module built from "
                f"{len(sections)} design section(s)"
            ),
            author=self._author,
            created_at=context.clock(),
            total_sections=len(sections),
            average_quality=mean_score([s.final_quality for s in sections]),
            models_used=sorted({s.model_id for s in sections if s.model_id}),
        )
        markup = combine_markup(module_id, sections, export_format)
        files = {
            "module.html": markup,
            "fields.json": json.dumps(
                [field.model_dump(mode="json") for field in fields], indent=2
            ),
            "meta.json": metadata.model_dump_json(indent=2),
            "README.md": readme_for(metadata, fields),
        }
        return PackagedModule(
            module_id=module_id,
            export_format=export_format,
            html=markup,
            fields=fields,
            files=files,
            metadata=metadata,
            receipt=PackageReceipt(
                package_id=module_id,
                location=f"memory://{module_id}",
                size_bytes=sum(len(content.encode()) for content in files.values()),
            ),
        )
