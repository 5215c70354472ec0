"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_export_report`` -- template export summary.
- ``format_import_report`` -- template import summary.
- ``format_settings_report`` -- settings import summary.
- ``summary_to_json`` -- structured dict for ``--format json`` output.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from .models import (
    ImportAction,
    SettingsImportSummary,
    TemplateExportSummary,
    TemplateImportSummary,
)

if TYPE_CHECKING:
    from .models import FileImportResult

# ------------------------------------------------------------------
# Human-readable reports
# ------------------------------------------------------------------


def format_export_report(summary: TemplateExportSummary) -> str:
    """Format a template export summary as human-readable text.

    Sections are only included when they contain at least one entry.
    """
    lines: list[str] = []
    lines.append(f"Template export to {summary.target_dir}")
    lines.append(
        f"Exported {summary.exported_count} templates, "
        f"{len(summary.skipped)} skipped, {len(summary.errors)} errors"
    )
    lines.append("")

    if summary.exported:
        lines.append("Written:")
        for path in summary.exported:
            lines.append(f"  {path}")
        lines.append("")

    if summary.skipped:
        ids = ", ".join(str(i) for i in summary.skipped)
        lines.append(f"Skipped: {ids}")
        lines.append("")

    if summary.errors:
        lines.append("Errors:")
        for error in summary.errors:
            lines.append(f"  {error}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_import_report(summary: TemplateImportSummary) -> str:
    """Format a template import summary grouped by action.

    Unchanged files are summarised by count only to avoid excessive
    output.
    """
    lines: list[str] = []
    lines.append(f"Template import from {summary.source_dir}")
    lines.append(
        f"Imported {summary.imported_count} templates: "
        f"{summary.skipped_count} unchanged, {len(summary.failed)} errors"
    )
    lines.append("")

    groups: dict[ImportAction, list[FileImportResult]] = defaultdict(list)
    for r in summary.results:
        groups[r.action].append(r)

    if groups[ImportAction.CREATED]:
        lines.append("Created:")
        for r in groups[ImportAction.CREATED]:
            lines.append(f"  {r.filename} -> #{r.identity}")
        lines.append("")

    if groups[ImportAction.UPDATED]:
        lines.append("Updated:")
        for r in groups[ImportAction.UPDATED]:
            rule = r.matched_by.value if r.matched_by else "?"
            lines.append(f"  {r.filename} -> #{r.identity} (matched by {rule})")
        lines.append("")

    if summary.failed:
        lines.append("Errors:")
        for error in summary.errors:
            lines.append(f"  {error}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_settings_report(summary: SettingsImportSummary) -> str:
    lines = [
        f"Settings import from {summary.source_file}",
        f"{summary.imported_count} imported, {summary.unchanged_count} unchanged, "
        f"{summary.failed_count} failed",
    ]
    if summary.failed:
        lines.append("Failed keys: " + ", ".join(summary.failed))
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def summary_to_json(
    summary: TemplateExportSummary | TemplateImportSummary | SettingsImportSummary,
) -> dict:
    """Convert a summary to a structured dict for JSON serialisation.

    Args:
        summary: Any export or import summary.

    Returns:
        Dict with counts plus the summary's own fields.
    """
    if isinstance(summary, TemplateImportSummary):
        return {
            "source_dir": summary.source_dir,
            "counts": {
                "imported": summary.imported_count,
                "skipped": summary.skipped_count,
                "errors": len(summary.failed),
            },
            "results": [
                r.model_dump(mode="json", exclude_none=True)
                for r in summary.results
            ],
            "errors": summary.errors,
        }
    if isinstance(summary, TemplateExportSummary):
        return {
            "target_dir": summary.target_dir,
            "counts": {
                "exported": summary.exported_count,
                "skipped": len(summary.skipped),
                "errors": len(summary.errors),
            },
            "exported": list(summary.exported),
            "skipped": list(summary.skipped),
            "errors": list(summary.errors),
        }
    return {
        "source_file": summary.source_file,
        "counts": {
            "imported": summary.imported_count,
            "unchanged": summary.unchanged_count,
            "failed": summary.failed_count,
        },
        "imported": list(summary.imported),
        "unchanged": list(summary.unchanged),
        "failed": list(summary.failed),
    }
