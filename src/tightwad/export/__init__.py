"""
Report export for Tightwad.

Renders run reports as JSON, CSV (one row per finding) or an indented
text tree.
"""

from __future__ import annotations

from pathlib import Path

from tightwad.export.base import (
    BaseExporter,
    ExportFormat,
    ExportManager,
    ExportOptions,
    ExportResult,
    walk_results,
)
from tightwad.export.csv_exporter import CSVExporter, export_findings_to_csv
from tightwad.export.json_exporter import JSONExporter, export_to_json
from tightwad.export.text_exporter import TextExporter, export_to_text
from tightwad.models import FindingStatus, RunReport

__all__ = [
    # Base classes and types
    "BaseExporter",
    "ExportFormat",
    "ExportManager",
    "ExportOptions",
    "ExportResult",
    "walk_results",
    # Exporters
    "CSVExporter",
    "JSONExporter",
    "TextExporter",
    # Convenience functions
    "export_findings_to_csv",
    "export_to_json",
    "export_to_text",
    # Factory function
    "create_export_manager",
    "export_report",
]


def create_export_manager() -> ExportManager:
    """
    Create an export manager with all registered exporters.

    Returns:
        ExportManager configured with all available exporters.
    """
    manager = ExportManager()
    manager.register_exporter(JSONExporter())
    manager.register_exporter(CSVExporter())
    manager.register_exporter(TextExporter())
    return manager


def export_report(
    report: RunReport,
    format: str = "text",
    output_path: str | Path | None = None,
    include_rows: bool = False,
    statuses: list[str] | None = None,
    use_colors: bool = False,
) -> ExportResult:
    """
    Export a run report in the specified format.

    Args:
        report: Run report to export
        format: Output format (json, csv, text)
        output_path: File to write (None returns the content)
        include_rows: Include raw query rows (JSON only)
        statuses: Only list findings with these statuses
        use_colors: Colorize statuses (text only)

    Returns:
        ExportResult with content or output path

    Raises:
        ValueError: If format or a status is not recognized
    """
    options = ExportOptions(
        format=ExportFormat.from_string(format),
        include_rows=include_rows,
        statuses=[FindingStatus.from_string(s) for s in statuses or []],
        output_path=output_path,
        use_colors=use_colors,
    )
    return create_export_manager().export(report, options)
