"""
Text tree rendering for Tightwad.

Renders a run report as an indented tree for terminals.
"""

from __future__ import annotations

from tightwad.export.base import BaseExporter, ExportFormat, ExportOptions
from tightwad.models import (
    BenchmarkResult,
    EvaluationResult,
    FindingStatus,
    RunReport,
    StatusCounts,
)

STATUS_COLORS = {
    FindingStatus.OK: "\033[32m",  # Green
    FindingStatus.ALARM: "\033[31m",  # Red
    FindingStatus.ERROR: "\033[35m",  # Magenta
    FindingStatus.INFO: "\033[36m",  # Cyan
    FindingStatus.SKIP: "\033[90m",  # Grey
}
RESET = "\033[0m"

INDENT = "  "


class TextExporter(BaseExporter):
    """
    Exports run reports as an indented text tree.

    Each benchmark and control line ends with its counts. Findings are
    listed under their control, filtered by options.statuses.
    """

    @property
    def format(self) -> ExportFormat:
        return ExportFormat.TEXT

    def render(self, report: RunReport, options: ExportOptions) -> str:
        """Render the report tree."""
        lines: list[str] = []
        self._render_node(report.root, 0, options, lines)

        lines.append("")
        summary = f"Summary: {self._format_counts(report.counts, options)}"
        if report.incomplete:
            summary += " (incomplete: run was cancelled or timed out)"
        lines.append(summary)
        return "\n".join(lines) + "\n"

    def _render_node(
        self,
        node: EvaluationResult,
        depth: int,
        options: ExportOptions,
        lines: list[str],
    ) -> None:
        prefix = INDENT * depth
        if isinstance(node, BenchmarkResult):
            lines.append(f"{prefix}+ {node.title} [{self._format_counts(node.counts, options)}]")
            for child in node.children:
                self._render_node(child, depth + 1, options, lines)
            return

        marker = "" if node.completed else " (not evaluated)"
        lines.append(
            f"{prefix}- {node.title} [{self._format_counts(node.counts, options)}]{marker}"
        )
        for finding in self._filter_findings(node.findings, options.statuses):
            status = self._paint(finding.status, finding.status.value.upper(), options)
            resource = finding.resource or node.control_id
            line = f"{prefix}{INDENT}{status} {resource}"
            if finding.reason:
                line += f": {finding.reason}"
            lines.append(line)

    def _format_counts(self, counts: StatusCounts, options: ExportOptions) -> str:
        parts = []
        for status in FindingStatus:
            value = counts.get(status)
            text = f"{status.value} {value}"
            parts.append(self._paint(status, text, options) if value else text)
        return ", ".join(parts)

    def _paint(self, status: FindingStatus, text: str, options: ExportOptions) -> str:
        if not options.use_colors:
            return text
        return f"{STATUS_COLORS[status]}{text}{RESET}"


def export_to_text(report: RunReport, use_colors: bool = False) -> str:
    """
    Render a report as an indented text tree.

    Args:
        report: Run report
        use_colors: Colorize statuses with ANSI codes

    Returns:
        Rendered tree
    """
    return TextExporter().render(
        report, ExportOptions(format=ExportFormat.TEXT, use_colors=use_colors)
    )
