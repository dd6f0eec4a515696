"""
CSV export functionality for Tightwad.

Exports one row per finding, with the benchmark path of its control.
"""

from __future__ import annotations

import csv
import io

from tightwad.export.base import BaseExporter, ExportFormat, ExportOptions, walk_results
from tightwad.models import RunReport

CSV_HEADERS = [
    "run_id",
    "benchmark_path",
    "control_id",
    "control_title",
    "severity",
    "resource",
    "status",
    "reason",
]


class CSVExporter(BaseExporter):
    """
    Exports findings to CSV.

    A control listed under several benchmarks contributes its findings
    once per position so that each row's benchmark path is accurate.
    """

    @property
    def format(self) -> ExportFormat:
        return ExportFormat.CSV

    def render(self, report: RunReport, options: ExportOptions) -> str:
        """Render findings as CSV text with a header row."""
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(CSV_HEADERS)

        for path, result in walk_results(report.root):
            for finding in self._filter_findings(result.findings, options.statuses):
                writer.writerow(
                    [
                        report.run_id,
                        "/".join(path),
                        result.control_id,
                        result.title,
                        result.severity.value,
                        finding.resource or "",
                        finding.status.value,
                        finding.reason,
                    ]
                )

        return output.getvalue()


def export_findings_to_csv(report: RunReport) -> str:
    """
    Render a report's findings as CSV.

    Args:
        report: Run report

    Returns:
        CSV string
    """
    return CSVExporter().render(report, ExportOptions(format=ExportFormat.CSV))
