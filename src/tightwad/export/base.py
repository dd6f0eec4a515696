"""
Base export functionality for Tightwad.

Provides the exporter interface and shared helpers for rendering run
reports as JSON, CSV or a text tree.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterator

from tightwad.models import (
    BenchmarkResult,
    ControlResult,
    EvaluationResult,
    Finding,
    FindingStatus,
    RunReport,
)


class ExportFormat(Enum):
    """Supported export formats."""

    JSON = "json"
    CSV = "csv"
    TEXT = "text"

    @classmethod
    def from_string(cls, value: str) -> ExportFormat:
        """
        Create ExportFormat from string value.

        Raises:
            ValueError: If value is not a supported format
        """
        value_lower = value.lower()
        for fmt in cls:
            if fmt.value == value_lower:
                return fmt
        raise ValueError(f"Invalid export format: {value}")


@dataclass
class ExportOptions:
    """
    Options for export operations.

    Attributes:
        format: Output format
        include_rows: Include raw query rows (JSON only)
        statuses: Only include findings with these statuses (empty = all)
        output_path: Where to write the output (None keeps it in memory)
        use_colors: Colorize statuses (text only)
    """

    format: ExportFormat = ExportFormat.JSON
    include_rows: bool = False
    statuses: list[FindingStatus] = field(default_factory=list)
    output_path: Path | str | None = None
    use_colors: bool = False


@dataclass
class ExportResult:
    """
    Result of an export operation.

    Attributes:
        success: Whether export completed successfully
        format: Format used for export
        output_path: Path to output file (if written to disk)
        content: Export content (if not written to disk)
        bytes_written: Size of output in bytes
        generated_at: When the export was generated
        error: Error message if export failed
    """

    success: bool
    format: ExportFormat
    output_path: Path | None = None
    content: str | None = None
    bytes_written: int = 0
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None


def walk_results(
    node: EvaluationResult,
    path: tuple[str, ...] = (),
) -> Iterator[tuple[tuple[str, ...], ControlResult]]:
    """
    Yield every control result with the benchmark path leading to it.

    A control shared by several benchmarks is yielded once per position.
    """
    if isinstance(node, BenchmarkResult):
        for child in node.children:
            yield from walk_results(child, path + (node.benchmark_id,))
    else:
        yield path, node


class BaseExporter(ABC):
    """
    Abstract base class for exporters.

    Exporters transform a RunReport into a specific output format.
    """

    @property
    @abstractmethod
    def format(self) -> ExportFormat:
        """Return the export format this exporter produces."""
        pass

    @abstractmethod
    def render(self, report: RunReport, options: ExportOptions) -> str:
        """Render the report as text in this exporter's format."""
        pass

    def export(self, report: RunReport, options: ExportOptions) -> ExportResult:
        """
        Render a report and write it to options.output_path if set.

        Args:
            report: Run report to export
            options: Export options

        Returns:
            ExportResult with success status and output
        """
        content = self.render(report, options)
        try:
            output_path, output_content = self._write_output(content, options.output_path)
        except OSError as e:
            return ExportResult(success=False, format=self.format, error=str(e))

        return ExportResult(
            success=True,
            format=self.format,
            output_path=output_path,
            content=output_content,
            bytes_written=len(content.encode("utf-8")),
        )

    def _filter_findings(
        self,
        findings: tuple[Finding, ...] | list[Finding],
        statuses: list[FindingStatus],
    ) -> list[Finding]:
        """Filter findings by status."""
        if not statuses:
            return list(findings)
        return [f for f in findings if f.status in statuses]

    def _write_output(
        self,
        content: str,
        output_path: Path | str | None,
    ) -> tuple[Path | None, str | None]:
        """
        Write content to file or return for in-memory use.

        Returns:
            Tuple of (path if written, content if in-memory)
        """
        if output_path is None:
            return None, content

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path, None


class ExportManager:
    """
    Manages export operations across multiple formats.
    """

    def __init__(self) -> None:
        """Initialize export manager with no exporters."""
        self._exporters: dict[ExportFormat, BaseExporter] = {}

    def register_exporter(self, exporter: BaseExporter) -> None:
        """Register an exporter for its format."""
        self._exporters[exporter.format] = exporter

    def get_exporter(self, format: ExportFormat) -> BaseExporter | None:
        """Get exporter for a specific format."""
        return self._exporters.get(format)

    def export(self, report: RunReport, options: ExportOptions) -> ExportResult:
        """
        Export a report using the exporter for options.format.

        Returns:
            ExportResult with success status and output
        """
        exporter = self._exporters.get(options.format)
        if exporter is None:
            return ExportResult(
                success=False,
                format=options.format,
                error=f"No exporter registered for format: {options.format.value}",
            )

        return exporter.export(report, options)

    def available_formats(self) -> list[ExportFormat]:
        """Return list of available export formats."""
        return list(self._exporters.keys())
