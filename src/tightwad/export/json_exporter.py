"""
JSON export functionality for Tightwad.

Exports run reports as nested JSON records.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any

from tightwad.export.base import BaseExporter, ExportFormat, ExportOptions
from tightwad.models import RunReport


class JSONExporter(BaseExporter):
    """
    Exports run reports to JSON.

    The output mirrors RunReport.to_dict(). Counts always describe the
    full result, even when a status filter trims the listed findings.
    """

    @property
    def format(self) -> ExportFormat:
        return ExportFormat.JSON

    def render(self, report: RunReport, options: ExportOptions) -> str:
        """Render the report as indented JSON."""
        output = report.to_dict(include_rows=options.include_rows)
        if options.statuses:
            allowed = {s.value for s in options.statuses}
            self._filter_node(output["result"], allowed)
        return json.dumps(output, indent=2, default=self._json_serializer)

    def _filter_node(self, node: dict[str, Any], allowed: set[str]) -> None:
        if node.get("type") == "control":
            node["findings"] = [f for f in node["findings"] if f["status"] in allowed]
            return
        for child in node.get("children", []):
            self._filter_node(child, allowed)

    def _json_serializer(self, obj: Any) -> Any:
        """Serialize values json does not handle natively."""
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, (set, tuple)):
            return list(obj)
        return str(obj)


def export_to_json(report: RunReport, include_rows: bool = False) -> str:
    """
    Render a report as JSON.

    Args:
        report: Run report
        include_rows: Include raw query rows on each finding

    Returns:
        JSON string
    """
    return JSONExporter().render(report, ExportOptions(include_rows=include_rows))
