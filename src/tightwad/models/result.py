"""
Evaluation result tree for Tightwad.

A run produces a tree shaped like the benchmark that was evaluated:
ControlResult leaves hold findings, BenchmarkResult branches hold their
children in declaration order and the sum of their children's counts.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator, Union

from tightwad.models.control import Severity
from tightwad.models.finding import Finding, FindingStatus, StatusCounts


@dataclass(frozen=True)
class ControlResult:
    """
    Result of evaluating one control.

    Attributes:
        control_id: Evaluated control
        title: Control title
        severity: Control severity
        findings: Findings in query row order
        completed: False when the run was cancelled before this control
            was evaluated
    """

    control_id: str
    title: str
    severity: Severity
    findings: tuple[Finding, ...] = ()
    completed: bool = True

    @property
    def counts(self) -> StatusCounts:
        """Findings tallied by status."""
        return StatusCounts.from_findings(self.findings)

    @property
    def status(self) -> FindingStatus:
        """
        Overall status of the control.

        The most significant status among findings wins:
        error, then alarm, then info, then ok, then skip.
        """
        counts = self.counts
        for status in (
            FindingStatus.ERROR,
            FindingStatus.ALARM,
            FindingStatus.INFO,
            FindingStatus.OK,
        ):
            if counts.get(status):
                return status
        return FindingStatus.SKIP

    def to_dict(self, include_rows: bool = False) -> dict[str, Any]:
        """Convert result to a nested record."""
        return {
            "type": "control",
            "control_id": self.control_id,
            "title": self.title,
            "severity": self.severity.value,
            "status": self.status.value,
            "completed": self.completed,
            "counts": self.counts.to_dict(),
            "findings": [f.to_dict(include_row=include_rows) for f in self.findings],
        }


@dataclass(frozen=True)
class BenchmarkResult:
    """
    Result of evaluating a benchmark.

    Attributes:
        benchmark_id: Evaluated benchmark
        title: Benchmark title
        children: Child results in declaration order
    """

    benchmark_id: str
    title: str
    children: tuple[EvaluationResult, ...] = ()

    @property
    def counts(self) -> StatusCounts:
        """Sum of the children's counts."""
        return StatusCounts.total_of(child.counts for child in self.children)

    @property
    def completed(self) -> bool:
        """True when every descendant control was evaluated."""
        return all(child.completed for child in self.children)

    def iter_control_results(self) -> Iterator[ControlResult]:
        """Iterate depth-first over all control results in the subtree."""
        for child in self.children:
            if isinstance(child, ControlResult):
                yield child
            else:
                yield from child.iter_control_results()

    def to_dict(self, include_rows: bool = False) -> dict[str, Any]:
        """Convert result to a nested record."""
        return {
            "type": "benchmark",
            "benchmark_id": self.benchmark_id,
            "title": self.title,
            "completed": self.completed,
            "counts": self.counts.to_dict(),
            "children": [c.to_dict(include_rows=include_rows) for c in self.children],
        }


EvaluationResult = Union[ControlResult, BenchmarkResult]


@dataclass
class RunReport:
    """
    Complete output of a run.

    Attributes:
        run_id: Unique identifier of the run
        target_id: Benchmark or control that was run
        root: Root of the result tree
        started_at: When the run started
        finished_at: When the run finished
        variables: Resolved variable values used by the run
        incomplete: True when the run was cancelled or timed out
    """

    run_id: str
    target_id: str
    root: EvaluationResult
    started_at: datetime
    finished_at: datetime
    variables: dict[str, Any] = field(default_factory=dict)
    incomplete: bool = False

    @property
    def counts(self) -> StatusCounts:
        """Counts of the root node."""
        return self.root.counts

    @property
    def duration_seconds(self) -> float:
        """Wall-clock duration of the run."""
        return (self.finished_at - self.started_at).total_seconds()

    def control_results(self) -> list[ControlResult]:
        """All control results in tree order."""
        if isinstance(self.root, ControlResult):
            return [self.root]
        return list(self.root.iter_control_results())

    def to_dict(self, include_rows: bool = False) -> dict[str, Any]:
        """Convert report to dictionary."""
        return {
            "run_id": self.run_id,
            "target_id": self.target_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "incomplete": self.incomplete,
            "variables": self.variables,
            "counts": self.counts.to_dict(),
            "result": self.root.to_dict(include_rows=include_rows),
        }

    def to_json(self, include_rows: bool = False) -> str:
        """Convert report to JSON string."""
        return json.dumps(self.to_dict(include_rows=include_rows), indent=2, default=str)
