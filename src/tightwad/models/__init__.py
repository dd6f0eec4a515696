"""
Data models for Tightwad.

This package provides the core data models used throughout Tightwad:

- Variable: Named, typed thresholds that parameterize controls
- Query / Control: Parameterized checks and their SQL
- Benchmark: Ordered groupings of controls and nested benchmarks
- Finding: Per-resource result of evaluating a control
- ControlResult / BenchmarkResult / RunReport: The result tree of a run
"""

from tightwad.models.variable import Variable, VariableType
from tightwad.models.control import (
    Control,
    ParameterBinding,
    Query,
    QueryParameter,
    Severity,
)
from tightwad.models.benchmark import Benchmark, ChildKind, ChildRef
from tightwad.models.finding import Finding, FindingStatus, StatusCounts
from tightwad.models.result import (
    BenchmarkResult,
    ControlResult,
    EvaluationResult,
    RunReport,
)

__all__ = [
    # Variable module
    "Variable",
    "VariableType",
    # Control module
    "Control",
    "ParameterBinding",
    "Query",
    "QueryParameter",
    "Severity",
    # Benchmark module
    "Benchmark",
    "ChildKind",
    "ChildRef",
    # Finding module
    "Finding",
    "FindingStatus",
    "StatusCounts",
    # Result module
    "BenchmarkResult",
    "ControlResult",
    "EvaluationResult",
    "RunReport",
]
