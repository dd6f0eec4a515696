"""
Tightwad - AWS cost-optimization controls

Runs a catalog of cost checks ("controls") against a tabular snapshot of
AWS resource metadata and produces a hierarchical report of findings.

Key Features:
- YAML definitions: variables, queries, controls and benchmarks
- Tunable thresholds: override any variable per run
- Local snapshots via SQLite, or AWS-hosted tables via Athena
- Concurrent, cancellable runs that share duplicated controls

Quick Start:
    >>> import tightwad
    >>> from tightwad.query import SQLiteTableProvider
    >>>
    >>> provider = SQLiteTableProvider()
    >>> provider.load_snapshot("snapshot.json")
    >>> report = tightwad.run("all", provider=provider)
    >>> print(report.counts.alarm)
"""

from __future__ import annotations

__version__ = "0.1.0"

# Errors
from tightwad.errors import (
    ControlError,
    DefinitionError,
    ProviderError,
    TightwadError,
)

# Core models
from tightwad.models import (
    Benchmark,
    BenchmarkResult,
    Control,
    ControlResult,
    Finding,
    FindingStatus,
    Query,
    RunReport,
    Severity,
    StatusCounts,
    Variable,
    VariableType,
)

# Table providers
from tightwad.query import (
    AthenaTableProvider,
    QueryResult,
    SQLiteTableProvider,
    TableProvider,
    get_table_provider,
)

# Engine
from tightwad.engine import (
    DefinitionLoader,
    Definitions,
    Registry,
    ReportAggregator,
    RetryConfig,
    VariableStore,
    load_definitions,
)
from tightwad.engine.runner import Runner, run

# Configuration
from tightwad.config import RunConfiguration, load_config_from_env

__all__ = [
    "__version__",
    # Errors
    "ControlError",
    "DefinitionError",
    "ProviderError",
    "TightwadError",
    # Models
    "Benchmark",
    "BenchmarkResult",
    "Control",
    "ControlResult",
    "Finding",
    "FindingStatus",
    "Query",
    "RunReport",
    "Severity",
    "StatusCounts",
    "Variable",
    "VariableType",
    # Table providers
    "AthenaTableProvider",
    "QueryResult",
    "SQLiteTableProvider",
    "TableProvider",
    "get_table_provider",
    # Engine
    "DefinitionLoader",
    "Definitions",
    "Registry",
    "ReportAggregator",
    "RetryConfig",
    "Runner",
    "VariableStore",
    "load_definitions",
    "run",
    # Configuration
    "RunConfiguration",
    "load_config_from_env",
]
