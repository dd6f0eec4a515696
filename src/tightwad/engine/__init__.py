"""
Evaluation engine for Tightwad.

This package contains the variable store, the control and benchmark
registry, the YAML definition loader, the control evaluator and the
report aggregator. The run entry point lives in tightwad.engine.runner.
"""

from tightwad.engine.variables import ResolvedVariables, VariableStore
from tightwad.engine.registry import Registry
from tightwad.engine.loader import DefinitionLoader, Definitions, load_definitions
from tightwad.engine.retry import DEFAULT_RETRY_CONFIG, RetryConfig
from tightwad.engine.cache import FindingsCache, make_cache_key
from tightwad.engine.evaluator import BoundQuery, ControlEvaluator, EvaluationCancelled
from tightwad.engine.aggregator import ReportAggregator

__all__ = [
    # Variables
    "ResolvedVariables",
    "VariableStore",
    # Registry
    "Registry",
    # Loader
    "DefinitionLoader",
    "Definitions",
    "load_definitions",
    # Evaluation
    "BoundQuery",
    "ControlEvaluator",
    "EvaluationCancelled",
    "DEFAULT_RETRY_CONFIG",
    "RetryConfig",
    # Aggregation
    "FindingsCache",
    "make_cache_key",
    "ReportAggregator",
]
