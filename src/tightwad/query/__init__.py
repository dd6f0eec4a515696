"""
Table providers for Tightwad.

Providers execute control queries against tabular snapshots of resource
metadata:

- SQLiteTableProvider: Local snapshots loaded from JSON/YAML files
- AthenaTableProvider: Resource tables hosted in AWS Athena
"""

from __future__ import annotations

from typing import Any

from tightwad.query.base import (
    DataUnavailable,
    ProviderTimeout,
    QueryExecutionError,
    QueryResult,
    QueryValidationError,
    TableProvider,
    validate_read_only,
)
from tightwad.query.functions import item_count
from tightwad.query.sqlite import SQLiteTableProvider
from tightwad.query.athena import AthenaTableProvider

__all__ = [
    # Base classes
    "TableProvider",
    "QueryResult",
    # Errors
    "DataUnavailable",
    "ProviderTimeout",
    "QueryExecutionError",
    "QueryValidationError",
    # Implementations
    "SQLiteTableProvider",
    "AthenaTableProvider",
    # Helpers
    "item_count",
    "validate_read_only",
    # Factory function
    "get_table_provider",
]


def get_table_provider(backend: str, **kwargs: Any) -> TableProvider:
    """
    Factory function to get a table provider by backend name.

    Args:
        backend: Backend name ("sqlite" or "athena")
        **kwargs: Backend-specific configuration

    Returns:
        Configured TableProvider instance

    Raises:
        ValueError: If backend is not supported

    Examples:
        # Local snapshot
        provider = get_table_provider("sqlite", snapshot_path="snapshot.json")

        # AWS Athena
        provider = get_table_provider(
            "athena",
            database="aws_inventory",
            workgroup="tightwad",
            output_location="s3://bucket/results/"
        )
    """
    backend = backend.lower()

    if backend == "sqlite":
        provider = SQLiteTableProvider(
            db_path=kwargs.get("db_path") or ":memory:",
            timeout_seconds=kwargs.get("timeout_seconds", 5.0),
        )
        snapshot_path = kwargs.get("snapshot_path")
        if snapshot_path:
            provider.load_snapshot(snapshot_path)
        return provider

    elif backend == "athena":
        return AthenaTableProvider(
            database=kwargs.get("database", "default"),
            workgroup=kwargs.get("workgroup", "primary"),
            output_location=kwargs.get("output_location"),
            region=kwargs.get("region", "us-east-1"),
            session=kwargs.get("session"),
            timeout_seconds=kwargs.get("timeout_seconds", 300),
        )

    else:
        raise ValueError(
            f"Unsupported backend: {backend}. Supported backends: sqlite, athena"
        )
