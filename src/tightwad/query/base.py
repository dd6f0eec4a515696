"""
Base table provider for Tightwad.

A table provider executes a control's bound query against a snapshot of
resource metadata and returns rows. Implementations are read-only and
accept only SELECT (or WITH) statements.
"""

from __future__ import annotations

import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from tightwad.errors import (
    DataUnavailable,
    ProviderTimeout,
    QueryExecutionError,
    QueryValidationError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DataUnavailable",
    "ProviderTimeout",
    "QueryExecutionError",
    "QueryResult",
    "QueryValidationError",
    "TableProvider",
    "validate_read_only",
]

# SQL keywords that are forbidden (write operations)
FORBIDDEN_KEYWORDS = [
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "CREATE",
    "ALTER",
    "TRUNCATE",
    "MERGE",
    "GRANT",
    "REVOKE",
    "ATTACH",
    "DETACH",
    "PRAGMA",
    "VACUUM",
]

# Pattern to detect SQL comments that might hide malicious code
COMMENT_PATTERN = re.compile(r"(--|/\*|\*/)")


def _strip_literals(sql: str) -> str:
    """Remove quoted string literals and identifiers."""
    sql = re.sub(r"'[^']*'", "''", sql)
    return re.sub(r'"[^"]*"', '""', sql)


def validate_read_only(sql: str) -> list[str]:
    """
    Validate that a query is safe to execute.

    Checks:
    - Query starts with SELECT or WITH
    - No forbidden keywords (INSERT, UPDATE, DELETE, etc.)
    - No SQL comments that could hide statements
    - No multiple statements (semicolons)

    Args:
        sql: SQL query to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors: list[str] = []
    if not sql or not sql.strip():
        return ["Query is empty"]

    bare = _strip_literals(sql)
    sql_upper = bare.upper().strip()

    if not sql_upper.startswith("SELECT") and not sql_upper.startswith("WITH"):
        errors.append("Query must start with SELECT or WITH")

    for keyword in FORBIDDEN_KEYWORDS:
        if re.search(rf"\b{keyword}\b", sql_upper):
            errors.append(f"Forbidden keyword detected: {keyword}")

    if COMMENT_PATTERN.search(bare):
        errors.append("SQL comments are not allowed")

    if ";" in bare.rstrip().rstrip(";"):
        errors.append("Multiple statements are not allowed")

    return errors


@dataclass
class QueryResult:
    """
    Result from a query execution.

    Rows are mappings of column name to value. A column that a row does
    not carry is absent from the mapping; a null column is present with
    the value None.

    Attributes:
        rows: List of result rows as dictionaries
        columns: List of column names
        row_count: Number of rows returned
        execution_time_ms: Query execution time in milliseconds
        query_id: Provider-assigned identifier for the execution
        metadata: Additional provider-specific metadata
    """

    rows: list[dict[str, Any]]
    columns: list[str]
    row_count: int = 0
    execution_time_ms: int = 0
    query_id: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.row_count:
            self.row_count = len(self.rows)

    def to_dict(self) -> dict[str, Any]:
        """Return full result as dictionary."""
        return {
            "rows": self.rows,
            "columns": self.columns,
            "row_count": self.row_count,
            "execution_time_ms": self.execution_time_ms,
            "query_id": self.query_id,
            "metadata": self.metadata,
        }


class TableProvider(ABC):
    """
    Abstract base class for table providers.

    Implementations must raise DataUnavailable when a referenced table or
    column does not exist, ProviderTimeout when the call timed out or was
    throttled, and QueryExecutionError for any other failure.
    """

    def __init__(self) -> None:
        """Initialize the provider."""
        self._connected = False
        self._connect_lock = threading.Lock()

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of this provider."""

    @abstractmethod
    def connect(self) -> None:
        """
        Prepare the provider for queries.

        Raises:
            QueryExecutionError: If the backend cannot be reached
        """

    @abstractmethod
    def disconnect(self) -> None:
        """Release provider resources."""

    @abstractmethod
    def execute_query(
        self,
        sql: str,
        parameters: dict[str, Any] | None = None,
    ) -> QueryResult:
        """
        Execute a SQL query and return results.

        Args:
            sql: SQL query with :name placeholders
            parameters: Values for the placeholders

        Returns:
            QueryResult with rows and metadata
        """

    @abstractmethod
    def list_tables(self) -> list[str]:
        """List available tables."""

    def query(
        self,
        sql: str,
        parameters: dict[str, Any] | None = None,
    ) -> QueryResult:
        """
        Validate and execute a query.

        This is the entry point used by the evaluation engine.

        Raises:
            QueryValidationError: If the query is not read-only
            DataUnavailable: If a table or column is missing
            ProviderTimeout: If the call timed out
            QueryExecutionError: If execution failed
        """
        errors = validate_read_only(sql)
        if errors:
            raise QueryValidationError(f"Query validation failed: {'; '.join(errors)}")

        if not self._connected:
            with self._connect_lock:
                if not self._connected:
                    self.connect()

        return self.execute_query(sql, parameters or {})

    def is_connected(self) -> bool:
        """Check if the provider is connected."""
        return self._connected

    def __enter__(self) -> TableProvider:
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.disconnect()
