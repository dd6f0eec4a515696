"""
SQLite-based table provider.

This module provides SQLiteTableProvider, which materializes resource
snapshots into SQLite tables and executes control queries against them.
It is suitable for local runs, CI pipelines and tests.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sqlite3
import time
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable

import yaml

from tightwad.query.base import (
    DataUnavailable,
    ProviderTimeout,
    QueryExecutionError,
    QueryResult,
    TableProvider,
)
from tightwad.query.functions import SQL_FUNCTIONS

logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _to_sql_value(value: Any) -> Any:
    """Convert a Python value into something SQLite can store or bind."""
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(list(value) if isinstance(value, tuple) else value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class SQLiteTableProvider(TableProvider):
    """
    SQLite table provider for local snapshots.

    With the default ``db_path`` of ":memory:" the provider creates a
    private, shared-cache in-memory database so that worker threads can
    open their own connections to the same data. A file path works the
    same way against an on-disk database.

    List and dict values are stored as JSON text. Queries can count items
    in such columns with the ``item_count()`` SQL function, which treats
    null and empty the same way.

    Example:
        >>> provider = SQLiteTableProvider()
        >>> provider.load_table("aws_ebs_volume", [
        ...     {"arn": "arn:aws:ec2:...:volume/vol-1", "attachments": None},
        ... ])
        >>> result = provider.query(
        ...     "SELECT arn, item_count(attachments) AS n FROM aws_ebs_volume"
        ... )
    """

    def __init__(self, db_path: str = ":memory:", timeout_seconds: float = 5.0) -> None:
        """
        Initialize the SQLite provider.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
                     Supports ~ for home directory.
            timeout_seconds: How long a query waits on a locked database
        """
        super().__init__()
        self._timeout = timeout_seconds

        if db_path == ":memory:":
            self._database = f"file:tightwad-{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._uri = True
        else:
            self._database = os.path.expanduser(db_path)
            self._uri = False
            db_dir = os.path.dirname(self._database)
            if db_dir:
                Path(db_dir).mkdir(parents=True, exist_ok=True)

        # Keeps a shared in-memory database alive for the provider's lifetime
        self._anchor: sqlite3.Connection | None = None

    @property
    def provider_name(self) -> str:
        """Return the name of this provider."""
        return "sqlite"

    def _get_connection(self) -> sqlite3.Connection:
        """Open a connection with helper functions registered."""
        conn = sqlite3.connect(
            self._database,
            uri=self._uri,
            timeout=self._timeout,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        for name, num_args, func in SQL_FUNCTIONS:
            conn.create_function(name, num_args, func, deterministic=True)
        return conn

    def connect(self) -> None:
        """Open the anchor connection."""
        if self._anchor is None:
            self._anchor = self._get_connection()
        self._connected = True

    def disconnect(self) -> None:
        """Close the anchor connection (drops in-memory data)."""
        if self._anchor is not None:
            self._anchor.close()
            self._anchor = None
        self._connected = False

    def load_table(
        self,
        table_name: str,
        rows: Iterable[dict[str, Any]],
        columns: list[str] | None = None,
    ) -> int:
        """
        Create (or replace) a table from a list of row dictionaries.

        Columns are the ordered union of keys across all rows, plus any
        explicitly listed columns. A key missing from a row is stored as
        NULL.

        Args:
            table_name: Name of the table to create
            rows: Row dictionaries
            columns: Extra columns to create (needed for empty tables)

        Returns:
            Number of rows loaded
        """
        if not IDENTIFIER_PATTERN.match(table_name):
            raise ValueError(f"Invalid table name: {table_name}")

        rows = list(rows)
        all_columns: list[str] = list(columns or [])
        for row in rows:
            for key in row:
                if key not in all_columns:
                    all_columns.append(key)

        if not all_columns:
            raise ValueError(f"Table {table_name} needs at least one column")
        for column in all_columns:
            if not IDENTIFIER_PATTERN.match(column):
                raise ValueError(f"Invalid column name in {table_name}: {column}")

        self.connect()
        assert self._anchor is not None
        column_list = ", ".join(f'"{c}"' for c in all_columns)
        placeholders = ", ".join("?" for _ in all_columns)

        with self._anchor:
            self._anchor.execute(f'DROP TABLE IF EXISTS "{table_name}"')
            self._anchor.execute(f'CREATE TABLE "{table_name}" ({column_list})')
            self._anchor.executemany(
                f'INSERT INTO "{table_name}" ({column_list}) VALUES ({placeholders})',
                [tuple(_to_sql_value(row.get(c)) for c in all_columns) for row in rows],
            )

        logger.debug(f"Loaded {len(rows)} rows into {table_name}")
        return len(rows)

    def load_snapshot(self, path: str) -> dict[str, int]:
        """
        Load every table from a JSON or YAML snapshot file.

        The file maps table names to tables, either at the top level or
        under a "tables" key. A table is a list of rows, or a mapping with
        "columns" and "rows" keys. Declaring columns lets a table with no
        rows exist, so controls over it pass with zero findings instead of
        failing on a missing table.

        Args:
            path: Snapshot file path

        Returns:
            Mapping of table name to number of rows loaded
        """
        path = os.path.expanduser(path)
        with open(path, "r", encoding="utf-8") as f:
            if path.endswith(".json"):
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Snapshot {path} must be a mapping of tables")

        tables = data.get("tables", data)
        loaded: dict[str, int] = {}
        for table_name, table in tables.items():
            columns: list[str] = []
            rows = table
            if isinstance(table, dict):
                columns = table.get("columns") or []
                rows = table.get("rows") or []
                if not isinstance(columns, list) or not isinstance(rows, list):
                    raise ValueError(
                        f"Snapshot table {table_name} needs list 'columns' and 'rows'"
                    )
            if not rows and not columns:
                # No rows and no declared columns; queries see the table as absent
                logger.warning(f"Snapshot table {table_name} is empty, skipping")
                continue
            loaded[table_name] = self.load_table(table_name, rows, columns=columns)

        logger.info(f"Loaded snapshot {path}: {len(loaded)} tables")
        return loaded

    def execute_query(
        self,
        sql: str,
        parameters: dict[str, Any] | None = None,
    ) -> QueryResult:
        """
        Execute a SQL query against the snapshot.

        Args:
            sql: SQL query with :name placeholders
            parameters: Values for the placeholders; lists and dicts are
                bound as JSON text

        Returns:
            QueryResult with rows and metadata
        """
        bound = {k: _to_sql_value(v) for k, v in (parameters or {}).items()}
        start_time = time.time()

        conn = self._get_connection()
        try:
            cursor = conn.execute(sql, bound)
            columns = [d[0] for d in cursor.description or []]
            rows = [dict(row) for row in cursor.fetchall()]
        except sqlite3.OperationalError as e:
            message = str(e)
            lowered = message.lower()
            if "no such table" in lowered or "no such column" in lowered:
                raise DataUnavailable(message) from e
            if "locked" in lowered or "busy" in lowered:
                raise ProviderTimeout(message) from e
            raise QueryExecutionError(f"SQLite query failed: {message}") from e
        except sqlite3.Error as e:
            raise QueryExecutionError(f"SQLite query failed: {e}") from e
        finally:
            conn.close()

        return QueryResult(
            rows=rows,
            columns=columns,
            row_count=len(rows),
            execution_time_ms=int((time.time() - start_time) * 1000),
            metadata={"database": self._database},
        )

    def list_tables(self) -> list[str]:
        """List all tables in the snapshot."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
            )
            return [row["name"] for row in cursor.fetchall()]
        finally:
            conn.close()
