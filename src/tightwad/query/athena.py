"""
AWS Athena table provider for Tightwad.

Runs control queries against resource tables stored in S3 and catalogued
in Glue, using Athena parameterized queries.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from tightwad.query.base import (
    DataUnavailable,
    ProviderTimeout,
    QueryExecutionError,
    QueryResult,
    TableProvider,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"(?<!:):([A-Za-z_][A-Za-z0-9_]*)")

THROTTLING_ERROR_CODES = {
    "ThrottlingException",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "RequestTimeout",
    "ServiceUnavailable",
}

# Fragments of Athena failure reasons that mean the table or column is absent
MISSING_DATA_MARKERS = (
    "TABLE_NOT_FOUND",
    "COLUMN_NOT_FOUND",
    "SCHEMA_NOT_FOUND",
    "does not exist",
    "cannot be resolved",
)


def to_athena_literal(value: Any) -> str:
    """
    Render a parameter value as an Athena SQL literal.

    Athena execution parameters are passed as SQL text, so strings are
    quoted and lists become ARRAY[...] constructors.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "ARRAY[" + ", ".join(to_athena_literal(v) for v in value) + "]"
    text = str(value).replace("'", "''")
    return f"'{text}'"


def to_positional(sql: str, parameters: dict[str, Any]) -> tuple[str, list[str]]:
    """
    Convert :name placeholders into Athena's positional ? placeholders.

    Returns:
        Tuple of (rewritten SQL, execution parameter literals)

    Raises:
        QueryExecutionError: If a placeholder has no value
    """
    literals: list[str] = []

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in parameters:
            raise QueryExecutionError(f"No value supplied for parameter :{name}")
        literals.append(to_athena_literal(parameters[name]))
        return "?"

    # Leave quoted literals untouched
    parts = re.split(r"('(?:[^']|'')*')", sql)
    rewritten = "".join(
        part if part.startswith("'") else PLACEHOLDER_PATTERN.sub(_replace, part)
        for part in parts
    )
    return rewritten, literals


class AthenaTableProvider(TableProvider):
    """
    AWS Athena table provider implementation.

    Example:
        >>> provider = AthenaTableProvider(
        ...     database="aws_inventory",
        ...     workgroup="tightwad",
        ...     output_location="s3://bucket/athena-results/"
        ... )
        >>> with provider:
        ...     result = provider.query(
        ...         "SELECT arn AS resource FROM aws_ebs_volume WHERE size > :max",
        ...         {"max": 100},
        ...     )
    """

    def __init__(
        self,
        database: str,
        workgroup: str = "primary",
        output_location: str | None = None,
        region: str = "us-east-1",
        session: Any | None = None,
        timeout_seconds: int = 300,
    ) -> None:
        """
        Initialize the Athena provider.

        Args:
            database: Athena/Glue database name
            workgroup: Athena workgroup name
            output_location: S3 location for query results
            region: AWS region
            session: Optional boto3 session
            timeout_seconds: Maximum time to wait for a query
        """
        super().__init__()
        self._database = database
        self._workgroup = workgroup
        self._output_location = output_location
        self._region = region
        self._session = session
        self._timeout = timeout_seconds
        self._client: Any = None

    @property
    def provider_name(self) -> str:
        """Return the name of this provider."""
        return "athena"

    @property
    def database(self) -> str:
        """Get the database name."""
        return self._database

    def _get_client(self) -> Any:
        """Get or create the Athena client."""
        if self._client is None:
            if self._session:
                self._client = self._session.client("athena", region_name=self._region)
            else:
                import boto3

                self._client = boto3.client("athena", region_name=self._region)
        return self._client

    def connect(self) -> None:
        """Verify the workgroup is reachable."""
        try:
            client = self._get_client()
            client.get_work_group(WorkGroup=self._workgroup)
        except (ClientError, BotoCoreError) as e:
            raise QueryExecutionError(f"Failed to connect to Athena: {e}") from e
        self._connected = True
        logger.info(f"Connected to Athena workgroup: {self._workgroup}")

    def disconnect(self) -> None:
        """Drop the Athena client."""
        self._client = None
        self._connected = False

    def execute_query(
        self,
        sql: str,
        parameters: dict[str, Any] | None = None,
    ) -> QueryResult:
        """
        Execute a SQL query using Athena.

        Args:
            sql: SQL query with :name placeholders
            parameters: Values for the placeholders

        Returns:
            QueryResult with rows and metadata
        """
        client = self._get_client()
        positional_sql, literals = to_positional(sql, parameters or {})

        execution_params: dict[str, Any] = {
            "QueryString": positional_sql,
            "QueryExecutionContext": {"Database": self._database},
            "WorkGroup": self._workgroup,
        }
        if literals:
            execution_params["ExecutionParameters"] = literals
        if self._output_location:
            execution_params["ResultConfiguration"] = {
                "OutputLocation": self._output_location
            }

        try:
            response = client.start_query_execution(**execution_params)
            query_id = response["QueryExecutionId"]
            logger.debug(f"Started Athena query: {query_id}")

            state, reason, stats = self._wait_for_query(client, query_id)
            if state != "SUCCEEDED":
                if any(marker in reason for marker in MISSING_DATA_MARKERS):
                    raise DataUnavailable(reason)
                raise QueryExecutionError(f"Query failed with state {state}: {reason}")

            rows, columns = self._get_query_results(client, query_id)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in THROTTLING_ERROR_CODES:
                raise ProviderTimeout(f"Athena throttled the request: {code}") from e
            raise QueryExecutionError(f"Athena query execution failed: {e}") from e
        except BotoCoreError as e:
            raise QueryExecutionError(f"Athena query execution failed: {e}") from e

        return QueryResult(
            rows=rows,
            columns=columns,
            row_count=len(rows),
            execution_time_ms=stats.get("TotalExecutionTimeInMillis", 0),
            query_id=query_id,
            metadata={
                "database": self._database,
                "workgroup": self._workgroup,
                "bytes_scanned": stats.get("DataScannedInBytes", 0),
            },
        )

    def _wait_for_query(
        self,
        client: Any,
        query_id: str,
    ) -> tuple[str, str, dict[str, Any]]:
        """
        Wait for a query to finish.

        Returns:
            Tuple of (final state, state change reason, statistics)

        Raises:
            ProviderTimeout: If the query does not finish in time
        """
        start_time = time.time()
        poll_interval = 0.5

        while True:
            response = client.get_query_execution(QueryExecutionId=query_id)
            execution = response["QueryExecution"]
            state = execution["Status"]["State"]

            if state in ("SUCCEEDED", "FAILED", "CANCELLED"):
                reason = execution["Status"].get("StateChangeReason", "")
                return state, reason, execution.get("Statistics", {})

            if time.time() - start_time > self._timeout:
                try:
                    client.stop_query_execution(QueryExecutionId=query_id)
                except ClientError as e:
                    logger.warning(f"Failed to stop Athena query {query_id}: {e}")
                raise ProviderTimeout(
                    f"Query {query_id} timed out after {self._timeout} seconds"
                )

            time.sleep(poll_interval)
            poll_interval = min(poll_interval * 1.5, 2.0)

    def _get_query_results(
        self,
        client: Any,
        query_id: str,
    ) -> tuple[list[dict[str, Any]], list[str]]:
        """
        Page through the results of a completed query.

        Returns:
            Tuple of (rows, column_names)
        """
        rows: list[dict[str, Any]] = []
        columns: list[str] = []
        next_token: str | None = None
        first_page = True

        while True:
            params: dict[str, Any] = {"QueryExecutionId": query_id}
            if next_token:
                params["NextToken"] = next_token

            response = client.get_query_results(**params)
            result_set = response.get("ResultSet", {})

            if first_page:
                metadata = result_set.get("ResultSetMetadata", {})
                columns = [
                    col.get("Name", f"col_{i}")
                    for i, col in enumerate(metadata.get("ColumnInfo", []))
                ]

            result_rows = result_set.get("Rows", [])
            # The first row of the first page repeats the column names
            start_idx = 1 if first_page and result_rows else 0
            first_page = False

            for row in result_rows[start_idx:]:
                data = row.get("Data", [])
                rows.append(
                    {
                        col_name: data[i].get("VarCharValue") if i < len(data) else None
                        for i, col_name in enumerate(columns)
                    }
                )

            next_token = response.get("NextToken")
            if not next_token:
                break

        return rows, columns

    def list_tables(self) -> list[str]:
        """List all tables in the Glue database."""
        if self._session:
            glue = self._session.client("glue", region_name=self._region)
        else:
            import boto3

            glue = boto3.client("glue", region_name=self._region)

        tables: list[str] = []
        next_token: str | None = None
        try:
            while True:
                params: dict[str, Any] = {"DatabaseName": self._database}
                if next_token:
                    params["NextToken"] = next_token
                response = glue.get_tables(**params)
                tables.extend(t.get("Name", "") for t in response.get("TableList", []))
                next_token = response.get("NextToken")
                if not next_token:
                    break
        except (ClientError, BotoCoreError) as e:
            raise QueryExecutionError(f"Failed to list tables: {e}") from e

        return sorted(tables)
