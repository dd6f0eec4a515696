"""
Pytest configuration and fixtures for Tightwad tests.

This module provides common fixtures used across unit and integration tests.
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Callable, Generator

import pytest

from tightwad.engine.loader import DefinitionLoader, Definitions, load_definitions
from tightwad.errors import ProviderTimeout
from tightwad.query.base import QueryResult, TableProvider
from tightwad.query.sqlite import SQLiteTableProvider


ACCOUNT = "123456789012"
REGION = "us-east-1"


# Definition fixtures


SMALL_DEFINITIONS = """
variables:
  - name: max_size
    type: number
    default: 100
    description: Largest acceptable item size
  - name: label
    type: string
    default: standard

queries:
  - id: sized
    params:
      - name: max_size
        type: number
    sql: SELECT resource, status, reason FROM items WHERE size > :max_size
  - id: plain
    sql: SELECT resource, status, reason FROM items
  - id: labelled
    params:
      - name: label
        type: string
      - name: limit
        type: number
        default: 10
    sql: SELECT resource, status, reason FROM items WHERE label = :label LIMIT :limit

controls:
  - id: large_items
    title: Large items
    query: sized
    params:
      - name: max_size
        variable: max_size
  - id: all_items
    title: All items
    severity: high
    query: plain
    tags:
      service: test
  - id: labelled_items
    title: Labelled items
    query: labelled
    params:
      - name: label
        variable: label

benchmarks:
  - id: inner
    title: Inner
    children:
      - control.large_items
  - id: outer
    title: Outer
    children:
      - control.all_items
      - benchmark.inner
      - control.large_items
"""


def make_definitions(*documents: str) -> Definitions:
    """Load YAML documents (without the built-in catalog) and validate them."""
    loader = DefinitionLoader(include_builtin=False)
    for index, document in enumerate(documents):
        loader.load_string(document, f"<test-{index}>")
    return loader.load_all()


@pytest.fixture
def small_definitions() -> Definitions:
    """Return a small validated set of definitions."""
    return make_definitions(SMALL_DEFINITIONS)


@pytest.fixture(scope="session")
def builtin_definitions() -> Definitions:
    """Return the built-in catalog, loaded once per session."""
    return load_definitions()


# Provider fixtures


class RecordingProvider(TableProvider):
    """
    In-memory table provider that records every query it receives.

    Rows come from a fixed list or a callable taking (sql, parameters).
    The first `timeouts` calls raise ProviderTimeout. When `gate` is set
    each call blocks until the gate event is released.
    """

    def __init__(
        self,
        rows: list[dict[str, Any]] | Callable[[str, dict[str, Any]], list[dict[str, Any]]] | None = None,
        timeouts: int = 0,
        error: Exception | None = None,
        delay: float = 0.0,
        gate: threading.Event | None = None,
    ):
        super().__init__()
        self.rows = rows if rows is not None else []
        self.timeouts = timeouts
        self.error = error
        self.delay = delay
        self.gate = gate
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    @property
    def provider_name(self) -> str:
        return "recording"

    def connect(self) -> None:
        self._connected = True

    def disconnect(self) -> None:
        self._connected = False

    def execute_query(
        self,
        sql: str,
        parameters: dict[str, Any] | None = None,
    ) -> QueryResult:
        parameters = dict(parameters or {})
        with self._lock:
            self.calls.append((sql, parameters))
            if self.timeouts > 0:
                self.timeouts -= 1
                raise ProviderTimeout("simulated timeout")

        if self.gate is not None:
            self.gate.wait(timeout=10)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error

        rows = self.rows(sql, parameters) if callable(self.rows) else self.rows
        return QueryResult(rows=[dict(r) for r in rows], columns=list(rows[0]) if rows else [])

    def list_tables(self) -> list[str]:
        return ["items"]

    def calls_for(self, fragment: str) -> list[tuple[str, dict[str, Any]]]:
        """Return recorded calls whose SQL contains fragment."""
        return [call for call in self.calls if fragment in call[0]]


@pytest.fixture
def item_rows() -> list[dict[str, Any]]:
    """Return rows in the shape every control query projects."""
    return [
        {"resource": "item-1", "status": "ok", "reason": "fine"},
        {"resource": "item-2", "status": "alarm", "reason": "too big"},
        {"resource": "item-3", "status": "skip", "reason": ""},
    ]


@pytest.fixture
def recording_provider(item_rows) -> RecordingProvider:
    """Return a RecordingProvider that answers every query with item_rows."""
    return RecordingProvider(rows=item_rows)


# Snapshot fixtures


def _arn(service: str, resource: str) -> str:
    return f"arn:aws:{service}:{REGION}:{ACCOUNT}:{resource}"


@pytest.fixture
def sample_snapshot() -> dict[str, list[dict[str, Any]]]:
    """Return a snapshot covering every table the built-in catalog reads."""
    common = {"region": REGION, "account_id": ACCOUNT}
    return {
        "aws_ebs_volume": [
            {
                "arn": _arn("ec2", "volume/vol-attached"),
                "volume_id": "vol-attached",
                "volume_type": "gp3",
                "size": 50,
                "attachments": [{"InstanceId": "i-running"}],
                **common,
            },
            {
                "arn": _arn("ec2", "volume/vol-null"),
                "volume_id": "vol-null",
                "volume_type": "gp2",
                "size": 500,
                "attachments": None,
                **common,
            },
            {
                "arn": _arn("ec2", "volume/vol-empty"),
                "volume_id": "vol-empty",
                "volume_type": "io1",
                "size": None,
                "attachments": [],
                **common,
            },
        ],
        "aws_ec2_instance": [
            {
                "arn": _arn("ec2", "instance/i-running"),
                "instance_id": "i-running",
                "instance_type": "t3.micro",
                "instance_state": "running",
                "launch_time": "2020-01-01T00:00:00",
                **common,
            },
            {
                "arn": _arn("ec2", "instance/i-huge"),
                "instance_id": "i-huge",
                "instance_type": "m5.24xlarge",
                "instance_state": "running",
                "launch_time": "2999-01-01T00:00:00",
                **common,
            },
            {
                "arn": _arn("ec2", "instance/i-stopped"),
                "instance_id": "i-stopped",
                "instance_type": "m5.24xlarge",
                "instance_state": "stopped",
                "launch_time": None,
                **common,
            },
        ],
        "aws_rds_db_instance": [
            {
                "arn": _arn("rds", "db:idle"),
                "db_instance_identifier": "idle",
                "status": "available",
                "create_time": "2020-01-01T00:00:00",
                **common,
            },
            {
                "arn": _arn("rds", "db:busy"),
                "db_instance_identifier": "busy",
                "status": "available",
                "create_time": "2999-01-01T00:00:00",
                **common,
            },
            {
                "arn": _arn("rds", "db:new"),
                "db_instance_identifier": "new",
                "status": "creating",
                "create_time": None,
                **common,
            },
        ],
        "aws_rds_db_instance_metric_cpu_utilization_daily": [
            {"db_instance_identifier": "idle", "timestamp": "2024-01-01", "average": 5.0, "maximum": 95.0},
            {"db_instance_identifier": "idle", "timestamp": "2024-01-02", "average": 10.0, "maximum": 20.0},
            {"db_instance_identifier": "busy", "timestamp": "2024-01-01", "average": 80.0, "maximum": 99.0},
        ],
        "aws_vpc_eip": [
            {
                "arn": _arn("ec2", "eip/eipalloc-used"),
                "allocation_id": "eipalloc-used",
                "association_id": "eipassoc-1",
                **common,
            },
            {
                "arn": _arn("ec2", "eip/eipalloc-free"),
                "allocation_id": "eipalloc-free",
                "association_id": None,
                **common,
            },
        ],
        "aws_ec2_application_load_balancer": [
            {
                "arn": _arn("elasticloadbalancing", "loadbalancer/app/used/1"),
                "name": "used",
                **common,
            },
            {
                "arn": _arn("elasticloadbalancing", "loadbalancer/app/idle/2"),
                "name": "idle",
                **common,
            },
        ],
        "aws_ec2_target_group": [
            {
                "arn": _arn("elasticloadbalancing", "targetgroup/tg-1/1"),
                "load_balancer_arns": [_arn("elasticloadbalancing", "loadbalancer/app/used/1")],
                **common,
            },
            {
                "arn": _arn("elasticloadbalancing", "targetgroup/tg-2/2"),
                "load_balancer_arns": None,
                **common,
            },
        ],
        "aws_cloudtrail_trail": [
            {
                "arn": _arn("cloudtrail", "trail/a-main"),
                "name": "a-main",
                "home_region": REGION,
                **common,
            },
            {
                "arn": _arn("cloudtrail", "trail/b-extra"),
                "name": "b-extra",
                "home_region": REGION,
                **common,
            },
            {
                # Shadow copy of a multi-region trail seen from another region
                "arn": _arn("cloudtrail", "trail/a-main-shadow"),
                "name": "a-main",
                "home_region": REGION,
                "region": "eu-west-1",
                "account_id": ACCOUNT,
            },
        ],
    }


@pytest.fixture
def snapshot_file(tmp_path, sample_snapshot) -> str:
    """Write sample_snapshot to a JSON file and return its path."""
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps({"tables": sample_snapshot}), encoding="utf-8")
    return str(path)


@pytest.fixture
def sqlite_provider(sample_snapshot) -> Generator[SQLiteTableProvider, None, None]:
    """Return a SQLite provider loaded with sample_snapshot."""
    provider = SQLiteTableProvider()
    for table, rows in sample_snapshot.items():
        provider.load_table(table, rows)
    yield provider
    provider.disconnect()


@pytest.fixture
def definitions_dir(tmp_path) -> str:
    """Write SMALL_DEFINITIONS into a directory and return its path."""
    directory = tmp_path / "definitions"
    directory.mkdir()
    (directory / "small.yaml").write_text(SMALL_DEFINITIONS, encoding="utf-8")
    return str(directory)
