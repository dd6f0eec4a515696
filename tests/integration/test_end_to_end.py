"""
Integration tests for Tightwad end-to-end workflows.

Tests cover:
- Running the catalog from a configuration file
- Custom definitions layered on the built-in catalog
- CLI runs written to disk and their exit codes
"""

from __future__ import annotations

import csv
import json
import logging
import os

import pytest

import tightwad
from tightwad.cli import main
from tightwad.config import ProviderConfig, RunConfiguration
from tightwad.export import export_report

CUSTOM_DEFINITIONS = """
variables:
  - name: gp2_size_floor
    type: number
    default: 100

queries:
  - id: big_gp2
    params:
      - name: floor
        type: number
    sql: |
      SELECT arn AS resource,
        CASE WHEN size >= :floor THEN 'alarm' ELSE 'ok' END AS status,
        volume_id || ' is gp2.' AS reason
      FROM aws_ebs_volume
      WHERE volume_type = 'gp2'

controls:
  - id: big_gp2_volumes
    title: Large gp2 volumes
    query: big_gp2
    params:
      - name: floor
        variable: gp2_size_floor

benchmarks:
  - id: team
    title: Team checks
    children:
      - benchmark.ebs
      - control.big_gp2_volumes
      - control.ebs_volume_using_gp2
"""


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Isolate runs from TIGHTWAD_* variables and CLI logging setup."""
    for name in list(os.environ):
        if name.startswith("TIGHTWAD_"):
            monkeypatch.delenv(name)
    logger = logging.getLogger("tightwad")
    handlers = list(logger.handlers)
    yield
    logger.handlers[:] = handlers


@pytest.fixture
def custom_dir(tmp_path) -> str:
    """Write custom definitions that build on the built-in catalog."""
    directory = tmp_path / "team"
    directory.mkdir()
    (directory / "team.yaml").write_text(CUSTOM_DEFINITIONS, encoding="utf-8")
    return str(directory)


class TestLibraryRuns:
    """Tests for tightwad.run."""

    def test_run_all(self, snapshot_file):
        """Test the whole catalog runs from a snapshot."""
        config = RunConfiguration(provider=ProviderConfig(snapshot_path=snapshot_file))

        report = tightwad.run("all", config=config)

        assert report.incomplete is False
        assert report.counts.error == 0
        assert report.counts.total == 34

    def test_override_changes_results(self, snapshot_file):
        """Test a variable override changes the outcome of a control."""
        config = RunConfiguration(provider=ProviderConfig(snapshot_path=snapshot_file))

        default = tightwad.run("ebs_volume_large", config=config)
        relaxed = tightwad.run("ebs_volume_large", config=config, overrides={"ebs_volume_max_size_gb": 1000})

        assert default.counts.alarm == 1
        assert relaxed.counts.alarm == 0
        assert relaxed.counts.ok == 2

    def test_config_file(self, snapshot_file, tmp_path):
        """Test a saved configuration drives a run."""
        path = tmp_path / "tightwad.json"
        RunConfiguration(
            concurrency=2,
            variable_text={"ebs_volume_max_size_gb": "10"},
            provider=ProviderConfig(snapshot_path=snapshot_file),
        ).save(str(path))

        report = tightwad.run("ebs_volume_large", config=RunConfiguration.from_file(str(path)))

        # vol-attached (50GB) and vol-null (500GB) are both over 10GB
        assert report.counts.alarm == 2

    def test_custom_definitions(self, snapshot_file, custom_dir):
        """Test custom benchmarks can reuse catalog controls."""
        config = RunConfiguration(
            definition_dirs=[custom_dir],
            provider=ProviderConfig(snapshot_path=snapshot_file),
        )

        report = tightwad.run("team", config=config, overrides={"gp2_size_floor": 1000})

        custom = report.root.children[1]
        assert custom.control_id == "big_gp2_volumes"
        assert [f.status.value for f in custom.findings] == ["ok"]
        # ebs_volume_using_gp2 appears twice and is counted at both positions
        assert report.root.counts.total == 9 + 1 + 3

    def test_export_to_files(self, snapshot_file, tmp_path):
        """Test reports export to JSON and CSV files."""
        config = RunConfiguration(provider=ProviderConfig(snapshot_path=snapshot_file))
        report = tightwad.run("unused_resources", config=config)

        json_path = tmp_path / "report.json"
        csv_path = tmp_path / "report.csv"
        assert export_report(report, format="json", output_path=json_path).success
        assert export_report(report, format="csv", output_path=csv_path, statuses=["alarm"]).success

        data = json.loads(json_path.read_text(encoding="utf-8"))
        assert data["counts"]["alarm"] == 4
        with open(csv_path, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 4
        assert {r["benchmark_path"] for r in rows} == {"unused_resources"}


class TestCLIRuns:
    """Tests for CLI runs."""

    def test_json_report_to_file(self, snapshot_file, tmp_path, capsys):
        """Test a CLI run writes a JSON report."""
        path = tmp_path / "out.json"

        code = main(["run", "rds", "--snapshot", snapshot_file, "--format", "json", "-o", str(path)])

        assert code == 0
        assert "Report written to" in capsys.readouterr().out
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["counts"]["alarm"] == 2
        assert [c["control_id"] for c in data["result"]["children"]] == [
            "rds_db_instance_low_utilization",
            "rds_db_instance_long_running",
        ]

    def test_fail_on_alarm(self, snapshot_file):
        """Test alarms only fail the run with --fail-on-alarm."""
        assert main(["run", "vpc", "--snapshot", snapshot_file]) == 0
        assert main(["run", "vpc", "--snapshot", snapshot_file, "--fail-on-alarm"]) == 1

    def test_errors_fail_the_run(self, tmp_path, capsys):
        """Test controls that error make the run exit 1."""
        snapshot = tmp_path / "empty.json"
        snapshot.write_text(json.dumps({"tables": {"aws_vpc_eip": []}}), encoding="utf-8")

        assert main(["run", "vpc", "--snapshot", str(snapshot)]) == 1
        assert "ERROR vpc_eip_unattached" in capsys.readouterr().out

    def test_empty_table_with_columns_passes(self, tmp_path, capsys):
        """Test an account with no EIPs yields no findings and no errors."""
        snapshot = tmp_path / "no_eips.json"
        columns = ["arn", "allocation_id", "association_id", "region", "account_id"]
        snapshot.write_text(
            json.dumps({"tables": {"aws_vpc_eip": {"columns": columns, "rows": []}}}),
            encoding="utf-8",
        )

        code = main(["run", "vpc", "--snapshot", str(snapshot), "--format", "json"])

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["counts"]["error"] == 0
        assert data["counts"]["total"] == 0

    def test_config_flag(self, snapshot_file, tmp_path, capsys):
        """Test --config supplies provider and variable settings."""
        path = tmp_path / "config.yaml"
        path.write_text(
            f"provider:\n  snapshot_path: {snapshot_file}\nvariable_text:\n  ebs_volume_max_size_gb: '1000'\n",
            encoding="utf-8",
        )

        code = main(["run", "ebs_volume_large", "--config", str(path), "--format", "json"])

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["counts"]["alarm"] == 0
        assert data["variables"]["ebs_volume_max_size_gb"] == 1000
