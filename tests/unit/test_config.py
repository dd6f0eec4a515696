"""
Tests for Tightwad run configuration.
"""

from __future__ import annotations

import json

import pytest

from tightwad.config import LoggingConfig, ProviderConfig, RunConfiguration, load_config_from_env
from tightwad.query import AthenaTableProvider, SQLiteTableProvider


class TestRunConfiguration:
    """Tests for RunConfiguration."""

    def test_defaults(self):
        """Test default configuration values."""
        config = RunConfiguration()

        assert config.include_builtin is True
        assert config.concurrency == 4
        assert config.timeout is None
        assert config.retry.max_retries == 3
        assert config.provider.backend == "sqlite"
        assert config.logging.level == "WARNING"

    def test_invalid_concurrency(self):
        """Test concurrency must be positive."""
        with pytest.raises(ValueError):
            RunConfiguration(concurrency=0)

    def test_invalid_timeout(self):
        """Test timeout must be positive when set."""
        with pytest.raises(ValueError):
            RunConfiguration(timeout=-1)

    def test_from_dict(self):
        """Test nested sections are parsed."""
        config = RunConfiguration.from_dict(
            {
                "definition_dirs": ["./controls"],
                "concurrency": 8,
                "retry": {"max_retries": 1},
                "variables": {"ebs_volume_max_size_gb": 200},
                "variable_text": {"ec2_running_instance_age_max_days": 30},
                "provider": {"backend": "athena", "database": "inventory"},
                "logging": {"format": "json"},
            }
        )

        assert config.definition_dirs == ["./controls"]
        assert config.concurrency == 8
        assert config.retry.max_retries == 1
        assert config.variables == {"ebs_volume_max_size_gb": 200}
        assert config.variable_text == {"ec2_running_instance_age_max_days": "30"}
        assert config.provider.database == "inventory"
        assert config.logging == LoggingConfig(level="WARNING", format="json")

    def test_save_and_load_json(self, tmp_path):
        """Test a saved JSON configuration loads back."""
        path = tmp_path / "config.json"
        config = RunConfiguration(concurrency=2, timeout=30.0, variables={"a": 1})

        config.save(str(path))
        loaded = RunConfiguration.from_file(str(path))

        assert json.loads(path.read_text())["concurrency"] == 2
        assert loaded.to_dict() == config.to_dict()

    def test_load_yaml(self, tmp_path):
        """Test loading a YAML configuration file."""
        path = tmp_path / "tightwad.yaml"
        path.write_text(
            "concurrency: 3\nprovider:\n  snapshot_path: snap.json\nvariables:\n  max_size: 5\n",
            encoding="utf-8",
        )

        config = RunConfiguration.from_file(str(path))

        assert config.concurrency == 3
        assert config.provider.snapshot_path == "snap.json"
        assert config.variables == {"max_size": 5}

    def test_load_non_mapping(self, tmp_path):
        """Test a configuration file must hold a mapping."""
        path = tmp_path / "bad.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")

        with pytest.raises(ValueError, match="mapping"):
            RunConfiguration.from_file(str(path))


class TestProviderConfig:
    """Tests for ProviderConfig."""

    def test_create_sqlite(self, snapshot_file):
        """Test building a sqlite provider loads the snapshot."""
        provider = ProviderConfig(snapshot_path=snapshot_file).create_provider()

        assert isinstance(provider, SQLiteTableProvider)
        assert "aws_ebs_volume" in provider.list_tables()
        provider.disconnect()

    def test_create_athena(self):
        """Test building an athena provider."""
        provider = ProviderConfig(
            backend="athena", database="inventory", timeout_seconds=60
        ).create_provider()

        assert isinstance(provider, AthenaTableProvider)
        assert provider.database == "inventory"

    def test_unknown_backend(self):
        """Test unsupported backends are rejected."""
        with pytest.raises(ValueError):
            ProviderConfig(backend="bigquery").create_provider()


class TestLoadConfigFromEnv:
    """Tests for load_config_from_env."""

    def test_empty_environment(self):
        """Test an empty environment yields defaults."""
        assert load_config_from_env({}).to_dict() == RunConfiguration().to_dict()

    def test_environment_settings(self):
        """Test TIGHTWAD_* variables are applied."""
        config = load_config_from_env(
            {
                "TIGHTWAD_DEFINITION_DIRS": "a, b",
                "TIGHTWAD_NO_BUILTIN": "true",
                "TIGHTWAD_CONCURRENCY": "6",
                "TIGHTWAD_TIMEOUT": "12.5",
                "TIGHTWAD_MAX_RETRIES": "0",
                "TIGHTWAD_PROVIDER": "athena",
                "TIGHTWAD_ATHENA_DATABASE": "inventory",
                "TIGHTWAD_REGION": "eu-west-1",
                "TIGHTWAD_LOG_LEVEL": "DEBUG",
            }
        )

        assert config.definition_dirs == ["a", "b"]
        assert config.include_builtin is False
        assert config.concurrency == 6
        assert config.timeout == 12.5
        assert config.retry.max_retries == 0
        assert config.provider.backend == "athena"
        assert config.provider.database == "inventory"
        assert config.provider.region == "eu-west-1"
        assert config.logging.level == "DEBUG"

    def test_variable_overrides(self):
        """Test TIGHTWAD_VAR_* variables become textual overrides."""
        config = load_config_from_env({"TIGHTWAD_VAR_EBS_VOLUME_MAX_SIZE_GB": "250"})

        assert config.variable_text == {"ebs_volume_max_size_gb": "250"}

    def test_config_file_is_base(self, tmp_path):
        """Test environment settings apply on top of the config file."""
        path = tmp_path / "config.json"
        RunConfiguration(concurrency=2, timeout=10.0).save(str(path))

        config = load_config_from_env(
            {"TIGHTWAD_CONFIG_FILE": str(path), "TIGHTWAD_CONCURRENCY": "5"}
        )

        assert config.concurrency == 5
        assert config.timeout == 10.0

    def test_invalid_number(self):
        """Test unparseable numbers raise ValueError."""
        with pytest.raises(ValueError):
            load_config_from_env({"TIGHTWAD_CONCURRENCY": "many"})
