"""
Run configuration for Tightwad.

Settings can come from a JSON or YAML file, from TIGHTWAD_* environment
variables, or be built in code.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from tightwad.engine.retry import RetryConfig
from tightwad.query import TableProvider, get_table_provider

VARIABLE_ENV_PREFIX = "TIGHTWAD_VAR_"


@dataclass
class ProviderConfig:
    """Configuration for the table provider."""

    backend: str = "sqlite"  # sqlite, athena
    snapshot_path: str = ""
    db_path: str = ""
    database: str = "default"
    workgroup: str = "primary"
    output_location: str = ""
    region: str = "us-east-1"
    timeout_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "backend": self.backend,
            "snapshot_path": self.snapshot_path,
            "db_path": self.db_path,
            "database": self.database,
            "workgroup": self.workgroup,
            "output_location": self.output_location,
            "region": self.region,
            "timeout_seconds": self.timeout_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderConfig:
        """Create from dictionary."""
        return cls(
            backend=data.get("backend", "sqlite"),
            snapshot_path=data.get("snapshot_path", ""),
            db_path=data.get("db_path", ""),
            database=data.get("database", "default"),
            workgroup=data.get("workgroup", "primary"),
            output_location=data.get("output_location", ""),
            region=data.get("region", "us-east-1"),
            timeout_seconds=data.get("timeout_seconds"),
        )

    def create_provider(self) -> TableProvider:
        """
        Build the configured table provider.

        Raises:
            ValueError: If the backend is not supported
        """
        if self.backend == "athena":
            kwargs: dict[str, Any] = {
                "database": self.database,
                "workgroup": self.workgroup,
                "output_location": self.output_location or None,
                "region": self.region,
            }
        else:
            kwargs = {
                "db_path": self.db_path or None,
                "snapshot_path": self.snapshot_path or None,
            }
        if self.timeout_seconds is not None:
            kwargs["timeout_seconds"] = self.timeout_seconds
        return get_table_provider(self.backend, **kwargs)


@dataclass
class LoggingConfig:
    """Configuration for log output."""

    level: str = "WARNING"
    format: str = "human"  # human, json

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"level": self.level, "format": self.format}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingConfig:
        """Create from dictionary."""
        return cls(
            level=data.get("level", "WARNING"),
            format=data.get("format", "human"),
        )


@dataclass
class RunConfiguration:
    """
    Complete run configuration.

    Attributes:
        definition_dirs: Extra directories or files with YAML definitions
        include_builtin: Load the built-in AWS catalog
        concurrency: Maximum number of concurrent control evaluations
        timeout: Run timeout in seconds (None for no limit)
        grace_period: Seconds in-flight evaluations may finish after
            cancellation
        retry: Retry settings for provider timeouts
        variables: Typed variable overrides
        variable_text: Variable overrides as text, parsed against each
            variable's declared type at run time
        provider: Table provider settings
        logging: Log settings
    """

    definition_dirs: list[str] = field(default_factory=list)
    include_builtin: bool = True
    concurrency: int = 4
    timeout: float | None = None
    grace_period: float = 5.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    variables: dict[str, Any] = field(default_factory=dict)
    variable_text: dict[str, str] = field(default_factory=dict)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "definition_dirs": list(self.definition_dirs),
            "include_builtin": self.include_builtin,
            "concurrency": self.concurrency,
            "timeout": self.timeout,
            "grace_period": self.grace_period,
            "retry": self.retry.to_dict(),
            "variables": dict(self.variables),
            "variable_text": dict(self.variable_text),
            "provider": self.provider.to_dict(),
            "logging": self.logging.to_dict(),
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunConfiguration:
        """Create from dictionary."""
        return cls(
            definition_dirs=list(data.get("definition_dirs", [])),
            include_builtin=data.get("include_builtin", True),
            concurrency=data.get("concurrency", 4),
            timeout=data.get("timeout"),
            grace_period=data.get("grace_period", 5.0),
            retry=RetryConfig.from_dict(data.get("retry", {})),
            variables=dict(data.get("variables", {})),
            variable_text={k: str(v) for k, v in data.get("variable_text", {}).items()},
            provider=ProviderConfig.from_dict(data.get("provider", {})),
            logging=LoggingConfig.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_file(cls, path: str) -> RunConfiguration:
        """
        Load configuration from a JSON or YAML file.

        Raises:
            ValueError: If the file does not contain a mapping
        """
        path = os.path.expanduser(path)
        with open(path, "r", encoding="utf-8") as f:
            if path.endswith(".json"):
                data = json.load(f)
            else:
                data = yaml.safe_load(f)

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        return cls.from_dict(data)

    def save(self, path: str) -> None:
        """Save configuration to a JSON or YAML file."""
        path = os.path.expanduser(path)
        Path(path).parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            if path.endswith(".json"):
                json.dump(self.to_dict(), f, indent=2)
            else:
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False)


def load_config_from_env(environ: dict[str, str] | None = None) -> RunConfiguration:
    """
    Load configuration from environment variables.

    Environment variables:
        TIGHTWAD_CONFIG_FILE: Path to a configuration file used as the base
        TIGHTWAD_DEFINITION_DIRS: Comma-separated definition directories
        TIGHTWAD_NO_BUILTIN: Set to 1/true to skip the built-in catalog
        TIGHTWAD_CONCURRENCY: Maximum concurrent evaluations
        TIGHTWAD_TIMEOUT: Run timeout in seconds
        TIGHTWAD_MAX_RETRIES: Retries for provider timeouts
        TIGHTWAD_PROVIDER: Table provider backend (sqlite, athena)
        TIGHTWAD_SNAPSHOT: Snapshot file for the sqlite backend
        TIGHTWAD_ATHENA_DATABASE: Athena database
        TIGHTWAD_ATHENA_WORKGROUP: Athena workgroup
        TIGHTWAD_ATHENA_OUTPUT: Athena output location
        TIGHTWAD_REGION: AWS region
        TIGHTWAD_LOG_LEVEL: Log level
        TIGHTWAD_LOG_FORMAT: Log format (human, json)
        TIGHTWAD_VAR_<NAME>: Override for variable <name> (lowercased)

    Args:
        environ: Environment mapping (defaults to os.environ)

    Returns:
        RunConfiguration instance

    Raises:
        ValueError: If a numeric setting cannot be parsed
    """
    env = os.environ if environ is None else environ

    config_file = env.get("TIGHTWAD_CONFIG_FILE")
    if config_file:
        config = RunConfiguration.from_file(config_file)
    else:
        config = RunConfiguration()

    definition_dirs = env.get("TIGHTWAD_DEFINITION_DIRS")
    if definition_dirs:
        config.definition_dirs = [d.strip() for d in definition_dirs.split(",") if d.strip()]

    if env.get("TIGHTWAD_NO_BUILTIN", "").lower() in ("1", "true", "yes"):
        config.include_builtin = False

    concurrency = env.get("TIGHTWAD_CONCURRENCY")
    if concurrency:
        config.concurrency = int(concurrency)
        if config.concurrency < 1:
            raise ValueError(f"TIGHTWAD_CONCURRENCY must be >= 1, got {concurrency}")

    timeout = env.get("TIGHTWAD_TIMEOUT")
    if timeout:
        config.timeout = float(timeout)

    max_retries = env.get("TIGHTWAD_MAX_RETRIES")
    if max_retries:
        config.retry = RetryConfig.from_dict({**config.retry.to_dict(), "max_retries": int(max_retries)})

    # Provider
    provider = config.provider
    provider.backend = env.get("TIGHTWAD_PROVIDER", provider.backend)
    provider.snapshot_path = env.get("TIGHTWAD_SNAPSHOT", provider.snapshot_path)
    provider.database = env.get("TIGHTWAD_ATHENA_DATABASE", provider.database)
    provider.workgroup = env.get("TIGHTWAD_ATHENA_WORKGROUP", provider.workgroup)
    provider.output_location = env.get("TIGHTWAD_ATHENA_OUTPUT", provider.output_location)
    provider.region = env.get("TIGHTWAD_REGION", provider.region)

    # Logging
    config.logging.level = env.get("TIGHTWAD_LOG_LEVEL", config.logging.level)
    config.logging.format = env.get("TIGHTWAD_LOG_FORMAT", config.logging.format)

    # Variables
    for key, value in env.items():
        if key.startswith(VARIABLE_ENV_PREFIX) and len(key) > len(VARIABLE_ENV_PREFIX):
            config.variable_text[key[len(VARIABLE_ENV_PREFIX) :].lower()] = value

    return config
