"""
Configuration management for Tightwad.

Provides configuration classes for definition sources, concurrency,
retries, table providers and logging.
"""

from tightwad.config.run_config import (
    LoggingConfig,
    ProviderConfig,
    RunConfiguration,
    load_config_from_env,
)

__all__ = [
    "LoggingConfig",
    "ProviderConfig",
    "RunConfiguration",
    "load_config_from_env",
]
