"""
Observability for Tightwad.

Structured and human-readable logging with run lifecycle events.
"""

from tightwad.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    TightwadLogger,
    configure_logging,
    configure_logging_from_env,
    get_logger,
)

__all__ = [
    "HumanReadableFormatter",
    "StructuredFormatter",
    "TightwadLogger",
    "configure_logging",
    "configure_logging_from_env",
    "get_logger",
]
