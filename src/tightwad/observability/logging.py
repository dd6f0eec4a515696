"""
Structured logging configuration for Tightwad.

Provides consistent logging across all modules with a JSON formatter for
log aggregation and a colorized formatter for terminals.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

LOG_LEVEL_ENV = "TIGHTWAD_LOG_LEVEL"
LOG_FORMAT_ENV = "TIGHTWAD_LOG_FORMAT"

# Attributes every LogRecord carries; anything else came in through extra=
_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    )
)


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per log record.

    Fields passed through ``extra=`` (such as ``event_type`` or
    ``control_id``) are copied into the object.
    """

    def __init__(
        self,
        include_timestamp: bool = True,
        include_level: bool = True,
        include_logger: bool = True,
        include_location: bool = False,
        extra_fields: dict[str, Any] | None = None,
    ):
        """
        Initialize structured formatter.

        Args:
            include_timestamp: Include timestamp in output
            include_level: Include log level in output
            include_logger: Include logger name in output
            include_location: Include file/line location
            extra_fields: Additional fields to include in every log
        """
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_level = include_level
        self.include_logger = include_logger
        self.include_location = include_location
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {}

        if self.include_timestamp:
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            log_data["timestamp"] = created.isoformat().replace("+00:00", "Z")

        if self.include_level:
            log_data["level"] = record.levelname.lower()

        if self.include_logger:
            log_data["logger"] = record.name

        log_data["message"] = record.getMessage()

        if self.include_location:
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        log_data.update(self.extra_fields)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable logs.

    Used by the CLI unless JSON output is requested.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(
        self,
        use_colors: bool = True,
        include_timestamp: bool = True,
        include_level: bool = True,
    ):
        """
        Initialize human-readable formatter.

        Args:
            use_colors: Use ANSI colors in output (only on a TTY)
            include_timestamp: Include timestamp in output
            include_level: Include log level in output
        """
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()
        self.include_timestamp = include_timestamp
        self.include_level = include_level

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable text."""
        parts = []

        if self.include_timestamp:
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            parts.append(f"[{created.strftime('%Y-%m-%d %H:%M:%S')}]")

        if self.include_level:
            level = record.levelname
            if self.use_colors and level in self.COLORS:
                level = f"{self.COLORS[level]}{level}{self.RESET}"
            parts.append(f"{level:>8}")

        parts.append(f"{record.name}:")
        parts.append(record.getMessage())

        output = " ".join(parts)

        if record.exc_info:
            output += "\n" + self.formatException(record.exc_info)

        return output


class TightwadLogger:
    """
    Wrapper around Python logging with Tightwad run events.

    Every event is logged with an ``event_type`` extra field so structured
    output can be filtered by event.
    """

    def __init__(self, name: str, level: int | None = None):
        """
        Initialize Tightwad logger.

        Args:
            name: Logger name
            level: Optional log level for this logger
        """
        self.logger = logging.getLogger(name)
        if level is not None:
            self.logger.setLevel(level)
        self._context: dict[str, Any] = {}

    def set_context(self, **kwargs: Any) -> None:
        """Set persistent context fields for all logs."""
        self._context.update(kwargs)

    def clear_context(self) -> None:
        """Clear context fields."""
        self._context.clear()

    def _log(
        self,
        level: int,
        message: str,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        extra = {**self._context, **kwargs}
        self.logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Log error message."""
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    def run_started(self, run_id: str, target_id: str, concurrency: int) -> None:
        """Log run start event."""
        self.info(
            f"Run {run_id} started for {target_id}",
            event_type="run.started",
            run_id=run_id,
            target_id=target_id,
            concurrency=concurrency,
        )

    def run_completed(
        self,
        run_id: str,
        target_id: str,
        counts: dict[str, int],
        duration_seconds: float,
        incomplete: bool = False,
    ) -> None:
        """Log run completion event."""
        self.info(
            f"Run {run_id} completed for {target_id}"
            + (" (incomplete)" if incomplete else ""),
            event_type="run.completed",
            run_id=run_id,
            target_id=target_id,
            counts=counts,
            duration_seconds=duration_seconds,
            incomplete=incomplete,
        )

    def control_evaluated(
        self,
        control_id: str,
        status: str,
        finding_count: int,
    ) -> None:
        """Log control evaluation event."""
        self.debug(
            f"Control {control_id} evaluated: {status}",
            event_type="control.evaluated",
            control_id=control_id,
            status=status,
            finding_count=finding_count,
        )

    def control_degraded(self, control_id: str, reason: str) -> None:
        """Log that a control produced an error instead of findings."""
        self.warning(
            f"Control {control_id} degraded to error: {reason}",
            event_type="control.degraded",
            control_id=control_id,
            reason=reason,
        )


def configure_logging(
    level: str = "INFO",
    format: str = "human",
    output: str = "stderr",
    extra_fields: dict[str, Any] | None = None,
) -> None:
    """
    Configure logging for Tightwad.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format (human, json)
        output: Output destination (stderr, stdout)
        extra_fields: Extra fields to include in structured logs

    Raises:
        ValueError: If level or format is not recognized
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")
    if format not in ("human", "json"):
        raise ValueError(f"Invalid log format: {format}")

    root_logger = logging.getLogger("tightwad")
    root_logger.setLevel(numeric_level)

    # Remove existing handlers
    root_logger.handlers.clear()

    if output == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.StreamHandler(sys.stderr)

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter(extra_fields=extra_fields)
    else:
        formatter = HumanReadableFormatter()

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def configure_logging_from_env(default_level: str = "WARNING") -> None:
    """Configure logging from TIGHTWAD_LOG_LEVEL and TIGHTWAD_LOG_FORMAT."""
    configure_logging(
        level=os.getenv(LOG_LEVEL_ENV, default_level),
        format=os.getenv(LOG_FORMAT_ENV, "human"),
    )


def get_logger(name: str) -> TightwadLogger:
    """
    Get a Tightwad logger instance.

    Args:
        name: Logger name (typically module name)

    Returns:
        TightwadLogger instance
    """
    if not name.startswith("tightwad"):
        name = f"tightwad.{name}"
    return TightwadLogger(name)
