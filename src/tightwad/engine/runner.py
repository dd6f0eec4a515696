"""
Run invocation for Tightwad.

A run resolves variables once, evaluates a benchmark or control against a
table provider and wraps the result tree in a RunReport.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from tightwad.config import RunConfiguration
from tightwad.engine.aggregator import ReportAggregator
from tightwad.engine.loader import Definitions, load_definitions
from tightwad.errors import UnknownReference
from tightwad.models import RunReport
from tightwad.observability.logging import get_logger
from tightwad.query.base import TableProvider

logger = logging.getLogger(__name__)
events = get_logger(__name__)


class Runner:
    """
    Runs benchmarks and controls from loaded definitions.

    Example:
        >>> runner = Runner(load_definitions(), provider)
        >>> report = runner.run("all", overrides={"ebs_volume_max_size_gb": 200})
        >>> print(report.counts.alarm)
    """

    def __init__(
        self,
        definitions: Definitions,
        provider: TableProvider,
        config: RunConfiguration | None = None,
    ):
        """
        Initialize the runner.

        Args:
            definitions: Loaded definitions with a validated registry
            provider: Table provider to evaluate against
            config: Run settings (defaults apply when omitted)
        """
        self.definitions = definitions
        self.provider = provider
        self.config = config or RunConfiguration()

    def run(
        self,
        target_id: str,
        overrides: Mapping[str, Any] | None = None,
        concurrency: int | None = None,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> RunReport:
        """
        Evaluate a benchmark or control.

        Args:
            target_id: Benchmark or control id
            overrides: Typed variable overrides, applied on top of the
                configured overrides
            concurrency: Maximum concurrent evaluations (config default)
            cancel_event: Set by the caller to cancel the run
            timeout: Run timeout in seconds (config default)

        Returns:
            RunReport for the run; incomplete if cancelled or timed out

        Raises:
            NotValidated: If the registry has not been validated
            UnknownReference: If target_id does not exist
            UnknownVariable: If an override names an undeclared variable
            TypeMismatch: If an override does not match its declared type
        """
        registry = self.definitions.registry
        registry.require_validated()
        if not (registry.has_benchmark(target_id) or registry.has_control(target_id)):
            raise UnknownReference(target_id)

        store = self.definitions.variables
        merged: dict[str, Any] = dict(self.config.variables)
        merged.update(store.parse_overrides(self.config.variable_text))
        merged.update(overrides or {})
        variables = store.resolve_all(merged)

        concurrency = concurrency or self.config.concurrency
        timeout = timeout if timeout is not None else self.config.timeout

        run_id = uuid.uuid4().hex[:12]
        started_at = datetime.now(timezone.utc)
        start_time = time.monotonic()
        events.run_started(run_id, target_id, concurrency)

        aggregator = ReportAggregator(
            registry,
            self.provider,
            variables,
            concurrency=concurrency,
            retry_config=self.config.retry,
            grace_period=self.config.grace_period,
        )
        root = aggregator.run(target_id, cancel_event=cancel_event, timeout=timeout)

        report = RunReport(
            run_id=run_id,
            target_id=target_id,
            root=root,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            variables=variables.to_dict(),
            incomplete=not root.completed,
        )
        events.run_completed(
            run_id,
            target_id,
            report.counts.to_dict(),
            time.monotonic() - start_time,
            incomplete=report.incomplete,
        )
        logger.debug(f"Findings cache: {aggregator.cache.stats}")
        return report


def run(
    target_id: str,
    overrides: Mapping[str, Any] | None = None,
    provider: TableProvider | None = None,
    config: RunConfiguration | None = None,
    concurrency: int | None = None,
    cancel_event: threading.Event | None = None,
    timeout: float | None = None,
) -> RunReport:
    """
    Load definitions and run a benchmark or control in one call.

    Args:
        target_id: Benchmark or control id
        overrides: Typed variable overrides
        provider: Table provider (built from config.provider when omitted)
        config: Run settings, including definition directories
        concurrency: Maximum concurrent evaluations
        cancel_event: Set by the caller to cancel the run
        timeout: Run timeout in seconds

    Returns:
        RunReport for the run
    """
    config = config or RunConfiguration()
    definitions = load_definitions(config.definition_dirs, config.include_builtin)

    owns_provider = provider is None
    if provider is None:
        provider = config.provider.create_provider()

    try:
        return Runner(definitions, provider, config).run(
            target_id,
            overrides=overrides,
            concurrency=concurrency,
            cancel_event=cancel_event,
            timeout=timeout,
        )
    finally:
        if owns_provider:
            provider.disconnect()
