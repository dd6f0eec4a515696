"""
Rule evaluation engine for Tightwad.

Binds a control's parameters, runs its query through a table provider
and turns the returned rows into findings. Failures are contained to the
control: they produce a single error finding instead of propagating.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

from tightwad.engine.retry import DEFAULT_RETRY_CONFIG, RetryConfig
from tightwad.engine.registry import Registry
from tightwad.engine.variables import ResolvedVariables
from tightwad.errors import (
    ControlError,
    MissingParameter,
    ParameterResolutionError,
    ProviderError,
    ProviderTimeout,
    QueryExecutionError,
    UnknownVariable,
)
from tightwad.models import (
    Control,
    ControlResult,
    Finding,
    FindingStatus,
    Query,
)
from tightwad.observability.logging import get_logger
from tightwad.query.base import QueryResult, TableProvider

logger = logging.getLogger(__name__)
events = get_logger(__name__)


class EvaluationCancelled(Exception):
    """Raised inside an evaluation when the run has been cancelled."""


@dataclass(frozen=True)
class BoundQuery:
    """
    A control's query with every parameter resolved.

    Attributes:
        control: Control being evaluated
        query: Backing query
        params: Parameter values by name, in query declaration order
    """

    control: Control
    query: Query
    params: dict[str, Any]


def error_result(control: Control, reason: str) -> ControlResult:
    """Build a result reporting that a control failed to run."""
    return ControlResult(
        control_id=control.id,
        title=control.title,
        severity=control.severity,
        findings=(
            Finding(
                control_id=control.id,
                resource=None,
                status=FindingStatus.ERROR,
                reason=reason,
            ),
        ),
    )


def cancelled_result(control: Control) -> ControlResult:
    """Build a placeholder for a control that was never evaluated."""
    return ControlResult(
        control_id=control.id,
        title=control.title,
        severity=control.severity,
        completed=False,
    )


class ControlEvaluator:
    """
    Evaluates controls against a table provider.

    Example:
        >>> evaluator = ControlEvaluator(registry, provider)
        >>> result = evaluator.evaluate(control, variables)
        >>> print(result.counts.alarm)
    """

    def __init__(
        self,
        registry: Registry,
        provider: TableProvider,
        retry_config: RetryConfig | None = None,
    ):
        """
        Initialize the evaluator.

        Args:
            registry: Registry holding the controls' queries
            provider: Table provider to run queries against
            retry_config: Retry settings for ProviderTimeout
        """
        self.registry = registry
        self.provider = provider
        self.retry_config = retry_config or DEFAULT_RETRY_CONFIG

    def bind(self, control: Control, variables: ResolvedVariables) -> BoundQuery:
        """
        Resolve every parameter of a control's query.

        Args:
            control: Control to bind
            variables: Resolved variables for the run

        Returns:
            BoundQuery ready for execution

        Raises:
            ParameterResolutionError: If a binding cannot be resolved or
                its value does not match the declared parameter type
            MissingParameter: If a required parameter has no binding
        """
        query = self.registry.get_query(control.query_id)
        values: dict[str, Any] = {}

        for binding in control.iter_bindings():
            declared = query.get_parameter(binding.name)
            if declared is None:
                raise ParameterResolutionError(
                    binding.name,
                    f"query '{query.id}' does not declare this parameter",
                    control.id,
                )

            if binding.is_variable:
                try:
                    value = variables[binding.variable]
                except UnknownVariable as e:
                    raise ParameterResolutionError(binding.name, str(e), control.id) from e
            else:
                value = binding.value

            if value is not None and not declared.param_type.accepts(value):
                raise ParameterResolutionError(
                    binding.name,
                    f"expected {declared.param_type.value}, got {type(value).__name__}",
                    control.id,
                )
            values[binding.name] = value

        params: dict[str, Any] = {}
        for declared in query.parameters:
            if declared.name in values:
                params[declared.name] = values[declared.name]
            elif declared.required:
                raise MissingParameter(declared.name, control.id)
            else:
                params[declared.name] = declared.default

        return BoundQuery(control=control, query=query, params=params)

    def evaluate(
        self,
        control: Control,
        variables: ResolvedVariables,
        cancel_event: threading.Event | None = None,
    ) -> ControlResult:
        """
        Evaluate a single control.

        Never raises for per-control failures: parameter and provider
        errors degrade the result to a single error finding.

        Args:
            control: Control to evaluate
            variables: Resolved variables for the run
            cancel_event: Optional run cancellation signal

        Returns:
            ControlResult for the control

        Raises:
            NotValidated: If the registry has not been validated
            EvaluationCancelled: If the run was cancelled mid-evaluation
        """
        self.registry.require_validated()

        try:
            bound = self.bind(control, variables)
        except ControlError as e:
            events.control_degraded(control.id, str(e))
            return error_result(control, str(e))

        return self.execute(bound, cancel_event)

    def execute(
        self,
        bound: BoundQuery,
        cancel_event: threading.Event | None = None,
    ) -> ControlResult:
        """
        Run a bound query and convert its rows into findings.

        Args:
            bound: Query with resolved parameters
            cancel_event: Optional run cancellation signal

        Returns:
            ControlResult for the control

        Raises:
            EvaluationCancelled: If the run was cancelled mid-evaluation
        """
        control = bound.control
        start_time = time.time()

        try:
            result = self._query_with_retry(bound, cancel_event)
            findings = tuple(self._row_to_finding(bound, row) for row in result.rows)
        except ProviderError as e:
            reason = f"{type(e).__name__}: {e}"
            events.control_degraded(control.id, reason)
            return error_result(control, reason)

        logger.debug(
            f"Evaluated {control.id}: {len(findings)} findings "
            f"in {time.time() - start_time:.3f}s"
        )
        return ControlResult(
            control_id=control.id,
            title=control.title,
            severity=control.severity,
            findings=findings,
        )

    def _query_with_retry(
        self,
        bound: BoundQuery,
        cancel_event: threading.Event | None,
    ) -> QueryResult:
        """
        Submit a query, retrying ProviderTimeout with backoff.

        Raises:
            ProviderTimeout: When retries are exhausted
            EvaluationCancelled: If cancelled before or between attempts
        """
        retry = self.retry_config
        last_error: ProviderTimeout | None = None

        for attempt in range(retry.max_attempts):
            if cancel_event is not None and cancel_event.is_set():
                raise EvaluationCancelled(bound.control.id)

            try:
                return self.provider.query(bound.query.sql, bound.params)
            except ProviderTimeout as e:
                last_error = e
                if attempt + 1 >= retry.max_attempts:
                    break

                delay = retry.get_delay(attempt)
                logger.warning(
                    f"Provider timeout for {bound.control.id} "
                    f"(attempt {attempt + 1}/{retry.max_attempts}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                if cancel_event is not None:
                    if cancel_event.wait(delay):
                        raise EvaluationCancelled(bound.control.id) from e
                elif delay > 0:
                    time.sleep(delay)

        assert last_error is not None
        raise ProviderTimeout(
            f"{last_error} (gave up after {retry.max_attempts} attempts)"
        ) from last_error

    def _row_to_finding(self, bound: BoundQuery, row: dict[str, Any]) -> Finding:
        """
        Convert one query row into a finding.

        Raises:
            QueryExecutionError: If the row does not carry a status column
        """
        control = bound.control
        if "status" not in row:
            raise QueryExecutionError(
                f"Query '{bound.query.id}' did not return a 'status' column"
            )

        identity = row.get(bound.query.identity_column)
        resource = str(identity) if identity is not None else None
        reason = row.get("reason")
        reason = "" if reason is None else str(reason)

        try:
            status = FindingStatus.from_value(row["status"])
        except ValueError:
            status = FindingStatus.ERROR
            reason = f"Invalid status value {row['status']!r}" + (
                f": {reason}" if reason else ""
            )

        return Finding(
            control_id=control.id,
            resource=resource,
            status=status,
            reason=reason,
            row=dict(row),
        )
