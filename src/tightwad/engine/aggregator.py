"""
Report aggregation for Tightwad.

Walks a benchmark tree, evaluates every control slot on a bounded worker
pool and reassembles the results in declaration order. Controls that
appear more than once in the tree are evaluated once through the
findings cache.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

from tightwad.engine.cache import FindingsCache, make_cache_key
from tightwad.engine.evaluator import (
    ControlEvaluator,
    EvaluationCancelled,
    cancelled_result,
    error_result,
)
from tightwad.engine.registry import Registry
from tightwad.engine.retry import RetryConfig
from tightwad.engine.variables import ResolvedVariables
from tightwad.errors import ControlError, UnknownReference
from tightwad.models import (
    Benchmark,
    BenchmarkResult,
    ChildKind,
    Control,
    ControlResult,
    EvaluationResult,
)
from tightwad.observability.logging import get_logger
from tightwad.query.base import TableProvider

logger = logging.getLogger(__name__)
events = get_logger(__name__)

DEFAULT_CONCURRENCY = 4
DEFAULT_GRACE_PERIOD = 5.0

# How often the collector loop checks for cancellation
_POLL_INTERVAL = 0.05


@dataclass
class _PlanNode:
    """A benchmark node (with children) or a control slot."""

    benchmark: Benchmark | None = None
    slot: int | None = None
    children: list[_PlanNode] = field(default_factory=list)


class ReportAggregator:
    """
    Evaluates a benchmark or control into a result tree.

    Example:
        >>> aggregator = ReportAggregator(registry, provider, variables)
        >>> result = aggregator.run("all")
        >>> print(result.counts.alarm)
    """

    def __init__(
        self,
        registry: Registry,
        provider: TableProvider,
        variables: ResolvedVariables,
        concurrency: int = DEFAULT_CONCURRENCY,
        retry_config: RetryConfig | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ):
        """
        Initialize the aggregator.

        Args:
            registry: Validated registry
            provider: Table provider to evaluate against
            variables: Variables resolved for this run
            concurrency: Maximum number of concurrent evaluations
            retry_config: Retry settings for provider timeouts
            grace_period: Seconds in-flight evaluations may keep running
                after cancellation
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")

        self.registry = registry
        self.variables = variables
        self.concurrency = concurrency
        self.grace_period = grace_period
        self.evaluator = ControlEvaluator(registry, provider, retry_config)
        self.cache: FindingsCache[ControlResult] = FindingsCache()

    def run(
        self,
        target_id: str,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> EvaluationResult:
        """
        Evaluate a benchmark or control.

        Args:
            target_id: Benchmark or control id
            cancel_event: Set by the caller to cancel the run
            timeout: Seconds after which the run cancels itself

        Returns:
            BenchmarkResult for a benchmark target, ControlResult for a
            control target. Slots that were not evaluated carry
            completed=False.

        Raises:
            NotValidated: If the registry has not been validated
            UnknownReference: If target_id is neither a benchmark nor a control
        """
        self.registry.require_validated()

        slots: list[Control] = []
        if self.registry.has_benchmark(target_id):
            plan = self._plan_benchmark(target_id, slots)
        elif self.registry.has_control(target_id):
            plan = self._plan_control(target_id, slots)
        else:
            raise UnknownReference(target_id)

        logger.info(
            f"Evaluating {target_id}: {len(slots)} control slots, "
            f"{len({c.id for c in slots})} distinct controls"
        )

        results = self._evaluate_slots(slots, cancel_event, timeout)
        return self._assemble(plan, slots, results)

    def run_control(
        self,
        control_id: str,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> ControlResult:
        """
        Evaluate a single control.

        Raises:
            NotValidated: If the registry has not been validated
            UnknownReference: If the control does not exist
        """
        self.registry.require_validated()
        slots: list[Control] = []
        plan = self._plan_control(control_id, slots)
        results = self._evaluate_slots(slots, cancel_event, timeout)
        result = self._assemble(plan, slots, results)
        assert isinstance(result, ControlResult)
        return result

    # Planning

    def _plan_control(self, control_id: str, slots: list[Control]) -> _PlanNode:
        slots.append(self.registry.get_control(control_id))
        return _PlanNode(slot=len(slots) - 1)

    def _plan_benchmark(self, benchmark_id: str, slots: list[Control]) -> _PlanNode:
        node = _PlanNode(benchmark=self.registry.get_benchmark(benchmark_id))
        for child in self.registry.resolve_children(benchmark_id):
            if child.kind == ChildKind.CONTROL:
                node.children.append(self._plan_control(child.id, slots))
            else:
                node.children.append(self._plan_benchmark(child.id, slots))
        return node

    # Evaluation

    def _evaluate_slot(
        self,
        control: Control,
        cancel_event: threading.Event,
    ) -> ControlResult:
        if cancel_event.is_set():
            raise EvaluationCancelled(control.id)

        try:
            bound = self.evaluator.bind(control, self.variables)
        except ControlError as e:
            events.control_degraded(control.id, str(e))
            return error_result(control, str(e))

        key = make_cache_key(control.id, bound.params)
        result = self.cache.get_or_compute(
            key, lambda: self.evaluator.execute(bound, cancel_event)
        )
        events.control_evaluated(control.id, result.status.value, len(result.findings))
        return result

    def _evaluate_slots(
        self,
        slots: list[Control],
        cancel_event: threading.Event | None,
        timeout: float | None,
    ) -> list[ControlResult | None]:
        """
        Evaluate every slot on the worker pool.

        Returns:
            One entry per slot; None where evaluation did not finish
        """
        results: list[ControlResult | None] = [None] * len(slots)
        if not slots:
            return results
        if cancel_event is not None and cancel_event.is_set():
            logger.warning("Run cancelled before evaluation started")
            return results

        # Workers watch this event; the caller's event is only observed
        run_cancelled = threading.Event()
        deadline = time.monotonic() + timeout if timeout is not None else None

        executor = ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="tightwad-eval"
        )
        try:
            futures: dict[Future[ControlResult], int] = {
                executor.submit(self._evaluate_slot, control, run_cancelled): index
                for index, control in enumerate(slots)
            }
            pending = set(futures)

            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning("Run cancelled, dropping pending evaluations")
                    break

                wait_for = _POLL_INTERVAL
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        logger.warning(f"Run timed out after {timeout}s")
                        break
                    wait_for = min(wait_for, remaining)

                done, pending = wait(pending, timeout=wait_for, return_when=FIRST_COMPLETED)
                self._collect(done, futures, slots, results)

            if pending:
                run_cancelled.set()
                for future in pending:
                    future.cancel()
                done, pending = wait(pending, timeout=self.grace_period)
                self._collect(done, futures, slots, results)
                if pending:
                    logger.warning(
                        f"{len(pending)} evaluations still running after "
                        f"{self.grace_period}s grace period"
                    )
        finally:
            run_cancelled.set()
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def _collect(
        self,
        done: set[Future[ControlResult]],
        futures: dict[Future[ControlResult], int],
        slots: list[Control],
        results: list[ControlResult | None],
    ) -> None:
        for future in done:
            if future.cancelled():
                continue
            index = futures[future]
            try:
                results[index] = future.result()
            except EvaluationCancelled:
                continue
            except Exception as e:
                control = slots[index]
                logger.error(f"Unexpected failure evaluating {control.id}: {e}", exc_info=True)
                results[index] = error_result(control, f"{type(e).__name__}: {e}")

    # Assembly

    def _assemble(
        self,
        node: _PlanNode,
        slots: list[Control],
        results: list[ControlResult | None],
    ) -> EvaluationResult:
        if node.slot is not None:
            result = results[node.slot]
            if result is None:
                return cancelled_result(slots[node.slot])
            return result

        assert node.benchmark is not None
        return BenchmarkResult(
            benchmark_id=node.benchmark.id,
            title=node.benchmark.title,
            children=tuple(self._assemble(child, slots, results) for child in node.children),
        )
