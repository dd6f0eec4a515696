"""
Control and benchmark registry for Tightwad.

Stores query, control and benchmark definitions and validates the
references between them. Evaluation requires a validated registry.
"""

from __future__ import annotations

import logging
from typing import Iterator

from tightwad.errors import (
    CyclicBenchmark,
    DuplicateId,
    NotValidated,
    UnknownReference,
)
from tightwad.models import Benchmark, ChildKind, ChildRef, Control, Query

logger = logging.getLogger(__name__)


class Registry:
    """
    Registry of queries, controls and benchmarks.

    Controls and benchmarks share one id namespace so that bare child
    references are unambiguous. Queries have their own namespace.

    Any registration clears the validated flag; validate() must run again
    before the registry can be evaluated.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._queries: dict[str, Query] = {}
        self._controls: dict[str, Control] = {}
        self._benchmarks: dict[str, Benchmark] = {}
        self._validated = False

    @property
    def validated(self) -> bool:
        """True when validate() succeeded since the last registration."""
        return self._validated

    @property
    def queries(self) -> list[Query]:
        """All queries in registration order."""
        return list(self._queries.values())

    @property
    def controls(self) -> list[Control]:
        """All controls in registration order."""
        return list(self._controls.values())

    @property
    def benchmarks(self) -> list[Benchmark]:
        """All benchmarks in registration order."""
        return list(self._benchmarks.values())

    # Registration

    def register_query(self, query: Query) -> None:
        """
        Register a query.

        Raises:
            DuplicateId: If the query id is already registered
        """
        if query.id in self._queries:
            raise DuplicateId("query", query.id)
        self._queries[query.id] = query
        self._validated = False

    def register_control(self, control: Control) -> None:
        """
        Register a control.

        Raises:
            DuplicateId: If the id is already used by a control or benchmark
        """
        self._check_new_id("control", control.id)
        self._controls[control.id] = control
        self._validated = False

    def register_benchmark(self, benchmark: Benchmark) -> None:
        """
        Register a benchmark.

        Raises:
            DuplicateId: If the id is already used by a control or benchmark
        """
        self._check_new_id("benchmark", benchmark.id)
        self._benchmarks[benchmark.id] = benchmark
        self._validated = False

    def _check_new_id(self, kind: str, item_id: str) -> None:
        if item_id in self._controls or item_id in self._benchmarks:
            raise DuplicateId(kind, item_id)

    # Lookup

    def get_query(self, query_id: str) -> Query:
        """Get a query by id, raising UnknownReference if missing."""
        try:
            return self._queries[query_id]
        except KeyError:
            raise UnknownReference(f"query.{query_id}") from None

    def get_control(self, control_id: str) -> Control:
        """Get a control by id, raising UnknownReference if missing."""
        try:
            return self._controls[control_id]
        except KeyError:
            raise UnknownReference(f"control.{control_id}") from None

    def get_benchmark(self, benchmark_id: str) -> Benchmark:
        """Get a benchmark by id, raising UnknownReference if missing."""
        try:
            return self._benchmarks[benchmark_id]
        except KeyError:
            raise UnknownReference(f"benchmark.{benchmark_id}") from None

    def has_control(self, item_id: str) -> bool:
        """Check whether a control with this id exists."""
        return item_id in self._controls

    def has_benchmark(self, item_id: str) -> bool:
        """Check whether a benchmark with this id exists."""
        return item_id in self._benchmarks

    def resolve_child(self, child: ChildRef, referrer: str | None = None) -> ChildRef:
        """
        Resolve a child reference to a concrete kind.

        Raises:
            UnknownReference: If the child does not exist (or exists only
                under the other kind)
        """
        if child.kind in (None, ChildKind.CONTROL) and child.id in self._controls:
            return ChildRef(id=child.id, kind=ChildKind.CONTROL)
        if child.kind in (None, ChildKind.BENCHMARK) and child.id in self._benchmarks:
            return ChildRef(id=child.id, kind=ChildKind.BENCHMARK)
        raise UnknownReference(str(child), referrer)

    def resolve_children(self, benchmark_id: str) -> list[ChildRef]:
        """
        Return the ordered direct children of a benchmark.

        Raises:
            UnknownReference: If the benchmark or any child is undefined
        """
        benchmark = self.get_benchmark(benchmark_id)
        return [
            self.resolve_child(child, f"benchmark.{benchmark_id}")
            for child in benchmark.children
        ]

    def walk_controls(self, benchmark_id: str) -> list[str]:
        """
        List control ids reachable from a benchmark.

        Ids appear once, in depth-first declaration order.

        Raises:
            NotValidated: If the registry has not been validated
        """
        self.require_validated()
        seen: dict[str, None] = {}

        def _walk(current: str) -> None:
            for child in self.resolve_children(current):
                if child.kind == ChildKind.CONTROL:
                    seen.setdefault(child.id, None)
                else:
                    _walk(child.id)

        _walk(benchmark_id)
        return list(seen)

    # Validation

    def validate_acyclic(self) -> None:
        """
        Check that no benchmark directly or transitively includes itself.

        Performs a depth-first traversal over all benchmarks in
        registration order.

        Raises:
            CyclicBenchmark: Naming the first cycle found
            UnknownReference: If a child reference is undefined
        """
        done: set[str] = set()

        def _visit(benchmark_id: str, path: list[str]) -> None:
            if benchmark_id in path:
                start = path.index(benchmark_id)
                raise CyclicBenchmark(path[start:] + [benchmark_id])
            if benchmark_id in done:
                return

            path.append(benchmark_id)
            for child in self.resolve_children(benchmark_id):
                if child.kind == ChildKind.BENCHMARK:
                    _visit(child.id, path)
            path.pop()
            done.add(benchmark_id)

        for benchmark_id in self._benchmarks:
            _visit(benchmark_id, [])

    def validate(self) -> None:
        """
        Validate all references and the benchmark graph.

        Raises:
            UnknownReference: If a control's query or a benchmark child
                does not exist
            CyclicBenchmark: If the benchmark graph contains a cycle
        """
        for control in self._controls.values():
            if control.query_id not in self._queries:
                raise UnknownReference(
                    f"query.{control.query_id}", f"control.{control.id}"
                )

        for benchmark_id in self._benchmarks:
            self.resolve_children(benchmark_id)

        self.validate_acyclic()
        self._validated = True
        logger.debug(
            f"Registry validated: {len(self._queries)} queries, "
            f"{len(self._controls)} controls, {len(self._benchmarks)} benchmarks"
        )

    def require_validated(self) -> None:
        """Raise NotValidated unless validate() has succeeded."""
        if not self._validated:
            raise NotValidated()

    def __iter__(self) -> Iterator[Control]:
        return iter(self._controls.values())
