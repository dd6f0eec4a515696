"""
Tests for the Tightwad control and benchmark registry.
"""

from __future__ import annotations

import pytest

from tightwad.engine.registry import Registry
from tightwad.errors import CyclicBenchmark, DuplicateId, NotValidated, UnknownReference
from tightwad.models import Benchmark, ChildKind, ChildRef, Control, Query


def _benchmark(benchmark_id: str, *children: str) -> Benchmark:
    return Benchmark(
        id=benchmark_id,
        title=benchmark_id.title(),
        children=tuple(ChildRef.parse(c) for c in children),
    )


class TestRegistry:
    """Tests for Registry."""

    @pytest.fixture
    def registry(self) -> Registry:
        """Return a registry with one query and two controls."""
        registry = Registry()
        registry.register_query(Query(id="q", sql="SELECT 1"))
        registry.register_control(Control(id="c1", title="C1", query_id="q"))
        registry.register_control(Control(id="c2", title="C2", query_id="q"))
        return registry

    def test_duplicate_query(self, registry):
        """Test query ids must be unique."""
        with pytest.raises(DuplicateId):
            registry.register_query(Query(id="q", sql="SELECT 2"))

    def test_duplicate_control(self, registry):
        """Test control ids must be unique."""
        with pytest.raises(DuplicateId):
            registry.register_control(Control(id="c1", title="Again", query_id="q"))

    def test_control_and_benchmark_share_namespace(self, registry):
        """Test a benchmark cannot reuse a control id."""
        with pytest.raises(DuplicateId):
            registry.register_benchmark(_benchmark("c1"))

    def test_unknown_query_reference(self, registry):
        """Test validation fails when a control's query is missing."""
        registry.register_control(Control(id="c3", title="C3", query_id="missing"))

        with pytest.raises(UnknownReference, match="query.missing"):
            registry.validate()

    def test_unknown_child_reference(self, registry):
        """Test validation fails for an undefined benchmark child."""
        registry.register_benchmark(_benchmark("b", "control.c1", "control.nope"))

        with pytest.raises(UnknownReference, match="control.nope"):
            registry.validate()

    def test_child_kind_must_match(self, registry):
        """Test a control referenced as a benchmark is unknown."""
        registry.register_benchmark(_benchmark("b", "benchmark.c1"))

        with pytest.raises(UnknownReference):
            registry.validate()

    def test_bare_child_reference(self, registry):
        """Test bare ids resolve to whichever kind exists."""
        registry.register_benchmark(_benchmark("inner", "c2"))
        registry.register_benchmark(_benchmark("outer", "c1", "inner"))
        registry.validate()

        children = registry.resolve_children("outer")
        assert children == [
            ChildRef(id="c1", kind=ChildKind.CONTROL),
            ChildRef(id="inner", kind=ChildKind.BENCHMARK),
        ]

    def test_acyclic_graph_validates(self, registry):
        """Test a diamond-shaped graph is not a cycle."""
        registry.register_benchmark(_benchmark("leaf", "control.c1"))
        registry.register_benchmark(_benchmark("left", "benchmark.leaf"))
        registry.register_benchmark(_benchmark("right", "benchmark.leaf"))
        registry.register_benchmark(_benchmark("top", "benchmark.left", "benchmark.right"))

        registry.validate()
        assert registry.validated

    def test_cycle_detected(self, registry):
        """Test a two-benchmark cycle is reported with its path."""
        registry.register_benchmark(_benchmark("a", "benchmark.b"))
        registry.register_benchmark(_benchmark("b", "benchmark.a"))

        with pytest.raises(CyclicBenchmark) as excinfo:
            registry.validate()

        assert excinfo.value.cycle == ["a", "b", "a"]
        assert "a -> b -> a" in str(excinfo.value)
        assert not registry.validated

    def test_self_cycle_detected(self, registry):
        """Test a benchmark including itself is a cycle."""
        registry.register_benchmark(_benchmark("self", "control.c1", "benchmark.self"))

        with pytest.raises(CyclicBenchmark):
            registry.validate()

    def test_registration_clears_validation(self, registry):
        """Test registering after validation requires validating again."""
        registry.validate()
        registry.register_control(Control(id="c3", title="C3", query_id="q"))

        with pytest.raises(NotValidated):
            registry.require_validated()

    def test_walk_controls_requires_validation(self, registry):
        """Test walking an unvalidated registry fails."""
        registry.register_benchmark(_benchmark("b", "control.c1"))

        with pytest.raises(NotValidated):
            registry.walk_controls("b")

    def test_walk_controls_deduplicates(self, registry):
        """Test each reachable control is listed once in declaration order."""
        registry.register_benchmark(_benchmark("inner", "control.c2", "control.c1"))
        registry.register_benchmark(_benchmark("outer", "control.c1", "benchmark.inner"))
        registry.validate()

        assert registry.walk_controls("outer") == ["c1", "c2"]

    def test_get_missing(self, registry):
        """Test lookups of unknown ids raise UnknownReference."""
        with pytest.raises(UnknownReference):
            registry.get_benchmark("nope")
        with pytest.raises(UnknownReference):
            registry.get_control("nope")
        with pytest.raises(UnknownReference):
            registry.get_query("nope")
