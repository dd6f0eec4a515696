"""
Tests for the Tightwad variable store.
"""

from __future__ import annotations

import pytest

from tightwad.engine.variables import ResolvedVariables, VariableStore
from tightwad.errors import DuplicateVariable, TypeMismatch, UnknownVariable


class TestVariableStore:
    """Tests for VariableStore."""

    @pytest.fixture
    def store(self) -> VariableStore:
        """Return a store with a few declared variables."""
        store = VariableStore()
        store.declare("max_size", "number", 100, "Largest volume")
        store.declare("allowed_types", "list", ["t3.micro", "t3.small"])
        store.declare("enabled", "boolean", True)
        return store

    def test_declare(self, store):
        """Test declared variables are retrievable."""
        variable = store.get("max_size")

        assert variable.default == 100
        assert variable.description == "Largest volume"
        assert len(store) == 3
        assert "enabled" in store

    def test_declare_duplicate(self, store):
        """Test declaring a name twice fails."""
        with pytest.raises(DuplicateVariable):
            store.declare("max_size", "number", 5)

    def test_declare_type_mismatch(self, store):
        """Test a default must match the declared type."""
        with pytest.raises(TypeMismatch):
            store.declare("bad", "number", "ten")

    def test_list_default_is_frozen(self, store):
        """Test list values cannot be mutated after declaration."""
        assert store.get("allowed_types").default == ("t3.micro", "t3.small")

    def test_resolve_default(self, store):
        """Test the default is returned without an override."""
        assert store.resolve("max_size") == 100

    def test_resolve_override(self, store):
        """Test a type-valid override wins over the default."""
        assert store.resolve("max_size", 250) == 250

    def test_resolve_override_type_mismatch(self, store):
        """Test a wrongly typed override is rejected."""
        with pytest.raises(TypeMismatch):
            store.resolve("max_size", "huge")

    def test_resolve_unknown(self, store):
        """Test resolving an undeclared name fails."""
        with pytest.raises(UnknownVariable):
            store.resolve("nope")

    def test_resolve_all(self, store):
        """Test every declared variable is resolved."""
        resolved = store.resolve_all({"enabled": False})

        assert resolved["max_size"] == 100
        assert resolved["enabled"] is False
        assert resolved["allowed_types"] == ("t3.micro", "t3.small")

    def test_resolve_all_unknown_override(self, store):
        """Test overriding an undeclared variable fails."""
        with pytest.raises(UnknownVariable):
            store.resolve_all({"not_declared": 1})

    def test_resolve_all_is_independent_per_run(self, store):
        """Test two resolutions with different overrides do not interfere."""
        first = store.resolve_all({"max_size": 10})
        second = store.resolve_all({"max_size": 20})

        assert first["max_size"] == 10
        assert second["max_size"] == 20
        assert store.resolve("max_size") == 100

    def test_parse_overrides(self, store):
        """Test textual overrides are parsed with the declared types."""
        parsed = store.parse_overrides({"max_size": "500", "allowed_types": "[m5.large]"})

        assert parsed == {"max_size": 500, "allowed_types": ["m5.large"]}

    def test_parse_overrides_unknown(self, store):
        """Test parsing an override for an undeclared name fails."""
        with pytest.raises(UnknownVariable):
            store.parse_overrides({"other": "1"})

    def test_parse_overrides_then_resolve_rejects_wrong_type(self, store):
        """Test parsed text still has to type-check when resolved."""
        parsed = store.parse_overrides({"max_size": "[1, 2]"})

        with pytest.raises(TypeMismatch):
            store.resolve_all(parsed)


class TestResolvedVariables:
    """Tests for ResolvedVariables."""

    def test_unknown_lookup_raises_unknown_variable(self):
        """Test missing names raise UnknownVariable, not KeyError."""
        resolved = ResolvedVariables({"a": 1})

        with pytest.raises(UnknownVariable):
            resolved["b"]

    def test_mapping_behaviour(self):
        """Test mapping helpers behave like a dict."""
        resolved = ResolvedVariables({"a": 1, "b": ("x",)})

        assert "a" in resolved
        assert "c" not in resolved
        assert resolved.get("c", 3) == 3
        assert sorted(resolved) == ["a", "b"]
        assert len(resolved) == 2

    def test_to_dict_lists(self):
        """Test frozen lists become plain lists."""
        assert ResolvedVariables({"b": ("x", "y")}).to_dict() == {"b": ["x", "y"]}

    def test_immutable(self):
        """Test values cannot be reassigned."""
        resolved = ResolvedVariables({"a": 1})

        with pytest.raises(TypeError):
            resolved["a"] = 2  # type: ignore[index]
