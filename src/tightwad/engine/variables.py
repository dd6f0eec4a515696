"""
Variable store for Tightwad.

Holds declared variables and resolves them once per run into an
immutable mapping, so every control in a run sees the same values and
concurrent runs with different overrides never interfere.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Iterator, Mapping

import yaml

from tightwad.errors import DuplicateVariable, TypeMismatch, UnknownVariable
from tightwad.models import Variable, VariableType

logger = logging.getLogger(__name__)

_ABSENT = object()


def _freeze(value: Any) -> Any:
    """Make list values immutable."""
    if isinstance(value, list):
        return tuple(value)
    return value


class ResolvedVariables(Mapping[str, Any]):
    """
    Immutable, fully resolved variable values for one run.

    Looking up an undeclared name raises UnknownVariable rather than
    KeyError.
    """

    def __init__(self, values: dict[str, Any]):
        self._values = MappingProxyType(dict(values))

    def __getitem__(self, name: str) -> Any:
        try:
            return self._values[name]
        except KeyError:
            raise UnknownVariable(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def __repr__(self) -> str:
        return f"ResolvedVariables({dict(self._values)!r})"

    def to_dict(self) -> dict[str, Any]:
        """Return a plain, JSON-friendly dictionary."""
        return {
            k: list(v) if isinstance(v, tuple) else v for k, v in self._values.items()
        }


class VariableStore:
    """
    Holds declared variables.

    Variables are declared at load time and resolved once per run by
    resolve_all().
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._variables: dict[str, Variable] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._variables

    def __len__(self) -> int:
        return len(self._variables)

    def __iter__(self) -> Iterator[Variable]:
        return iter(self._variables.values())

    def declare(
        self,
        name: str,
        var_type: VariableType | str,
        default: Any,
        description: str = "",
    ) -> Variable:
        """
        Declare a variable.

        Args:
            name: Unique variable name
            var_type: Declared type
            default: Default value
            description: Human-readable description

        Returns:
            The declared Variable

        Raises:
            DuplicateVariable: If the name is already declared
            TypeMismatch: If the default does not match the type
        """
        if name in self._variables:
            raise DuplicateVariable(name)

        if isinstance(var_type, str):
            var_type = VariableType.from_string(var_type)

        if not var_type.accepts(default):
            raise TypeMismatch(name, var_type.value, default)

        variable = Variable(
            name=name,
            var_type=var_type,
            default=_freeze(default),
            description=description,
        )
        self._variables[name] = variable
        return variable

    def get(self, name: str) -> Variable:
        """
        Get a variable declaration.

        Raises:
            UnknownVariable: If the name was never declared
        """
        try:
            return self._variables[name]
        except KeyError:
            raise UnknownVariable(name) from None

    def resolve(self, name: str, override: Any = _ABSENT) -> Any:
        """
        Resolve a single variable.

        Args:
            name: Variable name
            override: Optional override value

        Returns:
            The override if given and type-valid, else the default

        Raises:
            UnknownVariable: If the name was never declared
            TypeMismatch: If the override does not match the declared type
        """
        variable = self.get(name)
        if override is _ABSENT:
            return variable.default
        if not variable.var_type.accepts(override):
            raise TypeMismatch(name, variable.var_type.value, override)
        return _freeze(override)

    def resolve_all(self, overrides: Mapping[str, Any] | None = None) -> ResolvedVariables:
        """
        Resolve every declared variable for a run.

        Args:
            overrides: Override values by variable name

        Returns:
            ResolvedVariables for the run

        Raises:
            UnknownVariable: If an override names an undeclared variable
            TypeMismatch: If an override does not match its declared type
        """
        overrides = dict(overrides or {})
        for name in overrides:
            if name not in self._variables:
                raise UnknownVariable(name)

        values = {
            name: self.resolve(name, overrides.get(name, _ABSENT))
            for name in self._variables
        }
        if overrides:
            logger.debug(f"Resolved {len(values)} variables ({len(overrides)} overridden)")
        return ResolvedVariables(values)

    def parse_overrides(self, raw: Mapping[str, str]) -> dict[str, Any]:
        """
        Parse textual overrides using each variable's declared type.

        Args:
            raw: Mapping of variable name to text (e.g. from CLI flags)

        Returns:
            Mapping of variable name to typed value

        Raises:
            UnknownVariable: If a name was never declared
            TypeMismatch: If the text cannot be parsed
        """
        parsed: dict[str, Any] = {}
        for name, text in raw.items():
            var_type = self.get(name).var_type
            try:
                parsed[name] = var_type.parse_text(text)
            except yaml.YAMLError:
                raise TypeMismatch(name, var_type.value, text) from None
        return parsed
