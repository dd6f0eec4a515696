"""
Control and query data models for Tightwad.

A Query is a parameterized, read-only SQL statement with a declared
parameter interface. A Control binds a human-readable title, description
and severity to a query, supplying each query parameter from a variable
or a literal value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from tightwad.models.variable import VariableType


class Severity(Enum):
    """
    Severity level of a control.

    Severity is a display and classification label only. It has no effect
    on how a control is evaluated.
    """

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_string(cls, value: str) -> Severity:
        """
        Create Severity from string value.

        Args:
            value: String representation (case-insensitive)

        Returns:
            Matching Severity enum value

        Raises:
            ValueError: If value is not a valid severity
        """
        value_lower = value.lower()
        for severity in cls:
            if severity.value == value_lower:
                return severity
        raise ValueError(f"Invalid severity: {value}")


@dataclass(frozen=True)
class QueryParameter:
    """
    A parameter declared by a query.

    Attributes:
        name: Placeholder name (referenced as :name in SQL)
        param_type: Declared type
        required: Whether a control must bind this parameter
        default: Value used when an optional parameter is unbound
        description: Human-readable description
    """

    name: str
    param_type: VariableType
    required: bool = True
    default: Any = None
    description: str = ""


@dataclass(frozen=True)
class Query:
    """
    A parameterized SQL query.

    The engine treats the SQL as opaque. Rows returned by the query are
    expected to project a `status` value, a `reason` string and the
    identity column naming the evaluated resource.

    Attributes:
        id: Unique query identifier
        sql: SQL text with :name placeholders
        parameters: Ordered parameter declarations
        identity_column: Column holding the resource identifier
        description: Human-readable description
    """

    id: str
    sql: str
    parameters: tuple[QueryParameter, ...] = ()
    identity_column: str = "resource"
    description: str = ""

    def get_parameter(self, name: str) -> QueryParameter | None:
        """Return the parameter declaration with the given name."""
        for param in self.parameters:
            if param.name == name:
                return param
        return None


@dataclass(frozen=True)
class ParameterBinding:
    """
    Binding of a query parameter to a variable or a literal value.

    Exactly one of `variable` or a literal `value` is used. When `variable`
    is set the value is looked up in the run's resolved variables.

    Attributes:
        name: Query parameter name
        variable: Variable name to resolve, if bound to a variable
        value: Literal value, if bound to a literal
    """

    name: str
    variable: str | None = None
    value: Any = None

    @property
    def is_variable(self) -> bool:
        """Check whether this binding refers to a variable."""
        return self.variable is not None


@dataclass(frozen=True)
class Control:
    """
    A single cost-optimization check.

    Attributes:
        id: Unique control identifier
        title: Short title
        description: Detailed explanation of what the control checks
        severity: Inert severity label
        query_id: Reference to the backing query
        params: Ordered parameter bindings
        tags: Classification tags (unique keys)
        documentation: Optional long-form documentation
    """

    id: str
    title: str
    query_id: str
    description: str = ""
    severity: Severity = Severity.LOW
    params: tuple[ParameterBinding, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)
    documentation: str = ""

    def __hash__(self) -> int:
        return hash(self.id)

    def iter_bindings(self) -> Iterator[ParameterBinding]:
        """Iterate over parameter bindings in declaration order."""
        return iter(self.params)

    def get_binding(self, name: str) -> ParameterBinding | None:
        """Return the binding for a parameter name, if any."""
        for binding in self.params:
            if binding.name == name:
                return binding
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert control definition to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "query": self.query_id,
            "params": [
                {"name": b.name, "variable": b.variable}
                if b.is_variable
                else {"name": b.name, "value": b.value}
                for b in self.params
            ],
            "tags": dict(self.tags),
        }
