"""
Variable data model for Tightwad.

Variables are named, typed thresholds (for example the maximum EBS volume
size) that parameterize controls. Each variable declares a type and a default
value which may be overridden when a run starts.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import yaml


class VariableType(Enum):
    """Declared type of a variable or query parameter."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    LIST = "list"

    @classmethod
    def from_string(cls, value: str) -> VariableType:
        """
        Create VariableType from string value.

        Args:
            value: String representation (case-insensitive)

        Returns:
            Matching VariableType enum value

        Raises:
            ValueError: If value is not a valid type
        """
        value_lower = value.lower()
        for var_type in cls:
            if var_type.value == value_lower:
                return var_type
        raise ValueError(f"Invalid variable type: {value}")

    def accepts(self, value: Any) -> bool:
        """
        Check whether a value type-checks against this type.

        Booleans are not numbers, even though Python treats them as ints.
        """
        if self == VariableType.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if self == VariableType.STRING:
            return isinstance(value, str)
        if self == VariableType.BOOLEAN:
            return isinstance(value, bool)
        if self == VariableType.LIST:
            return isinstance(value, (list, tuple))
        return False

    def parse_text(self, text: str) -> Any:
        """
        Parse a textual override (CLI flag, environment variable).

        Text is read as a YAML scalar or flow sequence so "10" becomes a
        number and "[t3.micro, t3.small]" becomes a list. String variables
        keep the raw text.
        """
        if self == VariableType.STRING:
            return text
        return yaml.safe_load(text)


@dataclass(frozen=True)
class Variable:
    """
    A declared variable.

    Attributes:
        name: Unique variable name
        var_type: Declared type
        default: Default value (type-checked at declaration)
        description: Human-readable description
    """

    name: str
    var_type: VariableType
    default: Any
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert variable declaration to dictionary."""
        return {
            "name": self.name,
            "type": self.var_type.value,
            "default": list(self.default)
            if isinstance(self.default, tuple)
            else self.default,
            "description": self.description,
        }
