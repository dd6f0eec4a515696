"""
Benchmark data model for Tightwad.

A benchmark is a named, ordered grouping of controls and nested
benchmarks. Children are stored as explicit references rather than
inline definitions so the registry can validate the graph and share
control results across benchmarks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ChildKind(Enum):
    """Kind of a benchmark child reference."""

    CONTROL = "control"
    BENCHMARK = "benchmark"


@dataclass(frozen=True)
class ChildRef:
    """
    Reference to a benchmark child.

    Attributes:
        id: Referenced control or benchmark id
        kind: Expected kind, or None when written as a bare id
    """

    id: str
    kind: ChildKind | None = None

    @classmethod
    def parse(cls, text: str) -> ChildRef:
        """
        Parse a child reference.

        Accepts "control.<id>", "benchmark.<id>" or a bare "<id>".
        """
        text = text.strip()
        for kind in ChildKind:
            prefix = f"{kind.value}."
            if text.startswith(prefix):
                return cls(id=text[len(prefix) :], kind=kind)
        return cls(id=text)

    def __str__(self) -> str:
        if self.kind is None:
            return self.id
        return f"{self.kind.value}.{self.id}"


@dataclass(frozen=True)
class Benchmark:
    """
    A named grouping of controls and nested benchmarks.

    Attributes:
        id: Unique benchmark identifier
        title: Short title
        description: Detailed description
        documentation: Documentation reference or text
        children: Ordered child references
        tags: Classification tags
    """

    id: str
    title: str
    description: str = ""
    documentation: str = ""
    children: tuple[ChildRef, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)

    def __hash__(self) -> int:
        return hash(self.id)

    def to_dict(self) -> dict[str, Any]:
        """Convert benchmark definition to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "documentation": self.documentation,
            "children": [str(c) for c in self.children],
            "tags": dict(self.tags),
        }
