"""
Error taxonomy for Tightwad.

Errors fall into three families:

- DefinitionError: problems found while loading or validating definitions.
  These are fatal and stop a run before any control is evaluated.
- ControlError: problems binding a single control's parameters. These are
  contained to that control's result node.
- ProviderError: problems raised by a table provider while executing a
  control's query. Also contained to the control; ProviderTimeout is retried.
"""

from __future__ import annotations


class TightwadError(Exception):
    """Base class for all Tightwad errors."""


# Load-time errors


class DefinitionError(TightwadError):
    """Raised when definitions are malformed or inconsistent."""


class DefinitionLoadError(DefinitionError):
    """Raised when a definition source cannot be parsed."""

    def __init__(self, message: str, source_path: str | None = None):
        self.source_path = source_path
        prefix = f"{source_path}: " if source_path else ""
        super().__init__(f"{prefix}{message}")


class DuplicateVariable(DefinitionError):
    """Raised when a variable name is declared twice."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Variable already declared: {name}")


class UnknownVariable(DefinitionError):
    """Raised when a variable name was never declared."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown variable: {name}")


class TypeMismatch(DefinitionError):
    """Raised when a value does not match a declared type."""

    def __init__(self, name: str, expected: str, value: object):
        self.name = name
        self.expected = expected
        self.value = value
        super().__init__(
            f"Value for '{name}' must be of type {expected}, "
            f"got {type(value).__name__}: {value!r}"
        )


class DuplicateId(DefinitionError):
    """Raised when a query, control or benchmark id is registered twice."""

    def __init__(self, kind: str, item_id: str):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"Duplicate {kind} id: {item_id}")


class UnknownReference(DefinitionError):
    """Raised when a definition refers to an id that does not exist."""

    def __init__(self, reference: str, referrer: str | None = None):
        self.reference = reference
        self.referrer = referrer
        suffix = f" (referenced by {referrer})" if referrer else ""
        super().__init__(f"Unknown reference: {reference}{suffix}")


class CyclicBenchmark(DefinitionError):
    """Raised when a benchmark directly or transitively includes itself."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Cyclic benchmark: {' -> '.join(cycle)}")


class NotValidated(DefinitionError):
    """Raised when evaluation is attempted on an unvalidated registry."""

    def __init__(self) -> None:
        super().__init__("Registry must be validated before evaluation")


# Per-control errors


class ControlError(TightwadError):
    """Raised when a single control cannot be prepared for execution."""

    def __init__(self, message: str, control_id: str | None = None):
        self.control_id = control_id
        super().__init__(message)


class ParameterResolutionError(ControlError):
    """Raised when a parameter binding cannot be resolved."""

    def __init__(self, parameter: str, message: str, control_id: str | None = None):
        self.parameter = parameter
        super().__init__(
            f"Cannot resolve parameter '{parameter}': {message}", control_id
        )


class MissingParameter(ControlError):
    """Raised when a required query parameter has no binding."""

    def __init__(self, parameter: str, control_id: str | None = None):
        self.parameter = parameter
        super().__init__(
            f"Required parameter '{parameter}' has no binding", control_id
        )


# Provider errors


class ProviderError(TightwadError):
    """Base class for errors raised by table providers."""


class DataUnavailable(ProviderError):
    """Raised when a table or column referenced by a query does not exist."""


class QueryExecutionError(ProviderError):
    """Raised when a query fails to execute (malformed predicate, etc.)."""


class QueryValidationError(QueryExecutionError):
    """Raised when a query is rejected before execution."""


class ProviderTimeout(ProviderError):
    """Raised when a provider call times out or is throttled. Retryable."""
