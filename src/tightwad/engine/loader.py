"""
Definition loader for Tightwad.

Loads variables, queries, controls and benchmarks from YAML documents.
Each document may carry any of the top-level lists ``variables``,
``queries``, ``controls`` and ``benchmarks``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from importlib import resources
from typing import Any

import yaml

from tightwad.engine.registry import Registry
from tightwad.engine.variables import VariableStore
from tightwad.errors import DefinitionLoadError, DuplicateId, DuplicateVariable, TypeMismatch
from tightwad.models import (
    Benchmark,
    ChildRef,
    Control,
    ParameterBinding,
    Query,
    QueryParameter,
    Severity,
    VariableType,
)
from tightwad.query.base import validate_read_only

logger = logging.getLogger(__name__)

BUILTIN_CATALOG_PACKAGE = "tightwad.catalog"

SECTIONS = ("variables", "queries", "controls", "benchmarks")


@dataclass
class Definitions:
    """
    Loaded definitions.

    Attributes:
        variables: Declared variables
        registry: Validated registry of queries, controls and benchmarks
    """

    variables: VariableStore
    registry: Registry


class DefinitionLoader:
    """
    Loads definitions from YAML files and the built-in catalog.

    Example:
        >>> loader = DefinitionLoader(["./controls"], include_builtin=False)
        >>> definitions = loader.load_all()
        >>> definitions.registry.get_benchmark("ebs")
    """

    def __init__(
        self,
        definition_dirs: list[str] | None = None,
        include_builtin: bool = True,
    ):
        """
        Initialize the loader.

        Args:
            definition_dirs: Directories searched recursively for YAML files
            include_builtin: Load the catalog shipped with the package first
        """
        self._definition_dirs = definition_dirs or []
        self._include_builtin = include_builtin
        self.variables = VariableStore()
        self.registry = Registry()

    def load_all(self) -> Definitions:
        """
        Load every configured source and validate the result.

        Returns:
            Definitions with a validated registry

        Raises:
            DefinitionError: On the first malformed or inconsistent definition
        """
        if self._include_builtin:
            self.load_builtin()

        files = self.discover()
        for path in files:
            self.load_file(path)

        self.registry.validate()
        self._warn_undeclared_variables()

        logger.info(
            f"Loaded {len(self.variables)} variables, "
            f"{len(self.registry.controls)} controls and "
            f"{len(self.registry.benchmarks)} benchmarks"
        )
        return Definitions(variables=self.variables, registry=self.registry)

    def discover(self) -> list[str]:
        """
        Find all YAML files in the definition directories.

        Returns:
            Sorted list of file paths
        """
        found: list[str] = []

        for dir_path in self._definition_dirs:
            dir_path = os.path.expanduser(dir_path)

            if os.path.isfile(dir_path):
                found.append(dir_path)
                continue
            if not os.path.isdir(dir_path):
                raise DefinitionLoadError("Definition directory not found", dir_path)

            for root, _, files in os.walk(dir_path):
                for file in files:
                    if file.endswith((".yaml", ".yml")):
                        found.append(os.path.join(root, file))

        return sorted(found)

    def load_file(self, path: str) -> None:
        """
        Load definitions from a YAML file.

        Raises:
            DefinitionLoadError: If the file cannot be read or is malformed
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except OSError as e:
            raise DefinitionLoadError(f"Cannot read file: {e}", path) from e

        self.load_string(content, path)

    def load_builtin(self) -> None:
        """Load the catalog shipped in the tightwad.catalog package."""
        catalog = resources.files(BUILTIN_CATALOG_PACKAGE)
        entries = sorted(
            (entry for entry in catalog.iterdir() if entry.name.endswith((".yaml", ".yml"))),
            key=lambda entry: entry.name,
        )
        for entry in entries:
            self.load_string(entry.read_text(encoding="utf-8"), f"<builtin>/{entry.name}")

    def load_string(self, content: str, source: str = "<string>") -> None:
        """
        Load definitions from YAML text.

        Args:
            content: YAML document
            source: Name used in error messages

        Raises:
            DefinitionLoadError: If the document is malformed
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise DefinitionLoadError(f"Invalid YAML: {e}", source) from e

        if data is None:
            logger.debug(f"Skipping empty definition file {source}")
            return
        if not isinstance(data, dict):
            raise DefinitionLoadError("Top level must be a mapping", source)

        unknown = set(data) - set(SECTIONS)
        if unknown:
            raise DefinitionLoadError(
                f"Unknown top-level keys: {', '.join(sorted(unknown))}", source
            )

        try:
            for item in self._section(data, "variables", source):
                self._load_variable(item, source)
            for item in self._section(data, "queries", source):
                self.registry.register_query(self._parse_query(item, source))
            for item in self._section(data, "controls", source):
                self.registry.register_control(self._parse_control(item, source))
            for item in self._section(data, "benchmarks", source):
                self.registry.register_benchmark(self._parse_benchmark(item, source))
        except (DuplicateId, DuplicateVariable, TypeMismatch) as e:
            raise DefinitionLoadError(str(e), source) from e

    # Parsing

    def _section(self, data: dict[str, Any], key: str, source: str) -> list[dict[str, Any]]:
        items = data.get(key) or []
        if not isinstance(items, list):
            raise DefinitionLoadError(f"'{key}' must be a list", source)
        for item in items:
            if not isinstance(item, dict):
                raise DefinitionLoadError(f"Each entry in '{key}' must be a mapping", source)
        return items

    @staticmethod
    def _describe(item: dict[str, Any], kind: str) -> str:
        label = item.get("id") or item.get("name")
        return f"{kind} '{label}'" if isinstance(label, str) else kind

    def _require(self, item: dict[str, Any], key: str, kind: str, source: str) -> Any:
        value = item.get(key)
        if value is None or value == "":
            raise DefinitionLoadError(
                f"{self._describe(item, kind)} is missing required field '{key}'", source
            )
        return value

    def _require_text(self, item: dict[str, Any], key: str, kind: str, source: str) -> str:
        return self._text(item, key, self._require(item, key, kind, source), kind, source)

    def _optional_text(
        self,
        item: dict[str, Any],
        key: str,
        default: str | None,
        kind: str,
        source: str,
    ) -> str | None:
        value = item.get(key)
        if value is None:
            return default
        return self._text(item, key, value, kind, source)

    def _text(self, item: dict[str, Any], key: str, value: Any, kind: str, source: str) -> str:
        if not isinstance(value, str):
            raise DefinitionLoadError(
                f"{self._describe(item, kind)} field '{key}' must be a string, "
                f"got {type(value).__name__}",
                source,
            )
        return value

    def _parse_type(self, value: str, context: str, source: str) -> VariableType:
        try:
            return VariableType.from_string(value)
        except ValueError as e:
            raise DefinitionLoadError(f"{context}: {e}", source) from e

    def _load_variable(self, item: dict[str, Any], source: str) -> None:
        name = self._require_text(item, "name", "Variable", source)
        var_type = self._parse_type(
            self._require_text(item, "type", "Variable", source), f"Variable '{name}'", source
        )
        if "default" not in item:
            raise DefinitionLoadError(f"Variable '{name}' has no default", source)

        self.variables.declare(
            name,
            var_type,
            item["default"],
            description=item.get("description", ""),
        )

    def _parse_query(self, item: dict[str, Any], source: str) -> Query:
        query_id = self._require_text(item, "id", "Query", source)
        sql = self._require_text(item, "sql", "Query", source)

        errors = validate_read_only(sql)
        if errors:
            raise DefinitionLoadError(f"Query '{query_id}' is not read-only: {'; '.join(errors)}", source)

        parameters: list[QueryParameter] = []
        seen: set[str] = set()
        for param in item.get("params") or []:
            if not isinstance(param, dict):
                raise DefinitionLoadError(f"Query '{query_id}' has a malformed parameter", source)
            name = self._require_text(param, "name", f"Parameter of query '{query_id}'", source)
            if name in seen:
                raise DefinitionLoadError(f"Query '{query_id}' declares '{name}' twice", source)
            seen.add(name)

            param_type = self._parse_type(
                self._optional_text(param, "type", "string", f"Parameter '{name}'", source),
                f"Parameter '{name}' of query '{query_id}'",
                source,
            )
            default = param.get("default")
            if default is not None and not param_type.accepts(default):
                raise DefinitionLoadError(
                    f"Default of parameter '{name}' in query '{query_id}' "
                    f"is not a {param_type.value}",
                    source,
                )
            if isinstance(default, list):
                default = tuple(default)

            parameters.append(
                QueryParameter(
                    name=name,
                    param_type=param_type,
                    required=bool(param.get("required", "default" not in param)),
                    default=default,
                    description=param.get("description", ""),
                )
            )

        return Query(
            id=query_id,
            sql=sql.strip(),
            parameters=tuple(parameters),
            identity_column=self._optional_text(item, "identity_column", "resource", "Query", source),
            description=item.get("description", ""),
        )

    def _parse_control(self, item: dict[str, Any], source: str) -> Control:
        control_id = self._require_text(item, "id", "Control", source)

        try:
            severity = Severity.from_string(
                self._optional_text(item, "severity", "low", "Control", source)
            )
        except ValueError as e:
            raise DefinitionLoadError(f"Control '{control_id}': {e}", source) from e

        bindings: list[ParameterBinding] = []
        seen: set[str] = set()
        for param in item.get("params") or []:
            if not isinstance(param, dict):
                raise DefinitionLoadError(f"Control '{control_id}' has a malformed binding", source)
            name = self._require_text(param, "name", f"Binding of control '{control_id}'", source)
            if name in seen:
                raise DefinitionLoadError(
                    f"Control '{control_id}' binds parameter '{name}' more than once", source
                )
            seen.add(name)

            has_variable = "variable" in param
            has_value = "value" in param
            if has_variable == has_value:
                raise DefinitionLoadError(
                    f"Binding '{name}' of control '{control_id}' needs exactly one of "
                    f"'variable' or 'value'",
                    source,
                )

            value = param.get("value")
            if isinstance(value, list):
                value = tuple(value)
            bindings.append(
                ParameterBinding(
                    name=name,
                    variable=self._optional_text(param, "variable", None, "Binding", source),
                    value=value,
                )
            )

        tags = item.get("tags") or {}
        if not isinstance(tags, dict):
            raise DefinitionLoadError(f"Tags of control '{control_id}' must be a mapping", source)

        return Control(
            id=control_id,
            title=self._require_text(item, "title", "Control", source),
            query_id=self._require_text(item, "query", "Control", source),
            description=item.get("description", ""),
            severity=severity,
            params=tuple(bindings),
            tags={str(k): str(v) for k, v in tags.items()},
            documentation=item.get("documentation", ""),
        )

    def _parse_benchmark(self, item: dict[str, Any], source: str) -> Benchmark:
        benchmark_id = self._require_text(item, "id", "Benchmark", source)

        children = item.get("children") or []
        if not isinstance(children, list) or not all(isinstance(c, str) for c in children):
            raise DefinitionLoadError(
                f"Children of benchmark '{benchmark_id}' must be a list of ids", source
            )

        tags = item.get("tags") or {}
        if not isinstance(tags, dict):
            raise DefinitionLoadError(f"Tags of benchmark '{benchmark_id}' must be a mapping", source)

        return Benchmark(
            id=benchmark_id,
            title=self._require_text(item, "title", "Benchmark", source),
            description=item.get("description", ""),
            documentation=item.get("documentation", ""),
            children=tuple(ChildRef.parse(c) for c in children),
            tags={str(k): str(v) for k, v in tags.items()},
        )

    def _warn_undeclared_variables(self) -> None:
        # Undeclared references fail per control at evaluation time
        for control in self.registry.controls:
            for binding in control.iter_bindings():
                if binding.is_variable and binding.variable not in self.variables:
                    logger.warning(
                        f"Control {control.id} binds '{binding.name}' to undeclared "
                        f"variable '{binding.variable}'"
                    )


def load_definitions(
    definition_dirs: list[str] | None = None,
    include_builtin: bool = True,
) -> Definitions:
    """
    Load and validate definitions.

    Args:
        definition_dirs: Directories or files with YAML definitions
        include_builtin: Include the built-in catalog

    Returns:
        Definitions with a validated registry
    """
    return DefinitionLoader(definition_dirs, include_builtin).load_all()
