"""
CLI command handlers for Tightwad.

Implements each CLI subcommand. Handlers return an exit code:
0 on success, 1 when a run reports errors (or alarms with
--fail-on-alarm), 2 for definition and configuration errors.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any

from tightwad.config import RunConfiguration, load_config_from_env
from tightwad.engine.loader import Definitions, load_definitions
from tightwad.engine.retry import RetryConfig
from tightwad.engine.runner import Runner
from tightwad.errors import DefinitionError
from tightwad.export import export_report
from tightwad.models import RunReport

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_DEFINITION_ERROR = 2


def build_config(args: argparse.Namespace) -> RunConfiguration:
    """
    Build the run configuration from the environment and CLI flags.

    A --config file replaces TIGHTWAD_CONFIG_FILE; TIGHTWAD_* variables
    apply on top of it and explicit flags win over both.
    """
    env = dict(os.environ)
    if getattr(args, "config", None):
        env["TIGHTWAD_CONFIG_FILE"] = args.config
    config = load_config_from_env(env)

    if getattr(args, "definitions", None):
        config.definition_dirs = list(config.definition_dirs) + list(args.definitions)
    if getattr(args, "no_builtin", False):
        config.include_builtin = False

    if getattr(args, "concurrency", None) is not None:
        config.concurrency = args.concurrency
    if getattr(args, "timeout", None) is not None:
        config.timeout = args.timeout
    if getattr(args, "max_retries", None) is not None:
        retry = config.retry.to_dict()
        retry["max_retries"] = args.max_retries
        config.retry = RetryConfig.from_dict(retry)

    provider = config.provider
    if getattr(args, "provider", None):
        provider.backend = args.provider
    if getattr(args, "snapshot", None):
        provider.snapshot_path = args.snapshot
    if getattr(args, "database", None):
        provider.database = args.database
    if getattr(args, "workgroup", None):
        provider.workgroup = args.workgroup
    if getattr(args, "output_location", None):
        provider.output_location = args.output_location
    if getattr(args, "region", None):
        provider.region = args.region

    config.variable_text.update(parse_var_flags(getattr(args, "var", None) or []))
    return config


def parse_var_flags(values: list[str]) -> dict[str, str]:
    """
    Parse repeated --var NAME=VALUE flags.

    Raises:
        ValueError: If a flag has no '='
    """
    parsed: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Invalid --var '{item}', expected NAME=VALUE")
        parsed[name.strip()] = value
    return parsed


def load_from_config(config: RunConfiguration) -> Definitions:
    """Load definitions from the configured sources."""
    return load_definitions(config.definition_dirs, config.include_builtin)


def report_exit_code(report: RunReport, fail_on_alarm: bool = False) -> int:
    """Map a run report to an exit code."""
    counts = report.counts
    if counts.error > 0 or report.incomplete:
        return EXIT_FINDINGS
    if fail_on_alarm and counts.alarm > 0:
        return EXIT_FINDINGS
    return EXIT_OK


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run a benchmark or control and print the report.

    Returns:
        Exit code
    """
    config = build_config(args)
    definitions = load_from_config(config)
    provider = config.provider.create_provider()

    try:
        report = Runner(definitions, provider, config).run(args.target)
    finally:
        provider.disconnect()

    result = export_report(
        report,
        format=args.format,
        output_path=args.output,
        include_rows=args.include_rows,
        statuses=args.status,
        use_colors=args.color and sys.stdout.isatty(),
    )
    if not result.success:
        print(f"error: {result.error}", file=sys.stderr)
        return EXIT_DEFINITION_ERROR

    if result.content is not None:
        sys.stdout.write(result.content)
    else:
        print(f"Report written to {result.output_path}")

    return report_exit_code(report, args.fail_on_alarm)


def cmd_validate(args: argparse.Namespace) -> int:
    """
    Load and validate definitions without running them.

    Returns:
        Exit code
    """
    config = build_config(args)
    definitions = load_from_config(config)
    registry = definitions.registry

    # Check overrides against declared types
    store = definitions.variables
    store.resolve_all(config.variables | store.parse_overrides(config.variable_text))

    print(
        f"OK: {len(store)} variables, {len(registry.queries)} queries, "
        f"{len(registry.controls)} controls, {len(registry.benchmarks)} benchmarks"
    )
    return EXIT_OK


def cmd_list(args: argparse.Namespace) -> int:
    """
    List benchmarks or controls.

    Returns:
        Exit code
    """
    config = build_config(args)
    registry = load_from_config(config).registry

    if args.kind == "controls":
        if args.benchmark:
            controls = [registry.get_control(cid) for cid in registry.walk_controls(args.benchmark)]
        else:
            controls = registry.controls
        data = [
            {
                "id": c.id,
                "title": c.title,
                "severity": c.severity.value,
                "query": c.query_id,
            }
            for c in controls
        ]
    else:
        data = [
            {
                "id": b.id,
                "title": b.title,
                "children": len(b.children),
                "controls": len(registry.walk_controls(b.id)),
            }
            for b in registry.benchmarks
        ]

    if not data:
        print(f"No {args.kind} found.")
        return EXIT_OK

    print(format_output(data, args.format))
    return EXIT_OK


def cmd_variables(args: argparse.Namespace) -> int:
    """
    Show declared variables and the values a run would use.

    Returns:
        Exit code
    """
    config = build_config(args)
    store = load_from_config(config).variables
    resolved = store.resolve_all(config.variables | store.parse_overrides(config.variable_text))

    data = [
        {
            "name": v.name,
            "type": v.var_type.value,
            "default": _display(v.default),
            "value": _display(resolved[v.name]),
            "description": v.description,
        }
        for v in store
    ]

    if not data:
        print("No variables declared.")
        return EXIT_OK

    print(format_output(data, args.format))
    return EXIT_OK


def _display(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    return value


def format_output(data: list[dict[str, Any]], format_type: str) -> str:
    """
    Format data for output.

    Args:
        data: List of dictionaries to format
        format_type: Output format (table, json)

    Returns:
        Formatted string
    """
    if not data:
        return ""

    if format_type == "json":
        return json.dumps(data, indent=2, default=str)

    return format_table(data)


def format_table(data: list[dict[str, Any]]) -> str:
    """
    Format data as ASCII table.

    Args:
        data: List of dictionaries

    Returns:
        Formatted table string
    """
    if not data:
        return ""

    headers = list(data[0].keys())

    widths = {h: len(str(h)) for h in headers}
    for row in data:
        for h in headers:
            widths[h] = max(widths[h], len(str(row.get(h, ""))))

    lines = [
        " | ".join(str(h).ljust(widths[h]) for h in headers),
        "-+-".join("-" * widths[h] for h in headers),
    ]
    for row in data:
        lines.append(" | ".join(str(row.get(h, "")).ljust(widths[h]) for h in headers))

    return "\n".join(lines)


def handle_errors(handler: Any, args: argparse.Namespace) -> int:
    """
    Run a command handler, reporting definition errors as exit code 2.

    Returns:
        Exit code
    """
    try:
        return handler(args)
    except DefinitionError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_DEFINITION_ERROR
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_DEFINITION_ERROR
