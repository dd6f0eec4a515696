"""
Tightwad CLI entry point.

This module provides the command-line interface for Tightwad.
"""

from __future__ import annotations

import argparse
import os
import sys

from tightwad import __version__
from tightwad.cli_commands import (
    EXIT_DEFINITION_ERROR,
    cmd_list,
    cmd_run,
    cmd_validate,
    cmd_variables,
    handle_errors,
)
from tightwad.observability.logging import LOG_FORMAT_ENV, LOG_LEVEL_ENV, configure_logging


def _add_definition_args(parser: argparse.ArgumentParser) -> None:
    """Options shared by every command that loads definitions."""
    parser.add_argument(
        "--config",
        help="Configuration file (JSON or YAML)",
    )
    parser.add_argument(
        "-d",
        "--definitions",
        action="append",
        metavar="PATH",
        help="Directory or file with YAML definitions (can be repeated)",
    )
    parser.add_argument(
        "--no-builtin",
        action="store_true",
        help="Do not load the built-in AWS catalog",
    )
    parser.add_argument(
        "--var",
        action="append",
        metavar="NAME=VALUE",
        help="Override a variable (can be repeated)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="tightwad",
        description="Tightwad - AWS cost-optimization controls",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"tightwad {__version__}",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )

    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only log errors",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run a benchmark or control")
    run_parser.add_argument(
        "target",
        nargs="?",
        default="all",
        help="Benchmark or control id (default: all)",
    )
    _add_definition_args(run_parser)
    run_parser.add_argument(
        "--provider",
        choices=["sqlite", "athena"],
        help="Table provider backend (default: sqlite)",
    )
    run_parser.add_argument(
        "--snapshot",
        help="Snapshot file (JSON or YAML) for the sqlite provider",
    )
    run_parser.add_argument("--database", help="Athena database")
    run_parser.add_argument("--workgroup", help="Athena workgroup")
    run_parser.add_argument("--output-location", help="Athena query result location (s3://...)")
    run_parser.add_argument("--region", help="AWS region for Athena")
    run_parser.add_argument(
        "--concurrency",
        type=int,
        help="Maximum concurrent control evaluations",
    )
    run_parser.add_argument(
        "--timeout",
        type=float,
        help="Cancel the run after this many seconds",
    )
    run_parser.add_argument(
        "--max-retries",
        type=int,
        help="Retries for provider timeouts",
    )
    run_parser.add_argument(
        "--format",
        choices=["text", "json", "csv"],
        default="text",
        help="Report format (default: text)",
    )
    run_parser.add_argument(
        "-o",
        "--output",
        help="Write the report to a file instead of stdout",
    )
    run_parser.add_argument(
        "--include-rows",
        action="store_true",
        help="Include raw query rows in JSON output",
    )
    run_parser.add_argument(
        "--status",
        action="append",
        choices=["ok", "alarm", "error", "info", "skip"],
        help="Only list findings with this status (can be repeated)",
    )
    run_parser.add_argument(
        "--fail-on-alarm",
        action="store_true",
        help="Exit with code 1 when any control raises an alarm",
    )
    run_parser.add_argument(
        "--color",
        action="store_true",
        help="Colorize text output",
    )

    # validate command
    validate_parser = subparsers.add_parser(
        "validate", help="Load and validate definitions"
    )
    _add_definition_args(validate_parser)

    # list command
    list_parser = subparsers.add_parser("list", help="List benchmarks or controls")
    list_parser.add_argument(
        "kind",
        nargs="?",
        choices=["benchmarks", "controls"],
        default="benchmarks",
        help="What to list (default: benchmarks)",
    )
    list_parser.add_argument(
        "--benchmark",
        help="Only list controls reachable from this benchmark",
    )
    list_parser.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )
    _add_definition_args(list_parser)

    # variables command
    variables_parser = subparsers.add_parser(
        "variables", help="Show variables and their resolved values"
    )
    variables_parser.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )
    _add_definition_args(variables_parser)

    # version command
    subparsers.add_parser("version", help="Show version information")

    return parser


def setup_logging(args: argparse.Namespace) -> None:
    """Configure logging from -v/-q flags and the environment."""
    if args.quiet:
        level = "ERROR"
    elif args.verbose > 1:
        level = "DEBUG"
    elif args.verbose == 1:
        level = "INFO"
    else:
        level = os.getenv(LOG_LEVEL_ENV, "WARNING")

    configure_logging(level=level, format=os.getenv(LOG_FORMAT_ENV, "human"))


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        setup_logging(args)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_DEFINITION_ERROR

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "version":
        print(f"Tightwad version {__version__}")
        return 0

    command_handlers = {
        "run": cmd_run,
        "validate": cmd_validate,
        "list": cmd_list,
        "variables": cmd_variables,
    }

    return handle_errors(command_handlers[args.command], args)


if __name__ == "__main__":
    sys.exit(main())
