"""CLI for comparing code-first models against database schemas.

Usage:
    schema-compare diff expected.json actual.json
    DB_PROFILE=local schema-compare check --model myapp.models:Base
    schema-compare check --model myapp.models:Base --profile local --format table
    schema-compare dump --profile local --output snapshots/local.json
    schema-compare profiles

Commands:
    diff      - Compare two schema declaration JSON files
    check     - Compare a SQLAlchemy model against a live profile
    dump      - Write a live profile's schema as declaration JSON
    profiles  - List available profiles

Exit codes: 0 when the schema is valid, 1 on differences or errors.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from schema_compare.adapters.base import DeclarationFileSource
from schema_compare.config.loader import load_config
from schema_compare.config.models import CompareConfig
from schema_compare.factory import (
    ProfileNotFoundError,
    compare_model_to_profile,
    introspect_profile,
)
from schema_compare.schema.comparator import validate_schema
from schema_compare.schema.declarations import dump_declaration
from schema_compare.schema.models import ComparisonResult, Severity
from schema_compare.schema.snapshot import AdapterError

console = Console()

_SEVERITY_STYLES = {
    Severity.ERROR: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFO: "dim",
}


# ============================================================================
# Helpers
# ============================================================================


def _load_config(args: argparse.Namespace, required: bool = False) -> CompareConfig:
    """Load ``--config`` (or ./db.toml); fall back to defaults unless *required*."""
    config_path = Path(args.config) if getattr(args, "config", None) else None
    try:
        return load_config(config_path)
    except FileNotFoundError:
        if required or config_path is not None:
            raise
        return CompareConfig()


def _render_table(result: ComparisonResult) -> None:
    table = Table(title="Schema Differences", show_header=True, header_style="bold")
    table.add_column("Severity")
    table.add_column("Kind")
    table.add_column("Location")
    table.add_column("Expected")
    table.add_column("Actual")

    for diff in result.differences:
        style = _SEVERITY_STYLES[diff.severity]
        table.add_row(
            f"[{style}]{diff.severity.value}[/{style}]",
            diff.kind.value,
            diff.path,
            diff.expected or "",
            diff.actual or "",
        )

    console.print(table)


def _report(result: ComparisonResult, args: argparse.Namespace) -> int:
    """Print *result* in the requested format and return the exit code."""
    failed = not result.is_valid or (args.fail_on_warning and result.warnings)
    exit_code = 1 if failed else 0

    if args.quiet:
        return exit_code

    if args.format == "json":
        print(result.model_dump_json(indent=2))
        return exit_code

    if args.format == "table" and result.differences:
        _render_table(result)
    elif result.differences:
        console.print(result.format_report(), highlight=False, markup=False)

    console.print()
    if exit_code == 0:
        console.print("[bold green]v[/bold green] Schema is valid")
    else:
        console.print(
            f"[bold red]x[/bold red] Schema has drifted: "
            f"{result.error_count} errors, {len(result.warnings)} warnings"
        )
    return exit_code


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_check(args: argparse.Namespace) -> int:
    """Async implementation for check command.

    Returns:
        0 on valid schema, 1 on differences or failure.
    """
    try:
        config = _load_config(args, required=True)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not args.quiet:
        console.print(f"Comparing [bold cyan]{args.model}[/bold cyan]...", style="dim")

    try:
        result = await compare_model_to_profile(
            args.model,
            profile_name=args.profile,
            config=config,
            env_prefix=args.env_prefix,
        )
    except ProfileNotFoundError as e:
        console.print(f"[yellow]{e}[/yellow]")
        return 1
    except (AdapterError, ImportError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] Connection failed: {e}")
        return 1

    return _report(result, args)


async def _async_dump(args: argparse.Namespace) -> int:
    """Async implementation for dump command.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        config = _load_config(args, required=True)
        declaration = await introspect_profile(args.profile, config, args.env_prefix)
    except ProfileNotFoundError as e:
        console.print(f"[yellow]{e}[/yellow]")
        return 1
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] Connection failed: {e}")
        return 1

    if args.output:
        path = dump_declaration(declaration, args.output)
        console.print(
            f"[bold green]v[/bold green] Wrote {len(declaration.tables)} tables to "
            f"[cyan]{path}[/cyan]"
        )
    else:
        print(declaration.model_dump_json(indent=2))
    return 0


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_diff(args: argparse.Namespace) -> int:
    """Compare two declaration files (no database calls).

    Returns:
        0 on valid schema, 1 on differences or unreadable input.
    """
    try:
        config = _load_config(args)
        result = validate_schema(
            DeclarationFileSource(args.expected),
            DeclarationFileSource(args.actual),
            config.compare,
        )
    except (AdapterError, FileNotFoundError, ValueError, ValidationError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    return _report(result, args)


def cmd_check(args: argparse.Namespace) -> int:
    """Compare a model against a live profile.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_check(args))


def cmd_dump(args: argparse.Namespace) -> int:
    """Write a live profile's schema as declaration JSON.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_dump(args))


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config -- no database calls.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    try:
        config = _load_config(args, required=True)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("Profile")
    table.add_column("Schema")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        table.add_row(name, profile.schema_name, profile.description or "")

    console.print(table)
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def _add_output_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--format",
        choices=["text", "table", "json"],
        default="text",
        help="Report format (default: text)",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Print nothing; exit code only",
    )
    parser.add_argument(
        "--fail-on-warning",
        action="store_true",
        help="Exit 1 when warnings are reported (extra tables, unsupported constructs)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schema-compare",
        description="Compare a code-first model against a database schema",
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to db.toml (default: ./db.toml)",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # diff command
    p_diff = subparsers.add_parser(
        "diff",
        help="Compare two schema declaration JSON files",
    )
    p_diff.add_argument("expected", help="Declaration JSON of the expected model")
    p_diff.add_argument("actual", help="Declaration JSON of the actual database")
    _add_output_options(p_diff)
    p_diff.set_defaults(func=cmd_diff)

    # check command
    p_check = subparsers.add_parser(
        "check",
        help="Compare a SQLAlchemy model against a live profile",
    )
    p_check.add_argument(
        "--model",
        required=True,
        help="Import path of the model, e.g. myapp.models:Base",
    )
    p_check.add_argument(
        "--profile",
        default=None,
        help="Profile from db.toml (default: DB_PROFILE env var)",
    )
    _add_output_options(p_check)
    p_check.set_defaults(func=cmd_check)

    # dump command
    p_dump = subparsers.add_parser(
        "dump",
        help="Write a live profile's schema as declaration JSON",
    )
    p_dump.add_argument(
        "--profile",
        default=None,
        help="Profile from db.toml (default: DB_PROFILE env var)",
    )
    p_dump.add_argument(
        "--output",
        "-o",
        default=None,
        help="Output file (default: stdout)",
    )
    p_dump.set_defaults(func=cmd_dump)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors or drift).
    """
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
