"""CLI module for replicating enums to SQL Server.

Provides commands to preview the enums marked for replication, list the
configured target databases, and update one or more databases.

Usage:
    enum-to-sql preview --module myapp.enums
    enum-to-sql targets
    enum-to-sql update --module myapp.enums --conn "mssql://sa:pw@localhost/app?driver=..."
    enum-to-sql update --target local --target staging --format colors
    enum-to-sql update --target local --no-parallel

Commands:
    preview   - Show the enums that would be replicated and their tables
    targets   - List target databases from enum-to-sql.toml
    update    - Create and update enum tables in the given databases
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from enum_to_sql.adapters.mssql import safe_describe_url
from enum_to_sql.config.loader import CONFIG_FILE_NAME, get_target, load_config, resolve_url
from enum_to_sql.config.models import EnumToSqlConfig
from enum_to_sql.discovery import find_enums
from enum_to_sql.exceptions import ConfigurationError, EnumToSqlError
from enum_to_sql.replicator import DatabaseResult, EnumToSqlReplicator
from enum_to_sql.reporting import FORMAT_CHOICES, make_reporter

console = Console()


# ============================================================================
# Argument helpers (CLI-internal)
# ============================================================================


def _config_path(args: argparse.Namespace) -> Path:
    config = getattr(args, "config", None)
    return Path(config) if config else Path.cwd() / CONFIG_FILE_NAME


def _load_config(args: argparse.Namespace, required: bool = False) -> EnumToSqlConfig | None:
    """Load the config file, or return None when it is optional and absent.

    Raises:
        FileNotFoundError: If ``required`` (or ``--config`` was given) and
            the file does not exist.
        ValueError: If the file is invalid.
    """
    path = _config_path(args)
    if not path.exists() and not required and not getattr(args, "config", None):
        return None
    return load_config(path)


def _split(values: list[str] | None) -> list[str]:
    """Flatten repeated and comma-separated option values."""
    items: list[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def _resolve_modules(args: argparse.Namespace, config: EnumToSqlConfig | None) -> list[str]:
    modules = _split(getattr(args, "module", None))
    if not modules and config is not None:
        modules = list(config.replication.modules)
    if not modules:
        raise ConfigurationError(
            "No modules given. Pass --module or set [replication] modules in "
            f"{CONFIG_FILE_NAME}."
        )
    return modules


def _resolve_urls(args: argparse.Namespace, config: EnumToSqlConfig | None) -> list[str]:
    # Connection strings are not split on commas; ODBC options may contain them
    urls = list(args.conn or [])
    targets = _split(args.target)
    if targets:
        if config is None:
            raise ConfigurationError(f"--target requires {CONFIG_FILE_NAME} (or --config)")
        urls = [resolve_url(get_target(config, name)) for name in targets]
    if not urls:
        raise ConfigurationError("No databases given. Pass --conn or --target.")
    return urls


def _print_summary(results: list[DatabaseResult]) -> None:
    """Print per-table change counts as a table."""
    summary = Table(title="Replication Summary", show_header=True, header_style="bold")
    summary.add_column("Database", style="dim")
    summary.add_column("Table")
    summary.add_column("Added", justify="right")
    summary.add_column("Updated", justify="right")
    summary.add_column("Removed", justify="right")
    summary.add_column("Skipped", justify="right")

    for db_result in results:
        for table in db_result.tables:
            summary.add_row(
                db_result.database,
                table.table,
                str(table.inserted),
                str(table.updated),
                str(table.removed),
                f"[yellow]{table.skipped}[/yellow]" if table.skipped else "0",
            )

    console.print(summary)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_update(args: argparse.Namespace) -> int:
    """Async implementation for update command.

    Args:
        args: Parsed arguments with module, conn, target, format, and
            no_parallel.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        config = _load_config(args, required=bool(args.target))
        modules = _resolve_modules(args, config)
        urls = _resolve_urls(args, config)
        output_format = args.format or (config.replication.format if config else "plain")
        reporter = make_reporter(output_format, console)
    except (FileNotFoundError, ValueError, EnumToSqlError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    parallel = not args.no_parallel and (config.replication.parallel if config else True)

    try:
        replicator = EnumToSqlReplicator.from_modules(modules, reporter)
        results = await replicator.update_databases(urls, reporter, parallel=parallel)
    except EnumToSqlError as e:
        reporter.exception(e)
        console.print()
        console.print(f"[bold red]x[/bold red] {escape(str(e))}")
        return 1

    if output_format != "teamcity" and results:
        console.print()
        _print_summary(results)

    console.print()
    console.print(
        f"[bold green]v[/bold green] Updated {len(results)} database(s)"
    )
    return 0


def _preview(args: argparse.Namespace) -> int:
    """Implementation for preview command.

    Args:
        args: Parsed arguments with module.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        config = _load_config(args)
        enums = find_enums(_resolve_modules(args, config))
    except (FileNotFoundError, ValueError, EnumToSqlError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    if not enums:
        console.print("[yellow]No enums marked for replication were found.[/yellow]")
        return 0

    preview = Table(title="Enums to Replicate", show_header=True, header_style="bold")
    preview.add_column("Enum", style="dim")
    preview.add_column("Table", style="cyan")
    preview.add_column("Id Type")
    preview.add_column("Deletion")
    preview.add_column("Values", justify="right")

    for desc in enums:
        preview.add_row(
            desc.full_name,
            desc.qualified_name,
            desc.id_column.sized_sql_type,
            desc.deletion_policy.value,
            str(len(desc.values)),
        )

    console.print(preview)
    return 0


def _targets(args: argparse.Namespace) -> int:
    """Implementation for targets command.

    Returns:
        0 on success, 1 if the config file is missing or invalid.
    """
    try:
        config = _load_config(args, required=True)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    if not config.targets:
        console.print(f"[yellow]No targets defined in {CONFIG_FILE_NAME}.[/yellow]")
        return 0

    targets = Table(title="Targets", show_header=True, header_style="bold")
    targets.add_column("Name", style="cyan")
    targets.add_column("Database")
    targets.add_column("Description", style="dim")

    for name, target in config.targets.items():
        targets.add_row(name, safe_describe_url(resolve_url(target)), target.description)

    console.print(targets)
    return 0


# ============================================================================
# Sync wrappers for argparse dispatch
# ============================================================================


def cmd_update(args: argparse.Namespace) -> int:
    """Update enum tables in the given databases.

    Wraps the async implementation with ``asyncio.run()``.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 on failure.
    """
    return asyncio.run(_async_update(args))


def cmd_preview(args: argparse.Namespace) -> int:
    """Show the enums that would be replicated."""
    return _preview(args)


def cmd_targets(args: argparse.Namespace) -> int:
    """List target databases from the config file."""
    return _targets(args)


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all commands."""
    parser = argparse.ArgumentParser(
        prog="enum-to-sql",
        description="Replicate Python enums into SQL Server tables",
    )

    # Global options
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path to config file (default: ./{CONFIG_FILE_NAME})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log SQL statements and diagnostics to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    module_help = (
        "Module (dotted name or .py path) defining enums to replicate; "
        "repeat or comma-separate for several"
    )

    # preview command
    p_preview = subparsers.add_parser(
        "preview",
        help="Show the enums that would be replicated",
    )
    p_preview.add_argument("--module", "-m", action="append", help=module_help)
    p_preview.set_defaults(func=cmd_preview)

    # targets command
    p_targets = subparsers.add_parser(
        "targets",
        help="List target databases from the config file",
    )
    p_targets.set_defaults(func=cmd_targets)

    # update command
    p_update = subparsers.add_parser(
        "update",
        help="Create and update enum tables in the given databases",
    )
    p_update.add_argument("--module", "-m", action="append", help=module_help)
    databases = p_update.add_mutually_exclusive_group()
    databases.add_argument(
        "--conn",
        "-c",
        action="append",
        help="SQL Server connection URL (repeat for several databases)",
    )
    databases.add_argument(
        "--target",
        "-t",
        action="append",
        help="Target name from the config file (repeat or comma-separate)",
    )
    p_update.add_argument(
        "--format",
        "-f",
        choices=FORMAT_CHOICES,
        default=None,
        help="Output format (default: plain)",
    )
    p_update.add_argument(
        "--no-parallel",
        action="store_true",
        help="Update databases one at a time, stopping at the first failure",
    )
    p_update.set_defaults(func=cmd_update)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
