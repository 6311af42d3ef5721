"""CLI for exporting backups into SQL artifacts and importing them.

Usage:
    db-artifacts export -b ./backup -o ./output
    db-artifacts export -d shop,crm -s -p
    db-artifacts import shop_copy ./output/shop
    db-artifacts import shop_copy ./output/shop db.internal 3307 admin --on-error halt

Commands:
    export  - Restore a mariabackup directory into a throwaway container and
              dump each database into per-stage SQL files
    import  - Apply a directory of stage files to a MySQL/MariaDB server

Exit codes:
    0    success (including runs where some stages or databases failed)
    1    fatal error (nothing useful was produced)
    130  interrupted
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import SecretStr
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.prompt import Prompt
from rich.table import Table

from db_artifacts.adapters.base import CommandResult, SqlClientError
from db_artifacts.adapters.docker import (
    ContainerSqlClient,
    DockerBackupEngine,
    DockerDirectoryEraser,
    DockerServiceRuntime,
)
from db_artifacts.adapters.mysql import MySQLClient
from db_artifacts.adapters.progress import detect_progress_relay
from db_artifacts.artifacts.models import DatabaseSelection, Stage, scan_artifact_set
from db_artifacts.config.loader import load_tool_defaults
from db_artifacts.config.models import (
    DEFAULT_ROOT_PASSWORD,
    ExportConfig,
    ImportConfig,
    ServiceConfig,
    TargetConfig,
    ToolDefaults,
)
from db_artifacts.export.discovery import NoDatabasesFound
from db_artifacts.export.pipeline import run_export
from db_artifacts.importer.pipeline import (
    ContinueDecision,
    always_continue,
    always_halt,
    check_connection,
    run_import,
)
from db_artifacts.reporting import (
    render_export_summary,
    render_import_plan,
    render_import_summary,
)
from db_artifacts.service.bootstrap import BootstrapError, ephemeral_service

console = Console()
logger = logging.getLogger(__name__)

# ``-p`` given without a value
PROMPT_FOR_PASSWORD = object()

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_INTERRUPTED = 130


# ============================================================================
# Helpers
# ============================================================================


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich on the shared console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )


def _load_defaults(args: argparse.Namespace) -> ToolDefaults | None:
    config_path = Path(args.config) if args.config else None
    try:
        return load_tool_defaults(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return None


def _resolve_export_password(value: object) -> str | None:
    """Password for the ephemeral server. ``None`` means the prompt was left empty."""
    if value is None:
        return DEFAULT_ROOT_PASSWORD
    if value is PROMPT_FOR_PASSWORD:
        value = Prompt.ask("Enter MySQL root password", password=True, console=console)
    return value or None


def prompt_continue(stage: Stage, result: CommandResult) -> bool:
    """Ask the operator whether to go on after ``stage`` failed."""
    answer = Prompt.ask(
        f"Import of {stage.filename} failed. Continue with remaining files? [Y/n]",
        default="y",
        show_default=False,
        console=console,
    )
    return answer.strip().lower() not in ("n", "no")


_ON_ERROR: dict[str, ContinueDecision] = {
    "prompt": prompt_continue,
    "continue": always_continue,
    "halt": always_halt,
}


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_export(args: argparse.Namespace) -> int:
    """Async implementation for export command.

    Returns:
        0 when the export ran (even if some databases failed), 1 on a
        fatal error.
    """
    defaults = _load_defaults(args)
    if defaults is None:
        return EXIT_FATAL

    password = _resolve_export_password(args.password)
    if password is None:
        console.print("[red]Error: Password cannot be empty.[/red]")
        return EXIT_FATAL

    export_defaults = defaults.export
    service = ServiceConfig(
        backup_dir=Path(args.backup_dir) if args.backup_dir else export_defaults.backup_dir,
        restored_data_dir=export_defaults.restored_data_dir,
        image=args.image or export_defaults.image,
        container_name=export_defaults.container_name,
        root_password=SecretStr(password),
        probe_attempts=export_defaults.probe_attempts,
    )
    config = ExportConfig(
        service=service,
        output_dir=Path(args.output_dir) if args.output_dir else export_defaults.output_dir,
        selection=DatabaseSelection.from_csv(args.databases),
        include_full=not args.skip_full,
    )

    overview = Table(title="MariaDB Backup Export", show_header=False)
    overview.add_column("Key", style="dim")
    overview.add_column("Value")
    overview.add_row("Backup directory", escape(str(service.backup_dir)))
    overview.add_row("Output directory", escape(str(config.output_dir)))
    overview.add_row("Image", escape(service.image))
    overview.add_row("Databases", escape(config.selection.describe()))
    overview.add_row("Full dump", "yes" if config.include_full else "skipped")
    console.print(overview)

    runtime = DockerServiceRuntime(service.image, service.container_name)
    engine = DockerBackupEngine(service.image)
    eraser = DockerDirectoryEraser(service.image)

    try:
        async with ephemeral_service(service, engine, runtime, eraser) as handle:
            client = ContainerSqlClient(handle.service_id, password)
            try:
                summary = await run_export(config, client)
            finally:
                await client.close()
    except (BootstrapError, NoDatabasesFound, SqlClientError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        return EXIT_FATAL

    console.print()
    render_export_summary(summary, console)
    return EXIT_OK


async def _async_import(args: argparse.Namespace) -> int:
    """Async implementation for import command.

    Returns:
        0 when the import ran (even if some stages failed), 1 on a fatal
        error.
    """
    defaults = _load_defaults(args)
    if defaults is None:
        return EXIT_FATAL

    import_defaults = defaults.import_
    source_dir = Path(args.sql_dir)
    if not source_dir.is_dir():
        console.print(f"[red]Error: SQL directory '{escape(str(source_dir))}' does not exist.[/red]")
        return EXIT_FATAL

    password = Prompt.ask("Enter MySQL password", password=True, console=console)
    target = TargetConfig(
        host=args.host or import_defaults.host,
        port=args.port or import_defaults.port,
        user=args.user or import_defaults.user,
        password=SecretStr(password),
        max_allowed_packet=import_defaults.max_allowed_packet,
    )
    config = ImportConfig(
        database=args.database,
        source_dir=source_dir,
        target=target,
        status_interval=import_defaults.status_interval,
    )

    client = MySQLClient(
        host=target.host,
        port=target.port,
        user=target.user,
        password=target.password.get_secret_value(),
        max_allowed_packet=target.max_allowed_packet,
    )
    try:
        console.print("Testing connection...", style="dim")
        try:
            await check_connection(client)
        except SqlClientError as e:
            console.print(
                f"[bold red]x[/bold red] Cannot connect to MySQL server at {target.address}"
            )
            console.print(escape(str(e)), style="dim")
            return EXIT_FATAL
        console.print("[bold green]v[/bold green] Connection successful")

        render_import_plan(
            scan_artifact_set(config.source_dir, config.database), target.address, console
        )
        try:
            ledger = await run_import(
                config,
                client,
                should_continue=_ON_ERROR[args.on_error],
                relay=detect_progress_relay(console),
            )
        except SqlClientError as e:
            console.print(
                f"[bold red]Error:[/bold red] could not create database "
                f"'{escape(config.database)}': {escape(str(e))}"
            )
            return EXIT_FATAL
    finally:
        await client.close()

    console.print()
    render_import_summary(ledger, console)
    return EXIT_OK


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_export(args: argparse.Namespace) -> int:
    """Export databases from a physical backup.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_export(args))


def cmd_import(args: argparse.Namespace) -> int:
    """Import a stage directory into a target server.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_import(args))


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the ``db-artifacts`` argument parser."""
    parser = argparse.ArgumentParser(
        prog="db-artifacts",
        description="Export MariaDB physical backups into staged SQL files and import them",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Defaults file (default: ./db-artifacts.toml if present)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # export command
    p_export = subparsers.add_parser(
        "export",
        help="Restore a backup and dump each database into stage files",
    )
    p_export.add_argument(
        "-d", "--databases",
        default=None,
        help="Comma-separated databases to export (default: all user databases)",
    )
    p_export.add_argument(
        "-s", "--skip-full",
        action="store_true",
        help="Skip the combined full.sql dump",
    )
    p_export.add_argument(
        "-p", "--password",
        nargs="?",
        const=PROMPT_FOR_PASSWORD,
        default=None,
        help="Root password for the restored server; prompts when given without a value",
    )
    p_export.add_argument("-i", "--image", default=None, help="Server image to run")
    p_export.add_argument("-b", "--backup-dir", default=None, help="mariabackup directory")
    p_export.add_argument("-o", "--output-dir", default=None, help="Where to write stage files")
    p_export.set_defaults(func=cmd_export)

    # import command
    p_import = subparsers.add_parser(
        "import",
        help="Apply a directory of stage files to a server",
    )
    p_import.add_argument("database", help="Target database (created if missing)")
    p_import.add_argument("sql_dir", help="Directory holding <stage>.sql files")
    p_import.add_argument("host", nargs="?", default=None, help="Server host")
    p_import.add_argument("port", nargs="?", type=int, default=None, help="Server port")
    p_import.add_argument("user", nargs="?", default=None, help="Account name")
    p_import.add_argument(
        "--on-error",
        choices=sorted(_ON_ERROR),
        default="prompt",
        help="What to do when a stage fails (default: prompt)",
    )
    p_import.set_defaults(func=cmd_import)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
