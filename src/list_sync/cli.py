"""
List Sync CLI - Command Line Interface.

Commands:
    run     Mirror the list continuously (or once with --once)
    status  Show the persisted sync state for the list
    config  Show the effective configuration
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from list_sync import __version__
from list_sync.config import Settings, load_settings
from list_sync.connectors.auth import create_token_provider
from list_sync.connectors.mirror import create_mirror
from list_sync.connectors.sharepoint import create_sharepoint_client
from list_sync.core.engine import SyncEngine
from list_sync.core.scheduler import SyncWorker
from list_sync.core.state import SnapshotStore
from list_sync.errors import ConfigurationError, SnapshotCorruptError, TransportError
from list_sync.utils.display import (
    print_cycle_summary,
    print_error,
    print_failure,
    print_info,
    print_snapshot_status,
)
from list_sync.utils.logger import setup_logging

EXIT_CONFIG_ERROR = 2

# Create the Typer app
app = typer.Typer(
    name="list-sync",
    help="Incremental SharePoint list to object store mirroring.",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]list-sync[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """List Sync - mirror a SharePoint list into S3 or a directory, incrementally."""


# =============================================================================
# RUN Command
# =============================================================================
@app.command()
def run(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file.",
        exists=True,
        dir_okay=False,
    ),
    once: Optional[bool] = typer.Option(
        None,
        "--once/--continuous",
        help="Run a single cycle and exit (overrides config).",
    ),
    skip_unchanged: Optional[bool] = typer.Option(
        None,
        "--skip-unchanged/--upload-unchanged",
        help="Skip uploading items whose modified time did not advance.",
    ),
    interval: Optional[int] = typer.Option(
        None,
        "--interval",
        "-i",
        min=1,
        help="Seconds between cycles in continuous mode.",
    ),
    list_name: Optional[str] = typer.Option(
        None,
        "--list",
        "-l",
        help="List title (overrides config).",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Warnings and failures only.",
    ),
) -> None:
    """
    Mirror the configured list.

    Example:
        list-sync run --once --skip-unchanged
    """
    settings = _load_or_exit(
        config_file,
        run_once=once,
        skip_unchanged=skip_unchanged,
        interval=interval,
        list_name=list_name,
    )

    try:
        settings.require_valid()
    except ConfigurationError as e:
        for problem in e.problems:
            print_error(problem)
        print_info("Set LIST_SYNC_* environment variables or pass --config.")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    setup_logging(
        level="WARNING" if quiet else settings.logging.level,
        log_file=settings.logging.file,
        format_style=settings.logging.format,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )

    exit_code = asyncio.run(_serve(settings, quiet=quiet))
    raise typer.Exit(exit_code)


async def _serve(settings: Settings, quiet: bool = False) -> int:
    """Wire adapters together and run the worker until it stops."""
    mirror = create_mirror(settings)
    tokens = create_token_provider(settings)
    try:
        async with create_sharepoint_client(settings) as source:
            engine = SyncEngine(settings, source, mirror, tokens)
            worker = SyncWorker(
                engine,
                settings.sync,
                on_cycle=None if quiet else print_cycle_summary,
                on_failure=print_failure,
            )
            return await worker.serve()
    finally:
        await tokens.close()


# =============================================================================
# STATUS Command
# =============================================================================
@app.command()
def status(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file.",
        exists=True,
        dir_okay=False,
    ),
    list_name: Optional[str] = typer.Option(
        None,
        "--list",
        "-l",
        help="List title (overrides config).",
    ),
) -> None:
    """Show the persisted sync state for the list."""
    settings = _load_or_exit(config_file, list_name=list_name)

    problems = [
        p for p in settings.validate_required() if p.startswith(("list_name", "mirror."))
    ]
    if problems:
        for problem in problems:
            print_error(problem)
        raise typer.Exit(EXIT_CONFIG_ERROR)

    mirror = create_mirror(settings)
    store = SnapshotStore(mirror, settings.prefix)
    state_key = store.state_key(settings.list_name)

    try:
        document = asyncio.run(store.describe(settings.list_name))
    except SnapshotCorruptError as e:
        print_error(f"Sync state at {mirror.describe_key(state_key)} is unreadable: {e}")
        raise typer.Exit(1)
    except TransportError as e:
        print_failure(e)
        raise typer.Exit(1)

    if document is None:
        print_info("No sync state found. Run [bold]list-sync run[/bold] first.")
        raise typer.Exit(0)

    print_snapshot_status(document, mirror.describe_key(state_key))


# =============================================================================
# CONFIG Command
# =============================================================================
@app.command()
def config(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file.",
        exists=True,
        dir_okay=False,
    ),
    show: bool = typer.Option(
        False,
        "--show",
        help="Show current configuration.",
    ),
) -> None:
    """Show the effective configuration (secrets masked)."""
    if not show:
        console.print("Use --show to view the effective configuration.")
        return

    settings = _load_or_exit(config_file)
    table = Table(title="Current Configuration", border_style="cyan")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    for key, value in _flatten(settings.masked_dump()):
        table.add_row(key, str(value) if value not in ("", None) else "[dim]not set[/dim]")

    console.print(table)

    problems = settings.validate_required()
    if problems:
        console.print()
        for problem in problems:
            print_error(problem)


# =============================================================================
# Helper Functions
# =============================================================================
def _load_or_exit(config_file: Path | None, **overrides: Any) -> Settings:
    try:
        return _build_settings(config_file, **overrides)
    except (ValueError, FileNotFoundError) as e:
        print_error(str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR)


def _build_settings(
    config_file: Path | None = None,
    **overrides: Any,
) -> Settings:
    """Build settings from config file and CLI overrides."""
    settings = load_settings(config_file) if config_file else Settings()

    if overrides.get("list_name"):
        settings.list_name = overrides["list_name"]
    if overrides.get("run_once") is not None:
        settings.sync.run_once = overrides["run_once"]
    if overrides.get("skip_unchanged") is not None:
        settings.sync.skip_unchanged = overrides["skip_unchanged"]
    if overrides.get("interval"):
        settings.sync.poll_interval_seconds = overrides["interval"]

    return settings


def _flatten(data: dict[str, Any], parent: str = "") -> list[tuple[str, Any]]:
    rows: list[tuple[str, Any]] = []
    for key, value in data.items():
        name = f"{parent}.{key}" if parent else key
        if isinstance(value, dict):
            rows.extend(_flatten(value, name))
        else:
            rows.append((name, value))
    return rows


if __name__ == "__main__":
    app()
