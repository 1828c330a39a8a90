"""
Rich Terminal Display Components.

Console output for:
- Per-cycle statistics summaries
- Failure reports with transport detail
- Snapshot status
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from list_sync.core.engine import CycleResult
from list_sync.core.state import SnapshotDocument
from list_sync.errors import TransportError


console = Console()


def print_cycle_summary(result: CycleResult) -> None:
    """Print the statistics table for a finished cycle."""
    title = f"Sync Statistics - {result.collection}"
    if result.cancelled:
        title += " (interrupted)"
    table = Table(title=title, border_style="yellow" if result.cancelled else "green")

    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    stats = result.stats
    table.add_row("Inserts", f"{stats.inserts:,}")
    table.add_row("Updates", f"{stats.updates:,}")
    table.add_row("Deletes", f"{stats.deletes:,}")
    table.add_row("Unchanged", f"{stats.unchanged:,}")
    table.add_row("Total", f"{stats.total:,}")
    table.add_section()
    table.add_row("Rows Uploaded", f"{result.uploaded:,}")
    table.add_row("Rows Skipped", f"{result.skipped:,}")
    table.add_row("Attachments", f"{result.attachments_uploaded:,}")
    table.add_row("Deletion Markers", f"{result.markers_written:,}")
    table.add_row("Snapshot Saved", "yes" if result.snapshot_saved else "[yellow]no[/yellow]")
    table.add_row("Duration", f"{result.duration_seconds:.1f}s")

    console.print(table)


def print_failure(exc: BaseException) -> None:
    """Print a failed cycle, including response detail for transport errors."""
    body = Table.grid(padding=(0, 2))
    body.add_column(style="dim")
    body.add_column()
    body.add_row("Error:", escape(f"{type(exc).__name__}: {exc}"))

    if isinstance(exc, TransportError):
        if exc.operation:
            body.add_row("Operation:", escape(exc.operation))
        if exc.has_response:
            body.add_row("Status:", escape(f"{exc.status} {exc.reason}".strip()))
            headers = "\n".join(f"{k}: {v}" for k, v in exc.headers.items())
            body.add_row("Headers:", escape(headers) or "-")
            body.add_row("Body:", escape(exc.body_preview()) or "-")

    console.print(
        Panel(body, title="[bold red]Sync failed[/bold red]", border_style="red")
    )


def print_snapshot_status(document: SnapshotDocument, state_url: str) -> None:
    """Print what the persisted snapshot for a collection holds."""
    table = Table(title="Sync State", border_style="blue")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Collection", escape(document.collection_name))
    table.add_row("Last Sync", document.last_sync or "[dim]unknown[/dim]")
    table.add_row("Items Tracked", f"{document.item_count:,}")
    table.add_row(
        "Attachments Tracked",
        f"{sum(e.attachment_count for e in document.items.values()):,}",
    )
    table.add_row("State Object", state_url)

    console.print(table)


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red bold]Error:[/red bold] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")
