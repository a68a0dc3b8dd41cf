"""Command-line interface for freecost sync.

Built with Typer for commands and Rich for output. This module is the
composition root: it builds the remote client, storage, cursor store and
orchestrator and wires them together.
"""

import logging
import queue
import threading
from typing import Callable, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from .config import Config, get_config
from .db import get_db
from .db.schemas import SYNC_ORDER
from .sync import (
    CancellationToken,
    CursorStore,
    EventChannel,
    ObjectStorage,
    RemoteClient,
    RemoteConfigError,
    SyncCompleted,
    SyncError,
    SyncOrchestrator,
    SyncProgress,
    SyncResult,
)
from .utils import format_timestamp

# Create the main app
app = typer.Typer(
    name="freecost",
    help="Sync your kitchen costing data with the cloud.",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def format_size(num_bytes: int) -> str:
    """Human-readable byte count."""
    if num_bytes < 1024:
        return f"{num_bytes} B"
    size = num_bytes / 1024
    for unit in ("KB", "MB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def connect_remote(config: Config) -> RemoteClient:
    """Build and sign in the remote client, exiting on failure."""
    try:
        remote = RemoteClient()
    except RemoteConfigError as e:
        print_error(f"Remote store not configured: {e}")
        raise typer.Exit(1)

    if not config.has_credentials():
        print_error("No credentials. Set SUPABASE_ACCESS_TOKEN or SUPABASE_EMAIL/SUPABASE_PASSWORD.")
        remote.disconnect()
        raise typer.Exit(1)

    try:
        remote.connect(
            email=config.supabase_email,
            password=config.supabase_password,
            access_token=config.supabase_access_token,
        )
    except SyncError as e:
        print_error(f"Sign-in failed: {e}")
        remote.disconnect()
        raise typer.Exit(1)
    return remote


def build_orchestrator(config: Config, remote: RemoteClient) -> SyncOrchestrator:
    """Wire the sync engine for the configured data directory."""
    storage = ObjectStorage(remote, bucket=config.storage_bucket, cache_dir=config.photo_cache_dir)
    return SyncOrchestrator(
        db=get_db(str(config.db_path)),
        remote=remote,
        storage=storage,
        cursor_store=CursorStore(config.cursor_path),
        events=EventChannel(),
        photo_dir=config.photo_dir,
    )


def run_with_progress(
    orchestrator: SyncOrchestrator,
    run: Callable[[CancellationToken], SyncResult],
) -> SyncResult:
    """Run a round on a worker thread while rendering its progress events.

    Ctrl+C cancels the round at its next checkpoint.
    """
    cancel = CancellationToken()
    messages = orchestrator.events.subscribe()
    outcome: dict[str, SyncResult] = {}

    worker = threading.Thread(target=lambda: outcome.setdefault("result", run(cancel)), daemon=True)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting...", total=100)
        worker.start()
        while True:
            try:
                message = messages.get(timeout=0.1)
            except queue.Empty:
                if not worker.is_alive():
                    break
                continue
            except KeyboardInterrupt:
                cancel.cancel()
                progress.update(task, description="Cancelling...")
                continue

            if isinstance(message, SyncProgress):
                progress.update(task, description=message.stage, completed=message.percent)
            elif isinstance(message, SyncCompleted):
                progress.update(task, completed=100)
                break

    worker.join()
    orchestrator.events.unsubscribe(messages)
    return outcome["result"]


def print_result(result: SyncResult) -> None:
    """Print a sync summary."""
    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Uploaded", str(result.uploaded))
    table.add_row("Downloaded", str(result.downloaded))
    if result.assets_migrated:
        table.add_row("Photos uploaded", str(result.assets_migrated))
    if result.conflicts:
        table.add_row("Changed on both sides", str(result.conflicts))
    if result.skipped:
        table.add_row("Skipped", str(result.skipped))
    table.add_row("Duration", f"{result.duration.total_seconds():.1f}s")

    title = f"Sync Complete ({result.mode.value})" if result.success else "Sync Failed"
    console.print(Panel(table, title=title, border_style="green" if result.success else "red"))

    if result.errors:
        print_warning(f"{len(result.errors)} problems occurred")
        for item_id, error in result.errors[:5]:
            console.print(f"  [red]- {item_id}: {error}[/red]")


# ============================================================================
# Global Options
# ============================================================================


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Sync your kitchen costing data with the cloud."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


# ============================================================================
# Sync Commands
# ============================================================================


@app.command()
def sync(
    push_only: bool = typer.Option(False, "--push", help="Only upload local changes"),
    pull_only: bool = typer.Option(False, "--pull", help="Only download remote changes"),
    force_upload: bool = typer.Option(
        False, "--force-upload", help="Upload every local record regardless of the last sync"
    ),
    location: Optional[str] = typer.Option(
        None, "--location", "-l", help="Location ID (defaults to FREECOST_LOCATION_ID)"
    ),
) -> None:
    """Sync the local database with the remote store."""
    if sum([push_only, pull_only, force_upload]) > 1:
        print_error("Use only one of --push, --pull and --force-upload.")
        raise typer.Exit(1)

    config = get_config()
    location_id = location or config.location_id
    if not location_id:
        print_error("No location selected. Pass --location or set FREECOST_LOCATION_ID.")
        raise typer.Exit(1)

    with connect_remote(config) as remote:
        orchestrator = build_orchestrator(config, remote)

        if force_upload:
            console.print("[bold]Uploading all local records...[/bold]")
            action = orchestrator.force_upload_all
        elif push_only:
            console.print("[bold]Uploading local changes...[/bold]")
            action = orchestrator.push_only
        elif pull_only:
            console.print("[bold]Downloading remote changes...[/bold]")
            action = orchestrator.pull_only
        else:
            action = orchestrator.full_sync

        result = run_with_progress(orchestrator, lambda cancel: action(location_id, cancel=cancel))

    print_result(result)
    if not result.success:
        print_error(result.error or "Sync failed")
        raise typer.Exit(1)
    console.print("\n[green]✓ Sync successful![/green]")


@app.command()
def status(
    location: Optional[str] = typer.Option(
        None, "--location", "-l", help="Location ID (defaults to FREECOST_LOCATION_ID)"
    ),
) -> None:
    """Show sync configuration and pending local changes."""
    config = get_config()
    db = get_db(str(config.db_path))
    cursor = CursorStore(config.cursor_path).load()
    location_id = location or config.location_id

    info = Table(show_header=False, box=None)
    info.add_column("Setting", style="cyan")
    info.add_column("Value")
    info.add_row("Remote", config.supabase_url or "[red]not configured[/red]")
    info.add_row("Location", location_id or "[yellow]none selected[/yellow]")
    info.add_row("Last sync", format_timestamp(cursor) if cursor else "never")
    info.add_row("Database", str(config.db_path))
    console.print(Panel(info, title="Sync Status"))

    if not location_id:
        return

    table = Table(title="Local Records", show_header=True, header_style="bold magenta")
    table.add_column("Kind", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Changed since last sync", justify="right", style="yellow")
    for kind in SYNC_ORDER:
        total = db.count_records(kind, location_id)
        pending = len(db.list_records(kind, location_id, modified_after=cursor))
        table.add_row(kind.label.capitalize(), str(total), str(pending))
    console.print(table)


@app.command()
def locations() -> None:
    """Download the locations you can access and list them."""
    config = get_config()

    with connect_remote(config) as remote:
        orchestrator = build_orchestrator(config, remote)
        result = orchestrator.sync_locations()

    if not result.success:
        print_error(result.error or "Could not fetch locations")
        raise typer.Exit(1)

    rows = get_db(str(config.db_path)).get_all_locations()
    if not rows:
        print_info("No locations found.")
        return

    table = Table(title="Locations", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Address")
    table.add_column("Active", justify="center")
    for row in rows:
        marker = " [green](selected)[/green]" if row.id == config.location_id else ""
        table.add_row(row.id, f"{row.name}{marker}", row.address or "-", "✓" if row.is_active else "")
    console.print(table)


@app.command("reset-cursor")
def reset_cursor(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Forget the last sync time so the next sync compares every record."""
    config = get_config()
    store = CursorStore(config.cursor_path)

    if store.load() is None:
        print_info("No sync time recorded.")
        return

    if not yes and not typer.confirm("Next sync will re-check every record. Continue?"):
        raise typer.Exit(0)

    store.clear()
    print_success("Sync time cleared.")


@app.command()
def cache(
    clear: bool = typer.Option(False, "--clear", help="Delete cached photos"),
) -> None:
    """Show or clear the downloaded photo cache."""
    config = get_config()
    try:
        remote = RemoteClient()
    except RemoteConfigError as e:
        print_error(f"Remote store not configured: {e}")
        raise typer.Exit(1)

    with remote:
        storage = ObjectStorage(remote, bucket=config.storage_bucket, cache_dir=config.photo_cache_dir)
        if clear:
            storage.clear_cache()
            print_success("Photo cache cleared.")
            return
        console.print(f"Photo cache: {format_size(storage.cache_size())} in {config.photo_cache_dir}")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"freecost version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
