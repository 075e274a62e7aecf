"""Command-line interface for the LifeLog sync client."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional
from uuid import UUID

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from lifelog_sync import __version__
from lifelog_sync.api import LifeLogClient, Location, LogData, LogEntry, Metric
from lifelog_sync.config import Config
from lifelog_sync.errors import LifeLogError, NotConfiguredError
from lifelog_sync.store import LocalStore
from lifelog_sync.sync import SyncEngine, SyncResult
from lifelog_sync.utils import get_logger, setup_logging
from lifelog_sync.utils.timestamps import parse_timestamp

app = typer.Typer(help="Log life events locally and synchronize them with the LifeLog API")
console = Console()
logger = get_logger(__name__)

ConfigDirOption = typer.Option(
    None,
    "--config-dir",
    help="Configuration directory. Defaults to ~/.lifelog-sync/",
)


def _parse_datetime(value: str | None, option: str) -> datetime | None:
    if value is None:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        console.print(f"[red]Invalid {option}. Use ISO 8601, e.g. 2024-01-31T08:30:00Z[/red]")
        raise typer.Exit(code=1)


def _open(config_dir: Path | None, verbose: bool = False) -> tuple[Config, LocalStore]:
    setup_logging(
        log_level=logging.DEBUG if verbose else logging.INFO,
        config_dir=config_dir,
    )
    config = Config(config_dir)
    return config, LocalStore(config.database_path)


def _print_result(result: SyncResult) -> None:
    if result.skipped_reason == "not_configured":
        console.print("[yellow]API not configured, nothing synced.[/yellow]")
        console.print("Run: lifelog-sync configure")
        return
    if result.skipped_reason == "in_progress":
        console.print("[yellow]A sync is already in progress.[/yellow]")
        return

    table = Table(title="Sync Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="magenta")
    table.add_row("Uploaded", str(result.uploaded))
    table.add_row("Batches", str(result.batches))
    table.add_row("Downloaded", str(result.downloaded))
    table.add_row("New", str(result.inserted))
    table.add_row("Updated", str(result.updated))
    table.add_row("Skipped (deleted locally)", str(result.skipped))
    console.print(table)


def _run_sync(config_dir: Path | None, verbose: bool, action: str, **kwargs) -> None:
    config, store = _open(config_dir, verbose)
    logger.info(f"LifeLog Sync v{__version__}")

    try:
        engine = SyncEngine.from_config(config, store)
        try:
            if action == "push":
                result = engine.upload_unsynced()
            elif action == "pull":
                result = engine.download_entries(**kwargs)
            else:
                result = engine.full_sync()
        finally:
            if engine.client is not None:
                engine.client.close()
        _print_result(result)
    except LifeLogError as e:
        logger.error(f"Sync failed: {e}", exc_info=verbose)
        console.print(f"[red]Error: {e}[/red]")
        console.print(f"[dim]{e.recovery_suggestion}[/dim]")
        remaining = store.count_unsynced()
        if remaining:
            console.print(f"[yellow]{remaining} entries still waiting for upload[/yellow]")
        raise typer.Exit(code=1)
    finally:
        store.close()


VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable verbose logging.")


@app.command()
def sync(
    verbose: bool = VerboseOption,
    config_dir: Optional[Path] = ConfigDirOption,
) -> None:
    """Upload unsynced entries, then download new ones."""
    _run_sync(config_dir, verbose, "sync")


@app.command()
def push(
    verbose: bool = VerboseOption,
    config_dir: Optional[Path] = ConfigDirOption,
) -> None:
    """Upload unsynced entries only."""
    _run_sync(config_dir, verbose, "push")


@app.command()
def pull(
    since: Optional[str] = typer.Option(
        None,
        "--since",
        help="Only entries that occurred at or after this time (ISO 8601). "
        "Defaults to the last completed download.",
    ),
    category: Optional[str] = typer.Option(None, "--category", help="Only this category."),
    everything: bool = typer.Option(False, "--all", help="Download every entry."),
    verbose: bool = VerboseOption,
    config_dir: Optional[Path] = ConfigDirOption,
) -> None:
    """Download entries from the API only."""
    _run_sync(
        config_dir,
        verbose,
        "pull",
        since=_parse_datetime(since, "--since"),
        category=category,
        everything=everything,
    )


@app.command()
def log(
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Free-form text."),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Category, e.g. mood."),
    metric: Optional[str] = typer.Option(None, "--metric", "-m", help="Measurement as NAME=VALUE."),
    unit: Optional[str] = typer.Option(None, "--unit", help="Unit of the measurement."),
    scale_min: Optional[float] = typer.Option(None, "--scale-min", help="Lower scale bound."),
    scale_max: Optional[float] = typer.Option(None, "--scale-max", help="Upper scale bound."),
    lat: Optional[float] = typer.Option(None, "--lat", help="Latitude."),
    lon: Optional[float] = typer.Option(None, "--lon", help="Longitude."),
    place: Optional[str] = typer.Option(None, "--place", help="Place name."),
    tags: Optional[list[str]] = typer.Option(None, "--tag", help="Tag (repeatable)."),
    at: Optional[str] = typer.Option(None, "--at", help="When it happened (ISO 8601). Defaults to now."),
    config_dir: Optional[Path] = ConfigDirOption,
) -> None:
    """Record a new entry locally; it is uploaded on the next sync."""
    config, store = _open(config_dir)

    try:
        measurement = None
        if metric:
            name, sep, value = metric.partition("=")
            if not sep:
                console.print("[red]Use --metric NAME=VALUE, e.g. --metric mood=7[/red]")
                raise typer.Exit(code=1)
            measurement = Metric(
                name=name.strip(),
                value=float(value),
                unit=unit,
                scale_min=scale_min,
                scale_max=scale_max,
            )

        location = None
        if lat is not None or lon is not None:
            if lat is None or lon is None:
                console.print("[red]--lat and --lon must be given together[/red]")
                raise typer.Exit(code=1)
            location = Location(latitude=lat, longitude=lon, place_name=place)

        data = LogData(text=text, metric=measurement, location=location, tags=tags or None)
        if data.is_empty:
            console.print("[red]Nothing to log: give --text, --metric, --lat/--lon or --tag[/red]")
            raise typer.Exit(code=1)

        entry = LogEntry.create(
            source=config.source,
            device_id=config.device_id,
            data=data,
            category=category,
            occurred_at=_parse_datetime(at, "--at"),
        )
        store.add(entry)
        console.print(f"[green]✓ Logged entry {entry.id}[/green]")
    except (ValueError, ValidationError) as e:
        console.print(f"[red]Invalid entry: {e}[/red]")
        raise typer.Exit(code=1)
    finally:
        store.close()


@app.command()
def entries(
    unsynced: bool = typer.Option(False, "--unsynced", help="Only entries waiting for upload."),
    category: Optional[str] = typer.Option(None, "--category", help="Filter by category."),
    source: Optional[str] = typer.Option(None, "--source", help="Filter by source device."),
    limit: int = typer.Option(20, "--limit", help="Maximum entries to show."),
    config_dir: Optional[Path] = ConfigDirOption,
) -> None:
    """List local entries, newest first."""
    _, store = _open(config_dir)
    try:
        records = store.query(
            synced=False if unsynced else None,
            category=category,
            source=source,
            limit=limit,
        )
    finally:
        store.close()

    if not records:
        console.print("[yellow]No entries.[/yellow]")
        return

    table = Table(title="Entries")
    table.add_column("When", style="cyan")
    table.add_column("Category", style="magenta")
    table.add_column("Entry")
    table.add_column("Source")
    table.add_column("Synced")
    table.add_column("ID", style="dim")

    for record in records:
        entry = record.entry
        parts = []
        if entry.data.metric:
            parts.append(f"{entry.data.metric.name}={entry.data.metric.value:g}")
        if entry.data.text:
            parts.append(entry.data.text)
        if entry.data.location:
            parts.append(entry.data.location.place_name or "📍")
        if entry.data.tags:
            parts.append(" ".join(f"#{tag}" for tag in entry.data.tags))
        table.add_row(
            entry.occurred_at.strftime("%Y-%m-%d %H:%M"),
            entry.category or "-",
            " · ".join(parts),
            entry.source.value,
            "[green]✓[/green]" if record.synced else "[yellow]✗[/yellow]",
            str(entry.id)[:8],
        )

    console.print(table)


@app.command()
def delete(
    entry_id: str = typer.Argument(..., help="Entry ID."),
    config_dir: Optional[Path] = ConfigDirOption,
) -> None:
    """Delete an entry on this device (the server copy is kept)."""
    _, store = _open(config_dir)
    try:
        try:
            uid = UUID(entry_id)
        except ValueError:
            console.print(f"[red]Not an entry ID: {entry_id}[/red]")
            raise typer.Exit(code=1)
        if store.delete(uid):
            console.print(f"[green]✓ Deleted {uid}[/green]")
        else:
            console.print(f"[yellow]No entry {uid}[/yellow]")
    finally:
        store.close()


@app.command()
def configure(
    config_dir: Optional[Path] = ConfigDirOption,
) -> None:
    """Configure the API URL and key."""
    setup_logging(config_dir=config_dir)
    config = Config(config_dir)

    console.print("[bold cyan]LifeLog Sync Configuration[/bold cyan]")
    console.print()

    base_url = Prompt.ask("API base URL", default=config.base_url or None)
    api_key = Prompt.ask("API key", password=True)
    source = Prompt.ask(
        "Device type",
        choices=["cli", "mac", "iphone", "ipad", "watch", "drafts"],
        default=config.source,
    )

    config.update_settings(base_url=base_url, source=source)
    config.set_api_key(api_key)
    console.print("[green]✓ Configuration saved[/green]")

    console.print("[cyan]Testing connection...[/cyan]")
    try:
        api_config = config.api_configuration()
        if api_config is None:
            raise NotConfiguredError()
        with LifeLogClient(api_config) as client:
            client.fetch_entries(limit=1)
        console.print("[green]✓ Connected to LifeLog API[/green]")
    except LifeLogError as e:
        console.print(f"[red]✗ Failed to connect: {e}[/red]")
        console.print(f"[dim]{e.recovery_suggestion}[/dim]")
        raise typer.Exit(code=1)


@app.command()
def status(
    config_dir: Optional[Path] = ConfigDirOption,
) -> None:
    """Show configuration and sync status."""
    config, store = _open(config_dir)
    try:
        total = store.count()
        pending = store.count_unsynced()
    finally:
        store.close()

    last_sync = config.storage.get_last_sync_date()
    last_error = config.storage.get_last_error()

    table = Table(title="Status")
    table.add_column("Item", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("API URL", config.base_url or "[yellow]not configured[/yellow]")
    table.add_row("API key", "[green]✓ set[/green]" if config.api_key else "[yellow]✗ not set[/yellow]")
    table.add_row("Device", f"{config.source} ({config.device_id})")
    table.add_row("Entries", str(total))
    table.add_row("Waiting for upload", str(pending))
    table.add_row("Last sync", last_sync.strftime("%Y-%m-%d %H:%M:%S %Z") if last_sync else "never")
    table.add_row("Last error", f"[red]{last_error}[/red]" if last_error else "-")
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind."),
    port: int = typer.Option(8000, "--port", help="Port to listen on."),
    verbose: bool = VerboseOption,
    config_dir: Optional[Path] = ConfigDirOption,
) -> None:
    """Run the LifeLog API server.

    Reads LIFELOG_API_KEY, LIFELOG_DB_PATH and the other LIFELOG_* server
    settings. The sync client takes its key from LIFELOG_CLIENT_API_KEY.
    """
    import uvicorn

    from lifelog_sync.server import create_app

    log_file = setup_logging(
        log_level=logging.DEBUG if verbose else logging.INFO,
        config_dir=config_dir,
        log_name="lifelog-server",
    )
    console.print(f"[cyan]Serving on http://{host}:{port} (log: {log_file})[/cyan]")
    uvicorn.run(create_app(), host=host, port=port, log_config=None)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"LifeLog Sync v{__version__}")


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        console.print(f"[red]Unexpected error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
