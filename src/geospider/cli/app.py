"""
Command line interface for geospider using Typer.

Commands:
  setup   Initial configuration (.env)
  start   Run collector and auto-sync in the foreground
  sync    Manual sync of buffered samples
  info    Show configuration and offline store statistics
  test    Read a few locations from the configured source
  export  Export stored samples as GeoJSON
  purge   Delete synced (and optionally old) samples
"""

import asyncio
import importlib.metadata
import json
import signal
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import click
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from geospider.collector.scheduler import CollectionScheduler
from geospider.config.settings import (
    LOCATION_SOURCES,
    AppConfig,
    RuntimeConfig,
    StorageConfig,
    load_config,
)
from geospider.errors import ConfigurationError, GeoSpiderError, ServiceUnavailable
from geospider.location.gateway import LocationGateway
from geospider.location.sources import build_location_source
from geospider.models import SyncOutcome
from geospider.storage.parquet_store import ParquetOfflineStore
from geospider.sync.connectivity import SocketConnectivityProbe
from geospider.sync.engine import SyncEngine
from geospider.sync.transport import build_transport
from geospider.utils.env import ensure_directories, parse_env_file, write_env_file
from geospider.utils.geojson import feature_collection
from geospider.utils.logging import setup_logging

app = typer.Typer(
    name="geospider",
    help="geospider - Location collector with offline buffering and batched sync",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

CONFIG_OPTION = typer.Option(
    None, "--config", "-c", help="YAML configuration file (default: environment and .env)"
)


def print_banner():
    """Print the geospider banner."""
    console.print("\n[bold cyan]geospider[/bold cyan] | Location Collector\n")


def _load_config_or_exit(config_file: Path | None) -> RuntimeConfig:
    """Load configuration; configuration errors end the command before anything starts."""
    try:
        return load_config(config_file)
    except ConfigurationError as e:
        console.print(f"[red]ERROR: {e}[/red]")
        console.print("Run [cyan]geospider setup[/cyan] or pass [cyan]--config[/cyan].\n")
        raise typer.Exit(1)


def _build_store(config: RuntimeConfig, logger=None) -> ParquetOfflineStore:
    return ParquetOfflineStore(config.store_path, compression=config.compression, logger=logger)


@app.command()
def setup(
    server_url: str | None = typer.Option(None, "--server-url", "-s", help="Sync endpoint URL"),
    interval: int | None = typer.Option(None, "--interval", help="Collection interval (s)"),
    batch_size: int | None = typer.Option(None, "--batch-size", help="Samples per sync batch"),
    retention_days: int | None = typer.Option(
        None, "--retention-days", help="Days samples are kept offline"
    ),
    location_source: str | None = typer.Option(
        None, "--location-source", help="Location source: simulated or gpsd"
    ),
    interactive: bool = typer.Option(
        True, "--interactive/--no-interactive", "-i", help="Interactive configuration"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing configuration"),
):
    """
    Setup and configure geospider.

    Creates a .env configuration file with endpoint and collection settings.
    """
    print_banner()
    console.print("[bold]Setup Configuration[/bold]\n")

    env_file = Path(".env")
    existing = parse_env_file(env_file)

    if existing and not force and not interactive:
        console.print(f"[yellow]Found existing configuration:[/yellow] {env_file.absolute()}")
        console.print("[dim]Non-interactive mode: keeping existing configuration[/dim]")
        ensure_directories(existing.get("GEOSPIDER_DATA_DIR", "data"), "logs")
        return

    if existing and not force:
        console.print(f"[yellow]Found existing configuration:[/yellow] {env_file.absolute()}")
        if not typer.confirm("Update it?", default=True):
            console.print("\n[green]Keeping existing configuration.[/green]\n")
            return

    def choose(key: str, given, prompt: str, default: str, **prompt_kwargs) -> str:
        current = existing.get(key, default)
        if given is not None:
            return str(given)
        if interactive:
            return str(typer.prompt(prompt, default=current, **prompt_kwargs))
        return current

    values = dict(existing)
    values["GEOSPIDER_SERVER_URL"] = choose(
        "GEOSPIDER_SERVER_URL", server_url, "Server URL", "https://api.example.com/locations"
    )
    values["GEOSPIDER_COLLECTION_INTERVAL_SECONDS"] = choose(
        "GEOSPIDER_COLLECTION_INTERVAL_SECONDS", interval, "Collection interval (seconds)", "60"
    )
    values["GEOSPIDER_SYNC_BATCH_SIZE"] = choose(
        "GEOSPIDER_SYNC_BATCH_SIZE", batch_size, "Sync batch size", "50"
    )
    values["GEOSPIDER_MAX_OFFLINE_STORAGE_DAYS"] = choose(
        "GEOSPIDER_MAX_OFFLINE_STORAGE_DAYS", retention_days, "Offline retention (days)", "7"
    )
    values["GEOSPIDER_LOCATION_SOURCE"] = choose(
        "GEOSPIDER_LOCATION_SOURCE",
        location_source,
        "Location source",
        "simulated",
        type=click.Choice(sorted(LOCATION_SOURCES), case_sensitive=False),
    ).lower()

    # Validate before writing anything
    try:
        RuntimeConfig(
            server_url=values["GEOSPIDER_SERVER_URL"],
            collection_interval_seconds=values["GEOSPIDER_COLLECTION_INTERVAL_SECONDS"],
            sync_batch_size=values["GEOSPIDER_SYNC_BATCH_SIZE"],
            max_offline_storage_days=values["GEOSPIDER_MAX_OFFLINE_STORAGE_DAYS"],
            location_source=values["GEOSPIDER_LOCATION_SOURCE"],
        )
    except ValidationError as e:
        console.print("[red]ERROR: Invalid configuration[/red]")
        for error in e.errors():
            console.print(f"  {'.'.join(str(p) for p in error['loc'])}: {error['msg']}")
        raise typer.Exit(1)

    write_env_file(env_file, values)
    console.print(f"\nConfiguration saved to [green]{env_file}[/green]")

    ensure_directories(values.get("GEOSPIDER_DATA_DIR", "data"), "logs")

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print("\nNext steps:")
    console.print("  1. Test the location source: [cyan]geospider test[/cyan]")
    console.print("  2. View info: [cyan]geospider info[/cyan]")
    console.print("  3. Start collecting: [cyan]geospider start[/cyan]\n")


@app.command()
def start(config_file: Path | None = CONFIG_OPTION):
    """
    Start the collector and auto-sync (foreground).

    Collects locations into the offline store and syncs them periodically.
    Ctrl+C stops collection and performs a final sync.
    """
    print_banner()
    config = _load_config_or_exit(config_file)
    app_config = AppConfig()

    ensure_directories(config.data_dir, app_config.log_dir)
    log_file = app_config.log_dir / "geospider.log"
    logger = setup_logging(level=app_config.log_level, log_file=log_file)

    console.print(f"Endpoint: [cyan]{config.server_url}[/cyan]")
    console.print(f"Store: [cyan]{config.store_path}[/cyan]")
    console.print(f"Logs: [cyan]{log_file}[/cyan]")
    console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

    try:
        asyncio.run(_run_foreground(config, logger))
    except ServiceUnavailable as e:
        console.print(f"[red]ERROR: {e}[/red]\n")
        sys.exit(1)
    except ConfigurationError as e:
        console.print(f"[red]ERROR: {e}[/red]\n")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped by user[/yellow]\n")


async def _run_foreground(config: RuntimeConfig, logger) -> None:
    store = _build_store(config, logger)
    gateway = LocationGateway(build_location_source(config, logger), logger)
    if not await gateway.request_access():
        raise ServiceUnavailable("Location access was denied")

    scheduler = CollectionScheduler(gateway, store, config, logger)
    probe = SocketConnectivityProbe(config.probe_host, config.probe_port)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # No signal handlers on this platform; Ctrl+C raises KeyboardInterrupt
            pass

    async with build_transport(config, StorageConfig(), logger) as transport:
        engine = SyncEngine(store, transport, probe, config, logger)
        await scheduler.start()
        sync_task = asyncio.create_task(
            engine.run_periodic(config.sync_interval_seconds, stop_event)
        )
        try:
            await stop_event.wait()
        finally:
            stop_event.set()
            logger.info("Stopping collection...")
            await scheduler.stop()
            await sync_task

            logger.info("Performing final sync...")
            outcome = await engine.sync_once()
            _print_outcome(outcome)


@app.command()
def sync(config_file: Path | None = CONFIG_OPTION):
    """
    Manually sync buffered samples to the server.

    Sends unsynced samples in timestamp order, one batch at a time.
    """
    print_banner()
    console.print("[bold]Syncing...[/bold]\n")

    config = _load_config_or_exit(config_file)
    app_config = AppConfig()
    logger = setup_logging(level=app_config.log_level)

    try:
        outcome = asyncio.run(_sync_once(config, logger))
    except ConfigurationError as e:
        console.print(f"[red]ERROR: {e}[/red]\n")
        sys.exit(1)

    _print_outcome(outcome)
    if not outcome.success:
        sys.exit(1)


async def _sync_once(config: RuntimeConfig, logger) -> SyncOutcome:
    store = _build_store(config, logger)
    probe = SocketConnectivityProbe(config.probe_host, config.probe_port)
    async with build_transport(config, StorageConfig(), logger) as transport:
        engine = SyncEngine(store, transport, probe, config, logger)
        return await engine.sync_once()


def _print_outcome(outcome: SyncOutcome) -> None:
    if not outcome.success:
        console.print(f"[red]Sync failed: {outcome.error}[/red]")
        console.print(f"[dim]{outcome.synced_count} samples synced before the failure[/dim]\n")
    elif outcome.synced_count > 0:
        console.print(f"[green]Synced {outcome.synced_count} samples[/green]\n")
    else:
        console.print("[dim]No samples synced (offline or nothing pending)[/dim]\n")


@app.command()
def info(config_file: Path | None = CONFIG_OPTION):
    """
    Show configuration and offline store statistics.
    """
    print_banner()

    try:
        package_version = importlib.metadata.version("geospider")
    except importlib.metadata.PackageNotFoundError:
        package_version = "dev"
    console.print(f"Version: [green]{package_version}[/green]\n")

    config = _load_config_or_exit(config_file)

    table = Table(title="Configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Server URL", config.server_url)
    table.add_row("Collection interval", f"{config.collection_interval_seconds}s")
    table.add_row("Location source", config.location_source)
    table.add_row("Sync batch size", str(config.sync_batch_size))
    table.add_row("Sync interval", f"{config.sync_interval_seconds}s")
    table.add_row("Offline retention", f"{config.max_offline_storage_days} days")
    table.add_row("Store", str(config.store_path))
    console.print(table)

    console.print("\n[bold]Data:[/bold]")
    if not config.store_path.exists():
        console.print("  [dim]No data collected yet[/dim]\n")
        return

    try:
        total, unsynced = asyncio.run(_store_counts(config))
    except GeoSpiderError as e:
        console.print(f"  [red]Store unreadable: {e}[/red]\n")
        sys.exit(1)

    size_kb = config.store_path.stat().st_size / 1024
    console.print(f"  Stored samples: [green]{total}[/green]")
    console.print(f"  Unsynced samples: [yellow]{unsynced}[/yellow]")
    console.print(f"  File size: [green]{size_kb:.1f} KB[/green]\n")


async def _store_counts(config: RuntimeConfig) -> tuple[int, int]:
    store = _build_store(config)
    return await store.count(), await store.count_unsynced()


@app.command()
def test(
    readings: int = typer.Option(5, "--readings", "-r", help="Number of readings"),
    interval: float = typer.Option(2.0, "--interval", "-i", help="Seconds between readings"),
    config_file: Path | None = CONFIG_OPTION,
):
    """
    Test the location source with a live readings table.

    Nothing is stored.
    """
    print_banner()
    console.print("[bold]Testing Location Source[/bold]\n")

    config = _load_config_or_exit(config_file)
    logger = setup_logging(level=AppConfig().log_level)
    asyncio.run(_test_source(config, logger, readings, interval))

    console.print("\n[bold green]Test complete![/bold green]")
    console.print("\nNext: [cyan]geospider start[/cyan] for continuous collection\n")


async def _test_source(config: RuntimeConfig, logger, readings: int, interval: float) -> None:
    gateway = LocationGateway(build_location_source(config, logger), logger)

    status = "[green]enabled[/green]" if gateway.is_enabled() else "[red]disabled[/red]"
    console.print(f"Source: [cyan]{config.location_source}[/cyan] ({status})\n")

    table = Table(title="Readings", show_header=True)
    for column in ("#", "Latitude", "Longitude", "Accuracy m", "Speed m/s", "Bearing", "Time"):
        table.add_column(column, justify="center" if column == "#" else "right")

    for reading_num in range(1, readings + 1):
        try:
            sample = await gateway.get_current_reading()
            sample.validate()
            table.add_row(
                str(reading_num),
                f"{sample.latitude:.6f}",
                f"{sample.longitude:.6f}",
                _fmt(sample.accuracy),
                _fmt(sample.speed),
                _fmt(sample.bearing, 0),
                sample.timestamp.strftime("%H:%M:%S"),
            )
        except GeoSpiderError as e:
            table.add_row(str(reading_num), "-", "-", "-", "-", "-", f"[red]{e}[/red]")

        if reading_num < readings:
            await asyncio.sleep(interval)

    console.print(table)


def _fmt(value: float | None, digits: int = 1) -> str:
    return "-" if value is None else f"{value:.{digits}f}"


@app.command()
def export(
    output: Path | None = typer.Option(None, "--output", "-o", help="GeoJSON output file"),
    unsynced_only: bool = typer.Option(
        False, "--unsynced-only", help="Only export samples not yet synced"
    ),
    config_file: Path | None = CONFIG_OPTION,
):
    """
    Export stored samples as a GeoJSON FeatureCollection.

    Writes to stdout unless --output is given.
    """
    config = _load_config_or_exit(config_file)

    try:
        collection = asyncio.run(_collect_features(config, unsynced_only))
    except GeoSpiderError as e:
        console.print(f"[red]ERROR: {e}[/red]\n")
        sys.exit(1)

    document = json.dumps(collection, indent=2)
    if output is None:
        typer.echo(document)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(document + "\n")
    console.print(
        f"Exported [green]{len(collection['features'])}[/green] samples to [cyan]{output}[/cyan]"
    )


async def _collect_features(config: RuntimeConfig, unsynced_only: bool) -> dict:
    store = _build_store(config)
    records = await (store.list_unsynced() if unsynced_only else store.list_all())
    return feature_collection(record.sample for record in records)


@app.command()
def purge(
    older_than_days: int | None = typer.Option(
        None, "--older-than-days", help="Also delete samples older than this many days"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    config_file: Path | None = CONFIG_OPTION,
):
    """
    Delete synced samples from the offline store.

    With --older-than-days, samples older than the cutoff are deleted too,
    synced or not.
    """
    print_banner()
    config = _load_config_or_exit(config_file)

    if older_than_days is not None and older_than_days <= 0:
        console.print("[red]ERROR: --older-than-days must be positive[/red]\n")
        raise typer.Exit(1)

    if not yes and not typer.confirm("Delete synced samples from the offline store?"):
        console.print("[dim]Nothing deleted[/dim]\n")
        return

    try:
        synced, old = asyncio.run(_purge(config, older_than_days))
    except GeoSpiderError as e:
        console.print(f"[red]ERROR: {e}[/red]\n")
        sys.exit(1)

    console.print(f"Deleted [green]{synced}[/green] synced samples")
    if older_than_days is not None:
        console.print(f"Deleted [green]{old}[/green] samples older than {older_than_days} days")
    console.print()


async def _purge(config: RuntimeConfig, older_than_days: int | None) -> tuple[int, int]:
    store = _build_store(config)
    synced = await store.delete_synced()
    old = 0
    if older_than_days is not None:
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        old = await store.delete_older_than(cutoff)
    return synced, old


def main():
    app()


if __name__ == "__main__":
    main()
