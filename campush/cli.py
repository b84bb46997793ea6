"""
Command-line interface for CamPush.

This module provides CLI commands for running the publisher, inspecting and
toggling configured sources, and editing persisted settings.
"""

import asyncio
import importlib
import json
import signal
import sys
import click
from pathlib import Path
from typing import Optional

from . import __version__
from .config import PublisherSettings, require_base_url
from .exceptions import CamPushError, ConfigError
from .logging_config import setup_logging
from .manager import Publisher
from .store import ConfigStore, StoreError
from .transport import TransportFactory

store_path_option = click.option(
    '--store-path',
    type=click.Path(dir_okay=False, path_type=Path),
    envvar='CAMPUSH_STORE_PATH',
    help='Custom path for the publisher config file'
)


def _settings(store_path: Optional[Path]) -> PublisherSettings:
    settings = PublisherSettings()
    if store_path is not None:
        settings.store_path = store_path
    return settings


def _apply_settings(store: ConfigStore, base_url: Optional[str] = None,
                    display_name: Optional[str] = None, auto_start: Optional[bool] = None):
    """
    Write setting overrides into the store.

    Raises:
        ConfigError: If the base URL is invalid
        StoreError: If the store cannot be read or written
    """
    snapshot = store.load()
    if base_url is not None:
        snapshot.base_url = require_base_url(base_url)
    if display_name is not None:
        snapshot.display_name = display_name.strip()
    if auto_start is not None:
        snapshot.auto_start = auto_start
    store.save(snapshot)
    return snapshot


def load_transport_factory(spec: str) -> TransportFactory:
    """
    Instantiate a transport factory from ``module:ClassName``.

    Raises:
        ConfigError: If the target cannot be imported or is not a factory
    """
    module_name, _, attr = spec.partition(':')
    if not module_name or not attr:
        raise ConfigError(f"transport must be 'module:Factory', got {spec!r}", config_key="transport")
    try:
        factory_class = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"cannot load transport {spec}: {e}", config_key="transport", cause=e)
    factory = factory_class()
    if not isinstance(factory, TransportFactory):
        raise ConfigError(f"{spec} is not a TransportFactory", config_key="transport")
    return factory


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    CamPush - publish local cameras and microphones to a streaming hub.

    Each enabled source is declared to the hub as its own stream and starts
    publishing when the hub asks for it.
    """
    pass


@cli.command()
@store_path_option
@click.option('--base-url', envvar='CAMPUSH_BASE_URL', help='Hub base URL')
@click.option('--display-name', envvar='CAMPUSH_DISPLAY_NAME', help='Publisher display name')
@click.option(
    '--transport',
    default='campush.transport:DryRunTransportFactory',
    show_default=True,
    envvar='CAMPUSH_TRANSPORT',
    help='Transport factory as module:Class'
)
@click.option(
    '--log-level',
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
    default='INFO',
    help='Console log level'
)
def run(store_path: Optional[Path], base_url: Optional[str], display_name: Optional[str],
        transport: str, log_level: str):
    """
    Run the publisher until interrupted.

    Registers with the hub, declares enabled sources and serves start/stop
    commands. Ctrl-C stops every stream and unregisters.
    """
    setup_logging(log_level=log_level)
    settings = _settings(store_path)
    try:
        store = ConfigStore(settings.store_path)
        _apply_settings(store, base_url=base_url, display_name=display_name)
        factory = load_transport_factory(transport)
        publisher = Publisher(settings, transport_factory=factory, store=store)
    except CamPushError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    publisher.on("on_publisher_status", lambda text: click.echo(f"[publisher] {text}"))
    publisher.on("on_stream_state", lambda sid, state: click.echo(f"[stream {sid}] {state.value}"))
    asyncio.run(_run_publisher(publisher))


async def _run_publisher(publisher: Publisher) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await publisher.bootstrap()
        if not publisher.publisher_active:
            await publisher.start_publisher()
        click.echo(publisher.summary)
        await stop.wait()
    finally:
        await publisher.shutdown()


@cli.command()
@store_path_option
@click.option('--refresh', is_flag=True, help='Re-enumerate capture devices before listing')
@click.option(
    '--format',
    'output_format',
    type=click.Choice(['table', 'json']),
    default='table',
    help='Output format for the source list'
)
def sources(store_path: Optional[Path], refresh: bool, output_format: str):
    """
    List configured sources with their stream assignment and status.
    """
    settings = _settings(store_path)
    try:
        if refresh:
            publisher = Publisher(settings)
            publisher.load_persisted()
            asyncio.run(publisher.reload_devices(force_sync=False))
            items = publisher.sources
        else:
            items = ConfigStore(settings.store_path).load().sources
    except CamPushError as e:
        click.echo(f"Error listing sources: {e}", err=True)
        sys.exit(1)

    if output_format == 'json':
        click.echo(json.dumps([s.to_dict() for s in items], indent=2, ensure_ascii=False))
        return

    if not items:
        click.echo("No sources configured. Run 'campush sources --refresh' to detect devices.")
        return

    click.echo(f"{'Source ID':<32} {'Kind':<6} {'On':<3} {'Stream':<12} {'Label':<30}")
    click.echo("-" * 86)
    for s in items:
        enabled = "●" if s.enabled else "○"
        click.echo(f"{s.id:<32} {s.kind.value:<6} {enabled:<3} {s.stream_id or '-':<12} {s.label:<30}")
    live = sum(1 for s in items if s.is_publishing)
    click.echo(f"\n{live} live / {len(items)} total")


def _set_enabled(store_path: Optional[Path], source_id: str, enabled: bool) -> None:
    store = ConfigStore(_settings(store_path).store_path)
    try:
        snapshot = store.load()
        source = next((s for s in snapshot.sources if s.id == source_id), None)
        if source is None:
            click.echo(f"Unknown source: {source_id}", err=True)
            sys.exit(1)
        source.enabled = enabled
        store.save(snapshot)
    except StoreError as e:
        click.echo(f"Error updating source: {e}", err=True)
        sys.exit(1)
    click.echo(f"{'Enabled' if enabled else 'Disabled'} {source_id}")


@cli.command()
@store_path_option
@click.argument('source_id')
def enable(store_path: Optional[Path], source_id: str):
    """Enable a source so it is declared to the hub."""
    _set_enabled(store_path, source_id, True)


@cli.command()
@store_path_option
@click.argument('source_id')
def disable(store_path: Optional[Path], source_id: str):
    """Disable a source; it is withdrawn from the hub on the next sync."""
    _set_enabled(store_path, source_id, False)


@cli.command()
@store_path_option
@click.option('--base-url', help='Hub base URL')
@click.option('--display-name', help='Publisher display name')
@click.option('--auto-start/--no-auto-start', default=None, help='Start publishing on launch')
def config(store_path: Optional[Path], base_url: Optional[str], display_name: Optional[str],
           auto_start: Optional[bool]):
    """Show or update persisted publisher settings."""
    store = ConfigStore(_settings(store_path).store_path)
    try:
        snapshot = _apply_settings(store, base_url, display_name, auto_start)
    except CamPushError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    defaults = PublisherSettings()
    click.echo(f"Base URL:     {snapshot.base_url or defaults.base_url}")
    click.echo(f"Display name: {snapshot.display_name or defaults.display_name}")
    click.echo(f"Auto start:   {'yes' if snapshot.auto_start else 'no'}")
    click.echo(f"Client ID:    {snapshot.client_id or '(not generated yet)'}")


@cli.command()
@store_path_option
def monitor(store_path: Optional[Path]):
    """
    Launch the terminal UI for the publisher.

    Shows every source with its stream and status and lets you toggle the
    publisher and individual sources.
    """
    try:
        from .tui import run_tui
    except ImportError as e:
        click.echo(f"TUI dependencies not available: {e}", err=True)
        click.echo("Install with: pip install 'campush[tui]'", err=True)
        sys.exit(1)
    run_tui(store_path=store_path)


def main(args=None):
    """Main entry point for the CLI."""
    cli(args)


if __name__ == '__main__':
    main()
