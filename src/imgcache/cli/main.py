"""
CLI for the image cache.

Commands:
    imgcache fetch URI - Resolve a URI through the cache, downloading on a miss
    imgcache key URI - Show the cache key and target path for a URI
    imgcache config - Show current configuration
    imgcache version - Print version
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from imgcache import __version__
from imgcache.cache.keys import cache_path_for, key_for_request
from imgcache.cache.store import CacheStore
from imgcache.cli.progress import STATUS_LABELS, DownloadProgress
from imgcache.config import Settings, clear_settings_cache, get_settings
from imgcache.controller import ResourceCacheController
from imgcache.exceptions import InvalidRequestError
from imgcache.logging import setup_logging
from imgcache.network.connectivity import ConnectivityMonitor, ConnectivityProbe
from imgcache.types import CacheState, CacheStatus, ResourceRequest

app = typer.Typer(
    name="imgcache",
    help="Image cache - serve remote images from local disk",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

QueryParamOption = Annotated[
    Optional[list[str]],
    typer.Option(
        "--query-param",
        "-p",
        help="Query parameter that takes part in the cache key (repeatable)",
    ),
]
AllQueryOption = Annotated[
    bool,
    typer.Option("--all-query", "-a", help="Use the whole query string in the cache key"),
]
CacheRootOption = Annotated[
    Optional[Path],
    typer.Option("--cache-root", "-c", help="Cache root directory"),
]


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _load_settings(cache_root: Path | None) -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'imgcache config' to see what's wrong."
        )
        raise typer.Exit(1)
    if cache_root is not None:
        settings = settings.model_copy(update={"CACHE_ROOT": cache_root.expanduser()})
    return settings


def _build_request(
    uri: str,
    query_param: list[str] | None,
    all_query: bool,
    background: bool = False,
) -> ResourceRequest:
    if query_param and all_query:
        error_console.print("[red]Error:[/red] --query-param and --all-query are exclusive.")
        raise typer.Exit(2)

    policy: bool | list[str] = list(query_param) if query_param else all_query
    try:
        return ResourceRequest.create(
            uri,
            use_query_params_in_cache_key=policy,
            download_in_background=background,
        )
    except InvalidRequestError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)


async def _fetch(
    request: ResourceRequest,
    settings: Settings,
    offline: bool,
    probe: bool,
) -> tuple[CacheState, str]:
    monitor = ConnectivityMonitor(reachable=not offline)
    connectivity_probe: ConnectivityProbe | None = None
    if probe and not offline:
        connectivity_probe = ConnectivityProbe(
            monitor,
            settings.CONNECTIVITY_PROBE_URL,
            interval=settings.CONNECTIVITY_POLL_INTERVAL,
        )
        await connectivity_probe.check_once()

    try:
        with DownloadProgress(console, request.uri) as progress:
            async with ResourceCacheController(
                connectivity=monitor,
                check_network=True,
                settings=settings,
                on_progress=progress.on_progress,
            ) as controller:
                controller.add_listener(progress.on_state)
                state = await controller.resolve(request)
        return state, progress.elapsed
    finally:
        if connectivity_probe is not None:
            await connectivity_probe.stop()


@app.command()
def fetch(
    uri: Annotated[str, typer.Argument(help="Image URI to resolve")],
    query_param: QueryParamOption = None,
    all_query: AllQueryOption = False,
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Treat the network as unreachable (cache only)"),
    ] = False,
    probe: Annotated[
        bool,
        typer.Option("--probe/--no-probe", help="Probe connectivity before fetching"),
    ] = False,
    background: Annotated[
        bool,
        typer.Option("--background", help="Mark the download as a background transfer"),
    ] = False,
    cache_root: CacheRootOption = None,
) -> None:
    """Resolve a URI through the cache.

    Serves the cached file when present; otherwise downloads it (network
    permitting) and prints where it landed.
    """
    settings = _load_settings(cache_root)
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    request = _build_request(
        uri, query_param, all_query, background or settings.DOWNLOAD_IN_BACKGROUND
    )

    state, elapsed = asyncio.run(_fetch(request, settings, offline, probe))

    label = STATUS_LABELS.get(state.status, state.status.value)
    lines = [f"[bold]Status:[/bold] {label}"]
    if state.entry is not None:
        lines.append(f"[bold]Path:[/bold] {state.entry.file_path}")
        lines.append(f"[bold]Size:[/bold] {state.entry.size_bytes:,} bytes")
    if state.status == CacheStatus.LOCAL and request.local_path is not None:
        lines.append(f"[bold]Path:[/bold] {request.local_path}")
    if state.failure is not None:
        lines.append(f"[bold]Failure:[/bold] {state.failure.value}")
    if state.error:
        lines.append(f"[dim]{state.error}[/dim]")
    lines.append(f"[dim]Elapsed: {elapsed}[/dim]")

    border = "green" if state.status in (CacheStatus.CACHED, CacheStatus.LOCAL) else "red"
    console.print(Panel("\n".join(lines), title=f"[bold]{uri}[/bold]", border_style=border))

    if state.status not in (CacheStatus.CACHED, CacheStatus.LOCAL):
        raise typer.Exit(1)


@app.command()
def key(
    uri: Annotated[str, typer.Argument(help="Image URI")],
    query_param: QueryParamOption = None,
    all_query: AllQueryOption = False,
    cache_root: CacheRootOption = None,
) -> None:
    """Show the cache key and target path for a URI without touching the network."""
    settings = _load_settings(cache_root)
    request = _build_request(uri, query_param, all_query)
    if not request.is_remote:
        error_console.print("[red]Error:[/red] Local sources are not cached.")
        raise typer.Exit(2)

    cache_key = key_for_request(request)
    target = cache_path_for(settings.CACHE_ROOT, request)
    entry = asyncio.run(CacheStore(settings.CACHE_ROOT).lookup(request.namespace, cache_key))

    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Namespace", request.namespace)
    table.add_row("Key", cache_key)
    table.add_row("Path", str(target))
    table.add_row("Cached", f"yes ({entry.size_bytes:,} bytes)" if entry else "no")
    console.print(table)


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]Image Cache Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()
    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print()
        error_console.print("Check the IMGCACHE_* environment variables or your .env file.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for name, value in settings.display_values().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(name, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"imgcache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
