"""Rich progress display for downloads driven from the CLI."""

from __future__ import annotations

import time

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)

from imgcache.types import CacheState, CacheStatus, ProgressInfo

STATUS_LABELS = {
    CacheStatus.IDLE: "[dim]idle[/dim]",
    CacheStatus.LOCAL: "[blue]local[/blue]",
    CacheStatus.CHECKING: "[yellow]checking cache[/yellow]",
    CacheStatus.DOWNLOADING: "[yellow]downloading[/yellow]",
    CacheStatus.CACHED: "[green]cached[/green]",
    CacheStatus.OFFLINE: "[magenta]offline[/magenta]",
    CacheStatus.UNCACHEABLE: "[red]uncacheable[/red]",
}


def format_duration(seconds: float) -> str:
    """Format a duration as ``12s`` or ``3m 04s``."""
    if seconds < 60:
        return f"{seconds:.0f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {int(seconds % 60):02d}s"


class DownloadProgress:
    """Live progress bar fed by controller state and progress callbacks."""

    def __init__(self, console: Console, label: str) -> None:
        """Initialize progress display.

        Args:
            console: Rich console to write to.
            label: Text shown next to the bar (usually the URI).
        """
        self.console = console
        self.label = label
        self.started_at = time.time()
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        )
        self._task: TaskID | None = None

    def __enter__(self) -> DownloadProgress:
        self._progress.start()
        self._task = self._progress.add_task(self.label, total=None)
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._progress.stop()

    @property
    def elapsed(self) -> str:
        return format_duration(time.time() - self.started_at)

    def on_state(self, state: CacheState) -> None:
        """Listener for controller state changes."""
        if self._task is None:
            return
        label = STATUS_LABELS.get(state.status, state.status.value)
        self._progress.update(self._task, description=f"{label} {self.label}")

    def on_progress(self, info: ProgressInfo) -> None:
        """Listener for download progress."""
        if self._task is None:
            return
        self._progress.update(
            self._task,
            completed=info.bytes_written,
            total=info.content_length,
        )
