"""Rich-based cache listener for terminal output."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from fhircache.core.ports import NullCacheListener


if TYPE_CHECKING:
    from types import TracebackType

    from rich.console import Console


class RichCacheListener(NullCacheListener):
    """Cache listener that renders one progress bar per package download.

    Displays download progress bars with speed and ETA. Events may arrive
    from several worker threads at once. Cache hits are shown as finished
    rows.

    Example:
        with RichCacheListener() as listener:
            cache.add_listener(listener)
            Downloader(cache).start()
    """

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the progress display.

        Args:
            console: Console to render to. Defaults to rich's global console.
        """
        self._progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=console,
        )
        self._tasks: dict[tuple[str, str, str], TaskID] = {}
        self._lock = threading.Lock()
        self._started = False

    @property
    def progress(self) -> Progress:
        """The underlying rich Progress."""
        return self._progress

    def __enter__(self) -> RichCacheListener:
        """Start the progress display."""
        self._start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Stop the progress display."""
        with self._lock:
            self._progress.stop()
            self._started = False

    def before_fetch(self, registry: str, name: str, version: str) -> None:
        self._start()
        task_id = self._progress.add_task(f"{name}@{version}", total=None)
        with self._lock:
            self._tasks[(registry, name, version)] = task_id

    def on_fetch(
        self, registry: str, name: str, version: str, total: int | None
    ) -> None:
        task_id = self._task(registry, name, version)
        if task_id is not None:
            self._progress.update(task_id, total=total)

    def on_fetch_write(
        self, registry: str, name: str, version: str, chunk: bytes
    ) -> None:
        task_id = self._task(registry, name, version)
        if task_id is not None:
            self._progress.advance(task_id, len(chunk))

    def after_fetch(
        self, registry: str, name: str, version: str, error: BaseException | None
    ) -> None:
        task_id = self._task(registry, name, version)
        if task_id is None:
            return
        if error is not None:
            self._progress.update(task_id, description=f"[red]{name}@{version} failed")
            self._progress.stop_task(task_id)
            return
        task = self._progress.tasks[task_id]
        # Servers that omit Content-Length leave total unknown until the end
        self._progress.update(task_id, total=task.completed, completed=task.completed)

    def on_cache_hit(self, registry: str, name: str, version: str) -> None:
        self._start()
        self._progress.add_task(
            f"{name}@{version} [dim](cached)", total=0, completed=0
        )

    def _task(self, registry: str, name: str, version: str) -> TaskID | None:
        with self._lock:
            return self._tasks.get((registry, name, version))

    def _start(self) -> None:
        # Auto-start if not in context manager
        with self._lock:
            if not self._started:
                self._progress.start()
                self._started = True
