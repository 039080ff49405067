"""CLI progress display for deployments.

This module provides a Rich-based progress display that works with
the SyncProgressTracker from the sync engine.
"""

from typing import Awaitable, Callable, Optional, TypeVar

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .sync.progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker

T = TypeVar("T")


class SyncProgressDisplay:
    """Rich-based progress display for deployment rounds.

    One bar is shown per round; it counts processed resources and names
    the resource handled last.
    """

    def __init__(self) -> None:
        """Initialize the progress display."""
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None
        self.failed: list[str] = []

    def create_tracker(self) -> SyncProgressTracker:
        """Create a SyncProgressTracker that updates this display."""
        return SyncProgressTracker(callback=self._handle_event)

    def _handle_event(self, info: SyncProgressInfo) -> None:
        if self._progress is None or self._task is None:
            return

        if info.event == SyncProgressEvent.ROUND_START:
            self._progress.update(
                self._task,
                description=f"Round {info.round}",
                total=info.total,
                completed=0,
                current="",
            )

        elif info.event == SyncProgressEvent.RESOURCE_COMPLETE:
            self._progress.update(
                self._task,
                completed=info.processed,
                current=f"{info.action} {info.path}",
            )

        elif info.event == SyncProgressEvent.RESOURCE_FAILED:
            self.failed.append(f"{info.path}: {info.error}")
            self._progress.update(
                self._task,
                completed=info.processed,
                current=f"[red]{info.action} {info.path} failed[/red]",
            )

        elif info.event == SyncProgressEvent.CONVERGED:
            self._progress.update(
                self._task, description="Up to date", current=""
            )

    def __enter__(self) -> "SyncProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[cyan]{task.fields[current]}"),
            TimeElapsedColumn(),
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task("Comparing...", total=None, current="")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None


async def run_with_progress(
    operation: Callable[[SyncProgressTracker], Awaitable[T]],
    show_progress: bool = True,
) -> T:
    """Run a deployment with a Rich progress display.

    Args:
        operation: Coroutine function taking the tracker to report to
        show_progress: If False, run with a silent tracker

    Returns:
        Whatever ``operation`` returns
    """
    if not show_progress:
        return await operation(SyncProgressTracker())

    with SyncProgressDisplay() as display:
        return await operation(display.create_tracker())
