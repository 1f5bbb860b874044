"""Progress reporting for long-running copies and rewrites.

Reporters are pure observers: the orchestrator and the snapshot manager
push ``(current, total)`` updates, and nothing they do depends on the
reporter. :class:`NullProgress` is the headless variant.
"""

from __future__ import annotations

from typing import Optional, Protocol

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)


class ProgressReporter(Protocol):
    def start(self, total: int, label: str = "") -> None: ...

    def update(self, current: int) -> None: ...

    def advance(self, step: int = 1) -> None: ...

    def finish(self) -> None: ...


class NullProgress:
    """Reporter that renders nothing."""

    def start(self, total: int, label: str = "") -> None:
        pass

    def update(self, current: int) -> None:
        pass

    def advance(self, step: int = 1) -> None:
        pass

    def finish(self) -> None:
        pass


class TextProgress:
    """Single-line Rich progress bar with percentage, elapsed time and ETA.

    One bar is shown per stage: :meth:`start` opens it and :meth:`finish`
    closes it, so a backup and the following rewrite each get their own.

    Parameters
    ----------
    width:
        Number of cells in the bar.
    console:
        Rich console to draw on (default: a console on stderr).
    """

    def __init__(self, width: int = 40, console: Optional[Console] = None) -> None:
        self.width = width
        self.console = console or Console(stderr=True)
        self.total = 0
        self.current = 0
        self.progress: Optional[Progress] = None
        self.task_id: Optional[TaskID] = None

    def _make_progress(self) -> Progress:
        return Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(bar_width=self.width),
            MofNCompleteColumn(),
            TaskProgressColumn(),
            "elapsed",
            TimeElapsedColumn(),
            "eta",
            TimeRemainingColumn(),
            console=self.console,
            refresh_per_second=10,
        )

    def start(self, total: int, label: str = "") -> None:
        if self.progress is not None:
            self.finish()
        self.total = max(0, int(total))
        self.current = 0
        self.progress = self._make_progress()
        self.progress.start()
        self.task_id = self.progress.add_task(label, total=self.total)

    def update(self, current: int) -> None:
        self.current = max(0, min(int(current), self.total)) if self.total else 0
        if self.progress is not None and self.task_id is not None:
            self.progress.update(self.task_id, completed=self.current)

    def advance(self, step: int = 1) -> None:
        self.update(self.current + step)

    def finish(self) -> None:
        if self.progress is None or self.task_id is None:
            return
        self.current = self.total
        self.progress.update(self.task_id, completed=self.total)
        self.progress.stop()
        self.progress = None
        self.task_id = None
