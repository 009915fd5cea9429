from __future__ import annotations

from typing import Iterable, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.text import Text

from .models import ItemFailure, RunOutcome


class NullProgress:
    def start(self, total: int) -> None:
        return None

    def advance(self, amount: int = 1) -> None:
        return None

    def clear(self) -> None:
        return None

    def display(self) -> None:
        return None

    def finish(self) -> None:
        return None


class ProgressReporter:
    """Progress bar for the drain loop; ``clear``/``display`` hide it around error output."""

    def __init__(self, console: Console) -> None:
        self.console = console
        self._progress: Optional[Progress] = None
        self._task_id: Optional[TaskID] = None
        self._visible = False

    def start(self, total: int) -> None:
        self._progress = Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=self.console,
            transient=True,
        )
        self._task_id = self._progress.add_task("Indexing", total=total)
        self.display()

    def advance(self, amount: int = 1) -> None:
        if self._progress is not None and self._task_id is not None:
            self._progress.advance(self._task_id, amount)

    def clear(self) -> None:
        if self._progress is not None and self._visible:
            self._progress.stop()
            self._visible = False

    def display(self) -> None:
        if self._progress is not None and not self._visible:
            self._progress.start()
            self._visible = True

    def finish(self) -> None:
        self.clear()
        self._progress = None
        self._task_id = None

    @property
    def completed(self) -> int:
        if self._progress is None or self._task_id is None:
            return 0
        return int(self._progress.tasks[0].completed)


class RunReporter:
    def __init__(self, console: Console | None = None, plain: bool = False) -> None:
        self.console = console or Console()
        self.plain = plain

    def progress(self):
        if self.plain:
            return NullProgress()
        return ProgressReporter(self.console)

    def title(self, text: str) -> None:
        self.console.rule(f"[bold]{text}")

    def success(self, text: str) -> None:
        self.console.print(Text("[OK] ", style="bold green") + Text(text))

    def error(self, lines: Iterable[str]) -> None:
        self.console.print(Text("[ERROR] ", style="bold red") + Text("\n".join(lines)))

    def failure(self, failure: ItemFailure) -> None:
        self.error(
            [
                f"Error when indexing {failure.label}",
                failure.message,
                "\n".join(failure.trace),
            ]
        )

    def summary(self, outcome: RunOutcome) -> None:
        self.console.print(
            f"Attempted {outcome.attempted} of {outcome.total} items: "
            f"{outcome.succeeded} indexed, {outcome.skipped} skipped, {outcome.failed} failed"
        )
        for failure in outcome.failures:
            self.console.print(f"  - {failure.label}: {failure.message}", highlight=False, markup=False)
