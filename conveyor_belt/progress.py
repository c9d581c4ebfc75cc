from collections.abc import Callable
from dataclasses import dataclass

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskID, TextColumn, TimeRemainingColumn
from rich.prompt import Confirm


@dataclass
class ProgressState:
    total: int = 0
    completed: int = 0
    label: str = ""


class ProgressReporter:
    """Shows how far a run has got and, in step mode, asks before moving on.

    Step mode prints one line per record instead of a live bar so that
    prompts, SQL logs and diff tables are not redrawn over.
    """

    def __init__(
        self,
        console: Console,
        *,
        step_mode: bool = False,
        confirm: Callable[[str], bool] | None = None,
    ) -> None:
        self.console = console
        self.step_mode = step_mode
        self.state = ProgressState()
        self._confirm = confirm
        self._progress: Progress | None = None
        self._task: TaskID | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self, total: int, label: str) -> None:
        if self._running:
            raise RuntimeError("progress already started; call finish() first")

        self.state = ProgressState(total=total, completed=0, label=label)
        self._running = True
        if self.step_mode:
            return

        self._progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeRemainingColumn(),
            console=self.console,
        )
        self._task = self._progress.add_task(label, total=total)
        self._progress.start()

    def advance(self) -> None:
        self.state.completed = min(self.state.completed + 1, self.state.total)
        if self._progress is not None and self._task is not None:
            self._progress.advance(self._task)
        elif self.step_mode:
            self.console.print(f"{self.state.label} {self.state.completed}/{self.state.total}", highlight=False)

    def finish(self) -> None:
        if not self._running:
            return
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task = None
        self._running = False

    def pause_for_confirmation(self, prompt: str = "Continue?") -> bool:
        if self._confirm is not None:
            return bool(self._confirm(prompt))
        return Confirm.ask(prompt, default=True, console=self.console)
