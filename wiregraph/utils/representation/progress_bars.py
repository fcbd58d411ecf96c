from __future__ import annotations

from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)


class LazyProgress:
    """
    Lazily-started progress bar over the mini-batches of one epoch.

    No output is produced unless `.tick()` is called at least once, so a
    disabled or empty epoch never touches the terminal.
    """

    def __init__(
        self,
        *,
        total: int | None,
        description: str,
        enabled: bool = True,
        persist: bool = False,
    ):
        self._enabled = enabled
        self._total = total
        self._description = description
        self._persist = persist

        self._progress: Progress | None = None
        self._task_id: TaskID | None = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ================================================
    # Internal
    # ================================================
    def _ensure_started(self):
        if not self._enabled or self._progress is not None:
            return

        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TextColumn("{task.fields[status]}"),
            TimeElapsedColumn(),
            transient=not self._persist,
        )
        self._progress.start()
        self._task_id = self._progress.add_task(self._description, total=self._total, status="")

    # ================================================
    # Public API
    # ================================================
    def tick(self, n: int = 1, *, status: str | None = None):
        if not self._enabled:
            return
        self._ensure_started()
        if status is None:
            self._progress.advance(self._task_id, n)
        else:
            self._progress.update(self._task_id, advance=n, status=status)

    def close(self):
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task_id = None

    @property
    def completed(self) -> int | None:
        if self._progress is None:
            return None
        return int(self._progress.tasks[0].completed)
