"""Bounded worker pool – fans I/O-bound work out over at most *concurrency* threads."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any

from rich.progress import Progress


@dataclass
class Outcome:
    """Result of running one work item: either a value or the exception it raised."""

    item: Any
    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class WorkerPool:
    """Runs a function over many items with a fixed upper bound on parallelism.

    Results are gathered in the calling thread as futures complete, so the
    returned list is never appended to concurrently. Completion order is not
    preserved. A failing item never affects its siblings: its exception is
    captured in the corresponding Outcome.
    """

    def __init__(self, concurrency: int, progress: Progress | None = None):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self._progress = progress

    def map(
        self,
        fn: Callable[[Any], Any],
        items: Iterable[Any],
        description: str = "Working",
    ) -> list[Outcome]:
        items = list(items)
        if not items:
            return []

        task = None
        if self._progress is not None:
            task = self._progress.add_task(description, total=len(items))

        outcomes: list[Outcome] = []
        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            futures = {executor.submit(fn, item): item for item in items}
            for future in as_completed(futures):
                item = futures[future]
                try:
                    outcomes.append(Outcome(item, value=future.result()))
                except Exception as exc:
                    outcomes.append(Outcome(item, error=exc))
                if task is not None:
                    self._progress.advance(task)

        if task is not None:
            self._progress.remove_task(task)
        return outcomes


def chunked(items: list, size: int) -> list[list]:
    """Split *items* into consecutive lists of at most *size* elements."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [items[i : i + size] for i in range(0, len(items), size)]
