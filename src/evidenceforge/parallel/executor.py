"""Local parallel execution for independent work items.

Used for per-reference compression during merges and available for
running several alignment shards at once on one machine. Larger runs go
through task files instead (see ``evidenceforge.parallel.taskgen``).

Example:
    >>> executor = ParallelExecutor(n_workers=8, backend="threads")
    >>> results, stats = executor.map_items(compress_reference, references)
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import Future, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from contextlib import closing
from enum import Enum
from typing import Any, Callable, Iterator, Sequence, TypeVar

import attrs

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class ExecutorBackend(Enum):
    """Where tasks run."""

    SERIAL = "serial"
    THREADS = "threads"
    PROCESSES = "processes"


@attrs.define(slots=True)
class TaskResult:
    """Outcome of one task.

    ``result`` holds the return value on success; ``error`` holds
    ``"ExceptionType: message"`` on failure.
    """

    task_id: str
    success: bool
    result: Any | None = None
    error: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        """Summary without the result payload."""
        return {
            "task_id": self.task_id,
            "success": self.success,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@attrs.define(slots=True)
class ExecutionStats:
    """Timing and outcome summary of one ``map_items`` call."""

    total_tasks: int
    successful: int
    failed: int
    total_duration: float
    mean_task_duration: float
    max_task_duration: float

    @classmethod
    def from_results(cls, results: Sequence[TaskResult], elapsed: float) -> ExecutionStats:
        durations = [r.duration_seconds for r in results]
        successful = sum(r.success for r in results)
        return cls(
            total_tasks=len(results),
            successful=successful,
            failed=len(results) - successful,
            total_duration=elapsed,
            mean_task_duration=sum(durations) / len(durations) if durations else 0.0,
            max_task_duration=max(durations, default=0.0),
        )

    def to_dict(self) -> dict:
        return {
            field.name: round(value, 3) if isinstance(value, float) else value
            for field, value in zip(attrs.fields(type(self)), attrs.astuple(self))
        }


class TaskFailedError(RuntimeError):
    """A task failed while ``continue_on_error`` was off."""

    def __init__(self, task_id: str, error: str) -> None:
        self.task_id = task_id
        self.error = error
        super().__init__(f"Task {task_id} failed: {error}")


def _run_task(func: Callable[[Any], Any], task_id: str, item: Any) -> TaskResult:
    # Module level so the process backend can pickle it.
    started = time.perf_counter()
    try:
        value = func(item)
    except Exception as e:
        return TaskResult(
            task_id,
            False,
            error=f"{type(e).__name__}: {e}",
            duration_seconds=time.perf_counter() - started,
        )
    return TaskResult(task_id, True, result=value, duration_seconds=time.perf_counter() - started)


class ParallelExecutor:
    """Apply one function to many independent items.

    Results come back in the order of the items, whatever order the
    workers finish in, so output written from them does not depend on the
    worker count.

    Example:
        >>> executor = ParallelExecutor(n_workers=4)
        >>> results, stats = executor.map_items(compress_reference, ["chr1", "chr2"])
    """

    def __init__(
        self,
        n_workers: int = 1,
        backend: ExecutorBackend | str = ExecutorBackend.THREADS,
        progress_callback: Callable[[int, int, str], None] | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            n_workers: Worker count; 1 runs everything in the calling thread.
            backend: Pool type used when ``n_workers > 1``.
            progress_callback: Called as ``(completed, total, task_id)``
                after every task.
        """
        self.n_workers = max(1, n_workers)
        self.backend = ExecutorBackend(backend) if self.n_workers > 1 else ExecutorBackend.SERIAL
        self.progress_callback = progress_callback

    def map_items(
        self,
        func: Callable[[T], R],
        items: Sequence[T],
        task_ids: Sequence[str] | None = None,
        continue_on_error: bool = True,
    ) -> tuple[list[TaskResult], ExecutionStats]:
        """Run ``func`` on every item.

        Args:
            func: Callable taking one item. The process backend needs it
                picklable.
            items: Work items.
            task_ids: Labels for results and progress, ``task_000000``...
                by default.
            continue_on_error: When False the first failure cancels the
                remaining work and raises.

        Returns:
            Results in item order, and the execution stats.

        Raises:
            TaskFailedError: A task failed and ``continue_on_error`` is False.
        """
        if task_ids is None:
            task_ids = [f"task_{i:06d}" for i in range(len(items))]
        elif len(task_ids) != len(items):
            raise ValueError(f"{len(task_ids)} task_ids for {len(items)} items")

        started = time.perf_counter()
        results: list[TaskResult | None] = [None] * len(items)
        logger.debug(f"{len(items)} tasks on {self.n_workers} worker(s), {self.backend.value}")

        with closing(self._completions(func, items, task_ids)) as completions:
            for done, (index, outcome) in enumerate(completions, 1):
                results[index] = outcome
                if self.progress_callback:
                    self.progress_callback(done, len(items), outcome.task_id)
                if not outcome.success and not continue_on_error:
                    logger.error(f"Task {outcome.task_id} failed: {outcome.error}")
                    raise TaskFailedError(outcome.task_id, outcome.error or "")

        finished = [r for r in results if r is not None]
        stats = ExecutionStats.from_results(finished, time.perf_counter() - started)
        logger.debug(f"{stats.successful}/{stats.total_tasks} tasks succeeded in {stats.total_duration:.1f}s")
        return finished, stats

    def _completions(
        self, func: Callable, items: Sequence, task_ids: Sequence[str]
    ) -> Iterator[tuple[int, TaskResult]]:
        """Yield ``(index, result)`` as tasks finish."""
        if self.backend == ExecutorBackend.SERIAL:
            for index, (task_id, item) in enumerate(zip(task_ids, items)):
                yield index, _run_task(func, task_id, item)
            return

        pool_cls = ThreadPoolExecutor if self.backend == ExecutorBackend.THREADS else ProcessPoolExecutor
        with pool_cls(max_workers=self.n_workers) as pool:
            pending: dict[Future, int] = {
                pool.submit(_run_task, func, task_id, item): index
                for index, (task_id, item) in enumerate(zip(task_ids, items))
            }
            try:
                for future in as_completed(pending):
                    yield pending[future], future.result()
            finally:
                # Reached early when the caller stops on a failure.
                for future in pending:
                    future.cancel()


def get_optimal_workers(max_workers: int | None = None) -> int:
    """Worker count between 1 and the CPU count.

    ``None`` selects every CPU.
    """
    cpu_count = os.cpu_count() or 1
    if max_workers is None:
        return cpu_count
    return max(1, min(max_workers, cpu_count))
