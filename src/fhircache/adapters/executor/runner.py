"""Self-feeding bounded worker pool implementing RunnerPort."""

from __future__ import annotations

import logging
import os
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from fhircache.core.cancellation import CancellationToken
from fhircache.core.exceptions import CancelledError
from fhircache.core.models import RunResult
from fhircache.core.ports import TaskContext


if TYPE_CHECKING:
    from fhircache.core.ports import Task


logger = logging.getLogger(__name__)

# Queue marker telling a worker to exit
_STOP = object()


class _Run:
    """Bookkeeping for a single TaskRunner.run() call."""

    def __init__(self, cancellation: CancellationToken) -> None:
        self.cancellation = cancellation
        self.tasks: queue.SimpleQueue[object] = queue.SimpleQueue()
        self.errors: list[BaseException] = []
        self.completed = 0
        self.closed = False
        self._pending = 0
        self._condition = threading.Condition()
        cancellation.add_callback(self._wake)

    def add(self, task: Task) -> bool:
        with self._condition:
            if self.closed:
                return False
            self._pending += 1
        self.tasks.put(task)
        return True

    def fail(self, error: BaseException) -> None:
        with self._condition:
            self.errors.append(error)
        self.cancellation.cancel()

    def finish(self, executed: bool) -> None:
        with self._condition:
            if executed:
                self.completed += 1
            self._pending -= 1
            self._condition.notify_all()

    def wait_drained(self) -> None:
        """Block until no task is pending or the run is cancelled, then close."""
        with self._condition:
            while self._pending > 0 and not self.cancellation.cancelled:
                self._condition.wait()
            self.closed = True

    def _wake(self) -> None:
        with self._condition:
            self._condition.notify_all()


class TaskRunner:
    """Executes a dynamically growing set of tasks on a bounded worker pool.

    Tasks receive a TaskContext and may schedule more work on the runner
    while they execute. A run ends when every scheduled task has finished,
    when a task fails, or when the caller cancels it.

    Example:
        >>> runner = TaskRunner(workers=4)
        >>> runner.add(lambda ctx: ctx.runner.add(lambda ctx: None))
        >>> runner.run().completed
        2
    """

    def __init__(self, workers: int = 0) -> None:
        """Initialize the runner.

        Args:
            workers: Maximum concurrent tasks. Zero or negative uses the CPU count.
        """
        self.workers = workers if workers > 0 else (os.cpu_count() or 1)
        self._lock = threading.Lock()
        self._backlog: list[Task] = []
        self._run: _Run | None = None

    def add(self, task: Task) -> None:
        """Schedule a task.

        Safe to call from any thread, including from inside a running task.
        Tasks added while no run is active execute on the next run(). Tasks
        added by a run that has already been closed are dropped.
        """
        with self._lock:
            state = self._run
            if state is None:
                self._backlog.append(task)
            elif not state.add(task):
                logger.debug("Dropping task added after the run was closed")

    def run(self, cancellation: CancellationToken | None = None) -> RunResult:
        """Execute tasks until the work drains, a task fails, or cancellation.

        The first task error cancels the rest of the run. Tasks still queued
        at that point are dropped; tasks already executing are allowed to
        finish.

        Args:
            cancellation: Token the caller can use to stop the run early.

        Returns:
            RunResult with the number of executed tasks and any errors.

        Raises:
            RuntimeError: If the runner is already running.
        """
        parent = cancellation if cancellation is not None else CancellationToken()
        state = _Run(parent.child())

        with self._lock:
            if self._run is not None:
                raise RuntimeError("TaskRunner is already running")
            self._run = state
            backlog, self._backlog = self._backlog, []
        for task in backlog:
            state.add(task)

        logger.debug("Running %d task(s) on %d worker(s)", len(backlog), self.workers)
        try:
            with ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="fhircache-worker"
            ) as executor:
                for _ in range(self.workers):
                    executor.submit(self._work, state)
                try:
                    state.wait_drained()
                except BaseException:
                    state.cancellation.cancel()
                    raise
                finally:
                    for _ in range(self.workers):
                        state.tasks.put(_STOP)
        finally:
            with self._lock:
                self._run = None
            parent.remove_callback(state.cancellation.cancel)

        error: BaseException | None = state.errors[0] if state.errors else None
        if error is None and parent.cancelled:
            error = CancelledError("Task run cancelled")
        return RunResult(
            completed=state.completed, error=error, errors=tuple(state.errors)
        )

    def _work(self, state: _Run) -> None:
        context = TaskContext(runner=self, cancellation=state.cancellation)
        while True:
            task = state.tasks.get()
            if task is _STOP:
                return
            if state.cancellation.cancelled:
                state.finish(executed=False)
                continue
            try:
                task(context)  # type: ignore[operator]
            except Exception as e:
                logger.debug("Task failed: %s", e)
                state.fail(e)
            finally:
                state.finish(executed=True)
