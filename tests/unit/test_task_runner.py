"""Unit tests for the TaskRunner worker pool."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

import pytest


if TYPE_CHECKING:
    from fhircache.core.ports import TaskContext


@pytest.mark.scheduler
@pytest.mark.tier(1)
class TestTaskRunner:
    """Tests for TaskRunner."""

    def test_satisfies_runner_port(self) -> None:
        """TaskRunner should implement RunnerPort."""
        from fhircache.adapters.executor import TaskRunner
        from fhircache.core.ports import RunnerPort

        assert isinstance(TaskRunner(2), RunnerPort)

    def test_zero_workers_uses_cpu_count(self) -> None:
        """workers <= 0 should fall back to the CPU count."""
        import os

        from fhircache.adapters.executor import TaskRunner

        assert TaskRunner(0).workers == (os.cpu_count() or 1)
        assert TaskRunner(-3).workers == (os.cpu_count() or 1)

    def test_runs_every_task(self) -> None:
        """All added tasks execute and are counted."""
        from fhircache.adapters.executor import TaskRunner

        seen: list[int] = []
        lock = threading.Lock()
        runner = TaskRunner(4)
        for i in range(20):

            def task(ctx: TaskContext, i: int = i) -> None:
                with lock:
                    seen.append(i)

            runner.add(task)

        result = runner.run()

        assert result.ok
        assert result.completed == 20
        assert sorted(seen) == list(range(20))

    def test_empty_run_returns_immediately(self) -> None:
        """A run with no tasks completes with zero tasks."""
        from fhircache.adapters.executor import TaskRunner

        result = TaskRunner(2).run()
        assert result.completed == 0
        assert result.ok

    def test_tasks_can_add_tasks(self) -> None:
        """Tasks scheduled from inside tasks run before the run ends."""
        from fhircache.adapters.executor import TaskRunner

        counter = {"n": 0}
        lock = threading.Lock()

        def spawn(depth: int):
            def task(ctx: TaskContext) -> None:
                with lock:
                    counter["n"] += 1
                if depth > 0:
                    ctx.runner.add(spawn(depth - 1))
                    ctx.runner.add(spawn(depth - 1))

            return task

        runner = TaskRunner(3)
        runner.add(spawn(3))
        result = runner.run()

        # 1 + 2 + 4 + 8 tasks
        assert result.completed == 15
        assert counter["n"] == 15

    def test_single_worker_self_feeding_does_not_deadlock(self) -> None:
        """With one worker, a task adding more work must not block."""
        from fhircache.adapters.executor import TaskRunner

        def chain(n: int):
            def task(ctx: TaskContext) -> None:
                if n > 0:
                    ctx.runner.add(chain(n - 1))

            return task

        runner = TaskRunner(1)
        runner.add(chain(10))
        assert runner.run().completed == 11

    def test_concurrency_is_bounded(self) -> None:
        """No more than `workers` tasks run at the same time."""
        from fhircache.adapters.executor import TaskRunner

        active = {"now": 0, "max": 0}
        lock = threading.Lock()

        def task(ctx: TaskContext) -> None:
            with lock:
                active["now"] += 1
                active["max"] = max(active["max"], active["now"])
            time.sleep(0.01)
            with lock:
                active["now"] -= 1

        runner = TaskRunner(2)
        for _ in range(10):
            runner.add(task)
        runner.run()

        assert active["max"] <= 2

    def test_first_error_is_returned_and_stops_the_run(self) -> None:
        """The first failure ends the run; queued tasks are dropped."""
        from fhircache.adapters.executor import TaskRunner

        executed: list[str] = []

        def failing(ctx: TaskContext) -> None:
            raise ValueError("boom")

        def later(ctx: TaskContext) -> None:
            executed.append("later")

        runner = TaskRunner(1)
        runner.add(failing)
        for _ in range(5):
            runner.add(later)
        result = runner.run()

        assert isinstance(result.error, ValueError)
        assert result.errors == (result.error,)
        assert result.completed == 1
        assert executed == []

    def test_all_errors_are_kept(self) -> None:
        """Errors from tasks already running are collected after the first."""
        from fhircache.adapters.executor import TaskRunner

        barrier = threading.Barrier(2)

        def failing(ctx: TaskContext) -> None:
            barrier.wait(timeout=5)
            raise RuntimeError("failed")

        runner = TaskRunner(2)
        runner.add(failing)
        runner.add(failing)
        result = runner.run()

        assert isinstance(result.error, RuntimeError)
        assert len(result.errors) == 2
        assert result.completed == 2

    def test_cancellation_stops_the_run(self) -> None:
        """Cancelling the caller's token ends the run with CancelledError."""
        from fhircache.adapters.executor import TaskRunner
        from fhircache.core.cancellation import CancellationToken
        from fhircache.core.exceptions import CancelledError

        token = CancellationToken()
        started = threading.Event()

        def blocking(ctx: TaskContext) -> None:
            started.set()
            ctx.cancellation.wait(5)

        def never(ctx: TaskContext) -> None:
            raise AssertionError("should have been dropped")

        runner = TaskRunner(1)
        runner.add(blocking)
        runner.add(never)
        threading.Thread(target=lambda: (started.wait(5), token.cancel())).start()
        result = runner.run(token)

        assert isinstance(result.error, CancelledError)
        assert result.completed == 1

    def test_task_error_wins_over_cancellation(self) -> None:
        """A task error that happened first is reported instead of CancelledError."""
        from fhircache.adapters.executor import TaskRunner
        from fhircache.core.cancellation import CancellationToken

        token = CancellationToken()

        def failing(ctx: TaskContext) -> None:
            try:
                raise KeyError("first")
            finally:
                token.cancel()

        runner = TaskRunner(1)
        runner.add(failing)
        result = runner.run(token)

        assert isinstance(result.error, KeyError)

    def test_runner_is_reusable(self) -> None:
        """State is per run; a second run executes newly added tasks."""
        from fhircache.adapters.executor import TaskRunner

        runner = TaskRunner(2)
        runner.add(lambda ctx: None)
        assert runner.run().completed == 1

        runner.add(lambda ctx: None)
        runner.add(lambda ctx: None)
        assert runner.run().completed == 2

    def test_tasks_added_after_a_failed_run_closes_are_dropped(self) -> None:
        """Work scheduled by a straggler of a cancelled run never leaks into the next run."""
        from fhircache.adapters.executor import TaskRunner

        executed: list[str] = []
        lock = threading.Lock()

        def record(name: str):
            def task(ctx: TaskContext) -> None:
                with lock:
                    executed.append(name)

            return task

        def slow(ctx: TaskContext) -> None:
            ctx.cancellation.wait(5)
            time.sleep(0.05)
            ctx.runner.add(record("stale"))

        def boom(ctx: TaskContext) -> None:
            raise RuntimeError("boom")

        runner = TaskRunner(2)
        runner.add(slow)
        runner.add(boom)
        first = runner.run()
        assert isinstance(first.error, RuntimeError)

        runner.add(record("fresh"))
        second = runner.run()

        assert second.ok
        assert second.completed == 1
        assert executed == ["fresh"]

    def test_runs_do_not_accumulate_callbacks_on_callers_token(self) -> None:
        """Each run detaches its token from the caller's token when it ends."""
        from fhircache.adapters.executor import TaskRunner
        from fhircache.core.cancellation import CancellationToken

        token = CancellationToken()
        runner = TaskRunner(2)
        for _ in range(5):
            runner.add(lambda ctx: None)
            assert runner.run(token).ok

        assert token._callbacks == []

    def test_error_does_not_cancel_callers_token(self) -> None:
        """A failing run cancels only its own token."""
        from fhircache.adapters.executor import TaskRunner
        from fhircache.core.cancellation import CancellationToken

        def failing(ctx: TaskContext) -> None:
            raise ValueError("boom")

        token = CancellationToken()
        runner = TaskRunner(1)
        runner.add(failing)
        runner.run(token)

        assert not token.cancelled
