"""Cancellable one-shot and periodic tasks on a real or virtual clock.

Everything in the alerting core that runs "later" (escalations, health
checks, retention sweeps) goes through a :class:`Scheduler`, so tests can
swap in :class:`VirtualScheduler` and drive time explicitly::

    scheduler = VirtualScheduler(start_ms=1_000_000)
    manager = AlertManager(config, scheduler=scheduler)
    await manager.initialize()
    await scheduler.advance(60_000)   # fires the health check once
"""

from __future__ import annotations

import abc
import asyncio
import inspect
import itertools
import time
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

TaskCallback = Callable[[], Awaitable[None] | None]


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


async def _invoke(callback: TaskCallback) -> None:
    result = callback()
    if inspect.isawaitable(result):
        await result


class ScheduledTask:
    """Handle for a scheduled callback. ``cancel()`` is idempotent."""

    def __init__(
        self,
        name: str,
        callback: TaskCallback,
        due_ms: int,
        interval_ms: int | None,
        seq: int,
    ) -> None:
        self.name = name
        self.callback = callback
        self.due_ms = due_ms
        self.interval_ms = interval_ms
        self.seq = seq
        self._cancelled = False
        self._fired = False
        self._on_cancel: Callable[[], None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def periodic(self) -> bool:
        return self.interval_ms is not None

    @property
    def done(self) -> bool:
        """A one-shot that has fired, or any cancelled task."""
        return self._cancelled or (self._fired and not self.periodic)

    def cancel(self) -> None:
        if self.done:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()

    def __repr__(self) -> str:
        kind = f"every {self.interval_ms}ms" if self.periodic else "once"
        return f"<ScheduledTask {self.name!r} due={self.due_ms} {kind}>"


class Scheduler(abc.ABC):
    """Clock plus deferred-execution abstraction."""

    def __init__(self) -> None:
        self._tasks: list[ScheduledTask] = []
        self._seq = itertools.count()

    @abc.abstractmethod
    def now_ms(self) -> int:
        """Current time in epoch milliseconds."""

    @abc.abstractmethod
    def _arm(self, task: ScheduledTask) -> None:
        """Start tracking a freshly created task."""

    def call_later(
        self, delay_ms: int, callback: TaskCallback, name: str = "task"
    ) -> ScheduledTask:
        """Run ``callback`` once after ``delay_ms``."""
        task = ScheduledTask(
            name, callback, self.now_ms() + max(delay_ms, 0), None, next(self._seq)
        )
        self._tasks.append(task)
        self._arm(task)
        return task

    def call_every(
        self, interval_ms: int, callback: TaskCallback, name: str = "periodic"
    ) -> ScheduledTask:
        """Run ``callback`` every ``interval_ms`` until cancelled."""
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        task = ScheduledTask(
            name, callback, self.now_ms() + interval_ms, interval_ms, next(self._seq)
        )
        self._tasks.append(task)
        self._arm(task)
        return task

    def pending(self) -> list[ScheduledTask]:
        """Tasks that may still fire."""
        self._tasks = [t for t in self._tasks if not t.done]
        return list(self._tasks)

    def cancel_all(self) -> int:
        """Cancel every outstanding task. Returns how many were live."""
        live = self.pending()
        for task in live:
            task.cancel()
        self._tasks.clear()
        return len(live)

    async def _run(self, task: ScheduledTask) -> None:
        if not task.periodic:
            task._fired = True
        try:
            await _invoke(task.callback)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("scheduled_task_error", task=task.name)


class AsyncioScheduler(Scheduler):
    """Production scheduler: each task is an asyncio sleep loop.

    Must be used from within a running event loop.
    """

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        super().__init__()
        self._clock = clock
        self._runners: dict[int, asyncio.Task[None]] = {}

    def now_ms(self) -> int:
        return self._clock()

    def _arm(self, task: ScheduledTask) -> None:
        runner = asyncio.get_running_loop().create_task(
            self._loop(task), name=f"scheduler:{task.name}"
        )
        self._runners[task.seq] = runner

        def _finished(_runner: asyncio.Task[None]) -> None:
            self._runners.pop(task.seq, None)
            if task in self._tasks:
                self._tasks.remove(task)

        runner.add_done_callback(_finished)

        def _cancel_runner() -> None:
            if runner is not asyncio.current_task():
                runner.cancel()

        task._on_cancel = _cancel_runner

    async def _loop(self, task: ScheduledTask) -> None:
        while not task.cancelled:
            delay = max(task.due_ms - self.now_ms(), 0)
            await asyncio.sleep(delay / 1000.0)
            if task.cancelled:
                return
            if task.periodic:
                task.due_ms += task.interval_ms  # type: ignore[operator]
            await self._run(task)
            if not task.periodic:
                return

    async def aclose(self) -> None:
        """Cancel every task and wait for the runners to unwind."""
        self.cancel_all()
        runners = [r for r in self._runners.values() if r is not asyncio.current_task()]
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)
        self._runners.clear()


class VirtualScheduler(Scheduler):
    """Deterministic scheduler driven by :meth:`advance`.

    Time never moves on its own. Due callbacks fire in due-time order
    (ties in scheduling order) and coroutine callbacks are awaited before
    the next one fires.
    """

    def __init__(self, start_ms: int = 0) -> None:
        super().__init__()
        self._now = start_ms

    def now_ms(self) -> int:
        return self._now

    def _arm(self, task: ScheduledTask) -> None:
        return None

    async def advance(self, delta_ms: int) -> None:
        """Move the clock forward by ``delta_ms``, firing due tasks."""
        await self.advance_to(self._now + delta_ms)

    async def advance_to(self, target_ms: int) -> None:
        """Move the clock to ``target_ms``, firing due tasks on the way."""
        if target_ms < self._now:
            raise ValueError(f"cannot move time backwards ({target_ms} < {self._now})")
        while True:
            due = [t for t in self._tasks if not t.done and t.due_ms <= target_ms]
            if not due:
                break
            task = min(due, key=lambda t: (t.due_ms, t.seq))
            self._now = max(self._now, task.due_ms)
            if task.periodic:
                task.due_ms += task.interval_ms  # type: ignore[operator]
            await self._run(task)
        self._now = target_ms
        self._tasks = [t for t in self._tasks if not t.done]

    async def run_due(self) -> None:
        """Fire whatever is due at the current instant."""
        await self.advance_to(self._now)
