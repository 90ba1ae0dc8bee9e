# =============================================================================
# masjeed_core/offline/scheduler.py
# Timer Scheduling for Retries
# =============================================================================
"""
Scheduler - the ``after(ms, fn) -> CancelToken`` capability used for retries.

Two implementations:
- AsyncioScheduler: real timers on the running event loop
- ManualScheduler: simulated time, advanced explicitly (tests, replays)

Callbacks take no arguments and may return an awaitable, which is run to
completion on the loop.
"""

from __future__ import annotations
import asyncio
import heapq
import inspect
import itertools
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Set, Tuple, Union
import logging

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[None, Awaitable[Any]]]


class CancelToken:
    """Handle returned by ``Scheduler.after``."""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._on_cancel = on_cancel
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()


class Scheduler(Protocol):
    def after(self, delay_ms: int, callback: Callback) -> CancelToken:
        ...


class AsyncioScheduler:
    """Schedules callbacks with ``loop.call_later`` on the running loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._tasks: Set[asyncio.Task] = set()

    def after(self, delay_ms: int, callback: Callback) -> CancelToken:
        loop = self._loop or asyncio.get_running_loop()
        handle = loop.call_later(max(delay_ms, 0) / 1000.0, self._fire, loop, callback)
        return CancelToken(handle.cancel)

    def _fire(self, loop: asyncio.AbstractEventLoop, callback: Callback) -> None:
        try:
            result = callback()
        except Exception as e:
            logger.error(f"Scheduled callback failed: {e}", exc_info=True)
            return

        if inspect.isawaitable(result):
            task = loop.create_task(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Scheduled task failed: {task.exception()}")

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)


class ManualScheduler:
    """
    Simulated-time scheduler.

    Nothing runs until ``advance`` or ``run_until_idle`` is awaited; callbacks
    due at the same instant run in scheduling order.
    """

    def __init__(self, start_ms: int = 0):
        self.now_ms = start_ms
        self._queue: List[Tuple[int, int, Callback, CancelToken]] = []
        self._seq = itertools.count()
        self.history: List[int] = []

    def clock(self) -> int:
        """Current simulated time; usable as a LocalStore clock."""
        return self.now_ms

    def after(self, delay_ms: int, callback: Callback) -> CancelToken:
        token = CancelToken()
        heapq.heappush(self._queue, (self.now_ms + max(delay_ms, 0), next(self._seq), callback, token))
        self.history.append(delay_ms)
        return token

    @property
    def pending(self) -> int:
        return sum(1 for entry in self._queue if not entry[3].cancelled)

    async def advance(self, delay_ms: int) -> None:
        """Move simulated time forward, running every callback that falls due."""
        target = self.now_ms + delay_ms
        while self._queue and self._queue[0][0] <= target:
            due, _, callback, token = heapq.heappop(self._queue)
            if token.cancelled:
                continue
            self.now_ms = max(self.now_ms, due)
            result = callback()
            if inspect.isawaitable(result):
                await result
        self.now_ms = target

    async def run_until_idle(self, max_steps: int = 1000) -> None:
        """Run scheduled callbacks (including ones they schedule) until none remain."""
        steps = 0
        while self.pending:
            if steps >= max_steps:
                raise RuntimeError("ManualScheduler did not become idle")
            live = [entry for entry in self._queue if not entry[3].cancelled]
            next_due = min(entry[0] for entry in live)
            await self.advance(next_due - self.now_ms)
            steps += 1
