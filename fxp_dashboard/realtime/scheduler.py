"""Clock and timer abstraction for the session.

Every store mutation runs as a scheduler callback, one at a time. The
asyncio scheduler drives a live session; the manual scheduler drives tests
without wall-clock waits.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Tuple

# on_done(result, exc) for blocking work handed to the scheduler
DoneCallback = Callable[[Any, Optional[BaseException]], None]


class Scheduler(ABC):
    """Single-threaded callback scheduler.

    Timer handles expose ``cancel()``, ``cancelled()`` and ``when()``, the
    same surface as ``asyncio.TimerHandle``.
    """

    @abstractmethod
    def now(self) -> float:
        """Current time in epoch seconds, used for record timestamps."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any):
        """Run ``callback(*args)`` after ``delay`` seconds. Returns a handle."""

    def call_soon(self, callback: Callable[..., Any], *args: Any):
        return self.call_later(0, callback, *args)

    @abstractmethod
    def run_blocking(self, fn: Callable[[], Any], on_done: DoneCallback) -> None:
        """Run blocking ``fn`` off the loop and deliver its outcome on the loop."""


class AsyncioScheduler(Scheduler):
    """Scheduler backed by a running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback, *args)

    def run_blocking(self, fn: Callable[[], Any], on_done: DoneCallback) -> None:
        future = self.loop.run_in_executor(None, fn)

        # Done callbacks run on the loop thread
        def _deliver(fut: asyncio.Future) -> None:
            if fut.cancelled():
                on_done(None, asyncio.CancelledError())
                return
            exc = fut.exception()
            on_done(None if exc else fut.result(), exc)

        future.add_done_callback(_deliver)


class ManualTimer:
    """Timer handle for ``ManualScheduler``."""

    __slots__ = ("_when", "_callback", "_args", "_cancelled")

    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self._when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    def when(self) -> float:
        return self._when

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def _run(self) -> None:
        self._callback(*self._args)


class ManualScheduler(Scheduler):
    """Deterministic scheduler whose clock only moves when told to.

    ``run_blocking`` executes inline, so a fetch resolves before the call
    returns.
    """

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start
        self._queue: List[Tuple[float, int, ManualTimer]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (timer.when(), next(self._counter), timer))
        return timer

    def run_blocking(self, fn: Callable[[], Any], on_done: DoneCallback) -> None:
        try:
            result = fn()
        except Exception as exc:
            on_done(None, exc)
            return
        on_done(result, None)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due timers in order.

        Returns:
            Number of callbacks run
        """
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled():
                continue
            self._now = when
            timer._run()
            fired += 1
        self._now = target
        return fired

    def pending(self) -> List[ManualTimer]:
        """Live timers, earliest first."""
        return [t for _, _, t in sorted(self._queue) if not t.cancelled()]
