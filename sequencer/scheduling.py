"""
Timer facilities the sequencer schedules its continuations on.

Both implementations run every callback on a single thread:

- TkScheduler:   wraps ``root.after`` / ``root.after_cancel`` of a Tk root
- LoopScheduler: stdlib ``sched`` event loop with an injectable clock, used by
                 the headless runner (real time) and the tests (manual clock)

``call_later`` and ``cancel`` of LoopScheduler are safe to call from other
threads (hotkey listeners); the callbacks themselves always run inside
``LoopScheduler.run``.
"""

from __future__ import annotations

import sched
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


class Scheduler(ABC):
    """Minimal timer contract: run a callback later, or cancel it."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> Any:
        """Run ``callback`` after ``delay`` seconds and return a cancel handle."""

    @abstractmethod
    def cancel(self, handle: Any) -> None:
        """Cancel a pending callback. Unknown or already fired handles are ignored."""

    def call_soon(self, callback: Callable[[], None]) -> Any:
        return self.call_later(0.0, callback)


class TkScheduler(Scheduler):
    """Schedules callbacks on the Tk event loop."""

    def __init__(self, root) -> None:
        self._root = root

    def call_later(self, delay: float, callback: Callable[[], None]) -> Any:
        ms = max(0, int(round(delay * 1000)))
        return self._root.after(ms, callback)

    def cancel(self, handle: Any) -> None:
        if handle is None:
            return
        self._root.after_cancel(handle)


class LoopScheduler(Scheduler):
    """
    Event loop built on ``sched.scheduler``.

    ``run`` processes due events until the queue is empty (or ``until`` is
    reached). Sleeping is done in slices of at most ``max_sleep`` seconds so
    that callbacks queued from other threads are picked up promptly.
    """

    def __init__(
        self,
        timefunc: Callable[[], float] = time.monotonic,
        delayfunc: Callable[[float], None] = time.sleep,
        max_sleep: Optional[float] = 0.05,
    ) -> None:
        self._time = timefunc
        self._delay = delayfunc
        self._max_sleep = max_sleep
        self._sched = sched.scheduler(timefunc, delayfunc)

    def call_later(self, delay: float, callback: Callable[[], None]) -> Any:
        return self._sched.enter(max(0.0, float(delay)), 0, callback)

    def cancel(self, handle: Any) -> None:
        if handle is None:
            return
        try:
            self._sched.cancel(handle)
        except ValueError:
            # Already fired or cancelled.
            pass

    def pending(self) -> int:
        """Number of queued callbacks."""
        return len(self._sched.queue)

    def empty(self) -> bool:
        return self._sched.empty()

    def run(self, until: Optional[float] = None) -> None:
        """Run callbacks in time order until the queue drains or ``until`` is reached."""
        while True:
            queue = self._sched.queue
            if not queue:
                break
            due = queue[0].time
            if until is not None and due > until:
                break
            now = self._time()
            if due > now:
                wait = due - now
                if self._max_sleep is not None:
                    wait = min(wait, self._max_sleep)
                self._delay(wait)
                continue
            self._sched.run(blocking=False)

        if until is not None:
            remaining = until - self._time()
            if remaining > 0:
                self._delay(remaining)

    def advance(self, seconds: float) -> None:
        """Run everything that becomes due within the next ``seconds``."""
        self.run(until=self._time() + seconds)
