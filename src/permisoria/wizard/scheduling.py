from __future__ import annotations

import heapq
import itertools
import logging
import threading
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback once after ``delay`` seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Scheduler backed by ``threading.Timer``; callbacks run on timer threads."""

    def __init__(self, *, name_prefix: str = "permisoria-timer") -> None:
        self._name_prefix = name_prefix
        self._counter = itertools.count(1)

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(max(0.0, float(delay)), callback)
        timer.daemon = True
        timer.name = f"{self._name_prefix}-{next(self._counter)}"
        timer.start()
        return timer


class _ManualHandle:
    __slots__ = ("due", "seq", "callback", "cancelled")

    def __init__(self, due: float, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: "_ManualHandle") -> bool:
        return (self.due, self.seq) < (other.due, other.seq)


class ManualScheduler:
    """Virtual clock: nothing runs until ``advance`` moves time forward.

    Callbacks due at the same instant run in scheduling order. A callback may
    schedule further callbacks; those run within the same ``advance`` call
    when they fall inside the advanced window.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[_ManualHandle] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self.now + max(0.0, float(delay)), next(self._seq), callback)
        heapq.heappush(self._queue, handle)
        return handle

    def advance(self, seconds: float) -> None:
        target = self.now + max(0.0, float(seconds))
        while self._queue and self._queue[0].due <= target:
            handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = handle.due
            handle.callback()
        self.now = target

    def pending(self) -> int:
        return sum(1 for handle in self._queue if not handle.cancelled)
