from __future__ import annotations

import logging
import math
import threading
from enum import Enum
from typing import Callable, Protocol

from permisoria.wizard.scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class ActivitySource(Protocol):
    def subscribe(self, listener: Callable[[str], None]) -> None: ...

    def unsubscribe(self, listener: Callable[[str], None]) -> None: ...


class IdlePhase(str, Enum):
    ACTIVE = "ACTIVE"
    WARNING = "WARNING"
    EXPIRED = "EXPIRED"


class IdleTimer:
    """Session inactivity timer with a warning countdown before expiry.

    The warning phase opens ``warning_seconds`` before the timeout (or at once
    when the timeout is shorter than that) and ``remaining_seconds`` counts
    down once per second. ``on_timeout`` runs once per armed window; after
    expiry activity is ignored until the host calls ``restart``.
    """

    def __init__(
        self,
        activity_source: ActivitySource,
        on_timeout: Callable[[], None],
        scheduler: Scheduler,
        timeout_minutes: float = 30.0,
        warning_seconds: float = 60.0,
        on_change: Callable[[IdlePhase, int | None], None] | None = None,
    ) -> None:
        if timeout_minutes <= 0:
            raise ValueError("timeout_minutes must be positive")
        self.timeout_seconds = float(timeout_minutes) * 60.0
        self.warning_window = min(float(warning_seconds), self.timeout_seconds)
        self._activity_source = activity_source
        self._on_timeout = on_timeout
        self._on_change = on_change
        self._scheduler = scheduler

        self._lock = threading.Lock()
        self._handles: list[TimerHandle] = []
        self._tick_handle: TimerHandle | None = None
        self._subscribed = False
        self._phase = IdlePhase.ACTIVE
        self._remaining: int | None = None
        self._fired = False

    @property
    def phase(self) -> IdlePhase:
        with self._lock:
            return self._phase

    @property
    def show_warning(self) -> bool:
        return self.phase is IdlePhase.WARNING

    @property
    def remaining_seconds(self) -> int | None:
        with self._lock:
            return self._remaining

    def start(self) -> None:
        with self._lock:
            if not self._subscribed:
                self._activity_source.subscribe(self._on_activity)
                self._subscribed = True
        self._arm()

    def restart(self) -> None:
        self.start()

    def dismiss_warning(self) -> None:
        with self._lock:
            if self._phase is IdlePhase.EXPIRED:
                return
        self._arm()

    def stop(self) -> None:
        with self._lock:
            if self._subscribed:
                self._activity_source.unsubscribe(self._on_activity)
                self._subscribed = False
            self._cancel_all_locked()

    def _on_activity(self, _kind: str) -> None:
        with self._lock:
            if self._phase is IdlePhase.EXPIRED or not self._subscribed:
                return
        self._arm()

    def _arm(self) -> None:
        with self._lock:
            self._cancel_all_locked()
            self._phase = IdlePhase.ACTIVE
            self._remaining = None
            self._fired = False
            self._handles = [
                self._scheduler.call_later(self.timeout_seconds, self._expire),
                self._scheduler.call_later(
                    max(0.0, self.timeout_seconds - self.warning_window),
                    self._enter_warning,
                ),
            ]
        self._notify()

    def _cancel_all_locked(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles = []
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _enter_warning(self) -> None:
        with self._lock:
            if self._phase is not IdlePhase.ACTIVE:
                return
            self._phase = IdlePhase.WARNING
            self._remaining = int(math.ceil(self.warning_window))
            self._tick_handle = self._scheduler.call_later(1.0, self._tick)
        logger.info("Session idle warning: %s seconds left", self._remaining)
        self._notify()

    def _tick(self) -> None:
        with self._lock:
            if self._phase is not IdlePhase.WARNING:
                return
            self._remaining = max(0, (self._remaining or 0) - 1)
            self._tick_handle = self._scheduler.call_later(1.0, self._tick) if self._remaining > 0 else None
        self._notify()

    def _expire(self) -> None:
        with self._lock:
            if self._fired:
                return
            self._fired = True
            self._phase = IdlePhase.EXPIRED
            self._remaining = 0
            self._cancel_all_locked()
        logger.info("Session expired after %.0f seconds of inactivity", self.timeout_seconds)
        self._notify()
        self._on_timeout()

    def _notify(self) -> None:
        if self._on_change is None:
            return
        with self._lock:
            phase, remaining = self._phase, self._remaining
        self._on_change(phase, remaining)
