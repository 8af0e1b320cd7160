from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

POINTER_MOVE = "pointer_move"
POINTER_DOWN = "pointer_down"
KEY_PRESS = "key_press"
SCROLL = "scroll"
TOUCH_START = "touch_start"

ACTIVITY_KINDS = frozenset({POINTER_MOVE, POINTER_DOWN, KEY_PRESS, SCROLL, TOUCH_START})

ActivityListener = Callable[[str], None]


class ActivitySignalHub:
    """Fan-out point for user-activity signals coming from the host UI."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[ActivityListener] = []

    def subscribe(self, listener: ActivityListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: ActivityListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, kind: str) -> None:
        if kind not in ACTIVITY_KINDS:
            raise ValueError(f"Unknown activity signal: {kind}")
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(kind)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)
