from __future__ import annotations

import functools
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable

from permisoria.core.errors import PermisoriaError
from permisoria.core.time import now_utc
from permisoria.wizard.scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

PersistFn = Callable[[str, dict[str, Any]], Any]
StatusListener = Callable[["AutoSaveStatus"], None]


@dataclass(frozen=True, slots=True)
class AutoSaveStatus:
    last_saved_at: datetime | None = None
    is_saving: bool = False
    error: str | None = None


def _user_message(exc: Exception) -> str:
    if isinstance(exc, PermisoriaError):
        return f"Failed to save draft: {exc}"
    return "Failed to save draft. Your changes will be saved on the next attempt."


class AutosaveCoordinator:
    """Debounced draft persistence with a single save in flight.

    Every draft change restarts the debounce window. When it elapses the
    snapshot taken at that moment is persisted. Saves requested while one is
    running collapse into a single follow-up save, which picks up whatever the
    draft looks like once the running save has resolved.
    """

    def __init__(
        self,
        subscribe: Callable[[Callable[[Any], None]], Callable[[], None]],
        owner_id: str,
        persist: PersistFn,
        snapshot: Callable[[], dict[str, Any]],
        scheduler: Scheduler,
        debounce_seconds: float = 30.0,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.owner_id = owner_id
        self.debounce_seconds = debounce_seconds
        self._persist = persist
        self._snapshot = snapshot
        self._scheduler = scheduler
        self._clock = clock

        self._lock = threading.Lock()
        self._flight_idle = threading.Condition(self._lock)
        self._debounce: TimerHandle | None = None
        self._debounce_generation = 0
        self._in_flight = False
        self._flight_thread: int | None = None
        self._pending = False
        self._final_requested = False
        self._closed = False
        self._last_saved_snapshot: dict[str, Any] | None = None
        self._status = AutoSaveStatus()
        self._status_listeners: list[StatusListener] = []

        self._unsubscribe = subscribe(self._on_draft_change)

    @property
    def status(self) -> AutoSaveStatus:
        with self._lock:
            return self._status

    @property
    def last_saved_snapshot(self) -> dict[str, Any] | None:
        with self._lock:
            return self._last_saved_snapshot

    @property
    def has_unsaved_changes(self) -> bool:
        return self._snapshot() != self.last_saved_snapshot

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        with self._lock:
            self._status_listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._status_listeners:
                    self._status_listeners.remove(listener)

        return unsubscribe

    def trigger_save(self) -> bool:
        """Persist now. Returns False when the save was coalesced or the coordinator is closed."""
        with self._lock:
            self._cancel_debounce_locked()
        return self._request_save()

    def close(self) -> None:
        """Stop listening and make one best-effort save of unsaved changes.

        A save running on another thread is allowed to finish first. When
        called from inside ``persist`` the final save runs once the current
        flight returns.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._cancel_debounce_locked()
            if self._in_flight and self._flight_thread == threading.get_ident():
                self._final_requested = True
                run_now = False
            else:
                while self._in_flight:
                    self._flight_idle.wait()
                self._begin_flight_locked()
                run_now = True
        self._unsubscribe()

        if run_now:
            try:
                self._run_final_save()
            finally:
                self._end_flight()

    def _on_draft_change(self, _draft: Any) -> None:
        with self._lock:
            if self._closed:
                return
            self._cancel_debounce_locked()
            generation = self._debounce_generation
            self._debounce = self._scheduler.call_later(
                self.debounce_seconds,
                functools.partial(self._on_debounce_elapsed, generation),
            )

    def _on_debounce_elapsed(self, generation: int) -> None:
        with self._lock:
            # A timer thread that started before its handle was cancelled.
            if generation != self._debounce_generation:
                return
            self._debounce = None
            self._debounce_generation += 1
        self._request_save()

    def _cancel_debounce_locked(self) -> None:
        self._debounce_generation += 1
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None

    def _begin_flight_locked(self) -> None:
        self._in_flight = True
        self._flight_thread = threading.get_ident()

    def _end_flight(self) -> None:
        with self._lock:
            self._in_flight = False
            self._flight_thread = None
            self._flight_idle.notify_all()

    def _request_save(self) -> bool:
        with self._lock:
            if self._closed:
                return False
            if self._in_flight:
                self._pending = True
                return False
            self._begin_flight_locked()

        try:
            while True:
                self._run_one_save()
                with self._lock:
                    follow_up = self._pending and not self._closed
                    self._pending = False
                    final = self._final_requested
                    self._final_requested = False
                if follow_up:
                    continue
                if final:
                    self._run_final_save()
                return True
        finally:
            self._end_flight()

    def _run_one_save(self) -> None:
        sent = self._snapshot()
        self._update_status(is_saving=True, error=None)
        try:
            self._persist(self.owner_id, sent)
        except Exception as exc:
            logger.warning("Draft autosave failed for owner %s: %s", self.owner_id, exc)
            self._update_status(is_saving=False, error=_user_message(exc))
            return
        with self._lock:
            self._last_saved_snapshot = sent
        self._update_status(is_saving=False, error=None, last_saved_at=self._clock())

    def _run_final_save(self) -> None:
        current = self._snapshot()
        if current == self.last_saved_snapshot:
            return
        try:
            self._persist(self.owner_id, current)
        except Exception:
            logger.warning("Final draft save failed for owner %s", self.owner_id, exc_info=True)
            return
        with self._lock:
            self._last_saved_snapshot = current

    def _update_status(self, **changes: Any) -> None:
        with self._lock:
            self._status = replace(self._status, **changes)
            status = self._status
            listeners = list(self._status_listeners)
        for listener in listeners:
            listener(status)
