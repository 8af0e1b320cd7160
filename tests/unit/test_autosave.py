import threading

from permisoria.core.errors import TransientIOError
from permisoria.wizard.autosave import AutosaveCoordinator
from permisoria.wizard.draft import new_draft
from permisoria.wizard.scheduling import ManualScheduler
from permisoria.wizard.store import DraftStore


def _setup(persist, debounce_seconds: float = 30.0):
    scheduler = ManualScheduler()
    store = DraftStore(new_draft("owner-1"))
    coordinator = AutosaveCoordinator(
        store.subscribe,
        "owner-1",
        persist,
        store.get_draft_snapshot,
        scheduler,
        debounce_seconds=debounce_seconds,
    )
    return scheduler, store, coordinator


def test_rapid_changes_collapse_into_one_save_of_final_state() -> None:
    calls = []
    scheduler, store, coordinator = _setup(lambda owner_id, snap: calls.append((owner_id, snap)))

    for i in range(5):
        store.set_notes("overall", f"note {i}")
        scheduler.advance(5)
    assert calls == []

    scheduler.advance(30)
    assert len(calls) == 1
    assert calls[0][0] == "owner-1"
    assert calls[0][1]["notes"]["overall"] == "note 4"
    assert coordinator.status.last_saved_at is not None
    assert coordinator.status.error is None
    assert coordinator.status.is_saving is False


def test_trigger_save_cancels_pending_debounce() -> None:
    calls = []
    scheduler, store, coordinator = _setup(lambda owner_id, snap: calls.append(snap))

    store.set_notes("identity", "ID checked in person")
    assert coordinator.trigger_save() is True
    assert len(calls) == 1

    scheduler.advance(60)
    assert len(calls) == 1


def test_failed_save_reports_error_and_retry_resends() -> None:
    calls = []
    failing = {"on": True}

    def persist(owner_id, snap):
        if failing["on"]:
            raise TransientIOError("Could not reach server")
        calls.append(snap)

    scheduler, store, coordinator = _setup(persist)
    store.set_notes("overall", "draft text")
    coordinator.trigger_save()

    status = coordinator.status
    assert status.is_saving is False
    assert status.error is not None and "Failed to save draft" in status.error
    assert status.last_saved_at is None
    assert coordinator.last_saved_snapshot is None

    failing["on"] = False
    coordinator.trigger_save()
    assert len(calls) == 1
    assert calls[0]["notes"]["overall"] == "draft text"
    assert coordinator.status.error is None


def test_requests_during_flight_coalesce_into_one_follow_up() -> None:
    calls = []
    holder = {}

    def persist(owner_id, snap):
        calls.append(snap)
        if len(calls) == 1:
            holder["store"].set_notes("overall", "changed during save")
            assert holder["coordinator"].trigger_save() is False
            assert holder["coordinator"].trigger_save() is False

    scheduler, store, coordinator = _setup(persist)
    holder.update(store=store, coordinator=coordinator)

    coordinator.trigger_save()

    assert len(calls) == 2
    assert calls[1]["notes"]["overall"] == "changed during save"
    assert scheduler.pending() == 0


def test_bookkeeping_uses_snapshot_that_was_sent() -> None:
    calls = []
    holder = {}

    def persist(owner_id, snap):
        calls.append(snap)
        if len(calls) == 1:
            holder["store"].set_notes("address", "typed while saving")

    scheduler, store, coordinator = _setup(persist)
    holder["store"] = store

    coordinator.trigger_save()
    assert coordinator.last_saved_snapshot == calls[0]
    assert coordinator.has_unsaved_changes is True

    coordinator.close()
    assert len(calls) == 2
    assert calls[1]["notes"]["address"] == "typed while saving"


def test_close_saves_only_when_dirty_and_never_raises() -> None:
    calls = []
    scheduler, store, coordinator = _setup(lambda owner_id, snap: calls.append(snap))
    store.set_notes("overall", "saved")
    coordinator.trigger_save()

    coordinator.close()
    assert len(calls) == 1

    def broken(owner_id, snap):
        raise TransientIOError("offline")

    scheduler, store, coordinator = _setup(broken)
    store.set_notes("overall", "unsaved")
    coordinator.close()

    store.set_notes("overall", "after close")
    assert scheduler.pending() == 0


def test_status_listeners_see_saving_transitions() -> None:
    seen = []
    scheduler, store, coordinator = _setup(lambda owner_id, snap: None)
    coordinator.on_status_change(seen.append)

    store.set_notes("overall", "x")
    scheduler.advance(30)

    assert [s.is_saving for s in seen] == [True, False]
    assert seen[-1].last_saved_at is not None


def test_close_waits_for_running_save_before_final_save() -> None:
    started = threading.Event()
    release = threading.Event()
    lock = threading.Lock()
    state = {"active": 0, "max_active": 0}
    server = []

    def persist(owner_id, snap):
        with lock:
            state["active"] += 1
            state["max_active"] = max(state["max_active"], state["active"])
        if not started.is_set():
            started.set()
            release.wait(timeout=5)
        with lock:
            server.append(snap["currentStep"])
            state["active"] -= 1

    scheduler, store, coordinator = _setup(persist)
    worker = threading.Thread(target=coordinator.trigger_save)
    worker.start()
    assert started.wait(timeout=5)

    store.set_current_step(2)
    closer = threading.Thread(target=coordinator.close)
    closer.start()
    closer.join(timeout=0.2)
    assert closer.is_alive()

    release.set()
    worker.join(timeout=5)
    closer.join(timeout=5)

    assert state["max_active"] == 1
    assert server == [1, 2]
    assert coordinator.last_saved_snapshot["currentStep"] == 2


def test_close_from_inside_persist_saves_after_flight() -> None:
    calls = []
    holder = {}

    def persist(owner_id, snap):
        calls.append(snap["currentStep"])
        if len(calls) == 1:
            holder["store"].set_current_step(3)
            holder["coordinator"].close()

    scheduler, store, coordinator = _setup(persist)
    holder.update(store=store, coordinator=coordinator)

    assert coordinator.trigger_save() is True
    assert calls == [1, 3]
    assert coordinator.last_saved_snapshot["currentStep"] == 3


class _UncancellableScheduler:
    """Timers that have already started firing ignore ``cancel``."""

    class _Handle:
        def cancel(self) -> None:
            return None

    def __init__(self) -> None:
        self.callbacks = []

    def call_later(self, delay, callback):
        self.callbacks.append(callback)
        return self._Handle()


def test_superseded_debounce_timer_does_not_save() -> None:
    calls = []
    scheduler = _UncancellableScheduler()
    store = DraftStore(new_draft("owner-1"))
    coordinator = AutosaveCoordinator(
        store.subscribe, "owner-1", lambda owner_id, snap: calls.append(snap), store.get_draft_snapshot, scheduler
    )

    store.set_notes("overall", "first")
    store.set_notes("overall", "second")
    first_timer, second_timer = scheduler.callbacks

    first_timer()
    assert calls == []

    assert coordinator.trigger_save() is True
    second_timer()
    assert len(calls) == 1
    assert calls[0]["notes"]["overall"] == "second"
