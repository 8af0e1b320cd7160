from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from permisoria.core.config import AppSettings
from permisoria.wizard.activity import ActivitySignalHub
from permisoria.wizard.autosave import AutosaveCoordinator, PersistFn
from permisoria.wizard.draft import VerificationDraft, new_draft
from permisoria.wizard.idle_timer import IdleTimer
from permisoria.wizard.scheduling import Scheduler, ThreadingScheduler
from permisoria.wizard.steps import StepController
from permisoria.wizard.store import DraftStore

logger = logging.getLogger(__name__)


class WizardSession:
    """One reviewer working through the verification wizard for one owner.

    Owns the draft store, its autosave coordinator, the step controller and the
    idle timer. On idle expiry the draft is saved and ``on_expired`` is called
    so the host can end the session.
    """

    def __init__(
        self,
        draft: VerificationDraft,
        persist: PersistFn,
        *,
        scheduler: Scheduler | None = None,
        activity: ActivitySignalHub | None = None,
        settings: AppSettings | None = None,
        on_expired: Callable[[], None] | None = None,
    ) -> None:
        settings = settings or AppSettings()
        self.scheduler = scheduler or ThreadingScheduler()
        self.activity = activity or ActivitySignalHub()
        self.store = DraftStore(draft)
        self.autosave = AutosaveCoordinator(
            self.store.subscribe,
            draft.owner_id,
            persist,
            self.store.get_draft_snapshot,
            self.scheduler,
            debounce_seconds=settings.autosave_seconds,
        )
        self.steps = StepController(self.store, self.autosave.trigger_save)
        self.idle_timer = IdleTimer(
            self.activity,
            self._handle_timeout,
            self.scheduler,
            timeout_minutes=settings.idle_timeout_minutes,
        )
        self._on_expired = on_expired
        self.expired = False

    @classmethod
    def resume(
        cls,
        owner_id: str,
        persist: PersistFn,
        *,
        saved_draft: Mapping[str, Any] | None = None,
        owner_fields: Mapping[str, Any] | None = None,
        document_ids: tuple[str, ...] = (),
        **kwargs: Any,
    ) -> "WizardSession":
        if saved_draft:
            draft = VerificationDraft.from_payload(saved_draft, owner_id=owner_id)
        else:
            draft = new_draft(owner_id, owner_fields, document_ids)
        return cls(draft, persist, **kwargs)

    def start(self) -> None:
        self.expired = False
        self.idle_timer.start()

    def close(self) -> None:
        self.idle_timer.stop()
        self.autosave.close()

    def __enter__(self) -> "WizardSession":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _handle_timeout(self) -> None:
        self.expired = True
        logger.info("Wizard session for owner %s expired", self.store.owner_id)
        self.autosave.trigger_save()
        if self._on_expired is not None:
            self._on_expired()
