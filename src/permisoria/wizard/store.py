from __future__ import annotations

import threading
from typing import Any, Callable

from permisoria.wizard import draft as ops
from permisoria.wizard.draft import ChecklistCategory, VerificationDraft

DraftListener = Callable[[VerificationDraft], None]


class DraftStore:
    """Holds the current draft value and tells subscribers when it changes."""

    def __init__(self, initial: VerificationDraft) -> None:
        self._draft = initial
        self._lock = threading.RLock()
        self._listeners: list[DraftListener] = []

    @property
    def draft(self) -> VerificationDraft:
        with self._lock:
            return self._draft

    @property
    def owner_id(self) -> str:
        return self.draft.owner_id

    def subscribe(self, listener: DraftListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def apply(self, fn: Callable[..., VerificationDraft], *args: Any, **kwargs: Any) -> VerificationDraft:
        with self._lock:
            current = self._draft
            updated = fn(current, *args, **kwargs)
            if updated is current or updated == current:
                return current
            self._draft = updated
            listeners = list(self._listeners)
        for listener in listeners:
            listener(updated)
        return updated

    def get_draft_snapshot(self) -> dict[str, Any]:
        return self.draft.to_payload()

    def are_all_checked(self, category: ChecklistCategory | str) -> bool:
        return ops.are_all_checked(self.draft, category)

    def missing_na_reasons(self, category: ChecklistCategory | str) -> tuple[str, ...]:
        return ops.missing_na_reasons(self.draft, category)

    def is_category_complete(self, category: ChecklistCategory | str) -> bool:
        return ops.is_category_complete(self.draft, category)

    def toggle_checklist_item(self, category, item_id: str) -> VerificationDraft:
        return self.apply(ops.toggle_checklist_item, category, item_id)

    def toggle_not_applicable(self, category, item_id: str) -> VerificationDraft:
        return self.apply(ops.toggle_not_applicable, category, item_id)

    def set_na_reason(self, category, item_id: str, reason: str) -> VerificationDraft:
        return self.apply(ops.set_na_reason, category, item_id, reason)

    def set_verification_status(self, key: str, status) -> VerificationDraft:
        return self.apply(ops.set_verification_status, key, status)

    def set_notes(self, key: str, text: str) -> VerificationDraft:
        return self.apply(ops.set_notes, key, text)

    def set_document_status(self, document_id: str, status) -> VerificationDraft:
        return self.apply(ops.set_document_status, document_id, status)

    def set_document_note(self, document_id: str, note: str) -> VerificationDraft:
        return self.apply(ops.set_document_note, document_id, note)

    def set_owner_field(self, name: str, value: str) -> VerificationDraft:
        return self.apply(ops.set_owner_field, name, value)

    def set_affiliation_type(self, value) -> VerificationDraft:
        return self.apply(ops.set_affiliation_type, value)

    def set_new_business_intent(self, **changes: str) -> VerificationDraft:
        return self.apply(ops.set_new_business_intent, **changes)

    def set_business_claim(self, **changes: str) -> VerificationDraft:
        return self.apply(ops.set_business_claim, **changes)

    def set_final_decision(self, **changes: Any) -> VerificationDraft:
        return self.apply(ops.set_final_decision, **changes)

    def set_current_step(self, step: int) -> VerificationDraft:
        return self.apply(ops.set_current_step, step)
