from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from permisoria.wizard.draft import AffiliationType, ChecklistCategory, VerificationDraft, is_category_complete
from permisoria.wizard.store import DraftStore


@dataclass(frozen=True, slots=True)
class StepDefinition:
    number: int
    key: str
    title: str


STEPS = (
    StepDefinition(1, "welcome", "Welcome"),
    StepDefinition(2, "identity", "Identity Verification"),
    StepDefinition(3, "address", "Address Verification"),
    StepDefinition(4, "business", "Business Affiliation"),
    StepDefinition(5, "summary", "Summary & Decision"),
    StepDefinition(6, "completion", "Completion"),
)

FIRST_STEP = STEPS[0].number
LAST_STEP = STEPS[-1].number


@dataclass(frozen=True, slots=True)
class StepState:
    number: int
    key: str
    title: str
    is_completed: bool
    is_active: bool
    is_locked: bool


def _business_details_filled(draft: VerificationDraft) -> bool:
    if draft.affiliation_type is AffiliationType.NEW_INTENT:
        return bool(draft.new_business_intent.legal_name.strip())
    if draft.affiliation_type is AffiliationType.EXISTING_CLAIM:
        return bool(draft.business_claim.business_id.strip())
    return False


def can_leave_step(draft: VerificationDraft, step: int) -> bool:
    if step == 1:
        return True
    if step == 2:
        return is_category_complete(draft, ChecklistCategory.IDENTITY)
    if step == 3:
        return is_category_complete(draft, ChecklistCategory.ADDRESS)
    if step == 4:
        return is_category_complete(draft, ChecklistCategory.BUSINESS) and _business_details_filled(draft)
    if step == 5:
        return draft.final_decision.status is not None
    return False


class StepController:
    """Moves the wizard through its fixed steps, gating forward moves on draft content."""

    def __init__(self, store: DraftStore, trigger_save: Callable[[], object]) -> None:
        self.store = store
        self._trigger_save = trigger_save

    @property
    def current_step(self) -> int:
        return self.store.draft.current_step

    def step_states(self) -> list[StepState]:
        current = self.current_step
        return [
            StepState(
                number=step.number,
                key=step.key,
                title=step.title,
                is_completed=step.number < current,
                is_active=step.number == current,
                is_locked=step.number > current,
            )
            for step in STEPS
        ]

    def can_go_next(self) -> bool:
        return can_leave_step(self.store.draft, self.current_step)

    def go_next(self) -> bool:
        if not self.can_go_next():
            return False
        self.store.set_current_step(self.current_step + 1)
        self._trigger_save()
        return True

    def go_prev(self) -> bool:
        if self.current_step <= FIRST_STEP:
            return False
        self.store.set_current_step(self.current_step - 1)
        return True

    def go_to_step(self, step: int) -> bool:
        if not FIRST_STEP <= step <= self.current_step:
            return False
        self.store.set_current_step(step)
        return True
