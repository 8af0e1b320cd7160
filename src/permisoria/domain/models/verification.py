from __future__ import annotations

from dataclasses import dataclass

# Statuses a reviewer may only record together with an explanatory note.
DOCUMENT_STATUSES_REQUIRING_NOTES = frozenset({"OTHER_ISSUE", "SUSPECTED_FRAUD", "NOT_APPLICABLE"})

SECTION_KEYS = ("identity", "address", "businessAffiliation")

ATTEMPT_IN_PROGRESS = "IN_PROGRESS"

OWNER_PENDING_VERIFICATION = "PENDING_VERIFICATION"

# History actions appended to verification_history.
HISTORY_STARTED = "STARTED"
HISTORY_DRAFT_SAVED = "DRAFT_SAVED"
HISTORY_DOCUMENT_UPDATED = "DOCUMENT_VERIFICATION_UPDATED"
HISTORY_DECISION_SUBMITTED = "DECISION_SUBMITTED"


@dataclass(slots=True)
class VerificationAttempt:
    id: str
    business_owner_id: str
    initiated_by: str
    status: str
    sections_json: str
    draft_data_json: str | None
    decision: str | None
    decision_reason: str | None
    created_at: str
    last_updated: str
    completed_at: str | None

    @property
    def is_finalized(self) -> bool:
        return self.completed_at is not None


@dataclass(slots=True)
class DocumentVerification:
    id: str
    verification_id: str
    document_id: str
    status: str
    notes: str | None
    verified_by: str
    verified_at: str


@dataclass(slots=True)
class VerificationHistoryEvent:
    id: str
    verification_id: str
    action: str
    performed_by: str
    details_json: str
    step_number: int | None
    performed_at: str


@dataclass(slots=True)
class ActivityLogEntry:
    id: str
    business_owner_id: str
    entity_type: str
    entity_id: str | None
    action: str
    action_description: str
    performed_by: str
    details_json: str
    performed_at: str
