from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Mapping

from permisoria.core.errors import ValidationError
from permisoria.domain.models.owner import OWNER_FIELD_NAMES
from permisoria.domain.models.payloads import DraftPayload, parse_payload


class ChecklistCategory(str, Enum):
    IDENTITY = "identity"
    ADDRESS = "address"
    BUSINESS = "business"


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    NEEDS_REVIEW = "NEEDS_REVIEW"


class DocumentStatus(str, Enum):
    VERIFIED = "VERIFIED"
    UNREADABLE = "UNREADABLE"
    EXPIRED = "EXPIRED"
    INCONSISTENT_DATA = "INCONSISTENT_DATA"
    SUSPECTED_FRAUD = "SUSPECTED_FRAUD"
    OTHER_ISSUE = "OTHER_ISSUE"
    NOT_APPLICABLE = "NOT_APPLICABLE"
    PENDING = "PENDING"


class Decision(str, Enum):
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    NEEDS_INFO = "NEEDS_INFO"


class AffiliationType(str, Enum):
    NEW_INTENT = "NEW_INTENT"
    EXISTING_CLAIM = "EXISTING_CLAIM"


# Keys for per-category status and notes; "overall" sits beside the checklists.
STATUS_KEYS = ("identity", "address", "business", "overall")

# Categories whose N/A items must carry a justification.
NA_REASON_REQUIRED = frozenset(ChecklistCategory)


@dataclass(frozen=True, slots=True)
class ChecklistItem:
    id: str
    text: str
    checked: bool = False
    is_not_applicable: bool = False
    na_reason: str = ""


DEFAULT_CHECKLIST_ITEMS: dict[ChecklistCategory, tuple[ChecklistItem, ...]] = {
    ChecklistCategory.IDENTITY: (
        ChecklistItem("id-match", "Name on ID matches application"),
        ChecklistItem("id-valid", "ID document is current and not expired"),
        ChecklistItem("photo-match", "Photo on ID is clear and identifiable"),
        ChecklistItem("tax-id-valid", "Tax ID is valid and matches records"),
    ),
    ChecklistCategory.ADDRESS: (
        ChecklistItem("address-match", "Address matches proof of address document"),
        ChecklistItem("address-valid", "Address is complete and deliverable"),
        ChecklistItem("proof-recent", "Proof of address is dated within the last 3 months"),
    ),
    ChecklistCategory.BUSINESS: (
        ChecklistItem("business-owner", "Owner relationship to the business is documented"),
        ChecklistItem("business-active", "Business registration is active"),
        ChecklistItem("business-docs", "Supporting business documents are present"),
    ),
}


@dataclass(frozen=True, slots=True)
class Checklists:
    identity: tuple[ChecklistItem, ...] = DEFAULT_CHECKLIST_ITEMS[ChecklistCategory.IDENTITY]
    address: tuple[ChecklistItem, ...] = DEFAULT_CHECKLIST_ITEMS[ChecklistCategory.ADDRESS]
    business: tuple[ChecklistItem, ...] = DEFAULT_CHECKLIST_ITEMS[ChecklistCategory.BUSINESS]

    def items(self, category: ChecklistCategory) -> tuple[ChecklistItem, ...]:
        return getattr(self, category.value)

    def with_items(self, category: ChecklistCategory, items: tuple[ChecklistItem, ...]) -> "Checklists":
        return replace(self, **{category.value: items})


@dataclass(frozen=True, slots=True)
class DocumentStatusEntry:
    document_id: str
    status: DocumentStatus = DocumentStatus.PENDING
    note: str = ""


@dataclass(frozen=True, slots=True)
class FinalDecision:
    status: Decision | None = None
    reason: str = ""
    additional_info_requested: str = ""


@dataclass(frozen=True, slots=True)
class NewBusinessIntent:
    legal_name: str = ""
    dba: str = ""
    business_type: str = ""


@dataclass(frozen=True, slots=True)
class BusinessClaim:
    business_id: str = ""
    ownership_percentage: str = ""
    role_in_business: str = ""


def _default_statuses() -> dict[str, ReviewStatus]:
    return {key: ReviewStatus.PENDING for key in STATUS_KEYS}


def _default_notes() -> dict[str, str]:
    return {key: "" for key in STATUS_KEYS}


@dataclass(frozen=True, slots=True)
class VerificationDraft:
    """Snapshot of everything the reviewer has entered so far.

    Values are never mutated in place: every operation below returns a new
    draft, or the very same object when nothing changed. The dict fields are
    copied on write and must be treated as read-only by callers.
    """

    owner_id: str
    owner_fields: dict[str, str] = field(default_factory=dict)
    checklists: Checklists = field(default_factory=Checklists)
    verification_status: dict[str, ReviewStatus] = field(default_factory=_default_statuses)
    notes: dict[str, str] = field(default_factory=_default_notes)
    document_statuses: tuple[DocumentStatusEntry, ...] = ()
    final_decision: FinalDecision = field(default_factory=FinalDecision)
    affiliation_type: AffiliationType | None = None
    new_business_intent: NewBusinessIntent = field(default_factory=NewBusinessIntent)
    business_claim: BusinessClaim = field(default_factory=BusinessClaim)
    current_step: int = 1

    def to_payload(self) -> dict[str, Any]:
        return {
            "ownerId": self.owner_id,
            "ownerFields": {name: self.owner_fields.get(name, "") for name in OWNER_FIELD_NAMES},
            "checklists": {
                category.value: [
                    {
                        "id": item.id,
                        "text": item.text,
                        "checked": item.checked,
                        "isNotApplicable": item.is_not_applicable,
                        "naReason": item.na_reason,
                    }
                    for item in self.checklists.items(category)
                ]
                for category in ChecklistCategory
            },
            "verificationStatus": {key: self.verification_status[key].value for key in STATUS_KEYS},
            "notes": {key: self.notes.get(key, "") for key in STATUS_KEYS},
            "documentStatuses": [
                {"documentId": entry.document_id, "status": entry.status.value, "note": entry.note}
                for entry in self.document_statuses
            ],
            "finalDecision": {
                "status": self.final_decision.status.value if self.final_decision.status else "",
                "reason": self.final_decision.reason,
                "additionalInfoRequested": self.final_decision.additional_info_requested,
            },
            "affiliationType": self.affiliation_type.value if self.affiliation_type else None,
            "newBusinessIntent": {
                "legalName": self.new_business_intent.legal_name,
                "dba": self.new_business_intent.dba,
                "businessType": self.new_business_intent.business_type,
            },
            "businessClaim": {
                "businessId": self.business_claim.business_id,
                "ownershipPercentage": self.business_claim.ownership_percentage,
                "roleInBusiness": self.business_claim.role_in_business,
            },
            "currentStep": self.current_step,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], owner_id: str | None = None) -> "VerificationDraft":
        """Rebuild a draft from its wire form, e.g. to resume a saved attempt."""
        model: DraftPayload = parse_payload(DraftPayload, dict(payload), "draft")
        resolved_owner = model.owner_id or owner_id
        if not resolved_owner:
            raise ValidationError("Draft payload has no owner id")

        checklists = Checklists()
        for category in ChecklistCategory:
            raw_items = getattr(model.checklists, category.value)
            if not raw_items:
                continue
            checklists = checklists.with_items(
                category,
                tuple(
                    ChecklistItem(
                        id=item.id,
                        text=item.text,
                        checked=item.checked,
                        is_not_applicable=item.is_not_applicable,
                        na_reason=item.na_reason if item.is_not_applicable else "",
                    )
                    for item in raw_items
                ),
            )

        fields = {name: "" for name in OWNER_FIELD_NAMES}
        fields.update({k: v for k, v in model.owner_fields.items() if k in fields})

        return cls(
            owner_id=resolved_owner,
            owner_fields=fields,
            checklists=checklists,
            verification_status={
                key: ReviewStatus(getattr(model.verification_status, key)) for key in STATUS_KEYS
            },
            notes={key: getattr(model.notes, key) for key in STATUS_KEYS},
            document_statuses=tuple(
                DocumentStatusEntry(entry.document_id, DocumentStatus(entry.status), entry.note)
                for entry in model.document_statuses
            ),
            final_decision=FinalDecision(
                status=Decision(model.final_decision.status) if model.final_decision.status else None,
                reason=model.final_decision.reason,
                additional_info_requested=model.final_decision.additional_info_requested,
            ),
            affiliation_type=AffiliationType(model.affiliation_type) if model.affiliation_type else None,
            new_business_intent=NewBusinessIntent(
                legal_name=model.new_business_intent.legal_name,
                dba=model.new_business_intent.dba,
                business_type=model.new_business_intent.business_type,
            ),
            business_claim=BusinessClaim(
                business_id=model.business_claim.business_id,
                ownership_percentage=model.business_claim.ownership_percentage,
                role_in_business=model.business_claim.role_in_business,
            ),
            current_step=model.current_step,
        )


def new_draft(
    owner_id: str,
    owner_fields: Mapping[str, Any] | None = None,
    document_ids: Iterable[str] = (),
) -> VerificationDraft:
    """Start a fresh draft seeded from the owner record."""
    source = owner_fields or {}
    return VerificationDraft(
        owner_id=owner_id,
        owner_fields={name: str(source.get(name) or "") for name in OWNER_FIELD_NAMES},
        document_statuses=tuple(DocumentStatusEntry(doc_id) for doc_id in document_ids),
    )


def _category(value: ChecklistCategory | str) -> ChecklistCategory:
    try:
        return ChecklistCategory(value)
    except ValueError:
        raise ValidationError(f"Unknown checklist category: {value}") from None


def _status_key(value: str) -> str:
    key = value.value if isinstance(value, ChecklistCategory) else value
    if key not in STATUS_KEYS:
        raise ValidationError(f"Unknown status key: {value}")
    return key


def _update_item(draft: VerificationDraft, category, item_id: str, change) -> VerificationDraft:
    cat = _category(category)
    items = draft.checklists.items(cat)
    for index, item in enumerate(items):
        if item.id == item_id:
            updated = change(item)
            if updated == item:
                return draft
            new_items = items[:index] + (updated,) + items[index + 1 :]
            return replace(draft, checklists=draft.checklists.with_items(cat, new_items))
    raise ValidationError(f"Unknown checklist item {item_id!r} in {cat.value}")


def toggle_checklist_item(draft: VerificationDraft, category, item_id: str) -> VerificationDraft:
    return _update_item(
        draft,
        category,
        item_id,
        lambda item: replace(item, checked=not item.checked, is_not_applicable=False, na_reason=""),
    )


def toggle_not_applicable(draft: VerificationDraft, category, item_id: str) -> VerificationDraft:
    def change(item: ChecklistItem) -> ChecklistItem:
        if item.is_not_applicable:
            return replace(item, is_not_applicable=False, na_reason="")
        return replace(item, is_not_applicable=True, checked=False)

    return _update_item(draft, category, item_id, change)


def set_na_reason(draft: VerificationDraft, category, item_id: str, reason: str) -> VerificationDraft:
    def change(item: ChecklistItem) -> ChecklistItem:
        if not item.is_not_applicable:
            raise ValidationError(f"Checklist item {item_id!r} is not marked N/A")
        return replace(item, na_reason=reason)

    return _update_item(draft, category, item_id, change)


def set_verification_status(draft: VerificationDraft, key: str, status: ReviewStatus | str) -> VerificationDraft:
    resolved_key = _status_key(key)
    try:
        value = ReviewStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown verification status: {status}") from None
    if draft.verification_status.get(resolved_key) == value:
        return draft
    return replace(draft, verification_status={**draft.verification_status, resolved_key: value})


def set_notes(draft: VerificationDraft, key: str, text: str) -> VerificationDraft:
    resolved_key = _status_key(key)
    if draft.notes.get(resolved_key, "") == text:
        return draft
    return replace(draft, notes={**draft.notes, resolved_key: text})


def set_document_status(
    draft: VerificationDraft,
    document_id: str,
    status: DocumentStatus | str,
) -> VerificationDraft:
    try:
        value = DocumentStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown document status: {status}") from None

    entries = draft.document_statuses
    for index, entry in enumerate(entries):
        if entry.document_id == document_id:
            if entry.status == value:
                return draft
            updated = entries[:index] + (replace(entry, status=value),) + entries[index + 1 :]
            return replace(draft, document_statuses=updated)
    return replace(draft, document_statuses=entries + (DocumentStatusEntry(document_id, value),))


def set_document_note(draft: VerificationDraft, document_id: str, note: str) -> VerificationDraft:
    entries = draft.document_statuses
    for index, entry in enumerate(entries):
        if entry.document_id == document_id:
            if entry.note == note:
                return draft
            updated = entries[:index] + (replace(entry, note=note),) + entries[index + 1 :]
            return replace(draft, document_statuses=updated)
    return draft


def set_owner_field(draft: VerificationDraft, name: str, value: str) -> VerificationDraft:
    if name not in OWNER_FIELD_NAMES:
        raise ValidationError(f"Unknown owner field: {name}")
    if draft.owner_fields.get(name, "") == value:
        return draft
    return replace(draft, owner_fields={**draft.owner_fields, name: value})


def set_affiliation_type(draft: VerificationDraft, value: AffiliationType | str | None) -> VerificationDraft:
    if value in (None, ""):
        resolved = None
    else:
        try:
            resolved = AffiliationType(value)
        except ValueError:
            raise ValidationError(f"Unknown affiliation type: {value}") from None
    if draft.affiliation_type == resolved:
        return draft
    return replace(draft, affiliation_type=resolved)


def _replace_fields(current, changes: Mapping[str, Any], what: str):
    known = set(current.__dataclass_fields__)
    unknown = sorted(set(changes) - known)
    if unknown:
        raise ValidationError(f"Unknown {what} field(s): {', '.join(unknown)}")
    updated = replace(current, **changes)
    return current if updated == current else updated


def set_new_business_intent(draft: VerificationDraft, **changes: str) -> VerificationDraft:
    updated = _replace_fields(draft.new_business_intent, changes, "new business intent")
    if updated is draft.new_business_intent:
        return draft
    return replace(draft, new_business_intent=updated)


def set_business_claim(draft: VerificationDraft, **changes: str) -> VerificationDraft:
    updated = _replace_fields(draft.business_claim, changes, "business claim")
    if updated is draft.business_claim:
        return draft
    return replace(draft, business_claim=updated)


def set_final_decision(draft: VerificationDraft, **changes: Any) -> VerificationDraft:
    if "status" in changes:
        status = changes["status"]
        if status in (None, ""):
            changes["status"] = None
        else:
            try:
                changes["status"] = Decision(status)
            except ValueError:
                raise ValidationError(f"Unknown decision: {status}") from None
    updated = _replace_fields(draft.final_decision, changes, "final decision")
    if updated is draft.final_decision:
        return draft
    return replace(draft, final_decision=updated)


def set_current_step(draft: VerificationDraft, step: int) -> VerificationDraft:
    if not 1 <= int(step) <= 6:
        raise ValidationError(f"Step out of range: {step}")
    if draft.current_step == step:
        return draft
    return replace(draft, current_step=int(step))


def are_all_checked(draft: VerificationDraft, category) -> bool:
    """True when every item in the category is either checked or marked N/A."""
    return all(item.checked or item.is_not_applicable for item in draft.checklists.items(_category(category)))


def missing_na_reasons(draft: VerificationDraft, category) -> tuple[str, ...]:
    return tuple(
        item.id
        for item in draft.checklists.items(_category(category))
        if item.is_not_applicable and not item.na_reason.strip()
    )


def is_category_complete(draft: VerificationDraft, category) -> bool:
    cat = _category(category)
    if not are_all_checked(draft, cat):
        return False
    return cat not in NA_REASON_REQUIRED or not missing_na_reasons(draft, cat)
