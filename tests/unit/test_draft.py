import pytest

from permisoria.core.errors import ValidationError
from permisoria.wizard.draft import (
    AffiliationType,
    ChecklistCategory,
    Decision,
    DocumentStatus,
    ReviewStatus,
    VerificationDraft,
    are_all_checked,
    is_category_complete,
    missing_na_reasons,
    new_draft,
    set_affiliation_type,
    set_business_claim,
    set_document_note,
    set_document_status,
    set_final_decision,
    set_na_reason,
    set_notes,
    set_owner_field,
    set_verification_status,
    toggle_checklist_item,
    toggle_not_applicable,
)
from permisoria.wizard.store import DraftStore


def _item(draft: VerificationDraft, category: ChecklistCategory, item_id: str):
    return next(item for item in draft.checklists.items(category) if item.id == item_id)


def test_new_draft_seeds_owner_fields_and_default_checklists() -> None:
    draft = new_draft("owner-1", {"first_name": "Ana", "last_name": "Rivera", "city": None}, ["doc-1"])

    assert draft.owner_fields["first_name"] == "Ana"
    assert draft.owner_fields["city"] == ""
    assert [item.id for item in draft.checklists.identity] == ["id-match", "id-valid", "photo-match", "tax-id-valid"]
    assert len(draft.checklists.address) == 3
    assert len(draft.checklists.business) == 3
    assert draft.verification_status["overall"] is ReviewStatus.PENDING
    assert draft.document_statuses[0].document_id == "doc-1"
    assert draft.document_statuses[0].status is DocumentStatus.PENDING
    assert draft.current_step == 1


def test_checked_and_not_applicable_are_mutually_exclusive() -> None:
    draft = new_draft("owner-1")

    draft = toggle_checklist_item(draft, "identity", "id-match")
    assert _item(draft, ChecklistCategory.IDENTITY, "id-match").checked is True

    draft = toggle_not_applicable(draft, "identity", "id-match")
    item = _item(draft, ChecklistCategory.IDENTITY, "id-match")
    assert item.is_not_applicable is True
    assert item.checked is False

    draft = set_na_reason(draft, "identity", "id-match", "Owner is a legal entity")
    draft = toggle_checklist_item(draft, "identity", "id-match")
    item = _item(draft, ChecklistCategory.IDENTITY, "id-match")
    assert item.checked is True
    assert item.is_not_applicable is False
    assert item.na_reason == ""


def test_turning_not_applicable_off_clears_reason() -> None:
    draft = toggle_not_applicable(new_draft("owner-1"), "address", "proof-recent")
    draft = set_na_reason(draft, "address", "proof-recent", "Utility bills not issued locally")
    assert missing_na_reasons(draft, "address") == ()

    draft = toggle_not_applicable(draft, "address", "proof-recent")
    item = _item(draft, ChecklistCategory.ADDRESS, "proof-recent")
    assert item.is_not_applicable is False
    assert item.na_reason == ""


def test_na_reason_requires_not_applicable_item() -> None:
    with pytest.raises(ValidationError):
        set_na_reason(new_draft("owner-1"), "identity", "id-match", "why")


def test_operations_are_pure() -> None:
    original = new_draft("owner-1")
    updated = toggle_checklist_item(original, ChecklistCategory.BUSINESS, "business-active")

    assert updated is not original
    assert _item(original, ChecklistCategory.BUSINESS, "business-active").checked is False
    assert _item(updated, ChecklistCategory.BUSINESS, "business-active").checked is True


def test_unchanged_operations_return_same_value() -> None:
    draft = new_draft("owner-1", {"email": "ana@example.com"})

    assert set_owner_field(draft, "email", "ana@example.com") is draft
    assert set_notes(draft, "identity", "") is draft
    assert set_verification_status(draft, "overall", "PENDING") is draft
    assert set_affiliation_type(draft, None) is draft
    assert set_document_note(draft, "missing-doc", "note") is draft
    assert set_business_claim(draft, business_id="") is draft


def test_unknown_category_item_or_field_raises() -> None:
    draft = new_draft("owner-1")

    with pytest.raises(ValidationError):
        toggle_checklist_item(draft, "finance", "id-match")
    with pytest.raises(ValidationError):
        toggle_checklist_item(draft, "identity", "no-such-item")
    with pytest.raises(ValidationError):
        set_owner_field(draft, "favourite_colour", "blue")
    with pytest.raises(ValidationError):
        set_verification_status(draft, "identity", "MAYBE")
    with pytest.raises(ValidationError):
        set_business_claim(draft, nickname="x")


def test_document_status_updates_existing_or_appends() -> None:
    draft = new_draft("owner-1", document_ids=["doc-1"])

    draft = set_document_status(draft, "doc-1", "VERIFIED")
    draft = set_document_status(draft, "doc-2", DocumentStatus.EXPIRED)
    assert [(e.document_id, e.status) for e in draft.document_statuses] == [
        ("doc-1", DocumentStatus.VERIFIED),
        ("doc-2", DocumentStatus.EXPIRED),
    ]

    draft = set_document_note(draft, "doc-2", "Expired last March")
    assert draft.document_statuses[1].note == "Expired last March"

    with pytest.raises(ValidationError):
        set_document_status(draft, "doc-1", "SHREDDED")


def test_are_all_checked_counts_checked_or_not_applicable() -> None:
    draft = new_draft("owner-1")
    assert are_all_checked(draft, "address") is False

    draft = toggle_checklist_item(draft, "address", "address-match")
    draft = toggle_checklist_item(draft, "address", "address-valid")
    draft = toggle_not_applicable(draft, "address", "proof-recent")

    assert are_all_checked(draft, "address") is True
    assert missing_na_reasons(draft, "address") == ("proof-recent",)
    assert is_category_complete(draft, "address") is False

    draft = set_na_reason(draft, "address", "proof-recent", "   ")
    assert is_category_complete(draft, "address") is False

    draft = set_na_reason(draft, "address", "proof-recent", "Rural address without utility service")
    assert is_category_complete(draft, "address") is True


def test_payload_round_trip_preserves_draft() -> None:
    draft = new_draft("owner-1", {"first_name": "Ana", "last_name": "Rivera"}, ["doc-1"])
    draft = toggle_checklist_item(draft, "identity", "id-match")
    draft = toggle_not_applicable(draft, "business", "business-docs")
    draft = set_na_reason(draft, "business", "business-docs", "Sole trader")
    draft = set_affiliation_type(draft, "NEW_INTENT")
    draft = set_final_decision(draft, status="NEEDS_INFO", additional_info_requested="Recent bank statement")

    payload = draft.to_payload()
    assert payload["ownerId"] == "owner-1"
    assert payload["checklists"]["business"][2]["naReason"] == "Sole trader"
    assert payload["finalDecision"]["status"] == "NEEDS_INFO"

    restored = VerificationDraft.from_payload(payload)
    assert restored == draft
    assert restored.affiliation_type is AffiliationType.NEW_INTENT
    assert restored.final_decision.status is Decision.NEEDS_INFO


def test_from_payload_rejects_malformed_drafts() -> None:
    payload = new_draft("owner-1").to_payload()
    payload["checklists"]["identity"][0]["checked"] = True
    payload["checklists"]["identity"][0]["isNotApplicable"] = True

    with pytest.raises(ValidationError):
        VerificationDraft.from_payload(payload)

    with pytest.raises(ValidationError):
        VerificationDraft.from_payload({"currentStep": 9}, owner_id="owner-1")


def test_store_notifies_only_on_real_changes() -> None:
    store = DraftStore(new_draft("owner-1"))
    seen = []
    unsubscribe = store.subscribe(seen.append)

    store.set_notes("overall", "Looks fine")
    store.set_notes("overall", "Looks fine")
    store.toggle_checklist_item("identity", "id-valid")
    assert len(seen) == 2
    assert seen[-1] is store.draft

    unsubscribe()
    store.set_notes("overall", "Changed again")
    assert len(seen) == 2

    snapshot = store.get_draft_snapshot()
    assert snapshot["notes"]["overall"] == "Changed again"
    assert store.are_all_checked("identity") is False
