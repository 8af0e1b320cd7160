from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from permisoria.core.errors import ValidationError

ReviewStatusLiteral = Literal["PENDING", "VERIFIED", "REJECTED", "NEEDS_REVIEW"]
DecisionLiteral = Literal["VERIFIED", "REJECTED", "NEEDS_INFO"]
DocumentStatusLiteral = Literal[
    "VERIFIED",
    "UNREADABLE",
    "EXPIRED",
    "INCONSISTENT_DATA",
    "SUSPECTED_FRAUD",
    "OTHER_ISSUE",
    "NOT_APPLICABLE",
    "PENDING",
]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChecklistItemPayload(_CamelModel):
    id: str = Field(min_length=1)
    text: str = ""
    checked: bool = False
    is_not_applicable: bool = False
    na_reason: str = ""

    @model_validator(mode="after")
    def _exclusive_states(self) -> "ChecklistItemPayload":
        if self.checked and self.is_not_applicable:
            raise ValueError(f"checklist item {self.id!r} cannot be both checked and not applicable")
        return self


class ChecklistsPayload(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    identity: list[ChecklistItemPayload] = Field(default_factory=list)
    address: list[ChecklistItemPayload] = Field(default_factory=list)
    business: list[ChecklistItemPayload] = Field(default_factory=list)


class StatusByCategoryPayload(_CamelModel):
    model_config = ConfigDict(extra="forbid")

    identity: ReviewStatusLiteral = "PENDING"
    address: ReviewStatusLiteral = "PENDING"
    business: ReviewStatusLiteral = "PENDING"
    overall: ReviewStatusLiteral = "PENDING"


class NotesByCategoryPayload(_CamelModel):
    model_config = ConfigDict(extra="forbid")

    identity: str = ""
    address: str = ""
    business: str = ""
    overall: str = ""


class DocumentStatusPayload(_CamelModel):
    document_id: str = Field(min_length=1)
    status: DocumentStatusLiteral = "PENDING"
    note: str = ""


class FinalDecisionPayload(_CamelModel):
    status: DecisionLiteral | Literal[""] = ""
    reason: str = ""
    additional_info_requested: str = ""


class NewBusinessIntentPayload(_CamelModel):
    legal_name: str = ""
    dba: str = ""
    business_type: str = ""


class BusinessClaimPayload(_CamelModel):
    business_id: str = ""
    ownership_percentage: str = ""
    role_in_business: str = ""


class DraftPayload(_CamelModel):
    """Structural schema of a wizard draft snapshot.

    Unknown top-level keys are tolerated so older clients can keep saving;
    known keys must have the expected shape.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    owner_id: str | None = None
    current_step: int = Field(default=1, ge=1, le=6)
    owner_fields: dict[str, str] = Field(default_factory=dict)
    checklists: ChecklistsPayload = Field(default_factory=ChecklistsPayload)
    verification_status: StatusByCategoryPayload = Field(default_factory=StatusByCategoryPayload)
    notes: NotesByCategoryPayload = Field(default_factory=NotesByCategoryPayload)
    document_statuses: list[DocumentStatusPayload] = Field(default_factory=list)
    final_decision: FinalDecisionPayload = Field(default_factory=FinalDecisionPayload)
    affiliation_type: Literal["NEW_INTENT", "EXISTING_CLAIM"] | None = None
    new_business_intent: NewBusinessIntentPayload = Field(default_factory=NewBusinessIntentPayload)
    business_claim: BusinessClaimPayload = Field(default_factory=BusinessClaimPayload)


class SectionPayload(_CamelModel):
    status: str = Field(min_length=1)
    notes: str | None = None


class SectionsPayload(_CamelModel):
    identity: SectionPayload
    address: SectionPayload
    business_affiliation: SectionPayload


class DocumentDecisionPayload(_CamelModel):
    document_id: str = Field(min_length=1)
    status: DocumentStatusLiteral
    notes: str | None = None


class DecisionPayload(_CamelModel):
    verification_id: str = Field(min_length=1)
    decision: DecisionLiteral
    decision_reason: str | None = None
    sections: SectionsPayload
    document_verifications: list[DocumentDecisionPayload] = Field(default_factory=list)


class DocumentVerificationPayload(_CamelModel):
    verification_id: str = Field(min_length=1)
    document_id: str = Field(min_length=1)
    status: DocumentStatusLiteral
    notes: str | None = None


def parse_payload(model: type[BaseModel], payload: Any, what: str) -> Any:
    """Validate ``payload`` against ``model`` and raise a domain ValidationError on mismatch."""
    if not isinstance(payload, dict):
        raise ValidationError(f"Invalid {what}: expected a JSON object", details=[])
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        details = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        raise ValidationError(f"Invalid {what}", details=details) from exc
