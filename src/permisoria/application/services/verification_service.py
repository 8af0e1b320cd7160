from __future__ import annotations

import json
import logging
import math
from typing import Any

from permisoria.application.services.audit_service import AuditService
from permisoria.application.services.certificate_service import CertificateService, certificate_payload
from permisoria.core.config import AppSettings
from permisoria.core.errors import ConflictError, NotFoundError, ValidationError
from permisoria.core.ids import new_uuid
from permisoria.core.time import add_days_iso, now_utc, now_utc_iso, parse_iso
from permisoria.domain.models.owner import BusinessOwner, OwnerDocument
from permisoria.domain.models.payloads import (
    DecisionPayload,
    DocumentVerificationPayload,
    DraftPayload,
    parse_payload,
)
from permisoria.domain.models.verification import (
    ATTEMPT_IN_PROGRESS,
    DOCUMENT_STATUSES_REQUIRING_NOTES,
    HISTORY_DECISION_SUBMITTED,
    HISTORY_DOCUMENT_UPDATED,
    HISTORY_DRAFT_SAVED,
    HISTORY_STARTED,
    OWNER_PENDING_VERIFICATION,
    SECTION_KEYS,
    DocumentVerification,
    VerificationAttempt,
    VerificationHistoryEvent,
)
from permisoria.infrastructure.db.repos.certificate_repo import CertificateRepo
from permisoria.infrastructure.db.repos.owner_repo import OwnerRepo
from permisoria.infrastructure.db.repos.verification_repo import OwnerStatusUpdate, VerificationRepo

logger = logging.getLogger(__name__)

EXPIRING_SOON_DAYS = 30

# Wizard step each history action is recorded against.
_DECISION_STEP = 5


def _dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=True)


def _loads(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Ignoring unreadable JSON column value")
        return None


def attempt_payload(attempt: VerificationAttempt) -> dict[str, Any]:
    return {
        "id": attempt.id,
        "businessOwnerId": attempt.business_owner_id,
        "initiatedBy": attempt.initiated_by,
        "status": attempt.status,
        "decision": attempt.decision,
        "decisionReason": attempt.decision_reason,
        "sections": _loads(attempt.sections_json) or {},
        "createdAt": attempt.created_at,
        "lastUpdated": attempt.last_updated,
        "completedAt": attempt.completed_at,
        "isFinalized": attempt.is_finalized,
    }


def document_verification_payload(record: DocumentVerification) -> dict[str, Any]:
    return {
        "id": record.id,
        "verificationId": record.verification_id,
        "documentId": record.document_id,
        "status": record.status,
        "notes": record.notes,
        "verifiedBy": record.verified_by,
        "verifiedAt": record.verified_at,
    }


def history_payload(event: VerificationHistoryEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "action": event.action,
        "performedBy": event.performed_by,
        "details": _loads(event.details_json) or {},
        "stepNumber": event.step_number,
        "performedAt": event.performed_at,
    }


class VerificationService:
    def __init__(
        self,
        owner_repo: OwnerRepo,
        verification_repo: VerificationRepo,
        audit_service: AuditService,
        certificate_service: CertificateService | None = None,
        certificate_repo: CertificateRepo | None = None,
        settings: AppSettings | None = None,
    ) -> None:
        self.owner_repo = owner_repo
        self.verification_repo = verification_repo
        self.audit_service = audit_service
        self.certificate_service = certificate_service
        self.certificate_repo = certificate_repo
        self.settings = settings or AppSettings()

    def create_verification_attempt(self, owner_id: str, actor_id: str) -> VerificationAttempt:
        owner = self._require_owner(owner_id, actor_id)
        now = now_utc_iso()
        attempt = VerificationAttempt(
            id=new_uuid(),
            business_owner_id=owner.id,
            initiated_by=actor_id,
            status=ATTEMPT_IN_PROGRESS,
            sections_json=_dumps({key: {"status": "PENDING"} for key in SECTION_KEYS}),
            draft_data_json=None,
            decision=None,
            decision_reason=None,
            created_at=now,
            last_updated=now,
            completed_at=None,
        )
        self.verification_repo.insert_attempt(attempt)
        self._append_history(attempt.id, HISTORY_STARTED, actor_id, {"ownerId": owner.id}, step_number=1)
        self.owner_repo.set_current_attempt(owner.id, attempt.id, OWNER_PENDING_VERIFICATION, now)
        self.audit_service.log_event(
            owner_id=owner.id,
            entity_type="verification",
            entity_id=attempt.id,
            action="VERIFICATION_STARTED",
            performed_by=actor_id,
        )
        logger.info("Started verification %s for owner %s", attempt.id, owner.id)
        return attempt

    def save_draft(self, owner_id: str, actor_id: str, draft_payload: Any) -> dict[str, Any]:
        owner = self._require_owner(owner_id, actor_id)
        draft = parse_payload(DraftPayload, draft_payload, "draft")

        attempt = self.verification_repo.get_latest_attempt(owner.id)
        if attempt is None:
            attempt = self.create_verification_attempt(owner.id, actor_id)
        if attempt.is_finalized:
            raise ConflictError(
                "The latest verification attempt is already finalized; start a new verification",
                details={"verificationId": attempt.id, "completedAt": attempt.completed_at},
            )

        saved_at = now_utc_iso()
        if not self.verification_repo.update_draft(attempt.id, _dumps(draft_payload), saved_at):
            raise ConflictError(
                "The verification attempt was finalized while saving",
                details={"verificationId": attempt.id},
            )
        self._append_history(
            attempt.id,
            HISTORY_DRAFT_SAVED,
            actor_id,
            {"currentStep": draft.current_step},
            step_number=draft.current_step,
        )
        logger.debug("Saved draft for verification %s at step %s", attempt.id, draft.current_step)
        return {"attemptId": attempt.id, "savedAt": saved_at}

    def update_document_verification(self, owner_id: str, actor_id: str, payload: Any) -> DocumentVerification:
        owner = self._require_owner(owner_id, actor_id)
        request = parse_payload(DocumentVerificationPayload, payload, "document verification")
        self._require_notes(request.status, request.notes, request.document_id)

        attempt = self._require_owner_attempt(owner, request.verification_id)
        self._require_owner_document(owner, request.document_id)
        if attempt.is_finalized:
            raise ConflictError(
                "Cannot change documents of a finalized verification",
                details={"verificationId": attempt.id},
            )

        record = self.verification_repo.upsert_document_verification(
            DocumentVerification(
                id=new_uuid(),
                verification_id=attempt.id,
                document_id=request.document_id,
                status=request.status,
                notes=request.notes,
                verified_by=actor_id,
                verified_at=now_utc_iso(),
            )
        )
        details = {"documentId": request.document_id, "status": request.status, "notes": request.notes}
        self._append_history(attempt.id, HISTORY_DOCUMENT_UPDATED, actor_id, details)
        self.audit_service.log_event(
            owner_id=owner.id,
            entity_type="document",
            entity_id=request.document_id,
            action="DOCUMENT_VERIFICATION_UPDATED",
            performed_by=actor_id,
            details=details,
        )
        return record

    def submit_verification_decision(self, owner_id: str, actor_id: str, payload: Any) -> dict[str, Any]:
        owner = self._require_owner(owner_id, actor_id)
        request: DecisionPayload = parse_payload(DecisionPayload, payload, "verification decision")
        for item in request.document_verifications:
            self._require_notes(item.status, item.notes, item.document_id)

        attempt = self._require_owner_attempt(owner, request.verification_id)
        if attempt.is_finalized:
            raise ConflictError(
                "Verification decision already submitted",
                details={"verificationId": attempt.id, "decision": attempt.decision},
            )
        for item in request.document_verifications:
            self._require_owner_document(owner, item.document_id)

        decided_at = now_utc_iso()
        decision = request.decision
        finalize = decision != "NEEDS_INFO" or not self.settings.reopen_on_needs_info
        if decision == "VERIFIED":
            owner_update = OwnerStatusUpdate(
                verification_status="VERIFIED",
                last_verified_at=decided_at,
                verification_expires_at=add_days_iso(decided_at, self.settings.verification_validity_days),
                clear_current_attempt=True,
                updated_at=decided_at,
            )
        else:
            owner_update = OwnerStatusUpdate(
                verification_status=decision,
                last_verified_at=None,
                verification_expires_at=None,
                clear_current_attempt=finalize,
                updated_at=decided_at,
            )

        sections = request.sections.model_dump(by_alias=True)
        applied = self.verification_repo.record_decision(
            attempt_id=attempt.id,
            owner_id=owner.id,
            decision=decision,
            decision_reason=request.decision_reason,
            sections_json=_dumps(sections),
            decided_at=decided_at,
            finalize=finalize,
            document_verifications=[
                DocumentVerification(
                    id=new_uuid(),
                    verification_id=attempt.id,
                    document_id=item.document_id,
                    status=item.status,
                    notes=item.notes,
                    verified_by=actor_id,
                    verified_at=decided_at,
                )
                for item in request.document_verifications
            ],
            history_event=VerificationHistoryEvent(
                id=new_uuid(),
                verification_id=attempt.id,
                action=HISTORY_DECISION_SUBMITTED,
                performed_by=actor_id,
                details_json=_dumps(payload),
                step_number=_DECISION_STEP,
                performed_at=decided_at,
            ),
            owner_update=owner_update,
        )
        if not applied:
            raise ConflictError(
                "Verification decision already submitted",
                details={"verificationId": attempt.id},
            )

        self.audit_service.log_event(
            owner_id=owner.id,
            entity_type="verification",
            entity_id=attempt.id,
            action="VERIFICATION_DECISION_SUBMITTED",
            performed_by=actor_id,
            details={"decision": decision, "reason": request.decision_reason},
        )
        logger.info("Recorded %s decision for verification %s", decision, attempt.id)

        certificate = None
        if decision == "VERIFIED" and self.certificate_service is not None:
            try:
                certificate = self.certificate_service.generate_certificate(attempt.id, actor_id)
            except Exception:
                logger.exception("Certificate generation failed for verification %s", attempt.id)

        return {
            "verificationId": attempt.id,
            "decision": decision,
            "decisionReason": request.decision_reason,
            "completedAt": decided_at if finalize else None,
            "isFinalized": finalize,
            "ownerStatus": owner_update.verification_status,
            "verificationExpiresAt": owner_update.verification_expires_at,
            "certificate": certificate_payload(certificate) if certificate else None,
        }

    def get_verification_status(
        self,
        owner_id: str,
        actor_id: str,
        *,
        include_documents: bool = True,
        include_history: bool = True,
        include_draft: bool = True,
    ) -> dict[str, Any]:
        owner = self._require_owner(owner_id, actor_id)
        current = self.verification_repo.get_latest_attempt(owner.id)
        document_records = (
            self.verification_repo.list_document_verifications(current.id) if current is not None else []
        )

        current_payload: dict[str, Any] | None = None
        if current is not None:
            current_payload = attempt_payload(current)
            if include_draft:
                current_payload["draftData"] = _loads(current.draft_data_json)
            if include_documents:
                current_payload["documentVerifications"] = [
                    document_verification_payload(record) for record in document_records
                ]
            if include_history:
                current_payload["history"] = [
                    history_payload(event) for event in self.verification_repo.list_history(current.id)
                ]

        result: dict[str, Any] = {
            "owner": {
                "id": owner.id,
                "name": owner.display_name,
                "email": owner.email,
                "verificationStatus": owner.verification_status,
                "lastVerifiedAt": owner.last_verified_at,
                "verificationExpiresAt": owner.verification_expires_at,
            },
            "metrics": self._metrics(owner),
            "currentAttempt": current_payload,
            "recentAttempts": [
                attempt_payload(attempt) for attempt in self.verification_repo.list_completed_attempts(owner.id)
            ],
        }
        if include_documents:
            documents = self.owner_repo.list_documents(owner.id)
            result["documents"] = self._document_breakdown(documents, document_records)
        self.audit_service.log_event(
            owner_id=owner.id,
            entity_type="verification",
            entity_id=current.id if current is not None else None,
            action="VERIFICATION_STATUS_VIEWED",
            performed_by=actor_id,
        )
        return result

    def get_verification_documents(self, owner_id: str, verification_id: str, actor_id: str) -> dict[str, Any]:
        owner = self._require_owner(owner_id, actor_id)
        attempt = self._require_owner_attempt(owner, verification_id)
        documents = self.owner_repo.list_documents(owner.id)
        records = self.verification_repo.list_document_verifications(attempt.id)
        breakdown = self._document_breakdown(documents, records)
        return {"verificationId": attempt.id, "isFinalized": attempt.is_finalized, **breakdown}

    def get_activity_logs(self, owner_id: str, actor_id: str, **query: Any) -> dict[str, Any]:
        owner = self._require_owner(owner_id, actor_id)
        return self.audit_service.list_events(owner.id, **query)

    def _metrics(self, owner: BusinessOwner) -> dict[str, Any]:
        days_until_expiry = None
        expires_at = parse_iso(owner.verification_expires_at)
        if expires_at is not None:
            days_until_expiry = math.ceil((expires_at - now_utc()).total_seconds() / 86400)

        latest_certificate_id = None
        if self.certificate_repo is not None:
            verified = self.verification_repo.get_latest_verified_attempt(owner.id)
            if verified is not None:
                certificate = self.certificate_repo.get_by_verification_id(verified.id)
                latest_certificate_id = certificate.id if certificate else None

        return {
            "totalAttempts": self.verification_repo.count_attempts(owner.id),
            "lastVerifiedAt": owner.last_verified_at,
            "verificationExpiresAt": owner.verification_expires_at,
            "daysUntilExpiry": days_until_expiry,
            "isExpired": days_until_expiry is not None and days_until_expiry < 0,
            "isExpiringSoon": days_until_expiry is not None and 0 <= days_until_expiry <= EXPIRING_SOON_DAYS,
            "latestCertificateId": latest_certificate_id,
        }

    @staticmethod
    def _document_breakdown(
        documents: list[OwnerDocument],
        records: list[DocumentVerification],
    ) -> dict[str, Any]:
        by_document = {record.document_id: record for record in records}
        by_category: dict[str, list[dict[str, Any]]] = {}
        totals = {"total": 0, "verified": 0, "pending": 0, "issues": 0}
        for document in documents:
            record = by_document.get(document.id)
            status = record.status if record else "PENDING"
            by_category.setdefault(document.category, []).append(
                {
                    "id": document.id,
                    "filename": document.filename,
                    "category": document.category,
                    "uploadedAt": document.uploaded_at,
                    "status": status,
                    "notes": record.notes if record else None,
                    "verifiedAt": record.verified_at if record else None,
                }
            )
            totals["total"] += 1
            if status == "VERIFIED":
                totals["verified"] += 1
            elif status == "PENDING":
                totals["pending"] += 1
            elif status != "NOT_APPLICABLE":
                totals["issues"] += 1
        return {"byCategory": by_category, "totals": totals}

    def _append_history(
        self,
        attempt_id: str,
        action: str,
        actor_id: str,
        details: dict[str, Any],
        step_number: int | None = None,
    ) -> None:
        self.verification_repo.insert_history(
            VerificationHistoryEvent(
                id=new_uuid(),
                verification_id=attempt_id,
                action=action,
                performed_by=actor_id,
                details_json=_dumps(details),
                step_number=step_number,
                performed_at=now_utc_iso(),
            )
        )

    @staticmethod
    def _require_notes(status: str, notes: str | None, document_id: str) -> None:
        if status in DOCUMENT_STATUSES_REQUIRING_NOTES and not (notes or "").strip():
            raise ValidationError(
                f"Notes are required when marking a document {status}",
                details=[{"loc": ["documentId"], "msg": f"notes required for {document_id}", "type": "missing_notes"}],
            )

    def _require_owner(self, owner_id: str, actor_id: str) -> BusinessOwner:
        owner = self.owner_repo.find_owner_managed_by(owner_id, actor_id)
        if owner is None:
            raise NotFoundError(f"Business owner not found: {owner_id}")
        return owner

    def _require_owner_attempt(self, owner: BusinessOwner, verification_id: str) -> VerificationAttempt:
        attempt = self.verification_repo.get_attempt(verification_id)
        if attempt is None or attempt.business_owner_id != owner.id:
            raise NotFoundError(f"Verification attempt not found: {verification_id}")
        return attempt

    def _require_owner_document(self, owner: BusinessOwner, document_id: str) -> OwnerDocument:
        document = self.owner_repo.get_document(document_id)
        if document is None or document.owner_id != owner.id:
            raise NotFoundError(f"Document not found: {document_id}")
        return document
