from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from permisoria.application.services.audit_service import AuditService
from permisoria.core.config import AppSettings
from permisoria.core.errors import ConflictError, NotFoundError, TransientIOError
from permisoria.core.hashing import compute_json_digest
from permisoria.core.ids import new_certificate_number, new_uuid
from permisoria.core.time import add_days_iso, now_utc, parse_iso
from permisoria.domain.models.certificate import VerificationCertificate
from permisoria.domain.models.owner import BusinessOwner
from permisoria.domain.models.verification import VerificationAttempt
from permisoria.infrastructure.db.repos.certificate_repo import CertificateRepo
from permisoria.infrastructure.db.repos.owner_repo import OwnerRepo
from permisoria.infrastructure.db.repos.verification_repo import VerificationRepo

logger = logging.getLogger(__name__)

CERTIFICATE_VALID = "VALID"
CERTIFICATE_REVOKED = "REVOKED"
CERTIFICATE_EXPIRED = "EXPIRED"
CERTIFICATE_NOT_FOUND = "NOT_FOUND"

DEFAULT_REVOCATION_REASON = "No reason provided"


@dataclass(slots=True)
class IssueOutcome:
    certificate: VerificationCertificate
    created: bool


def certificate_payload(certificate: VerificationCertificate) -> dict[str, Any]:
    return {
        "id": certificate.id,
        "verificationId": certificate.verification_id,
        "certificateNumber": certificate.certificate_number,
        "issuedAt": certificate.issued_at,
        "expiresAt": certificate.expires_at,
        "verificationHash": certificate.verification_hash,
        "validationUrl": certificate.validation_url,
        "issuedBy": certificate.issued_by,
        "isRevoked": certificate.is_revoked,
        "revokedAt": certificate.revoked_at,
        "revokedReason": certificate.revoked_reason,
        "revokedBy": certificate.revoked_by,
    }


class CertificateService:
    _MAX_NUMBER_ATTEMPTS = 5

    def __init__(
        self,
        owner_repo: OwnerRepo,
        verification_repo: VerificationRepo,
        certificate_repo: CertificateRepo,
        audit_service: AuditService,
        settings: AppSettings | None = None,
    ) -> None:
        self.owner_repo = owner_repo
        self.verification_repo = verification_repo
        self.certificate_repo = certificate_repo
        self.audit_service = audit_service
        self.settings = settings or AppSettings()

    def get_or_generate_certificate(
        self,
        owner_id: str,
        actor_id: str,
        verification_id: str | None = None,
    ) -> VerificationCertificate:
        owner = self._require_owner(owner_id, actor_id)
        if verification_id:
            attempt = self._require_verified_attempt(verification_id)
            if attempt.business_owner_id != owner.id:
                raise NotFoundError(f"Verification attempt not found: {verification_id}")
        else:
            attempt = self.verification_repo.get_latest_verified_attempt(owner.id)
            if attempt is None:
                raise NotFoundError(f"No verified verification found for owner: {owner_id}")

        outcome = self._issue(attempt, actor_id)
        self._audit(owner.id, outcome, actor_id)
        return outcome.certificate

    def generate_certificate(self, verification_id: str, actor_id: str) -> VerificationCertificate:
        attempt = self._require_verified_attempt(verification_id)
        owner = self._require_owner(attempt.business_owner_id, actor_id)
        outcome = self._issue(attempt, actor_id)
        self._audit(owner.id, outcome, actor_id)
        return outcome.certificate

    def revoke_certificate(
        self,
        certificate_id: str,
        actor_id: str,
        reason: str,
        owner_id: str | None = None,
    ) -> VerificationCertificate:
        certificate, owner = self._require_certificate(certificate_id, actor_id, owner_id)
        if certificate.is_revoked:
            raise ConflictError(
                f"Certificate already revoked: {certificate.certificate_number}",
                details={"revokedAt": certificate.revoked_at},
            )
        clean_reason = (reason or "").strip() or DEFAULT_REVOCATION_REASON

        revoked_at = now_utc().isoformat()
        if not self.certificate_repo.revoke(certificate.id, revoked_at, clean_reason, actor_id):
            current = self.certificate_repo.get_by_id(certificate.id)
            raise ConflictError(
                f"Certificate already revoked: {certificate.certificate_number}",
                details={"revokedAt": current.revoked_at if current else None},
            )

        revoked = self.certificate_repo.get_by_id(certificate.id)
        self.audit_service.log_event(
            owner_id=owner.id,
            entity_type="certificate",
            entity_id=certificate.id,
            action="CERTIFICATE_REVOKED",
            performed_by=actor_id,
            details={"certificateNumber": certificate.certificate_number, "reason": clean_reason},
        )
        logger.info("Revoked certificate %s", certificate.certificate_number)
        return revoked

    def get_certificate(self, certificate_id: str, actor_id: str, owner_id: str | None = None) -> dict[str, Any]:
        certificate, owner = self._require_certificate(certificate_id, actor_id, owner_id)
        self.audit_service.log_event(
            owner_id=owner.id,
            entity_type="certificate",
            entity_id=certificate.id,
            action="CERTIFICATE_VIEWED",
            performed_by=actor_id,
            details={"certificateNumber": certificate.certificate_number},
        )
        payload = certificate_payload(certificate)
        payload["status"] = self._validity(certificate)
        payload["owner"] = {"id": owner.id, "name": owner.display_name}
        return payload

    def verify_certificate_by_hash(self, verification_hash: str) -> dict[str, Any]:
        certificate = self.certificate_repo.get_by_hash(verification_hash.strip().lower())
        if certificate is None:
            return {"valid": False, "status": CERTIFICATE_NOT_FOUND}

        status = self._validity(certificate)
        result: dict[str, Any] = {
            "valid": status == CERTIFICATE_VALID,
            "status": status,
            "certificateNumber": certificate.certificate_number,
            "issuedAt": certificate.issued_at,
            "expiresAt": certificate.expires_at,
        }
        if status == CERTIFICATE_REVOKED:
            result["revokedAt"] = certificate.revoked_at
        attempt = self.verification_repo.get_attempt(certificate.verification_id)
        owner = self.owner_repo.get_by_id(attempt.business_owner_id) if attempt else None
        if owner is not None:
            result["ownerName"] = owner.display_name
        return result

    def _issue(self, attempt: VerificationAttempt, actor_id: str) -> IssueOutcome:
        existing = self.certificate_repo.get_by_verification_id(attempt.id)
        if existing is not None:
            self._ensure_not_revoked(existing)
            return IssueOutcome(existing, created=False)

        for _ in range(self._MAX_NUMBER_ATTEMPTS):
            candidate = self._build_certificate(attempt, actor_id)
            try:
                stored = self.certificate_repo.insert_or_get(candidate)
            except sqlite3.IntegrityError:
                logger.warning("Certificate number collision on %s; retrying", candidate.certificate_number)
                continue
            self._ensure_not_revoked(stored)
            created = stored.id == candidate.id
            if created:
                logger.info("Issued certificate %s for verification %s", stored.certificate_number, attempt.id)
            return IssueOutcome(stored, created=created)

        raise TransientIOError("Could not allocate a unique certificate number")

    def _build_certificate(self, attempt: VerificationAttempt, actor_id: str) -> VerificationCertificate:
        issued = now_utc()
        issued_at = issued.isoformat()
        number = new_certificate_number(issued.year)
        verification_hash = compute_json_digest(
            {
                "verificationId": attempt.id,
                "ownerId": attempt.business_owner_id,
                "decision": attempt.decision,
                "completedAt": attempt.completed_at,
                "certificateNumber": number,
                "issuedAt": issued_at,
            }
        )
        return VerificationCertificate(
            id=new_uuid(),
            verification_id=attempt.id,
            certificate_number=number,
            issued_at=issued_at,
            expires_at=add_days_iso(issued_at, self.settings.certificate_validity_days),
            verification_hash=verification_hash,
            validation_url=f"{self.settings.public_base_url}/verify/{verification_hash}",
            issued_by=actor_id,
            revoked_at=None,
            revoked_reason=None,
            revoked_by=None,
        )

    @staticmethod
    def _ensure_not_revoked(certificate: VerificationCertificate) -> None:
        if certificate.is_revoked:
            raise ConflictError(
                f"Certificate {certificate.certificate_number} was revoked; start a new verification",
                details={"revokedAt": certificate.revoked_at},
            )

    @staticmethod
    def _validity(certificate: VerificationCertificate) -> str:
        if certificate.is_revoked:
            return CERTIFICATE_REVOKED
        expires_at = parse_iso(certificate.expires_at)
        if expires_at is not None and expires_at <= now_utc():
            return CERTIFICATE_EXPIRED
        return CERTIFICATE_VALID

    def _audit(self, owner_id: str, outcome: IssueOutcome, actor_id: str) -> None:
        self.audit_service.log_event(
            owner_id=owner_id,
            entity_type="certificate",
            entity_id=outcome.certificate.id,
            action="CERTIFICATE_GENERATED" if outcome.created else "CERTIFICATE_VIEWED",
            performed_by=actor_id,
            details={
                "certificateNumber": outcome.certificate.certificate_number,
                "verificationId": outcome.certificate.verification_id,
            },
        )

    def _require_owner(self, owner_id: str, actor_id: str) -> BusinessOwner:
        owner = self.owner_repo.find_owner_managed_by(owner_id, actor_id)
        if owner is None:
            raise NotFoundError(f"Business owner not found: {owner_id}")
        return owner

    def _require_verified_attempt(self, verification_id: str) -> VerificationAttempt:
        attempt = self.verification_repo.get_attempt(verification_id)
        if attempt is None or attempt.decision != "VERIFIED" or not attempt.is_finalized:
            raise NotFoundError(f"Verified verification attempt not found: {verification_id}")
        return attempt

    def _require_certificate(
        self,
        certificate_id: str,
        actor_id: str,
        owner_id: str | None,
    ) -> tuple[VerificationCertificate, BusinessOwner]:
        certificate = self.certificate_repo.get_by_id(certificate_id)
        attempt = self.verification_repo.get_attempt(certificate.verification_id) if certificate else None
        if certificate is None or attempt is None:
            raise NotFoundError(f"Certificate not found: {certificate_id}")
        if owner_id is not None and attempt.business_owner_id != owner_id:
            raise NotFoundError(f"Certificate not found: {certificate_id}")
        owner = self.owner_repo.find_owner_managed_by(attempt.business_owner_id, actor_id)
        if owner is None:
            raise NotFoundError(f"Certificate not found: {certificate_id}")
        return certificate, owner
